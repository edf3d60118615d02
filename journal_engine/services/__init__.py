"""Reporting services layered on the engine."""

from .journal_service import TradeStore, build_user_report
from .report_service import apply_filters, build_report, calculate_metrics

__all__ = [
    "TradeStore",
    "build_user_report",
    "apply_filters",
    "build_report",
    "calculate_metrics",
]
