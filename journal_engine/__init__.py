"""FIFO lot-matching P&L engine for a personal trading journal."""

from journal_engine.config import EngineSettings
from journal_engine.exceptions import InvariantViolation, JournalEngineError, TradeStoreError
from journal_engine.logging_setup import configure_logging
from journal_engine.pipeline.orchestrator import EngineResult, run_engine
from journal_engine.schemas import JournalReport, ReportFilter
from journal_engine.services.journal_service import TradeStore, build_user_report
from journal_engine.services.report_service import build_report

__version__ = "0.1.0"

__all__ = [
    "EngineSettings",
    "InvariantViolation",
    "JournalEngineError",
    "TradeStoreError",
    "configure_logging",
    "EngineResult",
    "run_engine",
    "JournalReport",
    "ReportFilter",
    "TradeStore",
    "build_user_report",
    "build_report",
]
