"""
Data-quality rules for broker trades.

Opt-in (``JOURNAL_VALIDATE_TRADES``). A rejected trade is logged and skipped by
the normalizer; validation never raises.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from loguru import logger

from journal_engine.models.trade import BrokerAction, Trade

__all__ = ["ValidationResult", "validate_trade"]

MAX_FUTURE_SKEW = timedelta(days=1)
MAX_HISTORY_YEARS = 10
LARGE_QUANTITY_WARNING = 10_000


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    reason: Optional[str] = None


def validate_trade(
    trade: Trade,
    action: BrokerAction,
    timestamp: datetime,
    now: datetime,
) -> ValidationResult:
    """Check one trade against the data-quality rules.

    Rules:
      - dated more than a day in the future
      - dated more than ten years ago
      - price <= 0, except expirations and splits
    Very large equity quantities are only warned about.
    """
    if timestamp > now + MAX_FUTURE_SKEW:
        return ValidationResult(False, f"Trade date {timestamp.isoformat()} is in the future")

    try:
        oldest = now.replace(year=now.year - MAX_HISTORY_YEARS)
    except ValueError:
        # Feb 29 with no matching day ten years back
        oldest = now.replace(year=now.year - MAX_HISTORY_YEARS, day=28)
    if timestamp < oldest:
        return ValidationResult(
            False, f"Trade date {timestamp.isoformat()} is more than {MAX_HISTORY_YEARS} years old"
        )

    if trade.price <= 0 and action not in (BrokerAction.OPTIONEXPIRATION, BrokerAction.SPLIT):
        return ValidationResult(False, f"Trade has invalid price: ${trade.price}")

    if abs(trade.quantity) > LARGE_QUANTITY_WARNING and len(trade.symbol) <= 5:
        logger.warning(f"Large quantity detected: {trade.symbol} {trade.quantity} shares")

    return ValidationResult(True)
