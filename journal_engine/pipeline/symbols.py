"""
Symbol classification: contract multiplier and asset type resolution.

Brokers sometimes report option fills under an equity schema (multiplier 1,
type STOCK). The pattern fallback recognises OSI-style symbols such as
``AAPL  250321C00170000`` and corrects them.
"""

from __future__ import annotations

import re
from datetime import date, datetime
from typing import Optional, Protocol, Tuple

import pytz
from loguru import logger

from journal_engine.models.trade import AssetType, Trade

__all__ = [
    "OPTION_MULTIPLIER",
    "SymbolClassifier",
    "BrokerMetadataClassifier",
    "PatternFallbackClassifier",
    "is_osi_symbol",
    "parse_option_expiration",
    "expiration_moment",
]

OPTION_MULTIPLIER = 100.0

# ticker + optional padding + YYMMDD + C/P + 8-digit strike (x1000)
_OSI_PATTERN = re.compile(r"^[A-Z]+\s*[0-9]{6}[CP][0-9]{8}$")
_EXPIRY_PATTERN = re.compile(r"(\d{6})[CP]")


def is_osi_symbol(symbol: str) -> bool:
    return bool(_OSI_PATTERN.match(symbol or ""))


def parse_option_expiration(symbol: str) -> Optional[date]:
    """Return the YYMMDD expiry embedded in an option symbol, if any."""
    match = _EXPIRY_PATTERN.search(symbol or "")
    if not match:
        return None
    try:
        return datetime.strptime("20" + match.group(1), "%Y%m%d").date()
    except ValueError:
        logger.debug(f"Malformed option expiry in symbol {symbol!r}")
        return None


def expiration_moment(expiry: date, timezone: str) -> datetime:
    """End of the expiration day (23:59:59 local) as an aware UTC datetime."""
    tz = pytz.timezone(timezone)
    local = tz.localize(datetime(expiry.year, expiry.month, expiry.day, 23, 59, 59))
    return local.astimezone(pytz.UTC)


class SymbolClassifier(Protocol):
    def classify(self, trade: Trade) -> Tuple[float, AssetType]:
        """Return (multiplier, asset_type) for a trade."""
        ...


class BrokerMetadataClassifier:
    """Trust whatever the broker reported.

    A contract multiplier is only meaningful for options; equities always
    resolve to 1.
    """

    def classify(self, trade: Trade) -> Tuple[float, AssetType]:
        if trade.asset_type == AssetType.OPTION and trade.contract_multiplier:
            return float(trade.contract_multiplier), AssetType.OPTION
        return 1.0, trade.asset_type


class PatternFallbackClassifier:
    """Broker metadata first, OSI symbol pattern when the metadata looks wrong."""

    def __init__(self, base: Optional[SymbolClassifier] = None):
        self.base = base or BrokerMetadataClassifier()

    def classify(self, trade: Trade) -> Tuple[float, AssetType]:
        multiplier, asset_type = self.base.classify(trade)

        if multiplier == 1 and is_osi_symbol(trade.symbol):
            logger.debug(
                f"Symbol {trade.symbol!r} matches option pattern; "
                f"forcing multiplier={OPTION_MULTIPLIER:g}"
            )
            return OPTION_MULTIPLIER, AssetType.OPTION

        return multiplier, asset_type
