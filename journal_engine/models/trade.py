"""
Trade input records and their normalized form.

A Trade is a single broker-reported fill exactly as the trade store supplied
it. A ClassifiedTrade is the same fill after the normalizer has resolved which
side of the book it hits, its contract multiplier and its asset type.
"""

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Dict, Optional

import pytz
from loguru import logger


class AssetType(Enum):
    STOCK = "STOCK"
    OPTION = "OPTION"

    @classmethod
    def parse(cls, value) -> "AssetType":
        if isinstance(value, AssetType):
            return value
        text = str(value or "").upper()
        if "OPTION" in text:
            return cls.OPTION
        return cls.STOCK


class BrokerAction(Enum):
    """Closed vocabulary of broker action strings the engine understands"""
    BUY = "BUY"
    BUY_TO_OPEN = "BUY_TO_OPEN"
    BUY_TO_CLOSE = "BUY_TO_CLOSE"
    ASSIGNMENT = "ASSIGNMENT"
    SELL = "SELL"
    SELL_TO_OPEN = "SELL_TO_OPEN"
    SELL_TO_CLOSE = "SELL_TO_CLOSE"
    EXERCISES = "EXERCISES"
    OPTIONEXPIRATION = "OPTIONEXPIRATION"
    SPLIT = "SPLIT"

    @property
    def is_buy_evidence(self) -> bool:
        return self in _BUY_EVIDENCE

    @property
    def is_sell_evidence(self) -> bool:
        return self in _SELL_EVIDENCE


_BUY_EVIDENCE = frozenset({
    BrokerAction.BUY,
    BrokerAction.BUY_TO_OPEN,
    BrokerAction.BUY_TO_CLOSE,
    BrokerAction.ASSIGNMENT,
})

_SELL_EVIDENCE = frozenset({
    BrokerAction.SELL,
    BrokerAction.SELL_TO_OPEN,
    BrokerAction.SELL_TO_CLOSE,
    BrokerAction.EXERCISES,
    BrokerAction.OPTIONEXPIRATION,
})


class TradeSide(Enum):
    BUY = "BUY"
    SELL = "SELL"
    SPLIT = "SPLIT"


def to_utc(value) -> Optional[datetime]:
    """Coerce a datetime, date or ISO-8601 string to an aware UTC datetime.

    Naive values are assumed to already be UTC.
    """
    if value is None or value == "":
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    elif isinstance(value, date) and not isinstance(value, datetime):
        value = datetime(value.year, value.month, value.day)

    if value.tzinfo is None:
        return pytz.UTC.localize(value)
    return value.astimezone(pytz.UTC)


def _to_date(value) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value)[:10], "%Y-%m-%d").date()
    except ValueError:
        logger.warning(f"Unparseable expiry date {value!r}, falling back to the symbol")
        return None


def _optional_float(value) -> Optional[float]:
    if value is None or value == "":
        return None
    return float(value)


@dataclass(frozen=True)
class Trade:
    """A broker-reported fill (immutable, externally sourced)"""
    id: str
    account_id: str
    symbol: str
    action: str  # free-form broker vocabulary
    quantity: float  # signed
    price: float
    timestamp: datetime
    asset_type: AssetType = AssetType.STOCK
    fees: float = 0.0
    universal_symbol_id: Optional[str] = None
    contract_multiplier: Optional[float] = None
    dedup_key: Optional[str] = None
    option_type: Optional[str] = None  # "CALL" / "PUT"
    strike_price: Optional[float] = None
    expiry_date: Optional[date] = None
    broker_name: Optional[str] = None
    ingested_at: Optional[datetime] = None

    @property
    def broker(self) -> str:
        return self.broker_name or "Unknown"

    @classmethod
    def from_dict(cls, raw: Dict) -> "Trade":
        """Build a Trade from a raw trade-store row."""
        account = raw.get("account") or {}
        return cls(
            id=str(raw.get("id", "")),
            account_id=str(raw.get("account_id") or account.get("id") or ""),
            symbol=raw.get("symbol", "") or "",
            action=raw.get("action") or "",
            quantity=float(raw.get("quantity") or 0),
            price=float(raw.get("price") or 0),
            timestamp=to_utc(raw.get("timestamp")),
            asset_type=AssetType.parse(raw.get("asset_type") or raw.get("type")),
            fees=float(raw.get("fees") or 0),
            universal_symbol_id=raw.get("universal_symbol_id") or None,
            contract_multiplier=_optional_float(raw.get("contract_multiplier")),
            dedup_key=raw.get("dedup_key") or None,
            option_type=raw.get("option_type") or None,
            strike_price=_optional_float(raw.get("strike_price")),
            expiry_date=_to_date(raw.get("expiry_date")),
            broker_name=raw.get("broker_name") or account.get("broker_name") or None,
            ingested_at=to_utc(raw.get("ingested_at")),
        )


@dataclass(frozen=True)
class ClassifiedTrade:
    """A trade after action, multiplier and asset type resolution"""
    trade: Trade
    side: TradeSide
    broker_action: BrokerAction
    multiplier: float
    asset_type: AssetType
    timestamp: datetime  # UTC
    sequence: int  # position in the list the store supplied

    @property
    def quantity(self) -> float:
        return abs(self.trade.quantity)

    @property
    def signed_quantity(self) -> float:
        return self.trade.quantity

    @property
    def price(self) -> float:
        return self.trade.price

    @property
    def fee_per_unit(self) -> float:
        return abs(self.trade.fees) / self.quantity
