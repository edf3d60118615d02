"""
Lot-level position tracking types.

Lots are the open quantity-at-price left behind by a buy or sell that found
nothing to match. Each instrument stream owns two LotQueues (long and short)
and consumes them strictly oldest-first.
"""

from collections import deque
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Deque, Iterator, List, NamedTuple, Optional

from journal_engine.models.trade import AssetType

# Tolerance for every quantity-vs-zero comparison
EPSILON = 1e-6


class InstrumentKey(NamedTuple):
    """(account, instrument identity) pair that lots are matched within"""
    account_id: str
    instrument_id: str

    def __str__(self) -> str:
        return f"{self.account_id}:{self.instrument_id}"


class ClosingType(Enum):
    MANUAL = "MANUAL"
    EXPIRATION = "EXPIRATION"
    ASSIGNMENT = "ASSIGNMENT"
    EXERCISE = "EXERCISE"


@dataclass
class Lot:
    """Represents an open position lot"""
    price: float
    quantity: float  # remaining, always positive; direction is the queue it lives in
    original_quantity: float
    multiplier: float
    opened_at: datetime
    source_trade_id: str
    broker: str
    account_id: str
    asset_type: AssetType

    @property
    def is_exhausted(self) -> bool:
        return self.quantity < EPSILON

    @property
    def notional(self) -> float:
        return self.price * self.quantity * self.multiplier


@dataclass(frozen=True)
class ClosedTrade:
    """A realized fill: part of one lot matched against a closing trade"""
    symbol: str
    pnl: float
    entry_price: float
    exit_price: float
    quantity: float
    opened_at: datetime
    closed_at: datetime
    account_id: str
    broker: str
    asset_type: AssetType
    multiplier: float
    opening_trade_id: str
    closing_trade_id: Optional[str]
    closing_type: ClosingType = ClosingType.MANUAL

    @property
    def cost_basis(self) -> float:
        return self.entry_price * self.quantity * self.multiplier

    @property
    def is_win(self) -> bool:
        return self.pnl > 0

    @property
    def is_loss(self) -> bool:
        return self.pnl < 0


@dataclass(frozen=True)
class OpenPosition:
    """Reported view of a surviving lot (positive quantity = long)"""
    symbol: str
    quantity: float
    entry_price: float
    opened_at: datetime
    current_value: float
    account_id: str
    broker: str
    asset_type: AssetType
    multiplier: float
    trade_id: str

    @property
    def is_short(self) -> bool:
        return self.quantity < 0

    @classmethod
    def from_lot(cls, lot: Lot, symbol: str, short: bool = False) -> "OpenPosition":
        quantity = -lot.quantity if short else lot.quantity
        return cls(
            symbol=symbol,
            quantity=quantity,
            entry_price=lot.price,
            opened_at=lot.opened_at,
            current_value=lot.price * quantity * lot.multiplier,
            account_id=lot.account_id,
            broker=lot.broker,
            asset_type=lot.asset_type,
            multiplier=lot.multiplier,
            trade_id=lot.source_trade_id,
        )


class LotQueue:
    """FIFO queue of open lots for one side of one instrument."""

    def __init__(self, side: str):
        self.side = side
        self._lots: Deque[Lot] = deque()

    def __len__(self) -> int:
        return len(self._lots)

    def __bool__(self) -> bool:
        return bool(self._lots)

    def __iter__(self) -> Iterator[Lot]:
        return iter(self._lots)

    def push(self, lot: Lot) -> None:
        self._lots.append(lot)

    def peek(self) -> Lot:
        """Oldest open lot. Raises IndexError when empty."""
        return self._lots[0]

    def pop_exhausted(self) -> Optional[Lot]:
        """Drop the head lot if it has been fully matched."""
        if self._lots and self._lots[0].is_exhausted:
            return self._lots.popleft()
        return None

    def total_quantity(self) -> float:
        return sum(lot.quantity for lot in self._lots)

    def scale(self, ratio: float) -> None:
        """Split-adjust every lot in place, preserving notional value."""
        for lot in self._lots:
            lot.quantity *= ratio
            lot.price /= ratio

    def drain(self) -> List[Lot]:
        """Remove and return every lot, oldest first."""
        lots = list(self._lots)
        self._lots.clear()
        return lots
