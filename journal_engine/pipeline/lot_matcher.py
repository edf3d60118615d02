"""
Lot Matcher: FIFO realization for one instrument stream.

For each InstrumentKey the matcher walks trades in chronological order with two
FIFO queues of open lots (long and short):

  - a BUY first covers the oldest short lots, then opens a long lot with any
    remainder
  - a SELL first closes the oldest long lots, then opens a short lot with any
    remainder
  - a SPLIT rescales every open lot in place (quantity x ratio, price / ratio)
  - once the stream is exhausted, an option whose expiry has passed has every
    surviving lot force-closed at zero

Nothing here raises on contradictory data: a sell with nothing to close simply
opens a short. The only exception path is InvariantViolation in strict mode.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import List, Optional

from loguru import logger

from journal_engine.config import DEFAULT_EXPIRY_TIMEZONE
from journal_engine.exceptions import InvariantViolation
from journal_engine.models.lots import (
    EPSILON,
    ClosedTrade,
    ClosingType,
    InstrumentKey,
    Lot,
    LotQueue,
)
from journal_engine.models.trade import AssetType, BrokerAction, ClassifiedTrade, TradeSide
from journal_engine.pipeline.symbols import expiration_moment, parse_option_expiration

__all__ = ["StreamResult", "LotMatcher", "resolve_expiry", "match_instrument"]

_CLOSING_TYPES = {
    BrokerAction.OPTIONEXPIRATION: ClosingType.EXPIRATION,
    BrokerAction.ASSIGNMENT: ClosingType.ASSIGNMENT,
    BrokerAction.EXERCISES: ClosingType.EXERCISE,
}


@dataclass
class StreamResult:
    """Everything one instrument stream produced"""
    key: InstrumentKey
    symbol: str
    trades: List[ClassifiedTrade]
    closed_trades: List[ClosedTrade] = field(default_factory=list)
    long_lots: List[Lot] = field(default_factory=list)
    short_lots: List[Lot] = field(default_factory=list)
    # Quantity accounting for the conservation check
    volume_in: float = 0.0
    split_delta: float = 0.0
    trade_matched: float = 0.0
    expired: float = 0.0

    @property
    def remaining(self) -> float:
        return sum(lot.quantity for lot in self.long_lots) + sum(lot.quantity for lot in self.short_lots)

    def conservation_gap(self) -> float:
        """Inflow minus accounted-for quantity; ~0 when nothing leaked.

        A trade-to-lot match consumes the matched amount from the trade *and*
        from the lot, so it is counted twice.
        """
        inflow = self.volume_in + self.split_delta
        outflow = 2 * self.trade_matched + self.expired + self.remaining
        return inflow - outflow


class LotMatcher:
    """Stateful FIFO matcher for a single InstrumentKey."""

    def __init__(self, key: InstrumentKey, symbol: str, strict: bool = False):
        self.key = key
        self.symbol = symbol
        self.strict = strict
        self.long_lots = LotQueue("long")
        self.short_lots = LotQueue("short")
        self.closed_trades: List[ClosedTrade] = []
        self.volume_in = 0.0
        self.split_delta = 0.0
        self.trade_matched = 0.0
        self.expired = 0.0

    # ------------------------------------------------------------------
    # Trade processing
    # ------------------------------------------------------------------

    def process(self, ct: ClassifiedTrade) -> None:
        if ct.side == TradeSide.SPLIT:
            self._apply_split(ct)
        elif ct.side == TradeSide.BUY:
            self.volume_in += ct.quantity
            self._match(ct, against=self.short_lots, open_into=self.long_lots)
        else:
            self.volume_in += ct.quantity
            self._match(ct, against=self.long_lots, open_into=self.short_lots)

    def _apply_split(self, ct: ClassifiedTrade) -> None:
        """Rescale open lots using the pre-split aggregate quantity."""
        split_qty = ct.signed_quantity

        for queue in (self.long_lots, self.short_lots):
            current = queue.total_quantity()
            if current <= EPSILON:
                continue

            ratio = (current + split_qty) / current
            if ratio <= EPSILON:
                logger.warning(
                    f"{self.key}: ignoring split {ct.trade.id} (ratio {ratio:.6f} "
                    f"would wipe out {current:g} {queue.side} units)"
                )
                continue

            queue.scale(ratio)
            self.split_delta += current * ratio - current
            logger.debug(f"{self.key}: split {ct.trade.id} scaled {queue.side} lots by {ratio:g}")

        if not self.long_lots and not self.short_lots:
            logger.debug(f"{self.key}: split {ct.trade.id} with no open lots, nothing to adjust")

    def _match(self, ct: ClassifiedTrade, against: LotQueue, open_into: LotQueue) -> None:
        remaining = ct.quantity
        price = ct.price
        fee_per_unit = ct.fee_per_unit
        # Buying back a short profits when price falls; selling a long when it rises
        direction = -1.0 if ct.side == TradeSide.BUY else 1.0
        closing_type = _CLOSING_TYPES.get(ct.broker_action, ClosingType.MANUAL)

        while remaining > EPSILON and against:
            lot = against.peek()
            matched = min(remaining, lot.quantity)

            pnl = direction * (price - lot.price) * matched * lot.multiplier - fee_per_unit * matched

            self.closed_trades.append(ClosedTrade(
                symbol=self.symbol,
                pnl=pnl,
                entry_price=lot.price,
                exit_price=price,
                quantity=matched,
                opened_at=lot.opened_at,
                closed_at=ct.timestamp,
                account_id=lot.account_id,
                broker=lot.broker,
                asset_type=lot.asset_type,
                multiplier=lot.multiplier,
                opening_trade_id=lot.source_trade_id,
                closing_trade_id=ct.trade.id,
                closing_type=closing_type,
            ))

            lot.quantity -= matched
            remaining -= matched
            self.trade_matched += matched
            self._check_non_negative(lot)
            against.pop_exhausted()

        if remaining > EPSILON:
            open_into.push(Lot(
                price=price,
                quantity=remaining,
                original_quantity=remaining,
                multiplier=ct.multiplier,
                opened_at=ct.timestamp,
                source_trade_id=ct.trade.id,
                broker=ct.trade.broker,
                account_id=ct.trade.account_id,
                asset_type=ct.asset_type,
            ))

    def _check_non_negative(self, lot: Lot) -> None:
        if lot.quantity >= -EPSILON:
            return
        message = f"lot from trade {lot.source_trade_id} has negative quantity {lot.quantity}"
        if self.strict:
            raise InvariantViolation(message, key=str(self.key))
        logger.error(f"{self.key}: {message}; clamping to zero")
        lot.quantity = 0.0

    # ------------------------------------------------------------------
    # Expiration
    # ------------------------------------------------------------------

    def expire(self, expires_at: datetime) -> int:
        """Force-close every open lot at price 0, stamped at expiry.

        Longs lose the premium paid; shorts keep the premium received.
        Returns the number of ClosedTrades emitted.
        """
        emitted = 0
        for queue, direction in ((self.long_lots, 1.0), (self.short_lots, -1.0)):
            for lot in queue.drain():
                if lot.quantity <= EPSILON:
                    continue
                self.closed_trades.append(ClosedTrade(
                    symbol=self.symbol,
                    pnl=direction * (0.0 - lot.price) * lot.quantity * lot.multiplier,
                    entry_price=lot.price,
                    exit_price=0.0,
                    quantity=lot.quantity,
                    opened_at=lot.opened_at,
                    closed_at=expires_at,
                    account_id=lot.account_id,
                    broker=lot.broker,
                    asset_type=lot.asset_type,
                    multiplier=lot.multiplier,
                    opening_trade_id=lot.source_trade_id,
                    closing_trade_id=None,
                    closing_type=ClosingType.EXPIRATION,
                ))
                self.expired += lot.quantity
                emitted += 1

        if emitted:
            logger.info(f"{self.key}: auto-closed {emitted} expired lots of {self.symbol}")
        return emitted

    def result(self, trades: List[ClassifiedTrade]) -> StreamResult:
        return StreamResult(
            key=self.key,
            symbol=self.symbol,
            trades=trades,
            closed_trades=list(self.closed_trades),
            long_lots=list(self.long_lots),
            short_lots=list(self.short_lots),
            volume_in=self.volume_in,
            split_delta=self.split_delta,
            trade_matched=self.trade_matched,
            expired=self.expired,
        )


def resolve_expiry(trades: List[ClassifiedTrade], symbol: str) -> Optional[date]:
    """Expiry date for an option stream, or None if it is not an option.

    Explicit broker metadata wins; otherwise the date is parsed from the symbol.
    """
    if not any(ct.asset_type == AssetType.OPTION for ct in trades):
        return None

    for ct in trades:
        if ct.trade.expiry_date:
            return ct.trade.expiry_date

    expiry = parse_option_expiration(symbol)
    if expiry is None:
        logger.debug(f"Option symbol {symbol!r} has no parseable expiry; skipping auto-close")
    return expiry


def match_instrument(
    key: InstrumentKey,
    trades: List[ClassifiedTrade],
    now: datetime,
    expiry_timezone: str = DEFAULT_EXPIRY_TIMEZONE,
    strict: bool = False,
) -> StreamResult:
    """Run one chronologically sorted stream through the matcher.

    Args:
        key: The stream's InstrumentKey.
        trades: Classified trades for this key, already sorted.
        now: Reference time for the expiration check (aware UTC).
        expiry_timezone: Timezone whose end-of-day marks option expiry.
        strict: Raise on invariant breaches instead of clamping.
    """
    symbol = trades[0].trade.symbol if trades else key.instrument_id
    matcher = LotMatcher(key, symbol, strict=strict)

    for ct in trades:
        matcher.process(ct)

    expiry = resolve_expiry(trades, symbol)
    if expiry is not None:
        expires_at = expiration_moment(expiry, expiry_timezone)
        if expires_at < now:
            matcher.expire(expires_at)

    return matcher.result(trades)
