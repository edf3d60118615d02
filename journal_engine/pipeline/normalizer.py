"""
Trade Normalizer: first stage of the P&L pipeline.

Maps free-form broker action strings onto the closed BrokerAction vocabulary,
decides which side of the book each trade hits, and resolves the contract
multiplier and asset type. Records that cannot be used (unknown action, zero
quantity, missing timestamp, failed validation) are skipped with a log line;
nothing here raises on bad data.
"""

from __future__ import annotations

from datetime import datetime
from typing import Dict, Iterable, List, Optional

from loguru import logger

from journal_engine.models.trade import (
    BrokerAction,
    ClassifiedTrade,
    Trade,
    TradeSide,
    to_utc,
)
from journal_engine.pipeline.symbols import PatternFallbackClassifier, SymbolClassifier
from journal_engine.pipeline.validation import validate_trade

__all__ = [
    "parse_action",
    "classify_action",
    "normalize_trade",
    "normalize_trades",
]

_ACTION_ALIASES: Dict[str, BrokerAction] = {
    "EXPIRATION": BrokerAction.OPTIONEXPIRATION,
    "OPTION_EXPIRATION": BrokerAction.OPTIONEXPIRATION,
}

_SIDE_BY_ACTION: Dict[BrokerAction, TradeSide] = {
    BrokerAction.BUY: TradeSide.BUY,
    BrokerAction.BUY_TO_OPEN: TradeSide.BUY,
    BrokerAction.BUY_TO_CLOSE: TradeSide.BUY,
    BrokerAction.ASSIGNMENT: TradeSide.BUY,
    BrokerAction.SELL: TradeSide.SELL,
    BrokerAction.SELL_TO_OPEN: TradeSide.SELL,
    BrokerAction.SELL_TO_CLOSE: TradeSide.SELL,
    BrokerAction.EXERCISES: TradeSide.SELL,
    BrokerAction.SPLIT: TradeSide.SPLIT,
}


def parse_action(raw_action: str) -> Optional[BrokerAction]:
    """Map a raw broker action string to BrokerAction (None if unknown)."""
    text = (raw_action or "").strip().upper().replace(" ", "_")
    if not text:
        return None
    if text in _ACTION_ALIASES:
        return _ACTION_ALIASES[text]
    try:
        return BrokerAction(text)
    except ValueError:
        return None


def classify_action(action: BrokerAction, signed_quantity: float) -> TradeSide:
    """Side of the book a trade hits.

    Expirations depend on polarity: a negative quantity removes a long
    (sell side), a positive one covers a short (buy side).
    """
    if action == BrokerAction.OPTIONEXPIRATION:
        return TradeSide.SELL if signed_quantity < 0 else TradeSide.BUY
    return _SIDE_BY_ACTION[action]


def normalize_trade(
    trade: Trade,
    sequence: int,
    classifier: Optional[SymbolClassifier] = None,
    now: Optional[datetime] = None,
    validate: bool = False,
) -> Optional[ClassifiedTrade]:
    """Classify a single trade, or return None if it should be ignored."""
    action = parse_action(trade.action)
    if action is None:
        logger.warning(
            f"Ignoring trade {trade.id} ({trade.symbol}): unrecognized action {trade.action!r}"
        )
        return None

    if trade.quantity == 0:
        logger.debug(f"Ignoring zero-quantity trade {trade.id} ({trade.symbol})")
        return None

    timestamp = to_utc(trade.timestamp)
    if timestamp is None:
        logger.warning(f"Ignoring trade {trade.id} ({trade.symbol}): missing timestamp")
        return None

    if validate and now is not None:
        result = validate_trade(trade, action, timestamp, now)
        if not result.valid:
            logger.warning(f"Skipping invalid trade {trade.id} ({trade.symbol}): {result.reason}")
            return None

    classifier = classifier or PatternFallbackClassifier()
    multiplier, asset_type = classifier.classify(trade)

    return ClassifiedTrade(
        trade=trade,
        side=classify_action(action, trade.quantity),
        broker_action=action,
        multiplier=multiplier,
        asset_type=asset_type,
        timestamp=timestamp,
        sequence=sequence,
    )


def normalize_trades(
    trades: Iterable[Trade],
    classifier: Optional[SymbolClassifier] = None,
    now: Optional[datetime] = None,
    validate: bool = False,
) -> List[ClassifiedTrade]:
    """Normalize a batch, preserving the supplied order."""
    classifier = classifier or PatternFallbackClassifier()
    classified: List[ClassifiedTrade] = []
    skipped = 0

    for sequence, trade in enumerate(trades):
        result = normalize_trade(
            trade, sequence, classifier=classifier, now=now, validate=validate,
        )
        if result is None:
            skipped += 1
            continue
        classified.append(result)

    if skipped:
        logger.info(f"Normalizer: kept {len(classified)} trades, ignored {skipped}")
    return classified
