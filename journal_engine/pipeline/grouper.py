"""
Instrument Grouper: partition trades into independent matching streams.

Lots are only ever matched inside one InstrumentKey, so positions in different
accounts (or different instruments) can never offset each other.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime
from typing import Dict, List, Tuple

from journal_engine.models.lots import InstrumentKey
from journal_engine.models.trade import ClassifiedTrade, to_utc

__all__ = ["instrument_key", "chronological_key", "group_by_instrument"]


def instrument_key(ct: ClassifiedTrade) -> InstrumentKey:
    trade = ct.trade
    return InstrumentKey(
        account_id=trade.account_id,
        instrument_id=trade.universal_symbol_id or trade.symbol,
    )


def chronological_key(ct: ClassifiedTrade) -> Tuple[datetime, datetime, int, str]:
    """Sort key: execution time, then ingestion time/order, then trade id.

    Same-timestamp fills are common and matching is order-sensitive, so ties
    must resolve the same way on every run.
    """
    ingested = to_utc(ct.trade.ingested_at) or ct.timestamp
    return (ct.timestamp, ingested, ct.sequence, ct.trade.id)


def group_by_instrument(
    trades: List[ClassifiedTrade],
) -> Dict[InstrumentKey, List[ClassifiedTrade]]:
    """Group trades by InstrumentKey, each group sorted chronologically.

    Keys keep first-seen order so downstream merges are deterministic.
    """
    groups: Dict[InstrumentKey, List[ClassifiedTrade]] = defaultdict(list)
    for ct in trades:
        groups[instrument_key(ct)].append(ct)

    return {key: sorted(group, key=chronological_key) for key, group in groups.items()}
