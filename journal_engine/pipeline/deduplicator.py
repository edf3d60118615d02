"""
Deduplicator: drop re-delivered broker fills.

Brokers can return the same fill across several sync windows. Each real fill
carries a broker-unique dedup key; only the first record per key survives, and
a record with no key is dropped rather than risk double-counting it.
"""

from __future__ import annotations

from typing import AbstractSet, List, Set

from loguru import logger

from journal_engine.models.trade import ClassifiedTrade

__all__ = ["deduplicate"]


def deduplicate(
    trades: List[ClassifiedTrade],
    blocked_keys: AbstractSet[str] = frozenset(),
) -> List[ClassifiedTrade]:
    """Keep the first trade per dedup key, in the order supplied.

    Args:
        trades: Normalized trades.
        blocked_keys: Dedup keys confirmed as bad broker data; always dropped.
    """
    seen: Set[str] = set()
    unique: List[ClassifiedTrade] = []

    for ct in trades:
        trade = ct.trade
        key = (trade.dedup_key or "").strip()

        if not key:
            logger.warning(
                f"Dropping trade {trade.id} ({trade.symbol} {trade.timestamp}): missing dedup key"
            )
            continue

        if key in blocked_keys:
            logger.info(f"Dropping blocklisted trade {key} ({trade.symbol})")
            continue

        if key in seen:
            logger.warning(f"Duplicate trade detected: {key} ({trade.symbol})")
            continue

        seen.add(key)
        unique.append(ct)

    return unique
