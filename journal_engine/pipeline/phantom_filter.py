"""
Phantom Filter: hide short lots that only exist because history is incomplete.

When the synced window starts mid-position, the closing sells of a long that
was opened earlier arrive with nothing to match and open short lots instead.
A key that ends with short lots, has at least one sell-side record and has no
buy-side record at all is treated that way: its short lots are withheld from
the reported open positions. They are logged and handed back to the caller,
never deleted.

Known tradeoff: a genuine short opened before the window began is hidden too.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List

from loguru import logger

from journal_engine.models.lots import OpenPosition
from journal_engine.pipeline.lot_matcher import StreamResult

__all__ = ["FilteredPositions", "has_buy_evidence", "has_sell_evidence", "filter_phantoms"]


@dataclass
class FilteredPositions:
    reported: List[OpenPosition] = field(default_factory=list)
    suppressed: List[OpenPosition] = field(default_factory=list)


def has_buy_evidence(stream: StreamResult) -> bool:
    # Raw broker action, so a covering expiration (positive qty) does not count
    return any(ct.broker_action.is_buy_evidence for ct in stream.trades)


def has_sell_evidence(stream: StreamResult) -> bool:
    return any(ct.broker_action.is_sell_evidence for ct in stream.trades)


def filter_phantoms(stream: StreamResult) -> FilteredPositions:
    """Turn a stream's surviving lots into open positions, minus phantoms."""
    result = FilteredPositions()

    result.reported.extend(
        OpenPosition.from_lot(lot, stream.symbol) for lot in stream.long_lots
    )
    shorts = [OpenPosition.from_lot(lot, stream.symbol, short=True) for lot in stream.short_lots]

    if shorts and not has_buy_evidence(stream) and has_sell_evidence(stream):
        total = sum(-p.quantity for p in shorts)
        logger.info(
            f"{stream.key}: suppressing {len(shorts)} phantom short lot(s) of {stream.symbol} "
            f"({total:g} units) with no buy history"
        )
        result.suppressed.extend(shorts)
    else:
        result.reported.extend(shorts)

    return result
