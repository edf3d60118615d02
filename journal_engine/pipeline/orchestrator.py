"""
Pipeline Orchestrator: composes the engine stages into a single ``run_engine()`` call.

    Normalizer -> Deduplicator -> Grouper -> Lot Matcher (per key) -> Phantom Filter

The run is a pure function of its input: no I/O, no state kept between calls.
Instrument streams are independent, so with ``max_workers > 1`` they are
matched on a thread pool and merged back in first-seen key order, which keeps
the output identical to the sequential run.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Union

import pytz
from loguru import logger

from journal_engine.config import EngineSettings
from journal_engine.exceptions import InvariantViolation
from journal_engine.models.lots import EPSILON, ClosedTrade, InstrumentKey, OpenPosition
from journal_engine.models.trade import ClassifiedTrade, Trade, to_utc
from journal_engine.pipeline.deduplicator import deduplicate
from journal_engine.pipeline.grouper import group_by_instrument
from journal_engine.pipeline.lot_matcher import StreamResult, match_instrument
from journal_engine.pipeline.normalizer import normalize_trades
from journal_engine.pipeline.phantom_filter import filter_phantoms
from journal_engine.pipeline.symbols import SymbolClassifier

__all__ = ["EngineResult", "run_engine", "check_conservation"]


@dataclass
class EngineResult:
    """Result of a full engine run."""
    closed_trades: List[ClosedTrade] = field(default_factory=list)
    open_positions: List[OpenPosition] = field(default_factory=list)
    suppressed_positions: List[OpenPosition] = field(default_factory=list)
    trades_received: int = 0
    trades_classified: int = 0
    trades_unique: int = 0
    instruments: int = 0


def check_conservation(stream: StreamResult, strict: bool = False) -> bool:
    """Verify no quantity leaked while matching one stream.

    Returns True when the books balance. A breach raises in strict mode and is
    logged at ERROR otherwise.
    """
    gap = stream.conservation_gap()
    tolerance = EPSILON * max(1.0, stream.volume_in + abs(stream.split_delta))
    if abs(gap) <= tolerance:
        return True

    message = (
        f"quantity not conserved for {stream.symbol}: "
        f"in={stream.volume_in + stream.split_delta:g} "
        f"matched={stream.trade_matched:g} expired={stream.expired:g} "
        f"remaining={stream.remaining:g} (gap {gap:g})"
    )
    if strict:
        raise InvariantViolation(message, key=str(stream.key))
    logger.error(f"{stream.key}: {message}")
    return False


def _coerce(trades: Iterable[Union[Trade, Dict]]) -> List[Trade]:
    """Turn store rows into Trades, skipping rows that cannot be parsed."""
    coerced = []
    for t in trades:
        if isinstance(t, Trade):
            coerced.append(t)
            continue
        try:
            coerced.append(Trade.from_dict(t))
        except (ValueError, TypeError) as e:
            logger.warning(f"Skipping malformed trade row {t.get('id')!r}: {e}")
    return coerced


def run_engine(
    trades: Iterable[Union[Trade, Dict]],
    now: Optional[datetime] = None,
    settings: Optional[EngineSettings] = None,
    classifier: Optional[SymbolClassifier] = None,
) -> EngineResult:
    """Run the full lot-matching pipeline on a user's trades.

    Parameters:
        trades: Trades (or raw trade-store dicts) in any order
        now: Reference time for option expiry; defaults to the current UTC time
        settings: Engine settings; defaults to ``EngineSettings()``
        classifier: Symbol classifier; defaults to the pattern fallback

    Returns:
        EngineResult with closed trades, reported and suppressed open positions
    """
    settings = settings or EngineSettings()
    now = to_utc(now) if now is not None else datetime.now(pytz.UTC)

    raw = _coerce(trades)
    if not raw:
        logger.info("No trades to process, returning empty result")
        return EngineResult()

    # ── Stage 1: Normalize ────────────────────────────────────────────
    classified = normalize_trades(
        raw, classifier=classifier, now=now, validate=settings.validate_trades,
    )

    # ── Stage 2: Deduplicate ──────────────────────────────────────────
    unique = deduplicate(classified, blocked_keys=settings.blocked_dedup_keys)

    # ── Stage 3: Group by instrument ──────────────────────────────────
    groups = group_by_instrument(unique)
    logger.info(
        f"Engine: {len(raw)} trades received, {len(classified)} classified, "
        f"{len(unique)} unique across {len(groups)} instruments"
    )

    # ── Stage 4: Lot matching, one stream per key ─────────────────────
    streams = _match_all(groups, now, settings)

    # ── Stage 5: Conservation check and phantom filter ────────────────
    result = EngineResult(
        trades_received=len(raw),
        trades_classified=len(classified),
        trades_unique=len(unique),
        instruments=len(groups),
    )
    for stream in streams:
        check_conservation(stream, strict=settings.strict_invariants)
        result.closed_trades.extend(stream.closed_trades)

        positions = filter_phantoms(stream)
        result.open_positions.extend(positions.reported)
        result.suppressed_positions.extend(positions.suppressed)

    logger.info(
        f"Engine: {len(result.closed_trades)} closed trades, "
        f"{len(result.open_positions)} open positions, "
        f"{len(result.suppressed_positions)} suppressed"
    )
    return result


def _match_all(
    groups: Dict[InstrumentKey, List[ClassifiedTrade]],
    now: datetime,
    settings: EngineSettings,
) -> List[StreamResult]:
    def run(key: InstrumentKey) -> StreamResult:
        return match_instrument(
            key,
            groups[key],
            now,
            expiry_timezone=settings.expiry_timezone,
            strict=settings.strict_invariants,
        )

    keys = list(groups)
    if settings.max_workers <= 1 or len(keys) <= 1:
        return [run(key) for key in keys]

    logger.debug(f"Matching {len(keys)} instruments on {settings.max_workers} workers")
    with ThreadPoolExecutor(max_workers=settings.max_workers) as executor:
        # map() yields in submission order
        return list(executor.map(run, keys))
