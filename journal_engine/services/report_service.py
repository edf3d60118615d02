"""
Report Aggregator: filter the engine output and compute journal metrics.

All arithmetic runs on raw floats; values are rounded (half-up, via Decimal)
only when the JournalReport is built.
"""

from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, time
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, List, Optional, Sequence, Tuple

import pytz
from loguru import logger

from journal_engine.models.lots import ClosedTrade, OpenPosition
from journal_engine.models.trade import to_utc
from journal_engine.pipeline.orchestrator import EngineResult
from journal_engine.schemas import (
    ClosedTradeOut,
    CumulativePoint,
    JournalReport,
    MonthlyPnL,
    OpenPositionOut,
    ReportFilter,
    SymbolPerformance,
)

_CENTS = Decimal("0.01")
_TENTHS = Decimal("0.1")
_UNITS = Decimal("1")


def _round(value: float, step: Decimal = _CENTS) -> float:
    return float(Decimal(repr(value)).quantize(step, rounding=ROUND_HALF_UP))


def _round_pct(value: float) -> float:
    return _round(value, _TENTHS)


def _bounds(filters: ReportFilter) -> Tuple[Optional[datetime], Optional[datetime]]:
    """Expand date-only filter bounds to a full UTC day range."""
    start = end = None
    if filters.start_date:
        start = pytz.UTC.localize(datetime.combine(filters.start_date, time.min))
    if filters.end_date:
        end = pytz.UTC.localize(datetime.combine(filters.end_date, time.max))
    return start, end


def _matches_dimensions(item, filters: ReportFilter) -> bool:
    prefixes = filters.prefixes
    if prefixes and not any(item.symbol.lower().startswith(p) for p in prefixes):
        return False
    if filters.account_id and filters.account_id != "all" and item.account_id != filters.account_id:
        return False
    if filters.asset_type and filters.asset_type.lower() != "all":
        if item.asset_type.value != filters.asset_type.upper():
            return False
    return True


def _in_window(moment: datetime, start: Optional[datetime], end: Optional[datetime]) -> bool:
    if start and moment < start:
        return False
    if end and moment > end:
        return False
    return True


def apply_filters(
    closed_trades: Sequence[ClosedTrade],
    open_positions: Sequence[OpenPosition],
    filters: Optional[ReportFilter] = None,
    use_dates: bool = True,
) -> Tuple[List[ClosedTrade], List[OpenPosition]]:
    """Restrict trades and positions to the caller's filter.

    Closed trades are windowed on ``closed_at``, open positions on ``opened_at``.
    """
    if filters is None:
        return list(closed_trades), list(open_positions)

    start, end = _bounds(filters) if use_dates else (None, None)

    trades = [
        t for t in closed_trades
        if _matches_dimensions(t, filters) and _in_window(t.closed_at, start, end)
    ]
    positions = [
        p for p in open_positions
        if _matches_dimensions(p, filters) and _in_window(p.opened_at, start, end)
    ]
    return trades, positions


@dataclass
class TradeMetrics:
    """Unrounded summary statistics over a set of closed trades"""
    net_pnl: float
    total_trades: int
    winning_trades: int
    losing_trades: int
    win_rate: float
    total_wins: float
    total_losses: float
    avg_win: float
    avg_loss: float
    avg_win_pct: float
    avg_loss_pct: float
    profit_factor: Optional[float]
    largest_win: float
    largest_loss: float
    expectancy: float


def _return_pct(trade: ClosedTrade) -> float:
    cost_basis = trade.cost_basis
    return trade.pnl / cost_basis * 100 if cost_basis > 0 else 0.0


def calculate_metrics(trades: Sequence[ClosedTrade]) -> TradeMetrics:
    wins = [t for t in trades if t.is_win]
    losses = [t for t in trades if t.is_loss]
    total = len(trades)

    total_wins = sum(t.pnl for t in wins)
    total_losses = abs(sum(t.pnl for t in losses))
    net_pnl = sum(t.pnl for t in trades)

    if total_losses > 0:
        profit_factor = total_wins / total_losses
    elif total_wins > 0:
        profit_factor = None  # infinite
    else:
        profit_factor = 0.0

    return TradeMetrics(
        net_pnl=net_pnl,
        total_trades=total,
        winning_trades=len(wins),
        losing_trades=len(losses),
        win_rate=len(wins) / total * 100 if total else 0.0,
        total_wins=total_wins,
        total_losses=total_losses,
        avg_win=total_wins / len(wins) if wins else 0.0,
        avg_loss=total_losses / len(losses) if losses else 0.0,
        avg_win_pct=sum(_return_pct(t) for t in wins) / len(wins) if wins else 0.0,
        avg_loss_pct=abs(sum(_return_pct(t) for t in losses) / len(losses)) if losses else 0.0,
        profit_factor=profit_factor,
        largest_win=max((t.pnl for t in wins), default=0.0),
        largest_loss=min((t.pnl for t in losses), default=0.0),
        expectancy=net_pnl / total if total else 0.0,
    )


def cumulative_series(trades: Sequence[ClosedTrade]) -> List[CumulativePoint]:
    """Running P&L; ``trades`` must already be sorted by ``closed_at``."""
    points = []
    running = 0.0
    for t in trades:
        running += t.pnl
        points.append(CumulativePoint(
            date=t.closed_at.strftime("%Y-%m-%d"),
            pnl=_round(t.pnl),
            cumulative=_round(running),
            symbol=t.symbol,
        ))
    return points


def monthly_rollup(trades: Sequence[ClosedTrade]) -> List[MonthlyPnL]:
    months: Dict[str, float] = {}
    for t in trades:
        key = t.closed_at.strftime("%Y-%m")
        months[key] = months.get(key, 0.0) + t.pnl
    return [MonthlyPnL(month=m, pnl=_round(p)) for m, p in sorted(months.items())]


def symbol_rollup(trades: Sequence[ClosedTrade]) -> List[SymbolPerformance]:
    stats: Dict[str, Dict] = OrderedDict()
    for t in trades:
        entry = stats.setdefault(t.symbol, {"pnl": 0.0, "trades": 0, "wins": 0})
        entry["pnl"] += t.pnl
        entry["trades"] += 1
        if t.is_win:
            entry["wins"] += 1

    rows = [
        SymbolPerformance(
            symbol=symbol,
            pnl=_round(data["pnl"]),
            trades=data["trades"],
            win_rate=int(_round(data["wins"] / data["trades"] * 100, _UNITS)),
        )
        for symbol, data in stats.items()
    ]
    # stable sort keeps first-seen order between equal totals
    return sorted(rows, key=lambda r: r.pnl, reverse=True)


def period_pnl(trades: Sequence[ClosedTrade], since: datetime) -> float:
    return sum(t.pnl for t in trades if t.closed_at >= since)


def _closed_out(t: ClosedTrade) -> ClosedTradeOut:
    return ClosedTradeOut(
        symbol=t.symbol,
        pnl=_round(t.pnl),
        entry_price=t.entry_price,
        exit_price=t.exit_price,
        quantity=t.quantity,
        opened_at=t.opened_at,
        closed_at=t.closed_at,
        account_id=t.account_id,
        broker=t.broker,
        asset_type=t.asset_type.value,
        multiplier=t.multiplier,
        closing_type=t.closing_type.value,
        opening_trade_id=t.opening_trade_id,
        closing_trade_id=t.closing_trade_id,
    )


def _position_out(p: OpenPosition) -> OpenPositionOut:
    return OpenPositionOut(
        symbol=p.symbol,
        quantity=p.quantity,
        entry_price=_round(p.entry_price),
        opened_at=p.opened_at,
        current_value=_round(p.current_value),
        account_id=p.account_id,
        broker=p.broker,
        asset_type=p.asset_type.value,
        multiplier=p.multiplier,
        trade_id=p.trade_id,
    )


def build_report(
    result: EngineResult,
    filters: Optional[ReportFilter] = None,
    now: Optional[datetime] = None,
) -> JournalReport:
    """
    Aggregate an engine run into a JournalReport.

    Args:
        result: Output of ``run_engine``.
        filters: Optional caller filter; omitted fields do not restrict.
        now: Reference time for month/year-to-date sums (defaults to UTC now).
    """
    now = to_utc(now) if now else datetime.now(pytz.UTC)

    unrealized_cost = sum(abs(p.current_value) for p in result.open_positions)

    trades, positions = apply_filters(result.closed_trades, result.open_positions, filters)
    trades.sort(key=lambda t: t.closed_at)

    # Period sums honour symbol/account/asset filters but not the date window
    period_trades, _ = apply_filters(result.closed_trades, [], filters, use_dates=False)
    month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    year_start = month_start.replace(month=1)

    m = calculate_metrics(trades)
    logger.debug(
        f"Report: {m.total_trades} closed trades, {len(positions)} open positions, "
        f"net {m.net_pnl:.2f}"
    )

    return JournalReport(
        net_pnl=_round(m.net_pnl),
        total_trades=m.total_trades,
        winning_trades=m.winning_trades,
        losing_trades=m.losing_trades,
        win_rate=_round_pct(m.win_rate),
        avg_win=_round(m.avg_win),
        avg_loss=_round(m.avg_loss),
        avg_win_pct=_round_pct(m.avg_win_pct),
        avg_loss_pct=_round_pct(m.avg_loss_pct),
        profit_factor=None if m.profit_factor is None else _round(m.profit_factor),
        largest_win=_round(m.largest_win),
        largest_loss=_round(m.largest_loss),
        avg_trade=_round(m.expectancy),
        expectancy=_round(m.expectancy),
        mtd_pnl=_round(period_pnl(period_trades, month_start)),
        ytd_pnl=_round(period_pnl(period_trades, year_start)),
        unrealized_cost=_round(unrealized_cost),
        open_positions_count=len(positions),
        closed_trades=[_closed_out(t) for t in trades],
        open_positions=[_position_out(p) for p in positions],
        cumulative_pnl=cumulative_series(trades),
        monthly_data=monthly_rollup(trades),
        symbol_data=symbol_rollup(trades),
    )
