"""
Tests for the Report Aggregator: filters, metrics, rollups, rounding.

Source: journal_engine/services/report_service.py
"""

import pytest
from datetime import date, datetime

import pytz

from journal_engine.models.lots import ClosedTrade, ClosingType, OpenPosition
from journal_engine.models.trade import AssetType
from journal_engine.pipeline.orchestrator import EngineResult
from journal_engine.schemas import JournalReport, ReportFilter
from journal_engine.services.report_service import (
    _round,
    apply_filters,
    build_report,
    calculate_metrics,
)
from tests.conftest import NOW


def _utc(*args):
    return datetime(*args, tzinfo=pytz.UTC)


def make_closed_trade(
    *,
    symbol="AAPL",
    pnl=100.0,
    entry_price=10.0,
    exit_price=11.0,
    quantity=100.0,
    multiplier=1.0,
    closed_at=None,
    opened_at=None,
    account_id="ACCT1",
    asset_type=AssetType.STOCK,
):
    return ClosedTrade(
        symbol=symbol,
        pnl=pnl,
        entry_price=entry_price,
        exit_price=exit_price,
        quantity=quantity,
        opened_at=opened_at or _utc(2025, 1, 2, 15),
        closed_at=closed_at or _utc(2025, 3, 1, 15),
        account_id=account_id,
        broker="Schwab",
        asset_type=asset_type,
        multiplier=multiplier,
        opening_trade_id="open-1",
        closing_trade_id="close-1",
        closing_type=ClosingType.MANUAL,
    )


def make_position(*, symbol="AAPL", quantity=10.0, entry_price=5.0, multiplier=1.0,
                  opened_at=None, account_id="ACCT1", asset_type=AssetType.STOCK):
    return OpenPosition(
        symbol=symbol,
        quantity=quantity,
        entry_price=entry_price,
        opened_at=opened_at or _utc(2025, 5, 1, 15),
        current_value=entry_price * quantity * multiplier,
        account_id=account_id,
        broker="Schwab",
        asset_type=asset_type,
        multiplier=multiplier,
        trade_id="pos-1",
    )


@pytest.fixture
def closed_trades():
    """
    A  AAPL   +200   cost 1000  (+20%)    2025-05-10
    B  AAPL    -50   cost   50  (-100%)   2025-06-02
    C  SPY opt +100  cost  200  (+50%)    2025-06-10
    D  MSFT  -25.5   cost  100  (-25.5%)  2024-12-20  (ACCT2)
    """
    return [
        make_closed_trade(symbol="AAPL", pnl=200.0, entry_price=10.0, quantity=100,
                          closed_at=_utc(2025, 5, 10, 15)),
        make_closed_trade(symbol="AAPL", pnl=-50.0, entry_price=5.0, quantity=10,
                          closed_at=_utc(2025, 6, 2, 15)),
        make_closed_trade(symbol="SPY  250620C00500000", pnl=100.0, entry_price=2.0,
                          quantity=1, multiplier=100.0, asset_type=AssetType.OPTION,
                          closed_at=_utc(2025, 6, 10, 15)),
        make_closed_trade(symbol="MSFT", pnl=-25.5, entry_price=1.0, quantity=100,
                          account_id="ACCT2", closed_at=_utc(2024, 12, 20, 15)),
    ]


@pytest.fixture
def positions():
    return [
        make_position(symbol="AAPL", quantity=10, entry_price=5.0,
                      opened_at=_utc(2025, 5, 1, 15)),
        make_position(symbol="SPY  250620P00400000", quantity=-1, entry_price=2.0,
                      multiplier=100.0, asset_type=AssetType.OPTION,
                      opened_at=_utc(2025, 6, 5, 15)),
    ]


@pytest.fixture
def engine_result(closed_trades, positions):
    return EngineResult(closed_trades=closed_trades, open_positions=positions)


# ---------------------------------------------------------------------------
# Rounding
# ---------------------------------------------------------------------------

class TestRounding:
    def test_half_up(self):
        assert _round(56.125) == 56.13
        assert _round(0.125) == 0.13
        assert _round(-0.125) == -0.13

    def test_float_noise(self):
        assert _round(0.1 + 0.2) == 0.3


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------

class TestCalculateMetrics:
    def test_mixed(self, closed_trades):
        m = calculate_metrics(closed_trades)

        assert m.total_trades == 4
        assert m.winning_trades == 2
        assert m.losing_trades == 2
        assert m.win_rate == pytest.approx(50.0)
        assert m.avg_win == pytest.approx(150.0)
        assert m.avg_loss == pytest.approx(37.75)
        assert m.avg_win_pct == pytest.approx(35.0)
        assert m.avg_loss_pct == pytest.approx(62.75)
        assert m.profit_factor == pytest.approx(300.0 / 75.5)
        assert m.largest_win == 200.0
        assert m.largest_loss == -50.0
        assert m.expectancy == pytest.approx(56.125)

    def test_only_wins_profit_factor_infinite(self):
        m = calculate_metrics([make_closed_trade(pnl=10.0), make_closed_trade(pnl=5.0)])

        assert m.profit_factor is None
        assert m.avg_loss == 0.0
        assert m.largest_loss == 0.0

    def test_only_losses_profit_factor_zero(self):
        m = calculate_metrics([make_closed_trade(pnl=-10.0)])

        assert m.profit_factor == 0.0
        assert m.win_rate == 0.0

    def test_breakeven_is_neither_win_nor_loss(self):
        m = calculate_metrics([make_closed_trade(pnl=0.0), make_closed_trade(pnl=10.0)])

        assert m.winning_trades == 1
        assert m.losing_trades == 0
        assert m.win_rate == pytest.approx(50.0)

    def test_zero_cost_basis_counts_as_zero_pct(self):
        """A zero-premium entry cannot produce a return percentage"""
        m = calculate_metrics([make_closed_trade(pnl=10.0, entry_price=0.0)])

        assert m.avg_win_pct == 0.0

    def test_empty(self):
        m = calculate_metrics([])

        assert m.total_trades == 0
        assert m.win_rate == 0.0
        assert m.profit_factor == 0.0
        assert m.expectancy == 0.0


# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------

class TestApplyFilters:
    def test_no_filter(self, closed_trades, positions):
        trades, open_positions = apply_filters(closed_trades, positions, None)

        assert len(trades) == 4
        assert len(open_positions) == 2

    def test_date_window(self, closed_trades, positions):
        f = ReportFilter(start_date=date(2025, 6, 1), end_date=date(2025, 6, 30))
        trades, open_positions = apply_filters(closed_trades, positions, f)

        assert [t.pnl for t in trades] == [-50.0, 100.0]
        assert [p.symbol for p in open_positions] == ["SPY  250620P00400000"]

    def test_end_date_covers_whole_day(self, closed_trades, positions):
        f = ReportFilter(end_date=date(2025, 5, 10))
        trades, _ = apply_filters(closed_trades, positions, f)

        assert [t.pnl for t in trades] == [200.0, -25.5]

    def test_symbol_prefixes_case_insensitive(self, closed_trades, positions):
        f = ReportFilter(symbol_prefixes="aa, sp")
        trades, open_positions = apply_filters(closed_trades, positions, f)

        assert {t.symbol[:3] for t in trades} == {"AAP", "SPY"}
        assert len(trades) == 3
        assert len(open_positions) == 2

    def test_account(self, closed_trades, positions):
        trades, _ = apply_filters(closed_trades, positions, ReportFilter(account_id="ACCT2"))
        assert [t.symbol for t in trades] == ["MSFT"]

        trades, _ = apply_filters(closed_trades, positions, ReportFilter(account_id="all"))
        assert len(trades) == 4

    def test_asset_type(self, closed_trades, positions):
        trades, open_positions = apply_filters(
            closed_trades, positions, ReportFilter(asset_type="option"),
        )
        assert [t.pnl for t in trades] == [100.0]
        assert len(open_positions) == 1

        trades, _ = apply_filters(closed_trades, positions, ReportFilter(asset_type="all"))
        assert len(trades) == 4

    def test_timestamp_bounds_reduced_to_day(self, closed_trades, positions):
        f = ReportFilter(start_date="2025-06-01T13:45:00Z",
                         end_date=datetime(2025, 6, 30, 9, 30, tzinfo=pytz.UTC))

        assert f.start_date == date(2025, 6, 1)
        assert f.end_date == date(2025, 6, 30)

        trades, _ = apply_filters(closed_trades, positions, f)
        assert [t.pnl for t in trades] == [-50.0, 100.0]

    def test_prefixes_property(self):
        assert ReportFilter(symbol_prefixes=" AAPL,,spy ").prefixes == ["aapl", "spy"]
        assert ReportFilter().prefixes == []


# ---------------------------------------------------------------------------
# Full report
# ---------------------------------------------------------------------------

class TestBuildReport:
    def test_summary(self, engine_result):
        report = build_report(engine_result, now=NOW)

        assert report.net_pnl == 224.5
        assert report.total_trades == 4
        assert report.winning_trades == 2
        assert report.losing_trades == 2
        assert report.win_rate == 50.0
        assert report.avg_win == 150.0
        assert report.avg_loss == 37.75
        assert report.avg_win_pct == 35.0
        assert report.avg_loss_pct == 62.8
        assert report.profit_factor == 3.97
        assert report.largest_win == 200.0
        assert report.largest_loss == -50.0
        assert report.avg_trade == 56.13
        assert report.expectancy == 56.13
        assert report.open_positions_count == 2
        assert report.unrealized_cost == 250.0

    def test_period_sums(self, engine_result):
        report = build_report(engine_result, now=NOW)

        assert report.mtd_pnl == 50.0
        assert report.ytd_pnl == 250.0

    def test_period_sums_ignore_date_window(self, engine_result):
        f = ReportFilter(start_date=date(2025, 6, 5))
        report = build_report(engine_result, filters=f, now=NOW)

        assert report.total_trades == 1
        assert report.mtd_pnl == 50.0
        assert report.ytd_pnl == 250.0

    def test_period_sums_honour_symbol_filter(self, engine_result):
        report = build_report(engine_result, filters=ReportFilter(symbol_prefixes="SPY"), now=NOW)

        assert report.mtd_pnl == 100.0
        assert report.ytd_pnl == 100.0

    def test_closed_trades_sorted_by_close(self, engine_result):
        report = build_report(engine_result, now=NOW)

        closes = [t.closed_at for t in report.closed_trades]
        assert closes == sorted(closes)
        assert report.closed_trades[0].symbol == "MSFT"
        assert report.closed_trades[0].closing_type == "MANUAL"

    def test_cumulative_series(self, engine_result):
        report = build_report(engine_result, now=NOW)

        assert [(p.date, p.pnl, p.cumulative) for p in report.cumulative_pnl] == [
            ("2024-12-20", -25.5, -25.5),
            ("2025-05-10", 200.0, 174.5),
            ("2025-06-02", -50.0, 124.5),
            ("2025-06-10", 100.0, 224.5),
        ]

    def test_monthly_rollup(self, engine_result):
        report = build_report(engine_result, now=NOW)

        assert [(m.month, m.pnl) for m in report.monthly_data] == [
            ("2024-12", -25.5),
            ("2025-05", 200.0),
            ("2025-06", 50.0),
        ]

    def test_symbol_rollup(self, engine_result):
        report = build_report(engine_result, now=NOW)

        assert [(s.symbol, s.pnl, s.trades, s.win_rate) for s in report.symbol_data] == [
            ("AAPL", 150.0, 2, 50),
            ("SPY  250620C00500000", 100.0, 1, 100),
            ("MSFT", -25.5, 1, 0),
        ]

    def test_symbol_win_rate_rounds_to_integer(self):
        trades = [make_closed_trade(pnl=p) for p in (10.0, 10.0, -1.0)]
        report = build_report(EngineResult(closed_trades=trades), now=NOW)

        assert report.symbol_data[0].win_rate == 67

    def test_unrealized_cost_ignores_filters(self, engine_result):
        report = build_report(engine_result, filters=ReportFilter(symbol_prefixes="AAPL"), now=NOW)

        assert report.open_positions_count == 1
        assert report.unrealized_cost == 250.0

    def test_infinite_profit_factor_is_null(self):
        report = build_report(EngineResult(closed_trades=[make_closed_trade(pnl=5.0)]), now=NOW)

        assert report.profit_factor is None
        assert report.model_dump(mode="json")["profit_factor"] is None

    def test_empty_result(self):
        report = build_report(EngineResult(), now=NOW)

        assert report == JournalReport()
        assert report.total_trades == 0
        assert report.closed_trades == []
        assert report.profit_factor == 0.0

    def test_json_dump_uses_iso_dates(self, engine_result):
        data = build_report(engine_result, now=NOW).model_dump(mode="json")

        assert data["closed_trades"][0]["closed_at"].startswith("2024-12-20T15:00:00")
        assert data["open_positions"][1]["current_value"] == -200.0
