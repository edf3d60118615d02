"""
Shared pytest fixtures and trade factory helpers for journal engine tests.

Factories return frozen Trade records; string timestamps are parsed as UTC.
"""

import pytest
from datetime import datetime

import pytz

from journal_engine.config import EngineSettings
from journal_engine.models.trade import AssetType, Trade, to_utc


# ---------------------------------------------------------------------------
# Core fixtures
# ---------------------------------------------------------------------------

NOW = datetime(2025, 6, 15, 12, 0, 0, tzinfo=pytz.UTC)


@pytest.fixture
def now():
    """Fixed reference time for expiry and MTD/YTD checks."""
    return NOW


@pytest.fixture
def settings():
    """Strict settings: invariant breaches raise instead of clamping."""
    return EngineSettings(strict_invariants=True)


class FakeTradeStore:
    """In-memory trade store; optionally fails every fetch."""

    def __init__(self, trades=None, error=None):
        self.trades = list(trades or [])
        self.error = error
        self.calls = []

    def fetch_trades(self, user_id, account_id=None):
        self.calls.append((user_id, account_id))
        if self.error is not None:
            raise self.error
        if account_id is None:
            return list(self.trades)
        return [t for t in self.trades if _account_of(t) == account_id]


def _account_of(trade):
    return trade["account_id"] if isinstance(trade, dict) else trade.account_id


@pytest.fixture
def fake_store():
    return FakeTradeStore()


# ---------------------------------------------------------------------------
# Trade factory helpers
# ---------------------------------------------------------------------------

def make_trade(
    *,
    id="t-001",
    account_id="ACCT1",
    symbol="AAPL",
    action="BUY",
    quantity=100,
    price=10.0,
    timestamp="2025-03-01T10:00:00+00:00",
    asset_type=AssetType.STOCK,
    fees=0.0,
    universal_symbol_id=None,
    contract_multiplier=None,
    dedup_key=None,
    expiry_date=None,
    broker_name="Schwab",
    ingested_at=None,
):
    """Build a stock Trade. ``dedup_key`` defaults to the trade id."""
    return Trade(
        id=id,
        account_id=account_id,
        symbol=symbol,
        action=action,
        quantity=quantity,
        price=price,
        timestamp=to_utc(timestamp),
        asset_type=asset_type,
        fees=fees,
        universal_symbol_id=universal_symbol_id,
        contract_multiplier=contract_multiplier,
        dedup_key=id if dedup_key is None else dedup_key,
        expiry_date=expiry_date,
        broker_name=broker_name,
        ingested_at=to_utc(ingested_at),
    )


def make_option_trade(
    *,
    id="opt-001",
    symbol="AAPL  250321C00170000",
    action="BUY_TO_OPEN",
    quantity=1,
    price=2.0,
    contract_multiplier=100,
    **kwargs,
):
    """Build an option Trade on an OSI symbol (expires 2025-03-21)."""
    return make_trade(
        id=id,
        symbol=symbol,
        action=action,
        quantity=quantity,
        price=price,
        asset_type=AssetType.OPTION,
        contract_multiplier=contract_multiplier,
        **kwargs,
    )


def make_trade_row(**overrides):
    """Build a raw trade-store dict, as a database row would arrive."""
    row = {
        "id": "row-001",
        "account_id": "ACCT1",
        "symbol": "AAPL",
        "action": "BUY",
        "quantity": 100,
        "price": 10.0,
        "fees": 0.0,
        "timestamp": "2025-03-01T10:00:00Z",
        "asset_type": "STOCK",
        "dedup_key": None,
        "account": {"id": "ACCT1", "broker_name": "Schwab"},
    }
    row.update(overrides)
    if row["dedup_key"] is None:
        row["dedup_key"] = row["id"]
    return row
