"""
Trade store boundary: fetch a user's trades, run the engine, build the report.

The store is the only collaborator that does I/O. Its failures are logged and
surfaced once as TradeStoreError; retrying is left to the caller.
"""

from datetime import datetime
from typing import Dict, Iterable, Optional, Protocol, Union

from loguru import logger

from journal_engine.config import EngineSettings
from journal_engine.exceptions import TradeStoreError
from journal_engine.models.trade import Trade
from journal_engine.pipeline.orchestrator import run_engine
from journal_engine.schemas import JournalReport, ReportFilter
from journal_engine.services.report_service import build_report


class TradeStore(Protocol):
    def fetch_trades(
        self, user_id: str, account_id: Optional[str] = None,
    ) -> Iterable[Union[Trade, Dict]]:
        """Return every trade for the user (optionally one account), any order."""
        ...


def build_user_report(
    store: TradeStore,
    user_id: str,
    filters: Optional[ReportFilter] = None,
    now: Optional[datetime] = None,
    settings: Optional[EngineSettings] = None,
) -> JournalReport:
    """Fetch a user's trades and produce their journal report.

    Without explicit settings, JOURNAL_* environment variables are read.
    """
    settings = settings or EngineSettings.from_env()
    account_id = None
    if filters and filters.account_id and filters.account_id != "all":
        account_id = filters.account_id

    try:
        trades = list(store.fetch_trades(user_id, account_id=account_id))
    except Exception as e:
        logger.error(f"Error fetching trades for user {user_id}: {e}")
        raise TradeStoreError(user_id, e) from e

    logger.info(f"Building report for user {user_id} from {len(trades)} trades")

    result = run_engine(trades, now=now, settings=settings)
    return build_report(result, filters=filters, now=now)
