"""Pydantic filter and report models for the journal reporting layer."""

from datetime import date, datetime
from pydantic import BaseModel, Field, field_validator
from typing import List, Optional

from journal_engine.models.trade import to_utc


class ReportFilter(BaseModel):
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    symbol_prefixes: Optional[str] = None  # comma-separated, e.g. "AAPL,SP"
    account_id: Optional[str] = None  # "all" = no restriction
    asset_type: Optional[str] = None  # "STOCK" / "OPTION" / "all"

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def _date_part(cls, value):
        # Timestamps are reduced to their UTC calendar day
        if isinstance(value, datetime) or (isinstance(value, str) and len(value) > 10):
            return to_utc(value).date()
        return value

    @property
    def prefixes(self) -> List[str]:
        if not self.symbol_prefixes:
            return []
        return [p.strip().lower() for p in self.symbol_prefixes.split(",") if p.strip()]


class ClosedTradeOut(BaseModel):
    symbol: str
    pnl: float
    entry_price: float
    exit_price: float
    quantity: float
    opened_at: datetime
    closed_at: datetime
    account_id: str
    broker: str
    asset_type: str
    multiplier: float
    closing_type: str
    opening_trade_id: str
    closing_trade_id: Optional[str] = None


class OpenPositionOut(BaseModel):
    symbol: str
    quantity: float
    entry_price: float
    opened_at: datetime
    current_value: float
    account_id: str
    broker: str
    asset_type: str
    multiplier: float
    trade_id: str


class CumulativePoint(BaseModel):
    date: str  # YYYY-MM-DD
    pnl: float
    cumulative: float
    symbol: str


class MonthlyPnL(BaseModel):
    month: str  # YYYY-MM
    pnl: float


class SymbolPerformance(BaseModel):
    symbol: str
    pnl: float
    trades: int
    win_rate: int


class JournalReport(BaseModel):
    net_pnl: float = 0.0
    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    win_rate: float = 0.0
    avg_win: float = 0.0
    avg_loss: float = 0.0
    avg_win_pct: float = 0.0
    avg_loss_pct: float = 0.0
    profit_factor: Optional[float] = 0.0  # None when there are wins and no losses
    largest_win: float = 0.0
    largest_loss: float = 0.0
    avg_trade: float = 0.0
    expectancy: float = 0.0
    mtd_pnl: float = 0.0
    ytd_pnl: float = 0.0
    unrealized_cost: float = 0.0
    open_positions_count: int = 0
    closed_trades: List[ClosedTradeOut] = Field(default_factory=list)
    open_positions: List[OpenPositionOut] = Field(default_factory=list)
    cumulative_pnl: List[CumulativePoint] = Field(default_factory=list)
    monthly_data: List[MonthlyPnL] = Field(default_factory=list)
    symbol_data: List[SymbolPerformance] = Field(default_factory=list)
