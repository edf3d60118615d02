"""Data types shared by the pipeline stages and the report layer."""

from .trade import AssetType, BrokerAction, ClassifiedTrade, Trade, TradeSide
from .lots import (
    EPSILON,
    ClosedTrade,
    ClosingType,
    InstrumentKey,
    Lot,
    LotQueue,
    OpenPosition,
)

__all__ = [
    "AssetType",
    "BrokerAction",
    "ClassifiedTrade",
    "Trade",
    "TradeSide",
    "EPSILON",
    "ClosedTrade",
    "ClosingType",
    "InstrumentKey",
    "Lot",
    "LotQueue",
    "OpenPosition",
]
