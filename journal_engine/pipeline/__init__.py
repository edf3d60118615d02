"""Lot-matching pipeline stages."""

from .deduplicator import deduplicate
from .grouper import group_by_instrument, instrument_key
from .lot_matcher import LotMatcher, StreamResult, match_instrument
from .normalizer import normalize_trade, normalize_trades, parse_action
from .orchestrator import EngineResult, run_engine
from .phantom_filter import filter_phantoms
from .symbols import BrokerMetadataClassifier, PatternFallbackClassifier, SymbolClassifier

__all__ = [
    "deduplicate",
    "group_by_instrument",
    "instrument_key",
    "LotMatcher",
    "StreamResult",
    "match_instrument",
    "normalize_trade",
    "normalize_trades",
    "parse_action",
    "EngineResult",
    "run_engine",
    "filter_phantoms",
    "BrokerMetadataClassifier",
    "PatternFallbackClassifier",
    "SymbolClassifier",
]
