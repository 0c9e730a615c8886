"""Candle synchronization: per-classification sources and the incremental synchronizer."""

from tracker.sync.sources import (
    CandleSource,
    CryptoKlineSource,
    EquityHistorySource,
    FxHistorySource,
    SourceRegistry,
)
from tracker.sync.synchronizer import CandleSynchronizer, merge_incremental

__all__ = [
    "CandleSource",
    "CandleSynchronizer",
    "CryptoKlineSource",
    "EquityHistorySource",
    "FxHistorySource",
    "SourceRegistry",
    "merge_incremental",
]
