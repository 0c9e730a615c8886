"""Incremental daily candle synchronization per asset.

Fetches only candles newer than the last stored one, appends them (never
rewriting stored history), then refreshes the asset's window bounds and
trend estimate.

Guarantees:
- Append-only and monotonic: accepted candles close strictly after the last
  stored candle, with at most one candle per UTC calendar day.
- Idempotent within a UTC day: once the last completed daily candle is
  stored, further calls return 0 without touching any source.
- Syncs of the same asset are serialized; different assets run freely.

The synthetic stablecoin pair is the one exception to the freshness skip:
its candle for today is derived from the buy/sell reference registers and
is rewritten on every call.
"""

from collections.abc import Callable
from decimal import Decimal

from structlog.contextvars import bound_contextvars

from tracker.config import SyncSettings, ValuationSettings
from tracker.data.store import PortfolioStore
from tracker.exceptions import ComputationError
from tracker.locks import KeyedLock
from tracker.logging import get_logger
from tracker.models import DAY_MS, Asset, AssetType, Candle, now_ms
from tracker.portfolio.registers import ConfigRegistry
from tracker.stats.window import trend_estimate, window_cutoff_ms, window_stats
from tracker.sync.sources import SourceRegistry

logger = get_logger(__name__)


def utc_midnight(ts_ms: int) -> int:
    return ts_ms - ts_ms % DAY_MS


def last_completed_boundary(now: int) -> int:
    """UTC midnight of yesterday: the open of the most recent completed daily candle."""
    return utc_midnight(now) - DAY_MS


def merge_incremental(last_close_ms: int | None, candles: list[Candle]) -> list[Candle]:
    """Filter fetched candles down to the appendable set.

    Keeps candles closing strictly after ``last_close_ms``, in ascending
    order, skipping any candle on a calendar day already covered by the last
    stored candle or an earlier accepted one.
    """
    accepted: list[Candle] = []
    last_ts = last_close_ms
    last_day = last_close_ms // DAY_MS if last_close_ms is not None else None

    for candle in sorted(candles, key=lambda c: c.close_time_ms):
        if last_ts is not None and candle.close_time_ms <= last_ts:
            continue
        if last_day is not None and candle.day == last_day:
            continue
        accepted.append(candle)
        last_ts = candle.close_time_ms
        last_day = candle.day
    return accepted


class CandleSynchronizer:
    """Keeps each asset's daily candle series current.

    Usage:
        synchronizer = CandleSynchronizer(store, registry, sources, sync_settings, valuation_settings)
        appended = await synchronizer.sync(asset)
    """

    def __init__(
        self,
        store: PortfolioStore,
        registry: ConfigRegistry,
        sources: SourceRegistry,
        settings: SyncSettings,
        valuation: ValuationSettings,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._store = store
        self._registry = registry
        self._sources = sources
        self._settings = settings
        self._valuation = valuation
        self._clock = clock
        self._locks = KeyedLock()

    # ──────────────────────────────────────────────
    # Public methods
    # ──────────────────────────────────────────────

    async def sync(self, asset: Asset) -> int:
        """Append new daily candles for ``asset``. Returns the number appended."""
        async with self._locks(asset.id):
            with bound_contextvars(asset_id=asset.id, symbol=asset.symbol):
                if asset.symbol == self._settings.synthetic_symbol:
                    return await self._sync_synthetic(asset)
                return await self._sync_from_source(asset)

    async def sync_all(self) -> dict[str, int]:
        """Sync every stored asset in turn. A failing asset is logged and reported as 0."""
        results: dict[str, int] = {}
        for asset in await self._store.find_assets():
            try:
                results[asset.symbol] = await self.sync(asset)
            except Exception as e:
                logger.error("asset_sync_failed", symbol=asset.symbol, error=str(e))
                results[asset.symbol] = 0

        logger.info(
            "sync_all_complete",
            assets=len(results),
            new_candles=sum(results.values()),
        )
        return results

    async def backfill(self, symbol: str, asset_type: AssetType) -> list[Candle]:
        """Full available history for a not-yet-stored instrument."""
        source = self._sources.source_for(asset_type)
        history = await source.fetch_since(symbol, None)
        return merge_incremental(None, history)

    # ──────────────────────────────────────────────
    # Internal sync paths
    # ──────────────────────────────────────────────

    async def _sync_from_source(self, asset: Asset) -> int:
        now = self._clock()
        _, last_close_ms = await self._store.get_candle_bounds(asset.id, self._settings.timeframe)

        if last_close_ms is not None and last_close_ms >= last_completed_boundary(now):
            logger.debug("sync_skipped_fresh", symbol=asset.symbol, last_close_ms=last_close_ms)
            return 0

        source = self._sources.source_for(asset.type)
        fetched = await source.fetch_since(asset.symbol, last_close_ms)
        new_candles = merge_incremental(last_close_ms, fetched)
        if not new_candles:
            logger.info("no_new_candles", symbol=asset.symbol)
            return 0

        inserted = await self._store.append_candles(
            asset.id, new_candles, self._settings.timeframe
        )
        await self._refresh_statistics(asset, now)

        logger.info(
            "asset_candles_synced",
            symbol=asset.symbol,
            new_candles=inserted,
            last_close_ms=new_candles[-1].close_time_ms,
        )
        return inserted

    async def _sync_synthetic(self, asset: Asset) -> int:
        """Write today's candle as the mean of the stablecoin buy and sell registers."""
        buy = await self._registry.first_total(self._valuation.stablecoin_buy_registers)
        sell = await self._registry.first_total(self._valuation.stablecoin_sell_registers)
        if buy is None or sell is None:
            logger.warning("synthetic_rates_missing", symbol=asset.symbol)
            return 0

        now = self._clock()
        candle = Candle(close_time_ms=utc_midnight(now), close=(buy + sell) / 2)
        await self._store.upsert_candle(asset.id, candle, self._settings.timeframe)
        await self._refresh_statistics(asset, now)

        logger.info("synthetic_candle_written", symbol=asset.symbol, close=str(candle.close))
        return 1

    async def _refresh_statistics(self, asset: Asset, now: int) -> None:
        """Recompute window bounds and trend after new candles land.

        The high only ever rises. The low is only lowered once the stored
        history spans the full lookback window, so a short, still-growing
        history cannot shrink it prematurely. Unset bounds are always filled.
        """
        candles = await self._store.get_candles(asset.id, self._settings.timeframe)
        if not candles:
            return

        years = self._settings.lookback_years
        stats = window_stats(candles, years, now)
        fields: dict[str, Decimal | None] = {}

        if stats.high is not None and (
            asset.max_price_window is None or stats.high > asset.max_price_window
        ):
            fields["max_price_window"] = stats.high

        history_complete = candles[0].close_time_ms <= window_cutoff_ms(years, now)
        if stats.low is not None and (
            asset.min_price_window is None
            or (history_complete and stats.low < asset.min_price_window)
        ):
            fields["min_price_window"] = stats.low

        try:
            fields["trend_estimate"] = trend_estimate(candles)
        except ComputationError as e:
            logger.debug("trend_not_computed", symbol=asset.symbol, reason=str(e))

        if fields:
            await self._store.update_asset(asset.id, **fields)
            for name, value in fields.items():
                setattr(asset, name, value)
