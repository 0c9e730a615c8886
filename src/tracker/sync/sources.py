"""Candle source adapters, one strategy per instrument classification.

Every source answers ``fetch_since(symbol, last_close_ms)`` with completed
daily candles closing strictly after ``last_close_ms`` (all history when
None), in ascending order. Upstream failures are logged and degrade to the
candles gathered so far (possibly none); they never propagate.

CRITICAL: Binance daily klines close at open + 1d - 1ms. The still-open
candle of the current day is never returned.
"""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation

from tracker.config import SyncSettings
from tracker.exceptions import UpstreamError
from tracker.exchange.client import ExchangeClient
from tracker.logging import get_logger
from tracker.market_data.yahoo import YahooChartClient
from tracker.models import DAY_MS, AssetType, Candle, now_ms

logger = get_logger(__name__)


class CandleSource(ABC):
    """Strategy interface for incremental daily candle retrieval."""

    @abstractmethod
    async def fetch_since(self, symbol: str, last_close_ms: int | None) -> list[Candle]:
        ...


class CryptoKlineSource(CandleSource):
    """Forward-paginated Binance klines.

    Starts at ``last_close_ms + 1``; each next page starts at the close time of
    the last fetched candle + 1ms, until an empty page or the cursor reaches now.
    """

    def __init__(
        self,
        exchange: ExchangeClient,
        settings: SyncSettings,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._exchange = exchange
        self._settings = settings
        self._clock = clock

    async def fetch_since(self, symbol: str, last_close_ms: int | None) -> list[Candle]:
        now = self._clock()
        cursor = last_close_ms + 1 if last_close_ms is not None else 0
        candles: list[Candle] = []

        try:
            while True:
                rows = await self._fetch_with_retry(symbol, cursor)
                if not rows:
                    break

                page = [_kline_to_candle(row) for row in rows]
                candles.extend(c for c in page if c.close_time_ms <= now)

                next_cursor = page[-1].close_time_ms + 1
                if next_cursor <= cursor:
                    break  # No progress guard
                cursor = next_cursor
                if cursor >= now:
                    break
        except UpstreamError as e:
            logger.warning(
                "kline_fetch_failed",
                symbol=symbol,
                error=str(e),
                candles_kept=len(candles),
            )

        return candles

    async def _fetch_with_retry(self, symbol: str, start_time: int) -> list[list]:
        """Fetch one klines page with exponential backoff. Re-raises on final failure."""
        max_retries = max(self._settings.max_retries, 1)
        base_delay = self._settings.retry_base_delay

        for attempt in range(max_retries):
            try:
                return await self._exchange.fetch_klines(
                    symbol,
                    interval=self._settings.timeframe,
                    start_time=start_time,
                    limit=self._settings.kline_page_limit,
                )
            except UpstreamError as e:
                # 400 means a bad symbol or parameters: retrying cannot help
                if attempt == max_retries - 1 or e.status == 400:
                    raise
                delay = base_delay * (2**attempt)
                logger.warning(
                    "kline_fetch_retry",
                    symbol=symbol,
                    attempt=attempt + 1,
                    max_retries=max_retries,
                    delay=delay,
                    error=str(e),
                )
                await asyncio.sleep(delay)

        return []  # Unreachable, but satisfies type checker


def _kline_to_candle(row: list) -> Candle:
    """[open_time, open, high, low, close, volume, close_time, ...] -> Candle.

    Raises UpstreamError for a short or non-numeric row.
    """
    try:
        return Candle(
            close_time_ms=int(row[6]),
            close=Decimal(str(row[4])),
            high=Decimal(str(row[2])),
            low=Decimal(str(row[3])),
        )
    except (IndexError, TypeError, ValueError, InvalidOperation) as e:
        raise UpstreamError(f"malformed kline row: {row!r}") from e


class _ChartHistorySource(CandleSource):
    """Full-history chart fetch filtered locally after ``last_close_ms``.

    The current UTC day's bar is dropped because it may still be trading.
    """

    def __init__(self, chart: YahooChartClient, clock: Callable[[], int] = now_ms) -> None:
        self._chart = chart
        self._clock = clock

    @abstractmethod
    async def _fetch_full(self, symbol: str) -> list[Candle]:
        ...

    async def fetch_since(self, symbol: str, last_close_ms: int | None) -> list[Candle]:
        try:
            history = await self._fetch_full(symbol)
        except UpstreamError as e:
            logger.warning("chart_history_failed", symbol=symbol, error=str(e))
            return []

        today = self._clock() // DAY_MS
        return [
            c
            for c in history
            if c.day < today and (last_close_ms is None or c.close_time_ms > last_close_ms)
        ]


class EquityHistorySource(_ChartHistorySource):
    """Stock and index history (range=max)."""

    async def _fetch_full(self, symbol: str) -> list[Candle]:
        return await self._chart.fetch_chart(symbol, range_="max")


class FxHistorySource(_ChartHistorySource):
    """Currency pair history from ``history_start`` to now (period1/period2)."""

    def __init__(
        self,
        chart: YahooChartClient,
        history_start: str = "1999-01-04",
        clock: Callable[[], int] = now_ms,
    ) -> None:
        super().__init__(chart, clock)
        start = datetime.strptime(history_start, "%Y-%m-%d").replace(tzinfo=timezone.utc)
        self._period1 = int(start.timestamp())

    async def _fetch_full(self, symbol: str) -> list[Candle]:
        return await self._chart.fetch_chart(
            fx_chart_symbol(symbol),
            period1=self._period1,
            period2=self._clock() // 1000,
        )


def fx_chart_symbol(symbol: str) -> str:
    """USDPEN -> USDPEN=X (chart naming for currency pairs)."""
    return symbol if symbol.endswith("=X") else f"{symbol}=X"


class SourceRegistry:
    """Selects the candle source for an instrument classification."""

    def __init__(self, sources: dict[AssetType, CandleSource]) -> None:
        self._sources = sources

    def source_for(self, asset_type: AssetType) -> CandleSource:
        try:
            return self._sources[asset_type]
        except KeyError:
            raise ValueError(f"No candle source for asset type {asset_type.value}") from None
