"""Equity and FX daily history from the Yahoo Finance chart endpoint.

No authentication. The endpoint only serves full history (range=max) or a
bounded period1/period2 window, so incremental filtering is done by callers.
"""

from decimal import Decimal, InvalidOperation
from urllib.parse import quote

import httpx

from tracker.exceptions import UpstreamError
from tracker.logging import get_logger
from tracker.models import Candle

logger = get_logger(__name__)

_HEADERS = {"Accept": "application/json", "User-Agent": "Mozilla/5.0 (portfolio-tracker)"}


def _to_decimal(value: object) -> Decimal | None:
    if value is None:
        return None
    try:
        parsed = Decimal(str(value))
    except InvalidOperation:
        return None
    return parsed if parsed.is_finite() else None


def parse_chart(payload: dict) -> list[Candle]:
    """Convert a chart payload into ascending daily candles.

    Rows without a close are dropped (Yahoo emits nulls for non-trading days).
    Raises UpstreamError when the payload has no result.
    """
    try:
        chart = payload["chart"]
        if chart.get("error"):
            raise UpstreamError(f"chart error: {chart['error']}")
        result = chart["result"][0]
        timestamps = result.get("timestamp") or []
        quotes = result["indicators"]["quote"][0]
    except (KeyError, IndexError, TypeError) as e:
        raise UpstreamError("chart payload malformed") from e

    closes = quotes.get("close") or []
    highs = quotes.get("high") or []
    lows = quotes.get("low") or []

    candles: list[Candle] = []
    for i, ts in enumerate(timestamps):
        close = _to_decimal(closes[i] if i < len(closes) else None)
        if close is None:
            continue
        candles.append(
            Candle(
                close_time_ms=int(ts) * 1000,
                close=close,
                high=_to_decimal(highs[i] if i < len(highs) else None),
                low=_to_decimal(lows[i] if i < len(lows) else None),
            )
        )
    candles.sort(key=lambda c: c.close_time_ms)
    return candles


class YahooChartClient:
    """Async chart client with a bounded request timeout."""

    def __init__(
        self,
        base_url: str = "https://query1.finance.yahoo.com/v8/finance/chart/",
        timeout: float = 15.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url
        self._timeout = timeout
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self._timeout, headers=_HEADERS)
        return self._client

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def fetch_chart(
        self,
        symbol: str,
        *,
        range_: str | None = None,
        period1: int | None = None,
        period2: int | None = None,
        interval: str = "1d",
    ) -> list[Candle]:
        """Fetch daily candles for ``symbol``.

        Pass ``range_`` ("max") or ``period1``/``period2`` (unix seconds).
        Raises UpstreamError on HTTP errors, timeouts and malformed payloads.
        """
        params: dict[str, str | int] = {"interval": interval}
        if range_ is not None:
            params["range"] = range_
        if period1 is not None:
            params["period1"] = period1
        if period2 is not None:
            params["period2"] = period2

        url = f"{self._base_url}{quote(symbol, safe='')}"
        client = await self._get_client()
        try:
            response = await client.get(url, params=params)
        except httpx.TimeoutException as e:
            raise UpstreamError(f"chart request timed out for {symbol}") from e
        except httpx.RequestError as e:
            raise UpstreamError(f"chart request failed for {symbol}: {e}") from e

        if response.status_code != 200:
            raise UpstreamError(
                f"chart request for {symbol} returned {response.status_code}",
                status=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise UpstreamError(f"chart response for {symbol} is not JSON") from e

        candles = parse_chart(payload)
        logger.debug("chart_fetched", symbol=symbol, candles=len(candles))
        return candles
