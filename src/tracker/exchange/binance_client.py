"""Binance exchange client implementation via ccxt async.

Uses ccxt's raw endpoint methods so symbols stay in Binance's native form
(BTCUSDT) and rows keep Binance's shapes. ccxt signs private and sapi calls
(HMAC-SHA256 over the query string plus timestamp, X-MBX-APIKEY header).
"""

from decimal import Decimal, InvalidOperation

import ccxt.async_support as ccxt_async

from tracker.config import BinanceSettings
from tracker.exceptions import UpstreamError
from tracker.exchange.client import ExchangeClient
from tracker.logging import get_logger

logger = get_logger(__name__)

#: Binance kline rows carry close_time at index 6.
KLINE_MIN_FIELDS = 7


def _earn_rows(endpoint: str, data: object) -> list[dict]:
    """``rows`` of a simple-earn page; UpstreamError for any other shape."""
    if data is None:
        return []
    if not isinstance(data, dict):
        raise UpstreamError(f"{endpoint}: malformed payload")
    rows = data.get("rows") or []
    if not isinstance(rows, list) or not all(isinstance(r, dict) for r in rows):
        raise UpstreamError(f"{endpoint}: malformed rows")
    return rows


class BinanceClient(ExchangeClient):
    """Concrete Binance client using ccxt async."""

    def __init__(self, settings: BinanceSettings) -> None:
        self._settings = settings
        self._exchange = ccxt_async.binance(
            {
                "apiKey": settings.api_key.get_secret_value(),
                "secret": settings.api_secret.get_secret_value(),
                "enableRateLimit": True,
                "timeout": settings.timeout_ms,
            }
        )

    @property
    def exchange(self) -> ccxt_async.binance:
        """Access the underlying ccxt exchange instance."""
        return self._exchange

    async def close(self) -> None:
        """Clean up ccxt async resources. CRITICAL: must be called to avoid resource leaks."""
        await self._exchange.close()
        logger.info("binance_connection_closed")

    async def _call(self, endpoint: str, method, params: dict):  # type: ignore[no-untyped-def]
        """Invoke a raw ccxt endpoint, translating ccxt errors to UpstreamError."""
        try:
            return await method(params)
        except ccxt_async.BadRequest as e:
            raise UpstreamError(f"{endpoint}: {e}", status=400) from e
        except ccxt_async.RequestTimeout as e:
            raise UpstreamError(f"{endpoint} timed out: {e}") from e
        except ccxt_async.BaseError as e:
            raise UpstreamError(f"{endpoint}: {e}") from e

    async def fetch_klines(
        self,
        symbol: str,
        interval: str = "1d",
        start_time: int | None = None,
        limit: int = 1000,
    ) -> list[list]:
        params: dict = {"symbol": symbol, "interval": interval, "limit": min(limit, 1000)}
        if start_time is not None:
            params["startTime"] = start_time
        rows = await self._call("klines", self._exchange.public_get_klines, params)
        if not isinstance(rows, list) or any(
            not isinstance(row, list) or len(row) < KLINE_MIN_FIELDS for row in rows
        ):
            raise UpstreamError(f"klines: malformed payload for {symbol}")
        return rows

    async def fetch_spot_price(self, symbol: str) -> Decimal:
        data = await self._call(
            "ticker_price", self._exchange.public_get_ticker_price, {"symbol": symbol}
        )
        try:
            return Decimal(str(data["price"]))
        except (KeyError, TypeError, InvalidOperation) as e:
            raise UpstreamError(f"ticker_price: malformed payload for {symbol}") from e

    async def fetch_spot_balances(self) -> list[dict]:
        data = await self._call("account", self._exchange.private_get_account, {})
        balances = data.get("balances") if isinstance(data, dict) else None
        if not isinstance(balances, list):
            raise UpstreamError("account: malformed payload")
        return [row for row in balances if isinstance(row, dict)]

    async def fetch_flexible_positions(self, current: int, size: int) -> list[dict]:
        data = await self._call(
            "flexible_position",
            self._exchange.sapi_get_simple_earn_flexible_position,
            {"current": current, "size": size},
        )
        return _earn_rows("flexible_position", data)

    async def fetch_locked_positions(self, current: int, size: int) -> list[dict]:
        data = await self._call(
            "locked_position",
            self._exchange.sapi_get_simple_earn_locked_position,
            {"current": current, "size": size},
        )
        return _earn_rows("locked_position", data)
