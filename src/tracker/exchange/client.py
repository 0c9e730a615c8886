"""Abstract exchange client interface.

Defines the contract the synchronizer, rate resolver and balance aggregator
depend on, keeping Binance-specific details isolated in the concrete
implementation.
"""

from abc import ABC, abstractmethod
from decimal import Decimal


class ExchangeClient(ABC):
    """Abstract base class for crypto exchange API clients.

    Implementations raise UpstreamError for any failed or timed-out call.
    """

    @abstractmethod
    async def close(self) -> None:
        """Clean up resources (CRITICAL for ccxt async)."""
        ...

    @abstractmethod
    async def fetch_klines(
        self,
        symbol: str,
        interval: str = "1d",
        start_time: int | None = None,
        limit: int = 1000,
    ) -> list[list]:
        """Fetch raw kline rows in ascending time order.

        Each row: [open_time, open, high, low, close, volume, close_time, ...].
        Max limit: 1000 rows per call.

        Pagination is NOT handled here -- callers are responsible for
        iterating with the startTime cursor.
        """
        ...

    @abstractmethod
    async def fetch_spot_price(self, symbol: str) -> Decimal:
        """Latest spot price for an exchange symbol such as BTCUSDT."""
        ...

    @abstractmethod
    async def fetch_spot_balances(self) -> list[dict]:
        """Signed account query. Returns rows with keys asset, free, locked."""
        ...

    @abstractmethod
    async def fetch_flexible_positions(self, current: int, size: int) -> list[dict]:
        """One page of flexible-yield positions. Rows carry asset, totalAmount."""
        ...

    @abstractmethod
    async def fetch_locked_positions(self, current: int, size: int) -> list[dict]:
        """One page of locked-yield positions. Rows carry asset, totalAmount."""
        ...
