"""Latest USD-based fiat exchange rates (open exchange-rate API)."""

from decimal import Decimal

import httpx

from tracker.exceptions import UpstreamError


class FxRateClient:
    """Fetches ``rates[currency]``: units of ``currency`` per 1 USD."""

    def __init__(
        self,
        url: str = "https://open.er-api.com/v6/latest/USD",
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._url = url
        self._timeout = timeout
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def units_per_usd(self, currency: str) -> Decimal:
        client = await self._get_client()
        try:
            response = await client.get(self._url)
            response.raise_for_status()
            rate = response.json()["rates"][currency]
        except httpx.TimeoutException as e:
            raise UpstreamError("exchange rate request timed out") from e
        except httpx.HTTPStatusError as e:
            raise UpstreamError(
                f"exchange rate request failed: {e}", status=e.response.status_code
            ) from e
        except (httpx.RequestError, ValueError, KeyError, TypeError) as e:
            raise UpstreamError(f"no exchange rate for {currency}") from e

        parsed = Decimal(str(rate))
        if not parsed.is_finite() or parsed <= 0:
            raise UpstreamError(f"invalid exchange rate for {currency}: {rate}")
        return parsed
