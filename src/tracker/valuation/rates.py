"""Currency conversion into the settlement currency (USD).

Rates resolve through a prioritized chain:
  1. Settlement currency: identity.
  2. Primary stablecoin: first present reference register (ask, then bid;
     canonical names before legacy duplicates).
  3. Native fee token: its spot price against the stablecoin, compounded
     with the stablecoin's USD rate.
  4. Anything else: spot price ``<asset><quote>`` for each quote in priority
     order, compounded with the quote's USD rate unless the quote is USD.

A currency with no resolvable rate converts to its own amount (degraded
mode): fees must never block a transaction from being recorded.

All results are rounded to 8 decimal places.
"""

from decimal import Decimal

from tracker.config import ValuationSettings
from tracker.exceptions import UpstreamError
from tracker.exchange.client import ExchangeClient
from tracker.logging import get_logger
from tracker.models import quantize_money
from tracker.portfolio.registers import ConfigRegistry

logger = get_logger(__name__)


class ConversionSession:
    """One logical conversion session.

    Caches spot prices (including misses) and USD rates, so converting several
    amounts in one request hits each external price at most once.
    """

    def __init__(
        self,
        exchange: ExchangeClient,
        registry: ConfigRegistry,
        settings: ValuationSettings,
    ) -> None:
        self._exchange = exchange
        self._registry = registry
        self._settings = settings
        self._prices: dict[str, Decimal | None] = {}
        self._usd_rates: dict[str, Decimal | None] = {}

    async def spot_price(self, symbol: str) -> Decimal | None:
        """Cached spot price, None when the pair is unknown or the source failed."""
        if symbol in self._prices:
            return self._prices[symbol]
        try:
            price: Decimal | None = await self._exchange.fetch_spot_price(symbol)
        except UpstreamError as e:
            logger.debug("spot_price_unavailable", symbol=symbol, error=str(e))
            price = None
        if price is not None and price <= 0:
            price = None
        self._prices[symbol] = price
        return price

    async def usd_rate(self, currency: str) -> Decimal | None:
        """USD per one unit of ``currency``, or None when no rate resolves."""
        code = currency.upper()
        if code == self._settings.settlement_currency:
            return Decimal("1")
        if code in self._usd_rates:
            return self._usd_rates[code]

        if code == self._settings.stablecoin:
            rate = await self._registry.first_total(self._settings.stablecoin_registers)
            if rate is not None and rate <= 0:
                rate = None
        elif code == self._settings.fee_token:
            rate = await self._fee_token_rate(code)
        else:
            rate = await self._rate_via_quotes(code)

        self._usd_rates[code] = rate
        return rate

    async def _fee_token_rate(self, code: str) -> Decimal | None:
        stablecoin = self._settings.stablecoin
        price = await self.spot_price(f"{code}{stablecoin}")
        if price is None:
            return None
        stable_rate = await self.usd_rate(stablecoin)
        return price * stable_rate if stable_rate is not None else None

    async def _rate_via_quotes(self, code: str) -> Decimal | None:
        for quote in self._settings.quote_priority:
            if quote == code:
                continue
            price = await self.spot_price(f"{code}{quote}")
            if price is None:
                continue
            if quote == self._settings.settlement_currency:
                return price
            quote_rate = await self._stablecoin_usd_rate(quote)
            if quote_rate is not None:
                return price * quote_rate
        return None

    async def _stablecoin_usd_rate(self, quote: str) -> Decimal | None:
        """USD rate of a quote stablecoin.

        The primary stablecoin uses its registers; a secondary one is priced
        against the primary and compounded with the primary's rate.
        """
        primary = self._settings.stablecoin
        if quote == primary:
            return await self.usd_rate(primary)
        if quote in self._usd_rates:
            return self._usd_rates[quote]
        price = await self.spot_price(f"{quote}{primary}")
        primary_rate = await self.usd_rate(primary)
        rate = price * primary_rate if price is not None and primary_rate is not None else None
        self._usd_rates[quote] = rate
        return rate

    async def convert(self, amount: Decimal, currency: str) -> Decimal:
        """Convert ``amount`` of ``currency`` into USD, rounded to 8 dp.

        Returns the amount unconverted when no rate resolves.
        """
        rate = await self.usd_rate(currency)
        if rate is None:
            logger.warning(
                "conversion_rate_unavailable",
                currency=currency,
                amount=str(amount),
                fallback="unconverted",
            )
            return quantize_money(amount)
        return quantize_money(amount * rate)


class RateResolver:
    """Factory for conversion sessions sharing the exchange and registers."""

    def __init__(
        self,
        exchange: ExchangeClient,
        registry: ConfigRegistry,
        settings: ValuationSettings,
    ) -> None:
        self._exchange = exchange
        self._registry = registry
        self._settings = settings

    def session(self) -> ConversionSession:
        return ConversionSession(self._exchange, self._registry, self._settings)

    async def convert(self, amount: Decimal, currency: str) -> Decimal:
        """Single conversion in a fresh session."""
        return await self.session().convert(amount, currency)
