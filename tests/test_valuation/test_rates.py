"""Tests for USD conversion through the rate resolution chain.

All tests use a mocked exchange client and mocked registers.
"""

from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from tracker.exceptions import UpstreamError
from tracker.exchange.client import ExchangeClient
from tracker.portfolio.registers import ConfigRegistry
from tracker.valuation.rates import RateResolver


def _exchange(prices: dict[str, str]) -> AsyncMock:
    exchange = AsyncMock(spec=ExchangeClient)

    async def fetch_spot_price(symbol: str) -> Decimal:
        if symbol not in prices:
            raise UpstreamError(f"Invalid symbol {symbol}", status=400)
        return Decimal(prices[symbol])

    exchange.fetch_spot_price.side_effect = fetch_spot_price
    return exchange


def _registry(stablecoin_rate: str | None) -> AsyncMock:
    registry = AsyncMock(spec=ConfigRegistry)
    registry.first_total.return_value = (
        Decimal(stablecoin_rate) if stablecoin_rate is not None else None
    )
    return registry


def _symbols_requested(exchange: AsyncMock) -> list[str]:
    return [call.args[0] for call in exchange.fetch_spot_price.await_args_list]


class TestDirectRates:
    """Settlement currency and the primary stablecoin."""

    @pytest.mark.asyncio
    async def test_usd_is_identity_rounded(self, valuation_settings) -> None:
        exchange = _exchange({})
        resolver = RateResolver(exchange, _registry("1"), valuation_settings)

        result = await resolver.convert(Decimal("100"), "USD")

        assert str(result) == "100.00000000"
        exchange.fetch_spot_price.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_stablecoin_uses_reference_register(self, valuation_settings) -> None:
        registry = _registry("1.01")
        resolver = RateResolver(_exchange({}), registry, valuation_settings)

        result = await resolver.convert(Decimal("100"), "USDT")

        assert result == Decimal("101")
        registry.first_total.assert_awaited_once_with(valuation_settings.stablecoin_registers)

    @pytest.mark.asyncio
    async def test_stablecoin_without_register_is_unconverted(self, valuation_settings) -> None:
        resolver = RateResolver(_exchange({}), _registry(None), valuation_settings)
        assert await resolver.convert(Decimal("25"), "USDT") == Decimal("25")

    @pytest.mark.asyncio
    async def test_lowercase_currency_accepted(self, valuation_settings) -> None:
        resolver = RateResolver(_exchange({}), _registry("1"), valuation_settings)
        assert await resolver.convert(Decimal("3"), "usd") == Decimal("3")


class TestDerivedRates:
    """Fee token and spot-quote chains."""

    @pytest.mark.asyncio
    async def test_fee_token_via_stablecoin(self, valuation_settings) -> None:
        exchange = _exchange({"BNBUSDT": "600"})
        resolver = RateResolver(exchange, _registry("1.01"), valuation_settings)

        result = await resolver.convert(Decimal("0.5"), "BNB")

        assert result == Decimal("303")
        assert _symbols_requested(exchange) == ["BNBUSDT"]

    @pytest.mark.asyncio
    async def test_quote_priority_falls_through(self, valuation_settings) -> None:
        """ETHUSDT missing: ETHFDUSD compounded with FDUSD priced in USDT."""
        exchange = _exchange({"ETHFDUSD": "3000", "FDUSDUSDT": "0.999"})
        resolver = RateResolver(exchange, _registry("1"), valuation_settings)

        result = await resolver.convert(Decimal("2"), "ETH")

        assert result == Decimal("5994")
        assert _symbols_requested(exchange) == ["ETHUSDT", "ETHFDUSD", "FDUSDUSDT"]

    @pytest.mark.asyncio
    async def test_usd_quote_needs_no_compounding(self, valuation_settings) -> None:
        exchange = _exchange({"XYZUSD": "2.5"})
        resolver = RateResolver(exchange, _registry("1.1"), valuation_settings)

        assert await resolver.convert(Decimal("4"), "XYZ") == Decimal("10")

    @pytest.mark.asyncio
    async def test_unresolvable_currency_is_unconverted(self, valuation_settings) -> None:
        resolver = RateResolver(_exchange({}), _registry("1"), valuation_settings)
        assert await resolver.convert(Decimal("7.123456789"), "NOPE") == Decimal("7.12345679")

    @pytest.mark.asyncio
    async def test_non_positive_price_ignored(self, valuation_settings) -> None:
        exchange = _exchange({"ABCUSDT": "0", "ABCUSDC": "2", "USDCUSDT": "1"})
        resolver = RateResolver(exchange, _registry("1"), valuation_settings)

        assert await resolver.convert(Decimal("1"), "ABC") == Decimal("2")


class TestSessionCaching:
    """One session hits each external price at most once."""

    @pytest.mark.asyncio
    async def test_prices_and_misses_cached(self, valuation_settings) -> None:
        exchange = _exchange({"ETHFDUSD": "3000", "FDUSDUSDT": "1"})
        registry = _registry("1")
        session = RateResolver(exchange, registry, valuation_settings).session()

        await session.convert(Decimal("1"), "ETH")
        await session.convert(Decimal("2"), "ETH")
        await session.convert(Decimal("3"), "FDUSD")

        symbols = _symbols_requested(exchange)
        assert len(symbols) == len(set(symbols))
        assert registry.first_total.await_count == 1

    @pytest.mark.asyncio
    async def test_new_session_refetches(self, valuation_settings) -> None:
        exchange = _exchange({"BNBUSDT": "600"})
        resolver = RateResolver(exchange, _registry("1"), valuation_settings)

        await resolver.convert(Decimal("1"), "BNB")
        await resolver.convert(Decimal("1"), "BNB")

        assert exchange.fetch_spot_price.await_count == 2
