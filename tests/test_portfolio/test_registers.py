"""Tests for ConfigRegistry running totals."""

import asyncio
from decimal import Decimal

import pytest

from tracker.config import ValuationSettings
from tracker.exceptions import InvalidInputError, NotFoundError
from tracker.portfolio.registers import ConfigRegistry

BUY = ValuationSettings().stablecoin_buy_registers
SELL = ValuationSettings().stablecoin_sell_registers


class TestCrud:
    @pytest.mark.asyncio
    async def test_create_and_lookup(self, registry: ConfigRegistry) -> None:
        entry = await registry.create("total_usd", "1000", "Portfolio in USD")

        assert entry.total == Decimal("1000")
        assert (await registry.get(entry.id)).name == "total_usd"
        assert (await registry.get_by_name("total_usd")).description == "Portfolio in USD"
        assert await registry.total("total_usd") == Decimal("1000")

    @pytest.mark.asyncio
    async def test_duplicate_name_rejected(self, registry: ConfigRegistry) -> None:
        await registry.create("total_usd", 1)
        with pytest.raises(InvalidInputError):
            await registry.create("total_usd", 2)
        assert await registry.total("total_usd") == Decimal("1")

    @pytest.mark.asyncio
    async def test_missing_entries(self, registry: ConfigRegistry) -> None:
        assert await registry.total("nope") is None
        assert await registry.total("nope", Decimal("5")) == Decimal("5")
        with pytest.raises(NotFoundError):
            await registry.get_by_name("nope")
        with pytest.raises(NotFoundError):
            await registry.delete(99)

    @pytest.mark.asyncio
    async def test_update_fields(self, registry: ConfigRegistry) -> None:
        entry = await registry.create("total_usd", 1)

        updated = await registry.update(entry.id, {"total": "2.5", "description": "x"})

        assert updated.total == Decimal("2.5")
        assert updated.description == "x"
        with pytest.raises(InvalidInputError):
            await registry.update(entry.id, {})
        with pytest.raises(InvalidInputError):
            await registry.update(entry.id, {"total": "abc"})


class TestIncrement:
    @pytest.mark.asyncio
    async def test_creates_absent_register_at_zero(self, registry: ConfigRegistry) -> None:
        assert await registry.increment("total_usd", Decimal("12.5")) == Decimal("12.5")
        assert await registry.total("total_usd") == Decimal("12.5")

    @pytest.mark.asyncio
    async def test_concurrent_increments_are_not_lost(self, registry: ConfigRegistry) -> None:
        await registry.create("total_usd", 0)

        await asyncio.gather(*(registry.increment("total_usd", Decimal("1")) for _ in range(20)))

        assert await registry.total("total_usd") == Decimal("20")


class TestStablecoinPrices:
    """Bid/ask registers resolved through a list of accepted names."""

    @pytest.mark.asyncio
    async def test_first_total_prefers_earlier_name(self, registry: ConfigRegistry) -> None:
        await registry.create("lastPriceUsdtBuy", "3.70")
        assert await registry.first_total(BUY) == Decimal("3.70")
        await registry.create("usdt_buy_price", "3.75")
        assert await registry.first_total(BUY) == Decimal("3.75")

    @pytest.mark.asyncio
    async def test_updates_legacy_names(self, registry: ConfigRegistry) -> None:
        await registry.create("lastPriceUsdtBuy", "3.70")
        await registry.create("lastPriceUsdtSell", "3.72")

        buy, sell = await registry.update_stablecoin_prices("3.80", "3.82", BUY, SELL)

        assert (buy.name, buy.total) == ("lastPriceUsdtBuy", Decimal("3.80"))
        assert (sell.name, sell.total) == ("lastPriceUsdtSell", Decimal("3.82"))
        assert await registry.total("usdt_buy_price") is None

    @pytest.mark.asyncio
    async def test_missing_chain_writes_nothing(self, registry: ConfigRegistry) -> None:
        await registry.create("usdt_buy_price", "3.70")

        with pytest.raises(NotFoundError):
            await registry.update_stablecoin_prices("3.80", "3.82", BUY, SELL)

        assert await registry.total("usdt_buy_price") == Decimal("3.70")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("buy,sell", [("0", "3.8"), ("3.8", "-1"), ("x", "3.8")])
    async def test_invalid_prices(self, registry: ConfigRegistry, buy, sell) -> None:
        await registry.create("usdt_buy_price", "3.70")
        await registry.create("usdt_sell_price", "3.72")

        with pytest.raises(InvalidInputError):
            await registry.update_stablecoin_prices(buy, sell, BUY, SELL)
