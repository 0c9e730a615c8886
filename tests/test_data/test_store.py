"""Tests for PortfolioStore persistence: Decimal-as-TEXT round trips and idempotent writes."""

from decimal import Decimal

import pytest

from tracker.data.store import PortfolioStore
from tracker.models import (
    DAY_MS,
    AssetType,
    Candle,
    CapitalAllocation,
    TransactionSide,
    TransactionStatus,
)


def _candle(day: int, close: str) -> Candle:
    return Candle(close_time_ms=(day + 1) * DAY_MS - 1, close=Decimal(close))


async def _asset(store: PortfolioStore, symbol: str = "BTCUSDT", **kwargs):
    exchange = await store.insert_exchange(f"ex-{symbol}")
    return await store.insert_asset(
        symbol=symbol,
        exchange_id=exchange.id,
        asset_type=kwargs.pop("asset_type", AssetType.CRYPTO),
        capital_allocation=kwargs.pop("capital_allocation", CapitalAllocation.scalar(Decimal("1"))),
        **kwargs,
    )


class TestCandles:
    """Candle series keyed by (asset, timeframe, close time)."""

    @pytest.mark.asyncio
    async def test_append_ignores_existing_close_times(self, store: PortfolioStore) -> None:
        asset = await _asset(store)
        assert await store.append_candles(asset.id, [_candle(1, "10"), _candle(2, "11")]) == 2

        inserted = await store.append_candles(asset.id, [_candle(2, "99"), _candle(3, "12")])

        assert inserted == 1
        closes = [c.close for c in await store.get_candles(asset.id)]
        assert closes == [Decimal("10"), Decimal("11"), Decimal("12")]

    @pytest.mark.asyncio
    async def test_append_empty(self, store: PortfolioStore) -> None:
        assert await store.append_candles(1, []) == 0

    @pytest.mark.asyncio
    async def test_upsert_replaces(self, store: PortfolioStore) -> None:
        asset = await _asset(store)
        await store.upsert_candle(asset.id, _candle(5, "1.02"))
        await store.upsert_candle(asset.id, _candle(5, "1.04"))

        candles = await store.get_candles(asset.id)

        assert len(candles) == 1
        assert candles[0].close == Decimal("1.04")

    @pytest.mark.asyncio
    async def test_bounds_and_since_filter(self, store: PortfolioStore) -> None:
        asset = await _asset(store)
        assert await store.get_candle_bounds(asset.id) == (None, None)
        await store.append_candles(asset.id, [_candle(3, "3"), _candle(1, "1"), _candle(2, "2")])

        oldest, newest = await store.get_candle_bounds(asset.id)

        assert oldest == _candle(1, "1").close_time_ms
        assert newest == _candle(3, "3").close_time_ms
        since = await store.get_candles(asset.id, since_ms=_candle(2, "2").close_time_ms)
        assert [c.close for c in since] == [Decimal("2"), Decimal("3")]

    @pytest.mark.asyncio
    async def test_decimal_precision_survives(self, store: PortfolioStore) -> None:
        asset = await _asset(store)
        candle = Candle(
            close_time_ms=DAY_MS - 1,
            close=Decimal("0.000012345678901234"),
            high=Decimal("1.1"),
            low=None,
        )
        await store.append_candles(asset.id, [candle])

        assert await store.get_candles(asset.id) == [candle]


class TestAssets:
    @pytest.mark.asyncio
    async def test_allocation_round_trip(self, store: PortfolioStore) -> None:
        structured = CapitalAllocation.structured({"USD": Decimal("150"), "PEN": Decimal("555")})
        asset = await _asset(
            store,
            capital_allocation=structured,
            initial_investment=CapitalAllocation.scalar(Decimal("100")),
            trend_estimate=Decimal("12.5"),
        )

        loaded = await store.get_asset(asset.id)

        assert loaded == asset
        assert loaded.capital_allocation.amount == Decimal("150")

    @pytest.mark.asyncio
    async def test_find_filters(self, store: PortfolioStore) -> None:
        btc = await _asset(store, "BTCUSDT")
        eth = await _asset(store, "ETHUSDT")
        await _asset(store, "USDPEN", asset_type=AssetType.FIAT)

        assert [a.id for a in await store.find_assets(symbol="ETHUSDT")] == [eth.id]
        others = await store.find_assets(exclude_id=btc.id, exclude_type=AssetType.FIAT)
        assert [a.id for a in others] == [eth.id]

    @pytest.mark.asyncio
    async def test_update_rejects_unknown_column(self, store: PortfolioStore) -> None:
        asset = await _asset(store)
        with pytest.raises(ValueError):
            await store.update_asset(asset.id, symbol_typo="X")


class TestConfigAndTransactions:
    @pytest.mark.asyncio
    async def test_set_config_total_upsert(self, store: PortfolioStore) -> None:
        assert await store.set_config_total("total_usd", Decimal("1")) is False
        assert await store.set_config_total("total_usd", Decimal("1"), upsert=True) is True
        assert await store.set_config_total("total_usd", Decimal("2")) is True
        assert (await store.get_config_by_name("total_usd")).total == Decimal("2")

    @pytest.mark.asyncio
    async def test_close_only_once(self, store: PortfolioStore) -> None:
        tx = await store.insert_transaction(
            asset_id=1,
            side=TransactionSide.LONG,
            open_date=0,
            open_price=Decimal("100"),
            amount=Decimal("2"),
            open_value_fiat=Decimal("200"),
            open_fee=Decimal("0.5"),
            fiat_currency="USDT",
        )

        first = await store.close_transaction_if_open(
            tx.id, close_price=Decimal("110"), status=TransactionStatus.CLOSED
        )
        second = await store.close_transaction_if_open(
            tx.id, close_price=Decimal("999"), status=TransactionStatus.CLOSED
        )

        assert (first, second) == (True, False)
        loaded = await store.get_transaction(tx.id)
        assert loaded.status is TransactionStatus.CLOSED
        assert loaded.close_price == Decimal("110")
        assert loaded.open_fee == Decimal("0.5")
