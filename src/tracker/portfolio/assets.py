"""Asset registration, update and deletion.

Registration backfills the candle series, derives the window bounds and
trend, seeds the holding's capital and rebalances the other holdings.
"""

from decimal import Decimal
from typing import Any

from tracker.config import SyncSettings
from tracker.data.store import PortfolioStore
from tracker.exceptions import ComputationError, InvalidInputError, NotFoundError
from tracker.logging import get_logger
from tracker.models import Asset, AssetType, Candle, CapitalAllocation, to_decimal
from tracker.portfolio.rebalancer import CapitalRebalancer
from tracker.stats.window import trend_estimate, window_stats
from tracker.sync.synchronizer import CandleSynchronizer

logger = get_logger(__name__)


def parse_asset_type(value: Any) -> AssetType:
    try:
        return AssetType(str(value).lower())
    except ValueError:
        allowed = ", ".join(t.value for t in AssetType)
        raise InvalidInputError(f"type must be one of: {allowed}") from None


class AssetService:
    """Use cases for holdings. Raises NotFoundError / InvalidInputError before mutating."""

    def __init__(
        self,
        store: PortfolioStore,
        synchronizer: CandleSynchronizer,
        rebalancer: CapitalRebalancer,
        settings: SyncSettings,
    ) -> None:
        self._store = store
        self._synchronizer = synchronizer
        self._rebalancer = rebalancer
        self._settings = settings

    async def list_assets(self) -> list[Asset]:
        return await self._store.find_assets()

    async def get_asset(self, asset_id: int) -> Asset:
        asset = await self._store.get_asset(asset_id)
        if asset is None:
            raise NotFoundError(f"Asset {asset_id} not found")
        return asset

    async def find_by_symbol(self, symbol: str) -> Asset:
        assets = await self._store.find_assets(symbol=symbol)
        if not assets:
            raise NotFoundError(f"Asset {symbol} not found")
        return assets[0]

    async def refresh_synthetic(self) -> int:
        """Rewrite today's synthetic stablecoin candle from the current registers."""
        asset = await self.find_by_symbol(self._settings.synthetic_symbol)
        return await self._synchronizer.sync(asset)

    async def sync_all(self) -> dict[str, int]:
        return await self._synchronizer.sync_all()

    async def get_history(self, asset_id: int) -> list[Candle]:
        await self.get_asset(asset_id)
        return await self._store.get_candles(asset_id, self._settings.timeframe)

    async def create_asset(
        self,
        symbol: str,
        exchange_name: str,
        asset_type: Any,
        current_balance: Any,
        initial_investment: Any = None,
    ) -> tuple[Asset, list[Candle]]:
        """Register a holding with its full candle history.

        Returns the stored asset and the candles written for it.
        """
        if not symbol:
            raise InvalidInputError("symbol is required")
        kind = parse_asset_type(asset_type)

        exchange = await self._store.get_exchange_by_name(exchange_name)
        if exchange is None:
            raise NotFoundError(f"Exchange {exchange_name} not found")

        balance = to_decimal(current_balance, "current_balance")
        if balance < 0:
            raise InvalidInputError("current_balance must be >= 0")
        investment = CapitalAllocation.from_json(initial_investment)

        candles = await self._synchronizer.backfill(symbol, kind)
        if not candles:
            raise NotFoundError(f"No price history available for {symbol}")

        stats = window_stats(candles, self._settings.lookback_years)
        try:
            trend = trend_estimate(candles)
        except ComputationError as e:
            logger.warning("trend_unavailable_at_creation", symbol=symbol, reason=str(e))
            trend = None

        seed = self._rebalancer.seed_capital if kind is not AssetType.FIAT else Decimal("0")
        asset = await self._store.insert_asset(
            symbol=symbol,
            exchange_id=exchange.id,
            asset_type=kind,
            capital_allocation=CapitalAllocation.scalar(seed),
            initial_investment=investment,
            max_price_window=stats.high,
            min_price_window=stats.low,
            trend_estimate=trend,
        )
        await self._store.append_candles(asset.id, candles, self._settings.timeframe)

        if kind is not AssetType.FIAT:
            await self._rebalancer.rebalance(asset.id, balance)

        logger.info(
            "asset_created",
            symbol=symbol,
            asset_id=asset.id,
            candles=len(candles),
            high=str(stats.high),
            low=str(stats.low),
        )
        return asset, candles

    async def update_asset(self, asset_id: int, changes: dict[str, Any]) -> Asset:
        """Apply a partial update of investment and window bounds."""
        asset = await self.get_asset(asset_id)
        fields: dict[str, Any] = {}

        if "initial_investment" in changes:
            fields["initial_investment"] = CapitalAllocation.from_json(
                changes["initial_investment"]
            )

        if "min_price_window" in changes:
            value = to_decimal(changes["min_price_window"], "min_price_window")
            if value < 0:
                raise InvalidInputError("min_price_window must be >= 0")
            fields["min_price_window"] = value

        if "max_price_window" in changes:
            value = to_decimal(changes["max_price_window"], "max_price_window")
            if value <= 0:
                raise InvalidInputError("max_price_window must be > 0")
            fields["max_price_window"] = value

        low = fields.get("min_price_window", asset.min_price_window)
        high = fields.get("max_price_window", asset.max_price_window)
        if low is not None and high is not None and low > high:
            raise InvalidInputError("min_price_window cannot exceed max_price_window")

        if not fields:
            raise InvalidInputError("No valid fields to update")

        await self._store.update_asset(asset_id, **fields)
        return await self.get_asset(asset_id)

    async def delete_asset(self, asset_id: int) -> None:
        """Delete an asset with its candle series and transactions."""
        asset = await self.get_asset(asset_id)
        candles = await self._store.delete_candles(asset_id)
        transactions = await self._store.delete_transactions_for_asset(asset_id)
        await self._store.delete_asset(asset_id)
        logger.info(
            "asset_deleted",
            symbol=asset.symbol,
            candles=candles,
            transactions=transactions,
        )
