"""Entry point for the portfolio tracker.

Wires all components together and serves the API with uvicorn. The daily
candle sync runs as a background task on the same event loop, managed by
FastAPI's lifespan context manager.

Component wiring order (in _build_components):
1. PortfolioDatabase / PortfolioStore (persistence)
2. ConfigRegistry (running-total registers)
3. BinanceClient (prices, klines, balances)
4. YahooChartClient / FxRateClient (equity and FX history, fiat rates)
5. SourceRegistry + CandleSynchronizer (daily candle sync)
6. RateResolver + BalanceAggregator (valuation)
7. CapitalRebalancer, AssetService, TransactionService, DepositService
8. DailySyncScheduler
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any

import uvicorn
from fastapi import FastAPI

from tracker.api.app import create_app
from tracker.config import AppSettings
from tracker.data.database import PortfolioDatabase
from tracker.data.store import PortfolioStore
from tracker.exchange.binance_client import BinanceClient
from tracker.logging import get_logger, setup_logging
from tracker.market_data.fx_rates import FxRateClient
from tracker.market_data.yahoo import YahooChartClient
from tracker.models import AssetType
from tracker.portfolio.assets import AssetService
from tracker.portfolio.deposits import DepositService
from tracker.portfolio.rebalancer import CapitalRebalancer
from tracker.portfolio.registers import ConfigRegistry
from tracker.portfolio.transactions import TransactionService
from tracker.scheduler import DailySyncScheduler
from tracker.sync.sources import (
    CryptoKlineSource,
    EquityHistorySource,
    FxHistorySource,
    SourceRegistry,
)
from tracker.sync.synchronizer import CandleSynchronizer
from tracker.valuation.balances import BalanceAggregator
from tracker.valuation.rates import RateResolver


def _build_components(settings: AppSettings) -> dict[str, Any]:
    """Build the dependency graph. Nothing connects until the lifespan starts."""
    database = PortfolioDatabase(settings.store.db_path)
    store = PortfolioStore(database)
    registry = ConfigRegistry(store)

    exchange = BinanceClient(settings.binance)
    chart = YahooChartClient(settings.sync.chart_base_url, settings.sync.request_timeout)
    fx_rates = FxRateClient(settings.valuation.fx_rates_url, settings.sync.request_timeout)

    sources = SourceRegistry(
        {
            AssetType.CRYPTO: CryptoKlineSource(exchange, settings.sync),
            AssetType.STOCK: EquityHistorySource(chart),
            AssetType.FIAT: FxHistorySource(chart, settings.sync.fx_history_start),
        }
    )
    synchronizer = CandleSynchronizer(
        store, registry, sources, settings.sync, settings.valuation
    )

    resolver = RateResolver(exchange, registry, settings.valuation)
    balance_aggregator = BalanceAggregator(exchange, registry, resolver, settings.valuation)

    rebalancer = CapitalRebalancer(
        store,
        registry,
        settings.valuation.seed_capital,
        settings.valuation.last_created_register,
    )

    return {
        "database": database,
        "store": store,
        "registry": registry,
        "exchange": exchange,
        "chart": chart,
        "fx_rates": fx_rates,
        "synchronizer": synchronizer,
        "balance_aggregator": balance_aggregator,
        "asset_service": AssetService(store, synchronizer, rebalancer, settings.sync),
        "transaction_service": TransactionService(
            store, registry, resolver, settings.valuation
        ),
        "deposit_service": DepositService(
            store, fx_rates, settings.valuation.settlement_currency
        ),
        "scheduler": DailySyncScheduler(
            synchronizer,
            settings.sync.daily_run_hour_utc,
            settings.sync.daily_run_minute_utc,
        ),
    }


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Connect the store, expose services on app.state and run the daily sync.

    On shutdown: stops the scheduler, closes HTTP and exchange sessions, then
    the database.
    """
    logger = get_logger("tracker.main")
    settings: AppSettings = app.state.settings
    components = app.state.components

    await components["database"].connect()

    for name in (
        "store",
        "registry",
        "balance_aggregator",
        "asset_service",
        "transaction_service",
        "deposit_service",
    ):
        setattr(app.state, name, components[name])

    scheduler: DailySyncScheduler = components["scheduler"]
    scheduler.start(run_now=settings.api.run_sync_on_startup)

    logger.info("lifespan_started", db_path=settings.store.db_path)

    yield

    await scheduler.stop()
    await components["chart"].close()
    await components["fx_rates"].close()
    await components["exchange"].close()
    await components["database"].close()

    logger.info("portfolio_tracker_stopped")


async def run() -> None:
    settings = AppSettings()
    setup_logging(settings.log_level)
    logger = get_logger("tracker.main")

    app = create_app(lifespan=lifespan)
    app.state.settings = settings
    app.state.components = _build_components(settings)

    logger.info("starting_api", host=settings.api.host, port=settings.api.port)

    config = uvicorn.Config(
        app,
        host=settings.api.host,
        port=settings.api.port,
        log_level="warning",  # Suppress uvicorn access logs
    )
    server = uvicorn.Server(config)
    await server.serve()


def main() -> None:
    """Synchronous entry point."""
    asyncio.run(run())


if __name__ == "__main__":
    main()
