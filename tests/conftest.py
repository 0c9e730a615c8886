"""Shared test fixtures for the portfolio tracker."""

from decimal import Decimal

import pytest
import pytest_asyncio

from tracker.config import SyncSettings, ValuationSettings
from tracker.data.database import PortfolioDatabase
from tracker.data.store import PortfolioStore
from tracker.portfolio.registers import ConfigRegistry


@pytest.fixture
def sync_settings() -> SyncSettings:
    """SyncSettings with fast retries and small kline pages."""
    return SyncSettings(max_retries=2, retry_base_delay=0.0, kline_page_limit=3)


@pytest.fixture
def valuation_settings() -> ValuationSettings:
    return ValuationSettings(seed_capital=Decimal("200"))


@pytest_asyncio.fixture
async def database(tmp_path):
    """Connected on-disk database in a temporary directory."""
    db = PortfolioDatabase(str(tmp_path / "portfolio.db"))
    await db.connect()
    yield db
    await db.close()


@pytest.fixture
def store(database: PortfolioDatabase) -> PortfolioStore:
    return PortfolioStore(database)


@pytest.fixture
def registry(store: PortfolioStore) -> ConfigRegistry:
    return ConfigRegistry(store)
