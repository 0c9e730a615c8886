"""Async SQLite database manager for the portfolio store.

Uses aiosqlite for non-blocking database operations with WAL mode
for concurrent read/write performance.
"""

import os
from typing import Self

import aiosqlite

from tracker.logging import get_logger

logger = get_logger(__name__)

SCHEMA_VERSION = 1

_CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS exchanges (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL UNIQUE,
    api_url TEXT
);

CREATE TABLE IF NOT EXISTS quotes (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    symbol TEXT NOT NULL UNIQUE,
    description TEXT
);

CREATE TABLE IF NOT EXISTS assets (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    symbol TEXT NOT NULL,
    exchange_id INTEGER REFERENCES exchanges(id),
    type TEXT NOT NULL,
    capital_allocation TEXT NOT NULL,
    initial_investment TEXT,
    max_price_window TEXT,
    min_price_window TEXT,
    trend_estimate TEXT,
    created_at INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS candles (
    asset_id INTEGER NOT NULL,
    timeframe TEXT NOT NULL,
    close_time_ms INTEGER NOT NULL,
    close TEXT NOT NULL,
    high TEXT,
    low TEXT,
    PRIMARY KEY (asset_id, timeframe, close_time_ms)
);

CREATE TABLE IF NOT EXISTS config_entries (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL UNIQUE,
    description TEXT,
    total TEXT NOT NULL DEFAULT '0'
);

CREATE TABLE IF NOT EXISTS transactions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    asset_id INTEGER NOT NULL,
    side TEXT NOT NULL,
    fiat_currency TEXT NOT NULL,
    open_date INTEGER NOT NULL,
    open_price TEXT NOT NULL,
    amount TEXT NOT NULL,
    open_value_fiat TEXT NOT NULL,
    open_fee TEXT NOT NULL,
    close_date INTEGER,
    close_price TEXT,
    close_value_fiat TEXT,
    close_fee TEXT NOT NULL DEFAULT '0',
    profit_percent TEXT NOT NULL DEFAULT '0',
    profit_total_fiat TEXT NOT NULL DEFAULT '0',
    status TEXT NOT NULL DEFAULT 'open'
);

CREATE TABLE IF NOT EXISTS deposits_withdrawals (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    kind TEXT NOT NULL,
    quantity_usd TEXT NOT NULL,
    created_at INTEGER NOT NULL
);
"""

_CREATE_INDEXES_SQL = """
CREATE INDEX IF NOT EXISTS idx_candles_asset_ts
    ON candles(asset_id, timeframe, close_time_ms);

CREATE INDEX IF NOT EXISTS idx_transactions_asset
    ON transactions(asset_id);
"""


class PortfolioDatabase:
    """Async SQLite connection manager for the portfolio store.

    Usage:
        async with PortfolioDatabase("data/portfolio.db") as database:
            store = PortfolioStore(database)
    """

    def __init__(self, db_path: str = "data/portfolio.db") -> None:
        self._db_path = db_path
        self._connection: aiosqlite.Connection | None = None

    @property
    def db(self) -> aiosqlite.Connection:
        """Access the raw aiosqlite connection.

        Raises RuntimeError if not connected.
        """
        if self._connection is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._connection

    async def connect(self) -> None:
        """Open database connection, configure pragmas, and create schema."""
        db_dir = os.path.dirname(self._db_path)
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)

        self._connection = await aiosqlite.connect(self._db_path)
        self._connection.row_factory = aiosqlite.Row

        await self._connection.execute("PRAGMA journal_mode=WAL")
        await self._connection.execute("PRAGMA synchronous=NORMAL")

        await self._create_tables()
        await self._ensure_schema_version()

        logger.info("portfolio_db_connected", db_path=self._db_path)

    async def close(self) -> None:
        """Close the database connection if open."""
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
            logger.info("portfolio_db_closed", db_path=self._db_path)

    async def _create_tables(self) -> None:
        assert self._connection is not None
        await self._connection.executescript(_CREATE_TABLES_SQL)
        await self._connection.executescript(_CREATE_INDEXES_SQL)
        await self._connection.commit()

    async def _ensure_schema_version(self) -> None:
        assert self._connection is not None
        cursor = await self._connection.execute(
            "SELECT version FROM schema_version LIMIT 1"
        )
        row = await cursor.fetchone()
        if row is None:
            await self._connection.execute(
                "INSERT INTO schema_version (version) VALUES (?)",
                (SCHEMA_VERSION,),
            )
            await self._connection.commit()
            logger.info("schema_version_set", version=SCHEMA_VERSION)

    async def __aenter__(self) -> Self:
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # type: ignore[no-untyped-def]
        await self.close()
