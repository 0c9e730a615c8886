"""Typed SQLite read/write abstraction for the portfolio.

Provides PortfolioStore with typed methods for exchanges, quotes, assets,
candle series, config registers, transactions and deposits. All SQL is
isolated behind this interface. There are no cross-entity transactions:
multi-entity updates are sequential independent writes.

CRITICAL: All monetary values stored as TEXT in SQLite, restored as Decimal on read.
"""

import json
from decimal import Decimal
from enum import Enum
from typing import Any

import aiosqlite

from tracker.data.database import PortfolioDatabase
from tracker.logging import get_logger
from tracker.models import (
    Asset,
    AssetType,
    Candle,
    CapitalAllocation,
    ConfigEntry,
    DepositWithdrawal,
    Exchange,
    Quote,
    Transaction,
    TransactionSide,
    TransactionStatus,
    now_ms,
)

logger = get_logger(__name__)

DEFAULT_TIMEFRAME = "1d"

_ASSET_COLUMNS = {
    "symbol",
    "exchange_id",
    "type",
    "capital_allocation",
    "initial_investment",
    "max_price_window",
    "min_price_window",
    "trend_estimate",
}

_CONFIG_COLUMNS = {"name", "description", "total"}

_TRANSACTION_COLUMNS = {
    "close_date",
    "close_price",
    "close_value_fiat",
    "close_fee",
    "profit_percent",
    "profit_total_fiat",
    "status",
}

_DEPOSIT_COLUMNS = {"kind", "quantity_usd"}


def _to_db(value: Any) -> Any:
    """Serialize a model value to its SQLite column representation."""
    if value is None:
        return None
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, CapitalAllocation):
        return json.dumps(value.to_json())
    if isinstance(value, Enum):
        return value.value
    return value


def _dec(value: str | None) -> Decimal | None:
    return Decimal(value) if value is not None else None


def _allocation(value: str | None) -> CapitalAllocation | None:
    return CapitalAllocation.from_json(json.loads(value)) if value else None


def _row_to_asset(row: aiosqlite.Row) -> Asset:
    return Asset(
        id=row["id"],
        symbol=row["symbol"],
        exchange_id=row["exchange_id"],
        type=AssetType(row["type"]),
        capital_allocation=_allocation(row["capital_allocation"])
        or CapitalAllocation.scalar(Decimal("0")),
        initial_investment=_allocation(row["initial_investment"]),
        max_price_window=_dec(row["max_price_window"]),
        min_price_window=_dec(row["min_price_window"]),
        trend_estimate=_dec(row["trend_estimate"]),
        created_at=row["created_at"],
    )


def _row_to_transaction(row: aiosqlite.Row) -> Transaction:
    return Transaction(
        id=row["id"],
        asset_id=row["asset_id"],
        side=TransactionSide(row["side"]),
        fiat_currency=row["fiat_currency"],
        open_date=row["open_date"],
        open_price=Decimal(row["open_price"]),
        amount=Decimal(row["amount"]),
        open_value_fiat=Decimal(row["open_value_fiat"]),
        open_fee=Decimal(row["open_fee"]),
        close_date=row["close_date"],
        close_price=_dec(row["close_price"]),
        close_value_fiat=_dec(row["close_value_fiat"]),
        close_fee=Decimal(row["close_fee"]),
        profit_percent=Decimal(row["profit_percent"]),
        profit_total_fiat=Decimal(row["profit_total_fiat"]),
        status=TransactionStatus(row["status"]),
    )


def _row_to_config(row: aiosqlite.Row) -> ConfigEntry:
    return ConfigEntry(
        id=row["id"],
        name=row["name"],
        description=row["description"],
        total=Decimal(row["total"]),
    )


def _row_to_deposit(row: aiosqlite.Row) -> DepositWithdrawal:
    return DepositWithdrawal(
        id=row["id"],
        kind=row["kind"],
        quantity_usd=Decimal(row["quantity_usd"]),
        created_at=row["created_at"],
    )

class PortfolioStore:
    """Async SQLite store for the portfolio entities.

    Usage:
        async with PortfolioDatabase("data/portfolio.db") as database:
            store = PortfolioStore(database)
            asset = await store.get_asset(1)
    """

    def __init__(self, database: PortfolioDatabase) -> None:
        self._database = database

    @property
    def _db(self) -> aiosqlite.Connection:
        return self._database.db

    async def _update_fields(
        self, table: str, row_id: int, fields: dict[str, Any], allowed: set[str]
    ) -> bool:
        """Field-level update by id. Returns False when no row matched."""
        unknown = set(fields) - allowed
        if unknown:
            raise ValueError(f"Unknown {table} fields: {sorted(unknown)}")
        if not fields:
            return True
        assignments = ", ".join(f"{name} = ?" for name in fields)
        params = [_to_db(value) for value in fields.values()]
        cursor = await self._db.execute(
            f"UPDATE {table} SET {assignments} WHERE id = ?", (*params, row_id)
        )
        await self._db.commit()
        return cursor.rowcount > 0

    async def _delete_by_id(self, table: str, row_id: int) -> bool:
        cursor = await self._db.execute(f"DELETE FROM {table} WHERE id = ?", (row_id,))
        await self._db.commit()
        return cursor.rowcount > 0

    # ──────────────────────────────────────────────
    # Exchanges and quotes
    # ──────────────────────────────────────────────

    async def insert_exchange(self, name: str, api_url: str | None = None) -> Exchange:
        cursor = await self._db.execute(
            "INSERT INTO exchanges (name, api_url) VALUES (?, ?)", (name, api_url)
        )
        await self._db.commit()
        return Exchange(id=cursor.lastrowid, name=name, api_url=api_url)

    async def get_exchange_by_name(self, name: str) -> Exchange | None:
        cursor = await self._db.execute(
            "SELECT id, name, api_url FROM exchanges WHERE name = ?", (name,)
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return Exchange(id=row["id"], name=row["name"], api_url=row["api_url"])

    async def list_exchanges(self) -> list[Exchange]:
        cursor = await self._db.execute("SELECT id, name, api_url FROM exchanges ORDER BY id")
        rows = await cursor.fetchall()
        return [Exchange(id=r["id"], name=r["name"], api_url=r["api_url"]) for r in rows]

    async def delete_exchange(self, exchange_id: int) -> bool:
        return await self._delete_by_id("exchanges", exchange_id)

    async def insert_quote(self, symbol: str, description: str | None = None) -> Quote:
        cursor = await self._db.execute(
            "INSERT INTO quotes (symbol, description) VALUES (?, ?)", (symbol, description)
        )
        await self._db.commit()
        return Quote(id=cursor.lastrowid, symbol=symbol, description=description)

    async def list_quotes(self) -> list[Quote]:
        cursor = await self._db.execute("SELECT id, symbol, description FROM quotes ORDER BY id")
        rows = await cursor.fetchall()
        return [Quote(id=r["id"], symbol=r["symbol"], description=r["description"]) for r in rows]

    # ──────────────────────────────────────────────
    # Assets
    # ──────────────────────────────────────────────

    async def insert_asset(
        self,
        symbol: str,
        exchange_id: int | None,
        asset_type: AssetType,
        capital_allocation: CapitalAllocation,
        initial_investment: CapitalAllocation | None = None,
        max_price_window: Decimal | None = None,
        min_price_window: Decimal | None = None,
        trend_estimate: Decimal | None = None,
    ) -> Asset:
        created_at = now_ms()
        cursor = await self._db.execute(
            "INSERT INTO assets "
            "(symbol, exchange_id, type, capital_allocation, initial_investment, "
            "max_price_window, min_price_window, trend_estimate, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                symbol,
                exchange_id,
                _to_db(asset_type),
                _to_db(capital_allocation),
                _to_db(initial_investment),
                _to_db(max_price_window),
                _to_db(min_price_window),
                _to_db(trend_estimate),
                created_at,
            ),
        )
        await self._db.commit()
        logger.debug("inserted_asset", symbol=symbol, asset_id=cursor.lastrowid)
        return Asset(
            id=cursor.lastrowid,
            symbol=symbol,
            exchange_id=exchange_id,
            type=asset_type,
            capital_allocation=capital_allocation,
            initial_investment=initial_investment,
            max_price_window=max_price_window,
            min_price_window=min_price_window,
            trend_estimate=trend_estimate,
            created_at=created_at,
        )

    async def get_asset(self, asset_id: int) -> Asset | None:
        cursor = await self._db.execute("SELECT * FROM assets WHERE id = ?", (asset_id,))
        row = await cursor.fetchone()
        return _row_to_asset(row) if row is not None else None

    async def find_assets(
        self,
        symbol: str | None = None,
        exclude_id: int | None = None,
        exclude_type: AssetType | None = None,
    ) -> list[Asset]:
        """Find assets by filter, ordered by id."""
        conditions: list[str] = []
        params: list = []
        if symbol is not None:
            conditions.append("symbol = ?")
            params.append(symbol)
        if exclude_id is not None:
            conditions.append("id != ?")
            params.append(exclude_id)
        if exclude_type is not None:
            conditions.append("type != ?")
            params.append(exclude_type.value)

        where = f" WHERE {' AND '.join(conditions)}" if conditions else ""
        cursor = await self._db.execute(f"SELECT * FROM assets{where} ORDER BY id", params)
        rows = await cursor.fetchall()
        return [_row_to_asset(row) for row in rows]

    async def update_asset(self, asset_id: int, **fields: Any) -> bool:
        return await self._update_fields("assets", asset_id, fields, _ASSET_COLUMNS)

    async def delete_asset(self, asset_id: int) -> bool:
        return await self._delete_by_id("assets", asset_id)

    # ──────────────────────────────────────────────
    # Candle series
    # ──────────────────────────────────────────────

    async def append_candles(
        self,
        asset_id: int,
        candles: list[Candle],
        timeframe: str = DEFAULT_TIMEFRAME,
    ) -> int:
        """Insert candles, ignoring duplicates via INSERT OR IGNORE.

        Returns the number of actually inserted rows.
        """
        if not candles:
            return 0

        data = [
            (asset_id, timeframe, c.close_time_ms, str(c.close), _to_db(c.high), _to_db(c.low))
            for c in candles
        ]
        cursor = await self._db.executemany(
            "INSERT OR IGNORE INTO candles "
            "(asset_id, timeframe, close_time_ms, close, high, low) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            data,
        )
        await self._db.commit()

        inserted = cursor.rowcount
        logger.debug("appended_candles", asset_id=asset_id, total=len(candles), inserted=inserted)
        return inserted

    async def upsert_candle(
        self, asset_id: int, candle: Candle, timeframe: str = DEFAULT_TIMEFRAME
    ) -> None:
        """Insert or replace the candle at ``candle.close_time_ms``."""
        await self._db.execute(
            "INSERT OR REPLACE INTO candles "
            "(asset_id, timeframe, close_time_ms, close, high, low) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (
                asset_id,
                timeframe,
                candle.close_time_ms,
                str(candle.close),
                _to_db(candle.high),
                _to_db(candle.low),
            ),
        )
        await self._db.commit()

    async def get_candles(
        self,
        asset_id: int,
        timeframe: str = DEFAULT_TIMEFRAME,
        since_ms: int | None = None,
    ) -> list[Candle]:
        """Query candles for an asset ordered by close_time_ms ASC."""
        conditions = ["asset_id = ?", "timeframe = ?"]
        params: list = [asset_id, timeframe]
        if since_ms is not None:
            conditions.append("close_time_ms >= ?")
            params.append(since_ms)

        cursor = await self._db.execute(
            f"SELECT close_time_ms, close, high, low FROM candles "
            f"WHERE {' AND '.join(conditions)} ORDER BY close_time_ms ASC",
            params,
        )
        rows = await cursor.fetchall()
        return [
            Candle(
                close_time_ms=row["close_time_ms"],
                close=Decimal(row["close"]),
                high=_dec(row["high"]),
                low=_dec(row["low"]),
            )
            for row in rows
        ]

    async def get_candle_bounds(
        self, asset_id: int, timeframe: str = DEFAULT_TIMEFRAME
    ) -> tuple[int | None, int | None]:
        """Return (oldest, newest) close_time_ms of the stored series."""
        cursor = await self._db.execute(
            "SELECT MIN(close_time_ms), MAX(close_time_ms) FROM candles "
            "WHERE asset_id = ? AND timeframe = ?",
            (asset_id, timeframe),
        )
        row = await cursor.fetchone()
        return row[0], row[1]

    async def delete_candles(self, asset_id: int) -> int:
        cursor = await self._db.execute("DELETE FROM candles WHERE asset_id = ?", (asset_id,))
        await self._db.commit()
        return cursor.rowcount

    # ──────────────────────────────────────────────
    # Config registers
    # ──────────────────────────────────────────────

    async def list_config(self, names: list[str] | None = None) -> list[ConfigEntry]:
        if names is None:
            cursor = await self._db.execute("SELECT * FROM config_entries ORDER BY id")
        else:
            placeholders = ", ".join("?" for _ in names)
            cursor = await self._db.execute(
                f"SELECT * FROM config_entries WHERE name IN ({placeholders}) ORDER BY id",
                names,
            )
        rows = await cursor.fetchall()
        return [_row_to_config(row) for row in rows]

    async def get_config(self, entry_id: int) -> ConfigEntry | None:
        cursor = await self._db.execute("SELECT * FROM config_entries WHERE id = ?", (entry_id,))
        row = await cursor.fetchone()
        return _row_to_config(row) if row is not None else None

    async def get_config_by_name(self, name: str) -> ConfigEntry | None:
        cursor = await self._db.execute(
            "SELECT * FROM config_entries WHERE name = ?", (name,)
        )
        row = await cursor.fetchone()
        return _row_to_config(row) if row is not None else None

    async def insert_config(
        self, name: str, total: Decimal, description: str | None = None
    ) -> ConfigEntry:
        cursor = await self._db.execute(
            "INSERT INTO config_entries (name, description, total) VALUES (?, ?, ?)",
            (name, description, str(total)),
        )
        await self._db.commit()
        return ConfigEntry(id=cursor.lastrowid, name=name, description=description, total=total)

    async def update_config(self, entry_id: int, **fields: Any) -> bool:
        return await self._update_fields("config_entries", entry_id, fields, _CONFIG_COLUMNS)

    async def set_config_total(self, name: str, total: Decimal, upsert: bool = False) -> bool:
        """Update a register's total by name. With upsert, create it when absent."""
        cursor = await self._db.execute(
            "UPDATE config_entries SET total = ? WHERE name = ?", (str(total), name)
        )
        if cursor.rowcount == 0 and upsert:
            await self._db.execute(
                "INSERT INTO config_entries (name, total) VALUES (?, ?)", (name, str(total))
            )
            await self._db.commit()
            return True
        await self._db.commit()
        return cursor.rowcount > 0

    async def delete_config(self, entry_id: int) -> bool:
        return await self._delete_by_id("config_entries", entry_id)

    # ──────────────────────────────────────────────
    # Transactions
    # ──────────────────────────────────────────────

    async def insert_transaction(
        self,
        asset_id: int,
        side: TransactionSide,
        open_date: int,
        open_price: Decimal,
        amount: Decimal,
        open_value_fiat: Decimal,
        open_fee: Decimal,
        fiat_currency: str,
    ) -> Transaction:
        cursor = await self._db.execute(
            "INSERT INTO transactions "
            "(asset_id, side, fiat_currency, open_date, open_price, amount, "
            "open_value_fiat, open_fee, status) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                asset_id,
                side.value,
                fiat_currency,
                open_date,
                str(open_price),
                str(amount),
                str(open_value_fiat),
                str(open_fee),
                TransactionStatus.OPEN.value,
            ),
        )
        await self._db.commit()
        return Transaction(
            id=cursor.lastrowid,
            asset_id=asset_id,
            side=side,
            fiat_currency=fiat_currency,
            open_date=open_date,
            open_price=open_price,
            amount=amount,
            open_value_fiat=open_value_fiat,
            open_fee=open_fee,
        )

    async def get_transaction(self, transaction_id: int) -> Transaction | None:
        cursor = await self._db.execute(
            "SELECT * FROM transactions WHERE id = ?", (transaction_id,)
        )
        row = await cursor.fetchone()
        return _row_to_transaction(row) if row is not None else None

    async def list_transactions(self, asset_id: int | None = None) -> list[Transaction]:
        if asset_id is None:
            cursor = await self._db.execute("SELECT * FROM transactions ORDER BY id")
        else:
            cursor = await self._db.execute(
                "SELECT * FROM transactions WHERE asset_id = ? ORDER BY id", (asset_id,)
            )
        rows = await cursor.fetchall()
        return [_row_to_transaction(row) for row in rows]

    async def update_transaction(self, transaction_id: int, **fields: Any) -> bool:
        return await self._update_fields(
            "transactions", transaction_id, fields, _TRANSACTION_COLUMNS
        )

    async def close_transaction_if_open(self, transaction_id: int, **fields: Any) -> bool:
        """Write close fields only while the row is still open.

        Returns False when another writer closed it first.
        """
        unknown = set(fields) - _TRANSACTION_COLUMNS
        if unknown:
            raise ValueError(f"Unknown transactions fields: {sorted(unknown)}")
        assignments = ", ".join(f"{name} = ?" for name in fields)
        params = [_to_db(value) for value in fields.values()]
        cursor = await self._db.execute(
            f"UPDATE transactions SET {assignments} WHERE id = ? AND status = ?",
            (*params, transaction_id, TransactionStatus.OPEN.value),
        )
        await self._db.commit()
        return cursor.rowcount > 0

    async def delete_transaction(self, transaction_id: int) -> bool:
        return await self._delete_by_id("transactions", transaction_id)

    async def delete_transactions_for_asset(self, asset_id: int) -> int:
        cursor = await self._db.execute(
            "DELETE FROM transactions WHERE asset_id = ?", (asset_id,)
        )
        await self._db.commit()
        return cursor.rowcount

    # ──────────────────────────────────────────────
    # Deposits and withdrawals
    # ──────────────────────────────────────────────

    async def insert_deposit(self, kind: str, quantity_usd: Decimal) -> DepositWithdrawal:
        created_at = now_ms()
        cursor = await self._db.execute(
            "INSERT INTO deposits_withdrawals (kind, quantity_usd, created_at) VALUES (?, ?, ?)",
            (kind, str(quantity_usd), created_at),
        )
        await self._db.commit()
        return DepositWithdrawal(
            id=cursor.lastrowid, kind=kind, quantity_usd=quantity_usd, created_at=created_at
        )

    async def get_deposit(self, deposit_id: int) -> DepositWithdrawal | None:
        cursor = await self._db.execute(
            "SELECT * FROM deposits_withdrawals WHERE id = ?", (deposit_id,)
        )
        row = await cursor.fetchone()
        return _row_to_deposit(row) if row is not None else None

    async def update_deposit(self, deposit_id: int, **fields: Any) -> bool:
        return await self._update_fields(
            "deposits_withdrawals", deposit_id, fields, _DEPOSIT_COLUMNS
        )

    async def delete_deposit(self, deposit_id: int) -> bool:
        return await self._delete_by_id("deposits_withdrawals", deposit_id)

    async def list_deposits(self) -> list[DepositWithdrawal]:
        cursor = await self._db.execute("SELECT * FROM deposits_withdrawals ORDER BY id")
        rows = await cursor.fetchall()
        return [_row_to_deposit(row) for row in rows]
