"""Named running-total registers (config entries).

Every mutation of one register name goes through a per-name lock, so the
read-modify-write in ``increment`` cannot lose an update to a concurrent
writer of the same name. Different names never block each other.
"""

from decimal import Decimal
from typing import Any

from tracker.data.store import PortfolioStore
from tracker.exceptions import InvalidInputError, NotFoundError
from tracker.locks import KeyedLock
from tracker.logging import get_logger
from tracker.models import ConfigEntry, to_decimal

logger = get_logger(__name__)


class ConfigRegistry:
    """Read/write access to config registers with single-writer-per-name updates."""

    def __init__(self, store: PortfolioStore) -> None:
        self._store = store
        self._locks = KeyedLock()

    # ──────────────────────────────────────────────
    # Reads
    # ──────────────────────────────────────────────

    async def list_entries(self) -> list[ConfigEntry]:
        return await self._store.list_config()

    async def get(self, entry_id: int) -> ConfigEntry:
        entry = await self._store.get_config(entry_id)
        if entry is None:
            raise NotFoundError(f"Config entry {entry_id} not found")
        return entry

    async def get_by_name(self, name: str) -> ConfigEntry:
        entry = await self._store.get_config_by_name(name)
        if entry is None:
            raise NotFoundError(f"Config entry '{name}' not found")
        return entry

    async def total(self, name: str, default: Decimal | None = None) -> Decimal | None:
        entry = await self._store.get_config_by_name(name)
        return entry.total if entry is not None else default

    async def first_total(self, names: list[str]) -> Decimal | None:
        """Total of the first register present among ``names`` (in order)."""
        entries = {e.name: e for e in await self._store.list_config(names)}
        for name in names:
            if name in entries:
                return entries[name].total
        return None

    # ──────────────────────────────────────────────
    # Writes
    # ──────────────────────────────────────────────

    async def create(
        self, name: str, total: Any = 0, description: str | None = None
    ) -> ConfigEntry:
        if not name:
            raise InvalidInputError("name is required")
        value = to_decimal(total, "total")
        async with self._locks(name):
            if await self._store.get_config_by_name(name) is not None:
                raise InvalidInputError(f"Config entry '{name}' already exists")
            entry = await self._store.insert_config(name, value, description)
        logger.info("config_entry_created", name=name, total=str(value))
        return entry

    async def update(self, entry_id: int, changes: dict[str, Any]) -> ConfigEntry:
        entry = await self.get(entry_id)
        fields: dict[str, Any] = {}
        if "description" in changes:
            fields["description"] = changes["description"]
        if "total" in changes:
            fields["total"] = to_decimal(changes["total"], "total")
        if "name" in changes:
            if not changes["name"]:
                raise InvalidInputError("name must not be empty")
            fields["name"] = changes["name"]
        if not fields:
            raise InvalidInputError("No valid fields to update")

        async with self._locks(entry.name):
            await self._store.update_config(entry_id, **fields)
        return await self.get(entry_id)

    async def set_total(self, name: str, total: Decimal, upsert: bool = True) -> bool:
        async with self._locks(name):
            return await self._store.set_config_total(name, total, upsert=upsert)

    async def increment(self, name: str, delta: Decimal) -> Decimal:
        """Atomically add ``delta`` to a register (created at 0 when absent)."""
        async with self._locks(name):
            current = await self._store.get_config_by_name(name)
            new_total = (current.total if current is not None else Decimal("0")) + delta
            await self._store.set_config_total(name, new_total, upsert=True)
        logger.debug("config_total_incremented", name=name, delta=str(delta), total=str(new_total))
        return new_total

    async def set_first_existing(self, names: list[str], total: Decimal) -> ConfigEntry | None:
        """Write ``total`` to the first register of ``names`` that exists."""
        for name in names:
            async with self._locks(name):
                updated = await self._store.set_config_total(name, total, upsert=False)
            if updated:
                return await self._store.get_config_by_name(name)
        return None

    async def update_stablecoin_prices(
        self,
        buy: Any,
        sell: Any,
        buy_registers: list[str],
        sell_registers: list[str],
    ) -> tuple[ConfigEntry, ConfigEntry]:
        """Record new stablecoin bid/ask reference prices.

        Each price goes to the first existing register of its chain. Raises
        NotFoundError when either chain has no register.
        """
        buy_price = to_decimal(buy, "buy_price")
        sell_price = to_decimal(sell, "sell_price")
        if buy_price <= 0 or sell_price <= 0:
            raise InvalidInputError("stablecoin prices must be > 0")
        if await self.first_total(buy_registers) is None or await self.first_total(
            sell_registers
        ) is None:
            raise NotFoundError("Stablecoin buy/sell price registers not found")

        buy_entry = await self.set_first_existing(buy_registers, buy_price)
        sell_entry = await self.set_first_existing(sell_registers, sell_price)
        if buy_entry is None or sell_entry is None:
            raise NotFoundError("Stablecoin buy/sell price registers not found")

        logger.info(
            "stablecoin_prices_updated",
            buy=str(buy_price),
            sell=str(sell_price),
            buy_register=buy_entry.name,
            sell_register=sell_entry.name,
        )
        return buy_entry, sell_entry

    async def delete(self, entry_id: int) -> None:
        entry = await self.get(entry_id)
        async with self._locks(entry.name):
            await self._store.delete_config(entry_id)
        logger.info("config_entry_deleted", name=entry.name)
