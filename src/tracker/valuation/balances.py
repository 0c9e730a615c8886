"""Balance aggregation across the spot, flexible-yield and locked-yield sub-ledgers.

The three source queries run concurrently. Each source isolates its own
failures: a failing source logs and contributes nothing, so one outage never
aborts the whole aggregation.
"""

import asyncio
from collections.abc import Awaitable, Callable
from decimal import Decimal, InvalidOperation

from tracker.config import ValuationSettings
from tracker.exceptions import UpstreamError
from tracker.exchange.client import ExchangeClient
from tracker.logging import get_logger
from tracker.models import Balance, BalanceReport, ValuedBalance, quantize_money
from tracker.portfolio.registers import ConfigRegistry
from tracker.valuation.rates import RateResolver

logger = get_logger(__name__)

#: Largest page size the yield position endpoints accept.
MAX_EARN_PAGE_SIZE = 100


def _amount(value: object) -> Decimal:
    try:
        parsed = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return Decimal("0")
    return parsed if parsed.is_finite() else Decimal("0")


def merge_balances(*sources: list[Balance]) -> list[Balance]:
    """Sum amounts per asset across sources, keeping first-seen order."""
    merged: dict[str, Decimal] = {}
    for source in sources:
        for balance in source:
            merged[balance.asset] = merged.get(balance.asset, Decimal("0")) + balance.amount
    return [Balance(asset=asset, amount=amount) for asset, amount in merged.items()]


class BalanceAggregator:
    """Merges exchange sub-ledgers into one per-asset view and values it in USD."""

    def __init__(
        self,
        exchange: ExchangeClient,
        registry: ConfigRegistry,
        resolver: RateResolver,
        settings: ValuationSettings,
    ) -> None:
        self._exchange = exchange
        self._registry = registry
        self._resolver = resolver
        self._settings = settings

    # ──────────────────────────────────────────────
    # Sub-ledgers
    # ──────────────────────────────────────────────

    async def get_spot_balances(self) -> list[Balance]:
        """Free spot amounts > 0, excluding yield-wrapped token representations."""
        try:
            rows = await self._exchange.fetch_spot_balances()
        except UpstreamError as e:
            logger.error("spot_balances_failed", error=str(e))
            return []

        prefix = self._settings.yield_wrapped_prefix
        balances = []
        for row in rows:
            asset = str(row.get("asset", ""))
            amount = _amount(row.get("free"))
            if amount > 0 and asset and not asset.startswith(prefix):
                balances.append(Balance(asset=asset, amount=amount))
        return balances

    async def get_flexible_balances(self) -> list[Balance]:
        return await self._paged_positions("flexible", self._exchange.fetch_flexible_positions)

    async def get_locked_balances(self) -> list[Balance]:
        return await self._paged_positions("locked", self._exchange.fetch_locked_positions)

    async def _paged_positions(
        self,
        ledger: str,
        fetch_page: Callable[[int, int], Awaitable[list[dict]]],
    ) -> list[Balance]:
        """Page through yield positions until an empty or short page."""
        size = max(1, min(self._settings.earn_page_size, MAX_EARN_PAGE_SIZE))
        rows: list[dict] = []
        current = 1
        try:
            while True:
                page = await fetch_page(current, size)
                rows.extend(page)
                if len(page) < size:
                    break
                current += 1
        except UpstreamError as e:
            if e.status == 400:
                logger.info("earn_positions_unavailable", ledger=ledger, error=str(e))
            else:
                logger.error("earn_positions_failed", ledger=ledger, error=str(e))
            return []

        balances = []
        for row in rows:
            amount = _amount(row.get("totalAmount"))
            if amount > 0 and row.get("asset"):
                balances.append(Balance(asset=str(row["asset"]), amount=amount))
        return balances

    # ──────────────────────────────────────────────
    # Aggregated views
    # ──────────────────────────────────────────────

    async def get_all_balances(self) -> list[Balance]:
        """Spot + flexible + locked, summed per asset."""
        spot, flexible, locked = await asyncio.gather(
            self.get_spot_balances(),
            self.get_flexible_balances(),
            self.get_locked_balances(),
        )
        merged = merge_balances(spot, flexible, locked)
        logger.info(
            "balances_aggregated",
            spot=len(spot),
            flexible=len(flexible),
            locked=len(locked),
            assets=len(merged),
        )
        return merged

    async def get_valued_balances(self) -> BalanceReport:
        """Balances with USD values, plus the running totals carried from registers.

        An asset with no resolvable USD rate is valued at 0. The totals are
        informational and are not recomputed from the balances.
        """
        balances = await self.get_all_balances()
        session = self._resolver.session()

        valued = []
        for balance in balances:
            rate = await session.usd_rate(balance.asset)
            if rate is None:
                logger.warning("balance_unpriced", asset=balance.asset, amount=str(balance.amount))
                usd_value = Decimal("0")
            else:
                usd_value = quantize_money(balance.amount * rate)
            valued.append(
                ValuedBalance(asset=balance.asset, total=balance.amount, usd_value=usd_value)
            )

        total_usd = await self._registry.total(self._settings.total_usd_register, Decimal("0"))
        total_secondary = await self._registry.total(
            self._settings.secondary_total_register, Decimal("0")
        )
        return BalanceReport(
            balances=valued,
            total_usd=total_usd or Decimal("0"),
            total_secondary=total_secondary or Decimal("0"),
            secondary_currency=self._settings.secondary_fiat,
        )
