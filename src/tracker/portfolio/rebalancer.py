"""Capital redistribution when a new non-fiat holding is registered.

The new holding is seeded with a fixed capital. Existing non-fiat holdings
share the rest of the observed balance equally:

    adjustment = ((current_balance - sum(existing)) - seed_capital) / count

applied additively to every existing allocation, so that
``sum(existing) + seed_capital == current_balance`` afterwards. With no
existing holdings the adjustment is skipped (0). A negative adjustment is
applied as computed.
"""

from dataclasses import dataclass
from decimal import Decimal

from tracker.data.store import PortfolioStore
from tracker.logging import get_logger
from tracker.models import AssetType
from tracker.portfolio.registers import ConfigRegistry

logger = get_logger(__name__)


def compute_adjustment(
    current_balance: Decimal,
    existing_allocations: list[Decimal],
    seed_capital: Decimal,
) -> Decimal:
    """Per-holding additive adjustment; 0 when there are no existing holdings."""
    if not existing_allocations:
        return Decimal("0")
    total_existing = sum(existing_allocations, Decimal("0"))
    return ((current_balance - total_existing) - seed_capital) / len(existing_allocations)


@dataclass
class RebalanceResult:
    adjustment: Decimal
    allocations: dict[int, Decimal]  # asset id -> new allocation amount


class CapitalRebalancer:
    """Applies the redistribution and records the observed balance."""

    def __init__(
        self,
        store: PortfolioStore,
        registry: ConfigRegistry,
        seed_capital: Decimal,
        balance_register: str,
    ) -> None:
        self._store = store
        self._registry = registry
        self._seed_capital = seed_capital
        self._balance_register = balance_register

    @property
    def seed_capital(self) -> Decimal:
        return self._seed_capital

    async def rebalance(self, new_asset_id: int, current_balance: Decimal) -> RebalanceResult:
        """Redistribute across non-fiat holdings other than ``new_asset_id``."""
        others = await self._store.find_assets(
            exclude_id=new_asset_id, exclude_type=AssetType.FIAT
        )
        adjustment = compute_adjustment(
            current_balance,
            [a.capital_allocation.amount for a in others],
            self._seed_capital,
        )

        allocations: dict[int, Decimal] = {}
        for other in others:
            updated = other.capital_allocation.with_amount(
                other.capital_allocation.amount + adjustment
            )
            await self._store.update_asset(other.id, capital_allocation=updated)
            allocations[other.id] = updated.amount

        await self._registry.set_total(self._balance_register, current_balance, upsert=True)

        if adjustment < 0:
            logger.warning(
                "negative_rebalance_adjustment",
                adjustment=str(adjustment),
                current_balance=str(current_balance),
            )
        logger.info(
            "capital_rebalanced",
            new_asset_id=new_asset_id,
            holdings=len(others),
            adjustment=str(adjustment),
        )
        return RebalanceResult(adjustment=adjustment, allocations=allocations)
