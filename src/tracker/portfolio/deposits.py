"""Deposits and withdrawals, always recorded in USD."""

from decimal import Decimal
from typing import Any

from tracker.data.store import PortfolioStore
from tracker.exceptions import InvalidInputError, NotFoundError
from tracker.logging import get_logger
from tracker.market_data.fx_rates import FxRateClient
from tracker.models import DepositWithdrawal, quantize_money, to_decimal

logger = get_logger(__name__)

DEPOSIT_KINDS = ("deposit", "withdrawal")


class DepositService:
    """Records cash movements. Amounts in another fiat are converted at the latest USD rate."""

    def __init__(
        self,
        store: PortfolioStore,
        fx_rates: FxRateClient,
        settlement_currency: str = "USD",
    ) -> None:
        self._store = store
        self._fx_rates = fx_rates
        self._settlement = settlement_currency

    async def _to_usd(self, quantity: Any, currency: str | None) -> Decimal:
        amount = to_decimal(quantity, "quantity")
        if amount <= 0:
            raise InvalidInputError("quantity must be > 0")
        code = (currency or self._settlement).upper()
        if code == self._settlement:
            return amount
        rate = await self._fx_rates.units_per_usd(code)
        return quantize_money(amount / rate)

    @staticmethod
    def _kind(value: Any) -> str:
        kind = str(value or "").lower()
        if kind not in DEPOSIT_KINDS:
            raise InvalidInputError(f"kind must be one of: {', '.join(DEPOSIT_KINDS)}")
        return kind

    async def list_deposits(self) -> list[DepositWithdrawal]:
        return await self._store.list_deposits()

    async def get_deposit(self, deposit_id: int) -> DepositWithdrawal:
        record = await self._store.get_deposit(deposit_id)
        if record is None:
            raise NotFoundError(f"Deposit/withdrawal {deposit_id} not found")
        return record

    async def record(self, kind: Any, quantity: Any, currency: str | None = None) -> DepositWithdrawal:
        validated = self._kind(kind)
        quantity_usd = await self._to_usd(quantity, currency)
        record = await self._store.insert_deposit(validated, quantity_usd)
        logger.info(
            "cash_movement_recorded",
            kind=validated,
            quantity_usd=str(quantity_usd),
            currency=currency or self._settlement,
        )
        return record

    async def update(
        self, deposit_id: int, kind: Any, quantity: Any, currency: str | None = None
    ) -> DepositWithdrawal:
        await self.get_deposit(deposit_id)
        validated = self._kind(kind)
        quantity_usd = await self._to_usd(quantity, currency)
        await self._store.update_deposit(deposit_id, kind=validated, quantity_usd=quantity_usd)
        return await self.get_deposit(deposit_id)

    async def delete(self, deposit_id: int) -> None:
        if not await self._store.delete_deposit(deposit_id):
            raise NotFoundError(f"Deposit/withdrawal {deposit_id} not found")
