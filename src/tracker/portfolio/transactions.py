"""Open/close trade records and realized profit.

Closing a transaction realizes its net profit in the transaction's fiat
currency:

    profit_total_fiat = close_value - open_value - (open_fee + close_fee)
    profit_percent = profit_total_fiat / open_value * 100

The profit, converted to USD, is added to the asset's capital allocation and
to the running USD total register.
"""

from decimal import Decimal
from typing import Any

from tracker.config import ValuationSettings
from tracker.data.store import PortfolioStore
from tracker.exceptions import AlreadyClosedError, InvalidInputError, NotFoundError
from tracker.locks import KeyedLock
from tracker.logging import get_logger
from tracker.models import (
    Transaction,
    TransactionSide,
    TransactionStatus,
    now_ms,
    quantize_money,
    to_decimal,
)
from tracker.portfolio.registers import ConfigRegistry
from tracker.portfolio.symbols import split_symbol
from tracker.valuation.rates import ConversionSession, RateResolver

logger = get_logger(__name__)


def _positive(value: Any, field_name: str) -> Decimal:
    parsed = to_decimal(value, field_name)
    if parsed <= 0:
        raise InvalidInputError(f"{field_name} must be > 0")
    return parsed


def _fee(value: Any, field_name: str) -> Decimal:
    if value is None:
        return Decimal("0")
    parsed = to_decimal(value, field_name)
    if parsed < 0:
        raise InvalidInputError(f"{field_name} must be >= 0")
    return parsed


def _side(value: Any) -> TransactionSide:
    if isinstance(value, TransactionSide):
        return value
    try:
        return TransactionSide(str(value).lower())
    except ValueError:
        raise InvalidInputError("side must be 'long' or 'short'") from None


def compute_profit(
    open_value: Decimal, close_value: Decimal, open_fee: Decimal, close_fee: Decimal
) -> tuple[Decimal, Decimal]:
    """Net profit and profit percent, both rounded to 8 dp."""
    profit = close_value - open_value - (open_fee + close_fee)
    percent = profit / open_value * 100
    return quantize_money(profit), quantize_money(percent)


class TransactionService:
    """Use cases for trade records.

    Fees may be paid in another currency (e.g. the exchange fee token); they
    are converted into the transaction's fiat currency through USD.
    """

    def __init__(
        self,
        store: PortfolioStore,
        registry: ConfigRegistry,
        resolver: RateResolver,
        settings: ValuationSettings,
    ) -> None:
        self._store = store
        self._registry = registry
        self._resolver = resolver
        self._settings = settings
        self._asset_locks = KeyedLock()

    async def list_transactions(self, asset_id: int | None = None) -> list[Transaction]:
        return await self._store.list_transactions(asset_id)

    async def get_transaction(self, transaction_id: int) -> Transaction:
        transaction = await self._store.get_transaction(transaction_id)
        if transaction is None:
            raise NotFoundError(f"Transaction {transaction_id} not found")
        return transaction

    async def delete_transaction(self, transaction_id: int) -> None:
        if not await self._store.delete_transaction(transaction_id):
            raise NotFoundError(f"Transaction {transaction_id} not found")
        logger.info("transaction_deleted", transaction_id=transaction_id)

    async def open_transaction(
        self,
        asset_id: int,
        open_price: Any,
        amount: Any,
        open_value_fiat: Any,
        open_fee: Any = None,
        fee_currency: str | None = None,
        open_date: int | None = None,
        side: Any = TransactionSide.LONG,
        fiat_currency: str | None = None,
    ) -> Transaction:
        if asset_id is None:
            raise InvalidInputError("asset_id is required")
        asset = await self._store.get_asset(asset_id)
        if asset is None:
            raise NotFoundError(f"Asset {asset_id} not found")

        price = _positive(open_price, "open_price")
        quantity = _positive(amount, "amount")
        value = _positive(open_value_fiat, "open_value_fiat")
        fee = _fee(open_fee, "open_fee")
        direction = _side(side)

        currency = fiat_currency or await self._quote_of(asset.symbol)
        session = self._resolver.session()
        fee_fiat = await self._fee_in(session, fee, fee_currency or currency, currency)

        transaction = await self._store.insert_transaction(
            asset_id=asset_id,
            side=direction,
            open_date=open_date if open_date is not None else now_ms(),
            open_price=price,
            amount=quantity,
            open_value_fiat=value,
            open_fee=fee_fiat,
            fiat_currency=currency,
        )
        logger.info(
            "transaction_opened",
            transaction_id=transaction.id,
            symbol=asset.symbol,
            amount=str(quantity),
            fiat_currency=currency,
        )
        return transaction

    async def close_transaction(
        self,
        transaction_id: int,
        close_price: Any,
        close_value_fiat: Any,
        close_fee: Any = None,
        fee_currency: str | None = None,
        close_date: int | None = None,
    ) -> Transaction:
        """Close an open transaction and realize its profit.

        Raises AlreadyClosedError, leaving the stored record untouched, when
        the transaction was already closed.
        """
        transaction = await self.get_transaction(transaction_id)
        if transaction.status is TransactionStatus.CLOSED:
            raise AlreadyClosedError(f"Transaction {transaction_id} is already closed")

        price = _positive(close_price, "close_price")
        value = to_decimal(close_value_fiat, "close_value_fiat")
        if value < 0:
            raise InvalidInputError("close_value_fiat must be >= 0")
        fee = _fee(close_fee, "close_fee")

        currency = transaction.fiat_currency
        session = self._resolver.session()
        fee_fiat = await self._fee_in(session, fee, fee_currency or currency, currency)
        profit, percent = compute_profit(
            transaction.open_value_fiat, value, transaction.open_fee, fee_fiat
        )

        closed = await self._store.close_transaction_if_open(
            transaction_id,
            close_date=close_date if close_date is not None else now_ms(),
            close_price=price,
            close_value_fiat=value,
            close_fee=fee_fiat,
            profit_total_fiat=profit,
            profit_percent=percent,
            status=TransactionStatus.CLOSED,
        )
        if not closed:
            raise AlreadyClosedError(f"Transaction {transaction_id} is already closed")

        profit_usd = await session.convert(profit, currency)
        await self._realize(transaction.asset_id, profit_usd)

        logger.info(
            "transaction_closed",
            transaction_id=transaction_id,
            profit=str(profit),
            profit_percent=str(percent),
            profit_usd=str(profit_usd),
        )
        return await self.get_transaction(transaction_id)

    # ──────────────────────────────────────────────
    # Internal helpers
    # ──────────────────────────────────────────────

    async def _quote_of(self, symbol: str) -> str:
        quotes = [q.symbol for q in await self._store.list_quotes()]
        try:
            return split_symbol(symbol, quotes)[1]
        except InvalidInputError:
            return self._settings.stablecoin

    async def _fee_in(
        self, session: ConversionSession, fee: Decimal, fee_currency: str, currency: str
    ) -> Decimal:
        if fee == 0 or fee_currency.upper() == currency.upper():
            return fee
        fee_usd = await session.convert(fee, fee_currency.upper())
        rate = await session.usd_rate(currency.upper())
        if rate is None:
            return fee_usd
        return quantize_money(fee_usd / rate)

    async def _realize(self, asset_id: int, profit_usd: Decimal) -> None:
        async with self._asset_locks(asset_id):
            asset = await self._store.get_asset(asset_id)
            if asset is not None:
                allocation = asset.capital_allocation
                await self._store.update_asset(
                    asset_id,
                    capital_allocation=allocation.with_amount(allocation.amount + profit_usd),
                )
            else:
                logger.warning("profit_asset_missing", asset_id=asset_id)
        await self._registry.increment(self._settings.total_usd_register, profit_usd)
