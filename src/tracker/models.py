"""Shared data models for the portfolio tracker.

CRITICAL: All monetary values use Decimal. Never use float for prices, amounts, or fees.
"""

import time
from dataclasses import dataclass, field, replace
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

from tracker.exceptions import InvalidInputError

#: Monetary results are stored and returned with 8 decimal places.
MONEY_QUANTUM = Decimal("0.00000001")

DAY_MS = 86_400_000


def to_decimal(value: Any, field_name: str = "value") -> Decimal:
    """Parse a finite Decimal from a number or numeric string.

    Raises InvalidInputError for booleans, non-numeric input, NaN and infinities.
    """
    if isinstance(value, bool) or value is None:
        raise InvalidInputError(f"{field_name} must be a number")
    try:
        parsed = Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as e:
        raise InvalidInputError(f"{field_name} must be a number") from e
    if not parsed.is_finite():
        raise InvalidInputError(f"{field_name} must be a finite number")
    return parsed


def quantize_money(value: Decimal) -> Decimal:
    """Round a monetary value to 8 decimal places."""
    return value.quantize(MONEY_QUANTUM)


def now_ms() -> int:
    return int(time.time() * 1000)


class AssetType(str, Enum):
    """Instrument classification; selects the candle source."""

    CRYPTO = "crypto"
    STOCK = "stock"
    FIAT = "fiat"


class TransactionSide(str, Enum):
    LONG = "long"
    SHORT = "short"


class TransactionStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


class AllocationKind(str, Enum):
    SCALAR = "scalar"
    STRUCTURED = "structured"


@dataclass(frozen=True)
class CapitalAllocation:
    """Capital recorded against a holding.

    Either a bare amount (SCALAR) or a currency -> amount breakdown
    (STRUCTURED) whose ``amount_field`` entry is the tracked amount.
    Read through ``amount`` and write through ``with_amount``.
    """

    kind: AllocationKind
    value: Decimal = Decimal("0")
    breakdown: dict[str, Decimal] = field(default_factory=dict)
    amount_field: str = "USD"

    @classmethod
    def scalar(cls, amount: Decimal) -> "CapitalAllocation":
        return cls(kind=AllocationKind.SCALAR, value=amount)

    @classmethod
    def structured(
        cls, breakdown: dict[str, Decimal], amount_field: str = "USD"
    ) -> "CapitalAllocation":
        return cls(
            kind=AllocationKind.STRUCTURED,
            breakdown=dict(breakdown),
            amount_field=amount_field,
        )

    @property
    def amount(self) -> Decimal:
        if self.kind is AllocationKind.SCALAR:
            return self.value
        return self.breakdown.get(self.amount_field, Decimal("0"))

    def with_amount(self, amount: Decimal) -> "CapitalAllocation":
        """Return a copy of the same kind carrying ``amount``."""
        if self.kind is AllocationKind.SCALAR:
            return replace(self, value=amount)
        breakdown = dict(self.breakdown)
        breakdown[self.amount_field] = amount
        return replace(self, breakdown=breakdown)

    def to_json(self) -> dict:
        if self.kind is AllocationKind.SCALAR:
            return {"kind": self.kind.value, "amount": str(self.value)}
        return {
            "kind": self.kind.value,
            "amount_field": self.amount_field,
            "breakdown": {k: str(v) for k, v in self.breakdown.items()},
        }

    @classmethod
    def from_json(
        cls, raw: Any, default_field: str = "USD"
    ) -> "CapitalAllocation | None":
        """Tag a stored or submitted value.

        Accepts the tagged form written by ``to_json``, a bare number, or an
        untagged mapping (legacy documents). For an untagged mapping the
        ``default_field`` entry is the amount when present, else the first key.
        """
        if raw is None:
            return None
        if isinstance(raw, CapitalAllocation):
            return raw
        if isinstance(raw, dict):
            if raw.get("kind") == AllocationKind.SCALAR.value:
                return cls.scalar(to_decimal(raw.get("amount"), "amount"))
            if raw.get("kind") == AllocationKind.STRUCTURED.value:
                breakdown = {
                    str(k): to_decimal(v, str(k))
                    for k, v in (raw.get("breakdown") or {}).items()
                }
                return cls.structured(
                    breakdown, raw.get("amount_field") or default_field
                )
            if not raw:
                raise InvalidInputError("allocation mapping must not be empty")
            breakdown = {str(k): to_decimal(v, str(k)) for k, v in raw.items()}
            amount_field = default_field if default_field in breakdown else next(iter(breakdown))
            return cls.structured(breakdown, amount_field)
        return cls.scalar(to_decimal(raw, "allocation"))


@dataclass
class Candle:
    """One day's price summary. ``high``/``low`` are absent for close-only sources."""

    close_time_ms: int
    close: Decimal
    high: Decimal | None = None
    low: Decimal | None = None

    @property
    def day(self) -> int:
        """UTC calendar day index (days since epoch)."""
        return self.close_time_ms // DAY_MS


@dataclass
class Exchange:
    id: int
    name: str
    api_url: str | None = None


@dataclass
class Quote:
    id: int
    symbol: str
    description: str | None = None


@dataclass
class Asset:
    """A tracked holding and its valuation bounds over the lookback window."""

    id: int
    symbol: str
    exchange_id: int | None
    type: AssetType
    capital_allocation: CapitalAllocation
    initial_investment: CapitalAllocation | None = None
    max_price_window: Decimal | None = None
    min_price_window: Decimal | None = None
    trend_estimate: Decimal | None = None
    created_at: int = field(default_factory=now_ms)


@dataclass
class ConfigEntry:
    """A named scalar register holding a process-wide running total."""

    id: int
    name: str
    total: Decimal
    description: str | None = None


@dataclass
class Transaction:
    """An open/close trade recorded against an asset. Values in ``fiat_currency``."""

    id: int
    asset_id: int
    side: TransactionSide
    open_date: int
    open_price: Decimal
    amount: Decimal
    open_value_fiat: Decimal
    fiat_currency: str = "USDT"
    open_fee: Decimal = Decimal("0")
    close_date: int | None = None
    close_price: Decimal | None = None
    close_value_fiat: Decimal | None = None
    close_fee: Decimal = Decimal("0")
    profit_percent: Decimal = Decimal("0")
    profit_total_fiat: Decimal = Decimal("0")
    status: TransactionStatus = TransactionStatus.OPEN


@dataclass
class DepositWithdrawal:
    id: int
    kind: str  # "deposit" | "withdrawal"
    quantity_usd: Decimal
    created_at: int = field(default_factory=now_ms)


@dataclass
class Balance:
    """Aggregated amount of one asset across sub-ledgers."""

    asset: str
    amount: Decimal


@dataclass
class ValuedBalance:
    asset: str
    total: Decimal
    usd_value: Decimal


@dataclass
class BalanceReport:
    """Valued balances plus running totals carried from their registers."""

    balances: list[ValuedBalance]
    total_usd: Decimal
    total_secondary: Decimal
    secondary_currency: str
