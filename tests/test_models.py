"""Tests for model parsing helpers."""

from decimal import Decimal

import pytest

from tracker.exceptions import InvalidInputError
from tracker.models import (
    DAY_MS,
    AllocationKind,
    Candle,
    CapitalAllocation,
    quantize_money,
    to_decimal,
)


class TestToDecimal:
    @pytest.mark.parametrize("value,expected", [("1.5", "1.5"), (2, "2"), (" 3 ", "3"), (0.1, "0.1")])
    def test_parses(self, value, expected) -> None:
        assert to_decimal(value) == Decimal(expected)

    @pytest.mark.parametrize("value", [None, True, "abc", "NaN", "-Infinity", [1]])
    def test_rejects(self, value) -> None:
        with pytest.raises(InvalidInputError):
            to_decimal(value, "price")


def test_quantize_money() -> None:
    assert quantize_money(Decimal("1") / Decimal("3")) == Decimal("0.33333333")


def test_candle_day() -> None:
    assert Candle(close_time_ms=3 * DAY_MS - 1, close=Decimal("1")).day == 2


class TestCapitalAllocation:
    """Scalar and structured allocations read and written through ``amount``."""

    def test_scalar_round_trip(self) -> None:
        allocation = CapitalAllocation.scalar(Decimal("200"))
        assert CapitalAllocation.from_json(allocation.to_json()) == allocation

    def test_structured_with_amount_keeps_other_entries(self) -> None:
        allocation = CapitalAllocation.structured({"USD": Decimal("100"), "PEN": Decimal("370")})

        updated = allocation.with_amount(Decimal("150"))

        assert updated.kind is AllocationKind.STRUCTURED
        assert updated.amount == Decimal("150")
        assert updated.breakdown["PEN"] == Decimal("370")
        assert allocation.amount == Decimal("100")

    def test_untagged_mapping_uses_default_field(self) -> None:
        allocation = CapitalAllocation.from_json({"PEN": "370", "USD": "100"})
        assert allocation.amount == Decimal("100")

    def test_untagged_mapping_without_default_field(self) -> None:
        allocation = CapitalAllocation.from_json({"EUR": "90"})
        assert allocation.amount_field == "EUR"
        assert allocation.amount == Decimal("90")

    def test_bare_number(self) -> None:
        assert CapitalAllocation.from_json("12.5") == CapitalAllocation.scalar(Decimal("12.5"))

    @pytest.mark.parametrize("raw", [{}, "abc", {"USD": "x"}])
    def test_rejects(self, raw) -> None:
        with pytest.raises(InvalidInputError):
            CapitalAllocation.from_json(raw)

    def test_none(self) -> None:
        assert CapitalAllocation.from_json(None) is None
