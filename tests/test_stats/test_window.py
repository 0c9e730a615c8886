"""Tests for window statistics (N-year high/low) and the trend estimate.

All test values use Decimal (project convention).
"""

from decimal import Decimal

import pytest

from tracker.exceptions import ComputationError
from tracker.models import DAY_MS, Candle
from tracker.stats.window import YEAR_MS, trend_estimate, window_cutoff_ms, window_stats

NOW = 1_700_000_000_000


def _candle(days_ago: int, close: str, high: str | None = None, low: str | None = None) -> Candle:
    return Candle(
        close_time_ms=NOW - days_ago * DAY_MS,
        close=Decimal(close),
        high=Decimal(high) if high is not None else None,
        low=Decimal(low) if low is not None else None,
    )


class TestWindowStats:
    """High/low over the lookback window."""

    def test_uses_high_and_low_when_present(self) -> None:
        candles = [
            _candle(3, "100", high="120", low="90"),
            _candle(2, "110", high="115", low="95"),
            _candle(1, "105", high="108", low="101"),
        ]
        stats = window_stats(candles, years=7, now=NOW)
        assert stats.high == Decimal("120")
        assert stats.low == Decimal("90")

    def test_close_only_series_uses_close(self) -> None:
        """Equity/FX candles carry only a close."""
        candles = [_candle(3, "4.10"), _candle(2, "3.75"), _candle(1, "3.90")]
        stats = window_stats(candles, years=7, now=NOW)
        assert stats.high == Decimal("4.10")
        assert stats.low == Decimal("3.75")

    def test_candles_outside_window_ignored(self) -> None:
        old = Candle(close_time_ms=NOW - 7 * YEAR_MS - DAY_MS, close=Decimal("1"))
        recent = _candle(1, "50")
        stats = window_stats([old, recent], years=7, now=NOW)
        assert stats.high == Decimal("50")
        assert stats.low == Decimal("50")

    def test_candle_exactly_at_cutoff_included(self) -> None:
        edge = Candle(close_time_ms=window_cutoff_ms(7, NOW), close=Decimal("2"))
        stats = window_stats([edge, _candle(1, "50")], years=7, now=NOW)
        assert stats.low == Decimal("2")

    def test_empty_window_returns_none(self) -> None:
        stats = window_stats([], years=7, now=NOW)
        assert stats.high is None
        assert stats.low is None

    def test_single_candle(self) -> None:
        stats = window_stats([_candle(1, "42")], years=1, now=NOW)
        assert stats.high == stats.low == Decimal("42")


class TestTrendEstimate:
    """Annualized log-linear trend."""

    def test_constant_price_is_flat(self) -> None:
        candles = [_candle(d, "100") for d in range(30, 0, -1)]
        assert abs(trend_estimate(candles)) < Decimal("0.0001")

    def test_exponential_growth_recovers_rate(self) -> None:
        """close = 100 * e^(0.001 * day) annualizes to (e^0.252 - 1) * 100."""
        candles = [
            Candle(
                close_time_ms=NOW + d * DAY_MS,
                close=(Decimal("0.001") * d).exp() * 100,
            )
            for d in range(60)
        ]
        expected = ((Decimal("0.252")).exp() - 1) * 100
        assert abs(trend_estimate(candles) - expected) < Decimal("0.0001")

    def test_falling_price_is_negative(self) -> None:
        candles = [_candle(d, str(100 + d)) for d in range(20, 0, -1)]
        assert trend_estimate(candles) < 0

    def test_order_of_input_does_not_matter(self) -> None:
        candles = [_candle(3, "100"), _candle(1, "110"), _candle(2, "104")]
        assert trend_estimate(candles) == trend_estimate(list(reversed(candles)))

    def test_calendar_gaps_count_as_elapsed_days(self) -> None:
        """Same two prices further apart in time give a smaller slope."""
        near = [_candle(2, "100"), _candle(1, "110")]
        far = [_candle(11, "100"), _candle(1, "110")]
        assert trend_estimate(far) < trend_estimate(near)

    def test_result_has_eight_decimal_places(self) -> None:
        candles = [_candle(3, "100"), _candle(2, "101"), _candle(1, "103")]
        assert trend_estimate(candles).as_tuple().exponent == -8

    def test_empty_series_raises(self) -> None:
        with pytest.raises(ComputationError):
            trend_estimate([])

    def test_single_candle_raises(self) -> None:
        with pytest.raises(ComputationError):
            trend_estimate([_candle(1, "100")])

    def test_non_positive_close_raises(self) -> None:
        with pytest.raises(ComputationError):
            trend_estimate([_candle(2, "100"), _candle(1, "0")])
