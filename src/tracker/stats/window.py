"""Rolling window statistics over daily candle series.

window_stats: N-year high/low using a fixed 365-day year.
trend_estimate: annualized log-linear growth rate.

CRITICAL: All computations use Decimal. Never use float.
"""

from dataclasses import dataclass
from decimal import Decimal

from tracker.exceptions import ComputationError
from tracker.models import DAY_MS, MONEY_QUANTUM, Candle, now_ms

#: Trading days per year used to annualize the daily growth rate.
TRADING_DAYS_PER_YEAR = 252

YEAR_MS = 365 * DAY_MS


@dataclass
class WindowStats:
    """High/low over the lookback window. Both None when no candle falls inside it."""

    high: Decimal | None
    low: Decimal | None


def window_cutoff_ms(years: int, now: int | None = None) -> int:
    """Earliest close time inside a ``years`` lookback ending at ``now``."""
    return (now if now is not None else now_ms()) - years * YEAR_MS


def window_stats(candles: list[Candle], years: int, now: int | None = None) -> WindowStats:
    """Compute the high and low of candles closing within the last ``years``.

    A candle's ``high`` (``low``) is used when present, its ``close`` otherwise.

    Args:
        candles: Candle series (any order).
        years: Lookback length in 365-day years.
        now: Reference time in ms; defaults to the current time.

    Returns:
        WindowStats, with (None, None) when the window is empty.
    """
    cutoff = window_cutoff_ms(years, now)
    in_window = [c for c in candles if c.close_time_ms >= cutoff]
    if not in_window:
        return WindowStats(high=None, low=None)

    high = max(c.high if c.high is not None else c.close for c in in_window)
    low = min(c.low if c.low is not None else c.close for c in in_window)
    return WindowStats(high=high, low=low)


def trend_estimate(candles: list[Candle]) -> Decimal:
    """Annualized return (%) from a least-squares fit of ln(close) on elapsed days.

    x is real elapsed days since the first candle (calendar gaps count), so
    the slope is a continuous daily growth rate annualized as
    ``(e^(slope * 252) - 1) * 100``.

    Raises:
        ComputationError: empty series, non-positive close, or fewer than two
            distinct days (zero time variance).
    """
    if not candles:
        raise ComputationError("No candles to estimate a trend from")

    ordered = sorted(candles, key=lambda c: c.close_time_ms)
    origin = ordered[0].close_time_ms

    xs: list[Decimal] = []
    ys: list[Decimal] = []
    for candle in ordered:
        if candle.close <= 0:
            raise ComputationError(
                f"Non-positive close {candle.close} at {candle.close_time_ms}"
            )
        xs.append(Decimal(candle.close_time_ms - origin) / Decimal(DAY_MS))
        ys.append(candle.close.ln())

    n = Decimal(len(xs))
    mean_x = sum(xs, Decimal("0")) / n
    mean_y = sum(ys, Decimal("0")) / n

    sxx = sum(((x - mean_x) ** 2 for x in xs), Decimal("0"))
    if sxx == 0:
        raise ComputationError("Trend needs at least two distinct days")
    sxy = sum(((x - mean_x) * (y - mean_y) for x, y in zip(xs, ys)), Decimal("0"))

    slope = sxy / sxx
    annualized = ((slope * TRADING_DAYS_PER_YEAR).exp() - 1) * 100
    return annualized.quantize(MONEY_QUANTUM)
