"""Window statistics engine: N-year high/low bounds and trend estimate."""

from tracker.stats.window import WindowStats, trend_estimate, window_cutoff_ms, window_stats

__all__ = ["WindowStats", "trend_estimate", "window_cutoff_ms", "window_stats"]
