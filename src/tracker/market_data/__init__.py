"""Market data layer -- equity/FX chart history and fiat exchange rates."""

from tracker.market_data.fx_rates import FxRateClient
from tracker.market_data.yahoo import YahooChartClient, parse_chart

__all__ = ["FxRateClient", "YahooChartClient", "parse_chart"]
