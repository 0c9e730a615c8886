"""Portfolio tracker: daily candle sync, window statistics and multi-currency valuation."""
