"""Valuation layer -- USD conversion and exchange balance aggregation."""

from tracker.valuation.balances import BalanceAggregator, merge_balances
from tracker.valuation.rates import ConversionSession, RateResolver

__all__ = ["BalanceAggregator", "ConversionSession", "RateResolver", "merge_balances"]
