"""Candle aggregation and cost simulation over engine state"""

from .candles import TIMEFRAMES, aggregate, aggregate_timeframe, timeframe_to_ms
from .costs import CostEstimate, cheapest, estimate_cost, simulate_costs

__all__ = [
    "TIMEFRAMES",
    "CostEstimate",
    "aggregate",
    "aggregate_timeframe",
    "cheapest",
    "estimate_cost",
    "simulate_costs",
    "timeframe_to_ms",
]
