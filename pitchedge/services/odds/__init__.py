"""Odds normalization and averaging."""

from pitchedge.services.odds.averages import (
    OddsAverageData,
    OddsPointData,
    compute_odds_averages,
    deduplicate_points,
)
from pitchedge.services.odds.normalizer import (
    Market,
    Selection,
    average_price,
    normalize_line,
    normalize_market,
    normalize_selection,
)

__all__ = [
    "Market",
    "Selection",
    "OddsPointData",
    "OddsAverageData",
    "average_price",
    "compute_odds_averages",
    "deduplicate_points",
    "normalize_line",
    "normalize_market",
    "normalize_selection",
]
