"""Odds normalization.

Maps the provider's loosely named markets, selections and lines onto the
canonical vocabulary the engine evaluates, and averages prices across
bookmakers. Everything here is pure.
"""

import math
import re
from collections.abc import Iterable
from datetime import datetime
from enum import Enum
from typing import Any

# Usable price range (exclusive on both ends)
MIN_VALID_PRICE = 1.01
MAX_VALID_PRICE = 100.0

_SEPARATORS = re.compile(r"[/_\-.]")
_NUMBER = re.compile(r"(\d+\.?\d*)")


class Market(str, Enum):
    """Canonical markets."""
    ONE_X_TWO = "1X2"
    BTTS = "BTTS"
    OU = "OU"


class Selection(str, Enum):
    """Canonical selections across all markets."""
    HOME = "HOME"
    DRAW = "DRAW"
    AWAY = "AWAY"
    YES = "YES"
    NO = "NO"
    OVER = "OVER"
    UNDER = "UNDER"


MARKET_SELECTIONS: dict[Market, tuple[Selection, ...]] = {
    Market.ONE_X_TWO: (Selection.HOME, Selection.DRAW, Selection.AWAY),
    Market.BTTS: (Selection.YES, Selection.NO),
    Market.OU: (Selection.OVER, Selection.UNDER),
}


def normalize_market(raw: str | None) -> Market | None:
    """
    Map a raw market name to a canonical market.

    Matching is case-insensitive and treats ``/ _ - .`` as spaces, so
    "Over/Under", "over_under" and "Over Under" all resolve to OU.
    """
    if not raw:
        return None
    s = _SEPARATORS.sub(" ", raw.lower())

    if (
        "1x2" in s
        or "h2h" in s
        or "moneyline" in s
        or s.strip() == "match winner"
        or "fulltime result" in s
    ):
        return Market.ONE_X_TWO
    if "btts" in s or "both teams to score" in s:
        return Market.BTTS
    if (
        "ou" in s.split()
        or "over under" in s
        or "total" in s
        or "goal line" in s
    ):
        return Market.OU
    return None


def normalize_selection(market: Market, raw: Any) -> Selection | None:
    """Map a raw selection label to a canonical selection for the market."""
    if raw is None:
        return None
    s = str(raw).strip().lower()

    if market == Market.ONE_X_TWO:
        if s in ("home", "h", "1"):
            return Selection.HOME
        if s in ("draw", "d", "x"):
            return Selection.DRAW
        if s in ("away", "a", "2"):
            return Selection.AWAY
        return None
    if market == Market.BTTS:
        if s in ("yes", "y", "1"):
            return Selection.YES
        if s in ("no", "n", "0"):
            return Selection.NO
        return None
    if market == Market.OU:
        if "over" in s or s == "o":
            return Selection.OVER
        if "under" in s or s == "u":
            return Selection.UNDER
        return None
    return None


def normalize_line(raw: Any) -> float | None:
    """Parse a numeric line; returns None for empty or non-numeric input."""
    if raw is None or raw == "":
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(value):
        return None
    return value


def line_from_label(label: str | None) -> float | None:
    """Pull a line out of a label such as "Over 2.5"."""
    if not label:
        return None
    match = _NUMBER.search(label)
    if match is None:
        return None
    return normalize_line(match.group(1))


def is_valid_price(price: float) -> bool:
    """Check a decimal price is inside the usable range."""
    return MIN_VALID_PRICE < price < MAX_VALID_PRICE


def average_price(prices: Iterable[float]) -> float | None:
    """
    Arithmetic mean of the usable prices.

    Returns None when no price survives the (1.01, 100) filter.
    """
    valid = [p for p in prices if is_valid_price(p)]
    if not valid:
        return None
    return sum(valid) / len(valid)


def latest_price_per_bookmaker(
    observations: Iterable[tuple[int, datetime, float]],
) -> dict[int, float]:
    """
    Keep one price per bookmaker: its most recent observation.

    Args:
        observations: (bookmaker_id, observed_at, price) tuples

    Returns:
        Mapping of bookmaker id to latest price
    """
    latest: dict[int, tuple[datetime, float]] = {}
    for bookmaker_id, observed_at, price in observations:
        current = latest.get(bookmaker_id)
        if current is None or observed_at > current[0]:
            latest[bookmaker_id] = (observed_at, price)
    return {bookmaker_id: price for bookmaker_id, (_, price) in latest.items()}
