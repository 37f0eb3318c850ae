"""Cross-bookmaker odds averages.

Turns the raw odds points seen for a fixture into one average price per
(market, line, selection). A market group (e.g. OU 2.5 = OVER + UNDER) is
all-or-nothing: if any selection has no usable price, the whole group is
dropped so the engine never sees half a market.
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta

import structlog

from pitchedge.services.odds.normalizer import (
    MARKET_SELECTIONS,
    Market,
    Selection,
    average_price,
    latest_price_per_bookmaker,
)

logger = structlog.get_logger(__name__)

OddsKey = tuple[Market, float | None, Selection]


@dataclass(frozen=True)
class OddsPointData:
    """One normalized bookmaker price observation."""

    fixture_id: int
    bookmaker_id: int
    market: Market
    selection: Selection
    line: float | None
    price: float
    observed_at: datetime
    source: str = "sportmonks"

    @property
    def conflict_key(self) -> tuple:
        """Uniqueness key used for idempotent inserts."""
        return (
            self.fixture_id,
            self.bookmaker_id,
            self.market,
            self.line,
            self.selection,
            self.source,
            self.observed_at,
        )


@dataclass(frozen=True)
class OddsAverageData:
    """Average price for one selection, with the number of bookmakers used."""

    fixture_id: int
    market: Market
    line: float | None
    selection: Selection
    avg_odds: float
    bookmaker_count: int
    source: str
    window_end: datetime

    @property
    def key(self) -> OddsKey:
        return (self.market, self.line, self.selection)


def market_groups(ou_lines: Sequence[float]) -> list[tuple[Market, float | None]]:
    """All (market, line) groups the engine evaluates."""
    groups: list[tuple[Market, float | None]] = [
        (Market.ONE_X_TWO, None),
        (Market.BTTS, None),
    ]
    groups.extend((Market.OU, line) for line in ou_lines)
    return groups


def deduplicate_points(points: Iterable[OddsPointData]) -> list[OddsPointData]:
    """Drop repeated observations (same conflict key), keeping the first."""
    seen: set[tuple] = set()
    unique = []
    for point in points:
        if point.conflict_key in seen:
            continue
        seen.add(point.conflict_key)
        unique.append(point)
    return unique


def compute_odds_averages(
    fixture_id: int,
    points: Iterable[OddsPointData],
    now: datetime,
    window_hours: int,
    bookmaker_whitelist: Sequence[int],
    ou_lines: Sequence[float],
    source: str = "sportmonks",
) -> list[OddsAverageData]:
    """
    Compute trailing-window averages for every market group of a fixture.

    Args:
        fixture_id: Fixture the points belong to
        points: Raw observations (any fixture; others are ignored)
        now: End of the averaging window
        window_hours: Trailing window length
        bookmaker_whitelist: Bookmakers allowed to contribute
        ou_lines: Over/Under lines to average

    Returns:
        Averages for every complete market group
    """
    window_start = now - timedelta(hours=window_hours)
    allowed = set(bookmaker_whitelist)
    recent = [
        p
        for p in points
        if p.fixture_id == fixture_id
        and p.source == source
        and p.bookmaker_id in allowed
        and window_start <= p.observed_at <= now
    ]
    if not recent:
        return []

    averages: list[OddsAverageData] = []
    for market, line in market_groups(ou_lines):
        group_points = [p for p in recent if p.market == market and p.line == line]
        group_averages = []

        for selection in MARKET_SELECTIONS[market]:
            by_bookmaker = latest_price_per_bookmaker(
                (p.bookmaker_id, p.observed_at, p.price)
                for p in group_points
                if p.selection == selection
            )
            avg = average_price(by_bookmaker.values())
            if avg is None:
                break
            group_averages.append(
                OddsAverageData(
                    fixture_id=fixture_id,
                    market=market,
                    line=line,
                    selection=selection,
                    avg_odds=avg,
                    bookmaker_count=len(by_bookmaker),
                    source=source,
                    window_end=now,
                )
            )

        if len(group_averages) == len(MARKET_SELECTIONS[market]):
            averages.extend(group_averages)
        elif group_points:
            logger.debug(
                "odds_group_incomplete",
                fixture_id=fixture_id,
                market=market.value,
                line=line,
            )

    return averages
