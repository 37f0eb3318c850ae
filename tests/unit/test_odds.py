"""Unit tests for odds normalization and cross-bookmaker averaging."""

from datetime import timedelta

import pytest

from conftest import NOW
from pitchedge.services.odds.averages import (
    OddsPointData,
    compute_odds_averages,
    deduplicate_points,
    market_groups,
)
from pitchedge.services.odds.normalizer import (
    Market,
    Selection,
    average_price,
    is_valid_price,
    latest_price_per_bookmaker,
    line_from_label,
    normalize_line,
    normalize_market,
    normalize_selection,
)

WHITELIST = (2, 5, 9, 20, 29)
LINES = (1.5, 2.5, 3.5)


def point(bookmaker_id, market, selection, price, line=None, observed_at=NOW, fixture_id=1):
    return OddsPointData(
        fixture_id=fixture_id,
        bookmaker_id=bookmaker_id,
        market=market,
        selection=selection,
        line=line,
        price=price,
        observed_at=observed_at,
    )


class TestNormalizeMarket:
    """Test raw market name mapping."""

    @pytest.mark.parametrize(
        "raw",
        ["1X2", "Fulltime Result", "Match Winner", "h2h", "Moneyline"],
    )
    def test_match_result_aliases(self, raw):
        assert normalize_market(raw) == Market.ONE_X_TWO

    @pytest.mark.parametrize("raw", ["BTTS", "Both Teams To Score", "both_teams_to_score"])
    def test_btts_aliases(self, raw):
        assert normalize_market(raw) == Market.BTTS

    @pytest.mark.parametrize(
        "raw",
        ["Over/Under", "over_under", "Goals Over Under", "Total Goals", "Goal Line", "OU"],
    )
    def test_over_under_aliases(self, raw):
        assert normalize_market(raw) == Market.OU

    @pytest.mark.parametrize("raw", [None, "", "Correct Score", "Asian Handicap"])
    def test_unknown_markets(self, raw):
        assert normalize_market(raw) is None


class TestNormalizeSelection:
    """Test selection labels per market."""

    def test_match_result_selections(self):
        assert normalize_selection(Market.ONE_X_TWO, "Home") == Selection.HOME
        assert normalize_selection(Market.ONE_X_TWO, "1") == Selection.HOME
        assert normalize_selection(Market.ONE_X_TWO, "X") == Selection.DRAW
        assert normalize_selection(Market.ONE_X_TWO, 2) == Selection.AWAY

    def test_btts_selections(self):
        assert normalize_selection(Market.BTTS, "Yes") == Selection.YES
        assert normalize_selection(Market.BTTS, "n") == Selection.NO

    def test_over_under_selections_contain_keyword(self):
        assert normalize_selection(Market.OU, "Over 2.5") == Selection.OVER
        assert normalize_selection(Market.OU, "under") == Selection.UNDER

    def test_selection_from_other_market_rejected(self):
        assert normalize_selection(Market.BTTS, "Home") is None
        assert normalize_selection(Market.OU, None) is None


class TestLinesAndPrices:
    """Test line parsing and price validity."""

    def test_normalize_line(self):
        assert normalize_line("2.5") == 2.5
        assert normalize_line(3) == 3.0
        assert normalize_line("") is None
        assert normalize_line("abc") is None
        assert normalize_line(float("inf")) is None

    def test_line_from_label(self):
        assert line_from_label("Over 2.5") == 2.5
        assert line_from_label("Under") is None

    def test_price_bounds_are_exclusive(self):
        assert not is_valid_price(1.01)
        assert is_valid_price(1.02)
        assert is_valid_price(99.9)
        assert not is_valid_price(100.0)

    def test_average_price_ignores_invalid(self):
        assert average_price([2.0, 2.2, 1.0, 150.0]) == pytest.approx(2.1)

    def test_average_price_none_when_nothing_valid(self):
        assert average_price([1.0, 101.0]) is None
        assert average_price([]) is None

    def test_latest_price_per_bookmaker(self):
        observations = [
            (2, NOW - timedelta(hours=2), 1.90),
            (2, NOW, 2.05),
            (5, NOW - timedelta(hours=1), 2.10),
        ]
        assert latest_price_per_bookmaker(observations) == {2: 2.05, 5: 2.10}


class TestComputeOddsAverages:
    """Test trailing-window averages per market group."""

    def test_market_groups(self):
        groups = market_groups(LINES)
        assert groups[:2] == [(Market.ONE_X_TWO, None), (Market.BTTS, None)]
        assert (Market.OU, 2.5) in groups
        assert len(groups) == 5

    def test_complete_btts_group_is_averaged(self):
        points = [
            point(2, Market.BTTS, Selection.YES, 1.90),
            point(5, Market.BTTS, Selection.YES, 2.10),
            point(2, Market.BTTS, Selection.NO, 1.80),
        ]
        averages = compute_odds_averages(1, points, NOW, 24, WHITELIST, LINES)
        by_selection = {a.selection: a for a in averages}

        assert by_selection[Selection.YES].avg_odds == pytest.approx(2.0)
        assert by_selection[Selection.YES].bookmaker_count == 2
        assert by_selection[Selection.NO].avg_odds == pytest.approx(1.8)
        assert all(a.window_end == NOW for a in averages)

    def test_incomplete_group_is_dropped_entirely(self):
        """OU 2.5 with only an OVER price must not produce any average."""
        points = [
            point(2, Market.OU, Selection.OVER, 1.95, line=2.5),
            point(2, Market.BTTS, Selection.YES, 1.90),
            point(2, Market.BTTS, Selection.NO, 1.85),
        ]
        averages = compute_odds_averages(1, points, NOW, 24, WHITELIST, LINES)

        assert {a.market for a in averages} == {Market.BTTS}

    def test_match_result_needs_all_three_selections(self):
        points = [
            point(2, Market.ONE_X_TWO, Selection.HOME, 1.80),
            point(2, Market.ONE_X_TWO, Selection.AWAY, 4.20),
        ]
        assert compute_odds_averages(1, points, NOW, 24, WHITELIST, LINES) == []

    def test_points_outside_window_or_whitelist_ignored(self):
        points = [
            point(2, Market.BTTS, Selection.YES, 2.00),
            point(2, Market.BTTS, Selection.NO, 1.80),
            point(5, Market.BTTS, Selection.YES, 3.00, observed_at=NOW - timedelta(hours=30)),
            point(999, Market.BTTS, Selection.YES, 5.00),
            point(9, Market.BTTS, Selection.YES, 4.00, fixture_id=2),
        ]
        averages = compute_odds_averages(1, points, NOW, 24, WHITELIST, LINES)
        yes = next(a for a in averages if a.selection == Selection.YES)

        assert yes.avg_odds == pytest.approx(2.0)
        assert yes.bookmaker_count == 1

    def test_uses_latest_price_of_each_bookmaker(self):
        points = [
            point(2, Market.BTTS, Selection.YES, 1.70, observed_at=NOW - timedelta(hours=3)),
            point(2, Market.BTTS, Selection.YES, 1.90),
            point(2, Market.BTTS, Selection.NO, 1.95),
        ]
        averages = compute_odds_averages(1, points, NOW, 24, WHITELIST, LINES)
        yes = next(a for a in averages if a.selection == Selection.YES)

        assert yes.avg_odds == pytest.approx(1.90)

    def test_no_points_no_averages(self):
        assert compute_odds_averages(1, [], NOW, 24, WHITELIST, LINES) == []

    def test_deduplicate_points(self):
        a = point(2, Market.BTTS, Selection.YES, 1.90)
        b = point(2, Market.BTTS, Selection.YES, 1.90)
        c = point(5, Market.BTTS, Selection.YES, 1.90)

        assert deduplicate_points([a, b, c]) == [a, c]
