"""Elo-style outcome model.

Ratings are not persisted: each team starts at 1500 every cycle and is
moved by its last results (+20 win, +5 draw, -15 loss). The rating gap,
with a 60 point home advantage, sets the home/draw/away split.
"""

import math
from collections.abc import Sequence
from dataclasses import dataclass

from pitchedge.services.modeling.history import TeamMatch

BASE_RATING = 1500.0
HOME_ADVANTAGE = 60.0
DEFAULT_DRAW_RATE = 0.26
MIN_DRAW = 0.10
MAX_DRAW = 0.30

RESULT_POINTS = {"W": 20.0, "D": 5.0, "L": -15.0}


@dataclass(frozen=True)
class MatchProbabilities:
    """Home/draw/away probabilities (sum to 1)."""

    home: float
    draw: float
    away: float


def rating_from_history(matches: Sequence[TeamMatch]) -> float:
    """Rating after replaying ``matches`` in chronological order."""
    rating = BASE_RATING
    for match in sorted(matches, key=lambda m: m.played_at):
        rating += RESULT_POINTS[match.result]
    return rating


def expected_score(rating_a: float, rating_b: float) -> float:
    """Standard logistic Elo win expectation of A against B."""
    return 1 / (1 + 10 ** ((rating_b - rating_a) / 400))


def match_probabilities(
    home_elo: float, away_elo: float, base_draw_rate: float = DEFAULT_DRAW_RATE
) -> MatchProbabilities:
    """
    Convert a rating gap into 1X2 probabilities.

    The draw share shrinks as the teams get more mismatched and is kept
    within [0.10, 0.30]; the rest is split by the logistic win function.
    """
    gap = (home_elo + HOME_ADVANTAGE) - away_elo
    draw = base_draw_rate * math.exp(-abs(gap) / 400)
    draw = min(max(draw, MIN_DRAW), MAX_DRAW)

    home_no_draw = 1 / (1 + 10 ** (-gap / 400))
    return MatchProbabilities(
        home=(1 - draw) * home_no_draw,
        draw=draw,
        away=(1 - draw) * (1 - home_no_draw),
    )
