"""Statistical models: Poisson goals, Elo outcomes, market calibration."""

from pitchedge.services.modeling.calibration import adjust_probability
from pitchedge.services.modeling.elo import (
    MatchProbabilities,
    match_probabilities,
    rating_from_history,
)
from pitchedge.services.modeling.history import GoalRates, TeamMatch, goal_rates, recent_window
from pitchedge.services.modeling.poisson import (
    ScorelineProbabilities,
    expected_goals,
    scoreline_probabilities,
    scoreline_probabilities_with_penalty,
    strength_ratios,
)

__all__ = [
    "TeamMatch",
    "GoalRates",
    "goal_rates",
    "recent_window",
    "expected_goals",
    "strength_ratios",
    "scoreline_probabilities",
    "scoreline_probabilities_with_penalty",
    "ScorelineProbabilities",
    "MatchProbabilities",
    "match_probabilities",
    "rating_from_history",
    "adjust_probability",
]
