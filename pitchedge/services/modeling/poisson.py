"""Poisson goal model.

Expected goals per side come from league average scoring scaled by each
team's attack and defensive-weakness ratios. Independent Poisson
distributions (truncated at 6 goals) then give BTTS and Over/Under
probabilities.
"""

import math
from dataclasses import asdict, dataclass
from typing import Any

from pitchedge.services.modeling.history import GoalRates

HOME_ADVANTAGE = 1.1
MAX_GOALS = 6

# BTTS low-scoring penalties
LOW_LAMBDA_THRESHOLD = 0.90
LOW_LAMBDA_FACTOR = 0.90
LOW_LEAGUE_AVG_PER_TEAM = 1.15
LOW_LEAGUE_FACTOR = 0.92


@dataclass
class ScorelineProbabilities:
    """Market probabilities derived from the scoreline distribution."""

    btts: float
    over15: float
    over25: float
    over35: float
    under15: float
    under25: float
    under35: float

    # Unpenalised BTTS, only set by the penalty variant
    btts_raw: float | None = None

    def over(self, line: float) -> float:
        """Over probability for one of the supported lines."""
        return getattr(self, _line_attr("over", line))

    def under(self, line: float) -> float:
        """Under probability for one of the supported lines."""
        return getattr(self, _line_attr("under", line))

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _line_attr(prefix: str, line: float) -> str:
    attr = f"{prefix}{int(round(line * 10))}"
    if attr not in ScorelineProbabilities.__dataclass_fields__:
        raise ValueError(f"Unsupported line: {line}")
    return attr


def poisson_pmf(k: int, lam: float) -> float:
    """P(X = k) for X ~ Poisson(lam)."""
    return (lam**k) * math.exp(-lam) / math.factorial(k)


def strength_ratios(
    home: GoalRates, away: GoalRates, league_avg_goals: float
) -> tuple[float, float, float, float]:
    """
    Attack and defensive-weakness ratios relative to an average team.

    Each rate is divided by half the league average (goals per team per
    match), so 1.0 means league average.

    Returns:
        (home_attack, away_defense_weakness, away_attack, home_defense_weakness)
    """
    per_team = league_avg_goals / 2 or 1
    return (
        home.scored / per_team,
        away.conceded / per_team,
        away.scored / per_team,
        home.conceded / per_team,
    )


def expected_goals(
    league_avg_goals: float,
    home_attack: float,
    away_defense_weakness: float,
    away_attack: float,
    home_defense_weakness: float,
) -> tuple[float, float]:
    """
    Expected goals (lambda) for each side.

    Only the home side gets the fixed 1.1 advantage multiplier.
    """
    lambda_home = league_avg_goals * home_attack * away_defense_weakness * HOME_ADVANTAGE
    lambda_away = league_avg_goals * away_attack * home_defense_weakness
    return lambda_home, lambda_away


def scoreline_probabilities(
    lambda_home: float, lambda_away: float, max_goals: int = MAX_GOALS
) -> ScorelineProbabilities:
    """
    BTTS and Over/Under probabilities from two independent Poisson sides.

    Tail mass beyond ``max_goals`` per side is ignored. A total equal to
    the line counts for neither side, so under = 1 - over.
    """
    p_home = [poisson_pmf(i, lambda_home) for i in range(max_goals + 1)]
    p_away = [poisson_pmf(j, lambda_away) for j in range(max_goals + 1)]

    btts = 1 - p_home[0] - p_away[0] + p_home[0] * p_away[0]

    over15 = over25 = over35 = 0.0
    for i, ph in enumerate(p_home):
        for j, pa in enumerate(p_away):
            joint = ph * pa
            total = i + j
            if total > 1.5:
                over15 += joint
            if total > 2.5:
                over25 += joint
            if total > 3.5:
                over35 += joint

    return ScorelineProbabilities(
        btts=btts,
        over15=over15,
        over25=over25,
        over35=over35,
        under15=1 - over15,
        under25=1 - over25,
        under35=1 - over35,
    )


def scoreline_probabilities_with_penalty(
    lambda_home: float,
    lambda_away: float,
    league_avg_goals_per_team: float,
    max_goals: int = MAX_GOALS,
) -> ScorelineProbabilities:
    """
    Scoreline probabilities with BTTS damped for low-scoring matchups.

    Both penalties are multiplicative on the computed BTTS value: x0.90 if
    either lambda is below 0.90, and a further x0.92 if the league averages
    under 1.15 goals per team.
    """
    probs = scoreline_probabilities(lambda_home, lambda_away, max_goals)
    btts = probs.btts

    if min(lambda_home, lambda_away) < LOW_LAMBDA_THRESHOLD:
        btts *= LOW_LAMBDA_FACTOR
    if league_avg_goals_per_team < LOW_LEAGUE_AVG_PER_TEAM:
        btts *= LOW_LEAGUE_FACTOR

    probs.btts_raw = probs.btts
    probs.btts = btts
    return probs
