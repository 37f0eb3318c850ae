"""Market outcome rules for finished fixtures."""

from enum import Enum

from pitchedge.services.betting.bankroll import BetResult


class Outcome(str, Enum):
    WON = "won"
    LOST = "lost"
    PUSH = "push"


RESULT_FOR_OUTCOME = {
    Outcome.WON: BetResult.WIN,
    Outcome.LOST: BetResult.LOSS,
    Outcome.PUSH: BetResult.PUSH,
}


def _won(hit: bool) -> Outcome:
    return Outcome.WON if hit else Outcome.LOST


def determine_outcome(
    market: str,
    selection: str,
    line: float | None,
    home_goals: int,
    away_goals: int,
) -> Outcome | None:
    """
    Resolve a prediction against a final score.

    Over/Under settles as a push when the total equals the line. Returns
    None when the market, selection or line can't be resolved (e.g. the
    INSUFFICIENT_HISTORY placeholder).
    """
    if market == "1X2":
        if selection == "HOME":
            return _won(home_goals > away_goals)
        if selection == "DRAW":
            return _won(home_goals == away_goals)
        if selection == "AWAY":
            return _won(away_goals > home_goals)
        return None

    if market == "BTTS":
        both_scored = home_goals >= 1 and away_goals >= 1
        if selection == "YES":
            return _won(both_scored)
        if selection == "NO":
            return _won(not both_scored)
        return None

    if market == "OU":
        if line is None:
            return None
        total = home_goals + away_goals
        if total == line:
            return Outcome.PUSH
        if selection == "OVER":
            return _won(total > line)
        if selection == "UNDER":
            return _won(total < line)
        return None

    return None
