"""Candidate evaluation.

Every fixture yields 11 candidates (1X2 x3, BTTS x2, OU x2 per line).
Each is priced against the market, gated, and at most one per fixture
survives as the winner. Winners then compete for the daily quota.
"""

from collections import defaultdict
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, replace
from datetime import date, datetime, timezone
from functools import cmp_to_key

from pitchedge.config import EngineRules
from pitchedge.services.engine.types import BlockReason, Decision, PredictionRow
from pitchedge.services.modeling.calibration import adjust_probability
from pitchedge.services.modeling.elo import MatchProbabilities
from pitchedge.services.modeling.poisson import ScorelineProbabilities
from pitchedge.services.odds.averages import OddsKey
from pitchedge.services.odds.normalizer import Market, Selection


@dataclass(frozen=True)
class Candidate:
    """A (market, line, selection) with its raw model probability."""

    market: Market
    line: float | None
    selection: Selection
    model_probability: float

    @property
    def key(self) -> OddsKey:
        return (self.market, self.line, self.selection)


def build_candidates(
    outcome: MatchProbabilities,
    goals: ScorelineProbabilities,
    ou_lines: Sequence[float],
) -> list[Candidate]:
    """Enumerate every candidate for one fixture."""
    candidates = [
        Candidate(Market.ONE_X_TWO, None, Selection.HOME, outcome.home),
        Candidate(Market.ONE_X_TWO, None, Selection.DRAW, outcome.draw),
        Candidate(Market.ONE_X_TWO, None, Selection.AWAY, outcome.away),
        Candidate(Market.BTTS, None, Selection.YES, goals.btts),
        Candidate(Market.BTTS, None, Selection.NO, 1 - goals.btts),
    ]
    for line in ou_lines:
        over = goals.over(line)
        candidates.append(Candidate(Market.OU, line, Selection.OVER, over))
        candidates.append(Candidate(Market.OU, line, Selection.UNDER, 1 - over))
    return candidates


def evaluate_candidate(
    fixture_id: int,
    candidate: Candidate,
    avg_odds: float | None,
    rules: EngineRules,
) -> PredictionRow:
    """
    Price and gate one candidate.

    Gates run in order and the first failure is the reason: MISSING_ODDS,
    LOW_ODDS, LOW_PROB, LOW_EDGE. A candidate passing all four comes back
    as PUBLISH, provisionally; winner selection and the daily quota may
    still block it.
    """
    price = avg_odds or 0.0
    p_model = candidate.model_probability

    if price > 0:
        implied = 1 / price
        p_final = adjust_probability(p_model, implied)
        edge = p_final - implied
        ev = p_final * price - 1
    else:
        # No market to anchor to: gate on the raw probability
        implied = 0.0
        p_final = p_model
        edge = None
        ev = None

    reason = None
    if price <= 0:
        reason = BlockReason.MISSING_ODDS
    elif price < rules.min_publish_odds:
        reason = BlockReason.LOW_ODDS
    elif p_final < rules.prob_threshold:
        reason = BlockReason.LOW_PROB
    elif edge < rules.min_edge:
        reason = BlockReason.LOW_EDGE

    return PredictionRow(
        fixture_id=fixture_id,
        market=candidate.market.value,
        line=candidate.line,
        selection=candidate.selection.value,
        model_probability=p_model,
        final_probability=p_final,
        avg_odds=price,
        implied_probability=implied,
        decision=Decision.BLOCK if reason else Decision.PUBLISH,
        reason=reason,
        edge=edge,
        expected_value=ev,
    )


def select_fixture_winner(
    rows: Sequence[PredictionRow], tie_tolerance: float = 0.001
) -> tuple[PredictionRow | None, list[PredictionRow]]:
    """
    Pick one winner among a fixture's eligible rows.

    Highest final probability wins; probabilities within ``tie_tolerance``
    are tied and the higher price wins. Every other eligible row is
    blocked with BETTER_PICK_EXISTS.

    Returns:
        (winner or None, all rows with losers re-marked)
    """
    eligible = [r for r in rows if r.decision == Decision.PUBLISH]
    if not eligible:
        return None, list(rows)

    def compare(a: PredictionRow, b: PredictionRow) -> int:
        diff = b.final_probability - a.final_probability
        if abs(diff) > tie_tolerance:
            return 1 if diff > 0 else -1
        if b.avg_odds != a.avg_odds:
            return 1 if b.avg_odds > a.avg_odds else -1
        return 0

    winner = sorted(eligible, key=cmp_to_key(compare))[0]
    result = []
    for row in rows:
        if row.decision == Decision.PUBLISH and row is not winner:
            row = replace(row, decision=Decision.BLOCK, reason=BlockReason.BETTER_PICK_EXISTS)
        result.append(row)
    return winner, result


def kickoff_date(kickoff_at: datetime) -> date:
    """Calendar date of a kickoff in UTC."""
    if kickoff_at.tzinfo is None:
        kickoff_at = kickoff_at.replace(tzinfo=timezone.utc)
    return kickoff_at.astimezone(timezone.utc).date()


def apply_daily_limit(
    winners: Mapping[int, tuple[datetime, PredictionRow]], limit: int
) -> set[int]:
    """
    Enforce the per-day publish quota.

    Args:
        winners: fixture id -> (kickoff, winning row)
        limit: Maximum winners kept per kickoff date

    Returns:
        Fixture ids whose winner falls outside the quota
    """
    by_date: dict[date, list[tuple[int, PredictionRow]]] = defaultdict(list)
    for fixture_id, (kickoff_at, row) in winners.items():
        by_date[kickoff_date(kickoff_at)].append((fixture_id, row))

    over_limit: set[int] = set()
    for day_winners in by_date.values():
        ranked = sorted(
            day_winners,
            key=lambda item: item[1].expected_value if item[1].expected_value is not None else float("-inf"),
            reverse=True,
        )
        over_limit.update(fixture_id for fixture_id, _ in ranked[limit:])
    return over_limit


def block_daily_limit(rows: Sequence[PredictionRow]) -> list[PredictionRow]:
    """Re-mark a fixture's published row as DAILY_LIMIT."""
    return [
        replace(r, decision=Decision.BLOCK, reason=BlockReason.DAILY_LIMIT)
        if r.decision == Decision.PUBLISH
        else r
        for r in rows
    ]


def insufficient_history_row(fixture_id: int) -> PredictionRow:
    """Placeholder row for a fixture whose teams lack match history."""
    return PredictionRow(
        fixture_id=fixture_id,
        market="ALL",
        line=None,
        selection="N/A",
        model_probability=0.0,
        final_probability=0.0,
        avg_odds=0.0,
        implied_probability=0.0,
        decision=Decision.BLOCK,
        reason=BlockReason.INSUFFICIENT_HISTORY,
    )
