"""Value types passed between the engine, its provider and its store."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class CycleStatus(str, Enum):
    """Engine cycle lifecycle."""
    RUNNING = "RUNNING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class Decision(str, Enum):
    """Publish decision for an evaluated candidate."""
    PUBLISH = "PUBLISH"
    BLOCK = "BLOCK"


class BlockReason(str, Enum):
    """Why a candidate was not published."""
    INSUFFICIENT_HISTORY = "INSUFFICIENT_HISTORY"
    MISSING_ODDS = "MISSING_ODDS"
    LOW_ODDS = "LOW_ODDS"
    LOW_PROB = "LOW_PROB"
    LOW_EDGE = "LOW_EDGE"
    BETTER_PICK_EXISTS = "BETTER_PICK_EXISTS"
    DAILY_LIMIT = "DAILY_LIMIT"
    REPLACED_BY_NEW_RUN = "REPLACED_BY_NEW_RUN"


@dataclass(frozen=True)
class FixtureInfo:
    """A scheduled fixture as the engine sees it."""

    id: int
    league_id: int
    home_team_id: int
    away_team_id: int
    kickoff_at: datetime
    home_team_name: str | None = None
    away_team_name: str | None = None


@dataclass
class PredictionRow:
    """One evaluated candidate, ready to persist."""

    fixture_id: int
    market: str
    line: float | None
    selection: str
    model_probability: float
    final_probability: float
    avg_odds: float
    implied_probability: float
    decision: Decision
    reason: BlockReason | None = None
    edge: float | None = None
    expected_value: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "fixture_id": self.fixture_id,
            "market": self.market,
            "line": self.line,
            "selection": self.selection,
            "model_probability": self.model_probability,
            "final_probability": self.final_probability,
            "avg_odds": self.avg_odds,
            "implied_probability": self.implied_probability,
            "edge": self.edge,
            "expected_value": self.expected_value,
            "decision": self.decision.value,
            "reason": self.reason.value if self.reason else None,
        }


@dataclass
class CycleDiagnostics:
    """Counters accumulated in memory during a cycle."""

    fixtures_found: int = 0
    fixtures_processed: int = 0
    fixtures_failed: int = 0
    predictions_published: int = 0
    predictions_blocked: int = 0
    predictions_superseded: int = 0
    block_reasons: dict[str, int] = field(default_factory=dict)

    def record(self, row: PredictionRow) -> None:
        if row.decision == Decision.PUBLISH:
            self.predictions_published += 1
            return
        self.predictions_blocked += 1
        if row.reason is not None:
            key = row.reason.value
            self.block_reasons[key] = self.block_reasons.get(key, 0) + 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "fixtures_found": self.fixtures_found,
            "fixtures_processed": self.fixtures_processed,
            "fixtures_failed": self.fixtures_failed,
            "predictions_published": self.predictions_published,
            "predictions_blocked": self.predictions_blocked,
            "predictions_superseded": self.predictions_superseded,
            "block_reasons": dict(self.block_reasons),
        }
