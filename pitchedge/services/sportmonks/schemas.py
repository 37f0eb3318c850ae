"""SportMonks payload schemas.

Provider JSON is loosely shaped: fields go missing, numbers arrive as
strings and nested objects are optional. These models are the validation
boundary; anything unusable becomes None and callers drop the record.
"""

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from pitchedge.services.engine.types import FixtureInfo
from pitchedge.services.modeling.history import TeamMatch

# Provider state ids that mean the match is over (FT, AET, FT_PEN)
FINISHED_STATE_IDS = frozenset({5, 7, 8})


def _to_float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class SmModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class SmParticipantMeta(SmModel):
    location: str | None = None


class SmParticipant(SmModel):
    id: int
    name: str | None = None
    meta: SmParticipantMeta | None = None

    @property
    def location(self) -> str | None:
        return self.meta.location if self.meta else None


class SmScoreValue(SmModel):
    goals: int | None = None
    participant: str | None = None


class SmScore(SmModel):
    description: str | None = None
    score: SmScoreValue | None = None


class SmLeague(SmModel):
    id: int
    name: str | None = None


class SmFixture(SmModel):
    """A fixture from the fixtures endpoints."""

    id: int
    league_id: int | None = None
    state_id: int | None = None
    starting_at: datetime | None = None
    participants: list[SmParticipant] = Field(default_factory=list)
    scores: list[SmScore] = Field(default_factory=list)
    league: SmLeague | None = None

    @field_validator("starting_at", mode="before")
    @classmethod
    def _parse_starting_at(cls, value: Any) -> Any:
        if value in (None, ""):
            return None
        return value

    @field_validator("starting_at")
    @classmethod
    def _assume_utc(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def participant(self, location: str) -> SmParticipant | None:
        for p in self.participants:
            if p.location == location:
                return p
        return None

    @property
    def is_finished(self) -> bool:
        return self.state_id in FINISHED_STATE_IDS

    def current_goals(self, side: str) -> int | None:
        """Goals for 'home' or 'away' from the CURRENT score entry."""
        for s in self.scores:
            if s.description == "CURRENT" and s.score and s.score.participant == side:
                return s.score.goals
        return None

    def final_score(self) -> tuple[int, int] | None:
        home = self.current_goals("home")
        away = self.current_goals("away")
        if home is None or away is None:
            return None
        return home, away

    def to_fixture_info(self) -> FixtureInfo | None:
        """Engine fixture, or None if kickoff, league or teams are missing."""
        home = self.participant("home")
        away = self.participant("away")
        league_id = self.league_id or (self.league.id if self.league else None)
        if home is None or away is None or self.starting_at is None or league_id is None:
            return None
        return FixtureInfo(
            id=self.id,
            league_id=league_id,
            home_team_id=home.id,
            away_team_id=away.id,
            kickoff_at=self.starting_at,
            home_team_name=home.name,
            away_team_name=away.name,
        )

    def to_team_match(self, team_id: int) -> TeamMatch | None:
        """This fixture from ``team_id``'s side, or None if unusable."""
        home = self.participant("home")
        if home is None or self.starting_at is None:
            return None
        home_goals = self.current_goals("home")
        away_goals = self.current_goals("away")
        if home_goals is None or away_goals is None:
            return None
        is_home = home.id == team_id
        return TeamMatch(
            team_id=team_id,
            played_at=self.starting_at,
            is_home=is_home,
            goals_for=home_goals if is_home else away_goals,
            goals_against=away_goals if is_home else home_goals,
        )


class SmMarket(SmModel):
    name: str | None = None


class SmOdds(SmModel):
    """One pre-match odds entry."""

    fixture_id: int | None = None
    bookmaker_id: int | None = None
    market_id: int | None = None
    market: SmMarket | None = None
    market_description: str | None = None
    label: str | None = None
    name: str | None = None
    value: float | None = None
    total: float | None = None
    handicap: float | None = None

    @field_validator("value", "total", "handicap", mode="before")
    @classmethod
    def _lenient_float(cls, value: Any) -> float | None:
        return _to_float(value)

    @field_validator("bookmaker_id", "market_id", "fixture_id", mode="before")
    @classmethod
    def _lenient_int(cls, value: Any) -> int | None:
        as_float = _to_float(value)
        return int(as_float) if as_float is not None else None

    @property
    def market_name(self) -> str:
        if self.market and self.market.name:
            return self.market.name
        return self.market_description or ""

    @property
    def selection_label(self) -> str | None:
        return self.label or self.name
