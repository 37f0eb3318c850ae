"""Domain models for PitchEdge.

Fixtures and odds feed the prediction engine; each engine cycle writes
one prediction row per evaluated (fixture, market, line, selection).
Bankrolls and bets belong to a single user and are mutated only through
the betting service.

INVARIANT: at most one PUBLISH prediction per fixture, unless an older
PUBLISH row is protected (a bet references it or it is already settled).
"""

from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    BigInteger,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pitchedge.models.base import Base, TimestampMixin


class Fixture(Base, TimestampMixin):
    """
    Scheduled match between two teams.

    Ids are the provider's fixture ids. Created or refreshed by the engine
    cycle; scores are filled in by result sync.
    """

    __tablename__ = "fixtures"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    league_id: Mapped[int] = mapped_column(Integer, nullable=False)
    home_team_id: Mapped[int] = mapped_column(Integer, nullable=False)
    away_team_id: Mapped[int] = mapped_column(Integer, nullable=False)
    home_team_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    away_team_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    kickoff_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="scheduled", doc="'scheduled' or 'finished'"
    )
    home_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    away_score: Mapped[int | None] = mapped_column(Integer, nullable=True)

    predictions: Mapped[list["Prediction"]] = relationship(
        "Prediction", back_populates="fixture"
    )

    __table_args__ = (
        Index(
            "idx_fixtures_kickoff",
            "kickoff_at",
            postgresql_where=(status == "scheduled"),
        ),
    )

    def __repr__(self) -> str:
        return f"<Fixture {self.id} {self.home_team_id}v{self.away_team_id} ({self.kickoff_at})>"


class OddsPoint(Base):
    """
    One observed bookmaker price. Append-only.

    Re-ingesting the same observation is a no-op thanks to the unique key.
    """

    __tablename__ = "odds_points"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    fixture_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("fixtures.id"), nullable=False
    )
    bookmaker_id: Mapped[int] = mapped_column(Integer, nullable=False)
    market: Mapped[str] = mapped_column(String(10), nullable=False)
    selection: Mapped[str] = mapped_column(String(10), nullable=False)
    line: Mapped[Decimal | None] = mapped_column(Numeric(4, 1), nullable=True)
    odds_decimal: Mapped[Decimal] = mapped_column(Numeric(8, 3), nullable=False)
    observed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    source: Mapped[str] = mapped_column(String(30), nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "fixture_id", "bookmaker_id", "market", "line", "selection", "source", "observed_at",
            name="uq_odds_point",
        ),
        Index("idx_odds_points_fixture_time", "fixture_id", "observed_at"),
    )


class OddsAverage(Base):
    """Cross-bookmaker average price per (fixture, market, line, selection)."""

    __tablename__ = "odds_averages"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    fixture_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("fixtures.id"), nullable=False
    )
    market: Mapped[str] = mapped_column(String(10), nullable=False)
    selection: Mapped[str] = mapped_column(String(10), nullable=False)
    line: Mapped[Decimal | None] = mapped_column(Numeric(4, 1), nullable=True)
    avg_odds: Mapped[Decimal] = mapped_column(Numeric(8, 3), nullable=False)
    bookmaker_count: Mapped[int] = mapped_column(Integer, nullable=False)
    source: Mapped[str] = mapped_column(String(30), nullable=False)
    window_end: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    computed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint(
            "fixture_id", "market", "line", "selection", "source", "window_end",
            name="uq_odds_average",
        ),
    )


class EngineCycle(Base):
    """
    One run of the prediction engine.

    Created RUNNING by the trigger; moved to SUCCESS or FAILED exactly once
    with the diagnostics accumulated during the run.
    """

    __tablename__ = "engine_cycles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="RUNNING", doc="RUNNING, SUCCESS, FAILED"
    )
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    fixtures_found: Mapped[int] = mapped_column(Integer, default=0)
    fixtures_processed: Mapped[int] = mapped_column(Integer, default=0)
    fixtures_failed: Mapped[int] = mapped_column(Integer, default=0)
    predictions_published: Mapped[int] = mapped_column(Integer, default=0)
    predictions_blocked: Mapped[int] = mapped_column(Integer, default=0)
    predictions_superseded: Mapped[int] = mapped_column(Integer, default=0)
    block_reasons: Mapped[dict[str, int] | None] = mapped_column(JSONB, nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<EngineCycle {self.id} status={self.status}>"


class Prediction(Base):
    """
    Evaluation of one candidate in one engine cycle.

    decision is PUBLISH or BLOCK; reason is set for every BLOCK row.
    outcome (won/lost/push) is filled by result sync.
    """

    __tablename__ = "predictions"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    cycle_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("engine_cycles.id"), nullable=True
    )
    fixture_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("fixtures.id"), nullable=False
    )
    market: Mapped[str] = mapped_column(String(10), nullable=False)
    line: Mapped[Decimal | None] = mapped_column(Numeric(4, 1), nullable=True)
    selection: Mapped[str] = mapped_column(String(10), nullable=False)
    model_probability: Mapped[Decimal] = mapped_column(Numeric(6, 4), nullable=False)
    final_probability: Mapped[Decimal] = mapped_column(Numeric(6, 4), nullable=False)
    avg_odds: Mapped[Decimal] = mapped_column(Numeric(8, 3), nullable=False)
    implied_probability: Mapped[Decimal] = mapped_column(Numeric(6, 4), nullable=False)
    edge: Mapped[Decimal | None] = mapped_column(Numeric(6, 4), nullable=True)
    expected_value: Mapped[Decimal | None] = mapped_column(Numeric(8, 4), nullable=True)
    decision: Mapped[str] = mapped_column(String(10), nullable=False)
    reason: Mapped[str | None] = mapped_column(String(40), nullable=True)
    outcome: Mapped[str | None] = mapped_column(
        String(10), nullable=True, doc="won, lost, push (null until settled)"
    )
    settled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    fixture: Mapped["Fixture"] = relationship("Fixture", back_populates="predictions")
    bets: Mapped[list["Bet"]] = relationship("Bet", back_populates="prediction")

    __table_args__ = (
        Index(
            "idx_predictions_published",
            "fixture_id",
            postgresql_where=(decision == "PUBLISH"),
        ),
        Index("idx_predictions_cycle", "cycle_id"),
    )

    def __repr__(self) -> str:
        line = f" {self.line}" if self.line is not None else ""
        return f"<Prediction {self.fixture_id} {self.market}{line} {self.selection} {self.decision}>"


class Bankroll(Base, TimestampMixin):
    """
    Per-user bankroll state.

    last_results holds the newest-first window of WIN/LOSS/VOID entries.
    day_risk_used is only meaningful while day_key equals today (UTC).
    """

    __tablename__ = "bankrolls"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="EUR")
    initial_bankroll: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    current_bankroll: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    peak_bankroll: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    open_exposure: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0.00")
    )
    consecutive_losses: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_results: Mapped[list[str]] = mapped_column(JSONB, nullable=False, default=list)
    day_key: Mapped[str | None] = mapped_column(String(10), nullable=True)
    day_risk_used: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0.00")
    )

    bets: Mapped[list["Bet"]] = relationship("Bet", back_populates="bankroll")

    def __repr__(self) -> str:
        return f"<Bankroll {self.user_id} {self.current_bankroll} {self.currency}>"


class Bet(Base):
    """
    A locked staking decision.

    Created OPEN; settlement moves it to WON, LOST, VOID or PUSH exactly
    once. stake_breakdown keeps the full staking computation.
    """

    __tablename__ = "bets"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    user_id: Mapped[str] = mapped_column(String(100), nullable=False)
    bankroll_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("bankrolls.id"), nullable=False
    )
    prediction_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("predictions.id"), nullable=True
    )
    fixture_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("fixtures.id"), nullable=False
    )
    market: Mapped[str] = mapped_column(String(10), nullable=False)
    selection: Mapped[str] = mapped_column(String(10), nullable=False)
    line: Mapped[Decimal | None] = mapped_column(Numeric(4, 1), nullable=True)
    odds_decimal: Mapped[Decimal] = mapped_column(Numeric(8, 3), nullable=False)
    model_probability: Mapped[Decimal] = mapped_column(Numeric(6, 4), nullable=False)
    stake: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    stake_pct: Mapped[Decimal] = mapped_column(Numeric(8, 6), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    status: Mapped[str] = mapped_column(
        String(10), nullable=False, default="OPEN", doc="OPEN, WON, LOST, VOID, PUSH"
    )
    pnl: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    staking_policy: Mapped[str] = mapped_column(String(10), nullable=False)
    stake_breakdown: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)
    locked_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    settled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    bankroll: Mapped["Bankroll"] = relationship("Bankroll", back_populates="bets")
    prediction: Mapped["Prediction | None"] = relationship("Prediction", back_populates="bets")

    __table_args__ = (
        Index("idx_bets_user_status", "user_id", "status"),
        Index("idx_bets_prediction", "prediction_id"),
    )

    def __repr__(self) -> str:
        return f"<Bet {self.id} {self.market} {self.selection} {self.stake} {self.status}>"


class JobRun(Base):
    """
    Task execution audit log.

    Engine cycles have their own table; every other scheduled task
    (result sync) is logged here.
    """

    __tablename__ = "job_runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    job_name: Mapped[str] = mapped_column(String(100), nullable=False)
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, doc="'running', 'success', 'failed'"
    )
    records_processed: Mapped[int] = mapped_column(Integer, default=0)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    job_metadata: Mapped[dict[str, Any] | None] = mapped_column(
        "metadata", JSONB, nullable=True
    )

    def __repr__(self) -> str:
        return f"<JobRun {self.job_name} status={self.status}>"
