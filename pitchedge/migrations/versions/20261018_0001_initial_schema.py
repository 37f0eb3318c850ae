"""Initial schema for PitchEdge.

Revision ID: 0001
Revises:
Create Date: 2026-10-18

Tables:
- fixtures, odds_points, odds_averages feed the prediction engine
- engine_cycles and predictions hold each run and its evaluations
- bankrolls and bets hold per-user staking state
- job_runs is the audit log for scheduled tasks other than the engine

A published prediction referenced by a bet must never be superseded, so
bets.prediction_id is indexed for the protection lookup.
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    # Fixtures (ids are provider ids)
    op.create_table(
        "fixtures",
        sa.Column("id", sa.BigInteger(), autoincrement=False, nullable=False),
        sa.Column("league_id", sa.Integer(), nullable=False),
        sa.Column("home_team_id", sa.Integer(), nullable=False),
        sa.Column("away_team_id", sa.Integer(), nullable=False),
        sa.Column("home_team_name", sa.String(length=200), nullable=True),
        sa.Column("away_team_name", sa.String(length=200), nullable=True),
        sa.Column("kickoff_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "status",
            sa.String(length=20),
            nullable=False,
            server_default="scheduled",
            comment="'scheduled' or 'finished'",
        ),
        sa.Column("home_score", sa.Integer(), nullable=True),
        sa.Column("away_score", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "idx_fixtures_kickoff",
        "fixtures",
        ["kickoff_at"],
        postgresql_where=sa.text("status = 'scheduled'"),
    )

    # Odds points (append-only)
    op.create_table(
        "odds_points",
        sa.Column("id", sa.BigInteger(), nullable=False),
        sa.Column("fixture_id", sa.BigInteger(), nullable=False),
        sa.Column("bookmaker_id", sa.Integer(), nullable=False),
        sa.Column("market", sa.String(length=10), nullable=False),
        sa.Column("selection", sa.String(length=10), nullable=False),
        sa.Column("line", sa.Numeric(precision=4, scale=1), nullable=True),
        sa.Column("odds_decimal", sa.Numeric(precision=8, scale=3), nullable=False),
        sa.Column("observed_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("source", sa.String(length=30), nullable=False),
        sa.ForeignKeyConstraint(["fixture_id"], ["fixtures.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "fixture_id",
            "bookmaker_id",
            "market",
            "line",
            "selection",
            "source",
            "observed_at",
            name="uq_odds_point",
        ),
    )
    op.create_index(
        "idx_odds_points_fixture_time",
        "odds_points",
        ["fixture_id", "observed_at"],
    )

    # Odds averages
    op.create_table(
        "odds_averages",
        sa.Column("id", sa.BigInteger(), nullable=False),
        sa.Column("fixture_id", sa.BigInteger(), nullable=False),
        sa.Column("market", sa.String(length=10), nullable=False),
        sa.Column("selection", sa.String(length=10), nullable=False),
        sa.Column("line", sa.Numeric(precision=4, scale=1), nullable=True),
        sa.Column("avg_odds", sa.Numeric(precision=8, scale=3), nullable=False),
        sa.Column("bookmaker_count", sa.Integer(), nullable=False),
        sa.Column("source", sa.String(length=30), nullable=False),
        sa.Column("window_end", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "computed_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(["fixture_id"], ["fixtures.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "fixture_id",
            "market",
            "line",
            "selection",
            "source",
            "window_end",
            name="uq_odds_average",
        ),
    )

    # Engine cycles
    op.create_table(
        "engine_cycles",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "status",
            sa.String(length=20),
            nullable=False,
            server_default="RUNNING",
            comment="RUNNING, SUCCESS, FAILED",
        ),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("fixtures_found", sa.Integer(), nullable=True, server_default="0"),
        sa.Column("fixtures_processed", sa.Integer(), nullable=True, server_default="0"),
        sa.Column("fixtures_failed", sa.Integer(), nullable=True, server_default="0"),
        sa.Column("predictions_published", sa.Integer(), nullable=True, server_default="0"),
        sa.Column("predictions_blocked", sa.Integer(), nullable=True, server_default="0"),
        sa.Column("predictions_superseded", sa.Integer(), nullable=True, server_default="0"),
        sa.Column("block_reasons", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "idx_engine_cycles_started",
        "engine_cycles",
        [sa.text("started_at DESC")],
    )

    # Predictions
    op.create_table(
        "predictions",
        sa.Column("id", sa.BigInteger(), nullable=False),
        sa.Column("cycle_id", sa.Integer(), nullable=True),
        sa.Column("fixture_id", sa.BigInteger(), nullable=False),
        sa.Column("market", sa.String(length=10), nullable=False),
        sa.Column("line", sa.Numeric(precision=4, scale=1), nullable=True),
        sa.Column("selection", sa.String(length=10), nullable=False),
        sa.Column("model_probability", sa.Numeric(precision=6, scale=4), nullable=False),
        sa.Column("final_probability", sa.Numeric(precision=6, scale=4), nullable=False),
        sa.Column("avg_odds", sa.Numeric(precision=8, scale=3), nullable=False),
        sa.Column("implied_probability", sa.Numeric(precision=6, scale=4), nullable=False),
        sa.Column("edge", sa.Numeric(precision=6, scale=4), nullable=True),
        sa.Column("expected_value", sa.Numeric(precision=8, scale=4), nullable=True),
        sa.Column("decision", sa.String(length=10), nullable=False),
        sa.Column("reason", sa.String(length=40), nullable=True),
        sa.Column(
            "outcome",
            sa.String(length=10),
            nullable=True,
            comment="won, lost, push (null until settled)",
        ),
        sa.Column("settled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(["cycle_id"], ["engine_cycles.id"]),
        sa.ForeignKeyConstraint(["fixture_id"], ["fixtures.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "idx_predictions_published",
        "predictions",
        ["fixture_id"],
        postgresql_where=sa.text("decision = 'PUBLISH'"),
    )
    op.create_index("idx_predictions_cycle", "predictions", ["cycle_id"])

    # Bankrolls (one per user)
    op.create_table(
        "bankrolls",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(length=100), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="EUR"),
        sa.Column("initial_bankroll", sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column("current_bankroll", sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column("peak_bankroll", sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column(
            "open_exposure",
            sa.Numeric(precision=12, scale=2),
            nullable=False,
            server_default="0.00",
        ),
        sa.Column("consecutive_losses", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "last_results",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column("day_key", sa.String(length=10), nullable=True),
        sa.Column(
            "day_risk_used",
            sa.Numeric(precision=12, scale=2),
            nullable=False,
            server_default="0.00",
        ),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id"),
    )

    # Bets
    op.create_table(
        "bets",
        sa.Column("id", sa.BigInteger(), nullable=False),
        sa.Column("user_id", sa.String(length=100), nullable=False),
        sa.Column("bankroll_id", sa.Integer(), nullable=False),
        sa.Column("prediction_id", sa.BigInteger(), nullable=True),
        sa.Column("fixture_id", sa.BigInteger(), nullable=False),
        sa.Column("market", sa.String(length=10), nullable=False),
        sa.Column("selection", sa.String(length=10), nullable=False),
        sa.Column("line", sa.Numeric(precision=4, scale=1), nullable=True),
        sa.Column("odds_decimal", sa.Numeric(precision=8, scale=3), nullable=False),
        sa.Column("model_probability", sa.Numeric(precision=6, scale=4), nullable=False),
        sa.Column("stake", sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column("stake_pct", sa.Numeric(precision=8, scale=6), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column(
            "status",
            sa.String(length=10),
            nullable=False,
            server_default="OPEN",
            comment="OPEN, WON, LOST, VOID, PUSH",
        ),
        sa.Column("pnl", sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column("staking_policy", sa.String(length=10), nullable=False),
        sa.Column("stake_breakdown", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("locked_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("settled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(["bankroll_id"], ["bankrolls.id"]),
        sa.ForeignKeyConstraint(["prediction_id"], ["predictions.id"]),
        sa.ForeignKeyConstraint(["fixture_id"], ["fixtures.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_bets_user_status", "bets", ["user_id", "status"])
    op.create_index("idx_bets_prediction", "bets", ["prediction_id"])

    # Job runs (task audit log)
    op.create_table(
        "job_runs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("job_name", sa.String(length=100), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("records_processed", sa.Integer(), nullable=True, server_default="0"),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("metadata", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "idx_job_runs_name_time",
        "job_runs",
        ["job_name", sa.text("started_at DESC")],
    )


def downgrade() -> None:
    op.drop_index("idx_job_runs_name_time", table_name="job_runs")
    op.drop_table("job_runs")
    op.drop_index("idx_bets_prediction", table_name="bets")
    op.drop_index("idx_bets_user_status", table_name="bets")
    op.drop_table("bets")
    op.drop_table("bankrolls")
    op.drop_index("idx_predictions_cycle", table_name="predictions")
    op.drop_index("idx_predictions_published", table_name="predictions")
    op.drop_table("predictions")
    op.drop_index("idx_engine_cycles_started", table_name="engine_cycles")
    op.drop_table("engine_cycles")
    op.drop_table("odds_averages")
    op.drop_index("idx_odds_points_fixture_time", table_name="odds_points")
    op.drop_table("odds_points")
    op.drop_index("idx_fixtures_kickoff", table_name="fixtures")
    op.drop_table("fixtures")
