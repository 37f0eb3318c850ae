"""Database models for PitchEdge."""

from pitchedge.models.base import Base, async_session_factory, engine
from pitchedge.models.domain import (
    Bankroll,
    Bet,
    EngineCycle,
    Fixture,
    JobRun,
    OddsAverage,
    OddsPoint,
    Prediction,
)

__all__ = [
    # Base
    "Base",
    "engine",
    "async_session_factory",
    # Domain models
    "Fixture",
    "OddsPoint",
    "OddsAverage",
    "EngineCycle",
    "Prediction",
    "Bankroll",
    "Bet",
    "JobRun",
]
