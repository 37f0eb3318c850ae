"""Prediction engine: candidate evaluation and cycle orchestration."""

from pitchedge.services.engine.orchestrator import (
    EngineStore,
    FixtureEvaluation,
    FixtureProvider,
    PredictionEngine,
)
from pitchedge.services.engine.types import (
    BlockReason,
    CycleDiagnostics,
    CycleStatus,
    Decision,
    FixtureInfo,
    PredictionRow,
)

__all__ = [
    "PredictionEngine",
    "FixtureProvider",
    "EngineStore",
    "FixtureEvaluation",
    "BlockReason",
    "CycleDiagnostics",
    "CycleStatus",
    "Decision",
    "FixtureInfo",
    "PredictionRow",
]
