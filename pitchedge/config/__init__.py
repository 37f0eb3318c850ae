"""Configuration for PitchEdge."""

from pitchedge.config.rules import (
    EngineRules,
    FixedStakeConfig,
    KellyConfig,
    StakingConfig,
    StakingPolicy,
    get_engine_rules,
    get_staking_config,
)
from pitchedge.config.settings import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
    "EngineRules",
    "KellyConfig",
    "FixedStakeConfig",
    "StakingConfig",
    "StakingPolicy",
    "get_engine_rules",
    "get_staking_config",
]
