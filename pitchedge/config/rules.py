"""Engine and staking rules.

Every threshold the prediction engine and the staking policies use lives
here. Defaults can be overridden from the ``engine:`` and ``staking:``
sections of defaults.yaml.
"""

from dataclasses import dataclass, field, fields, replace
from enum import Enum
from functools import lru_cache
from typing import Any

import structlog

from pitchedge.config.settings import get_settings

logger = structlog.get_logger(__name__)


class StakingPolicy(str, Enum):
    """Available stake-sizing policies."""
    KELLY = "kelly"    # Fractional Kelly with risk guards
    FIXED = "fixed"    # Fixed percentage with loss-streak throttle


@dataclass(frozen=True)
class EngineRules:
    """Thresholds for candidate evaluation and cycle orchestration."""
    lookahead_hours: int = 72
    kickoff_buffer_hours: int = 2
    history_matches: int = 10
    prob_threshold: float = 0.70
    min_edge: float = 0.05
    min_publish_odds: float = 1.50
    daily_pick_limit: int = 20
    avg_odds_window_hours: int = 24
    poisson_max_goals: int = 6
    max_fixtures_per_cycle: int = 100
    base_draw_rate: float = 0.25
    btts_low_scoring_penalty: bool = True
    prob_tie_tolerance: float = 0.001
    league_avg_fallback: float = 2.5
    league_avg_trailing_days: int = 30
    ou_lines: tuple[float, ...] = (1.5, 2.5, 3.5)
    bookmaker_whitelist: tuple[int, ...] = (2, 5, 9, 20, 29)  # bet365, 888Sport, Betfair, Pinnacle, William Hill
    target_market_ids: tuple[int, ...] = (1, 12, 14, 80)       # 1X2, OU, BTTS, Goals OU
    odds_source: str = "sportmonks"


@dataclass(frozen=True)
class KellyConfig:
    """Fractional Kelly parameters and bankroll caps."""
    kelly_fraction: float = 0.20
    max_stake_pct: float = 0.015
    max_daily_risk_pct: float = 0.05
    max_open_exposure_pct: float = 0.08
    shrink_weight: float = 0.7
    safety_margin: float = 0.03
    min_p_used: float = 0.50
    max_p_used: float = 0.90


@dataclass(frozen=True)
class FixedStakeConfig:
    """Fixed-percentage policy parameters."""
    base_pct: float = 0.015
    reduced_multiplier: float = 0.5
    trigger_streak: int = 3
    recovery_wins: int = 2
    recovery_window: int = 3


@dataclass(frozen=True)
class StakingConfig:
    """Complete staking configuration."""
    policy: StakingPolicy = StakingPolicy.KELLY
    default_bankroll: float = 1000.0
    default_currency: str = "EUR"
    results_window: int = 50
    kelly: KellyConfig = field(default_factory=KellyConfig)
    fixed: FixedStakeConfig = field(default_factory=FixedStakeConfig)


def _apply_overrides(instance: Any, overrides: dict[str, Any] | None) -> Any:
    """Return a copy of a rules dataclass with known keys overridden."""
    if not overrides:
        return instance
    known = {f.name for f in fields(instance)}
    changes = {}
    for key, value in overrides.items():
        if key not in known:
            logger.warning("unknown_config_key", key=key, section=type(instance).__name__)
            continue
        current = getattr(instance, key)
        if isinstance(current, tuple) and isinstance(value, list):
            value = tuple(value)
        changes[key] = value
    return replace(instance, **changes)


@lru_cache
def get_engine_rules() -> EngineRules:
    """Get engine rules with defaults.yaml overrides applied."""
    defaults = get_settings().load_defaults_config()
    return _apply_overrides(EngineRules(), defaults.get("engine"))


@lru_cache
def get_staking_config() -> StakingConfig:
    """Get staking configuration with defaults.yaml overrides applied."""
    section = dict(get_settings().load_defaults_config().get("staking") or {})
    kelly = _apply_overrides(KellyConfig(), section.pop("kelly", None))
    fixed = _apply_overrides(FixedStakeConfig(), section.pop("fixed", None))
    if "policy" in section:
        section["policy"] = StakingPolicy(section["policy"])
    config = _apply_overrides(StakingConfig(), section)
    return replace(config, kelly=kelly, fixed=fixed)
