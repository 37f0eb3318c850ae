"""Stake sizing policies."""

from pitchedge.services.staking.fixed_stake import StakeMode, calculate_fixed_stake, replay_mode
from pitchedge.services.staking.kelly import compute_stake_decision, today_key
from pitchedge.services.staking.types import (
    BankrollState,
    BetCandidate,
    FixedStakeResult,
    KellyResult,
    StakeDecision,
)

__all__ = [
    "BankrollState",
    "BetCandidate",
    "KellyResult",
    "StakeDecision",
    "FixedStakeResult",
    "StakeMode",
    "compute_stake_decision",
    "calculate_fixed_stake",
    "replay_mode",
    "today_key",
]
