"""Fixed-percentage staking with a loss-streak throttle.

Base stake is 1.5% of the bankroll. Three straight losses switch to
REDUCED mode (half the base); two wins within the last three settled
results switch back. VOID results are ignored.
"""

import math
from collections.abc import Sequence
from enum import Enum

from pitchedge.config import FixedStakeConfig
from pitchedge.services.staking.types import FixedStakeResult

_WINS = ("WIN", "WON")
_LOSSES = ("LOSS", "LOST")


class StakeMode(str, Enum):
    STANDARD = "STANDARD"
    REDUCED = "REDUCED"


def replay_mode(
    results_oldest_first: Sequence[str], config: FixedStakeConfig | None = None
) -> StakeMode:
    """Replay settled results to find the current stake mode."""
    config = config or FixedStakeConfig()
    results = [r for r in results_oldest_first if r != "VOID"]
    mode = StakeMode.STANDARD
    streak = 0

    for i, result in enumerate(results):
        if result in _LOSSES:
            streak += 1
        elif result in _WINS:
            streak = 0

        if streak >= config.trigger_streak:
            mode = StakeMode.REDUCED

        if mode == StakeMode.REDUCED:
            window = results[max(0, i - config.recovery_window + 1) : i + 1]
            if sum(1 for r in window if r in _WINS) >= config.recovery_wins:
                mode = StakeMode.STANDARD

    return mode


def calculate_fixed_stake(
    bankroll: float,
    consecutive_losses: int,
    results_oldest_first: Sequence[str],
    config: FixedStakeConfig | None = None,
) -> FixedStakeResult:
    """
    Fixed-percentage stake for the current bankroll.

    Args:
        bankroll: Current bankroll
        consecutive_losses: Reported back unchanged
        results_oldest_first: Settled results, oldest first

    Returns:
        Stake floored to the cent, with the percentage and mode used
    """
    config = config or FixedStakeConfig()
    mode = replay_mode(results_oldest_first, config)
    pct = config.base_pct * config.reduced_multiplier if mode == StakeMode.REDUCED else config.base_pct

    return FixedStakeResult(
        stake=math.floor(bankroll * pct * 100) / 100,
        pct=pct,
        is_reduced=mode == StakeMode.REDUCED,
        bankroll=bankroll,
        consecutive_losses=consecutive_losses,
    )
