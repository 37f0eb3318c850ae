"""Bankroll ledger transitions.

Pure functions over BankrollState; the betting service persists the
results. Placement adds the stake to open exposure and today's risk.
Settlement books the PnL, releases exposure, moves the loss streak
and pushes the result onto the newest-first window.
"""

from dataclasses import replace
from datetime import datetime
from enum import Enum

from pitchedge.services.staking.kelly import effective_day_risk_used, today_key
from pitchedge.services.staking.types import BankrollState

RESULTS_WINDOW = 50


class BetResult(str, Enum):
    """Settlement result supplied by the caller."""
    WIN = "WIN"
    LOSS = "LOSS"
    VOID = "VOID"
    PUSH = "PUSH"


class BetStatus(str, Enum):
    """Bet lifecycle. OPEN is the only non-terminal state."""
    OPEN = "OPEN"
    WON = "WON"
    LOST = "LOST"
    VOID = "VOID"
    PUSH = "PUSH"


STATUS_FOR_RESULT = {
    BetResult.WIN: BetStatus.WON,
    BetResult.LOSS: BetStatus.LOST,
    BetResult.VOID: BetStatus.VOID,
    BetResult.PUSH: BetStatus.PUSH,
}


def calculate_pnl(stake: float, odds_decimal: float, result: BetResult) -> float:
    """Profit or loss of a settled bet; VOID and PUSH return the stake."""
    if result == BetResult.WIN:
        return stake * (odds_decimal - 1)
    if result == BetResult.LOSS:
        return -stake
    return 0.0


def apply_bet_placement(
    state: BankrollState, stake: float, now: datetime | None = None
) -> BankrollState:
    """Reserve a new bet's stake against exposure and today's risk."""
    day = today_key(now)
    return replace(
        state,
        open_exposure=state.open_exposure + stake,
        day_key=day,
        day_risk_used=effective_day_risk_used(state, day) + stake,
    )


def apply_settlement(
    state: BankrollState,
    stake: float,
    odds_decimal: float,
    result: BetResult,
    window: int = RESULTS_WINDOW,
) -> tuple[BankrollState, float]:
    """
    Settle one bet against the bankroll.

    PUSH is booked like VOID, and recorded as VOID in the results window.

    Returns:
        (new state, pnl)
    """
    pnl = calculate_pnl(stake, odds_decimal, result)
    current = state.current_bankroll + pnl

    if result == BetResult.WIN:
        losses = 0
    elif result == BetResult.LOSS:
        losses = state.consecutive_losses + 1
    else:
        losses = state.consecutive_losses

    recorded = BetResult.VOID if result == BetResult.PUSH else result
    new_state = replace(
        state,
        current_bankroll=current,
        peak_bankroll=max(state.peak_bankroll, current),
        open_exposure=max(0.0, state.open_exposure - stake),
        consecutive_losses=losses,
        last_results=(recorded.value, *state.last_results)[:window],
    )
    return new_state, pnl


def reset_state(amount: float) -> BankrollState:
    """Fresh bankroll state at ``amount``."""
    return BankrollState(current_bankroll=amount, peak_bankroll=amount)
