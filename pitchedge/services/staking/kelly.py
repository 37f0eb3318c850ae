"""Fractional Kelly staking with risk guards.

stake = 0.2 x Kelly(p_used, price) x bankroll
      x drawdown x loss streak x form multipliers,
then capped per bet, by remaining daily risk and by remaining open
exposure, in that order.
"""

import math
from datetime import datetime, timezone

from pitchedge.config import KellyConfig
from pitchedge.services.staking.types import (
    BankrollState,
    BetCandidate,
    KellyResult,
    StakeDecision,
)

# Drawdown thresholds, checked most severe first
DRAWDOWN_STEPS = ((0.18, 0.25), (0.12, 0.50), (0.08, 0.75))

FORM_MIN_RESULTS = 20
FORM_MIN_WIN_RATE = 0.60
FORM_MULTIPLIER = 0.50


def clamp(value: float, min_val: float, max_val: float) -> float:
    """Clamp value between min and max."""
    return min(max(value, min_val), max_val)


def today_key(now: datetime | None = None) -> str:
    """UTC calendar date as YYYY-MM-DD."""
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).date().isoformat()


def effective_day_risk_used(bankroll: BankrollState, day: str) -> float:
    """Risk used today; zero once the bankroll's day key is stale."""
    return bankroll.day_risk_used if bankroll.day_key == day else 0.0


def safety_adjusted_probability(p_model: float, config: KellyConfig) -> float:
    """Shrink toward 0.5, subtract the safety margin, clamp to [0.5, 0.9]."""
    shrunk = config.shrink_weight * p_model + (1 - config.shrink_weight) * 0.5
    return clamp(shrunk - config.safety_margin, config.min_p_used, config.max_p_used)


def raw_kelly(p_used: float, odds_decimal: float) -> float:
    """Full Kelly fraction, never negative."""
    b = odds_decimal - 1
    if b <= 0:
        return 0.0
    return max(0.0, (b * p_used - (1 - p_used)) / b)


def drawdown_multiplier(bankroll: BankrollState) -> float:
    if bankroll.peak_bankroll <= 0:
        return 1.0
    drawdown = (bankroll.peak_bankroll - bankroll.current_bankroll) / bankroll.peak_bankroll
    for threshold, multiplier in DRAWDOWN_STEPS:
        if drawdown >= threshold:
            return multiplier
    return 1.0


def loss_streak_multiplier(bankroll: BankrollState) -> float:
    """2+ wins in the last 3 results overrides any streak."""
    wins_last_3 = sum(1 for r in bankroll.last_results[:3] if r == "WIN")
    if wins_last_3 >= 2:
        return 1.0
    if bankroll.consecutive_losses >= 5:
        return 0.50
    if bankroll.consecutive_losses >= 3:
        return 0.75
    return 1.0


def form_multiplier(bankroll: BankrollState) -> float:
    results = bankroll.last_results
    if len(results) < FORM_MIN_RESULTS:
        return 1.0
    win_rate = sum(1 for r in results if r == "WIN") / len(results)
    return FORM_MULTIPLIER if win_rate < FORM_MIN_WIN_RATE else 1.0


def compute_stake_decision(
    candidate: BetCandidate,
    bankroll: BankrollState,
    config: KellyConfig | None = None,
    now: datetime | None = None,
) -> StakeDecision:
    """
    Size a stake for one candidate.

    Pure: the same inputs (including ``now``, which only decides whether
    today's risk counter still applies) give the same decision. A stake
    that rounds below one unit comes back as ``should_bet=False``.
    """
    config = config or KellyConfig()
    current = bankroll.current_bankroll

    p_used = safety_adjusted_probability(candidate.model_probability, config)
    kelly = raw_kelly(p_used, candidate.odds_decimal)
    fractional = kelly * config.kelly_fraction

    dd_mult = drawdown_multiplier(bankroll)
    streak_mult = loss_streak_multiplier(bankroll)
    form_mult = form_multiplier(bankroll)
    stake = fractional * current * dd_mult * streak_mult * form_mult

    stake = min(stake, current * config.max_stake_pct)
    day_used = effective_day_risk_used(bankroll, today_key(now))
    stake = min(stake, current * config.max_daily_risk_pct - day_used)
    stake = min(stake, current * config.max_open_exposure_pct - bankroll.open_exposure)

    # Half-up to whole units, but rounding never lifts a stake over its cap
    rounded = math.floor(stake + 0.5)
    if rounded > stake:
        cap = min(
            current * config.max_stake_pct,
            current * config.max_daily_risk_pct - day_used,
            current * config.max_open_exposure_pct - bankroll.open_exposure,
        )
        rounded = min(rounded, math.floor(cap))
    stake = float(rounded) if rounded >= 1 else 0.0

    stake_pct = stake / current if current > 0 else 0.0
    result = KellyResult(
        p_used=p_used,
        raw_kelly=kelly,
        fractional_kelly=fractional,
        drawdown_multiplier=dd_mult,
        loss_streak_multiplier=streak_mult,
        form_multiplier=form_mult,
        final_stake_pct=stake_pct,
        final_stake_amount=stake,
    )
    return StakeDecision(
        should_bet=stake > 0,
        stake_amount=stake,
        stake_pct=stake_pct,
        kelly=result,
    )
