"""Unit tests for the Kelly and fixed-percentage staking policies.

CRITICAL TESTS:
- Stakes never exceed the per-bet, daily-risk or open-exposure caps
- Risk guards only ever shrink the stake
- The same inputs always give the same stake
"""

import math
from datetime import datetime, timezone

import pytest

from pitchedge.config import FixedStakeConfig, KellyConfig
from pitchedge.services.staking.fixed_stake import StakeMode, calculate_fixed_stake, replay_mode
from pitchedge.services.staking.kelly import (
    compute_stake_decision,
    drawdown_multiplier,
    form_multiplier,
    loss_streak_multiplier,
    raw_kelly,
    safety_adjusted_probability,
    today_key,
)
from pitchedge.services.staking.types import BankrollState, BetCandidate

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)
TODAY = "2026-10-18"


def bankroll(**overrides) -> BankrollState:
    values = {"current_bankroll": 1000.0, "peak_bankroll": 1000.0}
    values.update(overrides)
    return BankrollState(**values)


class TestKellyComponents:
    """Test the pieces of the Kelly computation."""

    def test_safety_adjusted_probability(self):
        # 0.7*0.70 + 0.15 - 0.03
        assert safety_adjusted_probability(0.70, KellyConfig()) == pytest.approx(0.61)

    def test_safety_adjusted_probability_is_clamped(self):
        config = KellyConfig()
        assert safety_adjusted_probability(0.2, config) == pytest.approx(0.5)
        assert safety_adjusted_probability(1.0, config) == pytest.approx(0.82)
        assert safety_adjusted_probability(1.5, config) == pytest.approx(0.9)

    def test_raw_kelly(self):
        assert raw_kelly(0.61, 2.0) == pytest.approx(0.22)

    def test_raw_kelly_never_negative(self):
        assert raw_kelly(0.5, 1.8) == 0.0
        assert raw_kelly(0.9, 1.0) == 0.0

    @pytest.mark.parametrize(
        "current,expected",
        [(1000, 1.0), (930, 1.0), (920, 0.75), (880, 0.5), (820, 0.25), (500, 0.25)],
    )
    def test_drawdown_steps(self, current, expected):
        assert drawdown_multiplier(bankroll(current_bankroll=current)) == expected

    def test_loss_streak(self):
        assert loss_streak_multiplier(bankroll(consecutive_losses=2)) == 1.0
        assert loss_streak_multiplier(bankroll(consecutive_losses=3)) == 0.75
        assert loss_streak_multiplier(bankroll(consecutive_losses=5)) == 0.5

    def test_recent_wins_override_streak(self):
        state = bankroll(consecutive_losses=6, last_results=("WIN", "LOSS", "WIN", "LOSS"))
        assert loss_streak_multiplier(state) == 1.0

    def test_form_needs_twenty_results(self):
        assert form_multiplier(bankroll(last_results=("LOSS",) * 19)) == 1.0

    def test_form_penalty_below_sixty_percent(self):
        results = ("WIN",) * 11 + ("LOSS",) * 9
        assert form_multiplier(bankroll(last_results=results)) == 0.5

    def test_good_form(self):
        results = ("WIN",) * 12 + ("LOSS",) * 8
        assert form_multiplier(bankroll(last_results=results)) == 1.0

    def test_today_key(self):
        assert today_key(NOW) == TODAY


class TestComputeStakeDecision:
    """Test full Kelly stake decisions."""

    def test_fresh_bankroll_capped_per_bet(self):
        decision = compute_stake_decision(
            BetCandidate(odds_decimal=2.0, model_probability=0.70), bankroll(), now=NOW
        )

        assert decision.should_bet
        assert decision.kelly.p_used == pytest.approx(0.61)
        assert decision.kelly.raw_kelly == pytest.approx(0.22)
        assert decision.kelly.fractional_kelly == pytest.approx(0.044)
        assert decision.kelly.drawdown_multiplier == 1.0
        assert decision.kelly.loss_streak_multiplier == 1.0
        assert decision.kelly.form_multiplier == 1.0
        assert decision.stake_amount == 15
        assert decision.stake_pct == pytest.approx(0.015)

    def test_drawdown_applied_before_caps(self):
        decision = compute_stake_decision(
            BetCandidate(odds_decimal=2.0, model_probability=0.70),
            bankroll(current_bankroll=920.0),
            now=NOW,
        )

        assert decision.kelly.drawdown_multiplier == 0.75
        # 0.044 * 920 * 0.75 = 30.36, capped to 1.5% of 920 = 13.8
        assert decision.stake_amount == 13
        assert decision.stake_amount <= 920 * 0.015

    def test_daily_risk_cap(self):
        state = bankroll(day_key=TODAY, day_risk_used=40.0)
        decision = compute_stake_decision(
            BetCandidate(odds_decimal=2.0, model_probability=0.70), state, now=NOW
        )
        assert decision.stake_amount == 10

    def test_stale_day_key_resets_daily_risk(self):
        state = bankroll(day_key="2026-10-17", day_risk_used=50.0)
        decision = compute_stake_decision(
            BetCandidate(odds_decimal=2.0, model_probability=0.70), state, now=NOW
        )
        assert decision.stake_amount == 15

    def test_open_exposure_cap(self):
        state = bankroll(open_exposure=72.0)
        decision = compute_stake_decision(
            BetCandidate(odds_decimal=2.0, model_probability=0.70), state, now=NOW
        )
        assert decision.stake_amount == 8

    def test_exhausted_exposure_means_no_bet(self):
        state = bankroll(open_exposure=80.0)
        decision = compute_stake_decision(
            BetCandidate(odds_decimal=2.0, model_probability=0.70), state, now=NOW
        )

        assert not decision.should_bet
        assert decision.stake_amount == 0.0

    def test_no_edge_no_bet(self):
        decision = compute_stake_decision(
            BetCandidate(odds_decimal=1.5, model_probability=0.55), bankroll(), now=NOW
        )

        assert decision.kelly.raw_kelly == 0.0
        assert not decision.should_bet

    def test_sub_unit_stake_rounds_to_zero(self):
        decision = compute_stake_decision(
            BetCandidate(odds_decimal=2.0, model_probability=0.70),
            bankroll(current_bankroll=30.0, peak_bankroll=30.0),
            now=NOW,
        )
        # Per-bet cap is 0.45
        assert decision.stake_amount == 0.0
        assert not decision.should_bet

    def test_rounding_never_exceeds_cap(self):
        # Per-bet cap 1.5% of 990 = 14.85 would round half-up to 15
        decision = compute_stake_decision(
            BetCandidate(odds_decimal=2.0, model_probability=0.70),
            bankroll(current_bankroll=990.0, peak_bankroll=990.0),
            now=NOW,
        )
        assert decision.stake_amount == 14

    def test_uncapped_stake_rounds_half_up(self):
        config = KellyConfig(max_stake_pct=0.5, max_daily_risk_pct=0.5, max_open_exposure_pct=0.5)
        decision = compute_stake_decision(
            BetCandidate(odds_decimal=2.0, model_probability=0.70), bankroll(), config, now=NOW
        )
        # 0.044 * 1000 = 44
        assert decision.stake_amount == 44

    def test_guards_combine(self):
        state = bankroll(
            current_bankroll=900.0,
            consecutive_losses=3,
            last_results=("LOSS", "LOSS", "LOSS"),
        )
        config = KellyConfig(max_stake_pct=0.5, max_daily_risk_pct=0.5, max_open_exposure_pct=0.5)
        decision = compute_stake_decision(
            BetCandidate(odds_decimal=2.0, model_probability=0.70), state, config, now=NOW
        )

        assert decision.kelly.drawdown_multiplier == 0.75
        assert decision.kelly.loss_streak_multiplier == 0.75
        # 0.044 * 900 * 0.75 * 0.75 = 22.275
        assert decision.stake_amount == 22

    def test_deterministic(self):
        candidate = BetCandidate(odds_decimal=2.3, model_probability=0.74)
        state = bankroll(current_bankroll=1234.0, peak_bankroll=1300.0, open_exposure=12.0)

        first = compute_stake_decision(candidate, state, now=NOW)
        second = compute_stake_decision(candidate, state, now=NOW)

        assert first == second

    @pytest.mark.parametrize("current", [100.0, 457.0, 999.0, 1000.0, 2501.0, 10000.0])
    @pytest.mark.parametrize("exposure", [0.0, 33.0, 70.0])
    def test_stake_within_all_caps(self, current, exposure):
        config = KellyConfig()
        state = bankroll(
            current_bankroll=current,
            peak_bankroll=current,
            open_exposure=exposure,
            day_key=TODAY,
            day_risk_used=current * 0.02,
        )
        decision = compute_stake_decision(
            BetCandidate(odds_decimal=2.1, model_probability=0.78), state, config, now=NOW
        )
        cap = min(
            current * config.max_stake_pct,
            current * config.max_daily_risk_pct - current * 0.02,
            current * config.max_open_exposure_pct - exposure,
        )

        assert decision.stake_amount <= max(0.0, math.floor(cap))
        assert decision.stake_amount == int(decision.stake_amount)

    def test_to_dict(self):
        decision = compute_stake_decision(
            BetCandidate(odds_decimal=2.0, model_probability=0.70), bankroll(), now=NOW
        )
        data = decision.to_dict()

        assert data["policy"] == "kelly"
        assert data["stake_amount"] == 15
        assert data["kelly"]["p_used"] == pytest.approx(0.61)


class TestFixedStake:
    """Test the fixed-percentage policy and its throttle."""

    def test_standard_stake(self):
        result = calculate_fixed_stake(1000.0, 0, [])

        assert result.stake == 15.0
        assert result.pct == pytest.approx(0.015)
        assert not result.is_reduced

    def test_three_losses_reduce(self):
        assert replay_mode(["LOSS", "LOSS", "LOSS"]) == StakeMode.REDUCED

        result = calculate_fixed_stake(1000.0, 3, ["LOSS", "LOSS", "LOSS"])
        assert result.is_reduced
        assert result.pct == pytest.approx(0.0075)
        assert result.stake == 7.5

    def test_two_wins_in_three_recover(self):
        results = ["LOSS", "LOSS", "LOSS", "WIN", "WIN"]
        assert replay_mode(results) == StakeMode.STANDARD
        assert not calculate_fixed_stake(1000.0, 0, results).is_reduced

    def test_single_win_does_not_recover(self):
        assert replay_mode(["LOSS", "LOSS", "LOSS", "WIN"]) == StakeMode.REDUCED

    def test_void_is_ignored(self):
        assert replay_mode(["LOSS", "VOID", "LOSS", "VOID", "LOSS"]) == StakeMode.REDUCED
        assert replay_mode(["LOSS", "LOSS", "LOSS", "WIN", "VOID", "WIN"]) == StakeMode.STANDARD

    def test_two_losses_stay_standard(self):
        assert replay_mode(["WIN", "LOSS", "LOSS"]) == StakeMode.STANDARD

    def test_stake_floored_to_cent(self):
        result = calculate_fixed_stake(1234.567, 0, [])
        # 1234.567 * 0.015 = 18.518505
        assert result.stake == 18.51

    def test_custom_config(self):
        config = FixedStakeConfig(base_pct=0.02, reduced_multiplier=0.25)
        result = calculate_fixed_stake(1000.0, 3, ["LOSS"] * 3, config)

        assert result.stake == 5.0

    def test_zero_bankroll_means_no_bet(self):
        assert not calculate_fixed_stake(0.0, 0, []).should_bet
