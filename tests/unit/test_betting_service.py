"""Unit tests for the betting service.

CRITICAL TESTS:
- Only published predictions can be bet on
- A bet is settled at most once
- Placement and settlement move exposure, daily risk and balance together
"""

import asyncio
from decimal import Decimal

import pytest

from pitchedge.config import KellyConfig, StakingConfig, StakingPolicy
from pitchedge.models.domain import Bankroll, Bet, Prediction
from pitchedge.services.betting.bankroll import BetResult, BetStatus
from pitchedge.services.betting.errors import (
    BetAlreadySettledError,
    BetNotFoundError,
    InvalidBetError,
    InvalidStakeError,
    PredictionNotFoundError,
)
from pitchedge.services.betting.service import BettingService
from pitchedge.services.engine.types import Decision


class FakeResult:
    def __init__(self, rows):
        self.rows = rows

    def scalar_one_or_none(self):
        return self.rows[0] if self.rows else None

    def scalars(self):
        return iter(self.rows)


class FakeSession:
    """
    Just enough of AsyncSession for the betting service.

    Selects are answered from the added objects by entity and a single
    equality criterion.
    """

    def __init__(self):
        self.objects: list = []
        self.flushes = 0
        self._next_id = 1

    def add(self, obj) -> None:
        self.objects.append(obj)

    async def flush(self) -> None:
        for obj in self.objects:
            if obj.id is None:
                obj.id = self._next_id
                self._next_id += 1
        self.flushes += 1

    async def get(self, entity, ident):
        for obj in self.objects:
            if isinstance(obj, entity) and obj.id == ident:
                return obj
        return None

    async def execute(self, stmt):
        entity = stmt.column_descriptions[0]["entity"]
        criterion = stmt.whereclause
        rows = [
            obj
            for obj in self.objects
            if isinstance(obj, entity)
            and getattr(obj, criterion.left.key) == criterion.right.value
        ]
        return FakeResult(rows)

    def of_type(self, entity) -> list:
        return [obj for obj in self.objects if isinstance(obj, entity)]


def make_prediction(
    prediction_id=1,
    model_probability="0.7000",
    final_probability="0.6200",
    avg_odds="2.000",
    decision=Decision.PUBLISH,
) -> Prediction:
    return Prediction(
        id=prediction_id,
        cycle_id=1,
        fixture_id=5001,
        market="OU",
        line=Decimal("2.5"),
        selection="OVER",
        model_probability=Decimal(model_probability),
        final_probability=Decimal(final_probability),
        avg_odds=Decimal(avg_odds),
        implied_probability=Decimal("0.5000"),
        decision=decision.value,
        reason=None if decision == Decision.PUBLISH else "LOW_EDGE",
    )


UNCAPPED = KellyConfig(max_stake_pct=0.5, max_daily_risk_pct=0.5, max_open_exposure_pct=0.5)


class TestPlaceBet:
    """Test locking a stake on a prediction."""

    def setup_method(self):
        self.session = FakeSession()
        self.service = BettingService(self.session, StakingConfig())

    def place(self, prediction, **kwargs) -> Bet:
        self.session.add(prediction)
        return asyncio.run(self.service.place_bet("user-1", prediction.id, **kwargs))

    def test_kelly_bet_reserves_exposure_and_daily_risk(self):
        bet = self.place(make_prediction())
        bankroll = self.session.of_type(Bankroll)[0]

        assert bet.status == BetStatus.OPEN.value
        assert float(bet.stake) == 15.0
        assert bet.staking_policy == "kelly"
        assert float(bankroll.current_bankroll) == 1000.0
        assert float(bankroll.open_exposure) == 15.0
        assert float(bankroll.day_risk_used) == 15.0
        assert bankroll.day_key is not None

    def test_stake_breakdown_snapshots_kelly(self):
        bet = self.place(make_prediction())
        breakdown = bet.stake_breakdown

        assert breakdown["policy"] == "kelly"
        assert breakdown["stake_amount"] == 15
        assert breakdown["kelly"]["p_used"] == pytest.approx(0.61)
        assert breakdown["kelly"]["raw_kelly"] == pytest.approx(0.22)
        assert breakdown["kelly"]["drawdown_multiplier"] == 1.0

    def test_sized_from_raw_model_probability(self):
        self.service = BettingService(self.session, StakingConfig(kelly=UNCAPPED))
        bet = self.place(make_prediction(model_probability="0.8000", final_probability="0.6350"))

        # 0.7*0.80 + 0.12 = 0.68, raw Kelly 0.36, a fifth of it on 1000
        assert bet.stake_breakdown["kelly"]["p_used"] == pytest.approx(0.68)
        assert float(bet.stake) == 72.0
        assert bet.model_probability == Decimal("0.8000")

    def test_fixed_policy(self):
        bet = self.place(make_prediction(), policy=StakingPolicy.FIXED)

        assert float(bet.stake) == 15.0
        assert bet.staking_policy == "fixed"
        assert bet.stake_breakdown["policy"] == "fixed"

    def test_custom_stake_keeps_recommendation(self):
        bet = self.place(make_prediction(), custom_stake=25.0, custom_odds=2.2)
        bankroll = self.session.of_type(Bankroll)[0]

        assert float(bet.stake) == 25.0
        assert bet.odds_decimal == Decimal("2.2")
        assert bet.stake_breakdown["stake_amount"] == 15
        assert float(bankroll.open_exposure) == 25.0

    def test_blocked_prediction_rejected(self):
        with pytest.raises(InvalidBetError):
            self.place(make_prediction(decision=Decision.BLOCK))

        assert self.session.of_type(Bet) == []

    def test_unknown_prediction(self):
        with pytest.raises(PredictionNotFoundError):
            asyncio.run(self.service.place_bet("user-1", 99))

    def test_zero_custom_stake_rejected(self):
        with pytest.raises(InvalidStakeError):
            self.place(make_prediction(), custom_stake=0.0)

        assert self.session.of_type(Bet) == []

    def test_no_edge_recommendation_rejected(self):
        with pytest.raises(InvalidStakeError):
            self.place(make_prediction(model_probability="0.5500", avg_odds="1.500"))

        bankroll = self.session.of_type(Bankroll)[0]
        assert float(bankroll.open_exposure) == 0.0
        assert self.session.of_type(Bet) == []

    def test_price_must_exceed_one(self):
        with pytest.raises(InvalidStakeError):
            self.place(make_prediction(), custom_odds=1.0)


class TestSettleBet:
    """Test settling a placed bet."""

    def setup_method(self):
        self.session = FakeSession()
        self.service = BettingService(self.session, StakingConfig())
        self.session.add(make_prediction())
        self.bet = asyncio.run(self.service.place_bet("user-1", 1))
        self.bankroll = self.session.of_type(Bankroll)[0]

    def settle(self, result: BetResult) -> Bet:
        return asyncio.run(self.service.settle_bet(self.bet.id, result))

    def test_win_releases_exposure_and_books_profit(self):
        bet = self.settle(BetResult.WIN)

        assert bet.status == BetStatus.WON.value
        assert float(bet.pnl) == 15.0
        assert bet.settled_at is not None
        assert float(self.bankroll.current_bankroll) == 1015.0
        assert float(self.bankroll.peak_bankroll) == 1015.0
        assert float(self.bankroll.open_exposure) == 0.0
        # Daily risk is not given back at settlement
        assert float(self.bankroll.day_risk_used) == 15.0
        assert self.bankroll.last_results == ["WIN"]

    def test_loss(self):
        bet = self.settle(BetResult.LOSS)

        assert bet.status == BetStatus.LOST.value
        assert float(self.bankroll.current_bankroll) == 985.0
        assert float(self.bankroll.peak_bankroll) == 1000.0
        assert self.bankroll.consecutive_losses == 1

    def test_push_status_kept_window_records_void(self):
        bet = self.settle(BetResult.PUSH)

        assert bet.status == BetStatus.PUSH.value
        assert float(bet.pnl) == 0.0
        assert self.bankroll.last_results == ["VOID"]

    def test_settling_twice_rejected(self):
        self.settle(BetResult.WIN)

        with pytest.raises(BetAlreadySettledError):
            self.settle(BetResult.LOSS)

        assert self.bet.status == BetStatus.WON.value
        assert float(self.bankroll.current_bankroll) == 1015.0

    def test_unknown_bet(self):
        with pytest.raises(BetNotFoundError):
            asyncio.run(self.service.settle_bet(404, BetResult.WIN))


class TestBankroll:
    """Test bankroll creation and reset."""

    def setup_method(self):
        self.session = FakeSession()
        self.service = BettingService(self.session, StakingConfig())

    def test_created_with_defaults_once(self):
        first = asyncio.run(self.service.get_or_create_bankroll("user-1"))
        second = asyncio.run(self.service.get_or_create_bankroll("user-1"))

        assert first is second
        assert float(first.current_bankroll) == 1000.0
        assert first.currency == "EUR"

    def test_reset(self):
        bankroll = asyncio.run(self.service.get_or_create_bankroll("user-1"))
        bankroll.open_exposure = Decimal("40.00")
        bankroll.consecutive_losses = 3
        bankroll.last_results = ["LOSS"] * 3

        asyncio.run(self.service.reset_bankroll("user-1", 500.0))

        assert float(bankroll.initial_bankroll) == 500.0
        assert float(bankroll.peak_bankroll) == 500.0
        assert float(bankroll.open_exposure) == 0.0
        assert bankroll.consecutive_losses == 0
        assert bankroll.last_results == []

    def test_reset_needs_positive_amount(self):
        with pytest.raises(InvalidStakeError):
            asyncio.run(self.service.reset_bankroll("user-1", 0.0))
