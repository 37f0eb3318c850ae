"""Betting service.

Bankroll and bet persistence on top of the pure staking policies and
ledger transitions. The caller owns the session and its commit; every
multi-row mutation here happens inside that one transaction.
"""

from collections import defaultdict
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from pitchedge.config import StakingConfig, StakingPolicy, get_staking_config
from pitchedge.models.domain import Bankroll, Bet, Prediction
from pitchedge.services.betting.bankroll import (
    STATUS_FOR_RESULT,
    BetResult,
    BetStatus,
    apply_bet_placement,
    apply_settlement,
    reset_state,
)
from pitchedge.services.betting.errors import (
    BankrollNotFoundError,
    BetAlreadySettledError,
    BetNotFoundError,
    InvalidBetError,
    InvalidStakeError,
    PredictionNotFoundError,
)
from pitchedge.services.engine.types import Decision
from pitchedge.services.staking import (
    BankrollState,
    BetCandidate,
    FixedStakeResult,
    StakeDecision,
    calculate_fixed_stake,
    compute_stake_decision,
)

logger = structlog.get_logger(__name__)


def _money(value: float) -> Decimal:
    return Decimal(str(round(value, 2)))


def bankroll_state(bankroll: Bankroll) -> BankrollState:
    """Snapshot a bankroll row for the pure staking and ledger code."""
    return BankrollState(
        current_bankroll=float(bankroll.current_bankroll),
        peak_bankroll=float(bankroll.peak_bankroll),
        open_exposure=float(bankroll.open_exposure),
        consecutive_losses=bankroll.consecutive_losses,
        last_results=tuple(bankroll.last_results or ()),
        day_key=bankroll.day_key,
        day_risk_used=float(bankroll.day_risk_used),
    )


def _store_state(bankroll: Bankroll, state: BankrollState) -> None:
    bankroll.current_bankroll = _money(state.current_bankroll)
    bankroll.peak_bankroll = _money(state.peak_bankroll)
    bankroll.open_exposure = _money(state.open_exposure)
    bankroll.consecutive_losses = state.consecutive_losses
    bankroll.last_results = list(state.last_results)
    bankroll.day_key = state.day_key
    bankroll.day_risk_used = _money(state.day_risk_used)


class BettingService:
    """Bankrolls, stake recommendations, bet placement and settlement."""

    def __init__(self, session: AsyncSession, config: StakingConfig | None = None):
        self.session = session
        self.config = config or get_staking_config()

    async def get_bankroll(self, user_id: str, for_update: bool = False) -> Bankroll | None:
        stmt = select(Bankroll).where(Bankroll.user_id == user_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_or_create_bankroll(self, user_id: str, for_update: bool = False) -> Bankroll:
        """Get the user's bankroll, creating the default one on first use."""
        bankroll = await self.get_bankroll(user_id, for_update=for_update)
        if bankroll is not None:
            return bankroll

        amount = _money(self.config.default_bankroll)
        bankroll = Bankroll(
            user_id=user_id,
            currency=self.config.default_currency,
            initial_bankroll=amount,
            current_bankroll=amount,
            peak_bankroll=amount,
            open_exposure=Decimal("0.00"),
            consecutive_losses=0,
            last_results=[],
            day_key=None,
            day_risk_used=Decimal("0.00"),
        )
        self.session.add(bankroll)
        await self.session.flush()
        logger.info("bankroll_created", user_id=user_id, amount=str(amount))
        return bankroll

    async def reset_bankroll(self, user_id: str, amount: float) -> Bankroll:
        """Start over at ``amount``: balance, peak, exposure, streak and window reset."""
        if amount <= 0:
            raise InvalidStakeError("Bankroll amount must be greater than zero")

        bankroll = await self.get_or_create_bankroll(user_id, for_update=True)
        bankroll.initial_bankroll = _money(amount)
        _store_state(bankroll, reset_state(amount))
        await self.session.flush()
        logger.info("bankroll_reset", user_id=user_id, amount=amount)
        return bankroll

    def recommend(
        self,
        candidate: BetCandidate,
        state: BankrollState,
        policy: StakingPolicy | None = None,
    ) -> StakeDecision | FixedStakeResult:
        """Stake recommendation under the active (or requested) policy."""
        policy = policy or self.config.policy
        if policy == StakingPolicy.FIXED:
            return calculate_fixed_stake(
                state.current_bankroll,
                state.consecutive_losses,
                list(reversed(state.last_results)),
                self.config.fixed,
            )
        return compute_stake_decision(candidate, state, self.config.kelly)

    async def recommend_stake(
        self,
        user_id: str,
        candidate: BetCandidate,
        policy: StakingPolicy | None = None,
    ) -> StakeDecision | FixedStakeResult:
        if candidate.odds_decimal <= 1:
            raise InvalidStakeError("Odds must be greater than 1.0")
        if not 0 <= candidate.model_probability <= 1:
            raise InvalidStakeError("Probability must be within [0, 1]")
        bankroll = await self.get_or_create_bankroll(user_id)
        return self.recommend(candidate, bankroll_state(bankroll), policy)

    async def place_bet(
        self,
        user_id: str,
        prediction_id: int,
        custom_stake: float | None = None,
        custom_odds: float | None = None,
        policy: StakingPolicy | None = None,
    ) -> Bet:
        """
        Lock a stake on a published prediction.

        The recommendation is always computed and stored with the bet; a
        custom stake or price overrides it.

        Raises:
            PredictionNotFoundError: Unknown prediction
            InvalidBetError: Prediction is not published
            InvalidStakeError: Final stake or price is not usable
        """
        prediction = await self.session.get(Prediction, prediction_id)
        if prediction is None:
            raise PredictionNotFoundError(f"Prediction {prediction_id} not found")
        if prediction.decision != Decision.PUBLISH.value:
            raise InvalidBetError(f"Prediction {prediction_id} is not published")

        odds = custom_odds if custom_odds is not None else float(prediction.avg_odds)
        if odds <= 1:
            raise InvalidStakeError("Odds must be greater than 1.0")

        bankroll = await self.get_or_create_bankroll(user_id, for_update=True)
        state = bankroll_state(bankroll)
        candidate = BetCandidate(
            odds_decimal=odds,
            model_probability=float(prediction.model_probability),
            prediction_id=prediction.id,
            fixture_id=prediction.fixture_id,
            market=prediction.market,
            selection=prediction.selection,
            line=float(prediction.line) if prediction.line is not None else None,
        )
        policy = policy or self.config.policy
        recommendation = self.recommend(candidate, state, policy)

        if custom_stake is not None:
            stake = custom_stake
        elif isinstance(recommendation, FixedStakeResult):
            stake = recommendation.stake
        else:
            stake = recommendation.stake_amount

        if stake <= 0:
            raise InvalidStakeError("Stake amount must be greater than zero")

        now = datetime.now(timezone.utc)
        bet = Bet(
            user_id=user_id,
            bankroll_id=bankroll.id,
            prediction_id=prediction.id,
            fixture_id=prediction.fixture_id,
            market=prediction.market,
            selection=prediction.selection,
            line=prediction.line,
            odds_decimal=Decimal(str(odds)),
            model_probability=prediction.model_probability,
            stake=_money(stake),
            stake_pct=Decimal(str(round(stake / state.current_bankroll, 6)))
            if state.current_bankroll > 0
            else Decimal("0"),
            currency=bankroll.currency,
            status=BetStatus.OPEN.value,
            staking_policy=policy.value,
            stake_breakdown=recommendation.to_dict(),
            locked_at=now,
        )
        self.session.add(bet)
        _store_state(bankroll, apply_bet_placement(state, stake, now))
        await self.session.flush()

        logger.info(
            "bet_placed",
            user_id=user_id,
            bet_id=bet.id,
            prediction_id=prediction.id,
            stake=stake,
            odds=odds,
            policy=policy.value,
        )
        return bet

    async def settle_bet(self, bet_id: int, result: BetResult) -> Bet:
        """
        Settle an OPEN bet and update its bankroll.

        Bet and bankroll rows are locked for the rest of the transaction.

        Raises:
            BetNotFoundError: Unknown bet
            BetAlreadySettledError: Bet is not OPEN
        """
        row = await self.session.execute(
            select(Bet).where(Bet.id == bet_id).with_for_update()
        )
        bet = row.scalar_one_or_none()
        if bet is None:
            raise BetNotFoundError(f"Bet {bet_id} not found")
        if bet.status != BetStatus.OPEN.value:
            raise BetAlreadySettledError(f"Bet {bet_id} is already settled ({bet.status})")

        bankroll_row = await self.session.execute(
            select(Bankroll).where(Bankroll.id == bet.bankroll_id).with_for_update()
        )
        bankroll = bankroll_row.scalar_one_or_none()
        if bankroll is None:
            raise BankrollNotFoundError(f"Bankroll for bet {bet_id} not found")

        state, pnl = apply_settlement(
            bankroll_state(bankroll),
            float(bet.stake),
            float(bet.odds_decimal),
            result,
            window=self.config.results_window,
        )
        _store_state(bankroll, state)
        bet.status = STATUS_FOR_RESULT[result].value
        bet.pnl = _money(pnl)
        bet.settled_at = datetime.now(timezone.utc)
        await self.session.flush()

        logger.info(
            "bet_settled",
            bet_id=bet.id,
            user_id=bet.user_id,
            result=result.value,
            pnl=round(pnl, 2),
            bankroll=round(state.current_bankroll, 2),
        )
        return bet

    async def list_bets(
        self, user_id: str, status: str | None = None, limit: int = 100
    ) -> list[Bet]:
        stmt = select(Bet).where(Bet.user_id == user_id)
        if status:
            stmt = stmt.where(Bet.status == status.upper())
        stmt = stmt.order_by(Bet.locked_at.desc()).limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars())

    async def get_analytics(self, user_id: str) -> dict[str, Any]:
        """Performance summary over the user's settled bets."""
        bankroll = await self.get_or_create_bankroll(user_id)
        result = await self.session.execute(
            select(Bet).where(Bet.user_id == user_id).order_by(Bet.settled_at.asc())
        )
        bets = list(result.scalars())
        settled = [b for b in bets if b.status != BetStatus.OPEN.value]

        total_stake = sum(float(b.stake) for b in settled)
        total_pnl = sum(float(b.pnl or 0) for b in settled)
        wins = sum(1 for b in settled if b.status == BetStatus.WON.value)
        losses = sum(1 for b in settled if b.status == BetStatus.LOST.value)
        voids = len(settled) - wins - losses
        decided = wins + losses
        initial = float(bankroll.initial_bankroll)

        markets: dict[str, dict[str, float]] = defaultdict(
            lambda: {"pnl": 0.0, "wins": 0, "total": 0}
        )
        for b in settled:
            stats = markets[b.market]
            stats["pnl"] += float(b.pnl or 0)
            if b.status == BetStatus.WON.value:
                stats["wins"] += 1
            if b.status in (BetStatus.WON.value, BetStatus.LOST.value):
                stats["total"] += 1

        return {
            "overview": {
                "total_bets": len(bets),
                "settled_bets": len(settled),
                "total_stake": round(total_stake, 2),
                "total_pnl": round(total_pnl, 2),
                "win_rate": round(wins / decided * 100, 2) if decided else 0.0,
                "yield": round(total_pnl / total_stake * 100, 2) if total_stake else 0.0,
                "roi": round(total_pnl / initial * 100, 2) if initial else 0.0,
                "wins": wins,
                "losses": losses,
                "voids": voids,
            },
            "markets": {
                market: {**stats, "pnl": round(stats["pnl"], 2)}
                for market, stats in markets.items()
            },
            "history": [
                {
                    "settled_at": b.settled_at.isoformat() if b.settled_at else None,
                    "pnl": float(b.pnl or 0),
                }
                for b in settled
            ],
        }
