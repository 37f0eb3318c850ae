"""Bankroll and bet endpoints.

Routes take the owning user id explicitly; authentication sits in front
of this service.
"""

from datetime import datetime
from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from pitchedge.api.dependencies import get_db
from pitchedge.config import StakingPolicy
from pitchedge.services.betting.bankroll import BetResult
from pitchedge.services.betting.errors import BettingError
from pitchedge.services.betting.service import BettingService
from pitchedge.services.staking import BetCandidate

router = APIRouter(prefix="/api", tags=["betting"])
logger = structlog.get_logger(__name__)


class BankrollResponse(BaseModel):
    user_id: str
    currency: str
    initial_bankroll: float
    current_bankroll: float
    peak_bankroll: float
    open_exposure: float
    consecutive_losses: int
    last_results: list[str]
    day_key: str | None = None
    day_risk_used: float

    model_config = {"from_attributes": True}


class BankrollUpdate(BaseModel):
    amount: float = Field(gt=0)


class RecommendRequest(BaseModel):
    user_id: str
    odds_decimal: float = Field(gt=1.0)
    model_probability: float = Field(ge=0.0, le=1.0)
    policy: StakingPolicy | None = None
    prediction_id: int | None = None
    market: str | None = None
    selection: str | None = None
    line: float | None = None


class PlaceBetRequest(BaseModel):
    user_id: str
    prediction_id: int
    custom_stake: float | None = Field(default=None, gt=0)
    custom_odds: float | None = Field(default=None, gt=1.0)
    policy: StakingPolicy | None = None


class SettleBetRequest(BaseModel):
    result: BetResult


class BetResponse(BaseModel):
    id: int
    user_id: str
    prediction_id: int | None = None
    fixture_id: int
    market: str
    selection: str
    line: float | None = None
    odds_decimal: float
    model_probability: float
    stake: float
    stake_pct: float
    currency: str
    status: str
    pnl: float | None = None
    staking_policy: str
    stake_breakdown: dict[str, Any] | None = None
    locked_at: datetime
    settled_at: datetime | None = None

    model_config = {"from_attributes": True}


def _raise_http(e: BettingError) -> None:
    raise HTTPException(status_code=e.status_code, detail=str(e)) from e


@router.get("/bankroll/{user_id}", response_model=BankrollResponse)
async def get_bankroll(user_id: str, db: AsyncSession = Depends(get_db)):
    """Get the user's bankroll, creating the default one on first use."""
    bankroll = await BettingService(db).get_or_create_bankroll(user_id)
    return BankrollResponse.model_validate(bankroll)


@router.put("/bankroll/{user_id}", response_model=BankrollResponse)
async def reset_bankroll(
    user_id: str, body: BankrollUpdate, db: AsyncSession = Depends(get_db)
):
    """Reset the bankroll to a new starting amount."""
    try:
        bankroll = await BettingService(db).reset_bankroll(user_id, body.amount)
    except BettingError as e:
        _raise_http(e)
    return BankrollResponse.model_validate(bankroll)


@router.get("/bankroll/{user_id}/analytics")
async def bankroll_analytics(user_id: str, db: AsyncSession = Depends(get_db)):
    return await BettingService(db).get_analytics(user_id)


@router.post("/bets/recommend")
async def recommend_stake(body: RecommendRequest, db: AsyncSession = Depends(get_db)):
    """
    Stake recommendation for a candidate.

    A zero stake is a normal answer (should_bet is false), not an error.
    """
    candidate = BetCandidate(
        odds_decimal=body.odds_decimal,
        model_probability=body.model_probability,
        prediction_id=body.prediction_id,
        market=body.market,
        selection=body.selection,
        line=body.line,
    )
    try:
        decision = await BettingService(db).recommend_stake(body.user_id, candidate, body.policy)
    except BettingError as e:
        _raise_http(e)
    return decision.to_dict()


@router.post("/bets", response_model=BetResponse, status_code=201)
async def place_bet(body: PlaceBetRequest, db: AsyncSession = Depends(get_db)):
    """Lock a stake on a published prediction."""
    try:
        bet = await BettingService(db).place_bet(
            body.user_id,
            body.prediction_id,
            custom_stake=body.custom_stake,
            custom_odds=body.custom_odds,
            policy=body.policy,
        )
    except BettingError as e:
        _raise_http(e)
    return BetResponse.model_validate(bet)


@router.get("/bets", response_model=list[BetResponse])
async def list_bets(
    user_id: str,
    status: str | None = Query(None, description="OPEN, WON, LOST, VOID or PUSH"),
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    bets = await BettingService(db).list_bets(user_id, status=status, limit=limit)
    return [BetResponse.model_validate(b) for b in bets]


@router.post("/bets/{bet_id}/settle", response_model=BetResponse)
async def settle_bet(bet_id: int, body: SettleBetRequest, db: AsyncSession = Depends(get_db)):
    """Settle an OPEN bet manually."""
    try:
        bet = await BettingService(db).settle_bet(bet_id, body.result)
    except BettingError as e:
        _raise_http(e)
    return BetResponse.model_validate(bet)
