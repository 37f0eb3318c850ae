"""Staking inputs and outputs."""

from dataclasses import asdict, dataclass, field
from typing import Any


@dataclass(frozen=True)
class BankrollState:
    """
    Snapshot of a bankroll as the staking policies see it.

    last_results is newest first (WIN, LOSS or VOID).
    """

    current_bankroll: float
    peak_bankroll: float
    open_exposure: float = 0.0
    consecutive_losses: int = 0
    last_results: tuple[str, ...] = field(default_factory=tuple)
    day_key: str | None = None
    day_risk_used: float = 0.0


@dataclass(frozen=True)
class BetCandidate:
    """A published prediction offered for staking."""

    odds_decimal: float
    model_probability: float
    prediction_id: int | None = None
    fixture_id: int | None = None
    market: str | None = None
    selection: str | None = None
    line: float | None = None


@dataclass(frozen=True)
class KellyResult:
    """Every intermediate quantity of a Kelly computation."""

    p_used: float
    raw_kelly: float
    fractional_kelly: float
    drawdown_multiplier: float
    loss_streak_multiplier: float
    form_multiplier: float
    final_stake_pct: float
    final_stake_amount: float

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class StakeDecision:
    """Kelly policy output."""

    should_bet: bool
    stake_amount: float
    stake_pct: float
    kelly: KellyResult

    def to_dict(self) -> dict[str, Any]:
        return {
            "policy": "kelly",
            "should_bet": self.should_bet,
            "stake_amount": self.stake_amount,
            "stake_pct": self.stake_pct,
            "kelly": self.kelly.to_dict(),
        }


@dataclass(frozen=True)
class FixedStakeResult:
    """Fixed-percentage policy output."""

    stake: float
    pct: float
    is_reduced: bool
    bankroll: float
    consecutive_losses: int

    @property
    def should_bet(self) -> bool:
        return self.stake > 0

    def to_dict(self) -> dict[str, Any]:
        return {"policy": "fixed", "should_bet": self.should_bet, **asdict(self)}
