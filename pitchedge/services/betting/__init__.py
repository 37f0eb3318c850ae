"""Bankroll and bet ledger."""

from pitchedge.services.betting.bankroll import (
    BetResult,
    BetStatus,
    apply_bet_placement,
    apply_settlement,
    calculate_pnl,
)
from pitchedge.services.betting.errors import (
    BankrollNotFoundError,
    BetAlreadySettledError,
    BetNotFoundError,
    BettingError,
    InvalidBetError,
    InvalidStakeError,
    PredictionNotFoundError,
)
from pitchedge.services.betting.outcomes import Outcome, determine_outcome
from pitchedge.services.betting.results import PendingPrediction, SyncReport, sync_results

__all__ = [
    "BetResult",
    "BetStatus",
    "Outcome",
    "PendingPrediction",
    "SyncReport",
    "apply_bet_placement",
    "apply_settlement",
    "calculate_pnl",
    "determine_outcome",
    "sync_results",
    "BettingError",
    "InvalidBetError",
    "InvalidStakeError",
    "BankrollNotFoundError",
    "BetNotFoundError",
    "PredictionNotFoundError",
    "BetAlreadySettledError",
]
