"""Betting errors, mapped to HTTP statuses by the API layer."""


class BettingError(Exception):
    """Base class for betting errors."""

    status_code = 400


class InvalidBetError(BettingError):
    """Bet request failed validation."""

    status_code = 400


class InvalidStakeError(InvalidBetError):
    """Stake or price is not usable."""


class BankrollNotFoundError(BettingError):
    status_code = 404


class BetNotFoundError(BettingError):
    status_code = 404


class PredictionNotFoundError(BettingError):
    status_code = 404


class BetAlreadySettledError(BettingError):
    """Settlement attempted on a bet that is no longer OPEN."""

    status_code = 409
