"""SportMonks API client module."""

from pitchedge.services.sportmonks.api import (
    SportMonksAPIError,
    SportMonksClient,
    SportMonksErrorType,
)
from pitchedge.services.sportmonks.schemas import SmFixture, SmOdds

__all__ = [
    "SportMonksClient",
    "SportMonksAPIError",
    "SportMonksErrorType",
    "SmFixture",
    "SmOdds",
]
