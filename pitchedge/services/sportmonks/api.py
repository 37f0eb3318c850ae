"""SportMonks football API client.

Provides async access to fixtures, team history, league scoring and
pre-match odds with:
- Retry with exponential backoff
- Error classification
- Payload validation into typed schemas
"""

import asyncio
from collections.abc import Sequence
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

import httpx
import structlog
from pydantic import ValidationError

from pitchedge.config import get_engine_rules, get_settings
from pitchedge.services.engine.types import FixtureInfo
from pitchedge.services.modeling.history import TeamMatch
from pitchedge.services.odds.averages import OddsPointData
from pitchedge.services.odds.normalizer import (
    Market,
    is_valid_price,
    line_from_label,
    normalize_line,
    normalize_market,
    normalize_selection,
)
from pitchedge.services.sportmonks.schemas import SmFixture, SmOdds

logger = structlog.get_logger(__name__)

EUROPEAN_LEAGUE_IDS = [
    8, 9, 24, 27, 72, 82, 181, 208, 244, 271, 301, 384, 387, 390, 444, 453,
    462, 486, 501, 564, 567, 570, 573, 591, 600, 609, 1371,
]

# Provider state id for "not started"
STATE_NOT_STARTED = 1


class SportMonksErrorType(Enum):
    """Classification of SportMonks API errors."""

    NOT_CONFIGURED = "NOT_CONFIGURED"
    UNAUTHORIZED = "UNAUTHORIZED"
    RATE_LIMITED = "RATE_LIMITED"
    TIMEOUT = "TIMEOUT"
    INVALID_INPUT = "INVALID_INPUT"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    UNKNOWN = "UNKNOWN"


class SportMonksAPIError(Exception):
    """SportMonks API error with classification."""

    def __init__(self, message: str, error_type: SportMonksErrorType, retryable: bool = False):
        super().__init__(message)
        self.error_type = error_type
        self.retryable = retryable


def _validate_all(model, items: list[Any]) -> list:
    """Validate each item, dropping the ones that don't fit the schema."""
    parsed = []
    for item in items:
        try:
            parsed.append(model.model_validate(item))
        except ValidationError as e:
            logger.debug("payload_item_dropped", model=model.__name__, errors=e.error_count())
    return parsed


class SportMonksClient:
    """
    SportMonks v3 football client.

    Implements the fixture provider the prediction engine and result sync
    depend on.
    """

    def __init__(self, http_client: httpx.AsyncClient | None = None):
        """
        Initialize SportMonks client.

        Args:
            http_client: Optional preconfigured HTTP client (tests)
        """
        self.settings = get_settings()
        self.rules = get_engine_rules()
        self._http_client = http_client
        self._owns_client = http_client is None

    async def __aenter__(self) -> "SportMonksClient":
        """Async context manager entry."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.settings.sportmonks_timeout)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        if self._http_client and self._owns_client:
            await self._http_client.aclose()
            self._http_client = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.settings.sportmonks_timeout)
        return self._http_client

    async def _request(
        self,
        endpoint: str,
        params: dict[str, str] | None = None,
        max_retries: int = 3,
    ) -> Any:
        """
        Make a GET request with retry.

        Args:
            endpoint: Path below the football base URL
            params: Query parameters (empty values are dropped)
            max_retries: Maximum retry attempts

        Returns:
            Decoded JSON body

        Raises:
            SportMonksAPIError: If the request fails after retries
        """
        if not self.settings.sportmonks_configured:
            raise SportMonksAPIError(
                "SPORTMONKS_API_TOKEN is not set",
                SportMonksErrorType.NOT_CONFIGURED,
            )

        url = f"{self.settings.sportmonks_base_url}/{endpoint}"
        query = {"api_token": self.settings.sportmonks_api_token}
        query.update({k: v for k, v in (params or {}).items() if v})

        for attempt in range(max_retries + 1):
            try:
                client = await self._get_client()
                response = await client.get(url, params=query)
                response.raise_for_status()
                return response.json()

            except httpx.TimeoutException:
                if attempt < max_retries:
                    wait_time = 2**attempt
                    logger.warning(
                        "timeout_retrying",
                        endpoint=endpoint,
                        attempt=attempt,
                        wait_time=wait_time,
                    )
                    await asyncio.sleep(wait_time)
                    continue
                raise SportMonksAPIError(
                    "Request timeout",
                    SportMonksErrorType.TIMEOUT,
                    retryable=True,
                )

            except httpx.HTTPStatusError as e:
                status = e.response.status_code
                if status == 429 or status >= 500:
                    if attempt < max_retries:
                        wait_time = 2**attempt
                        logger.warning(
                            "api_error_retrying",
                            endpoint=endpoint,
                            status_code=status,
                            attempt=attempt,
                            wait_time=wait_time,
                        )
                        await asyncio.sleep(wait_time)
                        continue
                    error_type = (
                        SportMonksErrorType.RATE_LIMITED
                        if status == 429
                        else SportMonksErrorType.SERVICE_UNAVAILABLE
                    )
                    raise SportMonksAPIError(
                        f"SportMonks error: {status}", error_type, retryable=True
                    )
                if status in (401, 403):
                    raise SportMonksAPIError(
                        f"SportMonks rejected credentials: {status}",
                        SportMonksErrorType.UNAUTHORIZED,
                    )
                if status in (400, 404, 422):
                    logger.warning(
                        "bad_request",
                        endpoint=endpoint,
                        status_code=status,
                        response_text=e.response.text[:500] if e.response.text else "",
                    )
                    raise SportMonksAPIError(
                        f"Client error {status}: {e.response.text[:200] if e.response.text else 'Invalid request'}",
                        SportMonksErrorType.INVALID_INPUT,
                    )
                raise SportMonksAPIError(str(e), SportMonksErrorType.UNKNOWN)

            except httpx.TransportError as e:
                if attempt < max_retries:
                    await asyncio.sleep(2**attempt)
                    continue
                raise SportMonksAPIError(
                    str(e), SportMonksErrorType.SERVICE_UNAVAILABLE, retryable=True
                )

        raise SportMonksAPIError("Retries exhausted", SportMonksErrorType.UNKNOWN)

    async def list_upcoming_fixtures(self, window_hours: int = 72) -> list[FixtureInfo]:
        """
        Fetch not-started fixtures in the tracked leagues.

        Args:
            window_hours: How far ahead to look

        Returns:
            Fixtures with both participants and a kickoff time
        """
        now = datetime.now(timezone.utc)
        start = now.date().isoformat()
        end = (now + timedelta(hours=window_hours)).date().isoformat()

        data = await self._request(
            f"fixtures/between/{start}/{end}",
            {
                "include": "participants;league;scores",
                "filters": (
                    f"fixtureLeagues:{','.join(str(i) for i in EUROPEAN_LEAGUE_IDS)};"
                    f"fixtureStates:{STATE_NOT_STARTED}"
                ),
            },
        )
        fixtures = []
        for sm_fixture in _validate_all(SmFixture, data.get("data") or []):
            info = sm_fixture.to_fixture_info()
            if info is None:
                logger.debug("fixture_missing_participants", fixture_id=sm_fixture.id)
                continue
            fixtures.append(info)
        return fixtures

    async def get_team_recent_matches(self, team_id: int, limit: int = 10) -> list[TeamMatch]:
        """
        Fetch a team's latest completed matches, newest first.

        Args:
            team_id: Provider team id
            limit: Maximum number of matches returned

        Returns:
            Matches with final scores, from the team's perspective
        """
        data = await self._request(
            f"teams/{team_id}",
            {"include": "latest.scores;latest.participants"},
        )
        latest = (data.get("data") or {}).get("latest") or []
        matches = []
        for sm_fixture in _validate_all(SmFixture, latest):
            match = sm_fixture.to_team_match(team_id)
            if match is not None:
                matches.append(match)
        matches.sort(key=lambda m: m.played_at, reverse=True)
        return matches[:limit]

    async def get_league_average_goals(
        self, league_id: int, trailing_days: int | None = None
    ) -> float:
        """
        Average total goals per finished match over a trailing window.

        Falls back to the configured constant when the provider has no
        data or fails.
        """
        trailing_days = trailing_days or self.rules.league_avg_trailing_days
        fallback = self.rules.league_avg_fallback
        now = datetime.now(timezone.utc)
        start = (now - timedelta(days=trailing_days)).date().isoformat()
        end = now.date().isoformat()

        try:
            data = await self._request(
                f"fixtures/between/{start}/{end}",
                {
                    "include": "scores",
                    "filters": f"fixtureLeagues:{league_id};fixtureStates:5",
                    "per_page": "50",
                },
            )
        except SportMonksAPIError as e:
            logger.warning("league_average_fallback", league_id=league_id, error=str(e))
            return fallback

        totals = []
        for sm_fixture in _validate_all(SmFixture, data.get("data") or []):
            score = sm_fixture.final_score()
            if score is not None:
                totals.append(sum(score))
        if not totals:
            return fallback
        return sum(totals) / len(totals)

    async def get_odds_for_fixtures(self, fixture_ids: Sequence[int]) -> list[OddsPointData]:
        """
        Fetch and normalize pre-match odds.

        Only whitelisted bookmakers and target markets are kept; entries
        whose market, selection, line or price can't be normalized are
        dropped. A failure for one fixture doesn't affect the others.
        """
        points: list[OddsPointData] = []
        bookmakers = set(self.rules.bookmaker_whitelist)
        market_ids = set(self.rules.target_market_ids)
        lines = set(self.rules.ou_lines)

        for fixture_id in fixture_ids:
            try:
                data = await self._request(
                    f"odds/pre-match/fixtures/{fixture_id}",
                    {"include": "market"},
                )
            except SportMonksAPIError as e:
                logger.error("odds_fetch_failed", fixture_id=fixture_id, error=str(e))
                continue

            observed_at = datetime.now(timezone.utc)
            for odds in _validate_all(SmOdds, data.get("data") or []):
                if odds.bookmaker_id not in bookmakers or odds.market_id not in market_ids:
                    continue
                market = normalize_market(odds.market_name)
                if market is None:
                    continue
                selection = normalize_selection(market, odds.selection_label)
                if selection is None:
                    continue

                line = None
                if market == Market.OU:
                    line = normalize_line(odds.total if odds.total is not None else odds.handicap)
                    if line is None:
                        line = line_from_label(odds.selection_label)
                    if line not in lines:
                        continue

                if odds.value is None or not is_valid_price(odds.value):
                    continue

                points.append(
                    OddsPointData(
                        fixture_id=fixture_id,
                        bookmaker_id=odds.bookmaker_id,
                        market=market,
                        selection=selection,
                        line=line,
                        price=odds.value,
                        observed_at=observed_at,
                        source=self.rules.odds_source,
                    )
                )

        return points

    async def get_fixtures_by_ids(self, fixture_ids: Sequence[int]) -> list[SmFixture]:
        """Fetch fixtures (with state and scores) for result sync."""
        if not fixture_ids:
            return []
        data = await self._request(
            f"fixtures/multi/{','.join(str(i) for i in fixture_ids)}",
            {"include": "scores;participants"},
        )
        return _validate_all(SmFixture, data.get("data") or [])

    async def health_check(self) -> bool:
        """Check the API answers with the configured token."""
        try:
            await self._request("leagues", {"per_page": "1"}, max_retries=0)
            return True
        except SportMonksAPIError as e:
            logger.warning("sportmonks_health_check_failed", error=str(e))
            return False
