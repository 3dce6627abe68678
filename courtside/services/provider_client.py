"""
Score-provider HTTP client.

Read-only GET access to the provider's public basketball endpoints for one
league:

- Site API:   {site}/scoreboard?dates=YYYYMMDD
              {site}/summary?event=<gameId>
              {site}/teams/<teamId>/statistics
- Standings:  {site with /site/v2/ -> /v2/}/standings
- Common API: {common}/teams/<teamId>/roster
- Core API:   {core}/seasons/<year>/types/2/athletes/<athleteId>/statistics/0

Every failure (non-2xx, network error, invalid JSON, open circuit) is raised
as ProviderFetchError. Callers decide what a failure means: the poller
reschedules, discovery reports and moves on, backfill retries a few times
through fetch_with_retry.
"""
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from courtside.core.config import settings
from courtside.core.leagues import LeagueConfig
from courtside.core.logging import get_logger
from courtside.services.circuit_breaker import (
    CircuitBreakerError,
    call_with_breaker,
    get_breaker,
)

logger = get_logger(__name__)

DEFAULT_HEADERS = {
    "User-Agent": "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7)",
    "Accept": "application/json",
}


class ProviderFetchError(Exception):
    """A provider request did not produce a usable JSON payload."""

    def __init__(self, message: str, url: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class ProviderClient:
    """
    Provider API client bound to one league.

    Usage:
        client = ProviderClient(leagues["nba"])
        scoreboard = await client.get_scoreboard("20250110")
        summary = await client.get_summary("401585001")
        await client.close()

    Pass `client=httpx.AsyncClient(transport=...)` to reuse a shared
    connection pool or to inject a mock transport.
    """

    def __init__(
        self,
        league: LeagueConfig,
        client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
    ):
        self.league = league
        self._client = client
        self._owns_client = client is None
        self._timeout = timeout if timeout is not None else settings.HTTP_TIMEOUT_SECONDS
        self._breaker = get_breaker(league.key)

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout),
                limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
                headers=DEFAULT_HEADERS,
            )
        return self._client

    async def close(self):
        """Close the HTTP client if this instance created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None

    async def __aenter__(self) -> "ProviderClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def _request(self, url: str, params: Optional[Dict[str, str]]) -> Dict[str, Any]:
        client = await self._get_client()
        try:
            response = await client.get(url, params=params)
        except httpx.HTTPError as e:
            raise ProviderFetchError(f"Request to provider failed: {e}", url=url) from e

        if response.status_code < 200 or response.status_code >= 300:
            raise ProviderFetchError(
                f"Provider returned HTTP {response.status_code}",
                url=url,
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise ProviderFetchError(
                "Provider returned invalid JSON", url=url, status_code=response.status_code
            ) from e

        if not isinstance(data, dict):
            raise ProviderFetchError(
                "Provider returned a non-object payload", url=url, status_code=response.status_code
            )
        return data

    async def _fetch(self, url: str, params: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        """
        GET a JSON object through the league's circuit breaker.

        Raises:
            ProviderFetchError: on any failure, including an open circuit
        """
        try:
            return await call_with_breaker(self._breaker, self._request, url, params)
        except CircuitBreakerError as e:
            logger.warning(f"{self.league.log_prefix} Provider circuit breaker is OPEN for {url}")
            raise ProviderFetchError(f"Circuit breaker open: {e}", url=url) from e

    # ==================== SITE API ====================

    async def get_scoreboard(self, date: str) -> Dict[str, Any]:
        """Scoreboard for a YYYYMMDD date: {"events": [...]}."""
        return await self._fetch(f"{self.league.site_api}/scoreboard", {"dates": date})

    async def get_summary(self, game_id: str) -> Dict[str, Any]:
        """Game summary: header status/competitors plus boxscore teams/players."""
        return await self._fetch(f"{self.league.site_api}/summary", {"event": game_id})

    async def get_team_statistics(self, team_id: str) -> Dict[str, Any]:
        return await self._fetch(f"{self.league.site_api}/teams/{team_id}/statistics")

    async def get_standings(self) -> Dict[str, Any]:
        return await self._fetch(self.league.standings_url)

    # ==================== COMMON API ====================

    async def get_roster(self, team_id: str) -> Dict[str, Any]:
        return await self._fetch(f"{self.league.common_api}/teams/{team_id}/roster")

    # ==================== CORE API ====================

    async def get_athlete_statistics(self, athlete_id: str, season_year: int) -> Dict[str, Any]:
        """
        Regular-season statistics for one athlete: splits.categories[].stats[].

        Athletes without core stats answer 404, so this endpoint bypasses the
        league circuit breaker.
        """
        url = f"{self.league.core_api}/seasons/{season_year}/types/2/athletes/{athlete_id}/statistics/0"
        return await self._request(url, {"lang": "en", "region": "us"})


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    retry=retry_if_exception_type(ProviderFetchError),
    reraise=True,
)
async def fetch_with_retry(
    fetch: Callable[..., Awaitable[Dict[str, Any]]],
    *args,
) -> Dict[str, Any]:
    """
    Call a ProviderClient fetch method, retrying transient failures.

    Only bootstrap and backfill use this; the poller never retries inline.

    Usage:
        standings = await fetch_with_retry(client.get_standings)
    """
    return await fetch(*args)
