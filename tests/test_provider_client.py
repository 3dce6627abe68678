"""Tests for the provider HTTP client and its circuit breaker."""
import httpx
import pytest

from courtside.services.circuit_breaker import DEFAULT_FAIL_MAX, get_all_breaker_states, get_breaker
from courtside.services.provider_client import ProviderClient, ProviderFetchError, fetch_with_retry


def client_for(league, handler) -> ProviderClient:
    return ProviderClient(league, client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


class TestRequests:

    @pytest.mark.asyncio
    async def test_scoreboard_url_and_params(self, nba):
        seen = []

        def handler(request):
            seen.append(request.url)
            return httpx.Response(200, json={"events": []})

        client = client_for(nba, handler)
        payload = await client.get_scoreboard("20250110")

        assert payload == {"events": []}
        assert seen[0].path == "/apis/site/v2/sports/basketball/nba/scoreboard"
        assert seen[0].params["dates"] == "20250110"

    @pytest.mark.asyncio
    async def test_standings_use_v2_path(self, wnba):
        seen = []

        def handler(request):
            seen.append(str(request.url))
            return httpx.Response(200, json={"children": []})

        await client_for(wnba, handler).get_standings()

        assert seen == ["https://site.api.espn.com/apis/v2/sports/basketball/wnba/standings"]

    @pytest.mark.asyncio
    async def test_roster_uses_common_api(self, gleague):
        seen = []

        def handler(request):
            seen.append(request.url.path)
            return httpx.Response(200, json={"positionGroups": []})

        await client_for(gleague, handler).get_roster("7")

        assert seen == ["/apis/common/v3/sports/basketball/nba-development/teams/7/roster"]

    @pytest.mark.asyncio
    async def test_athlete_statistics_use_core_api(self, nba):
        seen = []

        def handler(request):
            seen.append(request.url)
            return httpx.Response(200, json={"splits": {"categories": []}})

        payload = await client_for(nba, handler).get_athlete_statistics("4396993", 2025)

        assert payload == {"splits": {"categories": []}}
        assert seen[0].host == "sports.core.api.espn.com"
        assert seen[0].path == "/v2/sports/basketball/leagues/nba/seasons/2025/types/2/athletes/4396993/statistics/0"
        assert seen[0].params["lang"] == "en"
        assert seen[0].params["region"] == "us"


class TestFailures:

    @pytest.mark.asyncio
    async def test_non_2xx_raises(self, nba):
        client = client_for(nba, lambda request: httpx.Response(404, json={"code": 404}))

        with pytest.raises(ProviderFetchError) as exc_info:
            await client.get_summary("401585001")

        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_invalid_json_raises(self, nba):
        client = client_for(nba, lambda request: httpx.Response(200, text="<html>oops</html>"))

        with pytest.raises(ProviderFetchError, match="invalid JSON"):
            await client.get_summary("401585001")

    @pytest.mark.asyncio
    async def test_network_error_raises(self, nba):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(ProviderFetchError) as exc_info:
            await client_for(nba, handler).get_summary("401585001")

        assert exc_info.value.status_code is None

    @pytest.mark.asyncio
    async def test_breaker_opens_after_repeated_failures(self, nba, wnba):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(500)

        client = client_for(nba, handler)
        for _ in range(DEFAULT_FAIL_MAX):
            with pytest.raises(ProviderFetchError):
                await client.get_summary("401585001")

        assert get_breaker("nba").current_state == "open"
        assert get_all_breaker_states()["provider_wnba"] == "closed"

        with pytest.raises(ProviderFetchError, match="Circuit breaker open"):
            await client.get_summary("401585001")
        assert len(calls) == DEFAULT_FAIL_MAX

    @pytest.mark.asyncio
    async def test_missing_athlete_statistics_do_not_open_breaker(self, nba):
        client = client_for(nba, lambda request: httpx.Response(404, json={"code": 404}))

        for _ in range(DEFAULT_FAIL_MAX + 1):
            with pytest.raises(ProviderFetchError) as exc_info:
                await client.get_athlete_statistics("4396993", 2025)
            assert exc_info.value.status_code == 404

        assert get_breaker("nba").current_state == "closed"


class TestFetchWithRetry:

    @pytest.mark.asyncio
    async def test_returns_first_success(self):
        attempts = []

        async def fetch(team_id):
            attempts.append(team_id)
            return {"team": team_id}

        assert await fetch_with_retry(fetch, "11") == {"team": "11"}
        assert attempts == ["11"]

    @pytest.mark.asyncio
    async def test_other_errors_are_not_retried(self):
        attempts = []

        async def fetch():
            attempts.append(1)
            raise KeyError("boom")

        with pytest.raises(KeyError):
            await fetch_with_retry(fetch)
        assert len(attempts) == 1
