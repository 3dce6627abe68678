"""Tests for daily game discovery."""
from datetime import datetime

import pytest

from courtside.core.scheduler import CHECK_GAME_TASK
from courtside.models import GameEvent, STATUS_COMPLETED, STATUS_IN_PROGRESS, STATUS_SCHEDULED, Team
from courtside.services.discovery import DiscoveryService, season_for_date
from courtside.services.provider_client import ProviderFetchError

from factories import (
    AWAY_TEAM,
    GAME_ID,
    HOME_TEAM,
    SEASON,
    make_event,
    make_scoreboard,
    make_standings,
    seed_game,
)


@pytest.fixture
def discovery(store, provider, scheduler, nba):
    provider.get_scoreboard.return_value = make_scoreboard(make_event())
    provider.get_standings.return_value = make_standings()
    return DiscoveryService(store, provider, scheduler, nba)


class TestSeasonForDate:

    def test_winter_league(self, nba):
        assert season_for_date(nba, "20250110") == "2024-25"
        assert season_for_date(nba, "20251030") == "2025-26"

    def test_summer_league_uses_calendar_year(self, wnba):
        assert season_for_date(wnba, "20250601") == "2025"


class TestDiscoverGames:

    @pytest.mark.asyncio
    async def test_discovers_game_and_schedules_first_check(self, discovery, store, scheduler, provider):
        """A 19:00 UTC tip-off gets its first check at 21:15 UTC."""
        result = await discovery.discover_games("20250110")

        assert result["success"] is True
        assert result["games"] == 1
        assert result["season"] == SEASON
        assert result["scheduled_checks"] == 1
        provider.get_scoreboard.assert_awaited_once_with("20250110")

        game = store.get_game("nba", GAME_ID)
        assert game.status == STATUS_SCHEDULED
        assert game.scheduled_start == datetime(2025, 1, 10, 19, 0)
        assert game.game_date == "20250110"
        assert game.venue == "Gainbridge Fieldhouse"
        assert game.check_count == 0

        assert scheduler.calls == [{
            "run_at": datetime(2025, 1, 10, 21, 15),
            "task_ref": CHECK_GAME_TASK,
            "kwargs": {"league": "nba", "game_event_id": game.id},
            "job_id": f"check_game:nba:{game.id}",
        }]

    @pytest.mark.asyncio
    async def test_merges_standings_into_teams(self, discovery, store):
        await discovery.discover_games("20250110")

        home = store.get_team("nba", HOME_TEAM["id"], SEASON)
        away = store.get_team("nba", AWAY_TEAM["id"], SEASON)
        assert home.name == "Indiana Pacers"
        assert (home.wins, home.losses) == (24, 15)
        assert home.conference == "Eastern Conference"
        assert home.conference_rank == 5
        assert away.streak == "W3"

    @pytest.mark.asyncio
    async def test_standings_failure_still_stores_games(self, discovery, store, provider):
        provider.get_standings.side_effect = ProviderFetchError("HTTP 500", url="standings", status_code=500)

        result = await discovery.discover_games("20250110")

        assert result["success"] is True
        assert result["standings_teams"] == 0
        home = store.get_team("nba", HOME_TEAM["id"], SEASON)
        assert (home.wins, home.losses) == (0, 0)

    @pytest.mark.asyncio
    async def test_scoreboard_failure_is_reported(self, discovery, provider, scheduler, db_session):
        provider.get_scoreboard.side_effect = ProviderFetchError("HTTP 503", url="scoreboard", status_code=503)

        result = await discovery.discover_games("20250110")

        assert result["success"] is False
        assert "503" in result["error"]
        assert scheduler.calls == []
        assert db_session.query(GameEvent).count() == 0

    @pytest.mark.asyncio
    async def test_rerun_is_idempotent(self, discovery, scheduler, db_session):
        await discovery.discover_games("20250110")
        await discovery.discover_games("20250110")

        assert db_session.query(GameEvent).count() == 1
        assert db_session.query(Team).count() == 2
        assert len({call["job_id"] for call in scheduler.calls}) == 1

    @pytest.mark.asyncio
    async def test_final_game_is_stored_without_check(self, discovery, provider, store, scheduler):
        provider.get_scoreboard.return_value = make_scoreboard(
            make_event(state="post", detail="Final", home_score="110", away_score="102")
        )

        result = await discovery.discover_games("20250110")

        game = store.get_game("nba", GAME_ID)
        assert game.status == STATUS_COMPLETED
        assert (game.home_score, game.away_score) == (110, 102)
        assert result["scheduled_checks"] == 0
        assert scheduler.calls == []
        assert store.score_anomalies_for_game("nba", GAME_ID) == []

    @pytest.mark.asyncio
    async def test_untrusted_final_is_not_stored_as_completed(self, discovery, provider, store):
        provider.get_scoreboard.return_value = make_scoreboard(
            make_event(state="post", detail="Final", home_score="0", away_score="95")
        )

        result = await discovery.discover_games("20250110")

        game = store.get_game("nba", GAME_ID)
        assert game.status == STATUS_SCHEDULED
        assert game.home_score is None
        assert result["scheduled_checks"] == 1

        anomalies = store.score_anomalies_for_game("nba", GAME_ID)
        assert [(a.anomaly_type, a.source) for a in anomalies] == [("suspicious_final_zero_blowout", "discovery")]
        assert anomalies[0].game_event_id == game.id
        assert (anomalies[0].raw_home_score, anomalies[0].raw_away_score) == ("0", "95")

    @pytest.mark.asyncio
    async def test_status_never_moves_backwards(self, discovery, store, scheduler):
        seed_game(store, status=STATUS_IN_PROGRESS, check_count=3)

        await discovery.discover_games("20250110")

        game = store.get_game("nba", GAME_ID)
        assert game.status == STATUS_IN_PROGRESS
        assert game.check_count == 3
        assert scheduler.calls == []

    @pytest.mark.asyncio
    async def test_schedule_checks_disabled(self, discovery, scheduler):
        result = await discovery.discover_games("20250110", schedule_checks=False)

        assert result["games"] == 1
        assert result["scheduled_checks"] == 0
        assert scheduler.calls == []

    @pytest.mark.asyncio
    async def test_same_team_twice_is_skipped(self, discovery, provider, db_session):
        provider.get_scoreboard.return_value = make_scoreboard(
            make_event(event_id="401585099", away_team=HOME_TEAM),
            make_event(),
        )

        result = await discovery.discover_games("20250110")

        assert result["games"] == 1
        assert result["errors"] == []
        assert db_session.query(GameEvent).count() == 1

    @pytest.mark.asyncio
    async def test_game_ids_returned(self, discovery, store):
        result = await discovery.discover_games("20250110")

        assert result["game_ids"] == [store.get_game("nba", GAME_ID).id]
