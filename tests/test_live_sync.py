"""Tests for on-demand game sync."""
import asyncio
from datetime import timedelta

import pytest

from courtside.models import STATUS_COMPLETED, STATUS_HALFTIME, STATUS_IN_PROGRESS, STATUS_SCHEDULED, TeamEvent
from courtside.repositories import EntityStore
from courtside.services.live_sync import LiveSyncService, ViewGame, is_likely_live, is_throttled
from courtside.services.provider_client import ProviderFetchError

from factories import GAME_ID, NOW, SEASON, TIPOFF, make_summary, seed_game


@pytest.fixture
def live_sync(store, provider, nba):
    return LiveSyncService(store, provider, nba, now_fn=lambda: NOW)


class TestHelpers:

    def test_throttle_window(self):
        window = timedelta(seconds=15)
        assert is_throttled(NOW - timedelta(seconds=5), NOW, window) is True
        assert is_throttled(NOW - timedelta(seconds=30), NOW, window) is False
        assert is_throttled(None, NOW, window) is False

    @pytest.mark.parametrize("status,start,expected", [
        (STATUS_HALFTIME, None, True),
        (STATUS_SCHEDULED, TIPOFF, True),
        (STATUS_SCHEDULED, NOW + timedelta(hours=1), False),
        (STATUS_SCHEDULED, NOW - timedelta(hours=5), False),
        (STATUS_COMPLETED, TIPOFF, False),
        (None, TIPOFF, False),
    ])
    def test_likely_live(self, status, start, expected):
        assert is_likely_live(status, start, NOW) is expected


class TestSyncGame:

    @pytest.mark.asyncio
    async def test_unknown_game_is_created(self, live_sync, provider, store):
        provider.get_summary.return_value = make_summary(
            state="in", detail="3rd Quarter", home_score="80", away_score="75"
        )

        result = await live_sync.sync_game(GAME_ID)

        assert result["status"] == "synced"
        assert result["game_status"] == STATUS_IN_PROGRESS
        assert (result["home_score"], result["away_score"]) == (80, 75)
        assert result["box_score_synced"] is True
        assert result["aggregated"] is False

        game = store.get_game("nba", GAME_ID)
        assert game.season == SEASON
        assert game.game_date == "20250110"
        assert game.last_fetched_at == NOW
        assert len(store.team_events_for_team(game.home_team_id)) == 1

    @pytest.mark.asyncio
    async def test_recent_fetch_is_throttled(self, live_sync, provider, store):
        seed_game(store, last_fetched_at=NOW - timedelta(seconds=5))

        result = await live_sync.sync_game(GAME_ID)

        assert result["status"] == "throttled"
        provider.get_summary.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_fetch_failure_is_returned(self, live_sync, provider):
        provider.get_summary.side_effect = ProviderFetchError("HTTP 502", url="summary", status_code=502)

        result = await live_sync.sync_game(GAME_ID)

        assert result["status"] == "failed"
        assert "502" in result["error"]

    @pytest.mark.asyncio
    async def test_summary_without_competitors_is_skipped(self, live_sync, provider, store):
        provider.get_summary.return_value = {}

        result = await live_sync.sync_game(GAME_ID)

        assert result["status"] == "skipped"
        assert store.get_game("nba", GAME_ID) is None

    @pytest.mark.asyncio
    async def test_game_becoming_final_is_aggregated(self, live_sync, provider, store):
        seed_game(store, status=STATUS_IN_PROGRESS)
        provider.get_summary.return_value = make_summary()

        result = await live_sync.sync_game(GAME_ID)

        assert result["status"] == "synced"
        assert result["game_status"] == STATUS_COMPLETED
        assert result["aggregated"] is True
        home = store.get_team("nba", "11", SEASON)
        assert home.points_for == 110.0
        assert home.rank_ppg == 1

    @pytest.mark.asyncio
    async def test_already_final_game_is_not_reaggregated(self, live_sync, provider, store):
        seed_game(store, status=STATUS_COMPLETED, home_score=110, away_score=102)
        provider.get_summary.return_value = make_summary()

        result = await live_sync.sync_game(GAME_ID)

        assert result["aggregated"] is False
        assert store.get_team("nba", "11", SEASON).points_for is None

    @pytest.mark.asyncio
    async def test_resync_keeps_one_row_per_team(self, live_sync, provider, store, db_session):
        provider.get_summary.return_value = make_summary(
            state="in", detail="3rd Quarter", home_score="80", away_score="75"
        )
        await live_sync.sync_game(GAME_ID)
        live_sync.now_fn = lambda: NOW + timedelta(minutes=1)

        await live_sync.sync_game(GAME_ID)

        assert provider.get_summary.await_count == 2
        assert db_session.query(TeamEvent).count() == 2

    @pytest.mark.asyncio
    async def test_concurrent_syncs_fetch_once(self, provider, store, session_factory, nba):
        seed_game(store, status=STATUS_IN_PROGRESS)

        async def slow_summary(game_id):
            await asyncio.sleep(0.05)
            return make_summary(state="in", detail="3rd Quarter", home_score="80", away_score="75")

        provider.get_summary.side_effect = slow_summary
        sessions = [session_factory() for _ in range(3)]
        try:
            services = [LiveSyncService(EntityStore(s), provider, nba, now_fn=lambda: NOW) for s in sessions]

            results = await asyncio.gather(*(service.sync_game(GAME_ID) for service in services))
        finally:
            for s in sessions:
                s.close()

        assert provider.get_summary.await_count == 1
        assert sorted(r["status"] for r in results) == ["synced", "throttled", "throttled"]
        store.db.expire_all()
        game = store.get_game("nba", GAME_ID)
        assert game.last_fetched_at == NOW
        assert game.sync_lock_until is None

    @pytest.mark.asyncio
    async def test_lease_released_after_failed_fetch(self, live_sync, provider, store):
        seed_game(store, status=STATUS_IN_PROGRESS)
        provider.get_summary.side_effect = ProviderFetchError("HTTP 502", url="summary", status_code=502)

        result = await live_sync.sync_game(GAME_ID)

        assert result["status"] == "failed"
        store.db.expire_all()
        assert store.get_game("nba", GAME_ID).sync_lock_until is None

    @pytest.mark.asyncio
    async def test_untrusted_final_is_recorded(self, live_sync, provider, store):
        seed_game(store, status=STATUS_IN_PROGRESS)
        provider.get_summary.return_value = make_summary(home_score="0", away_score="95", boxscore=False)

        await live_sync.sync_game(GAME_ID)

        game = store.get_game("nba", GAME_ID)
        assert game.status == STATUS_IN_PROGRESS
        anomalies = store.score_anomalies_for_game("nba", GAME_ID)
        assert [(a.anomaly_type, a.source) for a in anomalies] == [("suspicious_final_zero_blowout", "live_sync")]
        assert anomalies[0].game_event_id == game.id


class TestSyncGamesForView:

    @pytest.mark.asyncio
    async def test_only_likely_live_games_are_synced(self, live_sync, provider, store):
        seed_game(store, external_id="401585004", status=STATUS_HALFTIME, last_fetched_at=NOW - timedelta(seconds=5))
        provider.get_summary.return_value = make_summary(
            state="in", detail="3rd Quarter", home_score="80", away_score="75"
        )

        counts = await live_sync.sync_games_for_view([
            ViewGame(GAME_ID, status=STATUS_SCHEDULED, scheduled_start=TIPOFF),
            ViewGame("401585002", status=STATUS_SCHEDULED, scheduled_start=NOW + timedelta(hours=2)),
            ViewGame("401585003"),
            ViewGame("401585004"),
        ])

        assert counts == {"requested": 4, "candidates": 2, "synced": 1, "throttled": 1, "failed": 0}
        provider.get_summary.assert_awaited_once_with(GAME_ID)
