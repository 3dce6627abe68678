"""Tests for the per-game polling state machine.

Test Strategy:
1. decide() as a pure table: one case per provider state and bound
2. check_game() end to end against SQLite with a mocked provider
3. Rescheduling goes through the TaskScheduler with a deterministic job id
"""
from datetime import timedelta

import pytest

from courtside.core.config import DEFAULT_POLLING_POLICY
from courtside.core.scheduler import CHECK_GAME_TASK
from courtside.models import (
    PlayerEvent,
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    STATUS_HALFTIME,
    STATUS_IN_PROGRESS,
    STATUS_POSTPONED,
    STATUS_SCHEDULED,
    TeamEvent,
)
from courtside.services.game_status_poller import (
    ANOMALY_MISSING_LIVE_SCORE,
    ANOMALY_ZERO_BLOWOUT,
    AGGREGATE,
    OUTCOME_ABANDONED,
    OUTCOME_COMPLETED,
    OUTCOME_DEFERRED,
    OUTCOME_MISSING,
    OUTCOME_RESCHEDULED,
    OUTCOME_TERMINATED,
    PERSIST,
    RANK,
    RESCHEDULE,
    SYNC,
    TERMINATE,
    GameStatusPoller,
    Observation,
    advance_status,
    decide,
    is_score_anomaly,
    score_anomaly_type,
)
from courtside.services.provider_client import ProviderFetchError

from factories import NOW, SEASON, make_summary, seed_game


def observed(state, status, home=None, away=None, detail="detail"):
    return Observation(
        fetch_ok=True, provider_state=state, status=status,
        detail=detail, home_score=home, away_score=away,
    )


class TestAdvanceStatus:

    @pytest.mark.parametrize("current,new,expected", [
        (None, STATUS_HALFTIME, STATUS_HALFTIME),
        (STATUS_SCHEDULED, STATUS_IN_PROGRESS, STATUS_IN_PROGRESS),
        (STATUS_HALFTIME, STATUS_IN_PROGRESS, STATUS_IN_PROGRESS),
        (STATUS_IN_PROGRESS, STATUS_SCHEDULED, STATUS_IN_PROGRESS),
        (STATUS_COMPLETED, STATUS_IN_PROGRESS, STATUS_COMPLETED),
        (STATUS_POSTPONED, STATUS_IN_PROGRESS, STATUS_POSTPONED),
        (STATUS_POSTPONED, STATUS_COMPLETED, STATUS_COMPLETED),
        (STATUS_CANCELLED, STATUS_SCHEDULED, STATUS_CANCELLED),
    ])
    def test_status_is_monotonic(self, current, new, expected):
        assert advance_status(current, new) == expected


class TestScoreAnomaly:

    @pytest.mark.parametrize("state,home,away,expected", [
        ("post", 0, 95, True),
        ("post", 80, 0, True),
        ("post", 0, 79, False),
        ("post", 110, 102, False),
        ("post", None, 102, True),
        ("in", None, 12, True),
        ("in", 0, 2, False),
        ("pre", None, None, False),
    ])
    def test_is_score_anomaly(self, state, home, away, expected):
        assert is_score_anomaly(state, home, away) is expected

    @pytest.mark.parametrize("state,home,away,expected", [
        ("post", 0, 95, "suspicious_final_zero_blowout"),
        ("post", None, 102, "missing_final_score"),
        ("in", 40, None, "missing_in_progress_score"),
        ("post", 110, 102, None),
    ])
    def test_score_anomaly_type(self, state, home, away, expected):
        assert score_anomaly_type(state, home, away) == expected


class TestDecide:

    def test_fetch_failure_counts_and_retries(self):
        decision = decide(Observation.failed(), STATUS_SCHEDULED, 0, 0)

        assert decision.outcome == OUTCOME_RESCHEDULED
        assert decision.updates == {"fetch_failures": 1}
        assert decision.delay == timedelta(minutes=15)
        assert decision.has(RESCHEDULE)

    def test_repeated_fetch_failures_hit_the_cap(self):
        decision = decide(Observation.failed(), STATUS_SCHEDULED, 20, 3)

        assert decision.outcome == OUTCOME_ABANDONED
        assert decision.updates == {"fetch_failures": 4}
        assert not decision.has(RESCHEDULE)

    def test_pregame_rechecks_in_thirty_minutes(self):
        decision = decide(observed("pre", STATUS_SCHEDULED, 0, 0), STATUS_SCHEDULED, 0, 0)

        assert decision.outcome == OUTCOME_RESCHEDULED
        assert decision.delay == timedelta(minutes=30)
        assert decision.updates["check_count"] == 1
        assert decision.updates["status"] == STATUS_SCHEDULED

    def test_pregame_check_cap(self):
        decision = decide(observed("pre", STATUS_SCHEDULED), STATUS_SCHEDULED, 23, 0)

        assert decision.outcome == OUTCOME_ABANDONED
        assert decision.terminal

    def test_live_game_persists_scores_and_syncs(self):
        decision = decide(observed("in", STATUS_HALFTIME, 55, 50), STATUS_IN_PROGRESS, 2, 0)

        assert decision.outcome == OUTCOME_RESCHEDULED
        assert decision.delay == timedelta(minutes=15)
        assert decision.updates["status"] == STATUS_HALFTIME
        assert (decision.updates["home_score"], decision.updates["away_score"]) == (55, 50)
        assert decision.has(SYNC)

    def test_live_game_missing_score_rechecks_quickly(self):
        decision = decide(observed("in", STATUS_IN_PROGRESS, None, 4), STATUS_SCHEDULED, 0, 0)

        assert decision.delay == timedelta(minutes=2)
        assert decision.updates["status"] == STATUS_IN_PROGRESS
        assert "home_score" not in decision.updates
        assert not decision.has(SYNC)
        assert decision.anomaly == ANOMALY_MISSING_LIVE_SCORE

    def test_final_game_completes(self):
        decision = decide(observed("post", STATUS_COMPLETED, 110, 102), STATUS_IN_PROGRESS, 5, 1)

        assert decision.outcome == OUTCOME_COMPLETED
        assert decision.updates["status"] == STATUS_COMPLETED
        assert "check_count" not in decision.updates
        for effect in (PERSIST, SYNC, AGGREGATE, RANK, TERMINATE):
            assert decision.has(effect)
        assert not decision.has(RESCHEDULE)
        assert decision.delay is None

    def test_untrusted_final_holds_status(self):
        decision = decide(observed("post", STATUS_COMPLETED, 0, 95), STATUS_IN_PROGRESS, 5, 0)

        assert decision.outcome == OUTCOME_RESCHEDULED
        assert decision.updates == {"check_count": 6}
        assert decision.delay == timedelta(minutes=2)
        assert not decision.has(SYNC)
        assert decision.anomaly == ANOMALY_ZERO_BLOWOUT

    def test_untrusted_final_respects_the_cap(self):
        decision = decide(observed("post", STATUS_COMPLETED, None, None), STATUS_IN_PROGRESS, 23, 0)

        assert decision.outcome == OUTCOME_ABANDONED

    @pytest.mark.parametrize("state,status", [
        ("postponed", STATUS_POSTPONED),
        ("cancelled", STATUS_CANCELLED),
    ])
    def test_postponed_and_cancelled_terminate(self, state, status):
        decision = decide(observed(state, status), STATUS_SCHEDULED, 1, 0)

        assert decision.outcome == OUTCOME_TERMINATED
        assert decision.updates["status"] == status
        assert not decision.has(RESCHEDULE)

    def test_stale_report_for_completed_game_terminates(self):
        decision = decide(observed("in", STATUS_IN_PROGRESS, 50, 48), STATUS_COMPLETED, 8, 0)

        assert decision.outcome == OUTCOME_TERMINATED
        assert not decision.has(PERSIST)

    def test_unknown_state_rechecks(self):
        decision = decide(observed("unknown", STATUS_SCHEDULED), STATUS_SCHEDULED, 0, 0)

        assert decision.outcome == OUTCOME_RESCHEDULED
        assert decision.delay == DEFAULT_POLLING_POLICY.live_interval
        assert decision.updates == {"check_count": 1}


@pytest.fixture
def poller(store, provider, scheduler, nba):
    return GameStatusPoller(store, provider, scheduler, nba, now_fn=lambda: NOW)


class TestCheckGame:

    @pytest.mark.asyncio
    async def test_missing_game(self, poller, scheduler):
        result = await poller.check_game("no-such-id")

        assert result.outcome == OUTCOME_MISSING
        assert scheduler.calls == []

    @pytest.mark.asyncio
    async def test_pregame_check_reschedules(self, poller, store, provider, scheduler):
        game = seed_game(store)
        provider.get_summary.return_value = make_summary(state="pre", detail="7:00 PM", home_score="0", away_score="0")

        result = await poller.check_game(game.id)

        assert result.outcome == OUTCOME_RESCHEDULED
        assert result.delay == timedelta(minutes=30)
        assert game.check_count == 1
        assert game.last_fetched_at == NOW
        assert len(scheduler.calls) == 1
        call = scheduler.calls[0]
        assert call["task_ref"] == CHECK_GAME_TASK
        assert call["kwargs"] == {"league": "nba", "game_event_id": game.id}
        assert call["job_id"] == f"check_game:nba:{game.id}"

    @pytest.mark.asyncio
    async def test_live_check_syncs_box_score(self, poller, store, provider, db_session):
        game = seed_game(store)
        provider.get_summary.return_value = make_summary(
            state="in", detail="5:32 - 3rd Quarter", home_score="70", away_score="65",
        )

        result = await poller.check_game(game.id)

        assert result.outcome == OUTCOME_RESCHEDULED
        assert game.status == STATUS_IN_PROGRESS
        assert (game.home_score, game.away_score) == (70, 65)
        events = db_session.query(TeamEvent).all()
        assert len(events) == 2
        assert all(e.winner is None for e in events)

    @pytest.mark.asyncio
    async def test_fetch_failure_does_not_touch_throttle_marker(self, poller, store, provider, scheduler):
        game = seed_game(store)
        provider.get_summary.side_effect = ProviderFetchError("HTTP 503", url="summary", status_code=503)

        result = await poller.check_game(game.id)

        assert result.outcome == OUTCOME_RESCHEDULED
        assert result.delay == timedelta(minutes=15)
        assert game.fetch_failures == 1
        assert game.check_count == 0
        assert game.last_fetched_at is None
        assert len(scheduler.calls) == 1

    @pytest.mark.asyncio
    async def test_final_check_syncs_aggregates_and_ranks(self, poller, store, provider, scheduler, db_session):
        game = seed_game(store, status=STATUS_IN_PROGRESS, check_count=4)
        provider.get_summary.return_value = make_summary()

        result = await poller.check_game(game.id)

        assert result.outcome == OUTCOME_COMPLETED
        assert scheduler.calls == []
        assert game.status == STATUS_COMPLETED
        assert (game.home_score, game.away_score) == (110, 102)
        assert game.check_count == 4

        home_event = db_session.query(TeamEvent).filter_by(team_id=game.home_team_id).one()
        assert home_event.winner is True
        assert home_event.pace == 97.8
        assert home_event.offensive_rating == 112.5
        assert home_event.defensive_rating == 104.3
        assert home_event.net_rating == 8.2
        assert db_session.query(PlayerEvent).count() == 3

        home = store.get_team("nba", "11", SEASON)
        away = store.get_team("nba", "2", SEASON)
        assert home.points_for == 110.0
        assert home.offensive_rating == 112.5
        assert home.rank_ppg == 1
        assert away.rank_ppg == 2
        assert away.rank_opp_ppg == 2

    @pytest.mark.asyncio
    async def test_untrusted_final_rechecks_in_two_minutes(self, poller, store, provider, scheduler, db_session):
        game = seed_game(store, status=STATUS_IN_PROGRESS)
        provider.get_summary.return_value = make_summary(home_score="0", away_score="95")

        result = await poller.check_game(game.id)

        assert result.outcome == OUTCOME_RESCHEDULED
        assert result.delay == timedelta(minutes=2)
        assert game.status == STATUS_IN_PROGRESS
        assert game.home_score is None
        assert db_session.query(TeamEvent).count() == 0
        assert len(scheduler.calls) == 1

        anomalies = store.score_anomalies_for_game("nba", game.external_id)
        assert len(anomalies) == 1
        assert anomalies[0].anomaly_type == ANOMALY_ZERO_BLOWOUT
        assert anomalies[0].source == "poller"
        assert anomalies[0].game_event_id == game.id
        assert (anomalies[0].raw_home_score, anomalies[0].raw_away_score) == ("0", "95")
        assert anomalies[0].provider_state == "post"

    @pytest.mark.asyncio
    async def test_cap_abandons_without_status_change(self, poller, store, provider, scheduler):
        game = seed_game(store, check_count=23)
        provider.get_summary.return_value = make_summary(state="pre", detail="Delayed", home_score="0", away_score="0")

        result = await poller.check_game(game.id)

        assert result.outcome == OUTCOME_ABANDONED
        assert game.status == STATUS_SCHEDULED
        assert game.check_count == 24
        assert scheduler.calls == []

    @pytest.mark.asyncio
    async def test_reschedule_disabled(self, poller, store, provider, scheduler):
        game = seed_game(store)
        provider.get_summary.return_value = make_summary(state="pre", detail="7:00 PM", home_score="0", away_score="0")

        result = await poller.check_game(game.id, reschedule=False)

        assert result.outcome == OUTCOME_RESCHEDULED
        assert scheduler.calls == []

    @pytest.mark.asyncio
    async def test_box_score_failure_keeps_status_update(self, poller, store, provider, monkeypatch):
        game = seed_game(store, status=STATUS_IN_PROGRESS)
        provider.get_summary.return_value = make_summary()

        def explode(*args, **kwargs):
            raise RuntimeError("disk full")

        monkeypatch.setattr(poller.box_scores, "sync", explode)

        result = await poller.check_game(game.id)

        assert result.outcome == OUTCOME_COMPLETED
        store.db.expire_all()
        assert store.get_game("nba", game.external_id).status == STATUS_COMPLETED

    @pytest.mark.asyncio
    async def test_postponed_game_stops_polling(self, poller, store, provider, scheduler):
        game = seed_game(store)
        provider.get_summary.return_value = make_summary(state="postponed", detail="Postponed", boxscore=False)

        result = await poller.check_game(game.id)

        assert result.outcome == OUTCOME_TERMINATED
        assert game.status == STATUS_POSTPONED
        assert scheduler.calls == []

    @pytest.mark.asyncio
    async def test_live_game_missing_score_is_recorded(self, poller, store, provider):
        game = seed_game(store)
        provider.get_summary.return_value = make_summary(
            state="in", detail="8:12 - 1st Quarter", home_score=None, away_score="4", boxscore=False,
        )

        result = await poller.check_game(game.id)

        assert result.delay == timedelta(minutes=2)
        anomalies = store.score_anomalies_for_game("nba", game.external_id)
        assert [a.anomaly_type for a in anomalies] == [ANOMALY_MISSING_LIVE_SCORE]
        assert anomalies[0].raw_home_score is None
        assert anomalies[0].status_detail == "8:12 - 1st Quarter"

    @pytest.mark.asyncio
    async def test_trusted_scores_record_nothing(self, poller, store, provider):
        game = seed_game(store, status=STATUS_IN_PROGRESS)
        provider.get_summary.return_value = make_summary()

        await poller.check_game(game.id)

        assert store.score_anomalies_for_game("nba", game.external_id) == []


class TestSyncLease:

    @pytest.mark.asyncio
    async def test_held_lease_defers_check(self, poller, store, provider, scheduler):
        game = seed_game(store)
        assert store.try_acquire_sync_lock(game.id, NOW, timedelta(seconds=90)) is True

        result = await poller.check_game(game.id)

        assert result.outcome == OUTCOME_DEFERRED
        assert result.delay == timedelta(minutes=1)
        provider.get_summary.assert_not_awaited()
        assert game.check_count == 0
        assert len(scheduler.calls) == 1
        assert scheduler.calls[0]["job_id"] == f"check_game:nba:{game.id}"
        assert scheduler.calls[0]["task_ref"] == CHECK_GAME_TASK

    @pytest.mark.asyncio
    async def test_deferred_check_without_reschedule(self, poller, store, provider, scheduler):
        game = seed_game(store)
        store.try_acquire_sync_lock(game.id, NOW, timedelta(seconds=90))

        result = await poller.check_game(game.id, reschedule=False)

        assert result.outcome == OUTCOME_DEFERRED
        assert scheduler.calls == []

    @pytest.mark.asyncio
    async def test_expired_lease_is_taken_over(self, poller, store, provider):
        game = seed_game(store)
        store.try_acquire_sync_lock(game.id, NOW - timedelta(minutes=5), timedelta(seconds=90))
        provider.get_summary.return_value = make_summary(state="pre", detail="7:00 PM", home_score="0", away_score="0")

        result = await poller.check_game(game.id)

        assert result.outcome == OUTCOME_RESCHEDULED
        provider.get_summary.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_lease_released_after_check(self, poller, store, provider):
        game = seed_game(store)
        provider.get_summary.side_effect = RuntimeError("boom")

        with pytest.raises(RuntimeError):
            await poller.check_game(game.id)

        store.db.expire_all()
        assert store.get_game_by_id(game.id).sync_lock_until is None


class TestLifecycleSequences:

    @pytest.mark.asyncio
    async def test_full_game_ends_completed_and_never_reverts(self, poller, store, provider, scheduler):
        game = seed_game(store)
        summaries = [
            make_summary(state="pre", detail="7:00 PM", home_score="0", away_score="0", boxscore=False),
            make_summary(state="in", detail="Halftime", home_score="55", away_score="50"),
            make_summary(state="in", detail="5:32 - 3rd Quarter", home_score="70", away_score="65"),
            make_summary(state="post", detail="Final", home_score="110", away_score="102"),
            make_summary(state="in", detail="0:45 - 4th Quarter", home_score="100", away_score="98"),
        ]

        outcomes, statuses = [], []
        for summary in summaries:
            provider.get_summary.return_value = summary
            result = await poller.check_game(game.id)
            outcomes.append(result.outcome)
            statuses.append(result.status)

        assert outcomes == [
            OUTCOME_RESCHEDULED, OUTCOME_RESCHEDULED, OUTCOME_RESCHEDULED, OUTCOME_COMPLETED, OUTCOME_TERMINATED,
        ]
        assert statuses == [
            STATUS_SCHEDULED, STATUS_HALFTIME, STATUS_IN_PROGRESS, STATUS_COMPLETED, STATUS_COMPLETED,
        ]
        store.db.expire_all()
        final = store.get_game_by_id(game.id)
        assert final.status == STATUS_COMPLETED
        assert (final.home_score, final.away_score) == (110, 102)
        assert len(scheduler.calls) == 3

    @pytest.mark.asyncio
    async def test_repeated_pregame_is_abandoned_at_the_cap(self, poller, store, provider, scheduler):
        game = seed_game(store)
        provider.get_summary.return_value = make_summary(
            state="pre", detail="Delayed", home_score="0", away_score="0", boxscore=False,
        )

        outcomes, counts = [], []
        for _ in range(30):
            result = await poller.check_game(game.id)
            outcomes.append(result.outcome)
            counts.append(game.check_count)
            if result.outcome != OUTCOME_RESCHEDULED:
                break

        assert outcomes[-1] == OUTCOME_ABANDONED
        assert len(outcomes) == DEFAULT_POLLING_POLICY.max_checks
        assert max(counts) <= DEFAULT_POLLING_POLICY.max_checks
        assert counts[-1] == 24
        assert game.status == STATUS_SCHEDULED
        assert len(scheduler.calls) == DEFAULT_POLLING_POLICY.max_checks - 1
