"""Tests for writing TeamEvent/PlayerEvent rows from a summary."""
from courtside.models import PlayerEvent, STATUS_COMPLETED, STATUS_IN_PROGRESS, TeamEvent
from courtside.services.box_score_sync import BoxScoreSyncService

from factories import SEASON, make_summary, seed_game


def events_by_side(store, game):
    events = store.team_events.find_by_game(game.id)
    return {("home" if e.is_home else "away"): e for e in events}


class TestFinalGame:

    def test_team_rows_carry_advanced_stats(self, store, nba):
        game = seed_game(store, status=STATUS_COMPLETED)

        result = BoxScoreSyncService(store, nba).sync(game, make_summary())
        store.commit()

        assert (result.teams_synced, result.players_synced) == (2, 3)
        assert result.skipped is False
        sides = events_by_side(store, game)
        home = sides["home"]
        assert home.score == 110
        assert home.winner is True
        assert (home.pace, home.offensive_rating, home.defensive_rating) == (97.8, 112.5, 104.3)
        assert home.net_rating == 8.2
        assert (home.efg_pct, home.ts_pct) == (54.1, 58.6)
        assert home.points_in_paint == 48

        away = sides["away"]
        assert away.winner is False
        assert away.pace == 97.7
        assert away.defensive_rating == 112.6

    def test_player_rows(self, store, nba):
        game = seed_game(store, status=STATUS_COMPLETED)

        BoxScoreSyncService(store, nba).sync(game, make_summary())
        store.commit()

        events = {e.player.external_id: e for e in store.player_events.find_by_game(game.id)}
        assert set(events) == {"4396993", "4397000", "4065648"}
        haliburton = events["4396993"]
        assert (haliburton.points, haliburton.minutes, haliburton.plus_minus) == (21, 34.0, 8)
        assert haliburton.starter is True
        assert events["4397000"].active is False
        assert events["4065648"].team_id == game.away_team_id

        player = store.players.find_by_external_id("nba", "4396993", SEASON)
        assert player.name == "Tyrese Haliburton"
        assert player.team_id == game.home_team_id

    def test_resync_patches_rows(self, store, nba, db_session):
        game = seed_game(store, status=STATUS_COMPLETED)
        service = BoxScoreSyncService(store, nba)

        service.sync(game, make_summary())
        service.sync(game, make_summary())
        store.commit()

        assert db_session.query(TeamEvent).count() == 2
        assert db_session.query(PlayerEvent).count() == 3


class TestLiveGame:

    def test_no_winner_before_final(self, store, nba):
        game = seed_game(store, status=STATUS_IN_PROGRESS)

        BoxScoreSyncService(store, nba).sync(
            game, make_summary(state="in", detail="3rd Quarter", home_score="80", away_score="75")
        )

        sides = events_by_side(store, game)
        assert sides["home"].score == 80
        assert sides["home"].winner is None
        assert sides["away"].winner is None


class TestSkips:

    def test_box_score_not_published(self, store, nba, db_session):
        game = seed_game(store, status=STATUS_IN_PROGRESS)

        result = BoxScoreSyncService(store, nba).sync(game, make_summary(state="in", boxscore=False))

        assert result.skipped_reason == "box score not available yet"
        assert db_session.query(TeamEvent).count() == 0

    def test_missing_score(self, store, nba, db_session):
        game = seed_game(store, status=STATUS_IN_PROGRESS)

        result = BoxScoreSyncService(store, nba).sync(game, make_summary(state="in", home_score=None))

        assert result.skipped is True
        assert db_session.query(TeamEvent).count() == 0

    def test_team_blocks_must_match_header(self, store, nba, db_session):
        game = seed_game(store, status=STATUS_COMPLETED)
        summary = make_summary()
        summary["boxscore"]["teams"][1]["team"]["id"] = "999"

        result = BoxScoreSyncService(store, nba).sync(game, summary)

        assert result.skipped_reason == "team box score does not match header teams"
        assert db_session.query(PlayerEvent).count() == 0
