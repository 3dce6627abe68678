"""Tests for league configuration, season/date helpers and structured logging."""
import io
import json
import logging
from datetime import datetime, timedelta, timezone

import pytest

from courtside.core.config import DEFAULT_POLLING_POLICY, Settings
from courtside.core.leagues import ConferenceStandingsStrategy, FlatStandingsStrategy, build_league_registry
from courtside.core.logging import configure_logging, correlation_scope, game_correlation_id, get_correlation_id
from courtside.utils.timezone import (
    core_season_year,
    current_season,
    date_range,
    format_game_date,
    parse_provider_datetime,
    season_end_date,
    season_start_date,
    to_naive_utc,
)

from factories import AWAY_TEAM, HOME_TEAM, make_standings, standings_entry


class TestLeagueRegistry:

    def test_standings_url(self, nba, gleague):
        assert nba.standings_url == "https://site.api.espn.com/apis/v2/sports/basketball/nba/standings"
        assert gleague.standings_url.endswith("/v2/sports/basketball/nba-development/standings")

    def test_endpoints_come_from_settings(self):
        leagues = build_league_registry(Settings(NBA_SITE_API="http://localhost:9000/apis/site/v2/nba"))

        assert leagues["nba"].site_api == "http://localhost:9000/apis/site/v2/nba"
        assert leagues["nba"].standings_url == "http://localhost:9000/apis/v2/nba/standings"

    def test_log_prefix(self, wnba):
        assert wnba.log_prefix == "[WNBA]"

    def test_core_api(self, nba, gleague):
        assert nba.core_api == "https://sports.core.api.espn.com/v2/sports/basketball/leagues/nba"
        assert gleague.core_api.endswith("/leagues/nba-development")


class TestStandingsStrategies:

    def test_conference_groups(self):
        records = ConferenceStandingsStrategy().parse(make_standings())

        assert set(records) == {HOME_TEAM["id"], AWAY_TEAM["id"]}
        home = records[HOME_TEAM["id"]]
        assert home.conference == "Eastern Conference"
        assert (home.wins, home.losses, home.conference_rank) == (24, 15, 5)
        assert home.points_for == 110.0
        assert home.team["displayName"] == "Indiana Pacers"

    def test_flat_table(self):
        entry = standings_entry(HOME_TEAM, 12, 8, 3)
        entry["note"] = {"description": "Eastern"}
        payload = {"standings": {"entries": [entry]}}

        records = FlatStandingsStrategy().parse(payload)

        assert records[HOME_TEAM["id"]].conference == "Eastern"
        assert records[HOME_TEAM["id"]].wins == 12

    def test_flat_falls_back_to_groups(self):
        records = FlatStandingsStrategy().parse(make_standings())

        assert len(records) == 2

    def test_empty_payload(self):
        assert ConferenceStandingsStrategy().parse(None) == {}


class TestSeasons:

    @pytest.mark.parametrize("moment,expected", [
        (datetime(2025, 1, 15, 12), "2024-25"),
        (datetime(2025, 10, 30, 12), "2025-26"),
        (datetime(2026, 4, 10, 12), "2025-26"),
    ])
    def test_winter_league(self, nba, moment, expected):
        assert current_season(nba, moment) == expected

    def test_summer_league(self, wnba):
        assert current_season(wnba, datetime(2025, 6, 1, 12)) == "2025"

    def test_season_bounds(self, nba, wnba):
        assert season_start_date(nba, "2024-25") == "20241022"
        assert season_end_date(nba, "2024-25") == "20250420"
        assert season_end_date(wnba, "2025") == "20250915"

    def test_core_season_year(self, nba, wnba, gleague):
        assert core_season_year(nba, "2024-25") == 2025
        assert core_season_year(gleague, "2025-26") == 2026
        assert core_season_year(wnba, "2025") == 2025


class TestDates:

    def test_late_tipoff_keeps_eastern_date(self):
        # 10 PM ET on Feb 9 is 3 AM UTC on Feb 10
        assert format_game_date(datetime(2025, 2, 10, 3, 0)) == "20250209"
        assert format_game_date(datetime(2025, 2, 10, 3, 0), "UTC") == "20250210"

    def test_parse_provider_datetime(self):
        assert parse_provider_datetime("2025-01-10T19:00Z") == datetime(2025, 1, 10, 19, 0)
        assert parse_provider_datetime("2025-01-10T14:00-05:00") == datetime(2025, 1, 10, 19, 0)
        assert parse_provider_datetime("TBD") is None
        assert parse_provider_datetime(None) is None

    def test_to_naive_utc(self):
        aware = datetime(2025, 1, 10, 14, 0, tzinfo=timezone(timedelta(hours=-5)))
        assert to_naive_utc(aware) == datetime(2025, 1, 10, 19, 0)

    def test_date_range_crosses_month(self):
        assert date_range("20250130", "20250202") == ["20250130", "20250131", "20250201", "20250202"]

    def test_empty_date_range(self):
        assert date_range("20250202", "20250201") == []


class TestPollingPolicy:

    def test_defaults(self):
        policy = DEFAULT_POLLING_POLICY
        assert policy.first_check_offset == timedelta(hours=2, minutes=15)
        assert policy.max_checks == 24
        assert policy.throttle_window == timedelta(seconds=15)


class TestStructuredLogging:

    @pytest.fixture
    def stream(self):
        stream = io.StringIO()
        configure_logging(level="INFO", json_output=True, handler=logging.StreamHandler(stream))
        yield stream
        logging.getLogger().handlers.clear()

    def test_json_line_carries_correlation_id(self, stream):
        with correlation_scope(game_correlation_id("nba", "401585001")):
            logging.getLogger("courtside.test").info("checking game")

        record = json.loads(stream.getvalue().strip().splitlines()[-1])
        assert record["message"] == "checking game"
        assert record["correlation_id"] == "nba:401585001"
        assert record["level"] == "INFO"

    def test_scope_is_restored(self, stream):
        with correlation_scope("outer"):
            with correlation_scope("inner"):
                assert get_correlation_id() == "inner"
            assert get_correlation_id() == "outer"
        assert get_correlation_id() == ""
