"""
Season bootstrap and historical backfill for one league.

Run order for a fresh season:
    bootstrap_teams -> bootstrap_players -> backfill_games -> recalculate_all

Fetches go through fetch_with_retry (a few attempts with exponential wait);
a date, team or roster that still fails is logged and skipped so one bad
day does not stop a season-long backfill.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from courtside.core.config import settings
from courtside.core.leagues import LeagueConfig
from courtside.models import STATUS_COMPLETED
from courtside.repositories import EntityStore
from courtside.services.aggregation import AggregationService
from courtside.services.box_score_parser import (
    STATE_POST,
    parse_roster,
    parse_scoreboard_events,
    parse_summary_header,
    parse_team_ref,
    parse_team_statistics,
)
from courtside.services.box_score_sync import BoxScoreSyncService
from courtside.services.discovery import upsert_snapshot_game, upsert_snapshot_teams
from courtside.services.game_status_poller import SOURCE_BACKFILL
from courtside.services.provider_client import ProviderClient, ProviderFetchError, fetch_with_retry
from courtside.services.rankings import RankingService
from courtside.services.stats_calculator import calculate_possessions, round_stat
from courtside.utils.timezone import (
    current_season,
    date_range,
    league_today,
    season_end_date,
    season_start_date,
)

logger = logging.getLogger(__name__)


class BackfillService:
    """
    Bootstrap and backfill a league season.

    Usage:
        service = BackfillService(store, client, leagues["nba"])
        await service.bootstrap_teams()
        await service.backfill_games("20241022", "20241031")
        service.recalculate_all()
    """

    def __init__(
        self,
        store: EntityStore,
        client: ProviderClient,
        league: LeagueConfig,
        season: Optional[str] = None,
        game_delay_seconds: Optional[float] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.store = store
        self.client = client
        self.league = league
        self.season = season or current_season(league)
        self.game_delay_seconds = (
            game_delay_seconds if game_delay_seconds is not None
            else settings.BACKFILL_GAME_DELAY_SECONDS
        )
        self.sleep = sleep
        self.box_scores = BoxScoreSyncService(store, league)
        self.aggregation = AggregationService(store)
        self.rankings = RankingService(store)

    # ========================================================================
    # Teams and players
    # ========================================================================

    async def bootstrap_teams(self, seed_estimates: bool = False) -> Dict[str, Any]:
        """
        Create or update every team in the standings.

        Args:
            seed_estimates: Also seed pace and ratings from the team
                            statistics endpoint for teams without box scores

        Returns:
            Summary dict with the number of teams written
        """
        prefix = self.league.log_prefix
        logger.info(f"{prefix} Bootstrapping teams for season {self.season}")

        try:
            payload = await fetch_with_retry(self.client.get_standings)
        except ProviderFetchError as e:
            logger.error(f"{prefix} ❌ Standings fetch failed: {e}")
            return {"success": False, "teams": 0, "error": str(e)}

        records = self.league.standings_strategy.parse(payload)
        for team_id, record in records.items():
            ref = parse_team_ref(record.team or {"id": team_id})
            self.store.upsert_team(
                self.league.key, team_id, self.season,
                {**ref.identity_fields(), **record.as_team_fields()},
            )
        self.store.commit()

        seeded = 0
        if seed_estimates:
            seeded = await self._seed_estimates()

        logger.info(f"{prefix} ✅ Bootstrapped {len(records)} teams ({seeded} seeded with estimates)")
        return {"success": True, "teams": len(records), "seeded": seeded, "error": None}

    async def _seed_estimates(self) -> int:
        """Pace/rating estimates from season per-game averages."""
        seeded = 0
        for team in self.store.teams_for_season(self.league.key, self.season):
            if self.store.team_events_for_team(team.id):
                continue
            try:
                payload = await fetch_with_retry(self.client.get_team_statistics, team.external_id)
            except ProviderFetchError as e:
                logger.warning(f"{self.league.log_prefix} Team statistics fetch failed for {team.external_id}: {e}")
                continue

            stats = parse_team_statistics(payload)
            pace = calculate_possessions(
                stats.field_goals_attempted,
                stats.free_throws_attempted,
                stats.offensive_rebounds,
                stats.turnovers,
            )
            if pace <= 0 or not team.points_for:
                continue

            ortg = round_stat(team.points_for / pace * 100)
            drtg = round_stat((team.points_against or 0) / pace * 100)
            self.store.teams.patch(team, {
                "pace": round_stat(pace),
                "offensive_rating": ortg,
                "defensive_rating": drtg,
                "net_rating": round_stat(ortg - drtg),
            })
            seeded += 1

        self.store.commit()
        return seeded

    async def bootstrap_players(self) -> Dict[str, Any]:
        """Create or update every rostered player of every known team."""
        prefix = self.league.log_prefix
        teams = self.store.teams_for_season(self.league.key, self.season)
        if not teams:
            logger.error(f"{prefix} No teams for season {self.season}. Run bootstrap_teams first.")
            return {"success": False, "players": 0, "error": "no teams"}

        players = 0
        failed_teams = []
        for team in teams:
            try:
                roster = await fetch_with_retry(self.client.get_roster, team.external_id)
            except ProviderFetchError as e:
                logger.error(f"{prefix} ❌ Roster fetch failed for team {team.external_id}: {e}")
                failed_teams.append(team.external_id)
                continue

            for athlete in parse_roster(roster):
                self.store.upsert_player(
                    self.league.key, athlete.external_id, self.season,
                    {"team_id": team.id, **athlete.identity_fields()},
                )
                players += 1
            self.store.commit()

        logger.info(f"{prefix} ✅ Bootstrapped {players} players from {len(teams)} rosters")
        return {"success": True, "players": players, "failed_teams": failed_teams, "error": None}

    # ========================================================================
    # Games
    # ========================================================================

    async def backfill_games(
        self,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        team_external_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Store every game (and the box score of every final) in a date range.

        Args:
            start_date: YYYYMMDD, defaults to the season's first date
            end_date: YYYYMMDD, defaults to the earlier of today and season end
            team_external_id: Only games involving this team

        Returns:
            Counts of dates, games and box scores, plus failed dates
        """
        prefix = self.league.log_prefix
        start_date = start_date or season_start_date(self.league, self.season)
        end_date = end_date or min(league_today(self.league), season_end_date(self.league, self.season))
        dates = date_range(start_date, end_date)

        label = f" for team {team_external_id}" if team_external_id else ""
        logger.info(f"{prefix} Starting game backfill{label}: {start_date} to {end_date} ({len(dates)} dates)")

        totals = {"dates": len(dates), "games": 0, "box_scores": 0, "failed_dates": []}
        for date in dates:
            try:
                games, box_scores = await self._backfill_date(date, team_external_id)
                totals["games"] += games
                totals["box_scores"] += box_scores
            except Exception as e:
                self.store.rollback()
                logger.error(f"{prefix} ❌ Backfill failed for {date}: {e}")
                totals["failed_dates"].append(date)

        logger.info(
            f"{prefix} ✅ Backfill done: {totals['games']} games, "
            f"{totals['box_scores']} box scores, {len(totals['failed_dates'])} failed dates"
        )
        return totals

    async def _backfill_date(self, date: str, team_external_id: Optional[str]):
        scoreboard = await fetch_with_retry(self.client.get_scoreboard, date)
        snapshots = parse_scoreboard_events(scoreboard)
        if team_external_id:
            snapshots = [
                s for s in snapshots
                if team_external_id in (s.home.team.external_id, s.away.team.external_id)
            ]

        games = box_scores = 0
        for snapshot in snapshots:
            if snapshot.home.team.external_id == snapshot.away.team.external_id:
                continue
            home, away = upsert_snapshot_teams(self.store, self.league, snapshot, self.season)
            game = upsert_snapshot_game(
                self.store, self.league, snapshot, self.season, date, home, away, source=SOURCE_BACKFILL,
            )
            self.store.commit()
            games += 1

            if snapshot.provider_state != STATE_POST or game.status != STATUS_COMPLETED:
                continue

            await self.sleep(self.game_delay_seconds)
            try:
                summary = await fetch_with_retry(self.client.get_summary, snapshot.external_id)
            except ProviderFetchError as e:
                logger.warning(f"{self.league.log_prefix} Summary fetch failed for game {snapshot.external_id}: {e}")
                continue

            result = self.box_scores.sync(game, summary, parse_summary_header(summary, snapshot.external_id))
            self.store.commit()
            if not result.skipped:
                box_scores += 1

        logger.info(f"{self.league.log_prefix} {date}: {games} games, {box_scores} box scores")
        return games, box_scores

    # ========================================================================
    # Aggregates
    # ========================================================================

    def recalculate_all(self, season: Optional[str] = None) -> Dict[str, Any]:
        """Recompute every team, then every player, then the league ranks."""
        season = season or self.season
        counts = self.aggregation.recalculate_season(self.league.key, season)
        ranked = self.rankings.update_league_rankings(self.league.key, season)
        self.store.commit()
        logger.info(
            f"{self.league.log_prefix} ✅ Recalculated {counts['teams']} teams, "
            f"{counts['players']} players, ranked {ranked}"
        )
        return {"success": True, "season": season, **counts, "ranked": ranked}
