"""
Daily game discovery for one league.

Fetches the scoreboard and standings for a date, upserts both teams of every
event (standings merged in when available) and the GameEvent itself, then
seeds the first status check of each scheduled game at tip-off + 2h15m.

A failed scoreboard fetch ends the run for that league with a reported
error; a failed standings fetch only drops the standings merge. One bad event
never stops the rest of the scoreboard.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from courtside.core.config import DEFAULT_POLLING_POLICY, PollingPolicy
from courtside.core.leagues import LeagueConfig, StandingsRecord
from courtside.core.scheduler import CHECK_GAME_TASK, TaskScheduler, check_job_id
from courtside.models import GameEvent, STATUS_SCHEDULED, Team
from courtside.repositories import EntityStore
from courtside.services.box_score_parser import STATE_POST, GameSnapshot, parse_scoreboard_events
from courtside.services.game_status_poller import (
    SOURCE_DISCOVERY,
    advance_status,
    record_score_anomaly,
    score_anomaly_type,
)
from courtside.services.provider_client import ProviderClient, ProviderFetchError
from courtside.utils.timezone import current_season, league_today, utc_now

logger = logging.getLogger(__name__)


def season_for_date(league: LeagueConfig, game_date: str) -> str:
    """Season a YYYYMMDD league date belongs to."""
    noon = datetime(int(game_date[0:4]), int(game_date[4:6]), int(game_date[6:8]), 12)
    return current_season(league, noon)


def upsert_snapshot_teams(
    store: EntityStore,
    league: LeagueConfig,
    snapshot: GameSnapshot,
    season: str,
    standings: Optional[Dict[str, StandingsRecord]] = None,
) -> List[Team]:
    """
    Upsert the home and away teams of a snapshot.

    With a standings record the team's identity and standings are written;
    without one an existing row is left alone (a new one starts at 0-0).
    """
    teams = []
    for competitor in (snapshot.home, snapshot.away):
        ref = competitor.team
        record = (standings or {}).get(ref.external_id)
        if record is not None:
            team = store.upsert_team(
                league.key, ref.external_id, season,
                {**ref.identity_fields(), **record.as_team_fields()},
            )
        else:
            team = store.get_or_create_team(league.key, ref.external_id, season, ref.identity_fields())
        teams.append(team)
    return teams


def upsert_snapshot_game(
    store: EntityStore,
    league: LeagueConfig,
    snapshot: GameSnapshot,
    season: str,
    game_date: str,
    home_team: Team,
    away_team: Team,
    extra: Optional[Dict[str, Any]] = None,
    source: str = SOURCE_DISCOVERY,
) -> GameEvent:
    """
    Upsert a GameEvent from a snapshot.

    Status only moves forward; scores are written only when they can be
    trusted; polling counters are left untouched. Untrusted scores are
    recorded in score_anomalies under `source`.
    """
    existing = store.get_game(league.key, snapshot.external_id)
    current_status = existing.status if existing is not None else None

    fields: Dict[str, Any] = {
        "season": season,
        "home_team_id": home_team.id,
        "away_team_id": away_team.id,
        "game_date": game_date,
        "status_detail": snapshot.detail,
    }

    anomaly = score_anomaly_type(snapshot.provider_state, snapshot.home_score, snapshot.away_score)
    untrusted = anomaly is not None
    if not (untrusted and snapshot.provider_state == STATE_POST):
        fields["status"] = advance_status(current_status, snapshot.status)
    elif existing is None:
        fields["status"] = STATUS_SCHEDULED

    if not untrusted and snapshot.home_score is not None and snapshot.away_score is not None:
        fields["home_score"] = snapshot.home_score
        fields["away_score"] = snapshot.away_score

    start = snapshot.scheduled_start or (existing.scheduled_start if existing is not None else None)
    fields["scheduled_start"] = start or utc_now()
    if snapshot.venue:
        fields["venue"] = snapshot.venue
    if extra:
        fields.update(extra)

    game = store.upsert_game(league.key, snapshot.external_id, fields)
    if anomaly is not None:
        record_score_anomaly(store, league, snapshot, anomaly, source, game.id)
    return game


class DiscoveryService:
    """
    Discovers one league's games for a date.

    Usage:
        service = DiscoveryService(store, client, scheduler, leagues["nba"])
        summary = await service.discover_games("20250110")
    """

    def __init__(
        self,
        store: EntityStore,
        client: ProviderClient,
        scheduler: Optional[TaskScheduler],
        league: LeagueConfig,
        policy: PollingPolicy = DEFAULT_POLLING_POLICY,
    ):
        self.store = store
        self.client = client
        self.scheduler = scheduler
        self.league = league
        self.policy = policy

    async def _fetch_standings(self) -> Dict[str, StandingsRecord]:
        try:
            payload = await self.client.get_standings()
        except ProviderFetchError as e:
            logger.warning(f"{self.league.log_prefix} Standings fetch failed, continuing without: {e}")
            return {}
        return self.league.standings_strategy.parse(payload)

    async def discover_games(
        self,
        date: Optional[str] = None,
        season: Optional[str] = None,
        schedule_checks: bool = True,
    ) -> Dict[str, Any]:
        """
        Discover games for a league date.

        Args:
            date: YYYYMMDD on the league calendar (default: today)
            season: Season identifier (default: derived from date)
            schedule_checks: Seed per-game status checks for scheduled games

        Returns:
            Summary dict with success flag, counts and per-game errors
        """
        date = date or league_today(self.league)
        season = season or season_for_date(self.league, date)
        prefix = self.league.log_prefix

        logger.info(f"{prefix} Discovering games for {date} (season {season})")

        try:
            scoreboard = await self.client.get_scoreboard(date)
        except ProviderFetchError as e:
            logger.error(f"{prefix} ❌ Scoreboard fetch failed for {date}: {e}")
            return {
                "success": False,
                "league": self.league.key,
                "date": date,
                "games": 0,
                "scheduled_checks": 0,
                "error": str(e),
            }

        standings = await self._fetch_standings()
        snapshots = parse_scoreboard_events(scoreboard)

        games: List[GameEvent] = []
        scheduled = 0
        errors: List[str] = []

        for snapshot in snapshots:
            try:
                game = self._upsert_event(snapshot, season, date, standings)
                if game is None:
                    continue
                self.store.commit()
                games.append(game)

                if schedule_checks and game.status == STATUS_SCHEDULED:
                    self.schedule_first_check(game)
                    scheduled += 1
            except Exception as e:
                self.store.rollback()
                logger.error(f"{prefix} ❌ Failed to store game {snapshot.external_id}: {e}")
                errors.append(f"{snapshot.external_id}: {e}")

        logger.info(
            f"{prefix} ✅ Discovery for {date}: {len(games)} games, "
            f"{scheduled} checks scheduled, {len(errors)} errors"
        )
        return {
            "success": True,
            "league": self.league.key,
            "date": date,
            "season": season,
            "games": len(games),
            "game_ids": [g.id for g in games],
            "scheduled_checks": scheduled,
            "standings_teams": len(standings),
            "errors": errors,
            "error": None,
        }

    def _upsert_event(
        self,
        snapshot: GameSnapshot,
        season: str,
        date: str,
        standings: Dict[str, StandingsRecord],
    ) -> Optional[GameEvent]:
        if snapshot.home.team.external_id == snapshot.away.team.external_id:
            logger.warning(f"{self.league.log_prefix} Game {snapshot.external_id} lists the same team twice, skipping")
            return None
        home, away = upsert_snapshot_teams(self.store, self.league, snapshot, season, standings)
        return upsert_snapshot_game(self.store, self.league, snapshot, season, date, home, away)

    def schedule_first_check(self, game: GameEvent) -> datetime:
        """Queue the first status check at tip-off + first_check_offset."""
        run_at = game.scheduled_start + self.policy.first_check_offset
        if self.scheduler is not None:
            self.scheduler.schedule_at(
                run_at,
                CHECK_GAME_TASK,
                {"league": self.league.key, "game_event_id": game.id},
                job_id=check_job_id(self.league.key, game.id),
            )
        logger.debug(f"{self.league.log_prefix} First check for game {game.external_id} at {run_at.isoformat()}")
        return run_at
