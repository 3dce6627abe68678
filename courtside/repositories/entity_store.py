"""
EntityStore: the persistence facade the pipeline services call.

Wraps one SQLAlchemy session and the per-entity repositories. Writes are
upserts keyed by each table's unique key, so concurrent writers to different
keys never conflict and repeated writes to the same key patch one row.

Usage:
    store = EntityStore(db)
    team = store.upsert_team("nba", "5", "2024-25", {"name": "Indiana Pacers"})
    store.commit()
"""
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from courtside.models import (
    GameEvent,
    GameQueueEntry,
    Player,
    PlayerEvent,
    ScoreAnomaly,
    Team,
    TeamEvent,
)
from courtside.repositories.base import BaseRepository
from courtside.repositories.box_score_repository import (
    PlayerEventRepository,
    TeamEventRepository,
)
from courtside.repositories.game_event_repository import GameEventRepository
from courtside.repositories.game_queue_repository import GameQueueRepository
from courtside.repositories.player_repository import PlayerRepository
from courtside.repositories.score_anomaly_repository import ScoreAnomalyRepository
from courtside.repositories.team_repository import TeamRepository


class EntityStore:
    """Upsert/read access to every pipeline table through one session."""

    def __init__(self, db: Session):
        self.db = db
        self.teams = TeamRepository(db)
        self.players = PlayerRepository(db)
        self.games = GameEventRepository(db)
        self.team_events = TeamEventRepository(db)
        self.player_events = PlayerEventRepository(db)
        self.queue = GameQueueRepository(db)
        self.anomalies = ScoreAnomalyRepository(db)
        self._by_table: Dict[str, BaseRepository] = {
            Team.__tablename__: self.teams,
            Player.__tablename__: self.players,
            GameEvent.__tablename__: self.games,
            TeamEvent.__tablename__: self.team_events,
            PlayerEvent.__tablename__: self.player_events,
            GameQueueEntry.__tablename__: self.queue,
            ScoreAnomaly.__tablename__: self.anomalies,
        }

    # ========================================================================
    # Generic table access
    # ========================================================================

    def _repository(self, table: str) -> BaseRepository:
        try:
            return self._by_table[table]
        except KeyError:
            raise ValueError(f"Unknown table: {table}") from None

    def upsert(self, table: str, unique_key: Dict[str, Any], fields: Dict[str, Any]) -> str:
        """Upsert a row by its unique key and return its id."""
        return self._repository(table).upsert(unique_key, fields).id

    def get(self, table: str, id: str) -> Optional[Any]:
        return self._repository(table).find_by_id(id)

    def query_by_index(self, table: str, **predicate) -> List[Any]:
        return self._repository(table).filter_by(**predicate)

    # ========================================================================
    # Teams / players
    # ========================================================================

    def upsert_team(self, league: str, external_id: str, season: str, fields: Dict[str, Any]) -> Team:
        return self.teams.upsert_team(league, external_id, season, fields)

    def get_or_create_team(self, league: str, external_id: str, season: str, identity: Dict[str, Any]) -> Team:
        return self.teams.get_or_create(league, external_id, season, identity)

    def get_team(self, league: str, external_id: str, season: str) -> Optional[Team]:
        return self.teams.find_by_external_id(league, external_id, season)

    def teams_for_season(self, league: str, season: str) -> List[Team]:
        return self.teams.find_by_season(league, season)

    def upsert_player(self, league: str, external_id: str, season: str, fields: Dict[str, Any]) -> Player:
        return self.players.upsert_player(league, external_id, season, fields)

    def players_for_season(self, league: str, season: str) -> List[Player]:
        return self.players.find_by_season(league, season)

    def players_for_game(self, game_event_id: str) -> List[Player]:
        return self.players.find_by_game(game_event_id)

    # ========================================================================
    # Games and box scores
    # ========================================================================

    def upsert_game(self, league: str, external_id: str, fields: Dict[str, Any]) -> GameEvent:
        return self.games.upsert_game(league, external_id, fields)

    def get_game(self, league: str, external_id: str) -> Optional[GameEvent]:
        return self.games.find_by_external_id(league, external_id)

    def get_game_by_id(self, game_event_id: str) -> Optional[GameEvent]:
        return self.games.find_by_id(game_event_id)

    def patch_game(self, game: GameEvent, fields: Dict[str, Any]) -> GameEvent:
        self.games.patch(game, fields)
        self.db.flush()
        return game

    def try_acquire_sync_lock(
        self,
        game_event_id: str,
        now: datetime,
        lease: timedelta,
        min_interval: Optional[timedelta] = None,
    ) -> bool:
        """Claim a game for one sync; the claim is committed before returning."""
        acquired = self.games.try_acquire_sync_lock(game_event_id, now, lease, min_interval)
        self.db.commit()
        return acquired

    def release_sync_lock(self, game_event_id: str) -> None:
        self.games.release_sync_lock(game_event_id)
        self.db.commit()

    def record_score_anomaly(self, fields: Dict[str, Any]) -> ScoreAnomaly:
        return self.anomalies.record(fields)

    def score_anomalies_for_game(self, league: str, external_game_id: str) -> List[ScoreAnomaly]:
        return self.anomalies.find_by_game(league, external_game_id)

    def upsert_team_event(self, game_event_id: str, team_id: str, fields: Dict[str, Any]) -> TeamEvent:
        return self.team_events.upsert_team_event(game_event_id, team_id, fields)

    def upsert_player_event(self, game_event_id: str, player_id: str, fields: Dict[str, Any]) -> PlayerEvent:
        return self.player_events.upsert_player_event(game_event_id, player_id, fields)

    def team_events_for_team(self, team_id: str) -> List[TeamEvent]:
        return self.team_events.find_by_team(team_id)

    def player_events_for_player(self, player_id: str) -> List[PlayerEvent]:
        return self.player_events.find_by_player(player_id)

    # ========================================================================
    # Transactions
    # ========================================================================

    def commit(self) -> None:
        self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()
