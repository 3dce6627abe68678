"""
Repository layer for data access.

Usage:
    from courtside.repositories import EntityStore
    from courtside.core.database import SessionLocal

    db = SessionLocal()
    store = EntityStore(db)
    game = store.get_game("nba", "401585001")
    db.close()
"""

from courtside.repositories.base import BaseRepository
from courtside.repositories.team_repository import TeamRepository
from courtside.repositories.player_repository import PlayerRepository
from courtside.repositories.game_event_repository import GameEventRepository
from courtside.repositories.box_score_repository import TeamEventRepository, PlayerEventRepository
from courtside.repositories.game_queue_repository import GameQueueRepository
from courtside.repositories.score_anomaly_repository import ScoreAnomalyRepository
from courtside.repositories.entity_store import EntityStore

__all__ = [
    "BaseRepository",
    "TeamRepository",
    "PlayerRepository",
    "GameEventRepository",
    "TeamEventRepository",
    "PlayerEventRepository",
    "GameQueueRepository",
    "ScoreAnomalyRepository",
    "EntityStore",
]
