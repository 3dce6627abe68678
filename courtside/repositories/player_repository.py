"""
Player Repository for season player rows.

Usage:
    repo = PlayerRepository(db)
    player = repo.find_by_external_id("nba", "3112335", "2024-25")
"""
from typing import Any, Dict, List, Optional

from courtside.models import Player, PlayerEvent
from courtside.repositories.base import BaseRepository


class PlayerRepository(BaseRepository[Player]):
    """Repository for player data access."""

    def __init__(self, db):
        super().__init__(Player, db)

    def find_by_external_id(self, league: str, external_id: str, season: str) -> Optional[Player]:
        return self.filter_by_first(league=league, external_id=external_id, season=season)

    def find_by_season(self, league: str, season: str) -> List[Player]:
        return self.query().filter(
            Player.league == league,
            Player.season == season,
        ).order_by(Player.external_id).all()

    def find_by_game(self, game_event_id: str) -> List[Player]:
        """Every distinct player with a box-score row for the game."""
        return self.query().join(
            PlayerEvent, PlayerEvent.player_id == Player.id
        ).filter(
            PlayerEvent.game_event_id == game_event_id
        ).distinct().order_by(Player.external_id).all()

    def upsert_player(self, league: str, external_id: str, season: str, fields: Dict[str, Any]) -> Player:
        return self.upsert(
            {"league": league, "external_id": external_id, "season": season},
            fields,
        )
