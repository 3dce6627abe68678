"""
Box-score repositories: one row per (game, team) and per (game, player).

Rows are created on the first sync of a game and patched on every later
sync, never duplicated.
"""
from typing import Any, Dict, List

from courtside.models import PlayerEvent, TeamEvent
from courtside.repositories.base import BaseRepository


class TeamEventRepository(BaseRepository[TeamEvent]):
    """Repository for team box scores."""

    def __init__(self, db):
        super().__init__(TeamEvent, db)

    def upsert_team_event(self, game_event_id: str, team_id: str, fields: Dict[str, Any]) -> TeamEvent:
        return self.upsert({"game_event_id": game_event_id, "team_id": team_id}, fields)

    def find_by_team(self, team_id: str) -> List[TeamEvent]:
        return self.query().filter(TeamEvent.team_id == team_id).order_by(TeamEvent.id).all()

    def find_by_game(self, game_event_id: str) -> List[TeamEvent]:
        return self.filter_by(game_event_id=game_event_id)


class PlayerEventRepository(BaseRepository[PlayerEvent]):
    """Repository for player box scores."""

    def __init__(self, db):
        super().__init__(PlayerEvent, db)

    def upsert_player_event(self, game_event_id: str, player_id: str, fields: Dict[str, Any]) -> PlayerEvent:
        return self.upsert({"game_event_id": game_event_id, "player_id": player_id}, fields)

    def find_by_player(self, player_id: str) -> List[PlayerEvent]:
        return self.query().filter(PlayerEvent.player_id == player_id).order_by(PlayerEvent.id).all()

    def find_by_game(self, game_event_id: str) -> List[PlayerEvent]:
        return self.filter_by(game_event_id=game_event_id)
