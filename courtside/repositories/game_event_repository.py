"""
Game Event Repository for tracked games.

Usage:
    repo = GameEventRepository(db)
    game = repo.find_by_external_id("nba", "401585001")
"""
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from sqlalchemy import or_, update

from courtside.models import GameEvent
from courtside.repositories.base import BaseRepository


class GameEventRepository(BaseRepository[GameEvent]):
    """Repository for game event data access."""

    def __init__(self, db):
        super().__init__(GameEvent, db)

    def find_by_external_id(self, league: str, external_id: str) -> Optional[GameEvent]:
        return self.filter_by_first(league=league, external_id=external_id)

    def upsert_game(self, league: str, external_id: str, fields: Dict[str, Any]) -> GameEvent:
        return self.upsert({"league": league, "external_id": external_id}, fields)

    def try_acquire_sync_lock(
        self,
        game_event_id: str,
        now: datetime,
        lease: timedelta,
        min_interval: Optional[timedelta] = None,
    ) -> bool:
        """
        Claim a game for one sync with a single conditional UPDATE.

        The claim fails while another sync holds an unexpired lease, and,
        when min_interval is given, while the game was fetched less than
        min_interval ago.

        Args:
            game_event_id: GameEvent primary key
            now: Current naive-UTC time
            lease: How long the claim holds if never released
            min_interval: Minimum gap since the last fetch

        Returns:
            True when this caller now holds the lease
        """
        conditions = [
            GameEvent.id == game_event_id,
            or_(GameEvent.sync_lock_until.is_(None), GameEvent.sync_lock_until < now),
        ]
        if min_interval is not None:
            conditions.append(
                or_(GameEvent.last_fetched_at.is_(None), GameEvent.last_fetched_at <= now - min_interval)
            )
        result = self.db.execute(
            update(GameEvent)
            .where(*conditions)
            .values(sync_lock_until=now + lease)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def release_sync_lock(self, game_event_id: str) -> None:
        self.db.execute(
            update(GameEvent)
            .where(GameEvent.id == game_event_id)
            .values(sync_lock_until=None)
            .execution_options(synchronize_session=False)
        )
