"""
Game Queue Repository for the batch polling path.

Usage:
    repo = GameQueueRepository(db)
    ready = repo.find_ready(utc_now())
"""
from datetime import datetime
from typing import List, Optional

from sqlalchemy import and_, or_

from courtside.models import (
    GameQueueEntry,
    QUEUE_ABANDONED,
    QUEUE_CHECKING,
    QUEUE_PENDING,
    QUEUE_PROCESSED,
)
from courtside.repositories.base import BaseRepository


class GameQueueRepository(BaseRepository[GameQueueEntry]):
    """Repository for queue entries."""

    def __init__(self, db):
        super().__init__(GameQueueEntry, db)

    def find_entry(self, league: str, external_game_id: str) -> Optional[GameQueueEntry]:
        return self.filter_by_first(league=league, external_game_id=external_game_id)

    def find_ready(self, now: datetime) -> List[GameQueueEntry]:
        """Entries being checked plus pending entries whose first check is due."""
        return self.query().filter(
            or_(
                GameQueueEntry.status == QUEUE_CHECKING,
                and_(
                    GameQueueEntry.status == QUEUE_PENDING,
                    GameQueueEntry.first_check_time <= now,
                ),
            )
        ).order_by(GameQueueEntry.first_check_time).all()

    def delete_finished_before(self, cutoff: datetime) -> int:
        """Delete processed/abandoned entries created before cutoff."""
        return self.query().filter(
            GameQueueEntry.status.in_([QUEUE_PROCESSED, QUEUE_ABANDONED]),
            GameQueueEntry.created_at < cutoff,
        ).delete(synchronize_session=False)
