"""
Database models shared by every league.

Usage:
    from courtside.models import Team, GameEvent

    nba_games = db.query(GameEvent).filter(GameEvent.league == "nba").all()
"""

from courtside.models.models import (
    Base,
    Team,
    Player,
    GameEvent,
    TeamEvent,
    PlayerEvent,
    GameQueueEntry,
    ScoreAnomaly,
    LIVE_STATUSES,
    STATUS_SCHEDULED,
    STATUS_IN_PROGRESS,
    STATUS_HALFTIME,
    STATUS_END_OF_PERIOD,
    STATUS_OVERTIME,
    STATUS_COMPLETED,
    STATUS_POSTPONED,
    STATUS_CANCELLED,
    QUEUE_PENDING,
    QUEUE_CHECKING,
    QUEUE_PROCESSED,
    QUEUE_ABANDONED,
)

__all__ = [
    "Base",
    "Team",
    "Player",
    "GameEvent",
    "TeamEvent",
    "PlayerEvent",
    "GameQueueEntry",
    "ScoreAnomaly",
    "LIVE_STATUSES",
    "STATUS_SCHEDULED",
    "STATUS_IN_PROGRESS",
    "STATUS_HALFTIME",
    "STATUS_END_OF_PERIOD",
    "STATUS_OVERTIME",
    "STATUS_COMPLETED",
    "STATUS_POSTPONED",
    "STATUS_CANCELLED",
    "QUEUE_PENDING",
    "QUEUE_CHECKING",
    "QUEUE_PROCESSED",
    "QUEUE_ABANDONED",
]
