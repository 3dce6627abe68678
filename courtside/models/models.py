"""
Database models for the basketball ingestion pipeline.

One table per entity is shared by every league; the `league` column is the
discriminator (nba, wnba, gleague). Rows are keyed by provider external IDs
and written through upsert-by-unique-key (see courtside.repositories).
"""
import uuid

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

from courtside.utils.timezone import utc_now

Base = declarative_base()


def generate_uuid() -> str:
    return str(uuid.uuid4())


# Lifecycle statuses persisted on game_events.status
STATUS_SCHEDULED = "scheduled"
STATUS_IN_PROGRESS = "in_progress"
STATUS_HALFTIME = "halftime"
STATUS_END_OF_PERIOD = "end_of_period"
STATUS_OVERTIME = "overtime"
STATUS_COMPLETED = "completed"
STATUS_POSTPONED = "postponed"
STATUS_CANCELLED = "cancelled"

LIVE_STATUSES = frozenset({
    STATUS_IN_PROGRESS,
    STATUS_HALFTIME,
    STATUS_END_OF_PERIOD,
    STATUS_OVERTIME,
})

# Queue statuses persisted on game_queue.status
QUEUE_PENDING = "pending"
QUEUE_CHECKING = "checking"
QUEUE_PROCESSED = "processed"
QUEUE_ABANDONED = "abandoned"


class Team(Base):
    """A team's season row: identity, standings, derived averages and league ranks."""
    __tablename__ = "teams"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    league = Column(String(10), nullable=False, index=True)
    external_id = Column(String(50), nullable=False)  # provider team id
    season = Column(String(10), nullable=False, index=True)

    # Identity
    name = Column(String(255), nullable=False)
    abbreviation = Column(String(10), nullable=False, default="")
    location = Column(String(255), nullable=False, default="")
    slug = Column(String(255), nullable=True)

    # Standings
    conference = Column(String(100), nullable=True)
    division = Column(String(100), nullable=True)
    conference_rank = Column(Integer, nullable=True)
    division_rank = Column(Integer, nullable=True)
    wins = Column(Integer, nullable=False, default=0)
    losses = Column(Integer, nullable=False, default=0)
    win_pct = Column(Float, nullable=True)
    streak = Column(String(20), nullable=True)
    home_record = Column(String(20), nullable=True)
    away_record = Column(String(20), nullable=True)
    games_back = Column(String(20), nullable=True)
    last10 = Column(String(20), nullable=True)
    division_record = Column(String(20), nullable=True)
    conference_record = Column(String(20), nullable=True)

    # Season averages (overwritten by aggregation)
    points_for = Column(Float, nullable=True)
    points_against = Column(Float, nullable=True)
    margin = Column(Float, nullable=True)
    pace = Column(Float, nullable=True)
    offensive_rating = Column(Float, nullable=True)
    defensive_rating = Column(Float, nullable=True)
    net_rating = Column(Float, nullable=True)
    fg_pct = Column(Float, nullable=True)
    three_pct = Column(Float, nullable=True)
    ft_pct = Column(Float, nullable=True)
    efg_pct = Column(Float, nullable=True)
    ts_pct = Column(Float, nullable=True)
    rpg = Column(Float, nullable=True)
    orpg = Column(Float, nullable=True)
    drpg = Column(Float, nullable=True)
    apg = Column(Float, nullable=True)
    tov_pg = Column(Float, nullable=True)
    ast_to_ratio = Column(Float, nullable=True)
    spg = Column(Float, nullable=True)
    bpg = Column(Float, nullable=True)
    total_fg_made = Column(Integer, nullable=True)
    total_fg_attempted = Column(Integer, nullable=True)
    total_three_made = Column(Integer, nullable=True)
    total_three_attempted = Column(Integer, nullable=True)
    total_ft_made = Column(Integer, nullable=True)
    total_ft_attempted = Column(Integer, nullable=True)

    # League ranks (None = insufficient data)
    rank_ppg = Column(Integer, nullable=True)
    rank_opp_ppg = Column(Integer, nullable=True)
    rank_margin = Column(Integer, nullable=True)
    rank_pace = Column(Integer, nullable=True)
    rank_ortg = Column(Integer, nullable=True)
    rank_drtg = Column(Integer, nullable=True)
    rank_net_rtg = Column(Integer, nullable=True)
    rank_fg_pct = Column(Integer, nullable=True)
    rank_three_pct = Column(Integer, nullable=True)
    rank_ft_pct = Column(Integer, nullable=True)
    rank_efg_pct = Column(Integer, nullable=True)
    rank_ts_pct = Column(Integer, nullable=True)
    rank_rpg = Column(Integer, nullable=True)
    rank_orpg = Column(Integer, nullable=True)
    rank_drpg = Column(Integer, nullable=True)
    rank_apg = Column(Integer, nullable=True)
    rank_tov = Column(Integer, nullable=True)
    rank_ast_to_ratio = Column(Integer, nullable=True)
    rank_spg = Column(Integer, nullable=True)
    rank_bpg = Column(Integer, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now)

    players = relationship("Player", back_populates="team")
    team_events = relationship("TeamEvent", back_populates="team", cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint("league", "external_id", "season", name="uq_teams_league_external_season"),
        Index("ix_teams_league_season", "league", "season"),
    )


class Player(Base):
    """A player's season row: identity plus season averages."""
    __tablename__ = "players"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    league = Column(String(10), nullable=False, index=True)
    external_id = Column(String(50), nullable=False)  # provider athlete id
    season = Column(String(10), nullable=False, index=True)
    team_id = Column(String(36), ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True)

    name = Column(String(255), nullable=False)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    jersey = Column(String(10), nullable=True)
    position = Column(String(20), nullable=True)
    headshot = Column(String(500), nullable=True)
    height = Column(String(20), nullable=True)
    weight = Column(String(20), nullable=True)
    age = Column(Integer, nullable=True)
    experience = Column(String(20), nullable=True)
    college = Column(String(255), nullable=True)

    # Season averages (overwritten by aggregation)
    games_played = Column(Integer, nullable=True)
    games_started = Column(Integer, nullable=True)
    minutes_per_game = Column(Float, nullable=True)
    points_per_game = Column(Float, nullable=True)
    rebounds_per_game = Column(Float, nullable=True)
    assists_per_game = Column(Float, nullable=True)
    steals_per_game = Column(Float, nullable=True)
    blocks_per_game = Column(Float, nullable=True)
    turnovers_per_game = Column(Float, nullable=True)
    field_goal_pct = Column(Float, nullable=True)
    three_point_pct = Column(Float, nullable=True)
    free_throw_pct = Column(Float, nullable=True)
    off_reb_per_game = Column(Float, nullable=True)
    def_reb_per_game = Column(Float, nullable=True)
    total_fg_made = Column(Integer, nullable=True)
    total_fg_attempted = Column(Integer, nullable=True)
    total_three_made = Column(Integer, nullable=True)
    total_three_attempted = Column(Integer, nullable=True)
    total_ft_made = Column(Integer, nullable=True)
    total_ft_attempted = Column(Integer, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now)

    team = relationship("Team", back_populates="players")
    player_events = relationship("PlayerEvent", back_populates="player", cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint("league", "external_id", "season", name="uq_players_league_external_season"),
    )


class GameEvent(Base):
    """One game, tracked from discovery through its final score."""
    __tablename__ = "game_events"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    league = Column(String(10), nullable=False, index=True)
    external_id = Column(String(50), nullable=False)  # provider event id
    season = Column(String(10), nullable=False, index=True)
    home_team_id = Column(String(36), ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True)
    away_team_id = Column(String(36), ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True)
    game_date = Column(String(8), nullable=False, index=True)  # YYYYMMDD on the league calendar
    scheduled_start = Column(DateTime, nullable=False, index=True)  # naive UTC
    status = Column(String(20), nullable=False, default=STATUS_SCHEDULED, index=True)
    status_detail = Column(String(255), nullable=True)
    venue = Column(String(255), nullable=True)
    home_score = Column(Integer, nullable=True)
    away_score = Column(Integer, nullable=True)
    last_fetched_at = Column(DateTime, nullable=True)  # throttle marker
    sync_lock_until = Column(DateTime, nullable=True)  # lease held by an in-flight sync
    check_count = Column(Integer, nullable=False, default=0)
    fetch_failures = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now)

    home_team = relationship("Team", foreign_keys=[home_team_id])
    away_team = relationship("Team", foreign_keys=[away_team_id])
    team_events = relationship("TeamEvent", back_populates="game_event", cascade="all, delete-orphan")
    player_events = relationship("PlayerEvent", back_populates="game_event", cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint("league", "external_id", name="uq_game_events_league_external"),
        CheckConstraint("home_team_id <> away_team_id", name="ck_game_events_distinct_teams"),
        Index("ix_game_events_league_date", "league", "game_date"),
    )


class TeamEvent(Base):
    """A team's box score for one game, with single-game advanced stats."""
    __tablename__ = "team_events"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    game_event_id = Column(String(36), ForeignKey("game_events.id", ondelete="CASCADE"), nullable=False, index=True)
    team_id = Column(String(36), ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True)
    is_home = Column(Boolean, nullable=False)
    score = Column(Integer, nullable=False, default=0)
    winner = Column(Boolean, nullable=True)

    field_goals_made = Column(Integer, nullable=False, default=0)
    field_goals_attempted = Column(Integer, nullable=False, default=0)
    field_goal_pct = Column(Float, nullable=False, default=0.0)
    three_point_made = Column(Integer, nullable=False, default=0)
    three_point_attempted = Column(Integer, nullable=False, default=0)
    three_point_pct = Column(Float, nullable=False, default=0.0)
    free_throws_made = Column(Integer, nullable=False, default=0)
    free_throws_attempted = Column(Integer, nullable=False, default=0)
    free_throw_pct = Column(Float, nullable=False, default=0.0)
    total_rebounds = Column(Integer, nullable=False, default=0)
    offensive_rebounds = Column(Integer, nullable=False, default=0)
    defensive_rebounds = Column(Integer, nullable=False, default=0)
    assists = Column(Integer, nullable=False, default=0)
    steals = Column(Integer, nullable=False, default=0)
    blocks = Column(Integer, nullable=False, default=0)
    turnovers = Column(Integer, nullable=False, default=0)
    fouls = Column(Integer, nullable=False, default=0)
    points_in_paint = Column(Integer, nullable=True)
    fast_break_points = Column(Integer, nullable=True)
    largest_lead = Column(Integer, nullable=True)

    # Computed at write time from this game's numbers; opponent score is not stored
    pace = Column(Float, nullable=True)
    offensive_rating = Column(Float, nullable=True)
    defensive_rating = Column(Float, nullable=True)
    net_rating = Column(Float, nullable=True)
    efg_pct = Column(Float, nullable=True)
    ts_pct = Column(Float, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now)

    game_event = relationship("GameEvent", back_populates="team_events")
    team = relationship("Team", back_populates="team_events")

    __table_args__ = (
        UniqueConstraint("game_event_id", "team_id", name="uq_team_events_game_team"),
    )


class PlayerEvent(Base):
    """A player's box score for one game."""
    __tablename__ = "player_events"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    game_event_id = Column(String(36), ForeignKey("game_events.id", ondelete="CASCADE"), nullable=False, index=True)
    team_id = Column(String(36), ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True)
    player_id = Column(String(36), ForeignKey("players.id", ondelete="CASCADE"), nullable=False, index=True)
    starter = Column(Boolean, nullable=False, default=False)
    active = Column(Boolean, nullable=False, default=True)
    minutes = Column(Float, nullable=False, default=0.0)
    points = Column(Integer, nullable=False, default=0)
    total_rebounds = Column(Integer, nullable=False, default=0)
    offensive_rebounds = Column(Integer, nullable=False, default=0)
    defensive_rebounds = Column(Integer, nullable=False, default=0)
    assists = Column(Integer, nullable=False, default=0)
    steals = Column(Integer, nullable=False, default=0)
    blocks = Column(Integer, nullable=False, default=0)
    turnovers = Column(Integer, nullable=False, default=0)
    fouls = Column(Integer, nullable=False, default=0)
    field_goals_made = Column(Integer, nullable=False, default=0)
    field_goals_attempted = Column(Integer, nullable=False, default=0)
    three_point_made = Column(Integer, nullable=False, default=0)
    three_point_attempted = Column(Integer, nullable=False, default=0)
    free_throws_made = Column(Integer, nullable=False, default=0)
    free_throws_attempted = Column(Integer, nullable=False, default=0)
    plus_minus = Column(Integer, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now)

    game_event = relationship("GameEvent", back_populates="player_events")
    player = relationship("Player", back_populates="player_events")

    __table_args__ = (
        UniqueConstraint("game_event_id", "player_id", name="uq_player_events_game_player"),
    )


class GameQueueEntry(Base):
    """Batch polling queue row (secondary path driven by GameQueueService)."""
    __tablename__ = "game_queue"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    league = Column(String(10), nullable=False, index=True)
    external_game_id = Column(String(50), nullable=False)
    game_event_id = Column(String(36), ForeignKey("game_events.id", ondelete="CASCADE"), nullable=True)
    home_external_id = Column(String(50), nullable=False)
    away_external_id = Column(String(50), nullable=False)
    scheduled_start = Column(DateTime, nullable=False)
    first_check_time = Column(DateTime, nullable=False, index=True)
    status = Column(String(20), nullable=False, default=QUEUE_PENDING, index=True)
    check_count = Column(Integer, nullable=False, default=0)
    last_checked_at = Column(DateTime, nullable=True)
    processed_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now)

    __table_args__ = (
        UniqueConstraint("league", "external_game_id", name="uq_game_queue_league_game"),
    )


class ScoreAnomaly(Base):
    """A provider score payload that was not trusted, kept for inspection."""
    __tablename__ = "score_anomalies"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    league = Column(String(10), nullable=False, index=True)
    external_game_id = Column(String(50), nullable=False)
    game_event_id = Column(String(36), ForeignKey("game_events.id", ondelete="SET NULL"), nullable=True)
    anomaly_type = Column(String(50), nullable=False)
    source = Column(String(20), nullable=False)  # poller, discovery, live_sync, backfill
    provider_state = Column(String(20), nullable=True)
    status_detail = Column(String(255), nullable=True)
    home_score = Column(Integer, nullable=True)
    away_score = Column(Integer, nullable=True)
    raw_home_score = Column(String(50), nullable=True)
    raw_away_score = Column(String(50), nullable=True)

    created_at = Column(DateTime, nullable=False, default=utc_now)

    __table_args__ = (
        Index("ix_score_anomalies_league_game", "league", "external_game_id"),
    )
