"""
Application configuration with environment-specific settings.

Supported environment files (loaded in order of precedence):
1. .env.{ENVIRONMENT} (e.g., .env.production, .env.development)
2. .env (fallback)

Provider base URLs are read once here and handed to the pipeline as
LeagueConfig values (see courtside.core.leagues); no service reads the
environment at call time.
"""
import os
import logging
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Optional, Literal
from pydantic_settings import BaseSettings, SettingsConfigDict

# Get the project root directory (2 levels up from this file)
PROJECT_ROOT = Path(__file__).parent.parent.parent

logger = logging.getLogger(__name__)

DEFAULT_SITE_API = "https://site.api.espn.com/apis/site/v2/sports/basketball"
DEFAULT_COMMON_API = "https://site.web.api.espn.com/apis/common/v3/sports/basketball"
DEFAULT_CORE_API = "https://sports.core.api.espn.com/v2/sports/basketball/leagues"


def _load_env_file() -> Path:
    """
    Pick the environment file based on the ENVIRONMENT variable.

    Loads in order of precedence:
    1. .env.{ENVIRONMENT} (e.g., .env.production, .env.development)
    2. .env (fallback)
    """
    environment = os.getenv("ENVIRONMENT", "development")

    env_file = PROJECT_ROOT / f".env.{environment}"
    if env_file.exists():
        return env_file

    return PROJECT_ROOT / ".env"


class Settings(BaseSettings):
    """Application settings with environment-specific configuration."""

    model_config = SettingsConfigDict(
        env_file=str(_load_env_file()),
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Environment
    ENVIRONMENT: Literal["development", "production", "test"] = "development"

    # Application
    APP_NAME: str = "Courtside Stats Pipeline"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8001

    # Database
    DATABASE_URL: str = "sqlite:///./courtside.db"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    # Score provider (site/common/core bases per league)
    NBA_SITE_API: str = f"{DEFAULT_SITE_API}/nba"
    NBA_COMMON_API: str = f"{DEFAULT_COMMON_API}/nba"
    NBA_CORE_API: str = f"{DEFAULT_CORE_API}/nba"
    WNBA_SITE_API: str = f"{DEFAULT_SITE_API}/wnba"
    WNBA_COMMON_API: str = f"{DEFAULT_COMMON_API}/wnba"
    WNBA_CORE_API: str = f"{DEFAULT_CORE_API}/wnba"
    GLEAGUE_SITE_API: str = f"{DEFAULT_SITE_API}/nba-development"
    GLEAGUE_COMMON_API: str = f"{DEFAULT_COMMON_API}/nba-development"
    GLEAGUE_CORE_API: str = f"{DEFAULT_CORE_API}/nba-development"
    HTTP_TIMEOUT_SECONDS: float = 30.0

    # Scheduler
    SCHEDULER_TIMEZONE: str = "UTC"
    SCHEDULER_JOBSTORE_URL: Optional[str] = None  # e.g. the DATABASE_URL for durable jobs
    GAME_QUEUE_ENABLED: bool = False

    # Backfill pacing
    BACKFILL_GAME_DELAY_SECONDS: float = 3.0


@dataclass(frozen=True)
class PollingPolicy:
    """
    Timing constants for the per-game polling state machine.

    first_check_offset: delay from scheduled tip-off to the first status check
    pregame_interval: recheck cadence while the game has not started
    live_interval: recheck cadence while the game is live
    failure_retry: recheck delay after a failed summary fetch
    anomaly_recheck: recheck delay after an untrusted score payload
    max_checks: check-count cap shared by every reschedule branch
    throttle_window: minimum gap between two fetches of the same game
    sync_lease: how long one sync may hold a game before the claim expires
    busy_retry: recheck delay when another sync holds the game
    """
    first_check_offset: timedelta = timedelta(hours=2, minutes=15)
    pregame_interval: timedelta = timedelta(minutes=30)
    live_interval: timedelta = timedelta(minutes=15)
    failure_retry: timedelta = timedelta(minutes=15)
    anomaly_recheck: timedelta = timedelta(minutes=2)
    max_checks: int = 24
    throttle_window: timedelta = timedelta(seconds=15)
    sync_lease: timedelta = timedelta(seconds=90)
    busy_retry: timedelta = timedelta(minutes=1)


DEFAULT_POLLING_POLICY = PollingPolicy()

settings = Settings()
