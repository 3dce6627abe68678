"""
Timezone and season utilities for the ingestion pipeline.

All datetimes are stored as naive UTC. The provider files games under the
US Eastern calendar date (a 10 PM ET tip-off on Feb 9 is 3 AM UTC Feb 10),
so date strings are computed in the league's configured timezone.

Season identifiers:
- Winter leagues (NBA, G League): "2025-26"; January-July belong to the
  season that started the previous calendar year.
- Summer leagues (WNBA): the calendar year, "2025".
"""
from datetime import date, datetime, timedelta, timezone
from typing import List, Optional
from zoneinfo import ZoneInfo

from courtside.core.leagues import LeagueConfig

UTC = timezone.utc

# Month (1-indexed) before which a winter-season date belongs to the prior start year
SEASON_ROLLOVER_MONTH = 8


def utc_now() -> datetime:
    """Current time as naive UTC."""
    return datetime.now(UTC).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


def parse_provider_datetime(raw: Optional[str]) -> Optional[datetime]:
    """
    Parse a provider ISO timestamp into naive UTC.

    Examples:
        >>> parse_provider_datetime("2025-01-10T19:00Z")
        datetime.datetime(2025, 1, 10, 19, 0)
    """
    if not raw:
        return None
    text = raw.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    return to_naive_utc(parsed)


def _local(moment: datetime, tz_name: str) -> datetime:
    aware = moment.replace(tzinfo=UTC) if moment.tzinfo is None else moment
    return aware.astimezone(ZoneInfo(tz_name))


def format_game_date(moment: datetime, tz_name: str = "America/New_York") -> str:
    """Format a UTC moment as the provider's YYYYMMDD date in tz_name."""
    return _local(moment, tz_name).strftime("%Y%m%d")


def league_today(league: LeagueConfig, now: Optional[datetime] = None) -> str:
    """Today's YYYYMMDD date on the league's calendar."""
    return format_game_date(now or utc_now(), league.date_timezone)


def current_season(league: LeagueConfig, now: Optional[datetime] = None) -> str:
    """
    Season identifier for the given moment.

    Examples:
        >>> current_season(nba, datetime(2025, 1, 15))
        '2024-25'
        >>> current_season(nba, datetime(2025, 10, 30))
        '2025-26'
        >>> current_season(wnba, datetime(2025, 6, 1))
        '2025'
    """
    local = _local(now or utc_now(), league.date_timezone)
    if not league.season_end_next_year:
        return str(local.year)

    start_year = local.year - 1 if local.month < SEASON_ROLLOVER_MONTH else local.year
    return f"{start_year}-{str(start_year + 1)[-2:]}"


def season_start_year(season: str) -> int:
    return int(season.split("-")[0])


def core_season_year(league: LeagueConfig, season: str) -> int:
    """
    The provider core API's season year: the year the season ends.

    Examples:
        >>> core_season_year(nba, "2024-25")
        2025
        >>> core_season_year(wnba, "2025")
        2025
    """
    year = season_start_year(season)
    return year + 1 if league.season_end_next_year else year


def season_start_date(league: LeagueConfig, season: str) -> str:
    """First regular-season date (YYYYMMDD) for a season."""
    return f"{season_start_year(season)}{league.season_start}"


def season_end_date(league: LeagueConfig, season: str) -> str:
    """Last regular-season date (YYYYMMDD) for a season."""
    year = season_start_year(season)
    if league.season_end_next_year:
        year += 1
    return f"{year}{league.season_end}"


def _parse_yyyymmdd(value: str) -> date:
    return date(int(value[0:4]), int(value[4:6]), int(value[6:8]))


def date_range(start: str, end: str) -> List[str]:
    """YYYYMMDD strings from start to end, inclusive."""
    current = _parse_yyyymmdd(start)
    last = _parse_yyyymmdd(end)
    dates = []
    while current <= last:
        dates.append(current.strftime("%Y%m%d"))
        current += timedelta(days=1)
    return dates
