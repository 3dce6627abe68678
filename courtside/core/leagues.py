"""
League configuration for the ingestion pipeline.

One parameterized pipeline serves every league. Everything that differs
between leagues lives here as data (API base URLs, calendar) or as a small
strategy object (standings payload format), so discovery, polling and
backfill code never branch on the league key.

Leagues Supported:
- nba (National Basketball Association)
- wnba (Women's National Basketball Association)
- gleague (NBA G League; flat standings payload, UTC game dates)
"""
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Dict, List, Optional

from courtside.core.config import Settings, settings


@dataclass
class StandingsRecord:
    """Standings fields merged into a Team row during discovery."""
    conference: Optional[str] = None
    conference_rank: Optional[int] = None
    wins: int = 0
    losses: int = 0
    win_pct: Optional[float] = None
    streak: Optional[str] = None
    home_record: Optional[str] = None
    away_record: Optional[str] = None
    games_back: Optional[str] = None
    last10: Optional[str] = None
    division_record: Optional[str] = None
    conference_record: Optional[str] = None
    points_for: Optional[float] = None
    points_against: Optional[float] = None
    team: Dict[str, Any] = field(default_factory=dict)  # raw provider team object

    def as_team_fields(self) -> Dict[str, Any]:
        return {
            "conference": self.conference,
            "conference_rank": self.conference_rank,
            "wins": self.wins,
            "losses": self.losses,
            "win_pct": self.win_pct,
            "streak": self.streak,
            "home_record": self.home_record,
            "away_record": self.away_record,
            "games_back": self.games_back,
            "last10": self.last10,
            "division_record": self.division_record,
            "conference_record": self.conference_record,
            "points_for": self.points_for,
            "points_against": self.points_against,
        }


def _stat_value(stats: List[Dict[str, Any]], name: str) -> float:
    for stat in stats:
        if stat.get("name") == name:
            value = stat.get("value")
            if isinstance(value, (int, float)):
                return float(value)
            return 0.0
    return 0.0


def _stat_display(stats: List[Dict[str, Any]], name: str) -> str:
    for stat in stats:
        if stat.get("name") == name:
            return stat.get("displayValue") or ""
    return ""


def standings_record_from_entry(entry: Dict[str, Any], conference: str) -> StandingsRecord:
    """Build a StandingsRecord from one provider standings entry."""
    stats = entry.get("stats") or []
    return StandingsRecord(
        team=entry.get("team") or {},
        conference=conference,
        conference_rank=int(_stat_value(stats, "playoffSeed")),
        wins=int(_stat_value(stats, "wins")),
        losses=int(_stat_value(stats, "losses")),
        win_pct=_stat_value(stats, "winPercent"),
        streak=_stat_display(stats, "streak"),
        home_record=_stat_display(stats, "Home"),
        away_record=_stat_display(stats, "Road"),
        games_back=str(_stat_value(stats, "gamesBehind")),
        last10=_stat_display(stats, "Last Ten Games"),
        division_record=_stat_display(stats, "vs. Div."),
        conference_record=_stat_display(stats, "vs. Conf."),
        points_for=_stat_value(stats, "avgPointsFor"),
        points_against=_stat_value(stats, "avgPointsAgainst"),
    )


class StandingsStrategy:
    """Turns a standings payload into {external team id: StandingsRecord}."""

    def parse(self, payload: Optional[Dict[str, Any]]) -> Dict[str, StandingsRecord]:
        raise NotImplementedError


class ConferenceStandingsStrategy(StandingsStrategy):
    """Standings grouped by conference: children[].standings.entries[]."""

    def parse(self, payload: Optional[Dict[str, Any]]) -> Dict[str, StandingsRecord]:
        records: Dict[str, StandingsRecord] = {}
        for group in (payload or {}).get("children") or []:
            conference = group.get("name") or ""
            for entry in (group.get("standings") or {}).get("entries") or []:
                team_id = (entry.get("team") or {}).get("id")
                if team_id:
                    records[str(team_id)] = standings_record_from_entry(entry, conference)
        return records


class FlatStandingsStrategy(ConferenceStandingsStrategy):
    """
    Single ungrouped table: standings.entries[] at the top level.

    The conference name comes from the entry's group note when the provider
    includes one. Payloads that turn out to be grouped are handed to the
    conference parser.
    """

    def parse(self, payload: Optional[Dict[str, Any]]) -> Dict[str, StandingsRecord]:
        payload = payload or {}
        entries = (payload.get("standings") or {}).get("entries")
        if not entries:
            return super().parse(payload)

        records: Dict[str, StandingsRecord] = {}
        for entry in entries:
            team_id = (entry.get("team") or {}).get("id")
            if not team_id:
                continue
            conference = (entry.get("note") or {}).get("description") or ""
            records[str(team_id)] = standings_record_from_entry(entry, conference)
        return records


@dataclass(frozen=True)
class LeagueConfig:
    """Complete configuration for one league."""
    key: str
    label: str
    site_api: str
    common_api: str
    core_api: str
    date_timezone: str
    season_start: str  # MMDD of the first regular-season date
    season_end: str  # MMDD of the last regular-season date
    season_end_next_year: bool  # True when the season crosses New Year
    standings_strategy: StandingsStrategy = field(default_factory=ConferenceStandingsStrategy)

    @property
    def standings_url(self) -> str:
        return self.site_api.replace("/site/v2/", "/v2/") + "/standings"

    @property
    def log_prefix(self) -> str:
        return f"[{self.label}]"


LEAGUE_KEYS = ("nba", "wnba", "gleague")


def build_league_registry(app_settings: Settings) -> Dict[str, LeagueConfig]:
    """Build the league registry once from settings."""
    return {
        "nba": LeagueConfig(
            key="nba",
            label="NBA",
            site_api=app_settings.NBA_SITE_API,
            common_api=app_settings.NBA_COMMON_API,
            core_api=app_settings.NBA_CORE_API,
            date_timezone="America/New_York",
            season_start="1022",
            season_end="0420",
            season_end_next_year=True,
        ),
        "wnba": LeagueConfig(
            key="wnba",
            label="WNBA",
            site_api=app_settings.WNBA_SITE_API,
            common_api=app_settings.WNBA_COMMON_API,
            core_api=app_settings.WNBA_CORE_API,
            date_timezone="America/New_York",
            season_start="0516",
            season_end="0915",
            season_end_next_year=False,
        ),
        "gleague": LeagueConfig(
            key="gleague",
            label="GLEAGUE",
            site_api=app_settings.GLEAGUE_SITE_API,
            common_api=app_settings.GLEAGUE_COMMON_API,
            core_api=app_settings.GLEAGUE_CORE_API,
            date_timezone="UTC",
            season_start="1101",
            season_end="0405",
            season_end_next_year=True,
            standings_strategy=FlatStandingsStrategy(),
        ),
    }


@lru_cache(maxsize=1)
def get_league_registry() -> Dict[str, LeagueConfig]:
    """Process-wide registry built from the global settings."""
    return build_league_registry(settings)


def get_league(key: str) -> LeagueConfig:
    """
    Look up a league by key.

    Raises:
        KeyError: unknown league key
    """
    return get_league_registry()[key]
