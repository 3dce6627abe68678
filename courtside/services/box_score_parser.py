"""
Parsers for score-provider payloads.

Every function here is pure and tolerant: missing or renamed fields degrade
to zero/None instead of raising, because the provider omits blocks freely
(a game header exists long before its box score does).

Payload shapes consumed:
- summary:    header.competitions[0].{status.type.{state,detail}, competitors[], venue, date}
              boxscore.teams[].{team.id, statistics[{name, displayValue}]}
              boxscore.players[].{team.id, statistics[0].{names[], athletes[]}}
- scoreboard: events[].{id, status.type, competitions[0].{startDate, venue, competitors[]}}
- roster:     positionGroups[].{type, athletes[]}
- team stats: results.stats.categories[].stats[{name, value}]
- core stats: splits.categories[].stats[{name, value}]
"""
import math
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from courtside.models import (
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    STATUS_END_OF_PERIOD,
    STATUS_HALFTIME,
    STATUS_IN_PROGRESS,
    STATUS_OVERTIME,
    STATUS_POSTPONED,
    STATUS_SCHEDULED,
)
from courtside.utils.timezone import parse_provider_datetime

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")
_LEADING_FLOAT = re.compile(r"^\s*([+-]?(?:\d+\.?\d*|\.\d+))")

# Raw provider states the poller branches on
STATE_PRE = "pre"
STATE_IN = "in"
STATE_POST = "post"
STATE_POSTPONED = "postponed"
STATE_CANCELLED = "cancelled"
STATE_UNKNOWN = "unknown"


# ============================================================================
# PRIMITIVES
# ============================================================================

def parse_int(value: Any) -> int:
    """Leading integer of a string, 0 when there is none ("12:30" -> 12)."""
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return int(value)
    match = _LEADING_INT.match(value or "") if isinstance(value, str) else None
    return int(match.group(1)) if match else 0


def parse_float(value: Any) -> float:
    """Leading decimal of a string, 0.0 when there is none ("32:15" -> 32.0)."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    match = _LEADING_FLOAT.match(value or "") if isinstance(value, str) else None
    return float(match.group(1)) if match else 0.0


def parse_split(value: Optional[str]) -> Tuple[int, int]:
    """
    Parse a combined "made-attempted" string.

    Examples:
        >>> parse_split("38-85")
        (38, 85)
        >>> parse_split("--")
        (0, 0)
        >>> parse_split("42")
        (0, 0)
    """
    if not value or "-" not in value:
        return 0, 0
    made, _, attempted = value.partition("-")
    return parse_int(made), parse_int(attempted)


def parse_score(raw: Any) -> Optional[int]:
    """Competitor score as int, None when absent or unparseable."""
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        return int(raw)
    match = _LEADING_INT.match(str(raw))
    return int(match.group(1)) if match else None


def _find_stat(stats: Optional[List[Dict[str, Any]]], name: str) -> Optional[Dict[str, Any]]:
    for stat in stats or []:
        if stat.get("name") == name:
            return stat
    return None


def parse_stat_value(stats: Optional[List[Dict[str, Any]]], name: str) -> float:
    """
    Numeric value of a named team statistic.

    Combined "made-attempted" values yield the made part.
    """
    stat = _find_stat(stats, name)
    if stat is None:
        return 0.0
    display = str(stat.get("displayValue") or "")
    # A leading sign is a negative number, not a split
    if "-" in display[1:]:
        return float(parse_split(display)[0])
    return parse_float(display)


def parse_stat_parts(stats: Optional[List[Dict[str, Any]]], name: str) -> Tuple[int, int]:
    stat = _find_stat(stats, name)
    if stat is None:
        return 0, 0
    return parse_split(str(stat.get("displayValue") or ""))


# ============================================================================
# STATUS CLASSIFICATION
# ============================================================================

def classify_provider_state(state: Optional[str]) -> str:
    """Normalize the raw provider state to one of the STATE_* values."""
    if state in (STATE_PRE, STATE_IN, STATE_POST, STATE_POSTPONED, STATE_CANCELLED):
        return state
    return STATE_UNKNOWN


def map_provider_status(state: Optional[str], detail: Optional[str] = None) -> str:
    """
    Map the provider's (state, detail) pair to a lifecycle status.

    Examples:
        >>> map_provider_status("in", "Halftime")
        'halftime'
        >>> map_provider_status("in", "End of 3rd Quarter")
        'end_of_period'
        >>> map_provider_status("in", "2:31 - 1st OT")
        'overtime'
        >>> map_provider_status(None)
        'scheduled'
    """
    if state == STATE_PRE:
        return STATUS_SCHEDULED
    if state == STATE_IN:
        detail_lower = (detail or "").lower()
        if "halftime" in detail_lower:
            return STATUS_HALFTIME
        if "end of" in detail_lower:
            return STATUS_END_OF_PERIOD
        if "overtime" in detail_lower or " ot" in detail_lower:
            return STATUS_OVERTIME
        return STATUS_IN_PROGRESS
    if state == STATE_POST:
        return STATUS_COMPLETED
    if state == STATE_POSTPONED:
        return STATUS_POSTPONED
    if state == STATE_CANCELLED:
        return STATUS_CANCELLED
    return STATUS_SCHEDULED


# ============================================================================
# BOX SCORES
# ============================================================================

@dataclass
class TeamBoxScore:
    field_goals_made: int = 0
    field_goals_attempted: int = 0
    field_goal_pct: float = 0.0
    three_point_made: int = 0
    three_point_attempted: int = 0
    three_point_pct: float = 0.0
    free_throws_made: int = 0
    free_throws_attempted: int = 0
    free_throw_pct: float = 0.0
    total_rebounds: int = 0
    offensive_rebounds: int = 0
    defensive_rebounds: int = 0
    assists: int = 0
    steals: int = 0
    blocks: int = 0
    turnovers: int = 0
    fouls: int = 0
    points_in_paint: int = 0
    fast_break_points: int = 0
    largest_lead: int = 0

    def as_fields(self) -> Dict[str, Any]:
        return dict(self.__dict__)


@dataclass
class PlayerBoxScore:
    external_id: str
    name: str
    jersey: str = ""
    position: str = ""
    starter: bool = False
    active: bool = False
    minutes: float = 0.0
    points: int = 0
    total_rebounds: int = 0
    offensive_rebounds: int = 0
    defensive_rebounds: int = 0
    assists: int = 0
    steals: int = 0
    blocks: int = 0
    turnovers: int = 0
    fouls: int = 0
    field_goals_made: int = 0
    field_goals_attempted: int = 0
    three_point_made: int = 0
    three_point_attempted: int = 0
    free_throws_made: int = 0
    free_throws_attempted: int = 0
    plus_minus: Optional[int] = None

    def event_fields(self) -> Dict[str, Any]:
        """Columns written to player_events (identity fields excluded)."""
        fields = dict(self.__dict__)
        for key in ("external_id", "name", "jersey", "position"):
            fields.pop(key)
        return fields


def parse_team_box_score(stats: Optional[List[Dict[str, Any]]]) -> TeamBoxScore:
    """Parse boxscore.teams[].statistics into a TeamBoxScore."""
    fg_made, fg_attempted = parse_stat_parts(stats, "fieldGoalsMade-fieldGoalsAttempted")
    three_made, three_attempted = parse_stat_parts(
        stats, "threePointFieldGoalsMade-threePointFieldGoalsAttempted"
    )
    ft_made, ft_attempted = parse_stat_parts(stats, "freeThrowsMade-freeThrowsAttempted")

    turnovers = parse_stat_value(stats, "turnovers") or parse_stat_value(stats, "totalTurnovers")

    return TeamBoxScore(
        field_goals_made=fg_made,
        field_goals_attempted=fg_attempted,
        field_goal_pct=parse_stat_value(stats, "fieldGoalPct"),
        three_point_made=three_made,
        three_point_attempted=three_attempted,
        three_point_pct=parse_stat_value(stats, "threePointFieldGoalPct"),
        free_throws_made=ft_made,
        free_throws_attempted=ft_attempted,
        free_throw_pct=parse_stat_value(stats, "freeThrowPct"),
        total_rebounds=int(parse_stat_value(stats, "totalRebounds")),
        offensive_rebounds=int(parse_stat_value(stats, "offensiveRebounds")),
        defensive_rebounds=int(parse_stat_value(stats, "defensiveRebounds")),
        assists=int(parse_stat_value(stats, "assists")),
        steals=int(parse_stat_value(stats, "steals")),
        blocks=int(parse_stat_value(stats, "blocks")),
        turnovers=int(turnovers),
        fouls=int(parse_stat_value(stats, "fouls")),
        points_in_paint=int(parse_stat_value(stats, "pointsInPaint")),
        fast_break_points=int(parse_stat_value(stats, "fastBreakPoints")),
        largest_lead=int(parse_stat_value(stats, "largestLead")),
    )


def _parse_plus_minus(raw: str) -> Optional[int]:
    if raw in ("", "0"):
        return None
    match = _LEADING_INT.match(raw)
    return int(match.group(1)) if match else None


def parse_player_box_scores(block: Optional[Dict[str, Any]]) -> List[PlayerBoxScore]:
    """
    Parse one team's boxscore.players[] block.

    Columns are looked up by label in statistics[0].names, so a reordered
    or partial column set still parses.
    """
    categories = (block or {}).get("statistics") or []
    if not categories:
        return []

    category = categories[0] or {}
    names = category.get("names") or category.get("labels") or []
    index = {name: i for i, name in enumerate(names)}

    players = []
    for entry in category.get("athletes") or []:
        athlete = entry.get("athlete") or {}
        if not athlete.get("id"):
            continue
        stats = entry.get("stats") or []

        def column(label: str) -> str:
            i = index.get(label)
            if i is None or i >= len(stats) or stats[i] is None:
                return "0"
            return str(stats[i])

        fg_made, fg_attempted = parse_split(column("FG"))
        three_made, three_attempted = parse_split(column("3PT"))
        ft_made, ft_attempted = parse_split(column("FT"))

        players.append(PlayerBoxScore(
            external_id=str(athlete["id"]),
            name=athlete.get("displayName") or "Unknown",
            jersey=athlete.get("jersey") or "",
            position=(athlete.get("position") or {}).get("abbreviation") or "",
            starter=bool(entry.get("starter", False)),
            active=bool(entry.get("active", False)),
            minutes=parse_float(column("MIN")),
            points=parse_int(column("PTS")),
            total_rebounds=parse_int(column("REB")),
            offensive_rebounds=parse_int(column("OREB")),
            defensive_rebounds=parse_int(column("DREB")),
            assists=parse_int(column("AST")),
            steals=parse_int(column("STL")),
            blocks=parse_int(column("BLK")),
            turnovers=parse_int(column("TO")),
            fouls=parse_int(column("PF")),
            field_goals_made=fg_made,
            field_goals_attempted=fg_attempted,
            three_point_made=three_made,
            three_point_attempted=three_attempted,
            free_throws_made=ft_made,
            free_throws_attempted=ft_attempted,
            plus_minus=_parse_plus_minus(column("+/-")),
        ))
    return players


# ============================================================================
# SUMMARY / SCOREBOARD
# ============================================================================

@dataclass
class TeamRef:
    """Team identity as it appears on a competitor entry."""
    external_id: str
    name: str
    abbreviation: str
    location: str
    slug: str

    def identity_fields(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "abbreviation": self.abbreviation,
            "location": self.location,
            "slug": self.slug,
        }


@dataclass
class Competitor:
    team: TeamRef
    home_away: str
    raw_score: Any = None

    @property
    def score(self) -> Optional[int]:
        return parse_score(self.raw_score)


@dataclass
class GameSnapshot:
    """Status, scores and participants of one game at fetch time."""
    external_id: str
    state: Optional[str]
    detail: Optional[str]
    home: Optional[Competitor]
    away: Optional[Competitor]
    scheduled_start: Optional[datetime] = None
    venue: Optional[str] = None

    @property
    def provider_state(self) -> str:
        return classify_provider_state(self.state)

    @property
    def status(self) -> str:
        return map_provider_status(self.state, self.detail)

    @property
    def home_score(self) -> Optional[int]:
        return self.home.score if self.home else None

    @property
    def away_score(self) -> Optional[int]:
        return self.away.score if self.away else None


def parse_team_ref(team: Optional[Dict[str, Any]]) -> TeamRef:
    team = team or {}
    external_id = str(team.get("id") or "")
    return TeamRef(
        external_id=external_id,
        name=team.get("displayName") or team.get("name") or "Unknown",
        abbreviation=team.get("abbreviation") or "???",
        location=team.get("location") or "",
        slug=team.get("slug") or external_id,
    )


def _parse_competitors(competition: Dict[str, Any]) -> Tuple[Optional[Competitor], Optional[Competitor]]:
    home = away = None
    for entry in competition.get("competitors") or []:
        competitor = Competitor(
            team=parse_team_ref(entry.get("team")),
            home_away=entry.get("homeAway") or "",
            raw_score=entry.get("score"),
        )
        if competitor.home_away == "home" and home is None:
            home = competitor
        elif competitor.home_away == "away" and away is None:
            away = competitor
    return home, away


def parse_summary_header(summary: Dict[str, Any], external_id: str) -> GameSnapshot:
    """Build a GameSnapshot from a summary payload's header."""
    competitions = (summary.get("header") or {}).get("competitions") or []
    competition = competitions[0] if competitions else {}
    status_type = (competition.get("status") or {}).get("type") or {}
    home, away = _parse_competitors(competition)
    return GameSnapshot(
        external_id=external_id,
        state=status_type.get("state"),
        detail=status_type.get("detail"),
        home=home,
        away=away,
        scheduled_start=parse_provider_datetime(competition.get("date") or competition.get("startDate")),
        venue=(competition.get("venue") or {}).get("fullName"),
    )


def parse_scoreboard_events(scoreboard: Optional[Dict[str, Any]]) -> List[GameSnapshot]:
    """
    One GameSnapshot per scoreboard event with both competitors present.

    Events missing a competition or a home/away competitor are dropped.
    """
    snapshots = []
    for event in (scoreboard or {}).get("events") or []:
        competitions = event.get("competitions") or []
        if not competitions or not event.get("id"):
            continue
        competition = competitions[0] or {}
        home, away = _parse_competitors(competition)
        if home is None or away is None:
            continue
        status_type = ((event.get("status") or {}).get("type")
                       or (competition.get("status") or {}).get("type") or {})
        snapshots.append(GameSnapshot(
            external_id=str(event["id"]),
            state=status_type.get("state"),
            detail=status_type.get("detail"),
            home=home,
            away=away,
            scheduled_start=parse_provider_datetime(competition.get("startDate") or event.get("date")),
            venue=(competition.get("venue") or {}).get("fullName"),
        ))
    return snapshots


@dataclass
class BoxScoreBlocks:
    """A summary's box-score blocks matched to the header's home/away teams."""
    home_team: Optional[Dict[str, Any]] = None
    away_team: Optional[Dict[str, Any]] = None
    home_players: Optional[Dict[str, Any]] = None
    away_players: Optional[Dict[str, Any]] = None


def match_box_score_blocks(summary: Dict[str, Any], snapshot: GameSnapshot) -> BoxScoreBlocks:
    """Match boxscore.teams/players entries to home/away by team id."""
    boxscore = summary.get("boxscore") or {}
    blocks = BoxScoreBlocks()
    if snapshot.home is None or snapshot.away is None:
        return blocks

    home_id = snapshot.home.team.external_id
    away_id = snapshot.away.team.external_id

    def team_id(entry: Dict[str, Any]) -> str:
        return str((entry.get("team") or {}).get("id") or "")

    for entry in boxscore.get("teams") or []:
        if team_id(entry) == home_id:
            blocks.home_team = entry
        elif team_id(entry) == away_id:
            blocks.away_team = entry

    for entry in boxscore.get("players") or []:
        if team_id(entry) == home_id:
            blocks.home_players = entry
        elif team_id(entry) == away_id:
            blocks.away_players = entry

    return blocks


# ============================================================================
# ROSTER / TEAM STATISTICS
# ============================================================================

@dataclass
class RosterAthlete:
    external_id: str
    name: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    jersey: Optional[str] = None
    position: Optional[str] = None
    headshot: Optional[str] = None
    height: Optional[str] = None
    weight: Optional[str] = None
    age: Optional[int] = None
    experience: Optional[str] = None
    college: Optional[str] = None

    def identity_fields(self) -> Dict[str, Any]:
        fields = dict(self.__dict__)
        fields.pop("external_id")
        return fields


def parse_roster(roster: Optional[Dict[str, Any]]) -> List[RosterAthlete]:
    """Athletes of the "all" position group (or the first group)."""
    groups = (roster or {}).get("positionGroups") or []
    if not groups:
        athletes = (roster or {}).get("athletes") or []
    else:
        chosen = next((g for g in groups if g.get("type") == "all"), groups[0])
        athletes = chosen.get("athletes") or []

    parsed = []
    for athlete in athletes:
        if not athlete.get("id"):
            continue
        years = (athlete.get("experience") or {}).get("years")
        age = athlete.get("age")
        parsed.append(RosterAthlete(
            external_id=str(athlete["id"]),
            name=athlete.get("displayName") or athlete.get("fullName") or "Unknown",
            first_name=athlete.get("firstName"),
            last_name=athlete.get("lastName"),
            jersey=athlete.get("jersey"),
            position=(athlete.get("position") or {}).get("abbreviation"),
            headshot=(athlete.get("headshot") or {}).get("href"),
            height=athlete.get("displayHeight"),
            weight=athlete.get("displayWeight"),
            age=age if isinstance(age, int) else None,
            experience=str(years) if years is not None else None,
            college=(athlete.get("college") or {}).get("name"),
        ))
    return parsed


@dataclass
class TeamSeasonStatistics:
    """Per-game season averages from the team statistics endpoint."""
    values: Dict[str, float] = field(default_factory=dict)

    def get(self, *names: str) -> float:
        for name in names:
            if name in self.values:
                return self.values[name]
        return 0.0

    @property
    def field_goals_attempted(self) -> float:
        return self.get("avgFieldGoalsAttempted", "fieldGoalsAttempted")

    @property
    def free_throws_attempted(self) -> float:
        return self.get("avgFreeThrowsAttempted", "freeThrowsAttempted")

    @property
    def offensive_rebounds(self) -> float:
        return self.get("avgOffensiveRebounds", "offensiveRebounds")

    @property
    def turnovers(self) -> float:
        return self.get("avgTurnovers", "turnovers")


def parse_team_statistics(payload: Optional[Dict[str, Any]]) -> TeamSeasonStatistics:
    """Flatten results.stats.categories[].stats into {name: value}."""
    results = (payload or {}).get("results") or {}
    categories = (results.get("stats") or {}).get("categories") or []
    values: Dict[str, float] = {}
    for category in categories:
        for stat in category.get("stats") or []:
            name = stat.get("name")
            value = stat.get("value")
            if name and isinstance(value, (int, float)) and not isinstance(value, bool):
                values.setdefault(name, float(value))
    return TeamSeasonStatistics(values=values)


# ============================================================================
# ATHLETE SEASON STATISTICS (core API)
# ============================================================================

# Core stat name -> Player column
CORE_PLAYER_STATS: Dict[str, str] = {
    "gamesPlayed": "games_played",
    "gamesStarted": "games_started",
    "avgMinutes": "minutes_per_game",
    "avgPoints": "points_per_game",
    "avgRebounds": "rebounds_per_game",
    "avgAssists": "assists_per_game",
    "avgSteals": "steals_per_game",
    "avgBlocks": "blocks_per_game",
    "avgTurnovers": "turnovers_per_game",
    "fieldGoalPct": "field_goal_pct",
    "threePointPct": "three_point_pct",
    "freeThrowPct": "free_throw_pct",
    "avgOffensiveRebounds": "off_reb_per_game",
    "avgDefensiveRebounds": "def_reb_per_game",
    "fieldGoalsMade": "total_fg_made",
    "fieldGoalsAttempted": "total_fg_attempted",
    "threePointFieldGoalsMade": "total_three_made",
    "threePointFieldGoalsAttempted": "total_three_attempted",
    "freeThrowsMade": "total_ft_made",
    "freeThrowsAttempted": "total_ft_attempted",
}

CORE_INTEGER_COLUMNS = frozenset({
    "games_played",
    "games_started",
    "total_fg_made",
    "total_fg_attempted",
    "total_three_made",
    "total_three_attempted",
    "total_ft_made",
    "total_ft_attempted",
})


def parse_athlete_season_statistics(payload: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Map a core athlete statistics payload onto Player season columns.

    Reads splits.categories[].stats[{name, value}]. The first occurrence of a
    name wins; non-numeric and non-finite values are skipped.

    Args:
        payload: Core API athlete statistics response

    Returns:
        {player column: value}, empty when the athlete has no season line
    """
    categories = ((payload or {}).get("splits") or {}).get("categories") or []
    values: Dict[str, Any] = {}
    for category in categories:
        for stat in category.get("stats") or []:
            column = CORE_PLAYER_STATS.get(stat.get("name"))
            value = stat.get("value")
            if column is None or column in values:
                continue
            if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
                continue
            values[column] = int(round(value)) if column in CORE_INTEGER_COLUMNS else float(value)
    return values
