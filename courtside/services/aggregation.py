"""
Season-average aggregation for teams and players.

Every run is a full recompute from the entity's event rows: all derived
fields are overwritten, never merged, so re-running after a partial failure
converges on the same values.

Team ratings use an opponent-points estimate rebuilt from each event's
stored defensive rating and pace (oppPoints ~= DRtg / 100 * pace); opponent
scores are not stored on team_events.
"""
import logging
from typing import Any, Dict, Iterable, Optional

from courtside.models import GameEvent, Player, PlayerEvent, Team, TeamEvent
from courtside.repositories import EntityStore
from courtside.services.stats_calculator import (
    calculate_efg_pct,
    calculate_pct,
    calculate_ts_pct,
    round_stat,
)

logger = logging.getLogger(__name__)


def compute_team_averages(events: Iterable[TeamEvent]) -> Optional[Dict[str, Any]]:
    """
    Team season averages from its TeamEvent rows.

    Returns:
        Column values for the teams table, or None when there are no events
    """
    events = list(events)
    if not events:
        return None

    games = len(events)
    totals = {
        "fg_made": 0, "fg_attempted": 0,
        "three_made": 0, "three_attempted": 0,
        "ft_made": 0, "ft_attempted": 0,
        "rebounds": 0, "oreb": 0, "dreb": 0,
        "assists": 0, "turnovers": 0, "steals": 0, "blocks": 0,
        "points": 0,
    }
    total_opp_points = 0.0
    total_pace = 0.0

    for e in events:
        totals["fg_made"] += e.field_goals_made
        totals["fg_attempted"] += e.field_goals_attempted
        totals["three_made"] += e.three_point_made
        totals["three_attempted"] += e.three_point_attempted
        totals["ft_made"] += e.free_throws_made
        totals["ft_attempted"] += e.free_throws_attempted
        totals["rebounds"] += e.total_rebounds
        totals["oreb"] += e.offensive_rebounds
        totals["dreb"] += e.defensive_rebounds
        totals["assists"] += e.assists
        totals["turnovers"] += e.turnovers
        totals["steals"] += e.steals
        totals["blocks"] += e.blocks
        totals["points"] += e.score
        total_pace += e.pace or 0.0
        if e.defensive_rating and e.pace:
            total_opp_points += e.defensive_rating / 100 * e.pace

    ppg = round_stat(totals["points"] / games)
    opp_ppg = round_stat(total_opp_points / games)
    pace = round_stat(total_pace / games)
    ortg = round_stat(ppg / pace * 100) if pace > 0 else 0.0
    drtg = round_stat(opp_ppg / pace * 100) if pace > 0 else 0.0

    ast_to_ratio = 0.0
    if totals["turnovers"] > 0:
        ast_to_ratio = round_stat(totals["assists"] / totals["turnovers"], 2)

    return {
        "points_for": ppg,
        "points_against": opp_ppg,
        "margin": round_stat(ppg - opp_ppg),
        "pace": pace,
        "offensive_rating": ortg,
        "defensive_rating": drtg,
        "net_rating": round_stat(ortg - drtg),
        "fg_pct": round_stat(calculate_pct(totals["fg_made"], totals["fg_attempted"])),
        "three_pct": round_stat(calculate_pct(totals["three_made"], totals["three_attempted"])),
        "ft_pct": round_stat(calculate_pct(totals["ft_made"], totals["ft_attempted"])),
        "efg_pct": round_stat(calculate_efg_pct(totals["fg_made"], totals["three_made"], totals["fg_attempted"])),
        "ts_pct": round_stat(calculate_ts_pct(totals["points"], totals["fg_attempted"], totals["ft_attempted"])),
        "rpg": round_stat(totals["rebounds"] / games),
        "orpg": round_stat(totals["oreb"] / games),
        "drpg": round_stat(totals["dreb"] / games),
        "apg": round_stat(totals["assists"] / games),
        "tov_pg": round_stat(totals["turnovers"] / games),
        "ast_to_ratio": ast_to_ratio,
        "spg": round_stat(totals["steals"] / games),
        "bpg": round_stat(totals["blocks"] / games),
        "total_fg_made": totals["fg_made"],
        "total_fg_attempted": totals["fg_attempted"],
        "total_three_made": totals["three_made"],
        "total_three_attempted": totals["three_attempted"],
        "total_ft_made": totals["ft_made"],
        "total_ft_attempted": totals["ft_attempted"],
    }


def compute_player_averages(events: Iterable[PlayerEvent]) -> Optional[Dict[str, Any]]:
    """
    Player season averages over games actually played (active, minutes > 0).

    Returns:
        Column values for the players table, or None when the player has
        not appeared in a game
    """
    played = [e for e in events if e.active and (e.minutes or 0) > 0]
    if not played:
        return None

    games = len(played)

    def total(attr: str) -> float:
        return sum(getattr(e, attr) or 0 for e in played)

    fg_made, fg_attempted = int(total("field_goals_made")), int(total("field_goals_attempted"))
    three_made, three_attempted = int(total("three_point_made")), int(total("three_point_attempted"))
    ft_made, ft_attempted = int(total("free_throws_made")), int(total("free_throws_attempted"))

    return {
        "games_played": games,
        "games_started": sum(1 for e in played if e.starter),
        "minutes_per_game": round_stat(total("minutes") / games),
        "points_per_game": round_stat(total("points") / games),
        "rebounds_per_game": round_stat(total("total_rebounds") / games),
        "assists_per_game": round_stat(total("assists") / games),
        "steals_per_game": round_stat(total("steals") / games),
        "blocks_per_game": round_stat(total("blocks") / games),
        "turnovers_per_game": round_stat(total("turnovers") / games),
        "field_goal_pct": round_stat(calculate_pct(fg_made, fg_attempted)),
        "three_point_pct": round_stat(calculate_pct(three_made, three_attempted)),
        "free_throw_pct": round_stat(calculate_pct(ft_made, ft_attempted)),
        "off_reb_per_game": round_stat(total("offensive_rebounds") / games),
        "def_reb_per_game": round_stat(total("defensive_rebounds") / games),
        "total_fg_made": fg_made,
        "total_fg_attempted": fg_attempted,
        "total_three_made": three_made,
        "total_three_attempted": three_attempted,
        "total_ft_made": ft_made,
        "total_ft_attempted": ft_attempted,
    }


class AggregationService:
    """Recomputes season averages and writes them back through the store."""

    def __init__(self, store: EntityStore):
        self.store = store

    def recalculate_team(self, team: Team) -> Optional[Dict[str, Any]]:
        averages = compute_team_averages(self.store.team_events_for_team(team.id))
        if averages is None:
            logger.debug(f"No team events for {team.league} team {team.external_id}, skipping")
            return None
        self.store.teams.patch(team, averages)
        return averages

    def recalculate_player(self, player: Player) -> Optional[Dict[str, Any]]:
        averages = compute_player_averages(self.store.player_events_for_player(player.id))
        if averages is None:
            return None
        self.store.players.patch(player, averages)
        return averages

    def recalculate_game_participants(self, game: GameEvent) -> Dict[str, int]:
        """
        Recompute both teams of a game and every player who appeared in it.

        Returns:
            {"teams": n, "players": n} recomputed
        """
        teams = 0
        for team_id in (game.home_team_id, game.away_team_id):
            team = self.store.teams.find_by_id(team_id)
            if team is not None and self.recalculate_team(team) is not None:
                teams += 1

        players = 0
        for player in self.store.players_for_game(game.id):
            if self.recalculate_player(player) is not None:
                players += 1

        self.store.db.flush()
        logger.info(
            f"Recalculated averages for game {game.league}:{game.external_id}: "
            f"{teams} teams, {players} players"
        )
        return {"teams": teams, "players": players}

    def recalculate_season(self, league: str, season: str) -> Dict[str, int]:
        """Recompute every team, then every player, of a season."""
        teams = sum(
            1 for team in self.store.teams_for_season(league, season)
            if self.recalculate_team(team) is not None
        )
        players = sum(
            1 for player in self.store.players_for_season(league, season)
            if self.recalculate_player(player) is not None
        )
        self.store.db.flush()
        return {"teams": teams, "players": players}


