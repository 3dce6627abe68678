"""
League rankings for every tracked team statistic.

Only teams with a positive offensive rating (they have played) are ranked.
Core stats rank every such team; optional stats rank only the teams where
the value is present and positive, and everyone else gets no rank. A rank
of None means insufficient data, never "last".
"""
import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from courtside.models import Team
from courtside.repositories import EntityStore

logger = logging.getLogger(__name__)


def _has(value: Optional[float]) -> bool:
    return value is not None and value > 0


@dataclass(frozen=True)
class RankedStat:
    rank_column: str
    value_column: str
    ascending: bool = False  # lower is better
    is_present: Optional[Callable[[Team], bool]] = None  # None: every valid team


RANKED_STATS: List[RankedStat] = [
    RankedStat("rank_ppg", "points_for"),
    RankedStat("rank_opp_ppg", "points_against", ascending=True),
    RankedStat("rank_margin", "margin", is_present=lambda t: t.margin is not None),
    RankedStat("rank_pace", "pace"),
    RankedStat("rank_ortg", "offensive_rating"),
    RankedStat("rank_drtg", "defensive_rating", ascending=True),
    RankedStat("rank_net_rtg", "net_rating"),
    RankedStat("rank_fg_pct", "fg_pct", is_present=lambda t: _has(t.fg_pct)),
    RankedStat("rank_three_pct", "three_pct", is_present=lambda t: _has(t.three_pct)),
    RankedStat("rank_ft_pct", "ft_pct", is_present=lambda t: _has(t.ft_pct)),
    RankedStat("rank_efg_pct", "efg_pct", is_present=lambda t: _has(t.efg_pct)),
    RankedStat("rank_ts_pct", "ts_pct", is_present=lambda t: _has(t.ts_pct)),
    RankedStat("rank_rpg", "rpg", is_present=lambda t: _has(t.rpg)),
    RankedStat("rank_orpg", "orpg", is_present=lambda t: _has(t.orpg)),
    RankedStat("rank_drpg", "drpg", is_present=lambda t: _has(t.drpg)),
    RankedStat("rank_apg", "apg", is_present=lambda t: _has(t.apg)),
    RankedStat("rank_tov", "tov_pg", ascending=True, is_present=lambda t: _has(t.tov_pg)),
    RankedStat("rank_ast_to_ratio", "ast_to_ratio", is_present=lambda t: _has(t.apg) and _has(t.tov_pg)),
    RankedStat("rank_spg", "spg", is_present=lambda t: _has(t.spg)),
    RankedStat("rank_bpg", "bpg", is_present=lambda t: _has(t.bpg)),
]

RANK_COLUMNS = [stat.rank_column for stat in RANKED_STATS]


def compute_rankings(teams: List[Team]) -> Dict[str, Dict[str, Optional[int]]]:
    """
    Rank every team on every stat.

    Ties keep external id order, so repeated runs give identical ranks.

    Returns:
        {team id: {rank column: rank or None}} for every team passed in
    """
    valid = sorted(
        (t for t in teams if (t.offensive_rating or 0) > 0),
        key=lambda t: t.external_id,
    )
    ranks: Dict[str, Dict[str, Optional[int]]] = {
        t.id: {column: None for column in RANK_COLUMNS} for t in teams
    }

    for stat in RANKED_STATS:
        candidates = [t for t in valid if stat.is_present is None or stat.is_present(t)]
        ordered = sorted(
            candidates,
            key=lambda t: getattr(t, stat.value_column) or 0,
            reverse=not stat.ascending,
        )
        for position, team in enumerate(ordered, start=1):
            ranks[team.id][stat.rank_column] = position

    return ranks


class RankingService:
    """Writes league ranks for one season."""

    def __init__(self, store: EntityStore):
        self.store = store

    def update_league_rankings(self, league: str, season: str) -> int:
        """
        Recompute and persist every team's ranks for a season.

        Returns:
            Number of teams that received ranks
        """
        teams = self.store.teams_for_season(league, season)
        ranks = compute_rankings(teams)

        ranked = 0
        for team in teams:
            team_ranks = ranks[team.id]
            if team_ranks["rank_ppg"] is not None:
                ranked += 1
            self.store.teams.patch(team, team_ranks)

        self.store.db.flush()
        logger.info(f"Updated {league} {season} rankings for {ranked} of {len(teams)} teams")
        return ranked
