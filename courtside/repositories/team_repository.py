"""
Team Repository for season team rows.

Usage:
    repo = TeamRepository(db)
    team = repo.find_by_external_id("nba", "5", "2024-25")
    teams = repo.find_by_season("nba", "2024-25")
"""
from typing import Any, Dict, List, Optional

from courtside.models import Team
from courtside.repositories.base import BaseRepository


class TeamRepository(BaseRepository[Team]):
    """Repository for team data access."""

    def __init__(self, db):
        super().__init__(Team, db)

    def find_by_external_id(self, league: str, external_id: str, season: str) -> Optional[Team]:
        return self.filter_by_first(league=league, external_id=external_id, season=season)

    def find_by_season(self, league: str, season: str) -> List[Team]:
        return self.query().filter(
            Team.league == league,
            Team.season == season,
        ).order_by(Team.external_id).all()

    def upsert_team(self, league: str, external_id: str, season: str, fields: Dict[str, Any]) -> Team:
        return self.upsert(
            {"league": league, "external_id": external_id, "season": season},
            fields,
        )

    def get_or_create(self, league: str, external_id: str, season: str, identity: Dict[str, Any]) -> Team:
        """
        Existing row untouched, or a new row with identity fields and a 0-0 record.

        Used by paths that see a team without standings data so they never
        overwrite what discovery or bootstrap wrote.
        """
        team = self.find_by_external_id(league, external_id, season)
        if team is not None:
            return team
        return self.upsert_team(league, external_id, season, {**identity, "wins": 0, "losses": 0})
