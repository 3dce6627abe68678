"""
Score Anomaly Repository: an append-only log of untrusted score payloads.

Usage:
    repo = ScoreAnomalyRepository(db)
    anomalies = repo.find_by_game("nba", "401585001")
"""
from typing import Any, Dict, List

from courtside.models import ScoreAnomaly
from courtside.repositories.base import BaseRepository


class ScoreAnomalyRepository(BaseRepository[ScoreAnomaly]):
    """Repository for score anomaly records."""

    def __init__(self, db):
        super().__init__(ScoreAnomaly, db)

    def record(self, fields: Dict[str, Any]) -> ScoreAnomaly:
        anomaly = ScoreAnomaly(**fields)
        self.db.add(anomaly)
        self.db.flush()
        return anomaly

    def find_by_game(self, league: str, external_game_id: str) -> List[ScoreAnomaly]:
        return self.query().filter(
            ScoreAnomaly.league == league,
            ScoreAnomaly.external_game_id == external_game_id,
        ).order_by(ScoreAnomaly.created_at).all()
