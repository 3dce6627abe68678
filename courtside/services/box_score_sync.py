"""
Box-score sync: write a game summary's box scores to team_events and
player_events.

Team blocks are matched to the header's home/away competitors by team id.
When a block is missing the game is skipped as a whole; the provider
publishes headers long before box scores, so this is routine.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from courtside.core.leagues import LeagueConfig
from courtside.models import GameEvent, STATUS_COMPLETED
from courtside.repositories import EntityStore
from courtside.services.box_score_parser import (
    GameSnapshot,
    match_box_score_blocks,
    parse_player_box_scores,
    parse_summary_header,
    parse_team_box_score,
)
from courtside.services.stats_calculator import compute_team_event_advanced_stats

logger = logging.getLogger(__name__)


@dataclass
class BoxScoreSyncResult:
    teams_synced: int = 0
    players_synced: int = 0
    skipped_reason: Optional[str] = None

    @property
    def skipped(self) -> bool:
        return self.skipped_reason is not None


class BoxScoreSyncService:
    """Upserts TeamEvent/PlayerEvent rows for one game from its summary."""

    def __init__(self, store: EntityStore, league: LeagueConfig):
        self.store = store
        self.league = league

    def sync(
        self,
        game: GameEvent,
        summary: Dict[str, Any],
        snapshot: Optional[GameSnapshot] = None,
    ) -> BoxScoreSyncResult:
        """
        Sync both teams' and all players' box scores for a game.

        Args:
            game: The persisted GameEvent (teams already resolved)
            summary: Raw provider summary payload
            snapshot: Parsed header, parsed from summary when omitted

        Returns:
            BoxScoreSyncResult with counts, or the reason nothing was written
        """
        if snapshot is None:
            snapshot = parse_summary_header(summary, game.external_id)

        boxscore_teams = (summary.get("boxscore") or {}).get("teams") or []
        if len(boxscore_teams) < 2:
            return self._skip(game, "box score not available yet")
        if snapshot.home is None or snapshot.away is None:
            return self._skip(game, "header is missing a competitor")

        home_score = snapshot.home_score
        away_score = snapshot.away_score
        if home_score is None or away_score is None:
            return self._skip(game, "header is missing a score")

        blocks = match_box_score_blocks(summary, snapshot)
        if blocks.home_team is None or blocks.away_team is None:
            return self._skip(game, "team box score does not match header teams")

        result = BoxScoreSyncResult()
        final = game.status == STATUS_COMPLETED
        sides = (
            (game.home_team_id, True, home_score, away_score, blocks.home_team, blocks.home_players),
            (game.away_team_id, False, away_score, home_score, blocks.away_team, blocks.away_players),
        )

        for team_id, is_home, score, opp_score, team_block, player_block in sides:
            self._sync_team(game, team_id, is_home, score, opp_score, team_block, final)
            result.teams_synced += 1
            result.players_synced += self._sync_players(game, team_id, player_block)

        logger.info(
            f"{self.league.log_prefix} Synced box score for game {game.external_id}: "
            f"{result.teams_synced} teams, {result.players_synced} players"
        )
        return result

    def _skip(self, game: GameEvent, reason: str) -> BoxScoreSyncResult:
        logger.info(f"{self.league.log_prefix} Skipping box score for game {game.external_id}: {reason}")
        return BoxScoreSyncResult(skipped_reason=reason)

    def _sync_team(
        self,
        game: GameEvent,
        team_id: str,
        is_home: bool,
        score: int,
        opp_score: int,
        block: Dict[str, Any],
        final: bool,
    ) -> None:
        box = parse_team_box_score(block.get("statistics"))
        advanced = compute_team_event_advanced_stats(
            score=score,
            opp_score=opp_score,
            fga=box.field_goals_attempted,
            fta=box.free_throws_attempted,
            oreb=box.offensive_rebounds,
            tov=box.turnovers,
            fg_made=box.field_goals_made,
            three_made=box.three_point_made,
        ).rounded()

        fields = box.as_fields()
        fields.update(
            is_home=is_home,
            score=score,
            winner=(score > opp_score) if final else None,
            pace=advanced.pace,
            offensive_rating=advanced.offensive_rating,
            defensive_rating=advanced.defensive_rating,
            net_rating=advanced.net_rating,
            efg_pct=advanced.efg_pct,
            ts_pct=advanced.ts_pct,
        )
        self.store.upsert_team_event(game.id, team_id, fields)

    def _sync_players(self, game: GameEvent, team_id: str, block: Optional[Dict[str, Any]]) -> int:
        players = parse_player_box_scores(block)
        for box in players:
            identity = {"team_id": team_id, "name": box.name}
            # Keep roster values when the box score leaves them blank
            if box.jersey:
                identity["jersey"] = box.jersey
            if box.position:
                identity["position"] = box.position

            # Player row first so the event's foreign key resolves
            player = self.store.upsert_player(self.league.key, box.external_id, game.season, identity)
            self.store.upsert_player_event(
                game.id,
                player.id,
                {"team_id": team_id, **box.event_fields()},
            )
        return len(players)
