"""
Daily reconciliation of player season lines against the provider's core API.

Season averages are normally derived from synced box scores. Games missed by
the pipeline leave those averages short, so once a day every player of the
season is compared with the provider's own season line and the columns that
differ are patched. Columns that already match are left alone.

An athlete the core API has no line for (HTTP 404 or an empty payload) is
counted as missing, not as an error.
"""
import logging
from typing import Any, Dict, Optional

from courtside.core.leagues import LeagueConfig
from courtside.models import Player
from courtside.repositories import EntityStore
from courtside.services.box_score_parser import parse_athlete_season_statistics
from courtside.services.provider_client import ProviderClient, ProviderFetchError
from courtside.utils.timezone import core_season_year, current_season

logger = logging.getLogger(__name__)


def diff_player_stats(player: Player, values: Dict[str, Any]) -> Dict[str, Any]:
    """Columns of values that differ from what the player row holds."""
    return {
        column: value for column, value in values.items()
        if getattr(player, column) != value
    }


class PlayerStatsReconciliationService:
    """
    Patch player season columns from the core API.

    Usage:
        service = PlayerStatsReconciliationService(store, client, leagues["nba"])
        summary = await service.reconcile_player_stats(limit=50, dry_run=True)
    """

    def __init__(self, store: EntityStore, client: ProviderClient, league: LeagueConfig):
        self.store = store
        self.client = client
        self.league = league

    async def reconcile_player_stats(
        self,
        season: Optional[str] = None,
        limit: Optional[int] = None,
        dry_run: bool = False,
    ) -> Dict[str, Any]:
        """
        Compare every player of a season with the provider's season line.

        Args:
            season: Season label, defaults to the league's current season
            limit: Only reconcile the first N players (by external id)
            dry_run: Count what would change without writing

        Returns:
            Summary dict with scanned/patched/unchanged/missing/errors counts
        """
        prefix = self.league.log_prefix
        season = season or current_season(self.league)
        season_year = core_season_year(self.league, season)

        players = self.store.players_for_season(self.league.key, season)
        if limit is not None:
            players = players[:limit]

        counts = {"scanned": 0, "patched": 0, "unchanged": 0, "missing": 0, "errors": 0}
        logger.info(f"{prefix} Reconciling {len(players)} player season lines for {season} (core {season_year})")

        for player in players:
            counts["scanned"] += 1
            try:
                payload = await self.client.get_athlete_statistics(player.external_id, season_year)
            except ProviderFetchError as e:
                if e.status_code is not None:
                    counts["missing"] += 1
                else:
                    counts["errors"] += 1
                    logger.warning(f"{prefix} Core statistics fetch failed for player {player.external_id}: {e}")
                continue

            values = parse_athlete_season_statistics(payload)
            if not values:
                counts["missing"] += 1
                continue

            changes = diff_player_stats(player, values)
            if not changes:
                counts["unchanged"] += 1
                continue

            counts["patched"] += 1
            if not dry_run:
                self.store.players.patch(player, changes)

        if not dry_run:
            self.store.commit()

        mode = " (dry run)" if dry_run else ""
        logger.info(
            f"{prefix} ✅ Player reconciliation{mode}: {counts['patched']} patched, "
            f"{counts['unchanged']} unchanged, {counts['missing']} missing, {counts['errors']} errors"
        )
        return {
            "success": True,
            "league": self.league.key,
            "season": season,
            "season_year": season_year,
            "dry_run": dry_run,
            **counts,
        }
