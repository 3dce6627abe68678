"""
On-demand game sync for the inbound HTTP triggers.

Unlike the poller this never reschedules and never raises: every outcome is
returned as a status dict. A known game is claimed through its sync lease
before the fetch, and the claim also fails inside the throttle window, so a
burst of concurrent page views costs one provider call and never overlaps a
poller check.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, Optional

from courtside.core.config import DEFAULT_POLLING_POLICY, PollingPolicy
from courtside.core.leagues import LeagueConfig
from courtside.models import GameEvent, LIVE_STATUSES, STATUS_COMPLETED, STATUS_SCHEDULED
from courtside.repositories import EntityStore
from courtside.services.aggregation import AggregationService
from courtside.services.box_score_parser import parse_summary_header
from courtside.services.box_score_sync import BoxScoreSyncService
from courtside.services.discovery import upsert_snapshot_game, upsert_snapshot_teams
from courtside.services.game_status_poller import SOURCE_LIVE_SYNC
from courtside.services.provider_client import ProviderClient, ProviderFetchError
from courtside.services.rankings import RankingService
from courtside.utils.timezone import current_season, format_game_date, utc_now

logger = logging.getLogger(__name__)

# How long after tip-off a still-"scheduled" game is worth checking
LIKELY_LIVE_WINDOW = timedelta(hours=4)

SYNC_SYNCED = "synced"
SYNC_THROTTLED = "throttled"
SYNC_FAILED = "failed"
SYNC_SKIPPED = "skipped"


@dataclass
class ViewGame:
    """A game as the caller currently displays it."""
    external_id: str
    status: Optional[str] = None
    scheduled_start: Optional[datetime] = None


def is_throttled(last_fetched_at: Optional[datetime], now: datetime, window: timedelta) -> bool:
    return last_fetched_at is not None and now - last_fetched_at < window


def is_likely_live(status: Optional[str], scheduled_start: Optional[datetime], now: datetime) -> bool:
    """Live sub-state, or scheduled with now inside [start, start + 4h]."""
    if status in LIVE_STATUSES:
        return True
    if status == STATUS_SCHEDULED and scheduled_start is not None:
        return scheduled_start <= now <= scheduled_start + LIKELY_LIVE_WINDOW
    return False


class LiveSyncService:
    """
    Sync games right now instead of waiting for the next scheduled check.

    Usage:
        service = LiveSyncService(store, client, leagues["nba"])
        result = await service.sync_game("401585001")
    """

    def __init__(
        self,
        store: EntityStore,
        client: ProviderClient,
        league: LeagueConfig,
        policy: PollingPolicy = DEFAULT_POLLING_POLICY,
        now_fn: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.client = client
        self.league = league
        self.policy = policy
        self.now_fn = now_fn
        self.box_scores = BoxScoreSyncService(store, league)
        self.aggregation = AggregationService(store)
        self.rankings = RankingService(store)

    async def sync_game(self, external_game_id: str) -> Dict[str, Any]:
        """
        Fetch and store one game's current state.

        Returns:
            {"status": "synced" | "throttled" | "failed" | "skipped", ...}
        """
        now = self.now_fn()
        existing = self.store.get_game(self.league.key, external_game_id)
        if existing is None:
            return await self._sync(external_game_id, None, now)

        game_event_id = existing.id
        acquired = self.store.try_acquire_sync_lock(
            game_event_id, now, self.policy.sync_lease, self.policy.throttle_window,
        )
        if not acquired:
            logger.debug(f"{self.league.log_prefix} Game {external_game_id} fetched recently or syncing, throttled")
            return {"status": SYNC_THROTTLED, "game_id": external_game_id}
        try:
            return await self._sync(external_game_id, self.store.get_game_by_id(game_event_id), now)
        finally:
            self.store.release_sync_lock(game_event_id)

    async def _sync(self, external_game_id: str, existing: Optional[GameEvent], now: datetime) -> Dict[str, Any]:
        prefix = self.league.log_prefix
        try:
            summary = await self.client.get_summary(external_game_id)
        except ProviderFetchError as e:
            logger.warning(f"{prefix} On-demand fetch failed for game {external_game_id}: {e}")
            return {"status": SYNC_FAILED, "game_id": external_game_id, "error": str(e)}

        snapshot = parse_summary_header(summary, external_game_id)
        if snapshot.home is None or snapshot.away is None:
            return {"status": SYNC_SKIPPED, "game_id": external_game_id, "error": "summary has no competitors"}

        previous_status = existing.status if existing is not None else None
        try:
            season = existing.season if existing is not None else current_season(self.league, now)
            if existing is not None:
                game_date = existing.game_date
            else:
                game_date = format_game_date(snapshot.scheduled_start or now, self.league.date_timezone)

            home, away = upsert_snapshot_teams(self.store, self.league, snapshot, season)
            game = upsert_snapshot_game(
                self.store, self.league, snapshot, season, game_date, home, away,
                extra={"last_fetched_at": now}, source=SOURCE_LIVE_SYNC,
            )
            self.store.commit()

            box = self.box_scores.sync(game, summary, snapshot)
            self.store.commit()

            became_final = game.status == STATUS_COMPLETED and previous_status != STATUS_COMPLETED
            if became_final:
                self.aggregation.recalculate_game_participants(game)
                self.rankings.update_league_rankings(self.league.key, season)
                self.store.commit()
        except Exception as e:
            self.store.rollback()
            logger.error(f"{prefix} ❌ On-demand sync failed for game {external_game_id}: {e}", exc_info=True)
            return {"status": SYNC_FAILED, "game_id": external_game_id, "error": str(e)}

        return {
            "status": SYNC_SYNCED,
            "game_id": external_game_id,
            "game_status": game.status,
            "home_score": game.home_score,
            "away_score": game.away_score,
            "box_score_synced": not box.skipped,
            "aggregated": became_final,
        }

    async def sync_games_for_view(self, games: Iterable[ViewGame]) -> Dict[str, int]:
        """
        Sync the likely-live games among those a caller is showing.

        Status and start time fall back to the stored GameEvent when the
        caller does not send them.

        Returns:
            Counts: requested, candidates, synced, throttled, failed
        """
        now = self.now_fn()
        counts = {"requested": 0, "candidates": 0, "synced": 0, "throttled": 0, "failed": 0}

        for view in games:
            counts["requested"] += 1
            stored: Optional[GameEvent] = self.store.get_game(self.league.key, view.external_id)
            status = view.status or (stored.status if stored is not None else None)
            start = view.scheduled_start or (stored.scheduled_start if stored is not None else None)
            if not is_likely_live(status, start, now):
                continue

            counts["candidates"] += 1
            result = await self.sync_game(view.external_id)
            if result["status"] == SYNC_SYNCED:
                counts["synced"] += 1
            elif result["status"] == SYNC_THROTTLED:
                counts["throttled"] += 1
            else:
                counts["failed"] += 1

        logger.info(f"{self.league.log_prefix} View sync: {counts}")
        return counts
