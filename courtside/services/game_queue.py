"""
Batch polling through the game_queue table.

The queue drives the same status check as the per-game poller, but with
reschedule=False: the queue's own 15-minute processing job sets the cadence,
so a game is never polled by both paths. Queue rows keep their own check
count and give up after MAX_QUEUE_CHECKS.

    pending --(first check due)--> checking --(final/terminal)--> processed
                                           +--(cap/abandon)-----> abandoned
"""
import logging
from datetime import timedelta
from typing import Any, Callable, Dict, Iterable, Optional

from courtside.core.config import DEFAULT_POLLING_POLICY, PollingPolicy
from courtside.core.leagues import LeagueConfig
from courtside.models import (
    GameQueueEntry,
    QUEUE_ABANDONED,
    QUEUE_CHECKING,
    QUEUE_PENDING,
    QUEUE_PROCESSED,
    STATUS_SCHEDULED,
)
from courtside.repositories import EntityStore
from courtside.services.discovery import DiscoveryService
from courtside.services.game_status_poller import (
    GameStatusPoller,
    OUTCOME_ABANDONED,
    OUTCOME_COMPLETED,
    OUTCOME_DEFERRED,
    OUTCOME_MISSING,
    OUTCOME_TERMINATED,
)
from courtside.services.live_sync import is_throttled
from courtside.services.provider_client import ProviderClient
from courtside.utils.timezone import utc_now

logger = logging.getLogger(__name__)

MAX_QUEUE_CHECKS = 12
CLEANUP_AFTER_DAYS = 7


class GameQueueService:
    """
    Populate, process and clean the game queue for a set of leagues.

    Usage:
        service = GameQueueService(store, registry.values())
        await service.populate_todays_games()
        await service.process_ready_games()
    """

    def __init__(
        self,
        store: EntityStore,
        leagues: Iterable[LeagueConfig],
        client_factory: Callable[[LeagueConfig], ProviderClient] = ProviderClient,
        policy: PollingPolicy = DEFAULT_POLLING_POLICY,
        now_fn: Callable[[], Any] = utc_now,
    ):
        self.store = store
        self.leagues = {league.key: league for league in leagues}
        self.client_factory = client_factory
        self.policy = policy
        self.now_fn = now_fn

    async def populate_todays_games(self, date: Optional[str] = None) -> Dict[str, Any]:
        """
        Discover each league's games and queue the scheduled ones.

        Discovery runs without seeding per-game checks; the queue row is the
        game's only polling driver.
        """
        results: Dict[str, Any] = {}
        for key, league in self.leagues.items():
            client = self.client_factory(league)
            try:
                discovery = DiscoveryService(self.store, client, None, league, self.policy)
                summary = await discovery.discover_games(date, schedule_checks=False)
                queued = 0
                for game_id in summary.get("game_ids", []):
                    game = self.store.get_game_by_id(game_id)
                    if game is not None and game.status == STATUS_SCHEDULED:
                        self._enqueue(league, game)
                        queued += 1
                self.store.commit()
                results[key] = {"success": summary["success"], "queued": queued, "error": summary.get("error")}
                logger.info(f"{league.log_prefix} ✅ Queued {queued} games")
            except Exception as e:
                self.store.rollback()
                logger.error(f"{league.log_prefix} ❌ Queue population failed: {e}", exc_info=True)
                results[key] = {"success": False, "queued": 0, "error": str(e)}
            finally:
                await client.close()
        return results

    def _enqueue(self, league: LeagueConfig, game) -> GameQueueEntry:
        existing = self.store.queue.find_entry(league.key, game.external_id)
        fields = {
            "game_event_id": game.id,
            "home_external_id": game.home_team.external_id,
            "away_external_id": game.away_team.external_id,
            "scheduled_start": game.scheduled_start,
            "first_check_time": game.scheduled_start + self.policy.first_check_offset,
        }
        if existing is None:
            fields.update(status=QUEUE_PENDING, check_count=0)
        return self.store.queue.upsert(
            {"league": league.key, "external_game_id": game.external_id}, fields
        )

    async def process_ready_games(self) -> Dict[str, int]:
        """
        Run one status check for every due queue row.

        Returns:
            Counts: ready, processed, checking, abandoned, throttled, errors
        """
        now = self.now_fn()
        ready = [e for e in self.store.queue.find_ready(now) if e.league in self.leagues]
        counts = {"ready": len(ready), "processed": 0, "checking": 0, "abandoned": 0, "throttled": 0, "errors": 0}
        if not ready:
            return counts

        clients: Dict[str, ProviderClient] = {}
        try:
            for entry in ready:
                league = self.leagues[entry.league]
                try:
                    outcome = await self._process_entry(entry, league, clients, now)
                    counts[outcome] += 1
                except Exception as e:
                    self.store.rollback()
                    counts["errors"] += 1
                    logger.error(
                        f"{league.log_prefix} ❌ Queue check failed for game {entry.external_game_id}: {e}",
                        exc_info=True,
                    )
        finally:
            for client in clients.values():
                await client.close()

        logger.info(f"Game queue processed: {counts}")
        return counts

    async def _process_entry(
        self,
        entry: GameQueueEntry,
        league: LeagueConfig,
        clients: Dict[str, ProviderClient],
        now,
    ) -> str:
        game = None
        if entry.game_event_id:
            game = self.store.get_game_by_id(entry.game_event_id)
        if game is None:
            game = self.store.get_game(league.key, entry.external_game_id)
        if game is None:
            return self._finish(entry, QUEUE_ABANDONED, now)

        if is_throttled(game.last_fetched_at, now, self.policy.throttle_window):
            return "throttled"

        if league.key not in clients:
            clients[league.key] = self.client_factory(league)
        poller = GameStatusPoller(
            self.store, clients[league.key], None, league, self.policy, now_fn=self.now_fn,
        )
        result = await poller.check_game(game.id, reschedule=False)
        if result.outcome == OUTCOME_DEFERRED:
            return "throttled"

        if result.outcome in (OUTCOME_COMPLETED, OUTCOME_TERMINATED):
            return self._finish(entry, QUEUE_PROCESSED, now)
        if result.outcome in (OUTCOME_ABANDONED, OUTCOME_MISSING):
            return self._finish(entry, QUEUE_ABANDONED, now)

        check_count = (entry.check_count or 0) + 1
        if check_count >= MAX_QUEUE_CHECKS:
            logger.warning(
                f"{league.log_prefix} Abandoning queued game {entry.external_game_id} "
                f"after {check_count} queue checks"
            )
            self.store.queue.patch(entry, {"check_count": check_count, "last_checked_at": now})
            return self._finish(entry, QUEUE_ABANDONED, now)

        self.store.queue.patch(entry, {
            "status": QUEUE_CHECKING,
            "check_count": check_count,
            "last_checked_at": now,
        })
        self.store.commit()
        return "checking"

    def _finish(self, entry: GameQueueEntry, status: str, now) -> str:
        self.store.queue.patch(entry, {"status": status, "processed_at": now, "last_checked_at": now})
        self.store.commit()
        return "processed" if status == QUEUE_PROCESSED else "abandoned"

    def cleanup_old_entries(self, days: int = CLEANUP_AFTER_DAYS) -> int:
        """Delete processed/abandoned rows older than `days`."""
        cutoff = self.now_fn() - timedelta(days=days)
        deleted = self.store.queue.delete_finished_before(cutoff)
        self.store.commit()
        logger.info(f"Cleaned up {deleted} finished queue entries older than {days} days")
        return deleted
