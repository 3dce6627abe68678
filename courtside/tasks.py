"""
Units of work dispatched by the scheduler.

Jobs reference these by text ("courtside.tasks:check_game_status"), so the
signatures here are part of the persisted job format: keyword arguments
only, plain JSON-compatible values.

Each task owns its database session and provider client, contains its own
failures, and returns a summary dict. Nothing raises into the scheduler.
"""
import logging
from typing import Any, Dict, Optional

from courtside.core.database import SessionLocal
from courtside.core.leagues import LeagueConfig, get_league, get_league_registry
from courtside.core.scheduler import get_task_scheduler
from courtside.repositories import EntityStore
from courtside.services.backfill import BackfillService
from courtside.services.discovery import DiscoveryService
from courtside.services.game_queue import GameQueueService
from courtside.services.game_status_poller import GameStatusPoller
from courtside.services.player_stats_reconciliation import PlayerStatsReconciliationService
from courtside.services.provider_client import ProviderClient

logger = logging.getLogger(__name__)


def _resolve_league(league: str) -> Optional[LeagueConfig]:
    try:
        return get_league(league)
    except KeyError:
        logger.error(f"❌ Unknown league {league!r}, dropping task")
        return None


async def check_game_status(league: str, game_event_id: str) -> Dict[str, Any]:
    """One poller check; the poller reschedules itself when needed."""
    config = _resolve_league(league)
    if config is None:
        return {"success": False, "error": f"Unknown league: {league}"}
    db = SessionLocal()
    client = ProviderClient(config)
    try:
        poller = GameStatusPoller(EntityStore(db), client, get_task_scheduler(), config)
        result = await poller.check_game(game_event_id)
        return {"success": True, "outcome": result.outcome, "status": result.status}
    except Exception as e:
        db.rollback()
        logger.error(f"{config.log_prefix} ❌ Status check failed for game {game_event_id}: {e}", exc_info=True)
        return {"success": False, "error": str(e)}
    finally:
        await client.close()
        db.close()


async def discover_games(league: str, date: Optional[str] = None) -> Dict[str, Any]:
    """Daily discovery for one league."""
    config = _resolve_league(league)
    if config is None:
        return {"success": False, "league": league, "error": "unknown league"}
    scheduler = get_task_scheduler()
    if scheduler is None:
        logger.warning(f"{config.log_prefix} Scheduler not running; first checks will not be seeded")

    db = SessionLocal()
    client = ProviderClient(config)
    try:
        service = DiscoveryService(EntityStore(db), client, scheduler, config)
        return await service.discover_games(date, schedule_checks=scheduler is not None)
    except Exception as e:
        db.rollback()
        logger.error(f"{config.log_prefix} ❌ Discovery failed: {e}", exc_info=True)
        return {"success": False, "league": league, "error": str(e)}
    finally:
        await client.close()
        db.close()


async def populate_game_queue(date: Optional[str] = None) -> Dict[str, Any]:
    db = SessionLocal()
    try:
        service = GameQueueService(EntityStore(db), get_league_registry().values(), client_factory=ProviderClient)
        return await service.populate_todays_games(date)
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Game queue population failed: {e}", exc_info=True)
        return {"success": False, "error": str(e)}
    finally:
        db.close()


async def process_game_queue() -> Dict[str, Any]:
    db = SessionLocal()
    try:
        service = GameQueueService(EntityStore(db), get_league_registry().values(), client_factory=ProviderClient)
        return await service.process_ready_games()
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Game queue processing failed: {e}", exc_info=True)
        return {"success": False, "error": str(e)}
    finally:
        db.close()


async def cleanup_game_queue(days: int = 7) -> Dict[str, Any]:
    db = SessionLocal()
    try:
        service = GameQueueService(EntityStore(db), get_league_registry().values(), client_factory=ProviderClient)
        return {"success": True, "deleted": service.cleanup_old_entries(days)}
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Game queue cleanup failed: {e}", exc_info=True)
        return {"success": False, "error": str(e)}
    finally:
        db.close()


async def recalculate_league(league: str, season: Optional[str] = None) -> Dict[str, Any]:
    """Recompute every team and player average of a season, then the ranks."""
    config = _resolve_league(league)
    if config is None:
        return {"success": False, "league": league, "error": "unknown league"}
    db = SessionLocal()
    client = ProviderClient(config)
    try:
        service = BackfillService(EntityStore(db), client, config, season=season)
        return service.recalculate_all()
    except Exception as e:
        db.rollback()
        logger.error(f"{config.log_prefix} ❌ Recalculation failed: {e}", exc_info=True)
        return {"success": False, "league": league, "error": str(e)}
    finally:
        await client.close()
        db.close()


async def backfill_league(
    league: str,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    team: Optional[str] = None,
    bootstrap: bool = False,
) -> Dict[str, Any]:
    """Optionally bootstrap teams and players, backfill games, then recalculate."""
    config = _resolve_league(league)
    if config is None:
        return {"success": False, "league": league, "error": "unknown league"}
    db = SessionLocal()
    client = ProviderClient(config)
    try:
        service = BackfillService(EntityStore(db), client, config)
        result: Dict[str, Any] = {"success": True, "league": league}
        if bootstrap:
            result["teams"] = await service.bootstrap_teams(seed_estimates=True)
            result["players"] = await service.bootstrap_players()
        result["games"] = await service.backfill_games(start_date, end_date, team)
        result["recalculate"] = service.recalculate_all()
        return result
    except Exception as e:
        db.rollback()
        logger.error(f"{config.log_prefix} ❌ Backfill failed: {e}", exc_info=True)
        return {"success": False, "league": league, "error": str(e)}
    finally:
        await client.close()
        db.close()


async def reconcile_player_stats(
    league: str,
    season: Optional[str] = None,
    limit: Optional[int] = None,
    dry_run: bool = False,
) -> Dict[str, Any]:
    """Daily player season-line reconciliation for one league."""
    config = _resolve_league(league)
    if config is None:
        return {"success": False, "league": league, "error": "unknown league"}
    db = SessionLocal()
    client = ProviderClient(config)
    try:
        service = PlayerStatsReconciliationService(EntityStore(db), client, config)
        return await service.reconcile_player_stats(season=season, limit=limit, dry_run=dry_run)
    except Exception as e:
        db.rollback()
        logger.error(f"{config.log_prefix} ❌ Player reconciliation failed: {e}", exc_info=True)
        return {"success": False, "league": league, "error": str(e)}
    finally:
        await client.close()
        db.close()


async def discover_all_games(date: Optional[str] = None) -> Dict[str, Any]:
    """Discovery for every league; each league fails on its own."""
    return {key: await discover_games(key, date) for key in get_league_registry()}
