"""Sync API routes: inbound triggers for the ingestion pipeline.

Provides endpoints for:
- On-demand sync of one game (throttled like polling)
- Batch sync of the games a client is currently showing
- Manual discovery, season recalculation and player reconciliation per league
- Scheduler and circuit breaker status
"""
import logging
from datetime import datetime
from typing import AsyncGenerator, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from courtside.core.database import get_db
from courtside.core.leagues import LeagueConfig, get_league_registry
from courtside.core.scheduler import get_scheduler, get_task_scheduler
from courtside.repositories import EntityStore
from courtside.services.aggregation import AggregationService
from courtside.services.circuit_breaker import get_all_breaker_states
from courtside.services.discovery import DiscoveryService
from courtside.services.live_sync import LiveSyncService, ViewGame
from courtside.services.player_stats_reconciliation import PlayerStatsReconciliationService
from courtside.services.provider_client import ProviderClient
from courtside.services.rankings import RankingService
from courtside.utils.timezone import current_season, to_naive_utc

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sync", tags=["sync"])


class ViewGameRequest(BaseModel):
    external_id: str
    status: Optional[str] = None
    scheduled_start: Optional[datetime] = None


class BatchSyncRequest(BaseModel):
    games: List[ViewGameRequest] = Field(default_factory=list)


def resolve_league(league: str) -> LeagueConfig:
    """Dependency: the LeagueConfig for the {league} path parameter."""
    registry = get_league_registry()
    if league not in registry:
        raise HTTPException(status_code=404, detail=f"Unknown league: {league}")
    return registry[league]


async def get_provider_client(
    league: LeagueConfig = Depends(resolve_league),
) -> AsyncGenerator[ProviderClient, None]:
    """Dependency: a provider client for the request's league, closed afterwards."""
    client = ProviderClient(league)
    try:
        yield client
    finally:
        await client.close()


@router.post("/{league}/games/{game_id}")
async def sync_game(
    game_id: str,
    league: LeagueConfig = Depends(resolve_league),
    client: ProviderClient = Depends(get_provider_client),
    db: Session = Depends(get_db),
) -> Dict:
    """
    Sync one game now.

    Returns "throttled" when the game was fetched within the last 15 seconds.
    """
    service = LiveSyncService(EntityStore(db), client, league)
    return await service.sync_game(game_id)


@router.post("/{league}/games")
async def sync_visible_games(
    request: BatchSyncRequest,
    league: LeagueConfig = Depends(resolve_league),
    client: ProviderClient = Depends(get_provider_client),
    db: Session = Depends(get_db),
) -> Dict:
    """
    Sync the likely-live games among those a client is showing.

    Args:
        request: The visible games, with their displayed status and start time

    Returns:
        Counts of requested, candidate, synced, throttled and failed games
    """
    games = [
        ViewGame(
            external_id=g.external_id,
            status=g.status,
            scheduled_start=to_naive_utc(g.scheduled_start) if g.scheduled_start else None,
        )
        for g in request.games
    ]
    service = LiveSyncService(EntityStore(db), client, league)
    return await service.sync_games_for_view(games)


@router.post("/{league}/discover")
async def trigger_discovery(
    date: Optional[str] = Query(None, pattern=r"^\d{8}$", description="YYYYMMDD, defaults to today"),
    league: LeagueConfig = Depends(resolve_league),
    client: ProviderClient = Depends(get_provider_client),
    db: Session = Depends(get_db),
) -> Dict:
    """Run discovery for a league date; status checks are seeded when the scheduler is running."""
    scheduler = get_task_scheduler()
    service = DiscoveryService(EntityStore(db), client, scheduler, league)
    return await service.discover_games(date, schedule_checks=scheduler is not None)


@router.post("/{league}/recalculate")
async def trigger_recalculation(
    season: Optional[str] = Query(None, description="Season, defaults to the current one"),
    league: LeagueConfig = Depends(resolve_league),
    db: Session = Depends(get_db),
) -> Dict:
    """Recompute every team and player average of a season, then the league ranks."""
    season = season or current_season(league)
    store = EntityStore(db)
    try:
        counts = AggregationService(store).recalculate_season(league.key, season)
        ranked = RankingService(store).update_league_rankings(league.key, season)
        store.commit()
    except Exception as e:
        store.rollback()
        logger.error(f"{league.log_prefix} ❌ Recalculation failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Recalculation failed: {e}")

    return {"success": True, "league": league.key, "season": season, **counts, "ranked": ranked}


@router.post("/{league}/reconcile-players")
async def trigger_player_reconciliation(
    season: Optional[str] = Query(None, description="Season, defaults to the current one"),
    limit: Optional[int] = Query(None, ge=1, description="Only the first N players"),
    dry_run: bool = Query(False, description="Count changes without writing"),
    league: LeagueConfig = Depends(resolve_league),
    client: ProviderClient = Depends(get_provider_client),
    db: Session = Depends(get_db),
) -> Dict:
    """Patch player season lines that differ from the provider's core statistics."""
    service = PlayerStatsReconciliationService(EntityStore(db), client, league)
    return await service.reconcile_player_stats(season=season, limit=limit, dry_run=dry_run)


@router.get("/scheduler/status")
async def get_scheduler_status() -> Dict:
    """
    Get scheduler status and job information.

    Returns:
        Running flag, scheduled jobs with next run times, and circuit
        breaker states per league
    """
    scheduler = get_scheduler()
    return {
        "running": bool(scheduler and scheduler.running),
        "jobs": scheduler.get_jobs_status() if scheduler else [],
        "circuit_breakers": get_all_breaker_states(),
    }
