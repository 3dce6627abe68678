"""
Per-game status polling.

The polling policy is a pure transition function:

    decide(observation, current_status, check_count, fetch_failures, policy)
        -> Decision

A Decision lists the effects to apply (persist, sync, aggregate, rank,
reschedule(delay), terminate, abandon). GameStatusPoller fetches the
summary, asks decide() what to do, and applies the effects in order:
persist -> box-score sync -> aggregation -> ranking -> reschedule.

Provider state -> action:
    fetch failed        fetch_failures+1, retry in 15 min
    pre                 persist status, check_count+1, recheck in 30 min
    in                  persist status + scores, sync, recheck in 15 min
    post                completed: persist, sync, aggregate, rank, stop
    postponed/cancelled persist, stop
    anything else       check_count+1, recheck in 15 min

Every reschedule is bounded by check_count + fetch_failures < max_checks;
reaching the cap abandons polling and leaves the stored status as it is.
Scores that cannot be trusted (missing, or a 0-vs-80+ "final") hold the
status back and recheck after 2 minutes. Each one is also written to
score_anomalies.

A check first claims the game's sync lease (game_events.sync_lock_until), so
it never overlaps an on-demand sync of the same game. When the lease is
held elsewhere the check is deferred by one minute without counting.
"""
import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Callable, Dict, List, Optional

from courtside.core.config import DEFAULT_POLLING_POLICY, PollingPolicy
from courtside.core.leagues import LeagueConfig
from courtside.core.logging import correlation_scope, game_correlation_id
from courtside.core.scheduler import CHECK_GAME_TASK, TaskScheduler, check_job_id
from courtside.models import (
    GameEvent,
    LIVE_STATUSES,
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    STATUS_POSTPONED,
    STATUS_SCHEDULED,
)
from courtside.repositories import EntityStore
from courtside.services.aggregation import AggregationService
from courtside.services.box_score_parser import (
    STATE_CANCELLED,
    STATE_IN,
    STATE_POST,
    STATE_POSTPONED,
    STATE_PRE,
    Competitor,
    GameSnapshot,
    parse_summary_header,
)
from courtside.services.box_score_sync import BoxScoreSyncService
from courtside.services.provider_client import ProviderClient, ProviderFetchError
from courtside.services.rankings import RankingService
from courtside.utils.timezone import utc_now

logger = logging.getLogger(__name__)

# A "final" with one side at 0 and the other at or above this is a provider glitch
BLOWOUT_ANOMALY_SCORE = 80

# Score anomaly types
ANOMALY_MISSING_LIVE_SCORE = "missing_in_progress_score"
ANOMALY_MISSING_FINAL_SCORE = "missing_final_score"
ANOMALY_ZERO_BLOWOUT = "suspicious_final_zero_blowout"

# Where an anomaly was seen
SOURCE_POLLER = "poller"
SOURCE_DISCOVERY = "discovery"
SOURCE_LIVE_SYNC = "live_sync"
SOURCE_BACKFILL = "backfill"

# Effects
PERSIST = "persist"
SYNC = "sync"
AGGREGATE = "aggregate"
RANK = "rank"
RESCHEDULE = "reschedule"
TERMINATE = "terminate"
ABANDON = "abandon"

# Outcomes
OUTCOME_RESCHEDULED = "rescheduled"
OUTCOME_COMPLETED = "completed"
OUTCOME_TERMINATED = "terminated"
OUTCOME_ABANDONED = "abandoned"
OUTCOME_MISSING = "missing"
OUTCOME_DEFERRED = "deferred"


# ============================================================================
# STATUS RULES
# ============================================================================

def advance_status(current: Optional[str], new: str) -> str:
    """
    The status to store when the provider reports `new`.

    Never moves back to scheduled, never leaves completed, and never leaves
    postponed/cancelled except to completed. Live sub-states cycle freely.

    Examples:
        >>> advance_status("halftime", "in_progress")
        'in_progress'
        >>> advance_status("in_progress", "scheduled")
        'in_progress'
        >>> advance_status("completed", "overtime")
        'completed'
    """
    if current is None or current == new:
        return new
    if current == STATUS_COMPLETED:
        return current
    if current in (STATUS_POSTPONED, STATUS_CANCELLED):
        return new if new == STATUS_COMPLETED else current
    if new == STATUS_SCHEDULED:
        return current
    return new


def score_anomaly_type(
    provider_state: str,
    home_score: Optional[int],
    away_score: Optional[int],
) -> Optional[str]:
    """Why a live or final response's scores should not be trusted, or None."""
    if provider_state not in (STATE_IN, STATE_POST):
        return None
    if home_score is None or away_score is None:
        return ANOMALY_MISSING_FINAL_SCORE if provider_state == STATE_POST else ANOMALY_MISSING_LIVE_SCORE
    if provider_state == STATE_POST:
        low, high = sorted((home_score, away_score))
        if low == 0 and high >= BLOWOUT_ANOMALY_SCORE:
            return ANOMALY_ZERO_BLOWOUT
    return None


def is_score_anomaly(provider_state: str, home_score: Optional[int], away_score: Optional[int]) -> bool:
    """Scores a live or final response should not be trusted with."""
    return score_anomaly_type(provider_state, home_score, away_score) is not None


def _raw_score(competitor: Optional[Competitor]) -> Optional[str]:
    if competitor is None or competitor.raw_score is None:
        return None
    return str(competitor.raw_score)[:50]


def record_score_anomaly(
    store: EntityStore,
    league: LeagueConfig,
    snapshot: GameSnapshot,
    anomaly_type: str,
    source: str,
    game_event_id: Optional[str] = None,
) -> None:
    """Add a score_anomalies row; the caller's commit persists it."""
    store.record_score_anomaly({
        "league": league.key,
        "external_game_id": snapshot.external_id,
        "game_event_id": game_event_id,
        "anomaly_type": anomaly_type,
        "source": source,
        "provider_state": snapshot.provider_state,
        "status_detail": snapshot.detail,
        "home_score": snapshot.home_score,
        "away_score": snapshot.away_score,
        "raw_home_score": _raw_score(snapshot.home),
        "raw_away_score": _raw_score(snapshot.away),
    })
    logger.error(
        f"{league.log_prefix} [SCORE_ANOMALY] {anomaly_type} for game {snapshot.external_id} "
        f"({source}): home={_raw_score(snapshot.home)}, away={_raw_score(snapshot.away)}"
    )


# ============================================================================
# TRANSITION FUNCTION
# ============================================================================

@dataclass(frozen=True)
class Observation:
    """What one summary fetch told us. fetch_ok=False means nothing else is set."""
    fetch_ok: bool
    provider_state: Optional[str] = None
    status: Optional[str] = None
    detail: Optional[str] = None
    home_score: Optional[int] = None
    away_score: Optional[int] = None

    @classmethod
    def failed(cls) -> "Observation":
        return cls(fetch_ok=False)

    @classmethod
    def from_snapshot(cls, snapshot: GameSnapshot) -> "Observation":
        return cls(
            fetch_ok=True,
            provider_state=snapshot.provider_state,
            status=snapshot.status,
            detail=snapshot.detail,
            home_score=snapshot.home_score,
            away_score=snapshot.away_score,
        )


@dataclass(frozen=True)
class Decision:
    outcome: str
    reason: str
    effects: List[str] = field(default_factory=list)
    updates: Dict[str, Any] = field(default_factory=dict)  # columns to persist
    delay: Optional[timedelta] = None
    anomaly: Optional[str] = None  # score anomaly type behind this decision

    def has(self, effect: str) -> bool:
        return effect in self.effects

    @property
    def terminal(self) -> bool:
        return self.outcome != OUTCOME_RESCHEDULED


def _bounded(
    reason: str,
    updates: Dict[str, Any],
    effects: List[str],
    delay: timedelta,
    attempts: int,
    policy: PollingPolicy,
    anomaly: Optional[str] = None,
) -> Decision:
    """Reschedule after delay while attempts stay under the cap, else abandon."""
    if attempts < policy.max_checks:
        return Decision(OUTCOME_RESCHEDULED, reason, effects + [RESCHEDULE], updates, delay, anomaly)
    return Decision(
        OUTCOME_ABANDONED,
        f"{reason}; check cap of {policy.max_checks} reached",
        effects + [ABANDON],
        updates,
        anomaly=anomaly,
    )


def decide(
    observation: Observation,
    current_status: Optional[str],
    check_count: int,
    fetch_failures: int,
    policy: PollingPolicy = DEFAULT_POLLING_POLICY,
) -> Decision:
    """
    Pure polling policy for one check of one game.

    Args:
        observation: The fetch result
        current_status: Stored GameEvent status
        check_count: Stored check count
        fetch_failures: Stored fetch-failure count
        policy: Timing constants

    Returns:
        Decision with the effects to apply and the columns to persist
    """
    if not observation.fetch_ok:
        failures = fetch_failures + 1
        return _bounded(
            "summary fetch failed",
            {"fetch_failures": failures},
            [PERSIST],
            policy.failure_retry,
            check_count + failures,
            policy,
        )

    state = observation.provider_state
    count = check_count + 1
    attempts = count + fetch_failures

    # Stale non-final report for a game already final: nothing left to poll
    if current_status == STATUS_COMPLETED and state != STATE_POST:
        return Decision(OUTCOME_TERMINATED, "game already completed", [TERMINATE])

    if state == STATE_PRE:
        updates = {
            "status": advance_status(current_status, STATUS_SCHEDULED),
            "status_detail": observation.detail,
            "check_count": count,
        }
        return _bounded("game not started", updates, [PERSIST], policy.pregame_interval, attempts, policy)

    if state == STATE_IN:
        status = advance_status(current_status, observation.status)
        anomaly = score_anomaly_type(state, observation.home_score, observation.away_score)
        if anomaly is not None:
            updates = {"status": status, "status_detail": observation.detail, "check_count": count}
            return _bounded(
                "live game missing a score", updates, [PERSIST], policy.anomaly_recheck, attempts, policy, anomaly
            )
        updates = {
            "status": status,
            "status_detail": observation.detail,
            "home_score": observation.home_score,
            "away_score": observation.away_score,
            "check_count": count,
        }
        return _bounded("game in progress", updates, [PERSIST, SYNC], policy.live_interval, attempts, policy)

    if state == STATE_POST:
        anomaly = score_anomaly_type(state, observation.home_score, observation.away_score)
        if anomaly is not None:
            return _bounded(
                "untrusted final score", {"check_count": count}, [PERSIST],
                policy.anomaly_recheck, attempts, policy, anomaly,
            )
        updates = {
            "status": STATUS_COMPLETED,
            "status_detail": observation.detail,
            "home_score": observation.home_score,
            "away_score": observation.away_score,
        }
        return Decision(
            OUTCOME_COMPLETED, "game final",
            [PERSIST, SYNC, AGGREGATE, RANK, TERMINATE], updates,
        )

    if state in (STATE_POSTPONED, STATE_CANCELLED):
        updates = {
            "status": advance_status(current_status, observation.status),
            "status_detail": observation.detail,
            "check_count": count,
        }
        return Decision(OUTCOME_TERMINATED, f"game {state}", [PERSIST, TERMINATE], updates)

    return _bounded(
        f"unrecognized provider state {state!r}",
        {"check_count": count},
        [PERSIST],
        policy.live_interval,
        attempts,
        policy,
    )


# ============================================================================
# POLLER
# ============================================================================

@dataclass
class CheckResult:
    game_event_id: str
    outcome: str
    reason: str
    status: Optional[str] = None
    delay: Optional[timedelta] = None


class GameStatusPoller:
    """
    Runs one status check for a tracked game and applies the decision.

    Usage:
        poller = GameStatusPoller(store, client, scheduler, leagues["nba"])
        result = await poller.check_game(game.id)
    """

    def __init__(
        self,
        store: EntityStore,
        client: ProviderClient,
        scheduler: Optional[TaskScheduler],
        league: LeagueConfig,
        policy: PollingPolicy = DEFAULT_POLLING_POLICY,
        now_fn: Callable[[], Any] = utc_now,
    ):
        self.store = store
        self.client = client
        self.scheduler = scheduler
        self.league = league
        self.policy = policy
        self.now_fn = now_fn
        self.box_scores = BoxScoreSyncService(store, league)
        self.aggregation = AggregationService(store)
        self.rankings = RankingService(store)

    async def check_game(self, game_event_id: str, reschedule: bool = True) -> CheckResult:
        """
        Fetch, decide, apply.

        Args:
            game_event_id: GameEvent primary key
            reschedule: False when the caller drives the cadence itself
                        (the game queue)

        Returns:
            CheckResult describing what happened
        """
        game = self.store.get_game_by_id(game_event_id)
        if game is None:
            logger.error(f"{self.league.log_prefix} Game {game_event_id} not found, dropping check")
            return CheckResult(game_event_id, OUTCOME_MISSING, "game not found")

        with correlation_scope(game_correlation_id(self.league.key, game.external_id)):
            if not self.store.try_acquire_sync_lock(game.id, self.now_fn(), self.policy.sync_lease):
                return self._defer(game, reschedule)
            try:
                return await self._check(game, reschedule)
            finally:
                self.store.release_sync_lock(game.id)

    def _defer(self, game: GameEvent, reschedule: bool) -> CheckResult:
        """Another sync holds the game: try again shortly, without counting a check."""
        delay = self.policy.busy_retry
        logger.info(
            f"{self.league.log_prefix} Game {game.external_id} is being synced elsewhere, "
            f"next check in {delay}"
        )
        if reschedule and self.scheduler is not None:
            self._schedule_next(game, delay)
        return CheckResult(game.id, OUTCOME_DEFERRED, "sync lease held", status=game.status, delay=delay)

    def _schedule_next(self, game: GameEvent, delay: timedelta) -> None:
        self.scheduler.schedule_after(
            delay,
            CHECK_GAME_TASK,
            {"league": self.league.key, "game_event_id": game.id},
            job_id=check_job_id(self.league.key, game.id),
        )

    async def _check(self, game: GameEvent, reschedule: bool) -> CheckResult:
        summary: Optional[Dict[str, Any]] = None
        snapshot: Optional[GameSnapshot] = None
        try:
            summary = await self.client.get_summary(game.external_id)
        except ProviderFetchError as e:
            logger.warning(
                f"{self.league.log_prefix} Summary fetch failed for game {game.external_id} "
                f"(status={e.status_code}): {e}"
            )

        if summary is None:
            observation = Observation.failed()
        else:
            snapshot = parse_summary_header(summary, game.external_id)
            observation = Observation.from_snapshot(snapshot)

        decision = decide(
            observation,
            game.status,
            game.check_count or 0,
            game.fetch_failures or 0,
            self.policy,
        )

        if decision.anomaly is not None and snapshot is not None:
            record_score_anomaly(self.store, self.league, snapshot, decision.anomaly, SOURCE_POLLER, game.id)

        if decision.has(PERSIST):
            updates = dict(decision.updates)
            if observation.fetch_ok:
                updates["last_fetched_at"] = self.now_fn()
            self.store.patch_game(game, updates)
            self.store.commit()

        if decision.has(SYNC) and summary is not None:
            self._run_followups(game, summary, snapshot, decision)

        self._log_decision(game, decision)

        if reschedule and decision.has(RESCHEDULE) and self.scheduler is not None:
            self._schedule_next(game, decision.delay)

        return CheckResult(
            game_event_id=game.id,
            outcome=decision.outcome,
            reason=decision.reason,
            status=game.status,
            delay=decision.delay,
        )

    def _run_followups(
        self,
        game: GameEvent,
        summary: Dict[str, Any],
        snapshot: Optional[GameSnapshot],
        decision: Decision,
    ) -> None:
        """Box-score sync, then aggregation and ranking for completed games."""
        try:
            self.box_scores.sync(game, summary, snapshot)
            self.store.commit()

            if decision.has(AGGREGATE):
                self.aggregation.recalculate_game_participants(game)
                self.store.commit()

            if decision.has(RANK):
                self.rankings.update_league_rankings(self.league.key, game.season)
                self.store.commit()
        except Exception as e:
            self.store.rollback()
            logger.error(
                f"{self.league.log_prefix} ❌ Post-check sync failed for game {game.external_id}: {e}",
                exc_info=True,
            )

    def _log_decision(self, game: GameEvent, decision: Decision) -> None:
        prefix = self.league.log_prefix
        if decision.outcome == OUTCOME_ABANDONED:
            logger.warning(
                f"{prefix} Abandoning game {game.external_id} after "
                f"{game.check_count} checks and {game.fetch_failures} fetch failures: {decision.reason}"
            )
        elif decision.outcome == OUTCOME_COMPLETED:
            logger.info(
                f"{prefix} ✅ Game {game.external_id} final: "
                f"{game.home_score}-{game.away_score}"
            )
        elif decision.outcome == OUTCOME_TERMINATED:
            logger.info(f"{prefix} Stopped polling game {game.external_id}: {decision.reason}")
        elif decision.anomaly is not None:
            logger.warning(
                f"{prefix} {decision.reason} for game {game.external_id}, "
                f"rechecking in {decision.delay}"
            )
        else:
            logger.info(
                f"{prefix} Game {game.external_id} {game.status} ({decision.reason}), "
                f"next check in {decision.delay}"
            )


__all__ = [
    "ABANDON",
    "AGGREGATE",
    "CheckResult",
    "Decision",
    "GameStatusPoller",
    "Observation",
    "OUTCOME_ABANDONED",
    "OUTCOME_COMPLETED",
    "OUTCOME_DEFERRED",
    "OUTCOME_MISSING",
    "OUTCOME_RESCHEDULED",
    "OUTCOME_TERMINATED",
    "PERSIST",
    "RANK",
    "RESCHEDULE",
    "SYNC",
    "TERMINATE",
    "advance_status",
    "decide",
    "is_score_anomaly",
    "record_score_anomaly",
    "score_anomaly_type",
]
