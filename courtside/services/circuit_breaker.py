"""
Circuit breaker pattern for score-provider calls.

Uses pybreaker library for circuit breaker implementation.

Circuit Breaker States:
- CLOSED: Requests pass through normally
- OPEN: Requests fail immediately (after fail_max consecutive failures)
- HALF_OPEN: One request allowed to test if the provider has recovered

One breaker per league, so an outage of one league's endpoints does not
block the other leagues' polling.
"""
from typing import Any, Awaitable, Callable, Dict

from pybreaker import CircuitBreaker, CircuitBreakerError, STATE_OPEN

from courtside.core.leagues import LEAGUE_KEYS

# Default circuit breaker configuration
DEFAULT_FAIL_MAX = 5  # Number of failures before opening circuit
DEFAULT_RESET_TIMEOUT = 60  # Seconds before attempting to close circuit


# ============================================================================
# CIRCUIT BREAKERS
# ============================================================================

provider_breakers: Dict[str, CircuitBreaker] = {
    league: CircuitBreaker(
        fail_max=DEFAULT_FAIL_MAX,
        reset_timeout=DEFAULT_RESET_TIMEOUT,
        name=f"provider_{league}",
    )
    for league in LEAGUE_KEYS
}


def get_breaker(league: str) -> CircuitBreaker:
    return provider_breakers[league]


# ============================================================================
# CIRCUIT BREAKER STATE MONITORING
# ============================================================================

def get_all_breaker_states() -> dict[str, str]:
    """Map each breaker name to 'closed', 'open' or 'half-open'."""
    return {breaker.name: breaker.current_state for breaker in provider_breakers.values()}


# ============================================================================
# ASYNC CALL HELPER
# ============================================================================

def _settle(outcome: Any) -> Any:
    if isinstance(outcome, BaseException):
        raise outcome
    return outcome


def _check_open() -> None:
    return None


async def call_with_breaker(
    breaker: CircuitBreaker,
    func: Callable[..., Awaitable[Any]],
    *args,
    **kwargs,
) -> Any:
    """
    Await func under breaker protection.

    An open circuit raises CircuitBreakerError without running func until
    reset_timeout has elapsed. The awaited outcome is then settled through
    breaker.call so failures count toward fail_max.

    Raises:
        CircuitBreakerError: circuit is open
        Exception: whatever func raised
    """
    if breaker.current_state == STATE_OPEN:
        breaker.call(_check_open)

    try:
        outcome = await func(*args, **kwargs)
    except Exception as exc:
        outcome = exc

    return breaker.call(_settle, outcome)


__all__ = [
    "CircuitBreakerError",
    "call_with_breaker",
    "get_all_breaker_states",
    "get_breaker",
    "provider_breakers",
]
