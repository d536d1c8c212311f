"""Rate limit backoff for Hetzner API calls.

The backoff state lives entirely in the ``HetznerAPIReachable`` condition: a
rate limited call marks it False with the ``RateLimitExceeded`` reason, and no
remote call is made until ``wait`` seconds have passed since that transition.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from ..constants import (
    COND_HETZNER_API_REACHABLE,
    RATE_LIMIT_WAIT_SECONDS,
    REASON_RATE_LIMIT_EXCEEDED,
    STATUS_FALSE,
)
from .conditions import get_condition


def _parse_timestamp(value: str) -> datetime | None:
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (AttributeError, ValueError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def remaining_rate_limit_wait(
    conditions: list[dict[str, Any]],
    wait: float = RATE_LIMIT_WAIT_SECONDS,
    now: datetime | None = None,
) -> float:
    """Seconds left before the Hetzner API may be called again.

    Args:
        conditions: Conditions of the cluster resource
        wait: Backoff window in seconds, measured from the last transition
        now: Current time (defaults to the wall clock)

    Returns:
        Remaining seconds, or 0.0 when no backoff applies
    """
    cond = get_condition(conditions, COND_HETZNER_API_REACHABLE)
    if cond is None:
        return 0.0
    if cond.get("status") != STATUS_FALSE or cond.get("reason") != REASON_RATE_LIMIT_EXCEEDED:
        return 0.0

    last_transition = _parse_timestamp(cond.get("lastTransitionTime", ""))
    if last_transition is None:
        return 0.0

    if now is None:
        now = datetime.now(timezone.utc)
    elapsed = (now - last_transition).total_seconds()
    return max(wait - elapsed, 0.0)


def reconcile_rate_limit(
    conditions: list[dict[str, Any]],
    wait: float = RATE_LIMIT_WAIT_SECONDS,
    now: datetime | None = None,
) -> bool:
    """Decide whether the caller must skip all remote calls in this pass.

    Returns:
        True while a rate limit reported earlier is still inside its wait window
    """
    return remaining_rate_limit_wait(conditions, wait, now) > 0.0
