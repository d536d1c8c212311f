"""Utilities for managing Kubernetes conditions."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from ..constants import (
    COND_CONTROL_PLANE_ENDPOINT_SET,
    COND_HCLOUD_TOKEN_AVAILABLE,
    COND_HETZNER_API_REACHABLE,
    COND_READY,
    REASON_HCLOUD_API_UNREACHABLE,
    REASON_MISSING_CONTROL_PLANE_ENDPOINT,
    REASON_RATE_LIMIT_EXCEEDED,
    SEVERITY_ERROR,
    SEVERITY_NONE,
    SEVERITY_WARNING,
    STATUS_FALSE,
    STATUS_TRUE,
)


def update_condition(
    conditions: list[dict[str, Any]],
    condition_type: str,
    status: str,
    reason: str,
    message: str,
    severity: str = SEVERITY_NONE,
    observed_generation: int | None = None,
) -> list[dict[str, Any]]:
    """Update or add a condition to the conditions list.

    Args:
        conditions: List of existing conditions
        condition_type: Type of condition
        status: Status of condition ("True", "False", "Unknown")
        reason: Reason for the condition
        message: Human-readable message
        severity: Severity of a non-True condition ("Error", "Warning", "Info" or "")
        observed_generation: Generation when condition was observed

    Returns:
        Updated list of conditions
    """
    now = datetime.now(timezone.utc).isoformat()

    # Find existing condition
    existing_idx = None
    for idx, cond in enumerate(conditions):
        if cond.get("type") == condition_type:
            existing_idx = idx
            break

    new_condition = {
        "type": condition_type,
        "status": status,
        "reason": reason,
        "message": message,
        "severity": severity,
        "lastTransitionTime": now,
    }

    if observed_generation is not None:
        new_condition["observedGeneration"] = observed_generation

    if existing_idx is not None:
        existing = conditions[existing_idx]
        # Only update lastTransitionTime if status changed
        if existing.get("status") == status:
            new_condition["lastTransitionTime"] = existing.get("lastTransitionTime", now)
        conditions[existing_idx] = new_condition
    else:
        conditions.append(new_condition)

    return conditions


def mark_true(
    conditions: list[dict[str, Any]],
    condition_type: str,
    reason: str = "",
    message: str = "",
) -> list[dict[str, Any]]:
    """Set a condition to True."""
    return update_condition(conditions, condition_type, STATUS_TRUE, reason, message)


def mark_false(
    conditions: list[dict[str, Any]],
    condition_type: str,
    reason: str,
    severity: str,
    message: str,
) -> list[dict[str, Any]]:
    """Set a condition to False with a reason and severity."""
    return update_condition(conditions, condition_type, STATUS_FALSE, reason, message, severity)


def get_condition(conditions: list[dict[str, Any]], condition_type: str) -> dict[str, Any] | None:
    """Return the condition of the given type, or None."""
    for cond in conditions:
        if cond.get("type") == condition_type:
            return cond
    return None


def is_true(conditions: list[dict[str, Any]], condition_type: str) -> bool:
    """Check whether a condition exists and is True."""
    cond = get_condition(conditions, condition_type)
    return cond is not None and cond.get("status") == STATUS_TRUE


def is_false_with_reason(conditions: list[dict[str, Any]], condition_type: str, reason: str) -> bool:
    """Check whether a condition exists, is False and carries the given reason."""
    cond = get_condition(conditions, condition_type)
    return cond is not None and cond.get("status") == STATUS_FALSE and cond.get("reason") == reason


def set_ready_condition(
    conditions: list[dict[str, Any]],
    status: bool,
    message: str,
    observed_generation: int | None = None,
) -> list[dict[str, Any]]:
    """Set the Ready condition."""
    return update_condition(
        conditions,
        COND_READY,
        STATUS_TRUE if status else STATUS_FALSE,
        "Ready" if status else "NotReady",
        message,
        SEVERITY_NONE if status else SEVERITY_WARNING,
        observed_generation,
    )


def set_token_available_condition(
    conditions: list[dict[str, Any]],
    status: bool,
    reason: str = "",
    message: str = "",
) -> list[dict[str, Any]]:
    """Set the HCloudTokenAvailable condition."""
    if status:
        return mark_true(conditions, COND_HCLOUD_TOKEN_AVAILABLE)
    return mark_false(conditions, COND_HCLOUD_TOKEN_AVAILABLE, reason, SEVERITY_ERROR, message)


def mark_api_reachable(conditions: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Record a successful round-trip to the Hetzner API."""
    return mark_true(conditions, COND_HETZNER_API_REACHABLE)


def mark_rate_limited(conditions: list[dict[str, Any]], message: str) -> list[dict[str, Any]]:
    """Record that the Hetzner API rejected a call because of rate limiting."""
    return mark_false(
        conditions,
        COND_HETZNER_API_REACHABLE,
        REASON_RATE_LIMIT_EXCEEDED,
        SEVERITY_WARNING,
        message,
    )


def mark_api_unreachable(conditions: list[dict[str, Any]], message: str) -> list[dict[str, Any]]:
    """Record a transient failure talking to the Hetzner API."""
    return mark_false(
        conditions,
        COND_HETZNER_API_REACHABLE,
        REASON_HCLOUD_API_UNREACHABLE,
        SEVERITY_WARNING,
        message,
    )


def set_endpoint_condition(conditions: list[dict[str, Any]], endpoint_set: bool) -> list[dict[str, Any]]:
    """Set the ControlPlaneEndpointSet condition."""
    if endpoint_set:
        return mark_true(conditions, COND_CONTROL_PLANE_ENDPOINT_SET)
    return mark_false(
        conditions,
        COND_CONTROL_PLANE_ENDPOINT_SET,
        REASON_MISSING_CONTROL_PLANE_ENDPOINT,
        SEVERITY_WARNING,
        "control plane endpoint is not set",
    )
