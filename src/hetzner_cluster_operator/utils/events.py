"""Utilities for emitting Kubernetes events."""

from __future__ import annotations

from typing import Any

import kopf

from ..constants import (
    EVENT_REASON_LOAD_BALANCER_ADOPTED,
    EVENT_REASON_LOAD_BALANCER_CREATED,
    EVENT_REASON_LOAD_BALANCER_DELETED,
    EVENT_REASON_LOAD_BALANCER_RELEASED,
    EVENT_REASON_LOAD_BALANCER_UPDATED,
    EVENT_REASON_NETWORK_CREATED,
    EVENT_REASON_NETWORK_DELETED,
    EVENT_REASON_PLACEMENT_GROUP_CREATED,
    EVENT_REASON_PLACEMENT_GROUP_DELETED,
    EVENT_REASON_RATE_LIMITED,
    EVENT_REASON_RECONCILE_FAILED,
    EVENT_REASON_RECONCILE_STARTED,
    EVENT_REASON_VALIDATE_FAILED,
)


class EventRecorder:
    """Emits events against one Kubernetes object.

    The reconcilers only know about this class, so tests can pass a mock and
    run without a kopf context.
    """

    def __init__(self, body: dict[str, Any]) -> None:
        self.body = body

    def emit(self, reason: str, message: str, type_: str = "Normal") -> None:
        emit_event(self.body, reason, message, type_)

    def load_balancer_created(self, name: str) -> None:
        self.emit(EVENT_REASON_LOAD_BALANCER_CREATED, f"Load balancer {name} created")

    def load_balancer_adopted(self, name: str) -> None:
        self.emit(EVENT_REASON_LOAD_BALANCER_ADOPTED, f"Load balancer {name} adopted")

    def load_balancer_updated(self, name: str, change: str) -> None:
        self.emit(EVENT_REASON_LOAD_BALANCER_UPDATED, f"Load balancer {name} updated: {change}")

    def load_balancer_released(self, name: str) -> None:
        self.emit(EVENT_REASON_LOAD_BALANCER_RELEASED, f"Ownership label removed from load balancer {name}")

    def load_balancer_deleted(self, name: str) -> None:
        self.emit(EVENT_REASON_LOAD_BALANCER_DELETED, f"Load balancer {name} deleted")

    def placement_group_created(self, name: str) -> None:
        self.emit(EVENT_REASON_PLACEMENT_GROUP_CREATED, f"Placement group {name} created")

    def placement_group_deleted(self, name: str) -> None:
        self.emit(EVENT_REASON_PLACEMENT_GROUP_DELETED, f"Placement group {name} deleted")

    def network_created(self, name: str) -> None:
        self.emit(EVENT_REASON_NETWORK_CREATED, f"Network {name} created")

    def network_deleted(self, name: str) -> None:
        self.emit(EVENT_REASON_NETWORK_DELETED, f"Network {name} deleted")

    def rate_limited(self, wait: float) -> None:
        self.emit(
            EVENT_REASON_RATE_LIMITED,
            f"Hetzner API rate limit exceeded, waiting {int(wait)}s",
            type_="Warning",
        )


def emit_event(
    body: dict[str, Any],
    reason: str,
    message: str,
    type_: str = "Normal",
) -> None:
    """Emit a Kubernetes event.

    Args:
        body: Resource body (apiVersion, kind and metadata)
        reason: Event reason
        message: Event message
        type_: Event type (Normal or Warning)
    """
    kopf.event(
        body,
        reason=reason,
        message=message,
        type=type_,
    )


def emit_reconcile_started(body: dict[str, Any]) -> None:
    """Emit reconcile started event."""
    emit_event(body, EVENT_REASON_RECONCILE_STARTED, "Reconciliation started")


def emit_reconcile_failed(body: dict[str, Any], message: str) -> None:
    """Emit reconcile failed event."""
    emit_event(body, EVENT_REASON_RECONCILE_FAILED, message, type_="Warning")


def emit_validate_failed(body: dict[str, Any], message: str) -> None:
    """Emit validation failed event."""
    emit_event(body, EVENT_REASON_VALIDATE_FAILED, message, type_="Warning")


def object_reference(api_version: str, kind: str, name: str, namespace: str, uid: str) -> dict[str, Any]:
    """Build the minimal body kopf needs to attach an event to an object."""
    return {
        "apiVersion": api_version,
        "kind": kind,
        "metadata": {"name": name, "namespace": namespace, "uid": uid},
    }
