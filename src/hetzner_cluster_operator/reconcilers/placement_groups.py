"""Placement group reconciliation."""

from __future__ import annotations

from .. import metrics
from ..constants import COND_PLACEMENT_GROUPS_SYNCED, REASON_PLACEMENT_GROUPS_SYNC_FAILED
from ..services.hcloud.errors import HCloudError, NotFoundError, RateLimitError
from ..services.hcloud.models import HetznerCluster, RemotePlacementGroup
from ..utils.conditions import mark_true
from ..utils.labels import owned_labels, owned_selector
from .scope import ClusterScope, ReconcileResult


def placement_group_name(cluster_name: str, name: str) -> str:
    return f"{cluster_name}-{name}"


def desired_placement_groups(cluster: HetznerCluster) -> list[tuple[str, str]]:
    """Desired (remote name, type) pairs in spec order."""
    return [
        (placement_group_name(cluster.name, pg.name), pg.type)
        for pg in cluster.spec.placement_groups
    ]


def _status_entry(pg: RemotePlacementGroup) -> dict:
    return {"id": pg.id, "name": pg.name, "type": pg.type, "servers": list(pg.servers)}


def _record(operation: str, result: str) -> None:
    metrics.placement_group_operations_total.labels(operation=operation, result=result).inc()


def reconcile_placement_groups(scope: ClusterScope) -> ReconcileResult | None:
    """Make the owned placement groups match the spec.

    Groups are compared by (name, type). Extra groups are deleted before
    missing ones are created, so a changed type is a delete then a create.
    Individual failures do not stop the remaining operations.
    """
    cluster = scope.cluster
    desired = desired_placement_groups(cluster)
    desired_keys = set(desired)

    try:
        observed = scope.client.list_placement_groups(label_selector=owned_selector(cluster.name))
    except HCloudError as e:
        return scope.handle_remote_error(
            e, COND_PLACEMENT_GROUPS_SYNCED, REASON_PLACEMENT_GROUPS_SYNC_FAILED, "failed to list placement groups"
        )

    current = {(pg.name, pg.type): pg for pg in observed}
    errors: list[HCloudError] = []

    for key, pg in list(current.items()):
        if key in desired_keys:
            continue
        try:
            scope.client.delete_placement_group(pg.id)
        except NotFoundError:
            pass
        except RateLimitError as e:
            _record("delete", "error")
            errors.append(e)
            break
        except HCloudError as e:
            _record("delete", "error")
            errors.append(e)
            continue
        del current[key]
        _record("delete", "success")
        scope.recorder.placement_group_deleted(pg.name)

    rate_limited = any(isinstance(e, RateLimitError) for e in errors)
    for name, type_ in desired:
        if rate_limited or (name, type_) in current:
            continue
        try:
            pg = scope.client.create_placement_group(name, type_, owned_labels(cluster.name))
        except RateLimitError as e:
            _record("create", "error")
            errors.append(e)
            rate_limited = True
            continue
        except HCloudError as e:
            _record("create", "error")
            errors.append(e)
            continue
        current[(pg.name, pg.type)] = pg
        _record("create", "success")
        scope.recorder.placement_group_created(pg.name)

    cluster.status["hcloudPlacementGroups"] = [
        _status_entry(current[key]) for key in desired if key in current
    ]

    if errors:
        # A rate limit takes precedence so the backoff is honoured.
        first = next((e for e in errors if isinstance(e, RateLimitError)), errors[0])
        return scope.handle_remote_error(
            first,
            COND_PLACEMENT_GROUPS_SYNCED,
            REASON_PLACEMENT_GROUPS_SYNC_FAILED,
            f"{len(errors)} placement group operations failed",
        )

    mark_true(scope.conditions, COND_PLACEMENT_GROUPS_SYNCED)
    scope.api_call_succeeded()
    return None


def delete_placement_groups(scope: ClusterScope) -> ReconcileResult | None:
    """Delete every placement group owned by the cluster."""
    cluster = scope.cluster
    try:
        for pg in scope.client.list_placement_groups(label_selector=owned_selector(cluster.name)):
            try:
                scope.client.delete_placement_group(pg.id)
            except NotFoundError:
                pass
            _record("delete", "success")
            scope.recorder.placement_group_deleted(pg.name)
    except HCloudError as e:
        return scope.handle_remote_error(
            e, COND_PLACEMENT_GROUPS_SYNCED, REASON_PLACEMENT_GROUPS_SYNC_FAILED, "failed to delete placement groups"
        )

    cluster.status.pop("hcloudPlacementGroups", None)
    return None
