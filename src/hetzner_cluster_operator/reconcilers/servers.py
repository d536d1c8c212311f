"""Discovery of servers attached to the cluster."""

from __future__ import annotations

from ..constants import REASON_SERVER_LIST_FAILED
from ..services.hcloud.base import CloudClient
from ..services.hcloud.errors import HCloudError
from ..utils.labels import owned_selector
from .scope import ClusterScope, ReconcileResult


def reconcile_servers(scope: ClusterScope) -> ReconcileResult | None:
    """Record how many servers carry the cluster's ownership label."""
    try:
        count = count_owned_servers(scope.client, scope.cluster.name)
    except HCloudError as e:
        return scope.handle_remote_error(e, None, REASON_SERVER_LIST_FAILED, "failed to list servers")

    scope.cluster.status["serverCount"] = count
    scope.api_call_succeeded()
    return None


def wait_for_servers_gone(scope: ClusterScope) -> ReconcileResult | None:
    """Hold teardown of shared resources while owned servers still exist."""
    result = reconcile_servers(scope)
    if result is not None:
        return result

    count = scope.cluster.status.get("serverCount", 0)
    if count:
        scope.log(f"Waiting for {count} servers to be deleted", reason="WaitingForServers")
        return scope.requeue()
    return None


def count_owned_servers(client: CloudClient, cluster_name: str) -> int:
    return len(client.list_servers(label_selector=owned_selector(cluster_name)))
