"""Private network reconciliation."""

from __future__ import annotations

import logging

from ..constants import (
    COND_NETWORK_READY,
    REASON_MULTIPLE_NETWORKS_FOUND,
    REASON_NETWORK_DISABLED,
    REASON_NETWORK_RECONCILE_FAILED,
    SEVERITY_ERROR,
)
from ..services.hcloud.errors import HCloudError, NotFoundError
from ..utils.conditions import mark_false, mark_true
from ..utils.labels import owned_labels, owned_selector
from .scope import ClusterScope, ReconcileResult


def reconcile_network(scope: ClusterScope) -> ReconcileResult | None:
    """Ensure exactly one owned network exists when the network is enabled.

    Returns None when the step succeeded, otherwise the result to return
    from the whole pass.
    """
    cluster = scope.cluster
    spec = cluster.spec.network

    if not spec.enabled:
        cluster.status.pop("network", None)
        mark_true(scope.conditions, COND_NETWORK_READY, REASON_NETWORK_DISABLED, "network is disabled")
        return None

    try:
        networks = scope.client.list_networks(label_selector=owned_selector(cluster.name))
        if len(networks) > 1:
            message = f"found {len(networks)} networks owned by cluster {cluster.name}"
            mark_false(scope.conditions, COND_NETWORK_READY, REASON_MULTIPLE_NETWORKS_FOUND, SEVERITY_ERROR, message)
            scope.log(message, reason=REASON_MULTIPLE_NETWORKS_FOUND, level=logging.ERROR)
            return scope.requeue()

        if networks:
            network = networks[0]
        else:
            network = scope.client.create_network(
                name=cluster.name,
                ip_range=spec.cidr_block,
                subnet_ip_range=spec.subnet_cidr_block,
                network_zone=spec.network_zone,
                labels=owned_labels(cluster.name),
            )
            scope.recorder.network_created(network.name)
            scope.log(f"Created network {network.name}", reason="NetworkCreated", network_id=network.id)
    except HCloudError as e:
        return scope.handle_remote_error(
            e, COND_NETWORK_READY, REASON_NETWORK_RECONCILE_FAILED, "failed to reconcile network"
        )

    cluster.status["network"] = {"id": network.id, "ipRange": network.ip_range}
    mark_true(scope.conditions, COND_NETWORK_READY)
    scope.api_call_succeeded()
    return None


def delete_network(scope: ClusterScope) -> ReconcileResult | None:
    """Delete every network owned by the cluster."""
    cluster = scope.cluster
    try:
        for network in scope.client.list_networks(label_selector=owned_selector(cluster.name)):
            try:
                scope.client.delete_network(network.id)
            except NotFoundError:
                pass
            scope.recorder.network_deleted(network.name)
            scope.log(f"Deleted network {network.name}", reason="NetworkDeleted", network_id=network.id)
    except HCloudError as e:
        return scope.handle_remote_error(
            e, COND_NETWORK_READY, REASON_NETWORK_RECONCILE_FAILED, "failed to delete network"
        )

    cluster.status.pop("network", None)
    return None
