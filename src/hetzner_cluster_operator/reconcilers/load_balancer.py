"""Control plane load balancer reconciliation.

The load balancer is found through the cluster's ownership label first, so a
load balancer created earlier is still recognised after ``spec.name`` changes.
Only when nothing carries the label is a named load balancer looked up (and
adopted) or a new one created.
"""

from __future__ import annotations

import logging
import random
import string
from typing import Any

from .. import metrics
from ..constants import (
    COND_LOAD_BALANCER_READY,
    REASON_LOAD_BALANCER_DISABLED,
    REASON_LOAD_BALANCER_FAILED_TO_OWN,
    REASON_LOAD_BALANCER_SERVICE_SYNC_FAILED,
    REASON_LOAD_BALANCER_UPDATE_FAILED,
    SEVERITY_ERROR,
)
from ..services.hcloud.errors import HCloudError, NotFoundError, RateLimitError
from ..services.hcloud.models import HetznerCluster, LoadBalancerSpec, RemoteLoadBalancer, RemoteService
from ..utils.conditions import mark_false, mark_true
from ..utils.labels import is_owned, owned_by_other_cluster, owned_labels, owned_selector, without_ownership
from .scope import ClusterScope, ReconcileResult

_NAME_SUFFIX_LENGTH = 5
_NAME_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits


class LoadBalancerOwnershipError(Exception):
    """The load balancer could not be bound to this cluster."""


def generate_load_balancer_name(cluster_name: str) -> str:
    suffix = "".join(random.choices(_NAME_SUFFIX_ALPHABET, k=_NAME_SUFFIX_LENGTH))
    return f"{cluster_name}-kube-apiserver-{suffix}"


def api_server_listen_port(cluster: HetznerCluster) -> int:
    """Port the kube-apiserver service listens on at the load balancer."""
    endpoint = cluster.spec.control_plane_endpoint
    if endpoint is not None and endpoint.port != 0:
        return endpoint.port
    return cluster.spec.control_plane_load_balancer.port


def desired_services(cluster: HetznerCluster) -> dict[int, RemoteService]:
    """Desired services keyed by listen port.

    Extra services colliding with the kube-apiserver listen port are ignored.
    """
    lb_spec = cluster.spec.control_plane_load_balancer
    listen_port = api_server_listen_port(cluster)
    services = {listen_port: RemoteService(listen_port=listen_port, destination_port=lb_spec.port, protocol="tcp")}
    for extra in lb_spec.extra_services:
        if extra.listen_port in services:
            continue
        services[extra.listen_port] = RemoteService(
            listen_port=extra.listen_port,
            destination_port=extra.destination_port,
            protocol=extra.protocol,
        )
    return services


def diff_services(
    desired: dict[int, RemoteService],
    observed: list[RemoteService],
) -> tuple[list[RemoteService], list[RemoteService], list[int]]:
    """Compare services by listen port.

    Returns:
        Services to add, services to update, and listen ports to delete
    """
    observed_by_port = {service.listen_port: service for service in observed}
    to_add = [service for port, service in sorted(desired.items()) if port not in observed_by_port]
    to_update = [
        service
        for port, service in sorted(desired.items())
        if port in observed_by_port and observed_by_port[port] != service
    ]
    to_delete = sorted(port for port in observed_by_port if port not in desired)
    return to_add, to_update, to_delete


def _record(operation: str, result: str) -> None:
    metrics.load_balancer_operations_total.labels(operation=operation, result=result).inc()


def _is_adopted(cluster: HetznerCluster, lb: RemoteLoadBalancer) -> bool:
    """Whether the load balancer was adopted rather than created by us.

    Falls back to ``spec.name`` being set when status does not say, so a
    user supplied load balancer is never deleted by mistake.
    """
    lb_status = cluster.status.get("controlPlaneLoadBalancer") or {}
    if lb_status.get("id") == lb.id and "adopted" in lb_status:
        return bool(lb_status["adopted"])
    return cluster.spec.control_plane_load_balancer.name is not None


def _create(scope: ClusterScope, lb_spec: LoadBalancerSpec) -> RemoteLoadBalancer:
    cluster = scope.cluster
    network_id = (cluster.status.get("network") or {}).get("id")
    name = generate_load_balancer_name(cluster.name)
    try:
        lb = scope.client.create_load_balancer(
            name=name,
            load_balancer_type=lb_spec.type,
            location=lb_spec.region,
            algorithm=lb_spec.algorithm,
            labels=owned_labels(cluster.name),
            services=list(desired_services(cluster).values()),
            network_id=network_id,
        )
    except HCloudError:
        _record("create", "error")
        raise
    _record("create", "success")
    scope.recorder.load_balancer_created(lb.name)
    scope.log(f"Created load balancer {lb.name}", reason="LoadBalancerCreated", load_balancer_id=lb.id)
    return lb


def _adopt_by_name(scope: ClusterScope, name: str) -> RemoteLoadBalancer:
    cluster = scope.cluster
    matches = scope.client.list_load_balancers(name=name)
    if not matches:
        raise LoadBalancerOwnershipError(f"load balancer {name} not found")
    if len(matches) > 1:
        raise LoadBalancerOwnershipError(f"found {len(matches)} load balancers named {name}")

    lb = matches[0]
    if is_owned(lb.labels, cluster.name):
        return lb
    if owned_by_other_cluster(lb.labels, cluster.name):
        raise LoadBalancerOwnershipError(f"load balancer {name} is owned by another cluster")

    labels = dict(lb.labels)
    labels.update(owned_labels(cluster.name))
    try:
        lb = scope.client.update_load_balancer(lb.id, labels=labels)
    except HCloudError:
        _record("adopt", "error")
        raise
    _record("adopt", "success")
    scope.recorder.load_balancer_adopted(lb.name)
    scope.log(f"Adopted load balancer {lb.name}", reason="LoadBalancerAdopted", load_balancer_id=lb.id)
    return lb


def _find_or_create(scope: ClusterScope) -> tuple[RemoteLoadBalancer, bool]:
    """Return the cluster's load balancer and whether it was adopted."""
    cluster = scope.cluster
    lb_spec = cluster.spec.control_plane_load_balancer

    owned = scope.client.list_load_balancers(label_selector=owned_selector(cluster.name))
    if len(owned) > 1:
        raise LoadBalancerOwnershipError(
            f"found {len(owned)} load balancers owned by cluster {cluster.name}"
        )
    if owned:
        return owned[0], _is_adopted(cluster, owned[0])

    if lb_spec.name is None:
        return _create(scope, lb_spec), False
    return _adopt_by_name(scope, lb_spec.name), True


def _sync_properties(scope: ClusterScope, lb: RemoteLoadBalancer) -> RemoteLoadBalancer:
    lb_spec = scope.cluster.spec.control_plane_load_balancer
    client = scope.client

    if lb_spec.name is not None and lb.name != lb_spec.name:
        old_name = lb.name
        lb = client.update_load_balancer(lb.id, name=lb_spec.name)
        scope.recorder.load_balancer_updated(lb.name, f"renamed from {old_name}")
        _record("rename", "success")

    if lb.type != lb_spec.type:
        client.change_load_balancer_type(lb.id, lb_spec.type)
        scope.recorder.load_balancer_updated(lb.name, f"type changed from {lb.type} to {lb_spec.type}")
        lb.type = lb_spec.type
        _record("change_type", "success")

    if lb.algorithm != lb_spec.algorithm:
        client.change_load_balancer_algorithm(lb.id, lb_spec.algorithm)
        scope.recorder.load_balancer_updated(
            lb.name, f"algorithm changed from {lb.algorithm} to {lb_spec.algorithm}"
        )
        lb.algorithm = lb_spec.algorithm
        _record("change_algorithm", "success")

    return lb


def _sync_services(scope: ClusterScope, lb: RemoteLoadBalancer) -> list[HCloudError]:
    """Apply the service diff, continuing past individual failures.

    A rate limit aborts immediately since every further call would fail too.
    """
    to_add, to_update, to_delete = diff_services(desired_services(scope.cluster), lb.services)
    client = scope.client
    errors: list[HCloudError] = []

    operations: list[tuple[str, Any, Any]] = []
    operations += [("delete_service", client.delete_service, port) for port in to_delete]
    operations += [("update_service", client.update_service, service) for service in to_update]
    operations += [("add_service", client.add_service, service) for service in to_add]

    for operation, call, argument in operations:
        try:
            call(lb.id, argument)
        except RateLimitError:
            _record(operation, "error")
            raise
        except HCloudError as e:
            _record(operation, "error")
            errors.append(e)
            continue
        _record(operation, "success")

    if operations and not errors:
        scope.recorder.load_balancer_updated(
            lb.name, f"services synced ({len(to_add)} added, {len(to_update)} updated, {len(to_delete)} removed)"
        )
    return errors


def _status_for(lb: RemoteLoadBalancer, adopted: bool) -> dict[str, Any]:
    return {
        "id": lb.id,
        "name": lb.name,
        "ipv4": lb.ipv4,
        "ipv6": lb.ipv6,
        "internalIP": lb.private_ip,
        "targetCount": lb.target_count,
        "adopted": adopted,
    }


def reconcile_load_balancer(scope: ClusterScope) -> ReconcileResult | None:
    """Converge the control plane load balancer towards the spec.

    Returns None when the step succeeded, otherwise the result to return
    from the whole pass.
    """
    cluster = scope.cluster
    lb_spec = cluster.spec.control_plane_load_balancer

    if not lb_spec.enabled:
        cluster.status.pop("controlPlaneLoadBalancer", None)
        mark_true(
            scope.conditions,
            COND_LOAD_BALANCER_READY,
            REASON_LOAD_BALANCER_DISABLED,
            "control plane load balancer is disabled",
        )
        return None

    try:
        lb, adopted = _find_or_create(scope)
    except LoadBalancerOwnershipError as e:
        mark_false(scope.conditions, COND_LOAD_BALANCER_READY, REASON_LOAD_BALANCER_FAILED_TO_OWN, SEVERITY_ERROR, str(e))
        scope.log(str(e), reason=REASON_LOAD_BALANCER_FAILED_TO_OWN, level=logging.ERROR)
        return scope.requeue()
    except HCloudError as e:
        return scope.handle_remote_error(
            e, COND_LOAD_BALANCER_READY, REASON_LOAD_BALANCER_FAILED_TO_OWN, "failed to find or create load balancer"
        )

    # Status is recorded as soon as the load balancer is known so a failure
    # below cannot lose track of a freshly created one.
    cluster.status["controlPlaneLoadBalancer"] = _status_for(lb, adopted)

    try:
        lb = _sync_properties(scope, lb)
    except HCloudError as e:
        return scope.handle_remote_error(
            e, COND_LOAD_BALANCER_READY, REASON_LOAD_BALANCER_UPDATE_FAILED, f"failed to update load balancer {lb.name}"
        )

    try:
        errors = _sync_services(scope, lb)
    except HCloudError as e:
        errors = [e]
    if errors:
        return scope.handle_remote_error(
            errors[0],
            COND_LOAD_BALANCER_READY,
            REASON_LOAD_BALANCER_SERVICE_SYNC_FAILED,
            f"failed to sync {len(errors)} services on load balancer {lb.name}",
        )

    cluster.status["controlPlaneLoadBalancer"] = _status_for(lb, adopted)
    mark_true(scope.conditions, COND_LOAD_BALANCER_READY)
    scope.api_call_succeeded()
    return None


def delete_load_balancer(scope: ClusterScope) -> ReconcileResult | None:
    """Delete a created load balancer or release an adopted one.

    Releasing removes only this cluster's ownership label and leaves the
    load balancer in place.
    """
    cluster = scope.cluster
    try:
        for lb in scope.client.list_load_balancers(label_selector=owned_selector(cluster.name)):
            if _is_adopted(cluster, lb):
                scope.client.update_load_balancer(lb.id, labels=without_ownership(lb.labels, cluster.name))
                _record("release", "success")
                scope.recorder.load_balancer_released(lb.name)
                scope.log(f"Released load balancer {lb.name}", reason="LoadBalancerReleased", load_balancer_id=lb.id)
                continue
            try:
                scope.client.delete_load_balancer(lb.id)
            except NotFoundError:
                pass
            _record("delete", "success")
            scope.recorder.load_balancer_deleted(lb.name)
            scope.log(f"Deleted load balancer {lb.name}", reason="LoadBalancerDeleted", load_balancer_id=lb.id)
    except HCloudError as e:
        return scope.handle_remote_error(
            e, COND_LOAD_BALANCER_READY, REASON_LOAD_BALANCER_UPDATE_FAILED, "failed to remove load balancer"
        )

    cluster.status.pop("controlPlaneLoadBalancer", None)
    return None
