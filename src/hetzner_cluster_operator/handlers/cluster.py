"""Handler for HetznerCluster CRD."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Any, Iterator

import kopf

from ..builders.cluster import create_cluster_from_resource
from ..constants import API_GROUP_VERSION, KIND_HETZNER_CLUSTER, RESYNC_INTERVAL_SECONDS
from ..reconcilers.cluster import ClusterReconciler
from ..reconcilers.scope import InvalidClusterSpecError, ReconcileResult
from ..services.hcloud.models import HetznerCluster
from ..tracing import add_span_attribute, trace_span
from ..utils.events import EventRecorder
from ..utils.secrets import KubernetesSecretCredentialSource
from .base import BaseHandler
from .shared import get_core_client


class HetznerClusterHandler(BaseHandler):
    """Handler for HetznerCluster resources.

    kopf runs the resync timer as a separate task from the change handlers,
    so passes are serialized here with one lock per object uid.
    """

    def __init__(self, reconciler: ClusterReconciler | None = None):
        super().__init__(KIND_HETZNER_CLUSTER)
        self._reconciler = reconciler
        self._pass_locks: dict[str, threading.Lock] = {}
        self._pass_locks_guard = threading.Lock()

    def _lock_key(self, meta: dict[str, Any]) -> str:
        return meta.get("uid") or f"{meta.get('namespace')}/{meta.get('name')}"

    @contextmanager
    def exclusive_pass(self, meta: dict[str, Any], wait: bool = True) -> Iterator[bool]:
        """Hold the pass lock of one cluster.

        Args:
            meta: Kubernetes resource metadata
            wait: Block until a running pass finishes; otherwise give up at once

        Yields:
            Whether the lock was acquired
        """
        with self._pass_locks_guard:
            lock = self._pass_locks.setdefault(self._lock_key(meta), threading.Lock())
        acquired = lock.acquire(blocking=wait)
        try:
            yield acquired
        finally:
            if acquired:
                lock.release()

    def _forget(self, meta: dict[str, Any]) -> None:
        with self._pass_locks_guard:
            self._pass_locks.pop(self._lock_key(meta), None)

    @property
    def reconciler(self) -> ClusterReconciler:
        # Built on first use so importing the handlers needs no cluster config.
        if self._reconciler is None:
            self._reconciler = ClusterReconciler(KubernetesSecretCredentialSource(get_core_client()))
        return self._reconciler

    def _persist(
        self,
        patch: kopf.Patch,
        meta: dict[str, Any],
        status: dict[str, Any],
        cluster: HetznerCluster,
        result: ReconcileResult | None = None,
    ) -> None:
        """Write the reconciled status (and endpoint, if changed) to the patch."""
        status_data = dict(cluster.status)
        # Merge patches only drop keys that are explicitly set to null.
        for key in status or {}:
            if key not in status_data:
                status_data[key] = None
        self.update_resource_status(patch, meta, bool(cluster.status.get("ready")), status_data)

        if result is not None and result.endpoint_changed and cluster.spec.control_plane_endpoint is not None:
            patch.spec["controlPlaneEndpoint"] = cluster.spec.control_plane_endpoint.to_dict()
            self.log_info(
                meta,
                f"Control plane endpoint set to {cluster.spec.control_plane_endpoint.host}:"
                f"{cluster.spec.control_plane_endpoint.port}",
                event="endpoint",
                reason="ControlPlaneEndpointSet",
            )

    def reconcile(
        self,
        spec: dict[str, Any],
        meta: dict[str, Any],
        status: dict[str, Any],
        patch: kopf.Patch,
        body: dict[str, Any],
        wait: bool = True,
    ) -> None:
        """Reconcile HetznerCluster resource.

        With ``wait=False`` the pass is skipped when another one is running for
        the same object.
        """
        with self.exclusive_pass(meta, wait=wait) as acquired:
            if not acquired:
                self.log_info(meta, "Another pass is running, skipping", event="skip", reason="PassInProgress")
                return
            self._reconcile(spec, meta, status, patch, body)

    def delete(
        self,
        spec: dict[str, Any],
        meta: dict[str, Any],
        status: dict[str, Any],
        patch: kopf.Patch,
        body: dict[str, Any],
    ) -> None:
        """Handle HetznerCluster resource deletion."""
        with self.exclusive_pass(meta):
            self._delete(spec, meta, status, patch, body)
        self._forget(meta)

    def _reconcile(
        self,
        spec: dict[str, Any],
        meta: dict[str, Any],
        status: dict[str, Any],
        patch: kopf.Patch,
        body: dict[str, Any],
    ) -> None:
        """Run one pass and write its outcome to the patch."""
        name = meta.get("name", "unknown")
        cluster = create_cluster_from_resource(spec, meta, status)

        with trace_span("reconcile_hetzner_cluster", kind=KIND_HETZNER_CLUSTER, attributes={"cluster.name": name}):
            try:
                result = self.reconciler.reconcile(cluster, EventRecorder(body))
            except InvalidClusterSpecError as e:
                self._persist(patch, meta, status, cluster)
                self.handle_validation_error(body, f"Invalid HetznerCluster spec: {e}")
                return

            self._persist(patch, meta, status, cluster, result)
            add_span_attribute("cluster.ready", bool(cluster.status.get("ready")))

            if result.requeue:
                self.log_info(
                    meta,
                    f"Requeueing in {result.requeue_after:.0f}s",
                    event="requeue",
                    reason="Requeue",
                )
                raise kopf.TemporaryError("HetznerCluster not converged yet", delay=result.requeue_after)

    def _delete(
        self,
        spec: dict[str, Any],
        meta: dict[str, Any],
        status: dict[str, Any],
        patch: kopf.Patch,
        body: dict[str, Any],
    ) -> None:
        """Run one teardown pass; the finalizer goes once it completes."""
        self.log_info(meta, "HetznerCluster is being deleted", event="deletion", reason="Deletion")
        cluster = create_cluster_from_resource(spec, meta, status)

        with trace_span("delete_hetzner_cluster", kind=KIND_HETZNER_CLUSTER, attributes={"cluster.name": cluster.name}):
            result = self.reconciler.reconcile_delete(cluster, EventRecorder(body))
            self._persist(patch, meta, status, cluster)

            if result.requeue:
                raise kopf.TemporaryError("Hetzner resources are still being removed", delay=result.requeue_after)

        self.remove_finalizer(meta, patch)


# Global handler instance
_handler = HetznerClusterHandler()


@kopf.on.create(API_GROUP_VERSION, KIND_HETZNER_CLUSTER)
@kopf.on.update(API_GROUP_VERSION, KIND_HETZNER_CLUSTER)
@kopf.on.resume(API_GROUP_VERSION, KIND_HETZNER_CLUSTER)
def handle_hetzner_cluster(
    spec: dict[str, Any],
    meta: dict[str, Any],
    status: dict[str, Any],
    patch: kopf.Patch,
    body: dict[str, Any],
    **kwargs: Any,
) -> None:
    """Handle HetznerCluster resource reconciliation."""
    if meta.get("deletionTimestamp"):
        return
    _handler.ensure_finalizer(meta, patch)
    _handler.reconcile_with_metrics(body, lambda: _handler.reconcile(spec, meta, status, patch, body))


@kopf.timer(API_GROUP_VERSION, KIND_HETZNER_CLUSTER, interval=RESYNC_INTERVAL_SECONDS, initial_delay=RESYNC_INTERVAL_SECONDS)
def resync_hetzner_cluster(
    spec: dict[str, Any],
    meta: dict[str, Any],
    status: dict[str, Any],
    patch: kopf.Patch,
    body: dict[str, Any],
    **kwargs: Any,
) -> None:
    """Periodically re-converge so out-of-band changes are picked up."""
    if meta.get("deletionTimestamp"):
        return
    _handler.reconcile_with_metrics(body, lambda: _handler.reconcile(spec, meta, status, patch, body, wait=False))


@kopf.on.delete(API_GROUP_VERSION, KIND_HETZNER_CLUSTER)
def handle_hetzner_cluster_delete(
    spec: dict[str, Any],
    meta: dict[str, Any],
    status: dict[str, Any],
    patch: kopf.Patch,
    body: dict[str, Any],
    **kwargs: Any,
) -> None:
    """Handle HetznerCluster resource deletion."""
    _handler.reconcile_with_metrics(body, lambda: _handler.delete(spec, meta, status, patch, body))
