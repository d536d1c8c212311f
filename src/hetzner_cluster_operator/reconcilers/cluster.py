"""Orchestration of a full HetznerCluster reconciliation pass."""

from __future__ import annotations

import logging
from typing import Callable

from ..constants import (
    API_GROUP_VERSION,
    COND_LOAD_BALANCER_READY,
    COND_NETWORK_READY,
    COND_READY,
    COND_SPEC_VALID,
    KIND_HETZNER_CLUSTER,
    RATE_LIMIT_WAIT_SECONDS,
    REASON_DELETING,
    REASON_HCLOUD_CREDENTIALS_INVALID,
    REASON_HETZNER_SECRET_UNREACHABLE,
    REASON_INVALID_SPEC,
    REQUEUE_SECONDS,
    SEVERITY_ERROR,
    SEVERITY_INFO,
)
from ..builders.cluster import validate_cluster_spec
from ..services.hcloud.base import CloudClient
from ..services.hcloud.client import HCloudClient
from ..services.hcloud.models import HetznerCluster
from ..tracing import add_span_attribute, trace_span
from ..utils.conditions import (
    is_true,
    mark_false,
    mark_true,
    set_endpoint_condition,
    set_ready_condition,
    set_token_available_condition,
)
from ..utils.errors import sanitize_exception
from ..utils.events import EventRecorder, object_reference
from ..utils.rate_limit import remaining_rate_limit_wait
from ..utils.secrets import CredentialError, CredentialSource, HetznerSecretUnreachableError
from .endpoint import control_plane_endpoint_ready, set_control_plane_endpoint
from .load_balancer import delete_load_balancer, reconcile_load_balancer
from .network import delete_network, reconcile_network
from .placement_groups import delete_placement_groups, reconcile_placement_groups
from .scope import ClusterScope, InvalidClusterSpecError, ReconcileResult
from .servers import reconcile_servers, wait_for_servers_gone

ClientFactory = Callable[[str], CloudClient]
Step = Callable[[ClusterScope], "ReconcileResult | None"]

_RECONCILE_STEPS: tuple[Step, ...] = (
    reconcile_network,
    reconcile_load_balancer,
    reconcile_placement_groups,
    reconcile_servers,
)

# Servers are checked after the load balancer because they are its targets,
# and before the network and placement groups they are attached to.
_DELETE_STEPS: tuple[Step, ...] = (
    delete_load_balancer,
    wait_for_servers_gone,
    delete_placement_groups,
    delete_network,
)


class ClusterReconciler:
    """Converges the Hetzner resources of one HetznerCluster per call.

    Holds no per-cluster state: the cloud client is built from the cluster's
    own token on every pass.
    """

    def __init__(
        self,
        credentials: CredentialSource,
        client_factory: ClientFactory = HCloudClient,
        rate_limit_wait: float = RATE_LIMIT_WAIT_SECONDS,
        requeue_seconds: float = REQUEUE_SECONDS,
    ) -> None:
        self.credentials = credentials
        self.client_factory = client_factory
        self.rate_limit_wait = rate_limit_wait
        self.requeue_seconds = requeue_seconds
        self.logger = logging.getLogger(__name__)

    def reconcile(self, cluster: HetznerCluster, recorder: EventRecorder | None = None) -> ReconcileResult:
        """Run one pass and report whether and when to run again.

        Raises:
            InvalidClusterSpecError: If the spec fails validation; status is
                updated before raising
        """
        recorder = recorder or self._default_recorder(cluster)
        if cluster.deletion_requested:
            return self.reconcile_delete(cluster, recorder)

        result = self._rate_limit_gate(cluster)
        if result is not None:
            return result

        errors = validate_cluster_spec(cluster.spec)
        if errors:
            mark_false(cluster.conditions, COND_SPEC_VALID, REASON_INVALID_SPEC, SEVERITY_ERROR, "; ".join(errors))
            self._update_readiness(cluster)
            raise InvalidClusterSpecError(errors)
        mark_true(cluster.conditions, COND_SPEC_VALID)

        scope, result, _ = self._build_scope(cluster, recorder)
        if scope is None:
            self._update_readiness(cluster)
            return result

        result = self._run_steps(scope, _RECONCILE_STEPS)
        endpoint_changed = set_control_plane_endpoint(cluster)
        self._update_readiness(cluster)
        if result is None:
            result = ReconcileResult()
        result.endpoint_changed = endpoint_changed
        return result

    def reconcile_delete(self, cluster: HetznerCluster, recorder: EventRecorder | None = None) -> ReconcileResult:
        """Tear down owned resources.

        A result without ``requeue_after`` means the finalizer may be removed.
        """
        recorder = recorder or self._default_recorder(cluster)
        cluster.status["ready"] = False
        mark_false(cluster.conditions, COND_READY, REASON_DELETING, SEVERITY_INFO, "cluster is being deleted")

        result = self._rate_limit_gate(cluster)
        if result is not None:
            return result

        scope, result, error = self._build_scope(cluster, recorder)
        if scope is None:
            if isinstance(error, HetznerSecretUnreachableError):
                # Nothing can be cleaned up without the secret; do not block deletion.
                self.logger.warning(
                    f"Hetzner secret for {cluster.namespace}/{cluster.name} is gone, "
                    "skipping cleanup of Hetzner resources"
                )
                return ReconcileResult()
            return result

        return self._run_steps(scope, _DELETE_STEPS) or ReconcileResult()

    def _default_recorder(self, cluster: HetznerCluster) -> EventRecorder:
        return EventRecorder(
            object_reference(API_GROUP_VERSION, KIND_HETZNER_CLUSTER, cluster.name, cluster.namespace, cluster.uid)
        )

    def _rate_limit_gate(self, cluster: HetznerCluster) -> ReconcileResult | None:
        remaining = remaining_rate_limit_wait(cluster.conditions, self.rate_limit_wait)
        if remaining > 0:
            self.logger.info(
                f"Hetzner API rate limited for {cluster.namespace}/{cluster.name}, "
                f"skipping pass for {remaining:.0f}s"
            )
            return ReconcileResult(requeue_after=remaining)
        return None

    def _build_scope(
        self, cluster: HetznerCluster, recorder: EventRecorder
    ) -> tuple[ClusterScope | None, ReconcileResult | None, CredentialError | None]:
        try:
            token = self.credentials.get_token(cluster.namespace, cluster.spec.secret_ref)
        except CredentialError as e:
            reason = (
                REASON_HETZNER_SECRET_UNREACHABLE
                if isinstance(e, HetznerSecretUnreachableError)
                else REASON_HCLOUD_CREDENTIALS_INVALID
            )
            set_token_available_condition(cluster.conditions, False, reason, sanitize_exception(e))
            self.logger.warning(f"Hetzner credentials unavailable for {cluster.namespace}/{cluster.name}: {reason}")
            return None, ReconcileResult(requeue_after=self.requeue_seconds), e

        set_token_available_condition(cluster.conditions, True)
        scope = ClusterScope(
            cluster=cluster,
            client=self.client_factory(token),
            recorder=recorder,
            rate_limit_wait=self.rate_limit_wait,
            requeue_seconds=self.requeue_seconds,
        )
        return scope, None, None

    def _run_steps(self, scope: ClusterScope, steps: tuple[Step, ...]) -> ReconcileResult | None:
        for step in steps:
            with trace_span(step.__name__, kind=KIND_HETZNER_CLUSTER):
                result = step(scope)
            if result is not None:
                add_span_attribute("reconcile.short_circuit", step.__name__)
                return result
        return None

    def _update_readiness(self, cluster: HetznerCluster) -> None:
        endpoint_ready = control_plane_endpoint_ready(cluster)
        set_endpoint_condition(cluster.conditions, endpoint_ready)

        ready = (
            endpoint_ready
            and is_true(cluster.conditions, COND_SPEC_VALID)
            and is_true(cluster.conditions, COND_NETWORK_READY)
            and is_true(cluster.conditions, COND_LOAD_BALANCER_READY)
        )
        cluster.status["ready"] = ready
        set_ready_condition(
            cluster.conditions,
            ready,
            "cluster infrastructure is ready" if ready else "cluster infrastructure is not ready",
            cluster.generation,
        )
