"""Shared state and error policy for one reconciliation pass."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from ..constants import (
    CONTROLLER_NAME,
    KIND_HETZNER_CLUSTER,
    RATE_LIMIT_WAIT_SECONDS,
    REASON_HCLOUD_CREDENTIALS_INVALID,
    REASON_RATE_LIMIT_EXCEEDED,
    REQUEUE_SECONDS,
    SEVERITY_ERROR,
    SEVERITY_WARNING,
)
from ..logging import log_resource_event
from ..services.hcloud.base import CloudClient
from ..services.hcloud.errors import (
    ConflictError,
    HCloudError,
    NotFoundError,
    RateLimitError,
    UnauthorizedError,
)
from ..services.hcloud.models import HetznerCluster
from ..utils.conditions import (
    mark_api_reachable,
    mark_api_unreachable,
    mark_false,
    mark_rate_limited,
    set_token_available_condition,
)
from ..utils.errors import sanitize_exception
from ..utils.events import EventRecorder

logger = logging.getLogger(__name__)


class InvalidClusterSpecError(Exception):
    """The desired spec violates an admission invariant."""

    def __init__(self, errors: list[str]) -> None:
        super().__init__("; ".join(errors))
        self.errors = errors


@dataclass
class ReconcileResult:
    """Outcome of a reconciliation pass.

    ``requeue_after`` is None when the pass converged; otherwise the caller
    should run the reconciler again after that many seconds.
    """

    requeue_after: float | None = None
    endpoint_changed: bool = False

    @property
    def requeue(self) -> bool:
        return self.requeue_after is not None


@dataclass
class ClusterScope:
    """Everything a reconciliation step needs, passed explicitly."""

    cluster: HetznerCluster
    client: CloudClient
    recorder: EventRecorder
    rate_limit_wait: float = RATE_LIMIT_WAIT_SECONDS
    requeue_seconds: float = REQUEUE_SECONDS

    @property
    def conditions(self) -> list[dict[str, Any]]:
        return self.cluster.conditions

    def log(self, message: str, reason: str = "Info", level: int = logging.INFO, **kwargs: Any) -> None:
        log_resource_event(
            logger,
            controller=CONTROLLER_NAME,
            resource_kind=KIND_HETZNER_CLUSTER,
            resource_name=self.cluster.name,
            namespace=self.cluster.namespace,
            uid=self.cluster.uid,
            event="reconcile",
            reason=reason,
            message=message,
            level=level,
            **kwargs,
        )

    def requeue(self) -> ReconcileResult:
        return ReconcileResult(requeue_after=self.requeue_seconds)

    def api_call_succeeded(self) -> None:
        mark_api_reachable(self.conditions)

    def handle_remote_error(
        self,
        error: HCloudError,
        condition_type: str | None,
        reason: str,
        message: str,
    ) -> ReconcileResult:
        """Record a failed Hetzner API call and decide when to retry.

        Rate limits back off for ``rate_limit_wait``; every other failure is
        retried after ``requeue_seconds``. Nothing here is terminal.
        """
        detail = f"{message}: {sanitize_exception(error)}"

        if isinstance(error, RateLimitError):
            mark_rate_limited(self.conditions, detail)
            if condition_type is not None:
                mark_false(self.conditions, condition_type, reason, SEVERITY_WARNING, detail)
            self.recorder.rate_limited(self.rate_limit_wait)
            self.log(detail, reason=REASON_RATE_LIMIT_EXCEEDED, level=logging.WARNING)
            return ReconcileResult(requeue_after=self.rate_limit_wait)

        if isinstance(error, UnauthorizedError):
            set_token_available_condition(self.conditions, False, REASON_HCLOUD_CREDENTIALS_INVALID, detail)
            if condition_type is not None:
                mark_false(self.conditions, condition_type, reason, SEVERITY_ERROR, detail)
            self.log(detail, reason=REASON_HCLOUD_CREDENTIALS_INVALID, level=logging.ERROR)
            return self.requeue()

        if isinstance(error, (NotFoundError, ConflictError)):
            # The API answered, it just did not like the request.
            mark_api_reachable(self.conditions)
        else:
            mark_api_unreachable(self.conditions, detail)

        if condition_type is not None:
            mark_false(self.conditions, condition_type, reason, SEVERITY_WARNING, detail)
        self.log(detail, reason=reason, level=logging.WARNING, error_type=type(error).__name__)
        return self.requeue()
