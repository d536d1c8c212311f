"""Utility functions for the Hetzner Cluster Operator."""

from .conditions import get_condition, is_true, mark_false, mark_true, update_condition
from .context import get_context_dict, get_correlation_id, propagate_trace_context, with_correlation_id
from .events import EventRecorder, emit_event
from .labels import is_owned, owned_labels, owned_selector
from .rate_limit import reconcile_rate_limit, remaining_rate_limit_wait
from .secrets import get_secret_value, validate_token

__all__ = [
    "update_condition",
    "mark_true",
    "mark_false",
    "get_condition",
    "is_true",
    "emit_event",
    "EventRecorder",
    "is_owned",
    "owned_labels",
    "owned_selector",
    "reconcile_rate_limit",
    "remaining_rate_limit_wait",
    "get_secret_value",
    "validate_token",
    "get_correlation_id",
    "with_correlation_id",
    "get_context_dict",
    "propagate_trace_context",
]
