"""Prometheus metrics for the Hetzner Cluster Operator."""

from prometheus_client import Counter, Histogram

# Reconciliation metrics
reconcile_total = Counter(
    "hetzner_cluster_operator_reconcile_total",
    "Total number of reconciliations",
    ["kind", "result"],
)

reconcile_duration_seconds = Histogram(
    "hetzner_cluster_operator_reconcile_duration_seconds",
    "Duration of reconciliations in seconds",
    ["kind"],
    buckets=[0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
)

error_total = Counter(
    "hetzner_cluster_operator_error_total",
    "Total number of reconciliation errors",
    ["kind", "error_type"],
)

resource_status_total = Counter(
    "hetzner_cluster_operator_resource_status_total",
    "Resource readiness observed at the end of a reconciliation",
    ["kind", "status"],
)

# Hetzner resource operation metrics
load_balancer_operations_total = Counter(
    "hetzner_cluster_operator_load_balancer_operations_total",
    "Total number of load balancer operations",
    ["operation", "result"],
)

placement_group_operations_total = Counter(
    "hetzner_cluster_operator_placement_group_operations_total",
    "Total number of placement group operations",
    ["operation", "result"],
)

# API call metrics
api_call_total = Counter(
    "hetzner_cluster_operator_api_call_total",
    "Total number of API calls",
    ["api_type", "operation", "result"],
)

api_call_duration_seconds = Histogram(
    "hetzner_cluster_operator_api_call_duration_seconds",
    "Duration of API calls in seconds",
    ["api_type", "operation"],
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0],
)

rate_limit_hits_total = Counter(
    "hetzner_cluster_operator_rate_limit_hits_total",
    "Total number of rate limit hits",
    ["api_type"],
)
