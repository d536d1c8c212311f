"""Tests for Prometheus metrics."""

from __future__ import annotations

from hetzner_cluster_operator.metrics import (
    api_call_duration_seconds,
    api_call_total,
    error_total,
    load_balancer_operations_total,
    placement_group_operations_total,
    rate_limit_hits_total,
    reconcile_duration_seconds,
    reconcile_total,
    resource_status_total,
)


class TestMetricsExist:
    """Test that all expected metrics are defined."""

    def test_counter_names(self):
        """Test counter names; prometheus keeps "_total" out of _name."""
        assert reconcile_total._name == "hetzner_cluster_operator_reconcile"
        assert error_total._name == "hetzner_cluster_operator_error"
        assert resource_status_total._name == "hetzner_cluster_operator_resource_status"
        assert load_balancer_operations_total._name == "hetzner_cluster_operator_load_balancer_operations"
        assert placement_group_operations_total._name == "hetzner_cluster_operator_placement_group_operations"
        assert api_call_total._name == "hetzner_cluster_operator_api_call"
        assert rate_limit_hits_total._name == "hetzner_cluster_operator_rate_limit_hits"

    def test_histogram_names(self):
        """Test histogram names."""
        assert reconcile_duration_seconds._name == "hetzner_cluster_operator_reconcile_duration_seconds"
        assert api_call_duration_seconds._name == "hetzner_cluster_operator_api_call_duration_seconds"


class TestMetricLabels:
    """Test that metrics accept their labels."""

    def test_operation_counters(self):
        """Test that operation counters are labelled by operation and result."""
        before = load_balancer_operations_total.labels(operation="create", result="success")._value.get()

        load_balancer_operations_total.labels(operation="create", result="success").inc()
        placement_group_operations_total.labels(operation="delete", result="error").inc()

        after = load_balancer_operations_total.labels(operation="create", result="success")._value.get()
        assert after == before + 1

    def test_api_metrics(self):
        """Test that API metrics are labelled by api type and operation."""
        api_call_total.labels(api_type="hcloud", operation="list_servers", result="success").inc(0)
        api_call_duration_seconds.labels(api_type="hcloud", operation="list_servers").observe(0.05)
        rate_limit_hits_total.labels(api_type="hcloud").inc(0)
