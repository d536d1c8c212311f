"""Tests for the HetznerCluster builder and spec validation."""

from __future__ import annotations

from typing import Any

from hetzner_cluster_operator.builders.cluster import (
    create_cluster_from_resource,
    create_cluster_spec_from_resource,
    validate_cluster_spec,
)
from hetzner_cluster_operator.services.hcloud.models import ApiEndpoint


def _spec(**overrides: Any) -> dict[str, Any]:
    spec = {
        "controlPlaneRegions": ["fsn1"],
        "controlPlaneLoadBalancer": {"region": "fsn1"},
        "hcloudPlacementGroups": [{"name": "control-plane", "type": "spread"}],
        "sshKeys": {"hcloud": [{"name": "admin"}]},
        "hetznerSecretRef": {"name": "hetzner", "key": {"hcloudToken": "hcloud"}},
    }
    spec.update(overrides)
    return spec


class TestCreateClusterSpec:
    """Test converting the CR spec into models."""

    def test_defaults(self) -> None:
        """Test that defaults are applied."""
        spec = create_cluster_spec_from_resource({})

        lb = spec.control_plane_load_balancer
        assert lb.enabled is True
        assert lb.name is None
        assert lb.type == "lb11"
        assert lb.algorithm == "least_connections"
        assert lb.port == 6443
        assert spec.network.enabled is True
        assert spec.network.cidr_block == "10.0.0.0/16"
        assert spec.network.network_zone == "eu-central"
        assert spec.control_plane_endpoint is None
        assert spec.secret_ref.name == "hetzner"
        assert spec.secret_ref.token_key == "hcloud"

    def test_full_spec(self) -> None:
        """Test that all fields are read."""
        spec = create_cluster_spec_from_resource(
            _spec(
                controlPlaneLoadBalancer={
                    "name": "my-lb",
                    "type": "lb21",
                    "region": "nbg1",
                    "algorithm": "round_robin",
                    "port": 443,
                    "extraServices": [{"listenPort": 80, "destinationPort": 30080, "protocol": "tcp"}],
                },
                controlPlaneEndpoint={"host": "203.0.113.1", "port": 443},
                hcloudNetwork={"enabled": False},
            )
        )

        lb = spec.control_plane_load_balancer
        assert lb.name == "my-lb"
        assert lb.type == "lb21"
        assert lb.port == 443
        assert lb.extra_services[0].listen_port == 80
        assert lb.extra_services[0].destination_port == 30080
        assert spec.control_plane_endpoint == ApiEndpoint(host="203.0.113.1", port=443)
        assert spec.network.enabled is False
        assert spec.placement_groups[0].name == "control-plane"
        assert spec.ssh_keys == ["admin"]

    def test_empty_name_means_unnamed(self) -> None:
        """Test that an empty load balancer name is treated as unset."""
        spec = create_cluster_spec_from_resource(_spec(controlPlaneLoadBalancer={"name": "", "region": "fsn1"}))

        assert spec.control_plane_load_balancer.name is None


class TestCreateCluster:
    """Test building the in-memory cluster."""

    def test_copies_status(self) -> None:
        """Test that the status is deep-copied."""
        status = {"conditions": [{"type": "Ready", "status": "False"}]}

        cluster = create_cluster_from_resource(_spec(), {"name": "prod", "namespace": "capi", "generation": 2}, status)
        cluster.conditions.append({"type": "Other"})

        assert len(status["conditions"]) == 1
        assert cluster.name == "prod"
        assert cluster.namespace == "capi"
        assert cluster.generation == 2
        assert cluster.deletion_requested is False

    def test_deletion_requested(self) -> None:
        """Test that the deletion timestamp is picked up."""
        meta = {"name": "prod", "deletionTimestamp": "2024-01-01T00:00:00Z"}

        cluster = create_cluster_from_resource(_spec(), meta, None)

        assert cluster.deletion_requested is True
        assert cluster.status == {}


class TestValidateClusterSpec:
    """Test spec re-validation."""

    def test_valid_spec(self) -> None:
        """Test that a valid spec has no errors."""
        assert validate_cluster_spec(create_cluster_spec_from_resource(_spec())) == []

    def test_unknown_region(self) -> None:
        """Test that unknown regions are rejected."""
        errors = validate_cluster_spec(create_cluster_spec_from_resource(_spec(controlPlaneRegions=["mars1"])))

        assert any("mars1" in e for e in errors)

    def test_empty_load_balancer_region(self) -> None:
        """Test that an enabled load balancer needs a region."""
        errors = validate_cluster_spec(create_cluster_spec_from_resource(_spec(controlPlaneLoadBalancer={})))

        assert any("region must not be empty" in e for e in errors)

    def test_disabled_load_balancer_needs_no_region(self) -> None:
        """Test that a disabled load balancer is not checked for a region."""
        spec = create_cluster_spec_from_resource(_spec(controlPlaneLoadBalancer={"enabled": False}))

        assert validate_cluster_spec(spec) == []

    def test_invalid_placement_groups(self) -> None:
        """Test placement group name and type checks."""
        spec = create_cluster_spec_from_resource(
            _spec(hcloudPlacementGroups=[{"name": ""}, {"name": "a", "type": "pack"}, {"name": "a"}])
        )

        errors = validate_cluster_spec(spec)

        assert any("name must not be empty" in e for e in errors)
        assert any("pack" in e for e in errors)
        assert any("duplicate placement group" in e for e in errors)

    def test_invalid_extra_services(self) -> None:
        """Test extra service port and protocol checks."""
        spec = create_cluster_spec_from_resource(
            _spec(
                controlPlaneLoadBalancer={
                    "region": "fsn1",
                    "extraServices": [
                        {"listenPort": 0, "destinationPort": 80},
                        {"listenPort": 80, "destinationPort": 80, "protocol": "udp"},
                        {"listenPort": 80, "destinationPort": 81},
                    ],
                }
            )
        )

        errors = validate_cluster_spec(spec)

        assert any("invalid ports" in e for e in errors)
        assert any("udp" in e for e in errors)
        assert any("duplicate listen port 80" in e for e in errors)

    def test_empty_ssh_key_name(self) -> None:
        """Test that SSH key names must be set."""
        errors = validate_cluster_spec(create_cluster_spec_from_resource(_spec(sshKeys={"hcloud": [{"name": ""}]})))

        assert any("ssh key" in e for e in errors)

    def test_unknown_network_zone(self) -> None:
        """Test that an unknown network zone is rejected."""
        errors = validate_cluster_spec(
            create_cluster_spec_from_resource(_spec(hcloudNetwork={"networkZone": "moon"}))
        )

        assert any("moon" in e for e in errors)


class TestMalformedInput:
    """Test that malformed CR values reach validation instead of raising."""

    def test_null_sections_use_defaults(self) -> None:
        """Test that explicit nulls behave like absent sections."""
        spec = create_cluster_spec_from_resource(
            _spec(
                controlPlaneLoadBalancer=None,
                hcloudNetwork=None,
                sshKeys=None,
                hetznerSecretRef={"name": "hetzner", "key": None},
            )
        )

        assert spec.control_plane_load_balancer.port == 6443
        assert spec.network.cidr_block == "10.0.0.0/16"
        assert spec.ssh_keys == []
        assert spec.secret_ref.token_key == "hcloud"
        assert spec.parse_errors == []

    def test_non_numeric_ports_are_validation_errors(self) -> None:
        """Test that ports which are not integers are reported by validation."""
        spec = create_cluster_spec_from_resource(
            _spec(
                controlPlaneLoadBalancer={
                    "region": "fsn1",
                    "port": "https",
                    "extraServices": [{"listenPort": "eighty", "destinationPort": 80}],
                },
                controlPlaneEndpoint={"host": "203.0.113.1", "port": "x"},
            )
        )

        errors = validate_cluster_spec(spec)

        assert "controlPlaneLoadBalancer.port must be an integer, got 'https'" in errors
        assert "extraServices.listenPort must be an integer, got 'eighty'" in errors
        assert "controlPlaneEndpoint.port must be an integer, got 'x'" in errors
