"""Builder for HetznerCluster models."""

from __future__ import annotations

import copy
from typing import Any

from ..constants import (
    DEFAULT_LOAD_BALANCER_ALGORITHM,
    DEFAULT_LOAD_BALANCER_PORT,
    DEFAULT_LOAD_BALANCER_TYPE,
    DEFAULT_NETWORK_CIDR_BLOCK,
    DEFAULT_NETWORK_ZONE,
    DEFAULT_SECRET_NAME,
    DEFAULT_SECRET_TOKEN_KEY,
    DEFAULT_SUBNET_CIDR_BLOCK,
    KNOWN_NETWORK_ZONES,
    KNOWN_REGIONS,
    LOAD_BALANCER_ALGORITHMS,
    LOAD_BALANCER_PROTOCOLS,
    PLACEMENT_GROUP_TYPES,
)
from ..services.hcloud.models import (
    ApiEndpoint,
    HetznerCluster,
    HetznerClusterSpec,
    LoadBalancerServiceSpec,
    LoadBalancerSpec,
    NetworkSpec,
    PlacementGroupSpec,
    SecretRef,
)


def _port(value: Any, field_name: str, errors: list[str]) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        errors.append(f"{field_name} must be an integer, got {value!r}")
        return 0


def _build_load_balancer_spec(lb: dict[str, Any], errors: list[str]) -> LoadBalancerSpec:
    return LoadBalancerSpec(
        enabled=lb.get("enabled", True),
        name=lb.get("name") or None,
        type=lb.get("type") or DEFAULT_LOAD_BALANCER_TYPE,
        region=lb.get("region") or "",
        algorithm=lb.get("algorithm") or DEFAULT_LOAD_BALANCER_ALGORITHM,
        port=_port(lb.get("port") or DEFAULT_LOAD_BALANCER_PORT, "controlPlaneLoadBalancer.port", errors),
        extra_services=[
            LoadBalancerServiceSpec(
                listen_port=_port(svc.get("listenPort", 0), "extraServices.listenPort", errors),
                destination_port=_port(svc.get("destinationPort", 0), "extraServices.destinationPort", errors),
                protocol=svc.get("protocol") or "tcp",
            )
            for svc in lb.get("extraServices") or []
        ],
    )


def _build_endpoint(endpoint: dict[str, Any] | None, errors: list[str]) -> ApiEndpoint | None:
    if endpoint is None:
        return None
    return ApiEndpoint(
        host=endpoint.get("host") or "",
        port=_port(endpoint.get("port") or 0, "controlPlaneEndpoint.port", errors),
    )


def create_cluster_spec_from_resource(spec: dict[str, Any]) -> HetznerClusterSpec:
    """Create a HetznerClusterSpec from the CR spec.

    Values that cannot be converted are collected in ``parse_errors`` instead
    of raising, so they surface through validation.

    Args:
        spec: HetznerCluster CR spec (camelCase)

    Returns:
        Desired cluster specification with defaults applied
    """
    errors: list[str] = []
    network = spec.get("hcloudNetwork") or {}
    secret_ref = spec.get("hetznerSecretRef") or {}
    ssh_keys = spec.get("sshKeys") or {}

    return HetznerClusterSpec(
        control_plane_regions=list(spec.get("controlPlaneRegions") or []),
        control_plane_load_balancer=_build_load_balancer_spec(spec.get("controlPlaneLoadBalancer") or {}, errors),
        placement_groups=[
            PlacementGroupSpec(name=pg.get("name") or "", type=pg.get("type") or "spread")
            for pg in spec.get("hcloudPlacementGroups") or []
        ],
        network=NetworkSpec(
            enabled=network.get("enabled", True),
            cidr_block=network.get("cidrBlock") or DEFAULT_NETWORK_CIDR_BLOCK,
            subnet_cidr_block=network.get("subnetCidrBlock") or DEFAULT_SUBNET_CIDR_BLOCK,
            network_zone=network.get("networkZone") or DEFAULT_NETWORK_ZONE,
        ),
        ssh_keys=[key.get("name") or "" for key in ssh_keys.get("hcloud") or []],
        control_plane_endpoint=_build_endpoint(spec.get("controlPlaneEndpoint"), errors),
        secret_ref=SecretRef(
            name=secret_ref.get("name") or DEFAULT_SECRET_NAME,
            token_key=(secret_ref.get("key") or {}).get("hcloudToken") or DEFAULT_SECRET_TOKEN_KEY,
        ),
        parse_errors=errors,
    )


def create_cluster_from_resource(
    spec: dict[str, Any],
    meta: dict[str, Any],
    status: dict[str, Any] | None,
) -> HetznerCluster:
    """Create the in-memory HetznerCluster for one reconciliation pass.

    The status is deep-copied so the pass can mutate it freely; the result is
    written back through the kopf patch.
    """
    return HetznerCluster(
        name=meta.get("name", "unknown"),
        namespace=meta.get("namespace", "default"),
        uid=meta.get("uid", ""),
        generation=meta.get("generation", 0),
        spec=create_cluster_spec_from_resource(spec),
        status=copy.deepcopy(dict(status or {})),
        deletion_requested=meta.get("deletionTimestamp") is not None,
    )


def _valid_port(port: int) -> bool:
    return 0 < port <= 65535


def validate_cluster_spec(spec: HetznerClusterSpec) -> list[str]:
    """Re-check the admission invariants before any remote call is made.

    Returns:
        List of human-readable validation errors (empty when valid)
    """
    errors = list(spec.parse_errors)

    for region in spec.control_plane_regions:
        if region not in KNOWN_REGIONS:
            errors.append(f"unknown control plane region {region!r}")

    lb = spec.control_plane_load_balancer
    if lb.enabled and not lb.region:
        errors.append("controlPlaneLoadBalancer.region must not be empty")
    elif lb.region and lb.region not in KNOWN_REGIONS:
        errors.append(f"unknown load balancer region {lb.region!r}")
    if lb.algorithm not in LOAD_BALANCER_ALGORITHMS:
        errors.append(f"unknown load balancer algorithm {lb.algorithm!r}")
    if not _valid_port(lb.port):
        errors.append(f"invalid load balancer port {lb.port}")

    seen_ports = set()
    for svc in lb.extra_services:
        if not _valid_port(svc.listen_port) or not _valid_port(svc.destination_port):
            errors.append(f"invalid ports in extra service {svc.listen_port}->{svc.destination_port}")
        if svc.protocol not in LOAD_BALANCER_PROTOCOLS:
            errors.append(f"unknown protocol {svc.protocol!r} in extra service {svc.listen_port}")
        if svc.listen_port in seen_ports:
            errors.append(f"duplicate listen port {svc.listen_port} in extra services")
        seen_ports.add(svc.listen_port)

    pg_names = set()
    for pg in spec.placement_groups:
        if not pg.name:
            errors.append("placement group name must not be empty")
        elif pg.name in pg_names:
            errors.append(f"duplicate placement group name {pg.name!r}")
        pg_names.add(pg.name)
        if pg.type not in PLACEMENT_GROUP_TYPES:
            errors.append(f"unknown placement group type {pg.type!r}")

    for key_name in spec.ssh_keys:
        if not key_name:
            errors.append("ssh key name must not be empty")

    if spec.network.enabled and spec.network.network_zone not in KNOWN_NETWORK_ZONES:
        errors.append(f"unknown network zone {spec.network.network_zone!r}")

    return errors
