"""Control plane endpoint resolution."""

from __future__ import annotations

from ..services.hcloud.models import ApiEndpoint, HetznerCluster

# The hcloud API renders an unassigned address this way in some responses.
_NIL_ADDRESS = "<nil>"


def set_control_plane_endpoint(cluster: HetznerCluster) -> bool:
    """Point the control plane endpoint at the load balancer's public IPv4.

    Mutates ``cluster.spec`` and returns True only when the endpoint changed,
    so the caller knows the spec has to be written back.
    """
    lb_spec = cluster.spec.control_plane_load_balancer
    if not lb_spec.enabled:
        return False

    lb_status = cluster.status.get("controlPlaneLoadBalancer") or {}
    ipv4 = lb_status.get("ipv4") or ""
    if not ipv4 or ipv4 == _NIL_ADDRESS:
        return False

    desired = ApiEndpoint(host=ipv4, port=lb_spec.port)
    if cluster.spec.control_plane_endpoint == desired:
        return False

    cluster.spec.control_plane_endpoint = desired
    return True


def control_plane_endpoint_ready(cluster: HetznerCluster) -> bool:
    endpoint = cluster.spec.control_plane_endpoint
    return endpoint is not None and endpoint.is_valid()
