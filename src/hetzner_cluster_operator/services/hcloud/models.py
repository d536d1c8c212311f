"""Models for the HetznerCluster resource and the Hetzner Cloud objects it manages."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from ...constants import (
    DEFAULT_LOAD_BALANCER_ALGORITHM,
    DEFAULT_LOAD_BALANCER_PORT,
    DEFAULT_LOAD_BALANCER_TYPE,
    DEFAULT_NETWORK_CIDR_BLOCK,
    DEFAULT_NETWORK_ZONE,
    DEFAULT_SECRET_NAME,
    DEFAULT_SECRET_TOKEN_KEY,
    DEFAULT_SUBNET_CIDR_BLOCK,
)


@dataclass
class LoadBalancerServiceSpec:
    """A service (listener) on the control plane load balancer."""

    listen_port: int
    destination_port: int
    protocol: str = "tcp"


@dataclass
class LoadBalancerSpec:
    """Desired control plane load balancer."""

    enabled: bool = True
    name: str | None = None
    type: str = DEFAULT_LOAD_BALANCER_TYPE
    region: str = ""
    algorithm: str = DEFAULT_LOAD_BALANCER_ALGORITHM
    port: int = DEFAULT_LOAD_BALANCER_PORT
    extra_services: list[LoadBalancerServiceSpec] = field(default_factory=list)


@dataclass
class PlacementGroupSpec:
    """Desired placement group."""

    name: str
    type: str = "spread"


@dataclass
class NetworkSpec:
    """Desired private network."""

    enabled: bool = True
    cidr_block: str = DEFAULT_NETWORK_CIDR_BLOCK
    subnet_cidr_block: str = DEFAULT_SUBNET_CIDR_BLOCK
    network_zone: str = DEFAULT_NETWORK_ZONE


@dataclass
class SecretRef:
    """Reference to the secret holding the Hetzner API token."""

    name: str = DEFAULT_SECRET_NAME
    token_key: str = DEFAULT_SECRET_TOKEN_KEY


@dataclass
class ApiEndpoint:
    """Host and port of the control plane."""

    host: str = ""
    port: int = 0

    def is_valid(self) -> bool:
        return bool(self.host) and self.port != 0

    def to_dict(self) -> dict[str, Any]:
        return {"host": self.host, "port": self.port}


@dataclass
class HetznerClusterSpec:
    """Desired state of a HetznerCluster."""

    control_plane_regions: list[str] = field(default_factory=list)
    control_plane_load_balancer: LoadBalancerSpec = field(default_factory=LoadBalancerSpec)
    placement_groups: list[PlacementGroupSpec] = field(default_factory=list)
    network: NetworkSpec = field(default_factory=NetworkSpec)
    ssh_keys: list[str] = field(default_factory=list)
    control_plane_endpoint: ApiEndpoint | None = None
    secret_ref: SecretRef = field(default_factory=SecretRef)
    # Fields of the CR that could not be converted; reported by validation.
    parse_errors: list[str] = field(default_factory=list)


@dataclass
class HetznerCluster:
    """A HetznerCluster as seen by one reconciliation pass.

    ``status`` is the raw status dict and is mutated in place by the reconciler.
    """

    name: str
    namespace: str = "default"
    uid: str = ""
    generation: int = 0
    spec: HetznerClusterSpec = field(default_factory=HetznerClusterSpec)
    status: dict[str, Any] = field(default_factory=dict)
    deletion_requested: bool = False

    @property
    def conditions(self) -> list[dict[str, Any]]:
        return self.status.setdefault("conditions", [])


@dataclass
class RemoteService:
    """A service configured on a Hetzner load balancer."""

    listen_port: int
    destination_port: int
    protocol: str = "tcp"


@dataclass
class RemoteLoadBalancer:
    """A Hetzner load balancer."""

    id: int
    name: str
    type: str
    algorithm: str = DEFAULT_LOAD_BALANCER_ALGORITHM
    labels: dict[str, str] = field(default_factory=dict)
    services: list[RemoteService] = field(default_factory=list)
    ipv4: str = ""
    ipv6: str = ""
    private_ip: str = ""
    target_count: int = 0


@dataclass
class RemotePlacementGroup:
    """A Hetzner placement group."""

    id: int
    name: str
    type: str
    labels: dict[str, str] = field(default_factory=dict)
    servers: list[int] = field(default_factory=list)


@dataclass
class RemoteNetwork:
    """A Hetzner private network."""

    id: int
    name: str
    ip_range: str
    labels: dict[str, str] = field(default_factory=dict)


@dataclass
class RemoteServer:
    """A Hetzner server."""

    id: int
    name: str
    labels: dict[str, str] = field(default_factory=dict)
    status: str = ""
