"""Hetzner Cloud client implementation."""

from __future__ import annotations

import logging
import os
import time
from typing import Any, Callable, TypeVar

from hcloud import APIException, Client
from hcloud.load_balancer_types import LoadBalancerType
from hcloud.load_balancers import LoadBalancer, LoadBalancerAlgorithm, LoadBalancerService
from hcloud.locations import Location
from hcloud.networks import Network, NetworkSubnet
from hcloud.placement_groups import PlacementGroup

from ... import metrics
from .errors import RateLimitError, translate_api_exception, translate_transport_error
from .models import (
    RemoteLoadBalancer,
    RemoteNetwork,
    RemotePlacementGroup,
    RemoteServer,
    RemoteService,
)

logger = logging.getLogger(__name__)

_T = TypeVar("_T")

_HCLOUD_ENDPOINT = os.getenv("HCLOUD_ENDPOINT", "https://api.hetzner.cloud/v1")
_HCLOUD_POLL_INTERVAL = float(os.getenv("HCLOUD_POLL_INTERVAL", "1.0"))
_HCLOUD_TIMEOUT = float(os.getenv("HCLOUD_TIMEOUT", "30"))


def _to_remote_load_balancer(lb: Any) -> RemoteLoadBalancer:
    public_net = lb.public_net
    ipv4 = public_net.ipv4.ip if public_net and public_net.ipv4 else ""
    ipv6 = public_net.ipv6.ip if public_net and public_net.ipv6 else ""
    private_ip = lb.private_net[0].ip if lb.private_net else ""
    return RemoteLoadBalancer(
        id=lb.id,
        name=lb.name,
        type=lb.load_balancer_type.name if lb.load_balancer_type else "",
        algorithm=lb.algorithm.type if lb.algorithm else "",
        labels=dict(lb.labels or {}),
        services=[
            RemoteService(
                listen_port=svc.listen_port,
                destination_port=svc.destination_port,
                protocol=svc.protocol,
            )
            for svc in (lb.services or [])
        ],
        ipv4=ipv4 or "",
        ipv6=ipv6 or "",
        private_ip=private_ip or "",
        target_count=len(lb.targets or []),
    )


def _to_remote_placement_group(pg: Any) -> RemotePlacementGroup:
    return RemotePlacementGroup(
        id=pg.id,
        name=pg.name,
        type=pg.type,
        labels=dict(pg.labels or {}),
        servers=list(pg.servers or []),
    )


def _to_remote_network(network: Any) -> RemoteNetwork:
    return RemoteNetwork(
        id=network.id,
        name=network.name,
        ip_range=network.ip_range,
        labels=dict(network.labels or {}),
    )


def _to_remote_server(server: Any) -> RemoteServer:
    return RemoteServer(
        id=server.id,
        name=server.name,
        labels=dict(server.labels or {}),
        status=server.status or "",
    )


def _to_hcloud_service(service: RemoteService) -> LoadBalancerService:
    return LoadBalancerService(
        protocol=service.protocol,
        listen_port=service.listen_port,
        destination_port=service.destination_port,
        proxyprotocol=False,
    )


class SingleAttemptClient(Client):
    """hcloud client that sends every request exactly once.

    The SDK retries rate limits, conflicts and timeouts with sleeps of its
    own. Failures go straight back to the reconciler instead, which backs off
    through the HetznerAPIReachable condition and a requeue.
    """

    _retry_max_retries = 0

    def _retry_policy(self, exception: APIException) -> bool:
        return False


class HCloudClient:
    """Hetzner Cloud provider implementation on top of the hcloud SDK."""

    def __init__(
        self,
        token: str,
        endpoint: str = _HCLOUD_ENDPOINT,
        poll_interval: float = _HCLOUD_POLL_INTERVAL,
        timeout: float = _HCLOUD_TIMEOUT,
    ) -> None:
        """Initialize the Hetzner Cloud client.

        Args:
            token: Hetzner Cloud API token
            endpoint: API endpoint URL
            poll_interval: Interval used by the SDK when waiting on actions
            timeout: Seconds before a single HTTP request is abandoned
        """
        self.client = SingleAttemptClient(
            token=token,
            api_endpoint=endpoint,
            poll_interval=poll_interval,
            timeout=timeout,
            application_name="hetzner-cluster-operator",
        )

    def _call(self, operation: str, fn: Callable[..., _T], *args: Any, **kwargs: Any) -> _T:
        """Run one API call with metrics and error classification."""
        start_time = time.time()
        try:
            result = fn(*args, **kwargs)
            metrics.api_call_total.labels(api_type="hcloud", operation=operation, result="success").inc()
            return result
        except APIException as e:
            error = translate_api_exception(e)
            if isinstance(error, RateLimitError):
                metrics.rate_limit_hits_total.labels(api_type="hcloud").inc()
            metrics.api_call_total.labels(api_type="hcloud", operation=operation, result="error").inc()
            logger.debug(f"hcloud {operation} failed: {error}")
            raise error from e
        except OSError as e:
            metrics.api_call_total.labels(api_type="hcloud", operation=operation, result="error").inc()
            raise translate_transport_error(e) from e
        finally:
            duration = time.time() - start_time
            metrics.api_call_duration_seconds.labels(api_type="hcloud", operation=operation).observe(duration)

    def list_load_balancers(
        self, name: str | None = None, label_selector: str | None = None
    ) -> list[RemoteLoadBalancer]:
        """List load balancers."""
        lbs = self._call(
            "list_load_balancers",
            self.client.load_balancers.get_all,
            name=name,
            label_selector=label_selector,
        )
        return [_to_remote_load_balancer(lb) for lb in lbs]

    def create_load_balancer(
        self,
        name: str,
        load_balancer_type: str,
        location: str,
        algorithm: str,
        labels: dict[str, str],
        services: list[RemoteService],
        network_id: int | None = None,
    ) -> RemoteLoadBalancer:
        """Create a load balancer and return it."""
        response = self._call(
            "create_load_balancer",
            self.client.load_balancers.create,
            name=name,
            load_balancer_type=LoadBalancerType(name=load_balancer_type),
            location=Location(name=location),
            algorithm=LoadBalancerAlgorithm(type=algorithm),
            labels=labels,
            services=[_to_hcloud_service(svc) for svc in services],
            network=Network(id=network_id) if network_id is not None else None,
        )
        return _to_remote_load_balancer(response.load_balancer)

    def update_load_balancer(
        self, lb_id: int, name: str | None = None, labels: dict[str, str] | None = None
    ) -> RemoteLoadBalancer:
        """Update name and/or labels of a load balancer."""
        lb = self._call(
            "update_load_balancer",
            self.client.load_balancers.update,
            LoadBalancer(id=lb_id),
            name=name,
            labels=labels,
        )
        return _to_remote_load_balancer(lb)

    def change_load_balancer_type(self, lb_id: int, load_balancer_type: str) -> None:
        """Change the type of a load balancer."""
        self._call(
            "change_load_balancer_type",
            self.client.load_balancers.change_type,
            LoadBalancer(id=lb_id),
            LoadBalancerType(name=load_balancer_type),
        )

    def change_load_balancer_algorithm(self, lb_id: int, algorithm: str) -> None:
        """Change the balancing algorithm of a load balancer."""
        self._call(
            "change_load_balancer_algorithm",
            self.client.load_balancers.change_algorithm,
            LoadBalancer(id=lb_id),
            LoadBalancerAlgorithm(type=algorithm),
        )

    def add_service(self, lb_id: int, service: RemoteService) -> None:
        """Add a service to a load balancer."""
        self._call(
            "add_service",
            self.client.load_balancers.add_service,
            LoadBalancer(id=lb_id),
            _to_hcloud_service(service),
        )

    def update_service(self, lb_id: int, service: RemoteService) -> None:
        """Update a service of a load balancer."""
        self._call(
            "update_service",
            self.client.load_balancers.update_service,
            LoadBalancer(id=lb_id),
            _to_hcloud_service(service),
        )

    def delete_service(self, lb_id: int, listen_port: int) -> None:
        """Remove a service from a load balancer."""
        self._call(
            "delete_service",
            self.client.load_balancers.delete_service,
            LoadBalancer(id=lb_id),
            LoadBalancerService(listen_port=listen_port),
        )

    def delete_load_balancer(self, lb_id: int) -> None:
        """Delete a load balancer."""
        self._call("delete_load_balancer", self.client.load_balancers.delete, LoadBalancer(id=lb_id))

    def list_placement_groups(self, label_selector: str | None = None) -> list[RemotePlacementGroup]:
        """List placement groups."""
        pgs = self._call(
            "list_placement_groups",
            self.client.placement_groups.get_all,
            label_selector=label_selector,
        )
        return [_to_remote_placement_group(pg) for pg in pgs]

    def create_placement_group(self, name: str, type_: str, labels: dict[str, str]) -> RemotePlacementGroup:
        """Create a placement group."""
        response = self._call(
            "create_placement_group",
            self.client.placement_groups.create,
            name=name,
            type=type_,
            labels=labels,
        )
        return _to_remote_placement_group(response.placement_group)

    def delete_placement_group(self, pg_id: int) -> None:
        """Delete a placement group."""
        self._call(
            "delete_placement_group",
            self.client.placement_groups.delete,
            PlacementGroup(id=pg_id),
        )

    def list_networks(self, label_selector: str | None = None) -> list[RemoteNetwork]:
        """List networks."""
        networks = self._call(
            "list_networks",
            self.client.networks.get_all,
            label_selector=label_selector,
        )
        return [_to_remote_network(network) for network in networks]

    def create_network(
        self,
        name: str,
        ip_range: str,
        subnet_ip_range: str,
        network_zone: str,
        labels: dict[str, str],
    ) -> RemoteNetwork:
        """Create a network with one cloud subnet."""
        network = self._call(
            "create_network",
            self.client.networks.create,
            name=name,
            ip_range=ip_range,
            subnets=[
                NetworkSubnet(
                    ip_range=subnet_ip_range,
                    network_zone=network_zone,
                    type="cloud",
                )
            ],
            labels=labels,
        )
        return _to_remote_network(network)

    def delete_network(self, network_id: int) -> None:
        """Delete a network."""
        self._call("delete_network", self.client.networks.delete, Network(id=network_id))

    def list_servers(self, label_selector: str | None = None) -> list[RemoteServer]:
        """List servers."""
        servers = self._call(
            "list_servers",
            self.client.servers.get_all,
            label_selector=label_selector,
        )
        return [_to_remote_server(server) for server in servers]
