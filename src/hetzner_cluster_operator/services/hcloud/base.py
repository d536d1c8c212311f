"""Hetzner Cloud client interface used by the reconcilers."""

from __future__ import annotations

from typing import Protocol

from .models import (
    RemoteLoadBalancer,
    RemoteNetwork,
    RemotePlacementGroup,
    RemoteServer,
    RemoteService,
)


class CloudClient(Protocol):
    """Protocol defining the Hetzner Cloud operations the reconcilers need.

    Every method raises a subclass of ``HCloudError`` on failure.
    """

    def list_load_balancers(
        self, name: str | None = None, label_selector: str | None = None
    ) -> list[RemoteLoadBalancer]:
        """List load balancers, optionally filtered by exact name or labels."""
        ...

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
        """Create a load balancer."""
        ...

    def update_load_balancer(
        self, lb_id: int, name: str | None = None, labels: dict[str, str] | None = None
    ) -> RemoteLoadBalancer:
        """Update the name and/or labels of a load balancer."""
        ...

    def change_load_balancer_type(self, lb_id: int, load_balancer_type: str) -> None:
        """Change the type of a load balancer."""
        ...

    def change_load_balancer_algorithm(self, lb_id: int, algorithm: str) -> None:
        """Change the balancing algorithm of a load balancer."""
        ...

    def add_service(self, lb_id: int, service: RemoteService) -> None:
        """Add a service to a load balancer."""
        ...

    def update_service(self, lb_id: int, service: RemoteService) -> None:
        """Update the service listening on ``service.listen_port``."""
        ...

    def delete_service(self, lb_id: int, listen_port: int) -> None:
        """Remove the service listening on ``listen_port``."""
        ...

    def delete_load_balancer(self, lb_id: int) -> None:
        """Delete a load balancer."""
        ...

    def list_placement_groups(self, label_selector: str | None = None) -> list[RemotePlacementGroup]:
        """List placement groups, optionally filtered by labels."""
        ...

    def create_placement_group(self, name: str, type_: str, labels: dict[str, str]) -> RemotePlacementGroup:
        """Create a placement group."""
        ...

    def delete_placement_group(self, pg_id: int) -> None:
        """Delete a placement group."""
        ...

    def list_networks(self, label_selector: str | None = None) -> list[RemoteNetwork]:
        """List networks, optionally filtered by labels."""
        ...

    def create_network(
        self,
        name: str,
        ip_range: str,
        subnet_ip_range: str,
        network_zone: str,
        labels: dict[str, str],
    ) -> RemoteNetwork:
        """Create a network with a single cloud subnet."""
        ...

    def delete_network(self, network_id: int) -> None:
        """Delete a network."""
        ...

    def list_servers(self, label_selector: str | None = None) -> list[RemoteServer]:
        """List servers, optionally filtered by labels."""
        ...
