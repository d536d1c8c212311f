"""In-memory Hetzner Cloud used by the reconciler tests."""

from __future__ import annotations

import copy
import itertools
from typing import Any
from unittest.mock import Mock

from hetzner_cluster_operator.builders.cluster import create_cluster_from_resource
from hetzner_cluster_operator.reconcilers.scope import ClusterScope
from hetzner_cluster_operator.services.hcloud.errors import HCloudError, NotFoundError
from hetzner_cluster_operator.services.hcloud.models import (
    RemoteLoadBalancer,
    RemoteNetwork,
    RemotePlacementGroup,
    RemoteServer,
    RemoteService,
)


def _matches(labels: dict[str, str], selector: str | None) -> bool:
    if not selector:
        return True
    for term in selector.split(","):
        key, _, value = term.partition("=")
        if labels.get(key) != value:
            return False
    return True


class FakeCloudClient:
    """Implements the CloudClient protocol against dicts.

    Every call is appended to ``calls``; ``failures`` maps an operation name
    to an error raised each time that operation is called.
    """

    def __init__(self) -> None:
        self.load_balancers: dict[int, RemoteLoadBalancer] = {}
        self.placement_groups: dict[int, RemotePlacementGroup] = {}
        self.networks: dict[int, RemoteNetwork] = {}
        self.servers: dict[int, RemoteServer] = {}
        self.calls: list[tuple[Any, ...]] = []
        self.failures: dict[str, HCloudError] = {}
        self._ids = itertools.count(100)

    @property
    def mutations(self) -> list[tuple[Any, ...]]:
        return [call for call in self.calls if not call[0].startswith("list_")]

    def _check(self, operation: str, *args: Any) -> None:
        self.calls.append((operation, *args))
        error = self.failures.get(operation)
        if error is not None:
            raise error

    def _lb(self, lb_id: int) -> RemoteLoadBalancer:
        if lb_id not in self.load_balancers:
            raise NotFoundError("load balancer not found", "not_found")
        return self.load_balancers[lb_id]

    # Seeding helpers

    def add_load_balancer(self, name: str, labels: dict[str, str] | None = None, **kwargs: Any) -> RemoteLoadBalancer:
        kwargs.setdefault("type", "lb11")
        kwargs.setdefault("algorithm", "least_connections")
        kwargs.setdefault("ipv4", "192.0.2.10")
        lb = RemoteLoadBalancer(id=next(self._ids), name=name, labels=dict(labels or {}), **kwargs)
        self.load_balancers[lb.id] = lb
        return lb

    def add_placement_group(self, name: str, type_: str, labels: dict[str, str]) -> RemotePlacementGroup:
        pg = RemotePlacementGroup(id=next(self._ids), name=name, type=type_, labels=dict(labels))
        self.placement_groups[pg.id] = pg
        return pg

    def add_server(self, name: str, labels: dict[str, str]) -> RemoteServer:
        server = RemoteServer(id=next(self._ids), name=name, labels=dict(labels), status="running")
        self.servers[server.id] = server
        return server

    # CloudClient

    def list_load_balancers(self, name=None, label_selector=None):
        self._check("list_load_balancers", name, label_selector)
        return [
            copy.deepcopy(lb)
            for lb in self.load_balancers.values()
            if (name is None or lb.name == name) and _matches(lb.labels, label_selector)
        ]

    def create_load_balancer(self, name, load_balancer_type, location, algorithm, labels, services, network_id=None):
        self._check("create_load_balancer", name)
        lb = RemoteLoadBalancer(
            id=next(self._ids),
            name=name,
            type=load_balancer_type,
            algorithm=algorithm,
            labels=dict(labels),
            services=[copy.copy(service) for service in services],
            ipv4="192.0.2.20",
            ipv6="2001:db8::1",
            private_ip="10.0.0.2" if network_id is not None else "",
        )
        self.load_balancers[lb.id] = lb
        return copy.deepcopy(lb)

    def update_load_balancer(self, lb_id, name=None, labels=None):
        self._check("update_load_balancer", lb_id, name, labels)
        lb = self._lb(lb_id)
        if name is not None:
            lb.name = name
        if labels is not None:
            lb.labels = dict(labels)
        return copy.deepcopy(lb)

    def change_load_balancer_type(self, lb_id, load_balancer_type):
        self._check("change_load_balancer_type", lb_id, load_balancer_type)
        self._lb(lb_id).type = load_balancer_type

    def change_load_balancer_algorithm(self, lb_id, algorithm):
        self._check("change_load_balancer_algorithm", lb_id, algorithm)
        self._lb(lb_id).algorithm = algorithm

    def add_service(self, lb_id, service: RemoteService):
        self._check("add_service", lb_id, service.listen_port)
        self._lb(lb_id).services.append(copy.copy(service))

    def update_service(self, lb_id, service: RemoteService):
        self._check("update_service", lb_id, service.listen_port)
        lb = self._lb(lb_id)
        lb.services = [copy.copy(service) if s.listen_port == service.listen_port else s for s in lb.services]

    def delete_service(self, lb_id, listen_port):
        self._check("delete_service", lb_id, listen_port)
        lb = self._lb(lb_id)
        lb.services = [s for s in lb.services if s.listen_port != listen_port]

    def delete_load_balancer(self, lb_id):
        self._check("delete_load_balancer", lb_id)
        self._lb(lb_id)
        del self.load_balancers[lb_id]

    def list_placement_groups(self, label_selector=None):
        self._check("list_placement_groups", label_selector)
        return [copy.deepcopy(pg) for pg in self.placement_groups.values() if _matches(pg.labels, label_selector)]

    def create_placement_group(self, name, type_, labels):
        self._check("create_placement_group", name, type_)
        return copy.deepcopy(self.add_placement_group(name, type_, labels))

    def delete_placement_group(self, pg_id):
        self._check("delete_placement_group", pg_id)
        if pg_id not in self.placement_groups:
            raise NotFoundError("placement group not found", "not_found")
        del self.placement_groups[pg_id]

    def list_networks(self, label_selector=None):
        self._check("list_networks", label_selector)
        return [copy.deepcopy(n) for n in self.networks.values() if _matches(n.labels, label_selector)]

    def create_network(self, name, ip_range, subnet_ip_range, network_zone, labels):
        self._check("create_network", name, ip_range)
        network = RemoteNetwork(id=next(self._ids), name=name, ip_range=ip_range, labels=dict(labels))
        self.networks[network.id] = network
        return copy.deepcopy(network)

    def delete_network(self, network_id):
        self._check("delete_network", network_id)
        if network_id not in self.networks:
            raise NotFoundError("network not found", "not_found")
        del self.networks[network_id]

    def list_servers(self, label_selector=None):
        self._check("list_servers", label_selector)
        return [copy.deepcopy(s) for s in self.servers.values() if _matches(s.labels, label_selector)]


def make_cluster(name: str = "prod", spec: dict[str, Any] | None = None, status: dict[str, Any] | None = None):
    """Build an in-memory cluster from a CR spec with sensible defaults."""
    resource_spec = {
        "controlPlaneRegions": ["fsn1"],
        "controlPlaneLoadBalancer": {"region": "fsn1"},
    }
    resource_spec.update(spec or {})
    meta = {"name": name, "namespace": "capi", "uid": "uid-1", "generation": 1}
    return create_cluster_from_resource(resource_spec, meta, status or {})


def make_scope(cluster, client: FakeCloudClient):
    """Build a ClusterScope with a mock event recorder."""
    return ClusterScope(cluster=cluster, client=client, recorder=Mock(), rate_limit_wait=300.0, requeue_seconds=30.0)
