"""Tests for control plane load balancer reconciliation."""

from __future__ import annotations

from fakes import FakeCloudClient, make_cluster, make_scope

from hetzner_cluster_operator.constants import (
    COND_HETZNER_API_REACHABLE,
    COND_LOAD_BALANCER_READY,
    REASON_LOAD_BALANCER_DISABLED,
    REASON_LOAD_BALANCER_FAILED_TO_OWN,
    REASON_LOAD_BALANCER_SERVICE_SYNC_FAILED,
    REASON_RATE_LIMIT_EXCEEDED,
)
from hetzner_cluster_operator.reconcilers.load_balancer import (
    delete_load_balancer,
    desired_services,
    diff_services,
    generate_load_balancer_name,
    reconcile_load_balancer,
)
from hetzner_cluster_operator.services.hcloud.errors import ConflictError, RateLimitError
from hetzner_cluster_operator.services.hcloud.models import RemoteService
from hetzner_cluster_operator.utils.conditions import get_condition, is_false_with_reason, is_true

OWNED = {"caph-cluster-prod": "owned"}


def _lb_spec(**overrides) -> dict:
    spec = {"region": "fsn1"}
    spec.update(overrides)
    return {"controlPlaneLoadBalancer": spec}


class TestServiceDiff:
    """Test the desired service set and its diff."""

    def test_api_server_service(self) -> None:
        """Test the kube-apiserver service defaults to the load balancer port."""
        cluster = make_cluster(spec=_lb_spec(port=6443))

        assert desired_services(cluster) == {6443: RemoteService(6443, 6443, "tcp")}

    def test_endpoint_port_is_listen_port(self) -> None:
        """Test that a set endpoint port is the listen port."""
        cluster = make_cluster(spec={**_lb_spec(port=6443), "controlPlaneEndpoint": {"host": "x", "port": 443}})

        assert desired_services(cluster) == {443: RemoteService(443, 6443, "tcp")}

    def test_colliding_extra_service_is_ignored(self) -> None:
        """Test that an extra service cannot replace the kube-apiserver service."""
        cluster = make_cluster(
            spec=_lb_spec(
                extraServices=[
                    {"listenPort": 6443, "destinationPort": 1},
                    {"listenPort": 80, "destinationPort": 30080},
                ]
            )
        )

        services = desired_services(cluster)

        assert services[6443].destination_port == 6443
        assert services[80] == RemoteService(80, 30080, "tcp")

    def test_diff(self) -> None:
        """Test adds, updates and deletes keyed by listen port."""
        desired = {6443: RemoteService(6443, 6443), 80: RemoteService(80, 30080)}
        observed = [RemoteService(6443, 7443), RemoteService(8080, 8080)]

        to_add, to_update, to_delete = diff_services(desired, observed)

        assert to_add == [RemoteService(80, 30080)]
        assert to_update == [RemoteService(6443, 6443)]
        assert to_delete == [8080]

    def test_generated_name(self) -> None:
        """Test the generated load balancer name."""
        name = generate_load_balancer_name("prod")

        assert name.startswith("prod-kube-apiserver-")
        assert len(name) == len("prod-kube-apiserver-") + 5


class TestReconcileLoadBalancer:
    """Test cases for reconcile_load_balancer."""

    def test_creates_load_balancer(self) -> None:
        """Test that a missing unnamed load balancer is created and labeled."""
        client = FakeCloudClient()
        cluster = make_cluster(spec=_lb_spec())
        scope = make_scope(cluster, client)

        assert reconcile_load_balancer(scope) is None

        (lb,) = client.load_balancers.values()
        assert lb.name.startswith("prod-kube-apiserver-")
        assert lb.labels == OWNED
        assert lb.services == [RemoteService(6443, 6443, "tcp")]
        status = cluster.status["controlPlaneLoadBalancer"]
        assert status["id"] == lb.id
        assert status["ipv4"] == "192.0.2.20"
        assert status["adopted"] is False
        assert is_true(cluster.conditions, COND_LOAD_BALANCER_READY)
        assert is_true(cluster.conditions, COND_HETZNER_API_REACHABLE)
        scope.recorder.load_balancer_created.assert_called_once_with(lb.name)

    def test_second_pass_makes_no_mutations(self) -> None:
        """Test that reconciling a converged load balancer changes nothing."""
        client = FakeCloudClient()
        cluster = make_cluster(spec=_lb_spec(extraServices=[{"listenPort": 80, "destinationPort": 30080}]))
        reconcile_load_balancer(make_scope(cluster, client))
        client.calls.clear()

        assert reconcile_load_balancer(make_scope(cluster, client)) is None

        assert client.mutations == []
        assert len(client.load_balancers) == 1

    def test_key_with_suffix_is_not_owned(self) -> None:
        """Test that another cluster's similar label is ignored."""
        client = FakeCloudClient()
        other = client.add_load_balancer("prods-lb", labels={"caph-cluster-prods": "owned"})
        cluster = make_cluster(spec=_lb_spec())

        reconcile_load_balancer(make_scope(cluster, client))

        assert len(client.load_balancers) == 2
        assert cluster.status["controlPlaneLoadBalancer"]["id"] != other.id
        assert client.load_balancers[other.id].labels == {"caph-cluster-prods": "owned"}

    def test_named_load_balancer_owned_by_other_cluster(self) -> None:
        """Test that a named load balancer carrying another cluster's key is not taken."""
        client = FakeCloudClient()
        client.add_load_balancer("shared-lb", labels={"caph-cluster-prods": "owned"})
        cluster = make_cluster(spec=_lb_spec(name="shared-lb"))

        result = reconcile_load_balancer(make_scope(cluster, client))

        assert result is not None and result.requeue_after == 30.0
        assert client.mutations == []
        assert is_false_with_reason(cluster.conditions, COND_LOAD_BALANCER_READY, REASON_LOAD_BALANCER_FAILED_TO_OWN)

    def test_named_missing_then_adopted(self) -> None:
        """Test that a named load balancer created out of band is adopted on the next pass."""
        client = FakeCloudClient()
        cluster = make_cluster(spec=_lb_spec(name="my-lb"))

        result = reconcile_load_balancer(make_scope(cluster, client))

        assert result is not None and result.requeue
        assert client.mutations == []
        cond = get_condition(cluster.conditions, COND_LOAD_BALANCER_READY)
        assert cond["reason"] == REASON_LOAD_BALANCER_FAILED_TO_OWN
        assert "my-lb not found" in cond["message"]

        lb = client.add_load_balancer("my-lb", labels={"team": "infra"})
        scope = make_scope(cluster, client)

        assert reconcile_load_balancer(scope) is None

        assert client.load_balancers[lb.id].labels == {"team": "infra", **OWNED}
        assert cluster.status["controlPlaneLoadBalancer"]["adopted"] is True
        assert is_true(cluster.conditions, COND_LOAD_BALANCER_READY)
        scope.recorder.load_balancer_adopted.assert_called_once_with("my-lb")

    def test_multiple_owned_load_balancers(self) -> None:
        """Test that two owned load balancers are a failure to own."""
        client = FakeCloudClient()
        client.add_load_balancer("a", labels=OWNED)
        client.add_load_balancer("b", labels=OWNED)
        cluster = make_cluster(spec=_lb_spec())

        result = reconcile_load_balancer(make_scope(cluster, client))

        assert result is not None
        assert client.mutations == []
        assert is_false_with_reason(cluster.conditions, COND_LOAD_BALANCER_READY, REASON_LOAD_BALANCER_FAILED_TO_OWN)

    def test_ambiguous_name(self) -> None:
        """Test that two load balancers with the requested name are not adopted."""
        client = FakeCloudClient()
        client.add_load_balancer("my-lb")
        client.add_load_balancer("my-lb")
        cluster = make_cluster(spec=_lb_spec(name="my-lb"))

        result = reconcile_load_balancer(make_scope(cluster, client))

        assert result is not None and result.requeue
        assert client.mutations == []
        assert all(lb.labels == {} for lb in client.load_balancers.values())
        cond = get_condition(cluster.conditions, COND_LOAD_BALANCER_READY)
        assert cond["reason"] == REASON_LOAD_BALANCER_FAILED_TO_OWN
        assert "found 2 load balancers named my-lb" in cond["message"]

    def test_rename_after_creation(self) -> None:
        """Test that setting a name renames the created load balancer."""
        client = FakeCloudClient()
        lb = client.add_load_balancer("prod-kube-apiserver-abcde", labels=OWNED, services=[RemoteService(6443, 6443)])
        status = {"controlPlaneLoadBalancer": {"id": lb.id, "adopted": False}}
        cluster = make_cluster(spec=_lb_spec(name="renamed"), status=status)

        assert reconcile_load_balancer(make_scope(cluster, client)) is None

        assert client.load_balancers[lb.id].name == "renamed"
        assert cluster.status["controlPlaneLoadBalancer"]["name"] == "renamed"
        assert cluster.status["controlPlaneLoadBalancer"]["adopted"] is False

    def test_type_and_algorithm_are_updated(self) -> None:
        """Test that type and algorithm follow the spec."""
        client = FakeCloudClient()
        lb = client.add_load_balancer("lb", labels=OWNED, services=[RemoteService(6443, 6443)])
        status = {"controlPlaneLoadBalancer": {"id": lb.id, "adopted": False}}
        cluster = make_cluster(spec=_lb_spec(type="lb21", algorithm="round_robin"), status=status)

        reconcile_load_balancer(make_scope(cluster, client))

        assert client.load_balancers[lb.id].type == "lb21"
        assert client.load_balancers[lb.id].algorithm == "round_robin"
        assert ("change_load_balancer_type", lb.id, "lb21") in client.mutations

    def test_services_are_synced(self) -> None:
        """Test that stale services are removed and missing ones added."""
        client = FakeCloudClient()
        lb = client.add_load_balancer(
            "lb", labels=OWNED, services=[RemoteService(6443, 7443), RemoteService(8080, 8080)]
        )
        status = {"controlPlaneLoadBalancer": {"id": lb.id, "adopted": False}}
        cluster = make_cluster(
            spec=_lb_spec(extraServices=[{"listenPort": 80, "destinationPort": 30080}]), status=status
        )

        reconcile_load_balancer(make_scope(cluster, client))

        services = sorted(client.load_balancers[lb.id].services, key=lambda s: s.listen_port)
        assert services == [RemoteService(80, 30080), RemoteService(6443, 6443)]

    def test_service_failure_continues(self) -> None:
        """Test that one failing service call does not stop the others."""
        client = FakeCloudClient()
        lb = client.add_load_balancer("lb", labels=OWNED, services=[RemoteService(8080, 8080)])
        client.failures["delete_service"] = ConflictError("locked service", "conflict")
        status = {"controlPlaneLoadBalancer": {"id": lb.id, "adopted": False}}
        cluster = make_cluster(spec=_lb_spec(), status=status)

        result = reconcile_load_balancer(make_scope(cluster, client))

        assert result is not None and result.requeue_after == 30.0
        assert RemoteService(6443, 6443) in client.load_balancers[lb.id].services
        assert is_false_with_reason(
            cluster.conditions, COND_LOAD_BALANCER_READY, REASON_LOAD_BALANCER_SERVICE_SYNC_FAILED
        )
        assert cluster.status["controlPlaneLoadBalancer"]["id"] == lb.id

    def test_rate_limit_requeues_after_wait(self) -> None:
        """Test that a rate limit backs off for the configured wait."""
        client = FakeCloudClient()
        client.failures["list_load_balancers"] = RateLimitError("limit", "rate_limit_exceeded")
        cluster = make_cluster(spec=_lb_spec())
        scope = make_scope(cluster, client)

        result = reconcile_load_balancer(scope)

        assert result.requeue_after == 300.0
        assert is_false_with_reason(cluster.conditions, COND_HETZNER_API_REACHABLE, REASON_RATE_LIMIT_EXCEEDED)
        assert get_condition(cluster.conditions, COND_LOAD_BALANCER_READY)["status"] == "False"
        scope.recorder.rate_limited.assert_called_once_with(300.0)

    def test_disabled(self) -> None:
        """Test that a disabled load balancer is cleared from status without API calls."""
        client = FakeCloudClient()
        cluster = make_cluster(
            spec=_lb_spec(enabled=False), status={"controlPlaneLoadBalancer": {"id": 1, "ipv4": "192.0.2.1"}}
        )

        assert reconcile_load_balancer(make_scope(cluster, client)) is None

        assert client.calls == []
        assert "controlPlaneLoadBalancer" not in cluster.status
        cond = get_condition(cluster.conditions, COND_LOAD_BALANCER_READY)
        assert cond["status"] == "True"
        assert cond["reason"] == REASON_LOAD_BALANCER_DISABLED


class TestDeleteLoadBalancer:
    """Test cases for delete_load_balancer."""

    def test_created_load_balancer_is_deleted(self) -> None:
        """Test that a load balancer we created is deleted."""
        client = FakeCloudClient()
        cluster = make_cluster(spec=_lb_spec())
        reconcile_load_balancer(make_scope(cluster, client))

        assert delete_load_balancer(make_scope(cluster, client)) is None

        assert client.load_balancers == {}
        assert "controlPlaneLoadBalancer" not in cluster.status

    def test_adopted_load_balancer_is_released(self) -> None:
        """Test that an adopted load balancer survives with its label removed."""
        client = FakeCloudClient()
        lb = client.add_load_balancer("my-lb", labels={"team": "infra"})
        cluster = make_cluster(spec=_lb_spec(name="my-lb"))
        reconcile_load_balancer(make_scope(cluster, client))
        scope = make_scope(cluster, client)

        assert delete_load_balancer(scope) is None

        assert lb.id in client.load_balancers
        assert client.load_balancers[lb.id].labels == {"team": "infra"}
        assert not any(call[0] == "delete_load_balancer" for call in client.calls)
        scope.recorder.load_balancer_released.assert_called_once_with("my-lb")

    def test_named_without_status_is_released(self) -> None:
        """Test that a named load balancer is never deleted when status is lost."""
        client = FakeCloudClient()
        lb = client.add_load_balancer("my-lb", labels=OWNED)
        cluster = make_cluster(spec=_lb_spec(name="my-lb"))

        delete_load_balancer(make_scope(cluster, client))

        assert lb.id in client.load_balancers
        assert client.load_balancers[lb.id].labels == {}
