import pytest

from meshplane.arbitration import (
    ArbitrationCache,
    ResourceArbitrator,
    identity_cache_key,
    select_best_route_policies_for_identity,
    select_best_snapshots_for_identity,
)
from meshplane.model import ControlSnapshot, DataplaneIdentity, RoutePolicy, ServiceRef
from meshplane.selector import Subscriber

IDENTITY = DataplaneIdentity(
    dataplane_id="dp-1", node_id="node-1", namespace="default", env="dev"
)


def snap(env, service="orders", namespace="default"):
    return ControlSnapshot(service=ServiceRef(service=service, namespace=namespace, env=env))


def policy(env, service="orders", namespace="default"):
    return RoutePolicy(service=ServiceRef(service=service, namespace=namespace, env=env))


@pytest.mark.parametrize("order", [0, 1])
def test_exact_snapshot_beats_fallback_in_any_order(order):
    fallback, exact = snap(""), snap("dev")
    items = [fallback, exact] if order == 0 else [exact, fallback]
    selected = select_best_snapshots_for_identity(items, IDENTITY)
    assert len(selected) == 1
    assert selected[0] is exact


def test_mismatched_env_is_excluded():
    assert select_best_snapshots_for_identity([snap("prod")], IDENTITY) == []
    assert select_best_route_policies_for_identity([policy("prod")], IDENTITY) == []


def test_equal_priority_later_wins():
    first, second = policy("dev"), policy("dev")
    selected = select_best_route_policies_for_identity([first, second], IDENTITY)
    assert len(selected) == 1
    assert selected[0] is second


def test_missing_resources_are_skipped():
    selected = select_best_snapshots_for_identity([None, ControlSnapshot()], IDENTITY)
    assert selected == []


def test_families_are_kept_apart():
    orders, payments = snap("dev"), snap("dev", service="payments")
    selected = select_best_snapshots_for_identity([orders, payments], IDENTITY)
    assert {id(s) for s in selected} == {id(orders), id(payments)}


def test_allows_only_the_selected_object():
    chosen, loser = snap("dev"), snap("")
    arbitrator = ResourceArbitrator.from_resources([loser, chosen], None, IDENTITY)
    assert arbitrator.allows_snapshot(chosen)
    assert not arbitrator.allows_snapshot(loser)
    assert not arbitrator.allows_snapshot(snap("dev"))
    assert not arbitrator.allows_snapshot(None)


def test_allows_policy():
    chosen = policy("dev")
    arbitrator = ResourceArbitrator.from_resources(None, [chosen], IDENTITY)
    assert arbitrator.allows_policy(chosen)
    assert not arbitrator.allows_policy(RoutePolicy())


def test_lookup_by_target_ignores_env():
    chosen = snap("dev")
    chosen_policy = policy("dev")
    arbitrator = ResourceArbitrator.from_resources([chosen], [chosen_policy], IDENTITY)
    target = ServiceRef(service="orders", namespace="default", env="other")
    assert arbitrator.snapshot_for_target(target) is chosen
    assert arbitrator.policy_for_target(target) is chosen_policy
    assert arbitrator.snapshot_for_target(ServiceRef(service="missing")) is None


def test_explain_counts_match_selection():
    arbitrator = ResourceArbitrator.from_resources(
        [snap("dev"), snap("", service="payments")], [policy("")], IDENTITY
    )
    summary = arbitrator.explain(IDENTITY)
    assert summary.snapshot_exact + summary.snapshot_fallback == len(
        arbitrator.selected_snapshots()
    )
    assert summary.policy_exact + summary.policy_fallback == len(
        arbitrator.selected_policies()
    )
    assert summary.policy_exact == 0
    assert summary.snapshot_exact == summary.snapshot_fallback


def test_identity_cache_key():
    assert identity_cache_key(None) == ""
    assert identity_cache_key(IDENTITY) == "default/dev/dp-1/node-1"


def test_cache_reuses_arbitrator_per_identity():
    cache = ArbitrationCache([snap("dev")], [policy("dev")])
    first = cache.for_identity(IDENTITY)
    assert cache.for_identity(IDENTITY) is first
    other = cache.for_identity(DataplaneIdentity(dataplane_id="dp-2", namespace="default", env="prod"))
    assert other is not first
    assert other.selected_snapshots() == []


def test_cache_for_subscriber():
    chosen = snap("dev")
    cache = ArbitrationCache([chosen], None)
    assert cache.for_subscriber(None).selected_snapshots() == []
    arbitrator = cache.for_subscriber(Subscriber(identity=IDENTITY))
    assert arbitrator.selected_snapshots()[0] is chosen