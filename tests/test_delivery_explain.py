import pytest

from meshplane.delivery_explain import (
    BatchExplainSummary,
    DeliveryDecisionTrace,
    DeliveryExplainSummary,
    ReplayExplainSummary,
    response_kind,
)
from meshplane.model import (
    ConnectResponse,
    ControlSnapshot,
    RoutePolicy,
    SnapshotDeleted,
)


@pytest.mark.parametrize(
    "resp, kind",
    [
        (None, "nil"),
        (ConnectResponse(service_snapshot=ControlSnapshot()), "service_snapshot"),
        (ConnectResponse(service_snapshot_deleted=SnapshotDeleted()), "service_snapshot_deleted"),
        (ConnectResponse(route_policy=RoutePolicy()), "route_policy"),
        (ConnectResponse(), "unknown"),
    ],
)
def test_response_kind(resp, kind):
    assert response_kind(resp) == kind


def make_summary():
    return DeliveryExplainSummary(
        response_kind="route_policy",
        delivered=1,
        denied_identity=1,
        trace=[
            DeliveryDecisionTrace("dp-1", "exact", "fallback", "delivered"),
            DeliveryDecisionTrace("dp-2", "exact", "none", "denied_identity"),
        ],
    )


def test_trace_string_limits():
    summary = make_summary()
    first = "dp-1:delivered(subscription=exact,identity=fallback)"
    second = "dp-2:denied_identity(subscription=exact,identity=none)"
    assert summary.trace_string(0) == ""
    assert summary.trace_string(1) == first
    assert summary.trace_string(-1) == first + ";" + second
    assert summary.trace_string(50) == summary.trace_string(-1)


def test_trace_shown_count():
    summary = make_summary()
    assert summary.trace_shown_count(0) == 0
    assert summary.trace_shown_count(-1) == len(summary.trace)
    assert summary.trace_shown_count(99) == len(summary.trace)
    assert DeliveryExplainSummary().trace_shown_count(5) == 0


def test_export_copies_counters_and_trace():
    summary = make_summary()
    exported = summary.export(1)
    assert exported.response_kind == summary.response_kind
    assert exported.delivered == summary.delivered
    assert exported.denied_identity == summary.denied_identity
    assert exported.trace_total == len(summary.trace)
    assert exported.trace_shown == len(exported.trace) == summary.trace_shown_count(1)
    assert exported.trace[0].dataplane_id == "dp-1"
    assert exported.trace[0].decision == "delivered"


def test_export_without_trace():
    exported = make_summary().export(0)
    assert exported.trace == []
    assert exported.trace_shown == 0


def test_batch_and_replay_export():
    batch = BatchExplainSummary(stream_responses=3, service_snapshots=2, route_policies=1)
    exported = batch.export()
    assert (exported.stream_responses, exported.service_snapshots, exported.route_policies) == (
        batch.stream_responses,
        batch.service_snapshots,
        batch.route_policies,
    )
    replay = ReplayExplainSummary(snapshot_exact=2, policy_fallback=1)
    replay_export = replay.export()
    assert replay_export.snapshot_exact == replay.snapshot_exact
    assert replay_export.policy_fallback == replay.policy_fallback
    assert replay_export.snapshot_fallback == 0