"""Summaries explaining how control-plane responses were delivered or replayed."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

from .model import ConnectResponse, ServiceRef


@dataclass(frozen=True)
class DeliveryDecisionTrace:
    """Why one subscriber did or did not receive a response."""

    dataplane_id: str = ""
    subscription_match: str = ""
    identity_match: str = ""
    decision: str = ""

    def describe(self) -> str:
        return (
            f"{self.dataplane_id}:{self.decision}"
            f"(subscription={self.subscription_match},identity={self.identity_match})"
        )


@dataclass(frozen=True)
class DeliveryDecisionTraceExport:
    dataplane_id: str = ""
    subscription_match: str = ""
    identity_match: str = ""
    decision: str = ""


@dataclass
class DeliveryExplainExport:
    response_kind: str = ""
    delivered: int = 0
    denied_subscription: int = 0
    denied_identity: int = 0
    denied_arbitration: int = 0
    subscription_exact: int = 0
    subscription_fallback: int = 0
    identity_exact: int = 0
    identity_fallback: int = 0
    trace_total: int = 0
    trace_shown: int = 0
    trace: List[DeliveryDecisionTraceExport] = field(default_factory=list)


@dataclass
class DeliveryExplainSummary:
    """Counters and per-subscriber trace for one targeted broadcast."""

    response_kind: str = ""
    target: ServiceRef = field(default_factory=ServiceRef)
    delivered: int = 0
    denied_subscription: int = 0
    denied_identity: int = 0
    denied_arbitration: int = 0
    subscription_exact: int = 0
    subscription_fallback: int = 0
    identity_exact: int = 0
    identity_fallback: int = 0
    trace: List[DeliveryDecisionTrace] = field(default_factory=list)

    def trace_shown_count(self, limit: int) -> int:
        """How many trace entries a limit shows; a negative limit shows all."""
        if not self.trace or limit == 0:
            return 0
        if limit < 0 or limit > len(self.trace):
            return len(self.trace)
        return limit

    def trace_string(self, limit: int) -> str:
        """The first entries of the trace, joined by semicolons."""
        shown = self.trace_shown_count(limit)
        return ";".join(item.describe() for item in self.trace[:shown])

    def export(self, limit: int) -> DeliveryExplainExport:
        """Public view of the summary, with at most limit trace entries."""
        shown = self.trace_shown_count(limit)
        return DeliveryExplainExport(
            response_kind=self.response_kind,
            delivered=self.delivered,
            denied_subscription=self.denied_subscription,
            denied_identity=self.denied_identity,
            denied_arbitration=self.denied_arbitration,
            subscription_exact=self.subscription_exact,
            subscription_fallback=self.subscription_fallback,
            identity_exact=self.identity_exact,
            identity_fallback=self.identity_fallback,
            trace_total=len(self.trace),
            trace_shown=shown,
            trace=[
                DeliveryDecisionTraceExport(
                    dataplane_id=item.dataplane_id,
                    subscription_match=item.subscription_match,
                    identity_match=item.identity_match,
                    decision=item.decision,
                )
                for item in self.trace[:shown]
            ],
        )


@dataclass(frozen=True)
class BatchExplainExport:
    stream_responses: int = 0
    service_snapshots: int = 0
    service_snapshot_deleted: int = 0
    route_policies: int = 0
    unknown: int = 0


@dataclass
class BatchExplainSummary:
    """Counts of response kinds in a delivery batch."""

    stream_responses: int = 0
    service_snapshots: int = 0
    service_snapshot_deleted: int = 0
    route_policies: int = 0
    unknown: int = 0

    def export(self) -> BatchExplainExport:
        return BatchExplainExport(
            stream_responses=self.stream_responses,
            service_snapshots=self.service_snapshots,
            service_snapshot_deleted=self.service_snapshot_deleted,
            route_policies=self.route_policies,
            unknown=self.unknown,
        )


@dataclass(frozen=True)
class ReplayExplainExport:
    snapshot_exact: int = 0
    snapshot_fallback: int = 0
    policy_exact: int = 0
    policy_fallback: int = 0


@dataclass
class ReplayExplainSummary:
    """How replayed resources matched the receiving dataplane's identity."""

    snapshot_exact: int = 0
    snapshot_fallback: int = 0
    policy_exact: int = 0
    policy_fallback: int = 0

    def export(self) -> ReplayExplainExport:
        return ReplayExplainExport(
            snapshot_exact=self.snapshot_exact,
            snapshot_fallback=self.snapshot_fallback,
            policy_exact=self.policy_exact,
            policy_fallback=self.policy_fallback,
        )


@dataclass(frozen=True)
class RegisterReplayExplainExport:
    replay: ReplayExplainExport = field(default_factory=ReplayExplainExport)
    batch: BatchExplainExport = field(default_factory=BatchExplainExport)


@dataclass(frozen=True)
class SubscribeReplayExplainExport:
    target_count: int = 0
    changed_snapshot_count: int = 0
    replay: ReplayExplainExport = field(default_factory=ReplayExplainExport)
    batch: BatchExplainExport = field(default_factory=BatchExplainExport)


def response_kind(resp: Optional[ConnectResponse]) -> str:
    """Name of the body a response carries."""
    if resp is None:
        return "nil"
    if resp.service_snapshot is not None:
        return "service_snapshot"
    if resp.service_snapshot_deleted is not None:
        return "service_snapshot_deleted"
    if resp.route_policy is not None:
        return "route_policy"
    return "unknown"