"""Selection of the best-matching snapshot and policy per service for a dataplane."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, TypeVar

from .delivery_explain import ReplayExplainSummary
from .model import ControlSnapshot, DataplaneIdentity, RoutePolicy, ServiceRef
from .selector import MatchPriority, Subscriber, match_identity_scope, resource_family_key

_R = TypeVar("_R", ControlSnapshot, RoutePolicy)


def _select_best(
    resources: Optional[Iterable[Optional[_R]]], identity: Optional[DataplaneIdentity]
) -> Dict[str, _R]:
    best: Dict[str, _R] = {}
    priorities: Dict[str, MatchPriority] = {}
    for resource in resources or ():
        if resource is None or resource.service is None:
            continue
        priority = match_identity_scope(resource.service, identity)
        if priority == MatchPriority.NONE:
            continue
        key = resource_family_key(resource.service)
        if priority >= priorities.get(key, MatchPriority.NONE):
            best[key] = resource
            priorities[key] = priority
    return best


def _target_family_key(target: ServiceRef) -> str:
    return resource_family_key(
        ServiceRef(
            service=target.service,
            namespace=target.namespace,
            env=target.env,
            port=target.port,
        )
    )


@dataclass
class ResourceArbitrator:
    """Best snapshot and policy per service family for one identity."""

    snapshots: Dict[str, ControlSnapshot] = field(default_factory=dict)
    policies: Dict[str, RoutePolicy] = field(default_factory=dict)

    @classmethod
    def from_resources(
        cls,
        snapshots: Optional[Iterable[Optional[ControlSnapshot]]],
        policies: Optional[Iterable[Optional[RoutePolicy]]],
        identity: Optional[DataplaneIdentity],
    ) -> "ResourceArbitrator":
        """Keep, per family, the resource matching the identity most closely; ties go to the later one."""
        return cls(
            snapshots=_select_best(snapshots, identity),
            policies=_select_best(policies, identity),
        )

    def selected_snapshots(self) -> List[ControlSnapshot]:
        return [s for s in self.snapshots.values() if s is not None]

    def selected_policies(self) -> List[RoutePolicy]:
        return [p for p in self.policies.values() if p is not None]

    def explain(self, identity: Optional[DataplaneIdentity]) -> ReplayExplainSummary:
        """Count how the selected resources match the identity."""
        summary = ReplayExplainSummary()
        for snapshot in self.selected_snapshots():
            priority = match_identity_scope(snapshot.service, identity)
            if priority == MatchPriority.EXACT:
                summary.snapshot_exact += 1
            elif priority == MatchPriority.FALLBACK:
                summary.snapshot_fallback += 1
        for policy in self.selected_policies():
            priority = match_identity_scope(policy.service, identity)
            if priority == MatchPriority.EXACT:
                summary.policy_exact += 1
            elif priority == MatchPriority.FALLBACK:
                summary.policy_fallback += 1
        return summary

    def snapshot_for_target(self, target: ServiceRef) -> Optional[ControlSnapshot]:
        return self.snapshots.get(_target_family_key(target))

    def policy_for_target(self, target: ServiceRef) -> Optional[RoutePolicy]:
        return self.policies.get(_target_family_key(target))

    def allows_snapshot(self, snapshot: Optional[ControlSnapshot]) -> bool:
        """True only if this very snapshot was selected for its family."""
        if snapshot is None or snapshot.service is None:
            return False
        return self.snapshots.get(resource_family_key(snapshot.service)) is snapshot

    def allows_policy(self, policy: Optional[RoutePolicy]) -> bool:
        """True only if this very policy was selected for its family."""
        if policy is None or policy.service is None:
            return False
        return self.policies.get(resource_family_key(policy.service)) is policy


def select_best_snapshots_for_identity(
    snapshots: Optional[Iterable[Optional[ControlSnapshot]]],
    identity: Optional[DataplaneIdentity],
) -> List[ControlSnapshot]:
    return ResourceArbitrator.from_resources(snapshots, None, identity).selected_snapshots()


def select_best_route_policies_for_identity(
    policies: Optional[Iterable[Optional[RoutePolicy]]],
    identity: Optional[DataplaneIdentity],
) -> List[RoutePolicy]:
    return ResourceArbitrator.from_resources(None, policies, identity).selected_policies()


def identity_cache_key(identity: Optional[DataplaneIdentity]) -> str:
    """Cache key of an identity: namespace, env, dataplane id and node id."""
    if identity is None:
        return ""
    return f"{identity.namespace}/{identity.env}/{identity.dataplane_id}/{identity.node_id}"


class ArbitrationCache:
    """Arbitrators over a fixed resource set, built once per identity."""

    def __init__(
        self,
        snapshots: Optional[Iterable[Optional[ControlSnapshot]]] = None,
        policies: Optional[Iterable[Optional[RoutePolicy]]] = None,
    ) -> None:
        self.snapshots: List[Optional[ControlSnapshot]] = list(snapshots or ())
        self.policies: List[Optional[RoutePolicy]] = list(policies or ())
        self._by_key: Dict[str, ResourceArbitrator] = {}

    def for_identity(self, identity: Optional[DataplaneIdentity]) -> ResourceArbitrator:
        key = identity_cache_key(identity)
        arbitrator = self._by_key.get(key)
        if arbitrator is None:
            arbitrator = ResourceArbitrator.from_resources(
                self.snapshots, self.policies, identity
            )
            self._by_key[key] = arbitrator
        return arbitrator

    def for_subscriber(self, subscriber: Optional[Subscriber]) -> ResourceArbitrator:
        if subscriber is None:
            return ResourceArbitrator()
        return self.for_identity(subscriber.identity)