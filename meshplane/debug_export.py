"""Plain records describing control-plane server state for debugging."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from .model import RoutePolicy, ServiceRef


@dataclass(frozen=True)
class DataplaneIdentityExport:
    dataplane_id: str = ""
    node_id: str = ""
    namespace: str = ""
    env: str = ""


@dataclass
class SubscriberDebugExport:
    subscriber_id: int = 0
    identity: DataplaneIdentityExport = field(default_factory=DataplaneIdentityExport)
    targets: List[ServiceRef] = field(default_factory=list)


@dataclass
class SnapshotDebugExport:
    service: ServiceRef = field(default_factory=ServiceRef)
    status: str = ""
    reason_class: str = ""


@dataclass
class RoutePolicyDebugExport:
    service: ServiceRef = field(default_factory=ServiceRef)


@dataclass
class ServerDebugStateExport:
    subscriber_count: int = 0
    tracked_target_count: int = 0
    snapshot_count: int = 0
    route_policy_count: int = 0
    subscribers: List[SubscriberDebugExport] = field(default_factory=list)
    tracked_targets: List[ServiceRef] = field(default_factory=list)
    snapshots: List[SnapshotDebugExport] = field(default_factory=list)
    route_policies: List[RoutePolicyDebugExport] = field(default_factory=list)


def service_ref_sort_key(ref: ServiceRef) -> Tuple[str, str, str, int]:
    """Order by namespace, env, service, then port."""
    return (ref.namespace, ref.env, ref.service, ref.port)


def sort_service_refs(targets: List[ServiceRef]) -> None:
    """Sort service refs in place."""
    targets.sort(key=service_ref_sort_key)


def sort_snapshot_exports(items: List[SnapshotDebugExport]) -> None:
    """Sort snapshot exports in place by their service."""
    items.sort(key=lambda item: service_ref_sort_key(item.service))


def sort_route_policy_exports(items: List[RoutePolicyDebugExport]) -> None:
    """Sort route policy exports in place by their service."""
    items.sort(key=lambda item: service_ref_sort_key(item.service))


def export_route_policy(policy: Optional[RoutePolicy]) -> RoutePolicyDebugExport:
    """Describe a route policy; empty when it has no service."""
    if policy is None or policy.service is None:
        return RoutePolicyDebugExport()
    service = policy.service
    return RoutePolicyDebugExport(
        service=ServiceRef(
            service=service.service,
            namespace=service.namespace,
            env=service.env,
            port=service.port,
        )
    )