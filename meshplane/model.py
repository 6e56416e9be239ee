"""Shared data model: run modes, directory sources and control-plane resources."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import List, Optional


class Mode(str, Enum):
    """Process run mode."""

    AGENT = "agent"
    SIDECAR = "sidecar"


class SourceKind(str, Enum):
    """Service directory backend."""

    CONSUL = "consul"
    ETCD = "etcd"


class SidecarTargetMode(str, Enum):
    """Which targets a sidecar is allowed to proxy."""

    UPSTREAM_ONLY = "upstream_only"
    ALLOW_SAME_SERVICE = "allow_same_service"
    ALLOW_CROSS_SCOPE_SAME_SERVICE = "allow_cross_scope_same_service"


class SnapshotStatus(str, Enum):
    """Freshness of a resolved service snapshot."""

    CURRENT = "current"
    STALE = "stale"
    DEGRADED = "degraded"


class SnapshotState(IntEnum):
    """Snapshot status as carried on the control-plane wire."""

    UNSPECIFIED = 0
    CURRENT = 1
    STALE = 2
    DEGRADED = 3


@dataclass(frozen=True)
class ServiceRef:
    """A logical service target."""

    service: str = ""
    namespace: str = ""
    env: str = ""
    port: int = 0


@dataclass(frozen=True)
class Endpoint:
    """A concrete instance address."""

    address: str = ""
    port: int = 0
    weight: int = 0


@dataclass
class ServiceSnapshot:
    """Resolved directory result used inside the dataplane."""

    service: ServiceRef = field(default_factory=ServiceRef)
    endpoints: List[Endpoint] = field(default_factory=list)
    revision: str = ""
    status: str = ""
    status_reason: str = ""


@dataclass
class MetadataEntry:
    """One call metadata key with its values."""

    key: str = ""
    values: List[str] = field(default_factory=list)


@dataclass
class Caller:
    """Identity of the calling service."""

    service: str = ""
    namespace: str = ""
    env: str = ""


@dataclass
class InvocationContext:
    """Per-call context: trace id, caller and metadata."""

    trace_id: str = ""
    caller: Optional[Caller] = None
    metadata: List[MetadataEntry] = field(default_factory=list)


@dataclass
class UnaryInvokeRequest:
    """A unary invocation routed through the mesh."""

    target: Optional[ServiceRef] = None
    method: str = ""
    context: Optional[InvocationContext] = None
    payload: bytes = b""
    codec: str = ""


@dataclass(eq=False)
class RetryPolicy:
    """Retry settings pushed by the control plane."""

    max_attempts: int = 0
    per_try_timeout_ms: int = 0


@dataclass(eq=False)
class RoutePolicy:
    """Timeout and retry policy for one service."""

    service: Optional[ServiceRef] = None
    timeout_ms: int = 0
    retry: Optional[RetryPolicy] = None


@dataclass(eq=False)
class ControlSnapshot:
    """Service snapshot as distributed by the control plane."""

    service: Optional[ServiceRef] = None
    endpoints: List[Optional[Endpoint]] = field(default_factory=list)
    revision: str = ""
    status: SnapshotState = SnapshotState.UNSPECIFIED
    status_reason: str = ""


@dataclass(eq=False)
class SnapshotDeleted:
    """Notice that a service snapshot was removed."""

    service: Optional[ServiceRef] = None


@dataclass(frozen=True)
class DataplaneIdentity:
    """Identity a dataplane presents when registering."""

    dataplane_id: str = ""
    mode: str = ""
    node_id: str = ""
    namespace: str = ""
    service: str = ""
    env: str = ""


@dataclass(eq=False)
class ConnectResponse:
    """A control-plane push; at most one body field is set."""

    service_snapshot: Optional[ControlSnapshot] = None
    service_snapshot_deleted: Optional[SnapshotDeleted] = None
    route_policy: Optional[RoutePolicy] = None