"""Dataplane-side cache of control-plane pushes and subscription bookkeeping."""

from __future__ import annotations

import threading
from typing import Dict, Iterable, List, Optional

from .config import ControlPlaneConfig
from .model import (
    ConnectResponse,
    ControlSnapshot,
    Endpoint,
    RoutePolicy,
    ServiceRef,
    ServiceSnapshot,
    SnapshotState,
    SnapshotStatus,
)

_DEFAULT_HEARTBEAT_SECONDS = 3.0
_DEFAULT_CONNECT_SECONDS = 1.0


def service_key(namespace: str, env: str, service: str) -> str:
    """Key used by control-plane state maps; env is omitted when blank."""
    namespace, env, service = namespace.strip(), env.strip(), service.strip()
    if not env:
        return f"{namespace}/{service}"
    return f"{namespace}/{env}/{service}"


def _ref_key(ref: ServiceRef) -> str:
    return service_key(ref.namespace, ref.env, ref.service)


def heartbeat_interval(cfg: ControlPlaneConfig) -> float:
    """Heartbeat period in seconds; 3 s when unset."""
    if cfg.heartbeat_interval_ms == 0:
        return _DEFAULT_HEARTBEAT_SECONDS
    return cfg.heartbeat_interval_ms / 1000


def connect_timeout(cfg: ControlPlaneConfig) -> float:
    """Connection timeout in seconds; 1 s when unset."""
    if cfg.connect_timeout_ms == 0:
        return _DEFAULT_CONNECT_SECONDS
    return cfg.connect_timeout_ms / 1000


def to_model_endpoints(endpoints: Iterable[Optional[Endpoint]]) -> List[Endpoint]:
    """Copy endpoints, skipping missing entries."""
    return [
        Endpoint(address=ep.address, port=ep.port, weight=ep.weight)
        for ep in endpoints or ()
        if ep is not None
    ]


def to_model_snapshot_status(status: SnapshotState) -> str:
    """Map a wire snapshot status to its model name; unknown means current."""
    if status == SnapshotState.STALE:
        return SnapshotStatus.STALE.value
    if status == SnapshotState.DEGRADED:
        return SnapshotStatus.DEGRADED.value
    return SnapshotStatus.CURRENT.value


class ControlPlaneState:
    """Latest snapshots and route policies received from the control plane."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._snapshots: Dict[str, ControlSnapshot] = {}
        self._policies: Dict[str, RoutePolicy] = {}
        self._last_snapshot: Optional[ControlSnapshot] = None
        self._last_policy: Optional[RoutePolicy] = None

    def set_snapshot(self, snapshot: Optional[ControlSnapshot]) -> None:
        """Store a snapshot under its service key; ignore empty ones."""
        if snapshot is None or snapshot.service is None:
            return
        with self._lock:
            self._snapshots[_ref_key(snapshot.service)] = snapshot
            self._last_snapshot = snapshot

    def delete_snapshot(self, service: Optional[ServiceRef]) -> None:
        """Drop the snapshot for a service, and its env-less entry too."""
        if service is None:
            return
        key = _ref_key(service)
        with self._lock:
            self._snapshots.pop(key, None)
            if service.env.strip():
                self._snapshots.pop(service_key(service.namespace, "", service.service), None)
            last = self._last_snapshot
            if last is not None and last.service is not None and _ref_key(last.service) == key:
                self._last_snapshot = None

    def set_route_policy(self, policy: Optional[RoutePolicy]) -> None:
        """Store a route policy under its service key; ignore empty ones."""
        if policy is None or policy.service is None:
            return
        with self._lock:
            self._policies[_ref_key(policy.service)] = policy
            self._last_policy = policy

    @property
    def last_snapshot(self) -> Optional[ControlSnapshot]:
        """The most recently stored snapshot."""
        with self._lock:
            return self._last_snapshot

    @property
    def last_policy(self) -> Optional[RoutePolicy]:
        """The most recently stored route policy."""
        with self._lock:
            return self._last_policy

    def _lookup(self, table: dict, target: ServiceRef):
        found = table.get(_ref_key(target))
        if found is not None:
            return found
        return table.get(service_key(target.namespace, "", target.service))

    def resolve_snapshot(self, target: ServiceRef) -> Optional[ServiceSnapshot]:
        """Snapshot for a target (exact env first, then env-less), as a model value."""
        with self._lock:
            snapshot = self._lookup(self._snapshots, target)
        if snapshot is None:
            return None
        service = snapshot.service
        return ServiceSnapshot(
            service=ServiceRef(
                service=service.service,
                namespace=service.namespace,
                env=service.env,
                port=service.port,
            ),
            endpoints=to_model_endpoints(snapshot.endpoints),
            revision=snapshot.revision,
            status=to_model_snapshot_status(snapshot.status),
            status_reason=snapshot.status_reason,
        )

    def resolve_route_policy(self, target: ServiceRef) -> Optional[RoutePolicy]:
        """Route policy for a target (exact env first, then env-less)."""
        with self._lock:
            return self._lookup(self._policies, target)


class ControlPlaneClient:
    """Dataplane view of one control-plane connection."""

    def __init__(self, cfg: ControlPlaneConfig) -> None:
        self.cfg = cfg
        self._state = ControlPlaneState()
        self._lock = threading.Lock()
        self._desired: Dict[str, ServiceRef] = {}
        self._subscribe_pending = threading.Event()

    @property
    def state(self) -> ControlPlaneState:
        """The cached control-plane state."""
        return self._state

    def resolve_snapshot(self, target: ServiceRef) -> Optional[ServiceSnapshot]:
        return self._state.resolve_snapshot(target)

    def track_target(self, target: ServiceRef) -> None:
        """Add a target to the subscription set and flag a resubscribe."""
        if not target.service.strip():
            return
        with self._lock:
            self._desired[_ref_key(target)] = target
        self._subscribe_pending.set()

    def subscription_targets(self) -> List[ServiceRef]:
        """Targets to subscribe to, skipping those without a service name."""
        with self._lock:
            return [t for t in self._desired.values() if t.service.strip()]

    def subscription_pending(self) -> bool:
        """Report and clear whether a resubscribe was requested."""
        with self._lock:
            pending = self._subscribe_pending.is_set()
            self._subscribe_pending.clear()
        return pending

    def apply_response(self, resp: Optional[ConnectResponse]) -> None:
        """Apply one control-plane push to the cached state; unknown bodies are ignored."""
        if resp is None:
            return
        if resp.service_snapshot is not None:
            self._state.set_snapshot(resp.service_snapshot)
        elif resp.service_snapshot_deleted is not None:
            self._state.delete_snapshot(resp.service_snapshot_deleted.service)
        elif resp.route_policy is not None:
            self._state.set_route_policy(resp.route_policy)