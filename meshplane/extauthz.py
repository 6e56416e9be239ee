"""Projection of mesh invocations onto external authorization check requests."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Iterable, Optional

from .model import ServiceRef, UnaryInvokeRequest
from .originalidentity import resolve

_DEFAULT_TIMEOUT_SECONDS = 0.5


@dataclass(frozen=True)
class SocketAddress:
    """Host and port of a peer."""

    address: str = ""
    port: int = 0


@dataclass
class Peer:
    """One side of the authorized call."""

    service: str = ""
    address: Optional[SocketAddress] = None


@dataclass
class HttpRequestAttributes:
    """HTTP view of a gRPC call as seen by the authorization service."""

    id: str = ""
    method: str = "POST"
    host: str = ""
    path: str = ""
    scheme: str = "grpc"
    headers: Dict[str, str] = field(default_factory=dict)
    protocol: str = "HTTP/2"
    raw_body: bytes = b""
    size: int = 0


@dataclass
class CheckRequest:
    """An authorization check for one invocation."""

    source: Peer = field(default_factory=Peer)
    destination: Peer = field(default_factory=Peer)
    time: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    http: HttpRequestAttributes = field(default_factory=HttpRequestAttributes)
    context_extensions: Dict[str, str] = field(default_factory=dict)


def build_address(host: str, port: int) -> SocketAddress:
    """Build the destination socket address."""
    return SocketAddress(address=host, port=port)


def dial_timeout(timeout_ms: int) -> float:
    """Connection timeout in seconds; 500 ms when unset."""
    if timeout_ms == 0:
        return _DEFAULT_TIMEOUT_SECONDS
    return timeout_ms / 1000


def check_timeout(timeout_ms: int) -> float:
    """Per-check timeout in seconds; 500 ms when not positive."""
    if timeout_ms <= 0:
        return _DEFAULT_TIMEOUT_SECONDS
    return timeout_ms / 1000


def build_check_request(
    req: UnaryInvokeRequest, include_headers: Optional[Iterable[str]] = None
) -> CheckRequest:
    """Map an invocation to a check request, filtering metadata by an allow-list."""
    target = req.target or ServiceRef()
    ctx = req.context
    allowed = set(include_headers or ())

    headers = {
        ":authority": target.service,
        ":path": req.method,
        ":method": "POST",
        "content-type": "application/grpc",
        "x-service-mesh-target-service": target.service,
        "x-service-mesh-target-namespace": target.namespace,
        "x-service-mesh-target-env": target.env,
    }
    for entry in (ctx.metadata if ctx else ()):
        if entry is None or not entry.values:
            continue
        if allowed and entry.key not in allowed:
            continue
        headers[entry.key] = entry.values[0]

    extensions = {
        "codec": req.codec,
        "namespace": target.namespace,
        "env": target.env,
        "method": req.method,
    }
    extensions.update(resolve(ctx).context_extensions())

    caller_service = ctx.caller.service if ctx and ctx.caller else ""
    payload = req.payload or b""
    return CheckRequest(
        source=Peer(service=caller_service),
        destination=Peer(service=target.service, address=build_address(target.service, target.port)),
        http=HttpRequestAttributes(
            id=ctx.trace_id if ctx else "",
            host=target.service,
            path=req.method,
            headers=headers,
            raw_body=payload,
            size=len(payload),
        ),
        context_extensions=extensions,
    )