"""Configuration model, defaults, normalization and validation."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List

from .model import Mode, SidecarTargetMode, SourceKind

_DEFAULT_RETRYABLE_CODES = ("unavailable", "deadline_exceeded", "resource_exhausted")
_DEFAULT_NAMESPACE = "/microservice/lhdht"
_DEFAULT_SIDECAR_SERVICE = "service-mesh-sidecar"


class ConfigError(ValueError):
    """Raised when a configuration cannot be used."""


class InvalidModeError(ConfigError):
    """Raised when the run mode is not supported."""

    def __init__(self, mode: str) -> None:
        super().__init__(f"invalid mode: {mode}")
        self.mode = mode


class InvalidSourceError(ConfigError):
    """Raised when the source kind is not supported."""

    def __init__(self, kind: str) -> None:
        super().__init__(f"invalid source: {kind}")
        self.kind = kind


@dataclass
class InvokeConfig:
    timeout_ms: int = 0
    per_try_timeout_ms: int = 0
    retry_max_attempts: int = 0
    retry_backoff_ms: int = 0
    retryable_codes: List[str] = field(default_factory=list)


@dataclass
class AgentRuntimeConfig:
    address: str = ""
    worker_count: int = 0
    max_inflight: int = 0


@dataclass
class SidecarRuntimeConfig:
    address: str = ""
    target_mode: str = ""
    service_name: str = ""
    instance_id: str = ""
    namespace: str = ""
    env: str = ""
    trusted_original_identity_injector: bool = False


@dataclass
class RuntimeConfig:
    agent: AgentRuntimeConfig = field(default_factory=AgentRuntimeConfig)
    sidecar: SidecarRuntimeConfig = field(default_factory=SidecarRuntimeConfig)


@dataclass
class ConsulSourceConfig:
    address: str = ""
    token: str = ""
    namespace: str = ""
    datacenter: str = ""
    scheme: str = ""
    query_timeout_ms: int = 0
    watch_degrade_after_errors: int = 0


@dataclass
class EtcdSourceConfig:
    endpoints: List[str] = field(default_factory=list)
    username: str = ""
    password: str = ""
    namespace: str = ""
    dial_timeout_ms: int = 0
    query_timeout_ms: int = 0
    watch_degrade_after_errors: int = 0


@dataclass
class SourceConfig:
    kind: str = ""
    consul: ConsulSourceConfig = field(default_factory=ConsulSourceConfig)
    etcd: EtcdSourceConfig = field(default_factory=EtcdSourceConfig)


@dataclass
class AuthzConfig:
    target: str = ""
    timeout_ms: int = 0
    fail_open: bool = False
    include_headers: List[str] = field(default_factory=list)


@dataclass
class ControlPlaneConfig:
    enabled: bool = False
    target: str = ""
    allow_source_fallback: bool = False
    heartbeat_interval_ms: int = 0
    connect_timeout_ms: int = 0


@dataclass
class TelemetryConfig:
    otlp_endpoint: str = ""
    trace_enabled: bool = False
    metric_enabled: bool = False
    log_enabled: bool = False


@dataclass
class Config:
    """Root configuration."""

    mode: str = ""
    runtime: RuntimeConfig = field(default_factory=RuntimeConfig)
    invoke: InvokeConfig = field(default_factory=InvokeConfig)
    source: SourceConfig = field(default_factory=SourceConfig)
    authz: AuthzConfig = field(default_factory=AuthzConfig)
    controlplane: ControlPlaneConfig = field(default_factory=ControlPlaneConfig)
    telemetry: TelemetryConfig = field(default_factory=TelemetryConfig)


def default_config() -> Config:
    """Return a runnable configuration geared for local development."""
    return Config(
        mode=Mode.AGENT.value,
        runtime=RuntimeConfig(
            agent=AgentRuntimeConfig(
                address="127.0.0.1:19090", worker_count=4, max_inflight=1024
            ),
            sidecar=SidecarRuntimeConfig(
                address="127.0.0.1:19090",
                target_mode=SidecarTargetMode.UPSTREAM_ONLY.value,
                service_name=_DEFAULT_SIDECAR_SERVICE,
            ),
        ),
        invoke=InvokeConfig(
            timeout_ms=1500,
            per_try_timeout_ms=500,
            retry_max_attempts=2,
            retry_backoff_ms=50,
            retryable_codes=list(_DEFAULT_RETRYABLE_CODES),
        ),
        source=SourceConfig(
            kind=SourceKind.CONSUL.value,
            consul=ConsulSourceConfig(
                address="127.0.0.1:8500",
                namespace=_DEFAULT_NAMESPACE,
                scheme="http",
                query_timeout_ms=1000,
                watch_degrade_after_errors=3,
            ),
            etcd=EtcdSourceConfig(
                endpoints=["127.0.0.1:2379"],
                namespace=_DEFAULT_NAMESPACE,
                dial_timeout_ms=1000,
                query_timeout_ms=1000,
                watch_degrade_after_errors=3,
            ),
        ),
        authz=AuthzConfig(target="127.0.0.1:9001", timeout_ms=500),
        controlplane=ControlPlaneConfig(
            enabled=True,
            target="127.0.0.1:19080",
            allow_source_fallback=False,
            heartbeat_interval_ms=3000,
            connect_timeout_ms=1000,
        ),
        telemetry=TelemetryConfig(
            otlp_endpoint="http://127.0.0.1:4318",
            trace_enabled=True,
            metric_enabled=True,
            log_enabled=True,
        ),
    )


def normalize(cfg: Config) -> None:
    """Trim and lower-case strings and fill in missing defaults, in place."""
    cfg.mode = cfg.mode.lower().strip()
    cfg.source.kind = cfg.source.kind.lower().strip()

    agent = cfg.runtime.agent
    sidecar = cfg.runtime.sidecar
    agent.address = agent.address.strip()
    sidecar.address = sidecar.address.strip()
    sidecar.target_mode = sidecar.target_mode.lower().strip()
    sidecar.service_name = sidecar.service_name.strip()
    sidecar.instance_id = sidecar.instance_id.strip()
    sidecar.namespace = sidecar.namespace.strip()
    sidecar.env = sidecar.env.strip()
    cfg.authz.target = cfg.authz.target.strip()
    cfg.controlplane.target = cfg.controlplane.target.strip()
    consul = cfg.source.consul
    etcd = cfg.source.etcd
    consul.address = consul.address.strip()
    consul.namespace = consul.namespace.strip()
    etcd.namespace = etcd.namespace.strip()

    if agent.worker_count <= 0:
        agent.worker_count = 4
    if agent.max_inflight <= 0:
        agent.max_inflight = 1024
    if cfg.authz.timeout_ms == 0:
        cfg.authz.timeout_ms = 500

    invoke = cfg.invoke
    if invoke.timeout_ms == 0:
        invoke.timeout_ms = 1500
    if invoke.per_try_timeout_ms == 0:
        invoke.per_try_timeout_ms = 500
    if invoke.retry_max_attempts == 0:
        invoke.retry_max_attempts = 2
    if invoke.retry_backoff_ms == 0:
        invoke.retry_backoff_ms = 50

    if cfg.controlplane.heartbeat_interval_ms == 0:
        cfg.controlplane.heartbeat_interval_ms = 3000
    if cfg.controlplane.connect_timeout_ms == 0:
        cfg.controlplane.connect_timeout_ms = 1000

    if etcd.dial_timeout_ms == 0:
        etcd.dial_timeout_ms = 1000
    if etcd.query_timeout_ms == 0:
        etcd.query_timeout_ms = 1000
    if etcd.watch_degrade_after_errors == 0:
        etcd.watch_degrade_after_errors = 3
    if consul.query_timeout_ms == 0:
        consul.query_timeout_ms = 1000
    if consul.watch_degrade_after_errors == 0:
        consul.watch_degrade_after_errors = 3

    if not sidecar.service_name:
        sidecar.service_name = _DEFAULT_SIDECAR_SERVICE
    if not sidecar.target_mode:
        sidecar.target_mode = SidecarTargetMode.UPSTREAM_ONLY.value
    if not invoke.retryable_codes:
        invoke.retryable_codes = list(_DEFAULT_RETRYABLE_CODES)


_VALID_TARGET_MODES = {mode.value for mode in SidecarTargetMode}


def validate(cfg: Config) -> None:
    """Raise ConfigError if a normalized configuration cannot run."""
    if cfg.mode == Mode.AGENT.value:
        if not cfg.runtime.agent.address:
            raise ConfigError("runtime.agent.address is required")
    elif cfg.mode == Mode.SIDECAR.value:
        sidecar = cfg.runtime.sidecar
        if not sidecar.address:
            raise ConfigError("runtime.sidecar.address is required")
        if sidecar.target_mode not in _VALID_TARGET_MODES:
            raise ConfigError(
                "runtime.sidecar.target_mode must be upstream_only, "
                "allow_same_service or allow_cross_scope_same_service"
            )
        if not sidecar.service_name:
            raise ConfigError("runtime.sidecar.service_name is required")
    else:
        raise InvalidModeError(cfg.mode)

    if cfg.source.kind == SourceKind.CONSUL.value:
        if not cfg.source.consul.address:
            raise ConfigError("source.consul.address is required")
    elif cfg.source.kind == SourceKind.ETCD.value:
        if not cfg.source.etcd.endpoints:
            raise ConfigError("source.etcd.endpoints is required")
    else:
        raise InvalidSourceError(cfg.source.kind)

    if not cfg.authz.target:
        raise ConfigError("authz.target is required")
    if cfg.invoke.per_try_timeout_ms > cfg.invoke.timeout_ms:
        raise ConfigError(
            "invoke.per_try_timeout_ms cannot be greater than invoke.timeout_ms"
        )
    if cfg.controlplane.enabled and not cfg.controlplane.target:
        raise ConfigError("controlplane.target is required when controlplane is enabled")