"""Assembly of the final configuration from defaults, YAML, environment and options."""

from __future__ import annotations

import copy
import os
from dataclasses import dataclass, fields, is_dataclass
from typing import Any, Dict, Mapping, Optional

import yaml

from .config import Config, ConfigError, default_config, normalize, validate

# Python field names whose YAML key differs.
_YAML_NAMES = {"otlp_endpoint": "otel_endpoint"}
# Integer fields that may hold negative values; all others are unsigned.
_SIGNED_FIELDS = {"worker_count", "max_inflight"}

_ENV_MODE = "SERVICE_MESH_MODE"
_ENV_SOURCE_KIND = "SERVICE_MESH_SOURCE_KIND"
_ENV_AUTHZ_TARGET = "SERVICE_MESH_AUTHZ_TARGET"
_ENV_CONTROLPLANE_TARGET = "SERVICE_MESH_CONTROLPLANE_TARGET"


@dataclass
class LoadOptions:
    """Overrides a caller may apply on top of the file and environment."""

    path: str = ""
    mode: str = ""
    source_kind: str = ""
    authz_target: str = ""
    controlplane_target: str = ""


def _scalar_text(value: Any, where: str) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    raise ConfigError(f"{where}: expected a string")


def _coerce(current: Any, value: Any, where: str, signed: bool) -> Any:
    if value is None:
        return [] if isinstance(current, list) else current
    if isinstance(current, bool):
        if not isinstance(value, bool):
            raise ConfigError(f"{where}: expected a boolean")
        return value
    if isinstance(current, int):
        if isinstance(value, bool) or not isinstance(value, int):
            raise ConfigError(f"{where}: expected an integer")
        if not signed and value < 0:
            raise ConfigError(f"{where}: must not be negative")
        return value
    if isinstance(current, str):
        return _scalar_text(value, where)
    if isinstance(current, list):
        if not isinstance(value, list):
            raise ConfigError(f"{where}: expected a list")
        return [_scalar_text(item, where) for item in value]
    raise ConfigError(f"{where}: unsupported value")


def _merge(obj: Any, data: Any, path: str) -> None:
    if not isinstance(data, Mapping):
        raise ConfigError(f"{path or 'config'}: expected a mapping")
    for f in fields(obj):
        key = _YAML_NAMES.get(f.name, f.name)
        if key not in data:
            continue
        value = data[key]
        where = f"{path}.{key}" if path else key
        current = getattr(obj, f.name)
        if is_dataclass(current):
            if value is not None:
                _merge(current, value, where)
            continue
        setattr(obj, f.name, _coerce(current, value, where, f.name in _SIGNED_FIELDS))


def config_from_mapping(data: Any, base: Optional[Config] = None) -> Config:
    """Overlay a parsed YAML mapping on a copy of base (defaults when omitted).

    Only keys present in the mapping replace values; unknown keys are ignored.
    """
    cfg = copy.deepcopy(base) if base is not None else default_config()
    if data is None:
        return cfg
    _merge(cfg, data, "")
    return cfg


def config_to_mapping(cfg: Any) -> Dict[str, Any]:
    """Turn a configuration into plain mappings keyed by YAML names."""
    result: Dict[str, Any] = {}
    for f in fields(cfg):
        value = getattr(cfg, f.name)
        key = _YAML_NAMES.get(f.name, f.name)
        if is_dataclass(value):
            result[key] = config_to_mapping(value)
        elif isinstance(value, list):
            result[key] = list(value)
        else:
            result[key] = value
    return result


def render(cfg: Config) -> str:
    """Render a configuration as YAML."""
    return yaml.safe_dump(
        config_to_mapping(cfg), sort_keys=False, default_flow_style=False, allow_unicode=True
    )


def _apply_env(cfg: Config) -> None:
    if value := os.environ.get(_ENV_MODE, ""):
        cfg.mode = value
    if value := os.environ.get(_ENV_SOURCE_KIND, ""):
        cfg.source.kind = value
    if value := os.environ.get(_ENV_AUTHZ_TARGET, ""):
        cfg.authz.target = value
    if value := os.environ.get(_ENV_CONTROLPLANE_TARGET, ""):
        cfg.controlplane.target = value


def _apply_options(cfg: Config, opts: LoadOptions) -> None:
    if opts.mode:
        cfg.mode = opts.mode
    if opts.source_kind:
        cfg.source.kind = opts.source_kind
    if opts.authz_target:
        cfg.authz.target = opts.authz_target
    if opts.controlplane_target:
        cfg.controlplane.target = opts.controlplane_target


def load(opts: Optional[LoadOptions] = None) -> Config:
    """Build the effective configuration.

    Order: defaults, YAML file, environment, options, then normalize and validate.
    """
    opts = opts or LoadOptions()
    cfg = default_config()
    if opts.path:
        with open(opts.path, encoding="utf-8") as handle:
            raw = handle.read()
        try:
            data = yaml.safe_load(raw)
        except yaml.YAMLError as exc:
            raise ConfigError(f"cannot parse {opts.path}: {exc}") from exc
        cfg = config_from_mapping(data, cfg)

    _apply_env(cfg)
    _apply_options(cfg, opts)
    normalize(cfg)
    validate(cfg)
    return cfg