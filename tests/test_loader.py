import pytest
import yaml

from meshplane.config import (
    ConfigError,
    InvalidModeError,
    InvalidSourceError,
    default_config,
    normalize,
)
from meshplane.loader import (
    LoadOptions,
    config_from_mapping,
    config_to_mapping,
    load,
    render,
)

AGENT_YAML = """\
mode: agent
runtime:
  agent:
    address: 127.0.0.1:19090
source:
  kind: consul
  consul:
    address: 127.0.0.1:8500
authz:
  target: 127.0.0.1:9001
controlplane:
  enabled: true
  target: 127.0.0.1:19080
"""

SIDECAR_ETCD_YAML = """\
mode: sidecar
runtime:
  sidecar:
    address: 127.0.0.1:19091
    service_name: orders
    namespace: default
    env: dev
source:
  kind: etcd
  etcd:
    endpoints:
      - 127.0.0.1:2379
authz:
  target: 127.0.0.1:9001
"""


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in (
        "SERVICE_MESH_MODE",
        "SERVICE_MESH_SOURCE_KIND",
        "SERVICE_MESH_AUTHZ_TARGET",
        "SERVICE_MESH_CONTROLPLANE_TARGET",
    ):
        monkeypatch.delenv(name, raising=False)


def _write(tmp_path, name, text):
    path = tmp_path / name
    path.write_text(text, encoding="utf-8")
    return str(path)


def test_load_reads_flat_agent_address(tmp_path):
    cfg = load(LoadOptions(path=_write(tmp_path, "agent.yaml", AGENT_YAML)))
    assert cfg.runtime.agent.address == "127.0.0.1:19090"


def test_load_reads_flat_sidecar_address(tmp_path):
    cfg = load(LoadOptions(path=_write(tmp_path, "sidecar-etcd.yaml", SIDECAR_ETCD_YAML)))
    assert cfg.runtime.sidecar.address == "127.0.0.1:19091"
    assert cfg.runtime.sidecar.target_mode == "upstream_only"
    assert cfg.source.kind == "etcd"
    assert cfg.source.etcd.endpoints == ["127.0.0.1:2379"]


def test_load_without_path_uses_defaults():
    cfg = load()
    assert cfg.mode == "agent"
    assert cfg.source.kind == "consul"
    assert cfg.invoke.timeout_ms == 1500


def test_file_keeps_undeclared_defaults(tmp_path):
    cfg = load(LoadOptions(path=_write(tmp_path, "a.yaml", "invoke:\n  timeout_ms: 3000\n")))
    assert cfg.invoke.timeout_ms == 3000
    assert cfg.invoke.per_try_timeout_ms == 500
    assert cfg.authz.target == "127.0.0.1:9001"


def test_env_overrides_file(tmp_path, monkeypatch):
    monkeypatch.setenv("SERVICE_MESH_AUTHZ_TARGET", "10.0.0.1:9001")
    monkeypatch.setenv("SERVICE_MESH_CONTROLPLANE_TARGET", "10.0.0.2:19080")
    cfg = load(LoadOptions(path=_write(tmp_path, "agent.yaml", AGENT_YAML)))
    assert cfg.authz.target == "10.0.0.1:9001"
    assert cfg.controlplane.target == "10.0.0.2:19080"


def test_options_override_env(monkeypatch):
    monkeypatch.setenv("SERVICE_MESH_SOURCE_KIND", "consul")
    cfg = load(LoadOptions(source_kind="ETCD", authz_target=" 1.2.3.4:1 "))
    assert cfg.source.kind == "etcd"
    assert cfg.authz.target == "1.2.3.4:1"


def test_invalid_mode_from_env(monkeypatch):
    monkeypatch.setenv("SERVICE_MESH_MODE", "bogus")
    with pytest.raises(InvalidModeError):
        load()


def test_invalid_source_option():
    with pytest.raises(InvalidSourceError):
        load(LoadOptions(source_kind="zookeeper"))


def test_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        load(LoadOptions(path=str(tmp_path / "missing.yaml")))


def test_bad_yaml_raises(tmp_path):
    with pytest.raises(ConfigError):
        load(LoadOptions(path=_write(tmp_path, "bad.yaml", "mode: [unclosed\n")))


def test_wrong_type_raises():
    with pytest.raises(ConfigError):
        config_from_mapping({"invoke": {"timeout_ms": "soon"}})


def test_negative_unsigned_raises():
    with pytest.raises(ConfigError):
        config_from_mapping({"authz": {"timeout_ms": -1}})


def test_from_mapping_does_not_mutate_base():
    base = default_config()
    cfg = config_from_mapping({"mode": "sidecar"}, base)
    assert cfg.mode == "sidecar"
    assert base.mode == "agent"


def test_telemetry_endpoint_uses_yaml_name():
    cfg = config_from_mapping({"telemetry": {"otel_endpoint": "http://collector:4318"}})
    assert cfg.telemetry.otlp_endpoint == "http://collector:4318"
    assert config_to_mapping(cfg)["telemetry"]["otel_endpoint"] == "http://collector:4318"


def test_render_round_trip():
    cfg = default_config()
    normalize(cfg)
    text = render(cfg)
    parsed = yaml.safe_load(text)
    assert parsed["mode"] == "agent"
    assert parsed["source"]["etcd"]["endpoints"] == ["127.0.0.1:2379"]
    assert config_from_mapping(parsed) == cfg