import pytest
import yaml

from meshplane.cli import build_parser, main
from meshplane.loader import config_to_mapping, load

_ENV_VARS = (
    "SERVICE_MESH_MODE",
    "SERVICE_MESH_SOURCE_KIND",
    "SERVICE_MESH_AUTHZ_TARGET",
    "SERVICE_MESH_CONTROLPLANE_TARGET",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_version_prints_single_line(capsys):
    assert main(["version"]) == 0
    assert capsys.readouterr().out == "version=dev commit=none date=unknown\n"


def test_validate_default_config(capsys):
    assert main(["validate"]) == 0
    assert capsys.readouterr().out == "config is valid: mode=agent source=consul\n"


def test_validate_with_flag_overrides(capsys):
    assert main(["validate", "--mode", "SIDECAR", "--source", "etcd"]) == 0
    assert capsys.readouterr().out == "config is valid: mode=sidecar source=etcd\n"


def test_env_override_and_flag_precedence(capsys, monkeypatch):
    monkeypatch.setenv("SERVICE_MESH_MODE", "sidecar")
    assert main(["validate"]) == 0
    assert "mode=sidecar" in capsys.readouterr().out
    assert main(["validate", "--mode", "agent"]) == 0
    assert "mode=agent" in capsys.readouterr().out


def test_validate_rejects_bad_mode(capsys):
    assert main(["validate", "--mode", "bogus"]) == 1
    assert "invalid mode: bogus" in capsys.readouterr().err


def test_validate_rejects_bad_source(capsys):
    assert main(["validate", "--source", "bogus"]) == 1
    assert "invalid source: bogus" in capsys.readouterr().err


def test_missing_config_file_fails(tmp_path, capsys):
    missing = tmp_path / "absent.yaml"
    assert main(["validate", "--config", str(missing)]) == 1
    assert capsys.readouterr().err.startswith("Error:")


def test_print_config_round_trips_loaded_config(capsys):
    assert main(["print-config"]) == 0
    printed = yaml.safe_load(capsys.readouterr().out)
    assert printed == config_to_mapping(load())


def test_print_config_reads_file(tmp_path, capsys):
    path = tmp_path / "sidecar.yaml"
    path.write_text(
        "mode: sidecar\nruntime:\n  sidecar:\n    address: 127.0.0.1:19091\n",
        encoding="utf-8",
    )
    assert main(["print-config", "--config", str(path)]) == 0
    printed = yaml.safe_load(capsys.readouterr().out)
    assert printed["mode"] == "sidecar"
    assert printed["runtime"]["sidecar"]["address"] == "127.0.0.1:19091"


def test_print_config_authz_override(capsys):
    assert main(["print-config", "--authz-target", " 10.1.1.1:9001 "]) == 0
    printed = yaml.safe_load(capsys.readouterr().out)
    assert printed["authz"]["target"] == "10.1.1.1:9001"


def test_unknown_command_exits():
    with pytest.raises(SystemExit):
        main(["bogus-command"])


def test_parser_common_flags():
    args = build_parser().parse_args(
        ["validate", "--controlplane-target", "cp:1", "--config", "x.yaml"]
    )
    assert args.controlplane_target == "cp:1"
    assert args.config == "x.yaml"