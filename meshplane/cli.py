"""Command-line entry point for inspecting and checking mesh configuration."""

from __future__ import annotations

import argparse
import sys
from typing import Callable, Dict, List, Optional

from .config import ConfigError
from .loader import LoadOptions, load, render

VERSION = "dev"
COMMIT = "none"
DATE = "unknown"


def _add_common_flags(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--config", default="", help="config file path")
    parser.add_argument("--mode", default="", help="runtime mode: agent or sidecar")
    parser.add_argument("--source", default="", help="source kind: consul or etcd")
    parser.add_argument("--authz-target", default="", help="ext_authz target")
    parser.add_argument(
        "--controlplane-target", default="", help="control plane target"
    )


def _load_options(args: argparse.Namespace) -> LoadOptions:
    return LoadOptions(
        path=args.config,
        mode=args.mode,
        source_kind=args.source,
        authz_target=args.authz_target,
        controlplane_target=args.controlplane_target,
    )


def _cmd_validate(args: argparse.Namespace) -> int:
    cfg = load(_load_options(args))
    sys.stdout.write(f"config is valid: mode={cfg.mode} source={cfg.source.kind}\n")
    return 0


def _cmd_print_config(args: argparse.Namespace) -> int:
    cfg = load(_load_options(args))
    sys.stdout.write(render(cfg))
    return 0


def _cmd_version(args: argparse.Namespace) -> int:
    sys.stdout.write(f"version={VERSION} commit={COMMIT} date={DATE}\n")
    return 0


_HANDLERS: Dict[str, Callable[[argparse.Namespace], int]] = {
    "validate": _cmd_validate,
    "print-config": _cmd_print_config,
    "version": _cmd_version,
}


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with all subcommands."""
    parser = argparse.ArgumentParser(
        prog="service-mesh", description="Firefly Service Mesh runtime"
    )
    commands = parser.add_subparsers(dest="command")

    validate_parser = commands.add_parser(
        "validate", help="Validate service-mesh config"
    )
    _add_common_flags(validate_parser)

    print_parser = commands.add_parser(
        "print-config", help="Print normalized service-mesh config"
    )
    _add_common_flags(print_parser)

    commands.add_parser("version", help="Print service-mesh version")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Run the command line and return the process exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)
    handler = _HANDLERS.get(args.command or "")
    if handler is None:
        parser.print_help(sys.stdout)
        return 0
    try:
        return handler(args)
    except (ConfigError, OSError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())