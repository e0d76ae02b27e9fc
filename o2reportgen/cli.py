"""Command-line subcommands that run instead of the server."""

from __future__ import annotations

import argparse
import os
from collections.abc import Sequence
from pathlib import Path

from o2reportgen.config import VERSION


def set_permission(path: str | os.PathLike[str], mode: int) -> None:
    """Create ``path`` with its parents and, on POSIX systems, set its mode."""
    target = Path(path)
    target.mkdir(parents=True, exist_ok=True)
    if os.name == "posix":
        os.chmod(target, mode)


def build_parser() -> argparse.ArgumentParser:
    """The argument parser for the report generator."""
    parser = argparse.ArgumentParser(prog="report-generator")
    parser.add_argument("-V", "--version", action="version", version=f"report-generator {VERSION}")
    commands = parser.add_subparsers(dest="command")
    init_dir = commands.add_parser("init-dir", help="init report-generator data dir")
    init_dir.add_argument("-p", "--path", help="init this path as data root dir")
    return parser


def cli(argv: Sequence[str] | None = None) -> bool:
    """Run a subcommand if one is given; return whether one ran."""
    args = build_parser().parse_args(argv)
    if args.command is None:
        return False
    if args.command == "init-dir":
        if args.path is None:
            raise ValueError("please set data path")
        set_permission(args.path, 0o777)
        print(f"init dir {args.path} successfully")
        return True
    print(f"command {args.command} execute successfully")
    return True