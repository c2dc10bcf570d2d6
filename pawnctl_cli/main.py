"""pawnctl CLI entrypoint backed by the command registry."""

from __future__ import annotations

import argparse
import inspect
import logging
import sys
from pathlib import Path
from typing import Sequence

from pawnctl_core.app import PawnctlApp
from pawnctl_core.errors import PackageError
from pawnctl_core.registry import AmbiguousFeatureError, FeatureNotFoundError

CLI_VERSION = "0.1.0"

_LOG_FORMAT = "%(levelname)s %(name)s: %(message)s"


def _configure_logging(verbose: bool, quiet: bool) -> None:
    level = logging.DEBUG if verbose else logging.WARNING if quiet else logging.INFO
    logging.basicConfig(level=level, format=_LOG_FORMAT)


def _split_global_flags(tokens: list[str]) -> tuple[bool, bool, list[str]]:
    verbose = quiet = False
    rest = list(tokens)
    while rest and rest[0] in ("-v", "--verbose", "-q", "--quiet"):
        flag = rest.pop(0)
        if flag in ("-v", "--verbose"):
            verbose = True
        else:
            quiet = True
    return verbose, quiet, rest


def main(
    argv: Sequence[str] | None = None,
    *,
    start_dir: Path | str | None = None,
    app: PawnctlApp | None = None,
) -> int:
    """Resolve and run a pawnctl command."""

    tokens = list(argv) if argv is not None else list(sys.argv[1:])
    verbose, quiet, tokens = _split_global_flags(tokens)
    _configure_logging(verbose, quiet)

    if tokens and tokens[0] == "--version":
        print(f"pawnctl v{CLI_VERSION}")
        return 0

    app = app or PawnctlApp(start_dir=start_dir)
    app.bootstrap()
    if not tokens or tokens[0] in ("-h", "--help"):
        tokens = ["help"]

    name, *command_args = tokens
    try:
        entry = app.feature_registry.resolve(name)
    except FeatureNotFoundError as exc:
        print(f"[pawnctl] {exc}")
        return 1
    except AmbiguousFeatureError as exc:
        print(f"[pawnctl] command is ambiguous ({', '.join(exc.candidates)}); use group:name")
        return 1

    parser = argparse.ArgumentParser(
        prog=f"pawnctl {entry.name}",
        description=(inspect.getdoc(entry.target) or "").strip(),
    )
    entry.target.configure(parser)
    try:
        parsed_args = parser.parse_args(command_args)
    except SystemExit as exc:
        return exc.code or 0

    command = entry.target(app)
    try:
        result = command.run(parsed_args)
    except PackageError as exc:
        print(f"[pawnctl:{entry.name}] error: {exc}")
        return 1
    return 0 if result is None else int(result)
