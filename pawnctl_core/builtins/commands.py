"""Shared command plumbing and the help command."""

from __future__ import annotations

import inspect
from argparse import ArgumentParser, Namespace
from typing import TYPE_CHECKING

from pawnctl_core.api import PawnAbstractCommand, pawncommand

if TYPE_CHECKING:
    from pawnctl_core.app import PawnctlApp


class _AppCommand(PawnAbstractCommand):
    """Commands that operate through a :class:`PawnctlApp`."""

    label = "pawnctl"

    def __init__(self, app: "PawnctlApp | None" = None) -> None:
        if app is None:
            from pawnctl_core.app import PawnctlApp

            app = PawnctlApp()
            app.bootstrap()
        self.app = app

    def say(self, message: str) -> None:
        print(f"[pawnctl:{self.label}] {message}")


def command_summary(target: type) -> str:
    lines = (inspect.getdoc(target) or "").strip().splitlines()
    return lines[0] if lines else ""


@pawncommand(name="help", group="pawnctl")
class HelpCommand(_AppCommand):
    """Show the available commands."""

    label = "help"

    @classmethod
    def configure(cls, parser: ArgumentParser) -> None:
        pass

    def run(self, argv: Namespace) -> int:
        print("Usage: pawnctl [-v|-q] <command> [args...]\n")
        print("Commands:")
        for entry in self.app.feature_registry.entries():
            print(f"  {entry.name:<12} {command_summary(entry.target)}")
        return 0
