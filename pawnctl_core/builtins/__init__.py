"""Helper utilities for registering the builtin pawnctl commands."""

from __future__ import annotations

from typing import Sequence

from pawnctl_core.registry import FeatureRegistry, PawnRegistryEntry

from .commands import HelpCommand
from .packages import InstallCommand, ListCommand, UninstallCommand

__all__ = ["register_builtin_commands"]

_BUILTIN_COMMANDS: Sequence[type] = (
    InstallCommand,
    UninstallCommand,
    ListCommand,
    HelpCommand,
)


def register_builtin_commands(registry: FeatureRegistry) -> None:
    """Register the builtin command classes with the supplied registry."""

    for command in _BUILTIN_COMMANDS:
        metadata = getattr(command, "__pawn_feature__", None)
        if metadata is None:
            continue
        registry.register(
            PawnRegistryEntry(
                group=metadata["group"],
                name=str(metadata["name"]),
                target=command,
                kind=str(metadata["kind"]),
                origin="builtin",
            )
        )
