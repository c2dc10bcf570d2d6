"""Abstract base classes for pawnctl commands."""

from __future__ import annotations

from abc import ABC, abstractmethod
from argparse import ArgumentParser, Namespace


class PawnAbstractCommand(ABC):
    """Base interface for pawnctl commands."""

    @classmethod
    @abstractmethod
    def configure(cls, parser: ArgumentParser) -> None:
        """Let the command configure CLI arguments."""

    @abstractmethod
    def run(self, argv: Namespace) -> int:
        """Execute the command with parsed arguments."""
