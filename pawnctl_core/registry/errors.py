"""Errors raised by the command registry."""

from __future__ import annotations

from typing import Sequence


class FeatureRegistryError(Exception):
    """Base class for registry errors."""


class FeatureCollisionError(FeatureRegistryError):
    """Raised when an entry already exists for a qualified name."""


class FeatureNotFoundError(FeatureRegistryError):
    """Raised when a command cannot be resolved."""


class AmbiguousFeatureError(FeatureRegistryError):
    def __init__(self, name: str, candidates: Sequence[str]) -> None:
        super().__init__(f"{name!r} matches multiple entries: {', '.join(candidates)}")
        self.name = name
        self.candidates = tuple(candidates)
