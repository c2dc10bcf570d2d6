"""Registry entry descriptor exposing qualified command metadata."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Type


@dataclass(frozen=True)
class PawnRegistryEntry:
    """Immutable descriptor for a registered command."""

    group: str
    name: str
    target: Type[Any]
    kind: str
    origin: str

    def __post_init__(self) -> None:
        for label in ("group", "name", "kind", "origin"):
            self._validate_component(label, getattr(self, label))
        if not isinstance(self.target, type):
            raise TypeError("target must be a class type.")

    @staticmethod
    def _validate_component(label: str, value: str) -> None:
        if not value:
            raise ValueError(f"{label} cannot be empty.")
        if ":" in value:
            raise ValueError(f"{label} may not contain ':'.")

    @property
    def qualified_name(self) -> str:
        return f"{self.group}:{self.name}"
