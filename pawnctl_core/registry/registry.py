"""In-memory registry for pawnctl commands."""

from __future__ import annotations

from .entry import PawnRegistryEntry
from .errors import AmbiguousFeatureError, FeatureCollisionError, FeatureNotFoundError


class FeatureRegistry:
    """Track commands by qualified (``group:name``) and simple names."""

    def __init__(self) -> None:
        self._by_qualified: dict[str, PawnRegistryEntry] = {}
        self._by_name: dict[str, list[PawnRegistryEntry]] = {}

    def register(self, entry: PawnRegistryEntry) -> None:
        qualified = entry.qualified_name
        if qualified in self._by_qualified:
            raise FeatureCollisionError(f"{qualified} is already registered.")
        self._by_qualified[qualified] = entry
        self._by_name.setdefault(entry.name, []).append(entry)

    def resolve(self, name_or_qualified: str) -> PawnRegistryEntry:
        """Resolve either a simple name or a qualified ``group:name``."""

        if ":" in name_or_qualified:
            entry = self._by_qualified.get(name_or_qualified)
            if entry is None:
                raise FeatureNotFoundError(f"{name_or_qualified} is not registered.")
            return entry
        candidates = self._by_name.get(name_or_qualified)
        if not candidates:
            raise FeatureNotFoundError(f"{name_or_qualified} is not registered.")
        if len(candidates) > 1:
            raise AmbiguousFeatureError(
                name_or_qualified, sorted(entry.qualified_name for entry in candidates)
            )
        return candidates[0]

    def entries(self) -> tuple[PawnRegistryEntry, ...]:
        return tuple(sorted(self._by_qualified.values(), key=lambda entry: entry.qualified_name))
