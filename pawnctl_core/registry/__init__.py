"""Convenience exports for the command registry."""

from .entry import PawnRegistryEntry
from .errors import (
    AmbiguousFeatureError,
    FeatureCollisionError,
    FeatureNotFoundError,
    FeatureRegistryError,
)
from .registry import FeatureRegistry

__all__ = [
    "PawnRegistryEntry",
    "FeatureRegistry",
    "FeatureRegistryError",
    "FeatureCollisionError",
    "FeatureNotFoundError",
    "AmbiguousFeatureError",
]
