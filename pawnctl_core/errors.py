"""Typed errors raised by the package resolver and installer."""

from __future__ import annotations

from typing import Sequence


class PackageError(RuntimeError):
    """Base package error."""


class InvalidReference(PackageError):
    """The package reference matches neither the GitHub nor the URL grammar."""


class SourceError(PackageError):
    """A package source could not deliver what was asked for."""


class RepositoryNotFound(SourceError):
    """Repository (or the requested ref) does not exist or is inaccessible."""


class ManifestMissing(SourceError):
    """Repository exists but carries no manifest file."""


class InvalidManifest(SourceError):
    """Manifest is present but fails parsing or schema validation."""


class NetworkFailure(SourceError):
    """Transient transport failure, eligible for retry."""


class RateLimited(SourceError):
    """Source API quota exhausted."""

    def __init__(self, message: str, *, retry_after: float | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class ResolutionError(PackageError):
    """Dependency graph could not be resolved."""


class CircularDependencyError(ResolutionError):
    def __init__(self, cycle: Sequence[str]) -> None:
        self.cycle = tuple(cycle)
        super().__init__(f"circular dependency: {' -> '.join(self.cycle)}")


class UnresolvedVersionConflict(ResolutionError):
    def __init__(self, identity: str, first: object, second: object) -> None:
        self.identity = identity
        self.first = first
        self.second = second
        super().__init__(
            f"version conflict for {identity}: {first} vs {second} "
            "(only two v<semver> tags can be reconciled automatically)"
        )


class InstallWriteFailure(PackageError):
    """Filesystem-level failure while placing package files."""


class InstallRootBusy(PackageError):
    """Another operation holds the install root lock."""


class OperationCancelled(PackageError):
    """The caller cancelled the operation before anything was committed."""


class PackageNotInstalled(PackageError):
    """No ledger record exists for the requested package."""


class ConfigurationError(PackageError):
    """A configuration value is present but cannot be used."""
