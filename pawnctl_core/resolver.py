"""Dependency graph resolution.

The resolver walks the manifest graph depth-first from a root locator and
produces an :class:`InstallPlan` in which every package appears after all of
its dependencies. Nodes never point back at their parents; the traversal keeps
a separate colouring map keyed by package identity (``owner/repo``) to detect
cycles:

* ``WHITE`` - not visited yet
* ``GRAY``  - on the current ancestor chain
* ``BLACK`` - fully resolved

Reaching a ``GRAY`` identity is a cycle. Reaching a ``BLACK`` identity with a
different ref is a version conflict: two ``v<semver>`` tags are reconciled by
keeping the higher one, anything else aborts the resolution.

Resolution only reads from the network and the ledger; nothing on disk
changes until the installer consumes the plan.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator

from .errors import (
    CircularDependencyError,
    InvalidManifest,
    InvalidReference,
    ManifestMissing,
    OperationCancelled,
    UnresolvedVersionConflict,
)
from .events import EventBus
from .ledger import InstallLedger
from .manifest import Manifest, ManifestFetcher, bare_manifest
from .reference import GitHubLocator, PackageLocator, Tag, format_locator, parse_reference
from .versions import compare_tags

__all__ = [
    "Color",
    "DependencyNode",
    "DependencyResolver",
    "InstallPlan",
    "ResolutionState",
    "VersionDecision",
    "reconcile_versions",
]

logger = logging.getLogger(__name__)


class ResolutionState(Enum):
    UNVISITED = "unvisited"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    FAILED = "failed"


class Color(Enum):
    WHITE = "white"
    GRAY = "gray"
    BLACK = "black"


@dataclass(eq=False)
class DependencyNode:
    locator: PackageLocator
    manifest: Manifest | None = None
    children: list["DependencyNode"] = field(default_factory=list)
    state: ResolutionState = ResolutionState.UNVISITED
    satisfied: bool = False

    @property
    def identity(self) -> str:
        return self.locator.identity

    @property
    def package_name(self) -> str:
        if self.manifest is None:
            raise ValueError(f"{self.locator} has not been resolved")
        return self.manifest.package_name


@dataclass(frozen=True)
class VersionDecision:
    """A version conflict settled automatically by keeping the higher tag."""

    identity: str
    requested: PackageLocator
    selected: PackageLocator
    kind: str = "upgrade"


@dataclass(frozen=True)
class InstallPlan:
    nodes: tuple[DependencyNode, ...]
    upgrades: tuple[VersionDecision, ...] = ()

    def __iter__(self) -> Iterator[DependencyNode]:
        return iter(self.nodes)

    def __len__(self) -> int:
        return len(self.nodes)

    @property
    def root(self) -> DependencyNode:
        return self.nodes[-1]

    def describe(self) -> tuple[str, ...]:
        return tuple(format_locator(node.locator) for node in self.nodes)


def reconcile_versions(
    identity: str, current: PackageLocator, candidate: PackageLocator
) -> PackageLocator:
    """Pick the winner between two refs of one package or refuse to guess."""

    if (
        isinstance(current, GitHubLocator)
        and isinstance(candidate, GitHubLocator)
        and isinstance(current.ref, Tag)
        and isinstance(candidate.ref, Tag)
    ):
        return candidate if compare_tags(current.ref.name, candidate.ref.name) < 0 else current
    raise UnresolvedVersionConflict(identity, current, candidate)


def _same_version(a: PackageLocator, b: PackageLocator) -> bool:
    if a == b:
        return True
    return isinstance(a, GitHubLocator) and isinstance(b, GitHubLocator) and a.ref == b.ref


class _ColorMap:
    """Identity colouring; every transition happens under one lock."""

    def __init__(self) -> None:
        self._colors: dict[str, Color] = {}
        self._lock = threading.Lock()

    def enter(self, identity: str) -> Color:
        """Mark ``identity`` GRAY if WHITE; return the colour it had before."""
        with self._lock:
            previous = self._colors.get(identity, Color.WHITE)
            if previous is Color.WHITE:
                self._colors[identity] = Color.GRAY
            return previous

    def finish(self, identity: str) -> None:
        with self._lock:
            self._colors[identity] = Color.BLACK

    def get(self, identity: str) -> Color:
        with self._lock:
            return self._colors.get(identity, Color.WHITE)


class DependencyResolver:
    """Resolve a root locator into a dependency-first :class:`InstallPlan`.

    A pass that discovers a higher tag for an already resolved package pins
    that tag and the traversal starts over, so the final pass never visits
    the subtree of a superseded version. Manifests are memoized by the
    fetcher, which keeps the extra passes off the network.
    """

    def __init__(
        self,
        fetcher: ManifestFetcher,
        *,
        ledger: InstallLedger | None = None,
        events: EventBus | None = None,
        cancel: threading.Event | None = None,
    ) -> None:
        self.fetcher = fetcher
        self.ledger = ledger
        self.events = events or EventBus()
        self.cancel = cancel

    def resolve(
        self,
        root: PackageLocator,
        *,
        require_root_manifest: bool = True,
        include_dependencies: bool = True,
        force: bool = False,
    ) -> InstallPlan:
        pins: dict[str, PackageLocator] = {}
        passes = 0
        while True:
            passes += 1
            traversal = _Traversal(
                self,
                pins=pins,
                require_root_manifest=require_root_manifest,
                include_dependencies=include_dependencies,
                force=force,
            )
            root_node = traversal.visit(root, is_root=True)
            if not traversal.repinned:
                break
            logger.debug(
                "pass %s pinned %s; resolving again",
                passes,
                ", ".join(format_locator(locator) for locator in traversal.pins.values()),
            )
            pins = traversal.pins
        if traversal.conflicts:
            raise traversal.conflicts[0]

        plan = InstallPlan(
            nodes=tuple(traversal.ordered(root_node)),
            upgrades=tuple(traversal.decisions),
        )
        for decision in plan.upgrades:
            self._announce(decision)
        for node in plan:
            self.events.emit(
                "package_resolved",
                {"locator": format_locator(node.locator), "package": node.package_name},
            )
        logger.info("resolved %s into %s package(s) in %s pass(es)", root_node.locator, len(plan), passes)
        return plan

    def _announce(self, decision: VersionDecision) -> None:
        logger.info(
            "version conflict on %s: upgrading %s to %s",
            decision.identity,
            decision.requested,
            decision.selected,
        )
        self.events.emit(
            "version_upgrade",
            {
                "identity": decision.identity,
                "requested": format_locator(decision.requested),
                "selected": format_locator(decision.selected),
            },
        )


class _Traversal:
    """State of a single resolution pass."""

    def __init__(
        self,
        resolver: DependencyResolver,
        *,
        pins: dict[str, PackageLocator],
        require_root_manifest: bool,
        include_dependencies: bool,
        force: bool,
    ) -> None:
        self.fetcher = resolver.fetcher
        self.ledger = resolver.ledger
        self.cancel = resolver.cancel
        self.pins = dict(pins)
        self.require_root_manifest = require_root_manifest
        self.include_dependencies = include_dependencies
        self.force = force
        self.colors = _ColorMap()
        self.winners: dict[str, DependencyNode] = {}
        self.decisions: list[VersionDecision] = []
        self.conflicts: list[UnresolvedVersionConflict] = []
        self.repinned = False
        self.stack: list[str] = []

    def visit(self, locator: PackageLocator, *, is_root: bool = False) -> DependencyNode:
        if self.cancel is not None and self.cancel.is_set():
            raise OperationCancelled("resolution cancelled")
        resolved = self._apply_pin(self.fetcher.resolve(locator))
        identity = resolved.identity
        previous = self.colors.enter(identity)
        if previous is Color.GRAY:
            start = self.stack.index(identity)
            raise CircularDependencyError([*self.stack[start:], identity])
        if previous is Color.BLACK:
            return self._revisit(resolved)
        return self._expand(resolved, is_root=is_root)

    def _apply_pin(self, locator: PackageLocator) -> PackageLocator:
        identity = locator.identity
        pinned = self.pins.get(identity)
        if pinned is None or _same_version(pinned, locator):
            return locator
        try:
            winner = reconcile_versions(identity, pinned, locator)
        except UnresolvedVersionConflict as exc:
            self.conflicts.append(exc)
            return pinned
        if winner is pinned:
            self._record(VersionDecision(identity, requested=locator, selected=pinned))
            return pinned
        self._pin(identity, locator)
        return locator

    def _expand(self, locator: PackageLocator, *, is_root: bool) -> DependencyNode:
        identity = locator.identity
        node = DependencyNode(locator, state=ResolutionState.IN_PROGRESS)
        self.stack.append(identity)
        try:
            satisfied = None if is_root else self._installed_manifest(locator)
            if satisfied is not None:
                node.manifest = satisfied
                node.satisfied = True
                logger.debug("%s already installed, not descending", locator)
            else:
                node.manifest = self._manifest(locator, is_root=is_root)
                if self.include_dependencies:
                    dependencies = [
                        self._parse_dependency(node, text) for text in node.manifest.dependencies
                    ]
                    self.fetcher.prefetch(dependencies, skip=self._is_installed)
                    for dependency in dependencies:
                        node.children.append(self.visit(dependency))
        except Exception:
            node.state = ResolutionState.FAILED
            raise
        finally:
            self.stack.pop()
        node.state = ResolutionState.RESOLVED
        self.winners[identity] = node
        self.colors.finish(identity)
        return node

    def _revisit(self, locator: PackageLocator) -> DependencyNode:
        identity = locator.identity
        existing = self.winners[identity]
        if _same_version(existing.locator, locator):
            return existing
        try:
            winner = reconcile_versions(identity, existing.locator, locator)
        except UnresolvedVersionConflict as exc:
            # a later pass may drop one of the two requesters
            self.conflicts.append(exc)
            return existing
        if winner is existing.locator:
            self._record(VersionDecision(identity, requested=locator, selected=existing.locator))
        else:
            self._pin(identity, locator)
        return existing

    def _pin(self, identity: str, locator: PackageLocator) -> None:
        self.pins[identity] = locator
        self.repinned = True

    def _record(self, decision: VersionDecision) -> None:
        if decision not in self.decisions:
            self.decisions.append(decision)

    def _manifest(self, locator: PackageLocator, *, is_root: bool) -> Manifest:
        try:
            return self.fetcher.fetch(locator)
        except ManifestMissing:
            if is_root and self.require_root_manifest:
                raise
            logger.info("%s has no manifest, treating it as a leaf", locator)
            return bare_manifest(locator)

    def _installed_manifest(self, locator: PackageLocator) -> Manifest | None:
        if self.ledger is None or self.force:
            return None
        wanted = format_locator(locator)
        for record in self.ledger.records():
            if record.locator != wanted:
                continue
            owner = locator.owner if isinstance(locator, GitHubLocator) else ""
            return Manifest(package_name=record.package_name, owner_name=owner, locator=locator)
        return None

    def _is_installed(self, locator: PackageLocator) -> bool:
        return self._installed_manifest(locator) is not None

    @staticmethod
    def _parse_dependency(node: DependencyNode, text: str) -> PackageLocator:
        try:
            return parse_reference(text)
        except InvalidReference as exc:
            raise InvalidManifest(f"{node.locator}: invalid dependency {text!r}: {exc}") from exc

    def ordered(self, root: DependencyNode) -> list[DependencyNode]:
        """Post-order over the winning version of every package."""

        order: list[DependencyNode] = []
        done: set[str] = set()
        active: list[str] = []

        def walk(node: DependencyNode) -> None:
            node = self.winners.get(node.identity, node)
            identity = node.identity
            if identity in done:
                return
            if identity in active:
                start = active.index(identity)
                raise CircularDependencyError([*active[start:], identity])
            active.append(identity)
            for child in node.children:
                walk(child)
            active.pop()
            done.add(identity)
            order.append(node)

        walk(root)
        return order
