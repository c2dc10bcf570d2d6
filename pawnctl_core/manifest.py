"""Package manifests (``pawn.json`` / ``pawn.yaml``) and the fetcher that loads them."""

from __future__ import annotations

import json
import logging
import threading
from concurrent.futures import Executor, Future
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, TypeVar

import yaml

from .errors import InvalidManifest, ManifestMissing, PackageError
from .github import GitHubClient
from .reference import Branch, GitHubLocator, PackageLocator, RemoteLocator

__all__ = [
    "MANIFEST_FILES",
    "Manifest",
    "ManifestFetcher",
    "PlatformResource",
    "bare_manifest",
    "parse_manifest",
]

logger = logging.getLogger(__name__)

MANIFEST_FILES = ("pawn.json", "pawn.yaml")

_T = TypeVar("_T")


@dataclass(frozen=True)
class PlatformResource:
    name: str
    platform: str | None = None


@dataclass(frozen=True)
class Manifest:
    package_name: str
    owner_name: str
    dependencies: tuple[str, ...] = ()
    include_path: str | None = None
    platform_resources: frozenset[PlatformResource] = field(default_factory=frozenset)
    locator: PackageLocator | None = None
    bare: bool = False


def bare_manifest(locator: PackageLocator) -> Manifest:
    """Manifest for a package that ships none: a zero-dependency file set."""

    if isinstance(locator, GitHubLocator):
        return Manifest(
            package_name=locator.repository,
            owner_name=locator.owner,
            locator=locator,
            bare=True,
        )
    name = locator.url.rstrip("/").rsplit("/", 1)[-1].rsplit(":", 1)[-1]
    for suffix in (".git", ".zip", ".tar.gz", ".tgz"):
        if name.endswith(suffix):
            name = name[: -len(suffix)]
            break
    return Manifest(package_name=name or "package", owner_name="", locator=locator, bare=True)


def _load_payload(raw: bytes, source: str) -> Any:
    try:
        text = raw.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise InvalidManifest(f"{source} is not valid utf-8") from exc
    if source.endswith((".yaml", ".yml")):
        try:
            return yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise InvalidManifest(f"unable to parse {source}: {exc}") from exc
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise InvalidManifest(f"unable to parse {source}: {exc}") from exc


def _optional_string(payload: dict[str, Any], key: str, source: str) -> str | None:
    value = payload.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise InvalidManifest(f"{source}: '{key}' must be a string")
    return value.strip() or None


def _dependencies(payload: dict[str, Any], source: str) -> tuple[str, ...]:
    raw = payload.get("dependencies")
    if raw is None:
        return ()
    if not isinstance(raw, list):
        raise InvalidManifest(f"{source}: 'dependencies' must be a list")
    out: list[str] = []
    for idx, item in enumerate(raw):
        if not isinstance(item, str) or not item.strip():
            raise InvalidManifest(f"{source}: dependencies[{idx}] must be a non-empty string")
        out.append(item.strip())
    return tuple(out)


def _resources(payload: dict[str, Any], source: str) -> frozenset[PlatformResource]:
    raw = payload.get("resources")
    if raw is None:
        return frozenset()
    if not isinstance(raw, list):
        raise InvalidManifest(f"{source}: 'resources' must be a list")
    out: set[PlatformResource] = set()
    for idx, item in enumerate(raw):
        if not isinstance(item, dict):
            raise InvalidManifest(f"{source}: resources[{idx}] must be an object")
        name = item.get("name")
        if not isinstance(name, str) or not name.strip():
            raise InvalidManifest(f"{source}: resources[{idx}].name is required")
        platform = item.get("platform")
        if platform is not None and not isinstance(platform, str):
            raise InvalidManifest(f"{source}: resources[{idx}].platform must be a string")
        out.add(PlatformResource(name=name.strip(), platform=platform))
    return frozenset(out)


def parse_manifest(raw: bytes, locator: PackageLocator, *, source: str = "pawn.json") -> Manifest:
    payload = _load_payload(raw, source)
    if not isinstance(payload, dict):
        raise InvalidManifest(f"{source}: top-level value must be an object")
    fallback = bare_manifest(locator)
    return Manifest(
        package_name=_optional_string(payload, "repo", source) or fallback.package_name,
        owner_name=_optional_string(payload, "user", source) or fallback.owner_name,
        dependencies=_dependencies(payload, source),
        include_path=_optional_string(payload, "include_path", source),
        platform_resources=_resources(payload, source),
        locator=locator,
    )


class ManifestFetcher:
    """Resolve locators and fetch their manifests, memoizing every outcome.

    Results and failures are both cached per locator, so a prefetch running on
    the executor and the traversal that later asks for the same locator share a
    single network round trip.
    """

    def __init__(self, client: GitHubClient, *, executor: Executor | None = None) -> None:
        self.client = client
        self._executor = executor
        self._lock = threading.Lock()
        self._resolved: dict[PackageLocator, Future] = {}
        self._manifests: dict[PackageLocator, Future] = {}
        self._repositories: dict[str, Future] = {}

    def resolve(self, locator: PackageLocator) -> PackageLocator:
        if locator.is_resolved:
            return locator
        return self._memo(self._resolved, locator, lambda: self._default_branch(locator)).result()

    def fetch(self, locator: PackageLocator) -> Manifest:
        if isinstance(locator, RemoteLocator):
            raise ManifestMissing(f"remote source {locator} has no fetchable manifest")
        if not locator.is_resolved:
            raise ValueError(f"locator {locator} must be resolved before fetching")
        return self._memo(self._manifests, locator, lambda: self._fetch(locator)).result()

    def prefetch(
        self,
        locators: Iterable[PackageLocator],
        *,
        skip: Callable[[PackageLocator], bool] | None = None,
    ) -> None:
        """Warm resolution and manifests on the executor.

        ``skip`` is called with each resolved locator; a true result leaves its
        manifest unfetched.
        """
        if self._executor is None:
            return
        for locator in locators:
            self._executor.submit(self._warm, locator, skip)

    # ---------- Internal helpers ----------

    def _warm(self, locator: PackageLocator, skip: Callable[[PackageLocator], bool] | None) -> None:
        try:
            resolved = self.resolve(locator)
            if skip is not None and skip(resolved):
                return
            self.fetch(resolved)
        except PackageError as exc:
            # memoized; surfaces when the traversal reaches this locator
            logger.debug("prefetch of %s failed: %s", locator, exc)

    def _memo(self, table: dict[Any, Future], key: Any, loader: Callable[[], _T]) -> Future:
        with self._lock:
            future = table.get(key)
            if future is not None:
                return future
            future = Future()
            table[key] = future
        try:
            future.set_result(loader())
        except Exception as exc:
            future.set_exception(exc)
        return future

    def _default_branch(self, locator: GitHubLocator) -> PackageLocator:
        branch = self.client.default_branch(locator.owner, locator.repository)
        logger.debug("resolved %s to default branch %s", locator, branch)
        return locator.with_ref(Branch(branch))

    def _fetch(self, locator: GitHubLocator) -> Manifest:
        ref = str(locator.ref)
        for name in MANIFEST_FILES:
            raw = self.client.file_content(locator.owner, locator.repository, name, ref)
            if raw is None:
                continue
            logger.debug("fetched %s for %s", name, locator)
            return parse_manifest(raw, locator, source=name)
        self._memo(
            self._repositories,
            locator.identity,
            lambda: self.client.repository(locator.owner, locator.repository),
        ).result()
        raise ManifestMissing(f"{locator} has no {' or '.join(MANIFEST_FILES)}")
