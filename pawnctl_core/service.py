"""Caller-facing package operations: install, uninstall and list."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path

from .config import PawnctlSettings
from .errors import PackageNotInstalled
from .events import EventBus
from .github import GitHubClient
from .installer import Installer
from .layout import ledger_path
from .ledger import InstallLedger, InstallRecord
from .manifest import ManifestFetcher
from .paths import UserDirs
from .reference import GitHubLocator, parse_reference
from .resolver import DependencyResolver, VersionDecision
from .workspace import DEFAULT_WORKSPACE_NAME, WorkspaceLayout

__all__ = ["InstallOptions", "Installed", "PackageService"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InstallOptions:
    global_install: bool = False
    ref: str | None = None
    force: bool = False
    install_dependencies: bool = True


@dataclass(frozen=True)
class Installed:
    package_name: str
    files_written: frozenset[str]
    installed: tuple[str, ...] = ()
    skipped: tuple[str, ...] = ()
    upgrades: tuple[VersionDecision, ...] = ()


class PackageService:
    """Wire reference parsing, resolution, installation and the ledger together.

    ``workspace_root`` is the project's ``.pawnctl`` directory; the global
    install root lives in the user data directory.
    """

    def __init__(
        self,
        *,
        workspace_root: Path | None = None,
        settings: PawnctlSettings | None = None,
        client: GitHubClient | None = None,
        events: EventBus | None = None,
        user_dirs: UserDirs | None = None,
        cancel: threading.Event | None = None,
    ) -> None:
        self.workspace_root = Path(workspace_root) if workspace_root else Path.cwd() / DEFAULT_WORKSPACE_NAME
        self.settings = settings or PawnctlSettings()
        self.client = client or GitHubClient(self.settings.github)
        self.events = events or EventBus()
        self.user_dirs = user_dirs or UserDirs()
        self.cancel = cancel

    def install_root(self, global_install: bool = False) -> Path:
        if global_install:
            return self.user_dirs.global_packages_dir()
        return WorkspaceLayout.from_root(self.workspace_root).packages_dir

    def ledger(self, global_install: bool = False) -> InstallLedger:
        return InstallLedger(ledger_path(self.install_root(global_install)))

    def install(self, reference: str, options: InstallOptions | None = None) -> Installed:
        options = options or InstallOptions()
        locator = parse_reference(reference, ref=options.ref)
        root = self.install_root(options.global_install)
        ledger = InstallLedger(ledger_path(root))
        logger.info("installing %s into %s", locator, root)

        pool = ThreadPoolExecutor(
            max_workers=self.settings.concurrency, thread_name_prefix="pawnctl-resolve"
        )
        try:
            resolver = DependencyResolver(
                ManifestFetcher(self.client, executor=pool),
                ledger=ledger,
                events=self.events,
                cancel=self.cancel,
            )
            plan = resolver.resolve(
                locator,
                require_root_manifest=isinstance(locator, GitHubLocator),
                include_dependencies=options.install_dependencies,
                force=options.force,
            )
        finally:
            pool.shutdown(wait=True, cancel_futures=True)

        installer = Installer(
            self.client,
            root,
            ledger=ledger,
            events=self.events,
            max_workers=self.settings.concurrency,
            cancel=self.cancel,
        )
        report = installer.install(plan, force=options.force)
        package_name = plan.root.package_name
        record = ledger.get(package_name)
        return Installed(
            package_name=package_name,
            files_written=record.files_written if record is not None else frozenset(),
            installed=tuple(item.package_name for item in report.installed),
            skipped=report.skipped,
            upgrades=plan.upgrades,
        )

    def uninstall(self, package_name: str, *, global_install: bool = False) -> InstallRecord:
        root = self.install_root(global_install)
        if not ledger_path(root).exists():
            raise PackageNotInstalled(f"package '{package_name}' is not installed")
        installer = Installer(self.client, root, events=self.events)
        return installer.uninstall(package_name)

    def list_installed(self, *, global_install: bool = False) -> list[InstallRecord]:
        return self.ledger(global_install).records()
