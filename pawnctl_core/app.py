"""Lightweight application object that wires workspace, settings and commands."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Mapping

from pawnctl_core.builtins import register_builtin_commands
from pawnctl_core.config import PawnctlSettings, load_settings
from pawnctl_core.events import EventBus
from pawnctl_core.github import GitHubClient
from pawnctl_core.paths import UserDirs
from pawnctl_core.registry import FeatureRegistry
from pawnctl_core.service import PackageService
from pawnctl_core.workspace import WorkspaceResolver


class PawnctlApp:
    """Entry point that glues the workspace, configuration and builtin commands."""

    def __init__(
        self,
        *,
        start_dir: Path | str | None = None,
        user_dirs: UserDirs | None = None,
        env: Mapping[str, str] | None = None,
        cli_overrides: Mapping[str, str] | None = None,
        client: GitHubClient | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.logger = logger or logging.getLogger("pawnctl_core.app")
        self.start_dir = Path(start_dir).resolve() if start_dir else Path.cwd()
        self.user_dirs = user_dirs or UserDirs()
        self.workspace_resolver = WorkspaceResolver(
            user_dirs=self.user_dirs, env=env, cli_overrides=cli_overrides
        )
        self.events = EventBus()
        self.feature_registry = FeatureRegistry()
        self._client = client
        self._settings: PawnctlSettings | None = None
        self._builtins_registered = False

    @property
    def workspace_root(self) -> Path:
        found = self.workspace_resolver.find_workspace(self.start_dir)
        if found is not None:
            return found
        return self.start_dir / self.workspace_resolver.workspace_name

    @property
    def settings(self) -> PawnctlSettings:
        if self._settings is None:
            self._settings = load_settings(self.workspace_resolver, start_dir=self.start_dir)
        return self._settings

    def bootstrap(self) -> tuple[str, ...]:
        if not self._builtins_registered:
            register_builtin_commands(self.feature_registry)
            self._builtins_registered = True
        return tuple(entry.name for entry in self.feature_registry.entries())

    def package_service(self, *, cancel: threading.Event | None = None) -> PackageService:
        settings = self.settings
        client = self._client or GitHubClient(settings.github)
        self.logger.debug("workspace root %s", self.workspace_root)
        return PackageService(
            workspace_root=self.workspace_root,
            settings=settings,
            client=client,
            events=self.events,
            user_dirs=self.user_dirs,
            cancel=cancel,
        )
