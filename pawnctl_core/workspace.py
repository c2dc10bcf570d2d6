"""Workspace helpers that find or create the .pawnctl directory hierarchy."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

import tomllib

from .paths import UserDirs

logger = logging.getLogger(__name__)

DEFAULT_WORKSPACE_NAME = ".pawnctl"
CONFIG_FILE_NAME = "config.toml"

_DEFAULTS: dict[str, str] = {
    "workspace_dir": DEFAULT_WORKSPACE_NAME,
}
_ENV_KEY_MAP: dict[str, tuple[str, ...]] = {
    "workspace_dir": ("PAWNCTL_DIR",),
    "github.token": ("PAWNCTL_GITHUB_TOKEN", "GITHUB_TOKEN"),
    "github.api_url": ("PAWNCTL_GITHUB_API_URL",),
}


def _flatten(data: Mapping[str, Any], prefix: str = "") -> dict[str, str]:
    out: dict[str, str] = {}
    for key, value in data.items():
        name = f"{prefix}{key}"
        if isinstance(value, Mapping):
            out.update(_flatten(value, prefix=f"{name}."))
        elif value is not None:
            out[name] = str(value)
    return out


def _load_config_from_file(path: Path) -> dict[str, str]:
    if not path.exists():
        return {}
    try:
        with path.open("rb") as handle:
            data = tomllib.load(handle)
    except (OSError, tomllib.TOMLDecodeError) as exc:
        logger.warning("ignoring unreadable config %s: %s", path, exc)
        return {}
    return _flatten(data)


@dataclass(frozen=True)
class WorkspaceLayout:
    """Defines the directory structure that .pawnctl should contain."""

    root: Path
    packages_dir: Path
    config_file: Path

    @property
    def project_root(self) -> Path:
        return self.root.parent

    @classmethod
    def from_root(cls, root: Path, config_filename: str = CONFIG_FILE_NAME) -> "WorkspaceLayout":
        root = root.resolve()
        return cls(
            root=root,
            packages_dir=root / "packages",
            config_file=root / config_filename,
        )

    def ensure(self) -> None:
        for directory in (self.root, self.packages_dir):
            directory.mkdir(parents=True, exist_ok=True)


@dataclass
class WorkspaceResolver:
    """Resolve and create pawnctl workspaces while honoring layered configuration.

    Settings are looked up with dotted keys (``github.token``) so that tables
    in ``config.toml`` and flat CLI/env overrides share one namespace.
    """

    workspace_name: str = DEFAULT_WORKSPACE_NAME
    config_filename: str = CONFIG_FILE_NAME
    user_dirs: UserDirs | None = None
    cli_overrides: Mapping[str, str] | None = None
    env: Mapping[str, str] | None = None
    defaults: Mapping[str, str] | None = None

    def __post_init__(self) -> None:
        self.user_dirs = self.user_dirs or UserDirs()
        self.cli_overrides = dict(self.cli_overrides or {})
        self.env = os.environ if self.env is None else self.env
        base_defaults = dict(_DEFAULTS)
        if self.defaults:
            base_defaults.update(self.defaults)
        self.defaults = base_defaults

    # ---------- Public API ----------

    def find_workspace(self, start_dir: Path | None = None) -> Path | None:
        """Look for an existing .pawnctl workspace by walking parent directories."""
        override = self._override_root_value()
        if override:
            candidate = override.expanduser().resolve()
            if candidate.is_dir():
                return candidate
            return None
        start = (Path(start_dir) if start_dir else Path.cwd()).resolve()
        for current in (start, *start.parents):
            candidate = current / self.workspace_name
            if candidate.is_dir():
                return candidate
        return None

    def ensure_workspace(self, start_dir: Path | None = None) -> WorkspaceLayout:
        """Create the minimal .pawnctl hierarchy and return its layout."""
        override = self._override_root_value()
        if override:
            root = override.expanduser().resolve()
        else:
            existing = self.find_workspace(start_dir)
            if existing is not None:
                root = existing
            else:
                base = (Path(start_dir) if start_dir else Path.cwd()).resolve()
                root = base / self.workspace_name
        layout = WorkspaceLayout.from_root(root, self.config_filename)
        layout.ensure()
        return layout

    def resolve_setting(self, key: str, start_dir: Path | None = None) -> str | None:
        """Return the value for `key` using CLI, env, workspace, user, defaults order."""
        if value := self.cli_overrides.get(key):
            return value
        if value := self._env_value(key):
            return value
        workspace_layer = self._workspace_config_layer(start_dir)
        if value := workspace_layer.get(key):
            return value
        user_layer = self._user_config_layer()
        if value := user_layer.get(key):
            return value
        return self.defaults.get(key)

    # ---------- Internal helpers ----------

    def _env_value(self, key: str) -> str | None:
        for name in _ENV_KEY_MAP.get(key, ()):
            value = self.env.get(name)
            if value:
                return value
        return None

    def _override_root_value(self) -> Path | None:
        if override := self.cli_overrides.get("workspace_dir"):
            return Path(override)
        if override := self._env_value("workspace_dir"):
            return Path(override)
        return None

    def _workspace_config_layer(self, start_dir: Path | None) -> dict[str, str]:
        workspace_root = self.find_workspace(start_dir)
        if workspace_root is None:
            return {}
        return _load_config_from_file(workspace_root / self.config_filename)

    def _user_config_layer(self) -> dict[str, str]:
        config_path = self.user_dirs.user_config_file(self.config_filename)
        return _load_config_from_file(config_path)
