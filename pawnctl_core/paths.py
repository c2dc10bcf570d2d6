"""Per-user pawnctl locations: user-level configuration and the global install root."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from platformdirs import user_config_dir, user_data_dir

APP_NAME = "pawnctl"
GLOBAL_PACKAGES_DIRNAME = "packages"


@dataclass(frozen=True)
class UserDirs:
    """Where pawnctl keeps state that is not tied to one project.

    ``config_dir`` holds the user-level ``config.toml`` consulted after the
    workspace one; ``data_dir`` hosts the install root that
    ``pawnctl install --global`` writes to. Both default to the platformdirs
    locations and can be overridden, which the tests rely on.
    """

    app_name: str = APP_NAME
    config_dir_override: Path | None = None
    data_dir_override: Path | None = None

    def config_dir(self) -> Path:
        if self.config_dir_override is not None:
            return Path(self.config_dir_override)
        return Path(user_config_dir(self.app_name, appauthor=False))

    def data_dir(self) -> Path:
        if self.data_dir_override is not None:
            return Path(self.data_dir_override)
        return Path(user_data_dir(self.app_name, appauthor=False))

    def user_config_file(self, filename: str) -> Path:
        return self.config_dir() / filename

    def global_packages_dir(self) -> Path:
        """Install root shared by every project of this user."""
        return self.data_dir() / GLOBAL_PACKAGES_DIRNAME
