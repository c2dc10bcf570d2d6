"""Core runtime for pawnctl: package resolution and installation."""

from .errors import PackageError
from .events import Event, EventBus
from .ledger import InstallLedger, InstallRecord
from .paths import UserDirs
from .reference import parse_reference
from .service import InstallOptions, Installed, PackageService
from .workspace import WorkspaceLayout, WorkspaceResolver

__all__ = [
    "Event",
    "EventBus",
    "InstallLedger",
    "InstallOptions",
    "InstallRecord",
    "Installed",
    "PackageError",
    "PackageService",
    "UserDirs",
    "WorkspaceLayout",
    "WorkspaceResolver",
    "parse_reference",
]
