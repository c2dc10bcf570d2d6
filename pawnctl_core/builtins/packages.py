"""Builtin package commands: install, uninstall and list."""

from __future__ import annotations

import json
from argparse import ArgumentParser, Namespace

from pawnctl_core.api import pawncommand
from pawnctl_core.errors import PackageError
from pawnctl_core.events import Event
from pawnctl_core.service import InstallOptions

from .commands import _AppCommand


@pawncommand(name="install", group="pawnctl")
class InstallCommand(_AppCommand):
    """Install a package and its dependencies.

    The reference is either owner/repo[@ref] for a GitHub repository or the
    URL of an archive.
    """

    label = "install"

    @classmethod
    def configure(cls, parser: ArgumentParser) -> None:
        parser.add_argument("reference", help="owner/repo[@ref] or archive url")
        parser.add_argument("--ref", help="Branch, tag or commit overriding any @ref")
        parser.add_argument(
            "--global",
            "-g",
            dest="global_install",
            action="store_true",
            help="Install into the user-wide package root",
        )
        parser.add_argument("--force", action="store_true", help="Replace existing installs")
        parser.add_argument(
            "--no-deps",
            dest="install_dependencies",
            action="store_false",
            help="Install only the named package",
        )

    def run(self, argv: Namespace) -> int:
        events = self.app.events
        events.on("version_upgrade", self._on_upgrade)
        events.on("package_installed", self._on_installed)
        events.on("package_skipped", self._on_skipped)
        events.on("rollback", self._on_rollback)
        options = InstallOptions(
            global_install=bool(argv.global_install),
            ref=argv.ref,
            force=bool(argv.force),
            install_dependencies=bool(argv.install_dependencies),
        )
        try:
            result = self.app.package_service().install(str(argv.reference), options)
        except PackageError as exc:
            self.say(f"error: {exc}")
            return 1
        self.say(
            f"done package={result.package_name} files={len(result.files_written)} "
            f"installed={len(result.installed)} skipped={len(result.skipped)}"
        )
        return 0

    def _on_upgrade(self, event: Event) -> None:
        payload = event.payload
        self.say(f"upgrade {payload['identity']}: {payload['requested']} -> {payload['selected']}")

    def _on_installed(self, event: Event) -> None:
        self.say(f"installed {event.payload['package']} ({event.payload['locator']})")

    def _on_skipped(self, event: Event) -> None:
        self.say(f"skipped {event.payload['package']}: {event.payload['reason']}")

    def _on_rollback(self, event: Event) -> None:
        self.say(f"rolled back {event.payload['package']}")


@pawncommand(name="uninstall", group="pawnctl")
class UninstallCommand(_AppCommand):
    """Remove an installed package by name."""

    label = "uninstall"

    @classmethod
    def configure(cls, parser: ArgumentParser) -> None:
        parser.add_argument("name", help="Installed package name")
        parser.add_argument("--global", "-g", dest="global_install", action="store_true")

    def run(self, argv: Namespace) -> int:
        service = self.app.package_service()
        try:
            record = service.uninstall(str(argv.name), global_install=bool(argv.global_install))
        except PackageError as exc:
            self.say(f"error: {exc}")
            return 1
        self.say(f"removed {record.package_name} ({len(record.files_written)} files)")
        return 0


@pawncommand(name="list", group="pawnctl")
class ListCommand(_AppCommand):
    """List installed packages."""

    label = "list"

    @classmethod
    def configure(cls, parser: ArgumentParser) -> None:
        parser.add_argument("--global", "-g", dest="global_install", action="store_true")
        parser.add_argument("--format", choices=["text", "json"], default="text")

    def run(self, argv: Namespace) -> int:
        records = self.app.package_service().list_installed(
            global_install=bool(argv.global_install)
        )
        if argv.format == "json":
            print(json.dumps([record.to_dict() for record in records], indent=2))
            return 0
        if not records:
            self.say("no packages installed")
            return 0
        for record in records:
            print(f"{record.package_name:<24} {record.locator}")
        return 0
