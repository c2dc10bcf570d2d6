"""End-to-end tests for PackageService against the in-memory source."""

from pathlib import Path

import pytest

from pawnctl_core.errors import ManifestMissing, PackageNotInstalled
from pawnctl_core.events import EventBus
from pawnctl_core.paths import UserDirs
from pawnctl_core.service import InstallOptions, PackageService


def _service(fake_client, tmp_path: Path, **kwargs) -> PackageService:
    return PackageService(
        workspace_root=tmp_path / "project" / ".pawnctl",
        client=fake_client,
        user_dirs=UserDirs(data_dir_override=tmp_path / "data"),
        **kwargs,
    )


def _gamemode(fake_client) -> None:
    fake_client.add_package(
        "me/gamemode@main",
        dependencies=["me/a@v1.0.0", "me/b@v1.0.0"],
        files={"gamemode.pwn": "main() {}"},
    )
    fake_client.add_package("me/a@v1.0.0", dependencies=["pblueg/mysql@v2.0.0"])
    fake_client.add_package("me/b@v1.0.0", dependencies=["pblueg/mysql@v1.5.0"])
    fake_client.add_package("pblueg/mysql@v2.0.0", files={"a_mysql.inc": "v2"})
    fake_client.add_package("pblueg/mysql@v1.5.0", files={"a_mysql.inc": "v1.5"})


def test_install_resolves_and_reports_upgrades(fake_client, tmp_path: Path) -> None:
    _gamemode(fake_client)
    service = _service(fake_client, tmp_path)

    result = service.install("me/gamemode@main")

    assert result.package_name == "gamemode"
    assert result.files_written == frozenset({"gamemode.pwn"})
    assert set(result.installed) == {"mysql", "a", "b", "gamemode"}
    assert result.installed[-1] == "gamemode"
    assert [str(decision.selected) for decision in result.upgrades] == ["pblueg/mysql@v2.0.0"]
    packages = tmp_path / "project" / ".pawnctl" / "packages"
    assert (packages / "mysql" / "a_mysql.inc").read_text() == "v2"
    assert fake_client.count("download", "pblueg/mysql@v1.5.0") == 0


def test_second_install_skips_everything(fake_client, tmp_path: Path) -> None:
    _gamemode(fake_client)
    service = _service(fake_client, tmp_path)
    service.install("me/gamemode@main")

    result = service.install("me/gamemode@main")

    assert result.installed == ()
    assert set(result.skipped) == {"a", "b", "gamemode"}
    assert fake_client.count("download", "me/gamemode@main") == 1


def test_ref_option_overrides_embedded_ref(fake_client, tmp_path: Path) -> None:
    fake_client.add_package("me/lib@v1.0.0", files={"lib.inc": "one"})
    fake_client.add_package("me/lib@v2.0.0", files={"lib.inc": "two"})
    service = _service(fake_client, tmp_path)

    service.install("me/lib@v1.0.0", InstallOptions(ref="v2.0.0"))

    record = service.ledger().get("lib")
    assert record is not None
    assert record.locator == "me/lib@v2.0.0"


def test_global_install_uses_user_data_dir(fake_client, tmp_path: Path) -> None:
    fake_client.add_package("me/lib@v1.0.0", dependencies=["me/dep@v1.0.0"])
    fake_client.add_package("me/dep@v1.0.0")
    service = _service(fake_client, tmp_path)

    result = service.install("me/lib@v1.0.0", InstallOptions(global_install=True, install_dependencies=False))

    assert result.installed == ("lib",)
    assert (tmp_path / "data" / "packages" / "lib" / "lib.inc").is_file()
    assert [record.package_name for record in service.list_installed(global_install=True)] == ["lib"]
    assert service.list_installed() == []


def test_remote_archive_installs_without_manifest(fake_client, tmp_path: Path) -> None:
    url = "https://example.com/files/colours.tar.gz"
    fake_client.add_archive(url, {"colours.inc": "#define RED 0xFF0000FF"})
    service = _service(fake_client, tmp_path)

    result = service.install(url)

    assert result.package_name == "colours"
    assert service.ledger().get("colours").locator == url


def test_github_root_without_manifest_is_rejected(fake_client, tmp_path: Path) -> None:
    fake_client.add_package("me/plain@main", manifest_format="none")
    with pytest.raises(ManifestMissing):
        _service(fake_client, tmp_path).install("me/plain@main")


def test_events_reach_subscribers(fake_client, tmp_path: Path) -> None:
    fake_client.add_package("me/lib@v1.0.0")
    events = EventBus()
    seen: list[str] = []
    for name in ("package_resolved", "package_downloaded", "package_installed", "package_uninstalled"):
        events.on(name, lambda event: seen.append(event.name))
    service = _service(fake_client, tmp_path, events=events)

    service.install("me/lib@v1.0.0")
    service.uninstall("lib")

    assert seen == ["package_resolved", "package_downloaded", "package_installed", "package_uninstalled"]


def test_uninstall_and_list(fake_client, tmp_path: Path) -> None:
    fake_client.add_package("me/root@main", dependencies=["me/lib@v1.0.0"])
    fake_client.add_package("me/lib@v1.0.0")
    service = _service(fake_client, tmp_path)
    service.install("me/root@main")

    assert [record.package_name for record in service.list_installed()] == ["lib", "root"]

    removed = service.uninstall("lib")

    assert removed.locator == "me/lib@v1.0.0"
    assert [record.package_name for record in service.list_installed()] == ["root"]
    with pytest.raises(PackageNotInstalled):
        service.uninstall("lib")


def test_uninstall_without_ledger(fake_client, tmp_path: Path) -> None:
    with pytest.raises(PackageNotInstalled):
        _service(fake_client, tmp_path).uninstall("anything")
    assert not (tmp_path / "project" / ".pawnctl" / "packages").exists()
