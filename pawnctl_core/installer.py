"""Materialize an :class:`InstallPlan` under an install root.

Installation runs in two phases:

1. every package that needs installing is downloaded and extracted into a
   private staging directory, concurrently and bounded by ``max_workers``;
2. staged packages are committed one by one in plan order (dependencies
   first). A commit moves the staged files into ``<root>/<package name>`` and
   then records them in the ledger.

If anything fails after the first commit, every package committed by the
same operation is rolled back: its files are removed, files displaced by a
forced reinstall are restored and the previous ledger record is put back.
"""

from __future__ import annotations

import logging
import os
import shutil
import tarfile
import tempfile
import threading
import zipfile
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import IO

from .errors import (
    InstallRootBusy,
    InstallWriteFailure,
    OperationCancelled,
    PackageError,
    PackageNotInstalled,
)
from .events import EventBus
from .github import GitHubClient, safe_output_path
from .layout import backup_root, ledger_path, lock_path, package_dir, staging_root
from .ledger import InstallLedger, InstallRecord
from .reference import format_locator
from .resolver import DependencyNode, InstallPlan

__all__ = [
    "InstallReport",
    "InstallRootLock",
    "Installer",
    "extract_archive",
]

logger = logging.getLogger(__name__)


# ============================================================
# Archive helpers
# ============================================================

def _member_parts(name: str) -> tuple[str, ...]:
    raw = name.replace("\\", "/")
    if raw.startswith("/") or (len(raw) > 1 and raw[1] == ":"):
        raise InstallWriteFailure(f"absolute archive member path: {name}")
    parts = tuple(part for part in PurePosixPath(raw).parts if part not in ("", "."))
    if ".." in parts:
        raise InstallWriteFailure(f"unsafe archive member path: {name}")
    return parts


def _strip_depth(entries: list[tuple[tuple[str, ...], bool]]) -> int:
    """1 when every entry lives under a single top-level directory, else 0."""

    files = [parts for parts, is_dir in entries if not is_dir and parts]
    if not files:
        return 0
    top = files[0][0]
    if all(len(parts) > 1 and parts[0] == top for parts in files) and all(
        parts[0] == top for parts, _ in entries if parts
    ):
        return 1
    return 0


def _write_member(source: IO[bytes], destination: Path) -> None:
    destination.parent.mkdir(parents=True, exist_ok=True)
    with destination.open("wb") as handle:
        shutil.copyfileobj(source, handle)


def _extract_tar(archive: Path, destination: Path) -> frozenset[str]:
    written: set[str] = set()
    with tarfile.open(archive, "r:*") as tf:
        members = tf.getmembers()
        entries = [(_member_parts(m.name), m.isdir()) for m in members if m.isdir() or m.isfile()]
        depth = _strip_depth(entries)
        for member in members:
            if not (member.isfile() or member.isdir()):
                logger.debug("skipping non-regular archive member %s", member.name)
                continue
            parts = _member_parts(member.name)[depth:]
            if not parts:
                continue
            relative = "/".join(parts)
            target = safe_output_path(destination, relative)
            if member.isdir():
                target.mkdir(parents=True, exist_ok=True)
                continue
            source = tf.extractfile(member)
            if source is None:
                continue
            with source:
                _write_member(source, target)
            written.add(relative)
    return frozenset(written)


def _extract_zip(archive: Path, destination: Path) -> frozenset[str]:
    written: set[str] = set()
    with zipfile.ZipFile(archive) as zf:
        infos = zf.infolist()
        depth = _strip_depth([(_member_parts(info.filename), info.is_dir()) for info in infos])
        for info in infos:
            parts = _member_parts(info.filename)[depth:]
            if not parts:
                continue
            relative = "/".join(parts)
            target = safe_output_path(destination, relative)
            if info.is_dir():
                target.mkdir(parents=True, exist_ok=True)
                continue
            with zf.open(info) as source:
                _write_member(source, target)
            written.add(relative)
    return frozenset(written)


def extract_archive(archive: Path, destination: Path) -> frozenset[str]:
    """Extract a tar or zip archive, dropping a single wrapping directory.

    Returns the relative POSIX paths of the regular files written. Links and
    special files are ignored; members escaping ``destination`` abort the
    extraction with :class:`InstallWriteFailure`.
    """

    destination.mkdir(parents=True, exist_ok=True)
    try:
        if tarfile.is_tarfile(archive):
            return _extract_tar(archive, destination)
        if zipfile.is_zipfile(archive):
            return _extract_zip(archive, destination)
    except (tarfile.TarError, zipfile.BadZipFile, EOFError) as exc:
        raise InstallWriteFailure(f"corrupt archive {archive.name}: {exc}") from exc
    except OSError as exc:
        raise InstallWriteFailure(f"unable to extract {archive.name}: {exc}") from exc
    raise InstallWriteFailure(f"unsupported archive format: {archive.name}")


def _prune_empty_dirs(root: Path) -> None:
    if not root.is_dir():
        return
    for current, _dirs, _files in os.walk(root, topdown=False):
        path = Path(current)
        if not any(path.iterdir()):
            path.rmdir()


def _files_under(root: Path) -> frozenset[str]:
    if not root.is_dir():
        return frozenset()
    return frozenset(p.relative_to(root).as_posix() for p in root.rglob("*") if p.is_file())


# ============================================================
# Install root lock
# ============================================================

class InstallRootLock:
    """Advisory lock file guarding mutation of one install root."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._held = False

    def __enter__(self) -> "InstallRootLock":
        self.path.parent.mkdir(parents=True, exist_ok=True)
        try:
            fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
        except FileExistsError as exc:
            raise InstallRootBusy(
                f"install root is locked by another operation ({self.path}); "
                "remove the file if no pawnctl process is running"
            ) from exc
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(str(os.getpid()))
        self._held = True
        return self

    def __exit__(self, *exc_info: object) -> None:
        if self._held:
            self.path.unlink(missing_ok=True)
            self._held = False


# ============================================================
# Installer
# ============================================================

@dataclass(frozen=True)
class InstallReport:
    installed: tuple[InstallRecord, ...] = ()
    skipped: tuple[str, ...] = ()


@dataclass
class _Staged:
    node: DependencyNode
    files_dir: Path
    files: frozenset[str]


@dataclass
class _Committed:
    record: InstallRecord
    target: Path
    previous: InstallRecord | None
    backup_dir: Path | None = None
    backed_up: list[str] = field(default_factory=list)


class Installer:
    def __init__(
        self,
        client: GitHubClient,
        install_root: Path,
        *,
        ledger: InstallLedger | None = None,
        events: EventBus | None = None,
        max_workers: int = 4,
        cancel: threading.Event | None = None,
    ) -> None:
        self.client = client
        self.root = Path(install_root)
        self.ledger = ledger or InstallLedger(ledger_path(self.root))
        self.events = events or EventBus()
        self.max_workers = max(int(max_workers), 1)
        self.cancel = cancel

    # ---------- Public API ----------

    def install(self, plan: InstallPlan, *, force: bool = False) -> InstallReport:
        pending, skipped = self._select(plan, force=force)
        if not pending:
            return InstallReport(skipped=tuple(skipped))
        self.root.mkdir(parents=True, exist_ok=True)
        with InstallRootLock(lock_path(self.root)):
            staging_root(self.root).mkdir(parents=True, exist_ok=True)
            backup_root(self.root).mkdir(parents=True, exist_ok=True)
            try:
                with tempfile.TemporaryDirectory(prefix="run-", dir=staging_root(self.root)) as staging:
                    staged = self._stage_all(pending, Path(staging))
                    self._check_cancel()
                    with tempfile.TemporaryDirectory(prefix="run-", dir=backup_root(self.root)) as backups:
                        records = self._commit_all(staged, Path(backups), force=force)
            finally:
                for leftover in (staging_root(self.root), backup_root(self.root)):
                    _remove_if_empty(leftover)
        return InstallReport(installed=tuple(records), skipped=tuple(skipped))

    def uninstall(self, package_name: str) -> InstallRecord:
        record = self.ledger.get(package_name)
        if record is None:
            raise PackageNotInstalled(f"package '{package_name}' is not installed")
        with InstallRootLock(lock_path(self.root)):
            target = package_dir(self.root, package_name)
            try:
                for relative in sorted(record.files_written):
                    safe_output_path(target, relative).unlink(missing_ok=True)
                _prune_empty_dirs(target)
            except OSError as exc:
                raise InstallWriteFailure(f"unable to remove {package_name}: {exc}") from exc
            self.ledger.remove(package_name)
        logger.info("uninstalled %s from %s", package_name, target)
        self.events.emit(
            "package_uninstalled",
            {"package": package_name, "files": len(record.files_written)},
        )
        return record

    # ---------- Selection ----------

    def _select(self, plan: InstallPlan, *, force: bool) -> tuple[list[DependencyNode], list[str]]:
        pending: list[DependencyNode] = []
        skipped: list[str] = []
        owners: dict[str, str] = {}
        for node in plan:
            name = node.package_name
            if owners.setdefault(name, node.identity) != node.identity:
                raise InstallWriteFailure(
                    f"packages {owners[name]} and {node.identity} both install as '{name}'"
                )
            try:
                target = package_dir(self.root, name)
            except ValueError as exc:
                raise InstallWriteFailure(str(exc)) from exc
            record = self.ledger.get(name)
            reason = None
            if node.satisfied:
                reason = "already installed"
            elif not force and record is not None and record.locator == format_locator(node.locator):
                reason = "already installed"
            elif not force and (record is not None or target.exists()):
                reason = f"existing install at {target} kept (use force to replace)"
                logger.warning("%s: %s", node.locator, reason)
            if reason is None:
                pending.append(node)
                continue
            skipped.append(name)
            self.events.emit(
                "package_skipped",
                {"package": name, "locator": format_locator(node.locator), "reason": reason},
            )
        return pending, skipped

    # ---------- Phase 1: stage ----------

    def _stage_all(self, nodes: list[DependencyNode], staging: Path) -> list[_Staged]:
        stop = threading.Event()
        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="pawnctl-download") as pool:
            futures: list[Future] = [
                pool.submit(self._stage, node, staging / f"{index:03d}", stop)
                for index, node in enumerate(nodes)
            ]
            remaining = set(futures)
            while remaining:
                done, remaining = wait(remaining, timeout=0.1, return_when=FIRST_EXCEPTION)
                if self.cancel is not None and self.cancel.is_set():
                    stop.set()
                if any(not future.cancelled() and future.exception() is not None for future in done):
                    stop.set()
                if stop.is_set():
                    for future in remaining:
                        future.cancel()
        self._check_cancel()
        staged: list[_Staged] = []
        failure: BaseException | None = None
        for future in futures:
            if future.cancelled():
                continue
            exc = future.exception()
            if exc is None:
                staged.append(future.result())
            elif failure is None or isinstance(failure, OperationCancelled):
                failure = exc
        if failure is not None:
            raise failure
        return staged

    def _stage(self, node: DependencyNode, workdir: Path, stop: threading.Event) -> _Staged:
        if stop.is_set():
            raise OperationCancelled(f"staging of {node.locator} cancelled")
        archive = workdir / "archive"
        download = self.client.download_archive(node.locator, archive, cancel=stop)
        actual = archive.stat().st_size
        if actual != download.size_bytes:
            raise InstallWriteFailure(
                f"archive size mismatch for {node.locator}: expected {download.size_bytes} "
                f"bytes but found {actual}"
            )
        files_dir = workdir / "files"
        files = extract_archive(archive, files_dir)
        archive.unlink()
        logger.debug("staged %s (%s files, %s bytes)", node.locator, len(files), download.size_bytes)
        self.events.emit(
            "package_downloaded",
            {"package": node.package_name, "locator": format_locator(node.locator), "bytes": actual},
        )
        return _Staged(node=node, files_dir=files_dir, files=files)

    # ---------- Phase 2: commit ----------

    def _commit_all(self, staged: list[_Staged], backups: Path, *, force: bool) -> list[InstallRecord]:
        committed: list[_Committed] = []
        try:
            for index, item in enumerate(staged):
                committed.append(self._commit(item, backups / f"{index:03d}", force=force))
        except BaseException:
            self._rollback(committed)
            raise
        for entry in committed:
            self.events.emit(
                "package_installed",
                {
                    "package": entry.record.package_name,
                    "locator": entry.record.locator,
                    "files": len(entry.record.files_written),
                },
            )
        return [entry.record for entry in committed]

    def _commit(self, staged: _Staged, backup_dir: Path, *, force: bool) -> _Committed:
        node = staged.node
        name = node.package_name
        target = package_dir(self.root, name)
        previous = self.ledger.get(name)
        record = InstallRecord(
            package_name=name,
            locator=format_locator(node.locator),
            install_path=str(target),
            files_written=staged.files,
        )
        entry = _Committed(record=record, target=target, previous=previous)
        moved: list[str] = []
        try:
            if force and target.exists():
                displaced = previous.files_written if previous is not None else _files_under(target)
                entry.backup_dir = backup_dir
                for relative in sorted(displaced):
                    current = safe_output_path(target, relative)
                    if not current.is_file():
                        continue
                    saved = safe_output_path(backup_dir, relative)
                    saved.parent.mkdir(parents=True, exist_ok=True)
                    os.replace(current, saved)
                    entry.backed_up.append(relative)
            for relative in sorted(staged.files):
                destination = safe_output_path(target, relative)
                destination.parent.mkdir(parents=True, exist_ok=True)
                os.replace(staged.files_dir / relative, destination)
                moved.append(relative)
            if not staged.files:
                target.mkdir(parents=True, exist_ok=True)
            self.ledger.put(record)
        except BaseException as exc:
            self._undo(entry, moved)
            if isinstance(exc, OSError):
                raise InstallWriteFailure(f"unable to install {name} into {target}: {exc}") from exc
            raise
        logger.info("installed %s (%s) into %s", name, record.locator, target)
        return entry

    # ---------- Rollback ----------

    def _rollback(self, committed: list[_Committed]) -> None:
        for entry in reversed(committed):
            logger.warning("rolling back %s", entry.record.package_name)
            try:
                self._undo(entry, sorted(entry.record.files_written))
            except (OSError, PackageError):
                logger.exception("rollback of %s incomplete", entry.record.package_name)
            self.events.emit("rollback", {"package": entry.record.package_name})

    def _undo(self, entry: _Committed, moved: list[str]) -> None:
        name = entry.record.package_name
        for relative in moved:
            safe_output_path(entry.target, relative).unlink(missing_ok=True)
        if entry.backup_dir is not None:
            for relative in entry.backed_up:
                destination = safe_output_path(entry.target, relative)
                destination.parent.mkdir(parents=True, exist_ok=True)
                os.replace(safe_output_path(entry.backup_dir, relative), destination)
        _prune_empty_dirs(entry.target)
        if entry.previous is not None:
            self.ledger.put(entry.previous)
        elif self.ledger.get(name) is not None:
            self.ledger.remove(name)

    def _check_cancel(self) -> None:
        if self.cancel is not None and self.cancel.is_set():
            raise OperationCancelled("install cancelled before any file was committed")


def _remove_if_empty(path: Path) -> None:
    if path.is_dir() and not any(path.iterdir()):
        path.rmdir()

