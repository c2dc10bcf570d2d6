"""Layout helpers for an install root (``.pawnctl/packages`` or the global one)."""

from __future__ import annotations

from pathlib import Path

__all__ = [
    "backup_root",
    "ledger_path",
    "lock_path",
    "package_dir",
    "staging_root",
]

LEDGER_FILE_NAME = "pawnctl.ledger.json"
LOCK_FILE_NAME = ".pawnctl.lock"
STAGING_DIR_NAME = ".staging"
BACKUP_DIR_NAME = ".backup"

RESERVED_NAMES = frozenset({LEDGER_FILE_NAME, LOCK_FILE_NAME, STAGING_DIR_NAME, BACKUP_DIR_NAME})


def ledger_path(root: Path) -> Path:
    return root / LEDGER_FILE_NAME


def lock_path(root: Path) -> Path:
    return root / LOCK_FILE_NAME


def staging_root(root: Path) -> Path:
    return root / STAGING_DIR_NAME


def backup_root(root: Path) -> Path:
    return root / BACKUP_DIR_NAME


def package_dir(root: Path, package_name: str) -> Path:
    name = (package_name or "").strip()
    if not name or name in {".", ".."} or "/" in name or "\\" in name or name in RESERVED_NAMES:
        raise ValueError(f"unusable package name: {package_name!r}")
    return root / name
