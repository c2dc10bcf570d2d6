"""Persistent record of what is installed under an install root."""

from __future__ import annotations

import json
import logging
import os
import threading
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from .errors import InstallWriteFailure

__all__ = ["LEDGER_VERSION", "InstallLedger", "InstallRecord"]

logger = logging.getLogger(__name__)

LEDGER_VERSION = 1


@dataclass(frozen=True)
class InstallRecord:
    package_name: str
    locator: str
    install_path: str
    installed_at: datetime = field(default_factory=lambda: datetime.now(tz=UTC))
    files_written: frozenset[str] = frozenset()

    def to_dict(self) -> dict[str, Any]:
        return {
            "packageName": self.package_name,
            "locator": self.locator,
            "installPath": self.install_path,
            "installedAt": self.installed_at.astimezone(UTC).isoformat(),
            "filesWritten": sorted(self.files_written),
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "InstallRecord":
        installed_at = datetime.fromisoformat(str(payload["installedAt"]))
        if installed_at.tzinfo is None:
            installed_at = installed_at.replace(tzinfo=UTC)
        files = payload.get("filesWritten") or []
        return cls(
            package_name=str(payload["packageName"]),
            locator=str(payload["locator"]),
            install_path=str(payload["installPath"]),
            installed_at=installed_at,
            files_written=frozenset(str(item) for item in files),
        )


class InstallLedger:
    """JSON-backed map of package name to :class:`InstallRecord`.

    The file is rewritten through a temporary sibling and ``os.replace`` on
    every change, so a crash leaves either the old or the new ledger.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._lock = threading.RLock()
        self._records: dict[str, InstallRecord] | None = None

    def get(self, package_name: str) -> InstallRecord | None:
        with self._lock:
            return self._load().get(package_name)

    def records(self) -> list[InstallRecord]:
        with self._lock:
            return [self._load()[name] for name in sorted(self._load())]

    def put(self, record: InstallRecord) -> None:
        with self._lock:
            records = dict(self._load())
            records[record.package_name] = record
            self._write(records)

    def remove(self, package_name: str) -> InstallRecord | None:
        with self._lock:
            records = dict(self._load())
            removed = records.pop(package_name, None)
            if removed is not None:
                self._write(records)
            return removed

    # ---------- Internal helpers ----------

    def _load(self) -> dict[str, InstallRecord]:
        if self._records is None:
            self._records = self._read()
        return self._records

    def _read(self) -> dict[str, InstallRecord]:
        if not self.path.exists():
            return {}
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("ledger %s is unreadable, starting empty: %s", self.path, exc)
            return {}
        packages = payload.get("packages") if isinstance(payload, dict) else None
        if not isinstance(packages, dict):
            logger.warning("ledger %s has no packages table, starting empty", self.path)
            return {}
        out: dict[str, InstallRecord] = {}
        for name, item in packages.items():
            try:
                out[name] = InstallRecord.from_dict(item)
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("skipping malformed ledger entry %s: %s", name, exc)
        return out

    def _write(self, records: dict[str, InstallRecord]) -> None:
        payload = {
            "ledgerVersion": LEDGER_VERSION,
            "packages": {name: records[name].to_dict() for name in sorted(records)},
        }
        tmp = self.path.with_name(f"{self.path.name}.tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
            os.replace(tmp, self.path)
        except OSError as exc:
            raise InstallWriteFailure(f"unable to write ledger {self.path}: {exc}") from exc
        self._records = records
