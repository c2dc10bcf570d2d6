"""Shared fixtures: an in-memory stand-in for the GitHub source client."""

from __future__ import annotations

import io
import json
import tarfile
import threading
from pathlib import Path
from typing import Any

import pytest

from pawnctl_core.errors import RepositoryNotFound
from pawnctl_core.github import ArchiveDownload
from pawnctl_core.reference import PackageLocator


def build_tarball(files: dict[str, str], top: str = "pkg-0000000") -> bytes:
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as tf:
        for name, content in sorted(files.items()):
            data = content.encode("utf-8")
            info = tarfile.TarInfo(f"{top}/{name}")
            info.size = len(data)
            tf.addfile(info, io.BytesIO(data))
    return buffer.getvalue()


class FakeGitHubClient:
    """Serves repositories, manifests and archives from dictionaries."""

    def __init__(self) -> None:
        self.default_branches: dict[str, str] = {}
        self.files: dict[tuple[str, str, str], bytes] = {}
        self.archives: dict[str, bytes] = {}
        self.download_errors: dict[str, Exception] = {}
        self.calls: list[tuple[str, str]] = []
        self._lock = threading.Lock()

    def add_package(
        self,
        reference: str,
        *,
        dependencies: list[str] | None = None,
        files: dict[str, str] | None = None,
        manifest: dict[str, Any] | None = None,
        manifest_format: str = "json",
        default_branch: str = "master",
    ) -> None:
        """Register ``owner/repo@ref`` with a manifest and an archive."""

        repo, _, ref = reference.partition("@")
        identity = repo.lower()
        self.default_branches.setdefault(identity, default_branch)
        ref = ref or self.default_branches[identity]
        if manifest_format == "json":
            payload = dict(manifest or {})
            if dependencies is not None:
                payload["dependencies"] = dependencies
            self.files[(identity, ref, "pawn.json")] = json.dumps(payload).encode("utf-8")
        elif manifest_format == "yaml":
            lines = [f"{key}: {value}" for key, value in (manifest or {}).items()]
            if dependencies:
                lines.append("dependencies:")
                lines.extend(f"  - {dep}" for dep in dependencies)
            self.files[(identity, ref, "pawn.yaml")] = ("\n".join(lines) + "\n").encode("utf-8")
        name = repo.split("/", 1)[1]
        content = files if files is not None else {f"{name}.inc": f"// {reference}\n"}
        self.archives[f"{repo}@{ref}"] = build_tarball(content, top=f"{repo.replace('/', '-')}-abc1234")

    def add_archive(self, url: str, files: dict[str, str]) -> None:
        """Serve a plain archive at ``url`` for remote locators."""

        self.archives[url] = build_tarball(files, top="archive")

    def _record(self, kind: str, target: str) -> None:
        with self._lock:
            self.calls.append((kind, target))

    def count(self, kind: str, target: str) -> int:
        with self._lock:
            return self.calls.count((kind, target))

    # ---------- GitHubClient surface ----------

    def repository(self, owner: str, repository: str) -> dict[str, Any]:
        identity = f"{owner}/{repository}".lower()
        self._record("repository", identity)
        if identity not in self.default_branches:
            raise RepositoryNotFound(f"repository {identity} not found")
        return {"default_branch": self.default_branches[identity]}

    def default_branch(self, owner: str, repository: str) -> str:
        return str(self.repository(owner, repository)["default_branch"])

    def file_content(self, owner: str, repository: str, path: str, ref: str) -> bytes | None:
        identity = f"{owner}/{repository}".lower()
        self._record("file", f"{identity}@{ref}/{path}")
        if identity not in self.default_branches:
            raise RepositoryNotFound(f"repository {identity} not found")
        return self.files.get((identity, ref, path))

    def download_archive(
        self,
        locator: PackageLocator,
        destination: Path,
        *,
        cancel: threading.Event | None = None,
        chunk_size: int = 1024 * 1024,
    ) -> ArchiveDownload:
        key = str(locator)
        self._record("download", key)
        if key in self.download_errors:
            raise self.download_errors[key]
        data = self.archives.get(key)
        if data is None:
            raise RepositoryNotFound(f"archive {key} not found")
        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_bytes(data)
        return ArchiveDownload(url=f"fake://{key}", path=destination, size_bytes=len(data))


@pytest.fixture
def fake_client() -> FakeGitHubClient:
    return FakeGitHubClient()
