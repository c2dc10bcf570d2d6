"""Typed settings assembled from the layered workspace configuration.

``config.toml`` (workspace or user level) may carry a ``[github]`` table::

    [github]
    api_url = "https://api.github.com"
    token = "ghp_..."
    timeout_seconds = 30
    max_retries = 3
    backoff_seconds = 0.5
    max_rate_limit_wait_seconds = 60
    max_archive_size_bytes = 104857600
    concurrency = 4
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, TypeVar

from .errors import ConfigurationError
from .github import GitHubClientConfig
from .workspace import WorkspaceResolver

__all__ = ["DEFAULT_CONCURRENCY", "PawnctlSettings", "load_settings"]

DEFAULT_CONCURRENCY = 4

_T = TypeVar("_T")


@dataclass(frozen=True)
class PawnctlSettings:
    github: GitHubClientConfig = field(default_factory=GitHubClientConfig)
    concurrency: int = DEFAULT_CONCURRENCY


def _convert(key: str, raw: str | None, cast: Callable[[str], _T], default: _T) -> _T:
    if raw is None or raw == "":
        return default
    try:
        return cast(raw)
    except ValueError as exc:
        raise ConfigurationError(f"invalid value for {key}: {raw!r}") from exc


def _positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise ValueError(value)
    return number


def load_settings(
    resolver: WorkspaceResolver | None = None,
    *,
    start_dir: Path | None = None,
) -> PawnctlSettings:
    resolver = resolver or WorkspaceResolver()
    base = GitHubClientConfig()

    def setting(name: str) -> str | None:
        return resolver.resolve_setting(f"github.{name}", start_dir)

    size_limit = setting("max_archive_size_bytes")
    github = GitHubClientConfig(
        api_url=setting("api_url") or base.api_url,
        token=setting("token") or None,
        timeout_seconds=_convert("github.timeout_seconds", setting("timeout_seconds"), float, base.timeout_seconds),
        max_retries=_convert("github.max_retries", setting("max_retries"), _positive_int, base.max_retries),
        backoff_seconds=_convert("github.backoff_seconds", setting("backoff_seconds"), float, base.backoff_seconds),
        max_rate_limit_wait_seconds=_convert(
            "github.max_rate_limit_wait_seconds",
            setting("max_rate_limit_wait_seconds"),
            float,
            base.max_rate_limit_wait_seconds,
        ),
        max_archive_size_bytes=_convert(
            "github.max_archive_size_bytes", size_limit, _positive_int, base.max_archive_size_bytes
        ),
    )
    concurrency = _convert("github.concurrency", setting("concurrency"), _positive_int, DEFAULT_CONCURRENCY)
    return PawnctlSettings(github=github, concurrency=concurrency)
