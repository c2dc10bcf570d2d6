"""GitHub client datatypes and configuration."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

DEFAULT_API_URL = "https://api.github.com"
DEFAULT_USER_AGENT = "pawnctl - https://github.com/itsneufox/pawnctl/issues"


@dataclass(frozen=True)
class GitHubClientConfig:
    api_url: str = DEFAULT_API_URL
    timeout_seconds: float = 30.0
    max_retries: int = 3
    backoff_seconds: float = 0.5
    max_rate_limit_wait_seconds: float = 60.0
    max_archive_size_bytes: int | None = None
    token: str | None = None
    user_agent: str = DEFAULT_USER_AGENT


@dataclass(frozen=True)
class ArchiveDownload:
    url: str
    path: Path
    size_bytes: int
