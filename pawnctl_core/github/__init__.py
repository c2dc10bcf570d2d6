"""GitHub source client for pawnctl packages."""

from .client import GitHubClient
from .security import redact_token, safe_output_path
from .types import DEFAULT_API_URL, ArchiveDownload, GitHubClientConfig

__all__ = [
    "GitHubClient",
    "GitHubClientConfig",
    "ArchiveDownload",
    "DEFAULT_API_URL",
    "redact_token",
    "safe_output_path",
]
