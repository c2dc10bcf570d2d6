"""Package reference parsing.

A reference is what a user types after ``pawnctl install``. Two shapes are
understood:

* ``owner/repo[@ref]`` - a GitHub repository, where ``ref`` is classified as
  a tag (``v<major>.<minor>.<patch>[suffix]``), a commit (40 hex digits) or,
  failing both, a branch. Without ``@ref`` the locator stays unresolved until
  the fetcher looks up the repository's default branch.
* anything URL-shaped - an opaque remote archive location.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, replace
from typing import Union

from .errors import InvalidReference
from .versions import is_semver_tag

__all__ = [
    "Branch",
    "Commit",
    "GitHubLocator",
    "PackageLocator",
    "Ref",
    "RemoteLocator",
    "classify_ref",
    "format_locator",
    "parse_reference",
]

logger = logging.getLogger(__name__)

_GITHUB_RE = re.compile(r"^([A-Za-z0-9_.\-]+)/([A-Za-z0-9_.\-]+)(?:@([A-Za-z0-9_./\-]+))?$")
_COMMIT_RE = re.compile(r"^[0-9a-fA-F]{40}$")
_URL_RE = re.compile(r"^[A-Za-z][A-Za-z0-9+.\-]*://\S+$")
_SCP_RE = re.compile(r"^[A-Za-z0-9_.\-]+@[A-Za-z0-9_.\-]+:\S+$")


@dataclass(frozen=True)
class Branch:
    name: str

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class Tag:
    name: str

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class Commit:
    sha: str

    def __str__(self) -> str:
        return self.sha


Ref = Union[Branch, Tag, Commit]


@dataclass(frozen=True)
class GitHubLocator:
    owner: str
    repository: str
    ref: Ref | None = None

    def __post_init__(self) -> None:
        if not self.owner or not self.repository:
            raise InvalidReference("owner and repository are required")
        if self.ref is not None and not isinstance(self.ref, (Branch, Tag, Commit)):
            raise InvalidReference(f"unsupported ref type: {type(self.ref).__name__}")

    @property
    def identity(self) -> str:
        return f"{self.owner}/{self.repository}".lower()

    @property
    def is_resolved(self) -> bool:
        return self.ref is not None

    def with_ref(self, ref: Ref) -> "GitHubLocator":
        return replace(self, ref=ref)

    def __str__(self) -> str:
        base = f"{self.owner}/{self.repository}"
        return f"{base}@{self.ref}" if self.ref is not None else base


@dataclass(frozen=True)
class RemoteLocator:
    url: str

    @property
    def identity(self) -> str:
        return self.url

    @property
    def is_resolved(self) -> bool:
        return True

    def __str__(self) -> str:
        return self.url


PackageLocator = Union[GitHubLocator, RemoteLocator]


def classify_ref(token: str) -> Ref:
    value = (token or "").strip()
    if not value:
        raise InvalidReference("empty ref")
    if is_semver_tag(value):
        return Tag(value)
    if _COMMIT_RE.match(value):
        return Commit(value.lower())
    return Branch(value)


def parse_reference(text: str, *, ref: str | None = None) -> PackageLocator:
    """Parse ``text`` into a locator; ``ref`` overrides an embedded ``@ref``."""

    value = (text or "").strip()
    if not value:
        raise InvalidReference("empty package reference")
    if any(ch.isspace() for ch in value):
        raise InvalidReference(f"package reference may not contain whitespace: {text!r}")

    match = _GITHUB_RE.match(value)
    if match:
        owner, repository, embedded = match.groups()
        token = ref if ref is not None else embedded
        if token is None:
            return GitHubLocator(owner, repository)
        return GitHubLocator(owner, repository, classify_ref(token))

    if value.endswith("@") and _GITHUB_RE.match(value[:-1]):
        raise InvalidReference(f"dangling '@' without a ref: {text!r}")

    if _URL_RE.match(value) or _SCP_RE.match(value):
        if ref is not None:
            logger.warning("ignoring ref %r for remote url %s", ref, value)
        return RemoteLocator(value)

    raise InvalidReference(f"not an owner/repo[@ref] reference or a remote url: {text!r}")


def format_locator(locator: PackageLocator) -> str:
    return str(locator)
