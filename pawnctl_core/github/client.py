"""GitHub REST client with retries, rate-limit handling and streaming downloads."""

from __future__ import annotations

import logging
import threading
import time
from email.utils import parsedate_to_datetime
from pathlib import Path
from typing import Any, Callable, Mapping
from urllib.parse import quote, urlsplit

import requests
from requests import RequestException, Response
from requests.exceptions import InvalidSchema, InvalidURL, MissingSchema

from ..errors import (
    InstallWriteFailure,
    InvalidReference,
    NetworkFailure,
    OperationCancelled,
    RateLimited,
    RepositoryNotFound,
    SourceError,
)
from ..reference import PackageLocator, RemoteLocator
from .security import redact_headers_for_log, redact_url_for_log
from .types import ArchiveDownload, GitHubClientConfig

logger = logging.getLogger(__name__)

_JSON_MEDIA_TYPE = "application/vnd.github+json"
_RAW_MEDIA_TYPE = "application/vnd.github.raw+json"
_API_VERSION = "2022-11-28"
_ARCHIVE_SCHEMES = ("http", "https")


class GitHubClient:
    """Thin ``requests`` wrapper over the handful of GitHub endpoints we use."""

    def __init__(
        self,
        config: GitHubClientConfig | None = None,
        *,
        session: requests.Session | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config or GitHubClientConfig()
        self.api_url = self.config.api_url.rstrip("/")
        self.session = session or requests.Session()
        self.session.headers.setdefault("User-Agent", self.config.user_agent)
        self._sleep = sleep
        self._clock = clock

    # ---------- Public API ----------

    def repository(self, owner: str, repository: str) -> dict[str, Any]:
        url = f"{self.api_url}/repos/{quote(owner)}/{quote(repository)}"
        response = self._send("GET", url, headers={"Accept": _JSON_MEDIA_TYPE})
        with response:
            if response.status_code in (401, 403, 404):
                raise RepositoryNotFound(
                    f"repository {owner}/{repository} not found or inaccessible "
                    f"(status={response.status_code})"
                )
            _raise_for_unexpected(response, url)
            try:
                payload = response.json()
            except ValueError as exc:
                raise NetworkFailure(f"repository metadata for {owner}/{repository} is not json") from exc
        if not isinstance(payload, dict):
            raise NetworkFailure(f"unexpected repository payload for {owner}/{repository}")
        return payload

    def default_branch(self, owner: str, repository: str) -> str:
        payload = self.repository(owner, repository)
        branch = str(payload.get("default_branch") or "").strip()
        if not branch:
            raise RepositoryNotFound(f"repository {owner}/{repository} reports no default branch")
        return branch

    def file_content(self, owner: str, repository: str, path: str, ref: str) -> bytes | None:
        """Return the raw bytes of ``path`` at ``ref``, or ``None`` when absent."""

        url = f"{self.api_url}/repos/{quote(owner)}/{quote(repository)}/contents/{quote(path)}"
        response = self._send(
            "GET",
            url,
            params={"ref": ref},
            headers={"Accept": _RAW_MEDIA_TYPE},
        )
        with response:
            if response.status_code == 404:
                return None
            if response.status_code in (401, 403):
                raise RepositoryNotFound(
                    f"{owner}/{repository} is inaccessible (status={response.status_code})"
                )
            _raise_for_unexpected(response, url)
            return response.content

    def archive_url(self, locator: PackageLocator) -> str:
        if isinstance(locator, RemoteLocator):
            if urlsplit(locator.url).scheme.lower() not in _ARCHIVE_SCHEMES:
                raise InvalidReference(
                    f"remote source {redact_url_for_log(locator.url)} is not an http(s) archive url"
                )
            return locator.url
        if locator.ref is None:
            raise ValueError(f"locator {locator} must be resolved before download")
        return (
            f"{self.api_url}/repos/{quote(locator.owner)}/{quote(locator.repository)}"
            f"/tarball/{quote(str(locator.ref), safe='')}"
        )

    def download_archive(
        self,
        locator: PackageLocator,
        destination: Path,
        *,
        cancel: threading.Event | None = None,
        chunk_size: int = 1024 * 1024,
    ) -> ArchiveDownload:
        url = self.archive_url(locator)
        retries = max(int(self.config.max_retries), 1)
        for attempt in range(1, retries + 1):
            try:
                size = self._download_once(url, destination, cancel=cancel, chunk_size=chunk_size)
                return ArchiveDownload(url=url, path=destination, size_bytes=size)
            except NetworkFailure as exc:
                if destination.exists():
                    destination.unlink()
                if attempt >= retries:
                    raise
                logger.warning(
                    "download attempt %s/%s for %s failed: %s", attempt, retries, locator, exc
                )
                self._sleep(self._backoff(attempt))
        raise NetworkFailure(f"download of {url} failed")

    # ---------- Internal helpers ----------

    def _download_once(
        self,
        url: str,
        destination: Path,
        *,
        cancel: threading.Event | None,
        chunk_size: int,
    ) -> int:
        response = self._send("GET", url, stream=True, retries=1)
        with response:
            if response.status_code in (401, 403, 404):
                raise RepositoryNotFound(
                    f"archive {redact_url_for_log(url)} not found (status={response.status_code})"
                )
            _raise_for_unexpected(response, url)
            expected = _content_length(response)
            limit = self.config.max_archive_size_bytes
            destination.parent.mkdir(parents=True, exist_ok=True)
            written = 0
            try:
                with destination.open("wb") as handle:
                    for chunk in response.iter_content(chunk_size=chunk_size):
                        if cancel is not None and cancel.is_set():
                            raise OperationCancelled(f"download of {redact_url_for_log(url)} cancelled")
                        if not chunk:
                            continue
                        handle.write(chunk)
                        written += len(chunk)
                        if limit is not None and written > limit:
                            raise InstallWriteFailure(
                                f"archive size exceeds configured limit {limit} bytes"
                            )
            except RequestException as exc:
                raise NetworkFailure(f"download of {redact_url_for_log(url)} interrupted: {exc}") from exc
            except OSError as exc:
                raise InstallWriteFailure(f"unable to write {destination}: {exc}") from exc
        if expected is not None and written != expected:
            raise NetworkFailure(
                f"incomplete download of {redact_url_for_log(url)}: "
                f"expected {expected} bytes but got {written}"
            )
        if written == 0:
            raise NetworkFailure(f"empty download from {redact_url_for_log(url)}")
        logger.debug("downloaded %s bytes from %s", written, redact_url_for_log(url))
        return written

    def _headers_for(self, url: str, extra: Mapping[str, str] | None) -> dict[str, str]:
        headers = {"X-GitHub-Api-Version": _API_VERSION} if url.startswith(self.api_url) else {}
        if extra:
            headers.update(extra)
        # never leak the token to third-party hosts
        if self.config.token and url.startswith(self.api_url):
            headers["Authorization"] = f"Bearer {self.config.token}"
        return headers

    def _backoff(self, attempt: int) -> float:
        return min(max(float(self.config.backoff_seconds), 0.0) * attempt, 5.0)

    def _send(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        retries: int | None = None,
        **kwargs: Any,
    ) -> Response:
        timeout = max(float(self.config.timeout_seconds), 1.0)
        attempts = max(int(retries if retries is not None else self.config.max_retries), 1)
        request_headers = self._headers_for(url, headers)
        safe_url = redact_url_for_log(url)
        rate_limited_once = False
        attempt = 0
        while True:
            attempt += 1
            logger.debug(
                "github request attempt=%s/%s %s %s headers=%s",
                attempt,
                attempts,
                method,
                safe_url,
                redact_headers_for_log(request_headers),
            )
            failure: NetworkFailure
            try:
                response = self.session.request(
                    method, url, headers=request_headers, timeout=timeout, **kwargs
                )
            except (InvalidSchema, InvalidURL, MissingSchema) as exc:
                raise InvalidReference(f"cannot fetch {safe_url}: {exc}") from exc
            except RequestException as exc:
                failure = NetworkFailure(f"{method} {safe_url} failed: {exc}")
                failure.__cause__ = exc
            else:
                if _is_rate_limited(response):
                    retry_after = _retry_after_seconds(response, self._clock())
                    response.close()
                    cap = float(self.config.max_rate_limit_wait_seconds)
                    if retry_after is not None and retry_after > cap:
                        raise RateLimited(
                            f"rate limited by {safe_url}: retry-after of {retry_after:.0f}s exceeds "
                            f"max_rate_limit_wait_seconds={cap:g}, not waiting",
                            retry_after=retry_after,
                        )
                    if rate_limited_once:
                        raise RateLimited(
                            f"rate limited by {safe_url} again after waiting once", retry_after=retry_after
                        )
                    rate_limited_once = True
                    wait = max(retry_after or 0.0, float(self.config.backoff_seconds))
                    logger.warning("rate limited by %s, retrying in %.1fs", safe_url, wait)
                    self._sleep(wait)
                    attempt -= 1
                    continue
                if response.status_code < 500:
                    return response
                response.close()
                failure = NetworkFailure(f"{method} {safe_url} returned {response.status_code}")
            if attempt >= attempts:
                raise failure
            self._sleep(self._backoff(attempt))


def _is_rate_limited(response: Response) -> bool:
    if response.status_code == 429:
        return True
    if response.status_code == 403:
        remaining = (response.headers or {}).get("x-ratelimit-remaining")
        if remaining is not None and remaining.strip() == "0":
            return True
        return "retry-after" in (response.headers or {})
    return False


def _retry_after_seconds(response: Response, now: float) -> float | None:
    headers = response.headers or {}
    value = headers.get("retry-after")
    if value is not None:
        try:
            return max(0.0, float(value.strip()))
        except (TypeError, ValueError):
            pass
        try:
            return max(0.0, parsedate_to_datetime(value).timestamp() - now)
        except (TypeError, ValueError):
            return None
    reset = headers.get("x-ratelimit-reset")
    if reset is not None:
        try:
            return max(0.0, float(reset.strip()) - now)
        except (TypeError, ValueError):
            return None
    return None


def _content_length(response: Response) -> int | None:
    headers = response.headers or {}
    if headers.get("content-encoding"):
        return None
    value = headers.get("content-length")
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _raise_for_unexpected(response: Response, url: str) -> None:
    if 200 <= response.status_code < 300:
        return
    detail = " ".join((response.text or "").split())[:200]
    raise SourceError(
        f"GET {redact_url_for_log(url)} returned {response.status_code}: {detail}"
    )
