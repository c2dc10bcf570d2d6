"""Security helpers for credentials in logs and archive extraction paths."""

from __future__ import annotations

from pathlib import Path
from typing import Mapping
from urllib.parse import urlsplit

from ..errors import InstallWriteFailure

_SENSITIVE_KEYS = ("password", "token", "authorization", "cookie")


def safe_output_path(base_dir: Path, relative_path: str) -> Path:
    target = (base_dir / relative_path).resolve()
    root = base_dir.resolve()
    if target == root:
        return target
    if root not in target.parents:
        raise InstallWriteFailure(f"path traversal blocked for archive member: {relative_path}")
    return target


def redact_token(value: str) -> str:
    if not value:
        return value
    if len(value) <= 6:
        return "***"
    return f"{value[:3]}***{value[-2:]}"


def redact_headers_for_log(headers: Mapping[str, str]) -> dict[str, str]:
    redacted: dict[str, str] = {}
    for key, value in headers.items():
        lower = key.lower()
        if any(marker in lower for marker in _SENSITIVE_KEYS):
            scheme, _, secret = str(value).partition(" ")
            redacted[key] = f"{scheme} {redact_token(secret)}" if secret else redact_token(scheme)
            continue
        redacted[key] = str(value)
    return redacted


def redact_url_for_log(url: str) -> str:
    parsed = urlsplit(url)
    if parsed.password:
        return url.replace(parsed.netloc, parsed.netloc.replace(parsed.password, "***"))
    return url
