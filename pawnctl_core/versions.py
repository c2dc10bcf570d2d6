"""Tag grammar and ordering used when reconciling dependency versions."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple

__all__ = [
    "TagVersion",
    "compare_tags",
    "is_semver_tag",
    "parse_tag",
    "tag_key",
]

_TAG_RE = re.compile(r"^v(\d+)\.(\d+)\.(\d+)([0-9A-Za-z.+\-]*)$")

_STAGE_ORDER: dict[str, int] = {
    "dev": 0,
    "snapshot": 0,
    "nightly": 0,

    "a": 10,
    "alpha": 10,

    "b": 20,
    "beta": 20,

    "pre": 30,
    "preview": 30,

    "rc": 40,
    "candidate": 40,

    "stable": 90,
    "release": 90,
    "ga": 90,

    "final": 100,
}

# no suffix at all sorts above every qualified build of the same triple
_RELEASE_RANK = 1000


@dataclass(frozen=True)
class TagVersion:
    major: int
    minor: int
    patch: int
    suffix: str = ""


def parse_tag(tag: str) -> Optional[TagVersion]:
    match = _TAG_RE.match((tag or "").strip())
    if not match:
        return None
    major, minor, patch, suffix = match.groups()
    return TagVersion(int(major), int(minor), int(patch), suffix)


def is_semver_tag(tag: str) -> bool:
    return parse_tag(tag) is not None


def _tokenize_text_and_int(s: str) -> List[Any]:
    s = (s or "").strip()
    if not s:
        return []
    out: List[Any] = []
    i = 0
    while i < len(s):
        if s[i].isdigit():
            j = i
            while j < len(s) and s[j].isdigit():
                j += 1
            out.append((0, int(s[i:j])))
            i = j
        else:
            j = i
            while j < len(s) and not s[j].isdigit():
                j += 1
            out.append((1, s[i:j].lower()))
            i = j
    return out


def _suffix_key(suffix: str) -> Tuple[int, int, Tuple[Any, ...]]:
    tokens = [t for t in re.split(r"[.+\-]", suffix or "") if t]
    if not tokens:
        return (_RELEASE_RANK, 0, ())

    flat: List[Any] = []
    for token in tokens:
        flat.extend(_tokenize_text_and_int(token))

    stage_rank = None
    stage_num = 0
    extra: List[Any] = []
    seen_stage = False
    seen_num = False
    for typ, val in flat:
        if typ == 1 and val in _STAGE_ORDER and not seen_stage:
            stage_rank = _STAGE_ORDER[val]
            seen_stage = True
            continue
        if seen_stage and typ == 0 and not seen_num:
            stage_num = val
            seen_num = True
            continue
        # numbers outrank text at the same position
        extra.append((1 if typ == 0 else 0, val))

    if stage_rank is None:
        stage_rank = 50
    return (stage_rank, stage_num, tuple(extra))


def tag_key(tag: str) -> Tuple[int, int, int, Tuple[int, int, Tuple[Any, ...]]]:
    parsed = parse_tag(tag)
    if parsed is None:
        raise ValueError(f"not a v<major>.<minor>.<patch> tag: {tag!r}")
    return (parsed.major, parsed.minor, parsed.patch, _suffix_key(parsed.suffix))


def compare_tags(a: str, b: str) -> int:
    """Return -1, 0 or 1 comparing two semver tags component-wise.

    The numeric triple decides first; the suffix only breaks ties, with a
    bare release above any qualified build (``v1.0.0 > v1.0.0-rc1``).
    """
    ka, kb = tag_key(a), tag_key(b)
    if ka == kb:
        return 0
    return 1 if ka > kb else -1
