"""Tests for tag parsing and ordering."""

import pytest

from pawnctl_core.versions import TagVersion, compare_tags, is_semver_tag, parse_tag


def test_parse_tag_splits_components() -> None:
    assert parse_tag("v1.5.10-beta2") == TagVersion(1, 5, 10, "-beta2")
    assert parse_tag("1.5.10") is None
    assert not is_semver_tag("master")


@pytest.mark.parametrize(
    ("a", "b", "expected"),
    [
        ("v2.0.0", "v1.5.0", 1),
        ("v1.5.0", "v2.0.0", -1),
        ("v1.10.0", "v1.9.0", 1),
        ("v1.0.0", "v1.0.0", 0),
        ("v1.0.0", "v1.0.0-rc1", 1),
        ("v1.0.0-rc2", "v1.0.0-rc1", 1),
        ("v1.0.0-beta", "v1.0.0-alpha", 1),
        ("v1.0.0-rc1", "v1.0.0-beta5", 1),
    ],
)
def test_compare_tags(a: str, b: str, expected: int) -> None:
    assert compare_tags(a, b) == expected


def test_compare_rejects_non_tags() -> None:
    with pytest.raises(ValueError):
        compare_tags("main", "v1.0.0")
