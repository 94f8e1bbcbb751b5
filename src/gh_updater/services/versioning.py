"""Semantic version parsing for release tags and installed versions."""

from __future__ import annotations

import semver


def parse_version(value: str | None) -> semver.Version | None:
    """Parse ``value`` as SemVer after stripping a leading "v".

    Returns None when the value is not valid SemVer.
    """
    if not value:
        return None
    candidate = value.strip()
    if candidate[:1] in ("v", "V"):
        candidate = candidate[1:]
    try:
        return semver.Version.parse(candidate)
    except (ValueError, TypeError):
        return None


def normalize_version(value: str) -> str:
    value = value.strip()
    return value[1:] if value[:1] in ("v", "V") else value


def compare_versions(left: str, right: str) -> int | None:
    """Three-way compare. None when either side is not SemVer."""
    a = parse_version(left)
    b = parse_version(right)
    if a is None or b is None:
        return None
    return a.compare(b)
