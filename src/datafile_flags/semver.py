"""Semantic version comparison used by the ``semver*`` condition operators.

Follows the ``compare-versions`` algorithm shared by all SDKs: up to four
numeric segments, ``x`` / ``*`` wildcards, and pre-release ordering where a
pre-release sorts before its release.
"""

from __future__ import annotations

import re

__all__ = ["compare_versions"]

SEMVER_PATTERN = re.compile(
    r"^[v^~<>=]*?(\d+)"
    r"(?:\.([x*]|\d+)"
    r"(?:\.([x*]|\d+)"
    r"(?:\.([x*]|\d+))?"
    r"(?:-([\da-z\-]+(?:\.[\da-z\-]+)*))?"
    r"(?:\+[\da-z\-]+(?:\.[\da-z\-]+)*)?"
    r")?)?$",
    re.IGNORECASE,
)


def _validate_and_parse(version: str) -> list[str | None]:
    if not isinstance(version, str):
        msg = "Invalid argument expected string"
        raise TypeError(msg)
    match = SEMVER_PATTERN.match(version)
    if match is None:
        msg = f"Invalid argument not valid semver ('{version}' received)"
        raise ValueError(msg)
    return list(match.groups())


def _is_wildcard(segment: str) -> bool:
    return segment in {"*", "x", "X"}


def _try_parse(segment: str) -> int | str:
    try:
        return int(segment, 10)
    except ValueError:
        return segment


def _compare_strings(a: str, b: str) -> int:
    if _is_wildcard(a) or _is_wildcard(b):
        return 0

    ap, bp = _try_parse(a), _try_parse(b)
    if type(ap) is not type(bp):
        ap, bp = str(ap), str(bp)

    if ap > bp:  # type: ignore[operator]
        return 1
    if ap < bp:  # type: ignore[operator]
        return -1
    return 0


def _compare_segments(a: list[str | None], b: list[str | None]) -> int:
    for i in range(max(len(a), len(b))):
        a_segment = (a[i] if i < len(a) else None) or "0"
        b_segment = (b[i] if i < len(b) else None) or "0"
        result = _compare_strings(a_segment, b_segment)
        if result != 0:
            return result
    return 0


def compare_versions(v1: str, v2: str) -> int:
    """Compare two semantic versions.

    Args:
        v1: First version.
        v2: Second version.

    Returns:
        ``1`` if ``v1 > v2``, ``-1`` if ``v1 < v2``, ``0`` if equal.

    Raises:
        TypeError: If either argument is not a string.
        ValueError: If either argument is not a valid version.
    """
    n1 = _validate_and_parse(v1)
    n2 = _validate_and_parse(v2)

    pre1 = n1.pop()
    pre2 = n2.pop()

    result = _compare_segments(n1, n2)
    if result != 0:
        return result

    if pre1 and pre2:
        return _compare_segments(pre1.split("."), pre2.split("."))  # type: ignore[arg-type]
    if pre1 or pre2:
        return -1 if pre1 else 1
    return 0
