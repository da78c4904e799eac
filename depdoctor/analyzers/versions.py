"""Semantic-version helpers on top of node-semver.

npm versions and ranges follow node's semver dialect (``^1.2``, ``1.x``,
``>=2 <3 || 4``), so parsing and range tests go through ``nodesemver``
rather than a PEP 440 implementation. Everything here is loose: installed
manifests in the wild carry versions like ``v1.2.3`` or ``1.2``.
"""

import re
from collections.abc import Iterable
from functools import cmp_to_key

import nodesemver

_VERSION_PREFIX = re.compile(
    r"v?=?\s*(\d+)(?:\.(\d+|[xX*]))?(?:\.(\d+|[xX*]))?(-[0-9A-Za-z.-]+)?"
)
_WILDCARDS = frozenset({"", "*", "x", "X", "latest"})


def parse_version(version: str):
    """Parse a version string, returning None when it is not semver."""
    try:
        return nodesemver.parse(version, True)
    except (ValueError, TypeError):
        return None


def is_valid(version: str) -> bool:
    return parse_version(version) is not None


def is_prerelease(version: str) -> bool:
    parsed = parse_version(version)
    return bool(parsed is not None and parsed.prerelease)


def major_of(version: str) -> int | None:
    parsed = parse_version(version)
    return None if parsed is None else parsed.major


def compare_versions(a: str, b: str) -> int:
    """Order two version strings.

    Semver precedence when both parse; a parseable version sorts above an
    unparsable one; two unparsable strings compare lexically.
    """
    pa, pb = parse_version(a), parse_version(b)
    if pa is not None and pb is not None:
        return nodesemver.compare(a, b, True)
    if pa is not None:
        return 1
    if pb is not None:
        return -1
    return (a > b) - (a < b)


version_key = cmp_to_key(compare_versions)


def sort_versions(versions: Iterable[str], newest_first: bool = False) -> list[str]:
    """Sort valid versions by precedence, dropping unparsable ones."""
    valid = [v for v in versions if is_valid(v)]
    return sorted(valid, key=version_key, reverse=newest_first)


def highest_version(versions: Iterable[str]) -> str | None:
    """Highest valid version, or None if none parse."""
    ordered = sort_versions(versions, newest_first=True)
    return ordered[0] if ordered else None


def satisfies(version: str, range_: str) -> bool:
    try:
        return bool(nodesemver.satisfies(version, range_, True))
    except (ValueError, TypeError):
        return False


def range_floor(range_: str) -> str | None:
    """Lowest version a single comparator set allows.

    ``^1.2`` -> ``1.2.0``, ``>=2.1.0 <3`` -> ``2.1.0``, ``*`` -> ``0.0.0``.
    Returns None when the floor cannot be stated (``<2``, ``>1.0.0``, tags).
    """
    alt = range_.strip()
    if alt in _WILDCARDS:
        return "0.0.0"

    first = alt.split(" - ", 1)[0].split()[0]
    if first.startswith("<") or (first.startswith(">") and not first.startswith(">=")):
        return None

    match = _VERSION_PREFIX.match(first.lstrip("^~>="))
    if match is None:
        return None

    major, minor, patch, prerelease = match.groups()
    parts = [major]
    for part in (minor, patch):
        parts.append("0" if part is None or part in "xX*" else part)
    return ".".join(parts) + (prerelease or "")


def ranges_compatible(recorded: str, candidate: str) -> bool:
    """Whether a recorded peer constraint can coexist with a candidate's range.

    True when the candidate declares nothing, when the ranges are identical,
    or when the floor of any alternative of ``recorded`` satisfies
    ``candidate``.
    """
    if not candidate.strip() or candidate.strip() in _WILDCARDS:
        return True
    if recorded.strip() == candidate.strip():
        return True

    for alternative in recorded.split("||"):
        floor = range_floor(alternative)
        if floor is not None and satisfies(floor, candidate):
            return True
    return False
