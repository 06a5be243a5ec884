"""Version comparison and normalization utilities.

Update sources publish versions in every shape imaginable: strict semver
(``2.3.0``), marketing numbers (``17.3``), build strings (``2024.1 (241)``)
and Homebrew versions carrying a content hash after a comma
(``1.1.3363,ee4247...``). Comparison is therefore two-tiered: strict
semantic versions first, then a segment-wise fallback that is tolerant of
anything.
"""

import re

from packaging.version import InvalidVersion, Version

# Map semver prerelease labels to PEP 440 equivalents
_PRERELEASE_MAP = {
    "alpha": "a",
    "beta": "b",
    "rc": "rc",
}

_PRERELEASE_RE = re.compile(
    r"""
    ^
    (?P<base>\d+\.\d+\.\d+)
    (?:-
        (?P<label>alpha|beta|rc)
        \.?
        (?P<num>\d*)?
    )?
    $
    """,
    re.VERBOSE,
)

# semver.org 2.0.0 grammar; a leading "v" is not semver
_SEMVER_RE = re.compile(
    r"""
    ^
    (?P<major>0|[1-9]\d*)\.(?P<minor>0|[1-9]\d*)\.(?P<patch>0|[1-9]\d*)
    (?:-(?P<pre>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?
    (?:\+(?P<build>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?
    $
    """,
    re.VERBOSE | re.ASCII,
)

# Digit runs and non-digit runs; ". - space ( )" only separate
_SEGMENT_RE = re.compile(r"[0-9]+|[^0-9.\- ()]+", re.ASCII)


def strip_qualifier(version: str) -> str:
    """Drop a trailing ``,qualifier`` segment from a registry version.

    Homebrew appends build identifiers or content hashes after a comma;
    left in place they make the version look astronomically large.

    Examples:
        >>> strip_qualifier("1.1.3363,ee4247ab")
        '1.1.3363'
        >>> strip_qualifier(" 2.0 ")
        '2.0'

    """
    return version.split(",", 1)[0].strip()


def normalize_version(v: str) -> str:
    """Normalize semver-like versions to PEP 440.

    Examples:
        >>> normalize_version("1.0.0-alpha")
        '1.0.0a0'
        >>> normalize_version("2.0.0-beta.1")
        '2.0.0b1'
        >>> normalize_version("v1.2.3")
        '1.2.3'

    Args:
        v: Version string in semver or PEP 440 format

    Returns:
        Normalized version string, or ``v`` without a leading "v" when the
        string is not a recognised semver prerelease

    """
    v = v.lstrip("v")

    match = _PRERELEASE_RE.match(v)
    if not match:
        return v

    base = match.group("base")
    label = match.group("label")
    if not label:
        return base

    num = match.group("num") or "0"
    return f"{base}{_PRERELEASE_MAP[label]}{num}"


def _sign(a, b) -> int:
    return (a > b) - (a < b)


def _semver_precedence_key(match: re.Match[str]) -> tuple:
    """Build a sortable key implementing semver precedence rules."""
    core = (
        int(match.group("major")),
        int(match.group("minor")),
        int(match.group("patch")),
    )
    pre = match.group("pre")
    if pre is None:
        # A release outranks every prerelease of the same core
        return (core, 1, ())
    identifiers = tuple(
        (0, int(part), "") if part.isdigit() else (1, 0, part)
        for part in pre.split(".")
    )
    return (core, 0, identifiers)


def _compare_semver(a: str, b: str) -> int | None:
    """Compare two strict semantic versions, or None if either is not one."""
    match_a = _SEMVER_RE.match(a)
    match_b = _SEMVER_RE.match(b)
    if match_a is None or match_b is None:
        return None

    # Build metadata never affects precedence
    plain_a = a.split("+", 1)[0]
    plain_b = b.split("+", 1)[0]
    pep_a = normalize_version(plain_a)
    pep_b = normalize_version(plain_b)
    if "-" not in pep_a and "-" not in pep_b:
        try:
            return _sign(Version(pep_a), Version(pep_b))
        except InvalidVersion:
            pass

    return _sign(
        _semver_precedence_key(match_a), _semver_precedence_key(match_b)
    )


def split_segments(version: str) -> list[str]:
    """Split a version into alternating digit and non-digit runs.

    Examples:
        >>> split_segments("2024.1 (241)")
        ['2024', '1', '241']
        >>> split_segments("1.0b3")
        ['1', '0', 'b', '3']

    """
    return _SEGMENT_RE.findall(version)


def _compare_segments(a: str, b: str) -> int:
    seg_a = split_segments(strip_qualifier(a))
    seg_b = split_segments(strip_qualifier(b))

    for i in range(max(len(seg_a), len(seg_b))):
        part_a = seg_a[i] if i < len(seg_a) else "0"
        part_b = seg_b[i] if i < len(seg_b) else "0"
        if part_a.isdigit() and part_b.isdigit():
            result = _sign(int(part_a), int(part_b))
        else:
            result = _sign(part_a, part_b)
        if result:
            return result
    return 0


def compare_versions(version1: str, version2: str) -> int:
    """Compare two loosely structured version strings.

    Returns -1 if version1 < version2, 0 if equal, 1 if version1 > version2.
    """
    strict = _compare_semver(version1.strip(), version2.strip())
    if strict is not None:
        return strict
    return _compare_segments(version1, version2)


def is_newer(current: str, candidate: str) -> bool:
    """Return True if ``candidate`` is strictly newer than ``current``.

    Examples:
        >>> is_newer("17.2", "17.3")
        True
        >>> is_newer("1.1.3363,ee4247", "1.1.3363")
        False

    """
    return compare_versions(current, candidate) < 0
