"""Version parsing and constraint matching.

Handles conversion between tag names and semver objects, with special
handling for incomplete version strings (e.g., "v1.0" → "1.0.0"), and
evaluation of npm/cargo style range constraints against those versions.
"""

from __future__ import annotations

import re
from collections.abc import Callable

import semver

_VERSION_RE = re.compile(
    r"^[vV]?(?P<major>\d+)(?:\.(?P<minor>\d+))?(?:\.(?P<patch>\d+))?"
    r"(?:-(?P<pre>[0-9A-Za-z.-]+))?(?:\+(?P<build>[0-9A-Za-z.-]+))?$"
)

# a range term: optional operator, then a version that may use x/X/* wildcards
_TERM_RE = re.compile(
    r"(?P<op>~>|>=|<=|!=|==|[<>=~^])?\s*"
    r"(?P<ver>[vV]?(?:\d+|[xX*])(?:\.(?:\d+|[xX*])){0,2}(?:-[0-9A-Za-z.-]+)?(?:\+[0-9A-Za-z.-]+)?)"
)
_HYPHEN_RE = re.compile(r"^\s*(\S+)\s+-\s+(\S+)\s*$")
_WILDCARDS = {"x", "X", "*"}


def parse_version(version_str: str) -> semver.Version:
    """Parse a version string into a semver.Version object.

    Handles a leading "v" and incomplete versions by padding with zeros:
    - "1" → "1.0.0"
    - "v1.2" → "1.2.0"
    - "1.2.3-rc.1" → "1.2.3-rc.1"

    Raises:
        ValueError: If the string is not a version.
    """
    m = _VERSION_RE.match(version_str.strip())
    if not m:
        raise ValueError(f"not a semantic version: {version_str!r}")
    return semver.Version(
        int(m["major"]),
        int(m["minor"] or 0),
        int(m["patch"] or 0),
        prerelease=m["pre"],
        build=m["build"],
    )


def parse_tag_version(tag: str) -> semver.Version | None:
    """Like parse_version(), but returns None for tags that aren't versions."""
    try:
        return parse_version(tag)
    except ValueError:
        return None


Comparator = Callable[[semver.Version], bool]


class VersionConstraint:
    """A parsed range expression such as "^1.2.3", "~2.x" or ">=1.0, <2".

    Groups separated by "||" are alternatives; terms inside a group must all
    hold. Pre-release versions only satisfy a group that names a pre-release.
    """

    def __init__(self, text: str, groups: list[tuple[list[Comparator], bool]]) -> None:
        self.text = text
        self._groups = groups

    def allows(self, version: semver.Version) -> bool:
        for comparators, wants_pre in self._groups:
            if version.prerelease and not wants_pre:
                continue
            if all(c(version) for c in comparators):
                return True
        return False

    def best(self, tags: list[str]) -> str | None:
        """Return the tag with the highest version allowed by this constraint."""
        best_tag: str | None = None
        best_version: semver.Version | None = None
        for tag in tags:
            version = parse_tag_version(tag)
            if version is None or not self.allows(version):
                continue
            if best_version is None or version > best_version:
                best_tag, best_version = tag, version
        return best_tag

    def __repr__(self) -> str:
        return f"VersionConstraint({self.text!r})"


def parse_constraint(text: str) -> VersionConstraint:
    """Parse a range expression.

    Supported forms:
        "1.2.3", "=1.2.3", "v1.2.3"   exact (missing parts act as wildcards)
        "1.2.x", "1.*", "*"           wildcard ranges
        "^1.2.3"                      compatible with 1.2.3 (< 2.0.0)
        "~1.2.3", "~>1.2"             patch-level changes (< 1.3.0)
        ">=1.0 <2", ">1.0, <=1.4"     comparisons, space or comma joined
        "1.2 - 1.4.5"                 inclusive hyphen range
        "^1 || ^2"                    alternatives

    Raises:
        ValueError: If the text is not a constraint.
    """
    if not text.strip():
        raise ValueError("empty constraint")

    groups: list[tuple[list[Comparator], bool]] = []
    for group_text in text.split("||"):
        comparators: list[Comparator] = []
        wants_pre = False

        hyphen = _HYPHEN_RE.match(group_text)
        if hyphen:
            terms = [(">=", hyphen.group(1)), ("<=", hyphen.group(2))]
        else:
            terms = _split_terms(group_text, text)

        for op, ver in terms:
            if "-" in ver.split("+")[0]:
                wants_pre = True
            comparators.extend(_expand(op, ver, text))
        groups.append((comparators, wants_pre))

    return VersionConstraint(text, groups)


def is_constraint(text: str) -> bool:
    try:
        parse_constraint(text)
    except ValueError:
        return False
    return True


def _split_terms(group_text: str, whole: str) -> list[tuple[str, str]]:
    terms: list[tuple[str, str]] = []
    pos = 0
    rest = group_text.replace(",", " ")
    while pos < len(rest):
        if rest[pos].isspace():
            pos += 1
            continue
        m = _TERM_RE.match(rest, pos)
        if not m:
            raise ValueError(f"invalid constraint {whole!r}")
        end = m.end()
        # a term must be followed by whitespace or the end of the group
        if end < len(rest) and not rest[end].isspace():
            raise ValueError(f"invalid constraint {whole!r}")
        terms.append((m["op"] or "", m["ver"]))
        pos = end
    if not terms:
        raise ValueError(f"invalid constraint {whole!r}")
    return terms


def _partial(ver: str) -> tuple[list[int | None], str | None]:
    """Split a possibly-wildcarded version into [major, minor, patch] and pre-release.

    Missing or wildcard components are returned as None.
    """
    core, _, _build = ver.lstrip("vV").partition("+")
    core, _, pre = core.partition("-")
    parts: list[int | None] = []
    for piece in core.split("."):
        parts.append(None if piece in _WILDCARDS else int(piece))
    while len(parts) < 3:
        parts.append(None)
    # anything after a wildcard is a wildcard too
    for i in range(1, 3):
        if parts[i - 1] is None:
            parts[i] = None
    return parts, pre or None


def _floor(parts: list[int | None], pre: str | None) -> semver.Version:
    return semver.Version(parts[0] or 0, parts[1] or 0, parts[2] or 0, prerelease=pre)


def _ceiling(parts: list[int | None]) -> semver.Version | None:
    """Smallest version above every version matching the wildcarded parts."""
    major, minor, patch = parts
    if major is None:
        return None
    if minor is None:
        return semver.Version(major + 1, 0, 0)
    if patch is None:
        return semver.Version(major, minor + 1, 0)
    return None


def _range(lo: semver.Version, hi: semver.Version | None) -> list[Comparator]:
    out: list[Comparator] = [lambda v, lo=lo: _cmp(v, lo) >= 0]
    if hi is not None:
        out.append(lambda v, hi=hi: _cmp(v, hi) < 0)
    return out


def _cmp(a: semver.Version, b: semver.Version) -> int:
    # build metadata never affects precedence
    return a.replace(build=None).compare(b.replace(build=None))


def _expand(op: str, ver: str, whole: str) -> list[Comparator]:
    try:
        parts, pre = _partial(ver)
    except ValueError as err:
        raise ValueError(f"invalid constraint {whole!r}") from err
    lo = _floor(parts, pre)
    wildcard = None in parts

    if op in ("", "=", "=="):
        if wildcard:
            return _range(lo, _ceiling(parts))
        return [lambda v, lo=lo: _cmp(v, lo) == 0]

    if op == "!=":
        if wildcard:
            inside = _range(lo, _ceiling(parts))
            return [lambda v, inside=inside: not all(c(v) for c in inside)]
        return [lambda v, lo=lo: _cmp(v, lo) != 0]

    if op == ">":
        if wildcard:
            hi = _ceiling(parts)
            if hi is None:
                return [lambda v: False]
            return [lambda v, hi=hi: _cmp(v, hi) >= 0]
        return [lambda v, lo=lo: _cmp(v, lo) > 0]

    if op == ">=":
        return [lambda v, lo=lo: _cmp(v, lo) >= 0]

    if op == "<":
        return [lambda v, lo=lo: _cmp(v, lo) < 0]

    if op == "<=":
        if wildcard:
            hi = _ceiling(parts)
            if hi is None:
                return [lambda v: True]
            return [lambda v, hi=hi: _cmp(v, hi) < 0]
        return [lambda v, lo=lo: _cmp(v, lo) <= 0]

    if op in ("~", "~>"):
        major, minor, _ = parts
        if major is None:
            return [lambda v: True]
        if minor is None:
            return _range(lo, semver.Version(major + 1, 0, 0))
        return _range(lo, semver.Version(major, minor + 1, 0))

    if op == "^":
        major, minor, patch = parts
        if major is None:
            return [lambda v: True]
        if major > 0 or minor is None:
            return _range(lo, semver.Version(major + 1, 0, 0))
        if minor > 0 or patch is None:
            return _range(lo, semver.Version(0, minor + 1, 0))
        return _range(lo, semver.Version(0, 0, patch + 1))

    raise ValueError(f"invalid constraint {whole!r}")
