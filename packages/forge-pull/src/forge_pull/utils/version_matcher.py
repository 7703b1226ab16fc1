"""
Version parsing and range matching for image tags.

Implements the version algebra used by tag resolution:
1. SemVer parses tags like "1.2.3", "v1.2", "3.12-slim" and orders them
2. VersionRange parses npm-style ranges ("~1.x", "^1.2", ">=1.2 <2 || 3.x")
3. Ranges never match prerelease or suffixed versions
"""

import re
from dataclasses import dataclass, field
from functools import total_ordering
from typing import Optional, Union

_VERSION_RE = re.compile(
    r"^[vV]?(\d+)(?:\.(\d+))?(?:\.(\d+))?(?:[-_]([0-9A-Za-z][0-9A-Za-z._-]*))?$"
)
_PARTIAL_RE = re.compile(
    r"^[vV]?(\d+|[xX*])(?:\.(\d+|[xX*]))?(?:\.(\d+|[xX*]))?$"
)
_COMPARATOR_RE = re.compile(r"^(>=|<=|>|<|=|~|\^)?(.+)$")
_WILDCARDS = frozenset({"x", "X", "*"})


def _prerelease_key(identifier: str) -> tuple[int, Union[int, str]]:
    # Numeric identifiers sort before alphanumeric ones
    if identifier.isdigit():
        return (0, int(identifier))
    return (1, identifier)


@total_ordering
@dataclass(frozen=True)
class SemVer:
    """
    Semantic version with comparison operators.

    Supports parsing versions like:
    - 1.2.3
    - v1.2.3
    - 1.2 (treated as 1.2.0)
    - 1 (treated as 1.0.0)
    - 1.27.0-alpine (prerelease "alpine", ordered below 1.27.0)
    """
    major: int
    minor: int
    patch: int
    prerelease: tuple[str, ...] = field(default=())

    @classmethod
    def parse(cls, version_str: str) -> Optional["SemVer"]:
        """
        Parse a version string into a SemVer object.

        Args:
            version_str: Version string like "1.2.3", "v1.2.3", "1.2", "1"

        Returns:
            SemVer object or None if parsing fails
        """
        if not version_str:
            return None

        match = _VERSION_RE.match(version_str.strip())
        if not match:
            return None

        major = int(match.group(1))
        minor = int(match.group(2)) if match.group(2) else 0
        patch = int(match.group(3)) if match.group(3) else 0
        suffix = match.group(4)
        prerelease = tuple(p for p in re.split(r"[._-]", suffix) if p) if suffix else ()

        return cls(major=major, minor=minor, patch=patch, prerelease=prerelease)

    @property
    def is_prerelease(self) -> bool:
        return bool(self.prerelease)

    def _key(self) -> tuple:
        # A release outranks any prerelease of the same major.minor.patch
        if not self.prerelease:
            return (self.major, self.minor, self.patch, 1, ())
        return (
            self.major,
            self.minor,
            self.patch,
            0,
            tuple(_prerelease_key(p) for p in self.prerelease),
        )

    def __lt__(self, other: "SemVer") -> bool:
        if not isinstance(other, SemVer):
            return NotImplemented
        return self._key() < other._key()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SemVer):
            return NotImplemented
        return self._key() == other._key()

    def __hash__(self) -> int:
        return hash(self._key())

    def __str__(self) -> str:
        base = f"{self.major}.{self.minor}.{self.patch}"
        if self.prerelease:
            return f"{base}-{'.'.join(self.prerelease)}"
        return base


@dataclass(frozen=True)
class Comparator:
    """A single bound such as ">=1.2.0"."""

    operator: str
    version: SemVer

    def matches(self, version: SemVer) -> bool:
        if self.operator == ">=":
            return version >= self.version
        if self.operator == ">":
            return version > self.version
        if self.operator == "<":
            return version < self.version
        if self.operator == "<=":
            return version <= self.version
        return version == self.version

    def __str__(self) -> str:
        return f"{self.operator}{self.version}"


Partial = tuple[Optional[int], Optional[int], Optional[int]]


def _parse_partial(text: str) -> Optional[Partial]:
    """Parse "1", "1.x", "1.2.*" into (major, minor, patch) with None for wildcards."""
    match = _PARTIAL_RE.match(text)
    if not match:
        return None

    parts: list[Optional[int]] = []
    wildcard_seen = False
    for group in match.groups():
        if group is None or group in _WILDCARDS:
            wildcard_seen = True
            parts.append(None)
        elif wildcard_seen:
            # "1.x.3" is not a meaningful range
            return None
        else:
            parts.append(int(group))

    return parts[0], parts[1], parts[2]


def _v(major: int, minor: int = 0, patch: int = 0) -> SemVer:
    return SemVer(major, minor, patch)


def _x_range(partial: Partial) -> list[Comparator]:
    major, minor, patch = partial
    if major is None:
        return []
    if minor is None:
        return [Comparator(">=", _v(major)), Comparator("<", _v(major + 1))]
    if patch is None:
        return [Comparator(">=", _v(major, minor)), Comparator("<", _v(major, minor + 1))]
    return [Comparator("=", _v(major, minor, patch))]


def _tilde_range(partial: Partial) -> list[Comparator]:
    major, minor, patch = partial
    if major is None or minor is None:
        return _x_range(partial)
    return [
        Comparator(">=", _v(major, minor, patch or 0)),
        Comparator("<", _v(major, minor + 1)),
    ]


def _caret_range(partial: Partial) -> list[Comparator]:
    major, minor, patch = partial
    if major is None or minor is None:
        return _x_range(partial)
    lower = Comparator(">=", _v(major, minor, patch or 0))
    if major > 0:
        return [lower, Comparator("<", _v(major + 1))]
    if minor > 0 or patch is None:
        return [lower, Comparator("<", _v(0, minor + 1))]
    return [lower, Comparator("<", _v(0, 0, patch + 1))]


def _bound_range(operator: str, partial: Partial) -> list[Comparator]:
    major, minor, patch = partial
    if major is None:
        # ">=*" and "<=*" match anything, "<*" and ">*" match nothing
        if operator in (">=", "<="):
            return []
        return [Comparator("<", _v(0))]

    if operator == ">=":
        return [Comparator(">=", _v(major, minor or 0, patch or 0))]
    if operator == "<":
        return [Comparator("<", _v(major, minor or 0, patch or 0))]
    if operator == ">":
        if minor is None:
            return [Comparator(">=", _v(major + 1))]
        if patch is None:
            return [Comparator(">=", _v(major, minor + 1))]
        return [Comparator(">", _v(major, minor, patch))]
    # "<="
    if minor is None:
        return [Comparator("<", _v(major + 1))]
    if patch is None:
        return [Comparator("<", _v(major, minor + 1))]
    return [Comparator("<=", _v(major, minor, patch))]


def _parse_comparator(token: str) -> Optional[list[Comparator]]:
    match = _COMPARATOR_RE.match(token)
    if not match:
        return None

    operator, rest = match.group(1) or "", match.group(2)
    partial = _parse_partial(rest)
    if partial is None:
        return None

    if operator == "~":
        return _tilde_range(partial)
    if operator == "^":
        return _caret_range(partial)
    if operator in ("", "="):
        return _x_range(partial)
    return _bound_range(operator, partial)


@dataclass(frozen=True)
class VersionRange:
    """
    A set of version intervals parsed from a range expression.

    Each alternative (separated by "||") is a conjunction of comparators;
    a version matches the range if it satisfies every comparator of at
    least one alternative.
    """

    raw: str
    alternatives: tuple[tuple[Comparator, ...], ...]

    @classmethod
    def parse(cls, expression: str) -> Optional["VersionRange"]:
        """
        Parse an npm-style range expression.

        Args:
            expression: Range like "~1.2", "1.x", "^0.3.1", ">=1.2 <2"

        Returns:
            VersionRange or None if the expression is not a valid range
        """
        if not expression or not expression.strip():
            return None

        # Allow "> = 1.2" style spacing between operator and version
        normalized = re.sub(r"(>=|<=|>|<|=|~|\^)\s+", r"\1", expression.strip())

        alternatives = []
        for alternative in normalized.split("||"):
            tokens = alternative.split()
            if not tokens:
                return None
            comparators: list[Comparator] = []
            for token in tokens:
                parsed = _parse_comparator(token)
                if parsed is None:
                    return None
                comparators.extend(parsed)
            alternatives.append(tuple(comparators))

        return cls(raw=expression, alternatives=tuple(alternatives))

    def contains(self, version: SemVer) -> bool:
        """Check whether a version satisfies this range."""
        if version.is_prerelease:
            return False
        return any(
            all(c.matches(version) for c in alternative)
            for alternative in self.alternatives
        )

    def __str__(self) -> str:
        return self.raw


def is_range_expression(tag: str) -> bool:
    """
    Check if a tag is a version range rather than a literal tag.

    Plain versions ("1.2.3", "1.2") are literal tags even though they
    would also parse as ranges.

    Args:
        tag: Tag text from an image reference

    Returns:
        True if the tag is a parseable range expression
    """
    if not tag or SemVer.parse(tag) is not None:
        return False
    return VersionRange.parse(tag) is not None
