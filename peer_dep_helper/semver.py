"""npm-style semantic versions and ranges.

Covers the range grammar found in ``package.json`` files: ``||`` unions,
space-separated comparator sets, primitive comparators, x-ranges, tilde,
caret and hyphen ranges.  Every comparator set is reduced to a single
interval, which is what :func:`intersects` and :func:`subset` reason about.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from functools import total_ordering


class InvalidVersionError(ValueError):
    """Raised when a string is not a valid semantic version."""


class InvalidRangeError(ValueError):
    """Raised when a string is not a valid version range."""


_VERSION_RE = re.compile(
    r"^\s*[v=]*\s*"
    r"(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)"
    r"(?:-([0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
    r"(?:\+([0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?\s*$"
)

_PARTIAL_RE = re.compile(
    r"^[v=]*"
    r"(\d+|[xX*])"
    r"(?:\.(\d+|[xX*]))?"
    r"(?:\.(\d+|[xX*]))?"
    r"(?:-([0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
    r"(?:\+[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*)?$"
)

_HYPHEN_RE = re.compile(r"^\s*(\S+)\s+-\s+(\S+)\s*$")
_OPERATOR_SPACE_RE = re.compile(r"(<=|>=|<|>|=|~>|~|\^)\s+")
_TOKEN_RE = re.compile(r"^(<=|>=|<|>|=|~>|~|\^)?(.*)$")


def _parse_prerelease(text: str | None) -> tuple[int | str, ...]:
    if not text:
        return ()
    return tuple(int(p) if p.isdigit() else p for p in text.split("."))


def _compare_prerelease(a: tuple[int | str, ...], b: tuple[int | str, ...]) -> int:
    # A release sorts above any of its prereleases.
    if not a and not b:
        return 0
    if not a:
        return 1
    if not b:
        return -1
    for x, y in zip(a, b):
        if x == y:
            continue
        if isinstance(x, int) and isinstance(y, int):
            return -1 if x < y else 1
        if isinstance(x, int):
            return -1
        if isinstance(y, int):
            return 1
        return -1 if x < y else 1
    if len(a) == len(b):
        return 0
    return -1 if len(a) < len(b) else 1


@total_ordering
@dataclass(frozen=True)
class Version:
    """A parsed semantic version.  Build metadata is ignored for ordering."""

    major: int
    minor: int
    patch: int
    prerelease: tuple[int | str, ...] = ()
    build: str | None = field(default=None, compare=False)

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.prerelease:
            text += "-" + ".".join(str(p) for p in self.prerelease)
        return text

    @property
    def release(self) -> tuple[int, int, int]:
        return (self.major, self.minor, self.patch)

    def compare(self, other: Version) -> int:
        if self.release != other.release:
            return -1 if self.release < other.release else 1
        return _compare_prerelease(self.prerelease, other.prerelease)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self.compare(other) == 0

    def __lt__(self, other: Version) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self.compare(other) < 0

    def __hash__(self) -> int:
        return hash((self.release, self.prerelease))


MIN_VERSION = Version(0, 0, 0)
# Prerelease tag of the lowest version that shares a release tuple.
_FLOOR = (0,)


def parse_version(text: str) -> Version:
    """Parse *text* into a :class:`Version` or raise :class:`InvalidVersionError`."""
    if not isinstance(text, str):
        raise InvalidVersionError(f"invalid version: {text!r}")
    m = _VERSION_RE.match(text)
    if not m:
        raise InvalidVersionError(f"invalid version: {text!r}")
    return Version(
        int(m.group(1)),
        int(m.group(2)),
        int(m.group(3)),
        _parse_prerelease(m.group(4)),
        m.group(5),
    )


def valid(text: str | None) -> bool:
    try:
        parse_version(text)  # type: ignore[arg-type]
    except InvalidVersionError:
        return False
    return True


# ── comparators & intervals ──────────────────────────────────────────────


@dataclass(frozen=True)
class Comparator:
    operator: str  # one of <, <=, >, >=, =
    version: Version

    def test(self, version: Version) -> bool:
        c = version.compare(self.version)
        if self.operator == "=":
            return c == 0
        if self.operator == "<":
            return c < 0
        if self.operator == "<=":
            return c <= 0
        if self.operator == ">":
            return c > 0
        return c >= 0


@dataclass(frozen=True)
class Interval:
    """Closed/open interval of versions; ``upper`` of None means unbounded."""

    lower: Version
    lower_inclusive: bool
    upper: Version | None
    upper_inclusive: bool

    def _lower_key(self) -> tuple[Version, int]:
        return (self.lower, 0 if self.lower_inclusive else 1)

    def _upper_key(self) -> tuple[int, Version, int]:
        if self.upper is None:
            return (1, MIN_VERSION, 0)
        return (0, self.upper, 1 if self.upper_inclusive else 0)

    def is_empty(self) -> bool:
        if self.upper is None:
            return False
        c = self.lower.compare(self.upper)
        if c > 0:
            return True
        return c == 0 and not (self.lower_inclusive and self.upper_inclusive)

    def overlaps(self, other: Interval) -> bool:
        lower = max(self._lower_key(), other._lower_key())
        upper = min(self._upper_key(), other._upper_key())
        probe = Interval(lower[0], lower[1] == 0, None if upper[0] else upper[1], upper[2] == 1)
        return not probe.is_empty()

    def touches(self, other: Interval) -> bool:
        """True when *other* starts exactly where this interval ends."""
        return (
            self.upper is not None
            and self.upper == other.lower
            and (self.upper_inclusive or other.lower_inclusive)
        )

    def contains(self, other: Interval) -> bool:
        return (
            self._lower_key() <= other._lower_key()
            and other._upper_key() <= self._upper_key()
        )

    def union(self, other: Interval) -> Interval:
        lower = min(self._lower_key(), other._lower_key())
        upper = max(self._upper_key(), other._upper_key())
        return Interval(lower[0], lower[1] == 0, None if upper[0] else upper[1], upper[2] == 1)


def _interval_for(comparators: list[Comparator]) -> Interval:
    interval = Interval(MIN_VERSION, True, None, False)
    for comp in comparators:
        v = comp.version
        if comp.operator in (">", ">=", "="):
            candidate = Interval(v, comp.operator != ">", None, False)
            if candidate._lower_key() > interval._lower_key():
                interval = Interval(v, comp.operator != ">", interval.upper, interval.upper_inclusive)
        if comp.operator in ("<", "<=", "="):
            candidate = Interval(MIN_VERSION, True, v, comp.operator != "<")
            if candidate._upper_key() < interval._upper_key():
                interval = Interval(interval.lower, interval.lower_inclusive, v, comp.operator != "<")
    return interval


# ── range parsing ────────────────────────────────────────────────────────


def _is_x(part: str | None) -> bool:
    return part is None or part in ("x", "X", "*")


def _partial(text: str, raw: str) -> tuple[int | None, int | None, int | None, tuple]:
    if text in ("", "*", "x", "X"):
        return (None, None, None, ())
    m = _PARTIAL_RE.match(text)
    if not m:
        raise InvalidRangeError(f"invalid range: {raw!r}")
    major, minor, patch, pre = m.groups()
    major_i = None if _is_x(major) else int(major)
    minor_i = None if major_i is None or _is_x(minor) else int(minor)
    patch_i = None if minor_i is None or _is_x(patch) else int(patch)
    prerelease = _parse_prerelease(pre) if patch_i is not None else ()
    return (major_i, minor_i, patch_i, prerelease)


def _caret(major, minor, patch, pre) -> list[Comparator]:
    if major is None:
        return []
    if minor is None:
        return [
            Comparator(">=", Version(major, 0, 0)),
            Comparator("<", Version(major + 1, 0, 0, _FLOOR)),
        ]
    if patch is None:
        upper = (
            Version(major + 1, 0, 0, _FLOOR) if major > 0 else Version(0, minor + 1, 0, _FLOOR)
        )
        return [Comparator(">=", Version(major, minor, 0)), Comparator("<", upper)]
    if major > 0:
        upper = Version(major + 1, 0, 0, _FLOOR)
    elif minor > 0:
        upper = Version(0, minor + 1, 0, _FLOOR)
    else:
        upper = Version(0, 0, patch + 1, _FLOOR)
    return [Comparator(">=", Version(major, minor, patch, pre)), Comparator("<", upper)]


def _tilde(major, minor, patch, pre) -> list[Comparator]:
    if major is None:
        return []
    if minor is None:
        return [
            Comparator(">=", Version(major, 0, 0)),
            Comparator("<", Version(major + 1, 0, 0, _FLOOR)),
        ]
    lower = Version(major, minor, 0) if patch is None else Version(major, minor, patch, pre)
    return [Comparator(">=", lower), Comparator("<", Version(major, minor + 1, 0, _FLOOR))]


def _xrange(operator: str, major, minor, patch, pre) -> list[Comparator]:
    if major is None:
        if operator in ("<", ">"):
            # Nothing is below 0.0.0-0 or above every version.
            return [Comparator("<", Version(0, 0, 0, _FLOOR))]
        return []
    if patch is not None:
        return [Comparator(operator or "=", Version(major, minor, patch, pre))]

    if operator in ("", "="):
        return _tilde(major, minor, None, ())
    if operator == ">":
        bumped = Version(major + 1, 0, 0) if minor is None else Version(major, minor + 1, 0)
        return [Comparator(">=", bumped)]
    if operator == "<=":
        bumped = (
            Version(major + 1, 0, 0, _FLOOR)
            if minor is None
            else Version(major, minor + 1, 0, _FLOOR)
        )
        return [Comparator("<", bumped)]
    floor = Version(major, minor or 0, 0)
    if operator == "<":
        return [Comparator("<", Version(floor.major, floor.minor, 0, _FLOOR))]
    return [Comparator(">=", floor)]


def _parse_token(token: str, raw: str) -> list[Comparator]:
    m = _TOKEN_RE.match(token)
    operator, rest = m.group(1) or "", m.group(2)
    parts = _partial(rest, raw)
    if operator == "^":
        return _caret(*parts)
    if operator in ("~", "~>"):
        return _tilde(*parts)
    return _xrange(operator, *parts)


def _parse_set(text: str, raw: str) -> list[Comparator]:
    text = text.strip()
    hyphen = _HYPHEN_RE.match(text)
    if hyphen:
        lo = _partial(hyphen.group(1), raw)
        hi = _partial(hyphen.group(2), raw)
        comparators = _xrange(">=", *lo) if lo[0] is not None else []
        if hi[0] is not None:
            comparators += _xrange("<=", *hi)
        return comparators

    text = _OPERATOR_SPACE_RE.sub(r"\1", text)
    comparators: list[Comparator] = []
    for token in text.split():
        comparators.extend(_parse_token(token, raw))
    return comparators


@dataclass(frozen=True)
class Range:
    raw: str
    sets: tuple[tuple[Comparator, ...], ...]

    @property
    def intervals(self) -> list[Interval]:
        out = [_interval_for(list(s)) for s in self.sets]
        return [i for i in out if not i.is_empty()]

    def test(self, version: Version) -> bool:
        return any(_test_set(s, version) for s in self.sets)


def _test_set(comparators: tuple[Comparator, ...], version: Version) -> bool:
    if not all(c.test(version) for c in comparators):
        return False
    if not version.prerelease:
        return True
    # A prerelease only matches when some comparator pins the same release tuple.
    return any(c.version.prerelease and c.version.release == version.release for c in comparators)


def parse_range(text: str | None) -> Range:
    """Parse an npm range string into a :class:`Range`."""
    if text is None:
        text = ""
    if not isinstance(text, str):
        raise InvalidRangeError(f"invalid range: {text!r}")
    sets = tuple(tuple(_parse_set(part, text)) for part in text.split("||"))
    return Range(text, sets)


def valid_range(text: str | None) -> bool:
    try:
        parse_range(text)
    except InvalidRangeError:
        return False
    return True


# ── public helpers ───────────────────────────────────────────────────────


def satisfies(version: str, range_text: str | None) -> bool:
    """npm ``semver.satisfies``: invalid input is simply not satisfied."""
    try:
        v = parse_version(version)
        r = parse_range(range_text)
    except ValueError:
        return False
    return r.test(v)


def lt(a: str, b: str) -> bool:
    return parse_version(a) < parse_version(b)


def intersects(a: str, b: str) -> bool:
    """True if some version could satisfy both ranges."""
    ra, rb = parse_range(a), parse_range(b)
    return any(x.overlaps(y) for x in ra.intervals for y in rb.intervals)


def _merged(intervals: list[Interval]) -> list[Interval]:
    ordered = sorted(intervals, key=lambda i: i._lower_key())
    merged: list[Interval] = []
    for interval in ordered:
        if merged and (merged[-1].overlaps(interval) or merged[-1].touches(interval)):
            merged[-1] = merged[-1].union(interval)
        else:
            merged.append(interval)
    return merged


def subset(sub: str, sup: str) -> bool:
    """True if every version matched by *sub* is also matched by *sup*."""
    sub_intervals = parse_range(sub).intervals
    sup_intervals = _merged(parse_range(sup).intervals)
    return all(any(s.contains(i) for s in sup_intervals) for i in sub_intervals)


def max_satisfying(versions: list[str], range_text: str | None) -> str | None:
    try:
        r = parse_range(range_text)
    except InvalidRangeError:
        return None
    best: tuple[Version, str] | None = None
    for text in versions:
        try:
            v = parse_version(text)
        except InvalidVersionError:
            continue
        if r.test(v) and (best is None or v > best[0]):
            best = (v, text)
    return best[1] if best else None
