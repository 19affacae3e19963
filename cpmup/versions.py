"""NuGet version parsing and ordering.

NuGet versions are SemVer 2.0 with up to four numeric parts
(``1.2.3.4-beta.1+sha``). Parsing never raises: ``parse_version`` returns
None for text that does not follow the scheme and callers fall back to plain
string comparison.
"""

import functools
import re
from dataclasses import dataclass

from packaging.version import InvalidVersion, Version

_VERSION_RE = re.compile(
    r"""
    ^\s*v?
    (?P<release>\d+(?:\.\d+){0,3})
    (?:-(?P<pre>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?
    (?:\+(?P<meta>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?
    \s*$
    """,
    re.VERBOSE,
)


@functools.total_ordering
@dataclass(frozen=True, eq=False)
class NuGetVersion:
    """A parsed NuGet version. Build metadata does not take part in ordering."""

    release: tuple[int, int, int, int]
    prerelease: tuple[str, ...] = ()
    metadata: str = ""
    original: str = ""

    @property
    def major(self) -> int:
        return self.release[0]

    @property
    def is_prerelease(self) -> bool:
        return bool(self.prerelease)

    def _key(self) -> tuple:
        return self.release, tuple(label.lower() for label in self.prerelease)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, NuGetVersion):
            return NotImplemented
        return self._key() == other._key()

    def __hash__(self) -> int:
        return hash(self._key())

    def __lt__(self, other: "NuGetVersion") -> bool:
        if not isinstance(other, NuGetVersion):
            return NotImplemented
        if self.release != other.release:
            return self.release < other.release
        return _compare_prerelease(self.prerelease, other.prerelease) < 0

    def __str__(self) -> str:
        return self.original or self.normalized

    @property
    def normalized(self) -> str:
        parts = list(self.release)
        if parts[3] == 0:
            parts = parts[:3]
        text = ".".join(str(p) for p in parts)
        if self.prerelease:
            text += "-" + ".".join(self.prerelease)
        return text


def _compare_prerelease(left: tuple[str, ...], right: tuple[str, ...]) -> int:
    # A release sorts above any prerelease of the same numbers
    if not left and not right:
        return 0
    if not left:
        return 1
    if not right:
        return -1

    for a, b in zip(left, right):
        a_num, b_num = a.isdigit(), b.isdigit()
        if a_num and b_num:
            diff = int(a) - int(b)
            if diff:
                return 1 if diff > 0 else -1
        elif a_num != b_num:
            # Numeric identifiers have lower precedence
            return -1 if a_num else 1
        else:
            a_low, b_low = a.lower(), b.lower()
            if a_low != b_low:
                return -1 if a_low < b_low else 1

    return (len(left) > len(right)) - (len(left) < len(right))


def parse_version(text: str | None) -> NuGetVersion | None:
    """Parse a NuGet version string.

    Returns:
        The parsed version, or None when the text is empty or malformed
    """
    if not text:
        return None

    match = _VERSION_RE.match(text)
    if not match:
        return None

    numbers = [int(part) for part in match.group("release").split(".")]
    numbers += [0] * (4 - len(numbers))
    pre = match.group("pre")

    return NuGetVersion(
        release=tuple(numbers),
        prerelease=tuple(pre.split(".")) if pre else (),
        metadata=match.group("meta") or "",
        original=text.strip(),
    )


def is_prerelease(text: str | None) -> bool:
    """Whether a version string denotes a prerelease."""
    parsed = parse_version(text)
    if parsed is not None:
        return parsed.is_prerelease
    return bool(text) and "-" in text


def compare_versions(left: str, right: str) -> int:
    """Three-way compare two version strings.

    SemVer ordering when both parse, case-insensitive text ordering otherwise.
    """
    left_version, right_version = parse_version(left), parse_version(right)
    if left_version is not None and right_version is not None:
        return (left_version > right_version) - (left_version < right_version)

    left_text, right_text = left.lower(), right.lower()
    return (left_text > right_text) - (left_text < right_text)


def sort_versions_desc(versions: list[str]) -> list[str]:
    """Newest first."""
    return sorted(versions, key=functools.cmp_to_key(compare_versions), reverse=True)


def max_version(versions: list[str]) -> str | None:
    ordered = sort_versions_desc(versions)
    return ordered[0] if ordered else None


def is_newer(current: str, latest: str | None) -> bool:
    """Whether ``latest`` is an update over ``current``.

    Never true for an empty ``latest``. When either side fails to parse the
    versions are compared as text, so identical strings are never an update.
    """
    if not latest:
        return False

    current_version, latest_version = parse_version(current), parse_version(latest)
    if current_version is not None and latest_version is not None:
        return latest_version > current_version

    return latest != current


def _numeric_version(text: str) -> Version | None:
    try:
        return Version(text)
    except InvalidVersion:
        return None


def compare_numeric(left: str, right: str) -> int:
    """Compare plain numeric versions such as ``1.2.3.4``.

    Used when consolidating inline pins; anything ``packaging`` cannot parse
    is compared case-insensitively as text.
    """
    left_version, right_version = _numeric_version(left), _numeric_version(right)
    if left_version is not None and right_version is not None:
        return (left_version > right_version) - (left_version < right_version)

    left_text, right_text = left.lower(), right.lower()
    return (left_text > right_text) - (left_text < right_text)
