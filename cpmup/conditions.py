"""Evaluation of MSBuild conditions on ``$(TargetFramework)``.

Only ``'$(TargetFramework)' == 'x'`` and ``!=`` are understood. Any other
condition is treated as applying everywhere, so an unrecognized condition can
over-include a package but never drop one.
"""

import re
from collections.abc import Iterable

_COMPARISON_RE = re.compile(
    r"'\$\(TargetFramework\)'\s*(?P<op>==|!=)\s*'(?P<value>[^']+)'",
    re.IGNORECASE,
)
_MODERN_NET_RE = re.compile(r"^net(?P<major>\d+)\.\d+", re.IGNORECASE)


def _parse(condition: str | None) -> tuple[str, str] | None:
    if not condition:
        return None
    match = _COMPARISON_RE.search(condition)
    if not match:
        return None
    return match.group("op"), match.group("value").strip()


def applies_to_frameworks(condition: str | None, available: Iterable[str]) -> set[str]:
    """The subset of ``available`` for which ``condition`` holds."""
    frameworks = set(available)
    parsed = _parse(condition)
    if parsed is None:
        return frameworks

    op, value = parsed
    matching = {tf for tf in frameworks if tf.lower() == value.lower()}
    if op == "==":
        return matching
    return frameworks - matching


def is_satisfied(condition: str | None, available: Iterable[str]) -> bool:
    """Whether a ``When``/property-group condition holds for the solution."""
    frameworks = set(available)
    parsed = _parse(condition)
    if parsed is None:
        return True

    op, _ = parsed
    if op == "!=" and not frameworks:
        return True
    return bool(applies_to_frameworks(condition, frameworks))


def extract_major_version(condition: str | None) -> int | None:
    """Major .NET version an equality condition pins to (``net8.0`` -> 8).

    Frameworks before .NET 5 carry no such line and return None.
    """
    parsed = _parse(condition)
    if parsed is None or parsed[0] != "==":
        return None

    match = _MODERN_NET_RE.match(parsed[1])
    if not match:
        return None

    major = int(match.group("major"))
    return major if major >= 5 else None
