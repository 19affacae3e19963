"""Target framework monikers and NuGet's compatibility rules.

Parses both short folder names (``net8.0``, ``net472``, ``netstandard2.0``,
``net8.0-windows``) and the long names registries report
(``.NETStandard2.0``, ``.NETFramework4.7.2``, ``.NETCoreApp,Version=v3.1``).
"""

import re
from dataclasses import dataclass

NETCOREAPP = ".NETCoreApp"
NETSTANDARD = ".NETStandard"
NETFRAMEWORK = ".NETFramework"
ANY = "Any"

BROAD_FAMILIES = frozenset({NETCOREAPP, NETSTANDARD, NETFRAMEWORK})

# netstandard version -> (minimum netcoreapp, minimum .NET Framework)
NETSTANDARD_SUPPORT: dict[tuple[int, int], tuple[tuple[int, ...], tuple[int, ...] | None]] = {
    (1, 0): ((1, 0), (4, 5)),
    (1, 1): ((1, 0), (4, 5)),
    (1, 2): ((1, 0), (4, 5, 1)),
    (1, 3): ((1, 0), (4, 6)),
    (1, 4): ((1, 0), (4, 6, 1)),
    (1, 5): ((1, 0), (4, 6, 1)),
    (1, 6): ((1, 0), (4, 6, 1)),
    (2, 0): ((2, 0), (4, 6, 1)),
    (2, 1): ((3, 0), None),
}

_SHORT_NET_RE = re.compile(r"^net(?P<version>\d+\.\d+)(?:-(?P<platform>[a-z]+)[\d.]*)?$")
_SHORT_FRAMEWORK_RE = re.compile(r"^net(?P<digits>\d{2,3})$")
_SHORT_NAMED_RE = re.compile(r"^net(?P<family>coreapp|standard)(?P<version>\d+(?:\.\d+)*)$")
_LONG_RE = re.compile(
    r"^\.?net(?P<family>coreapp|standard|framework)\s*,?\s*(?:version\s*=\s*)?v?(?P<version>\d+(?:\.\d+)*)$"
)

_FAMILIES = {"coreapp": NETCOREAPP, "standard": NETSTANDARD, "framework": NETFRAMEWORK}


@dataclass(frozen=True)
class TargetFramework:
    family: str
    version: tuple[int, ...] = ()
    platform: str = ""
    name: str = ""

    @property
    def is_modern_net(self) -> bool:
        """.NET 5 or later."""
        return self.family == NETCOREAPP and _pad(self.version) >= _pad((5, 0))


def _pad(version: tuple[int, ...], length: int = 4) -> tuple[int, ...]:
    return tuple(version) + (0,) * (length - len(version))


def _numbers(text: str) -> tuple[int, ...]:
    return tuple(int(part) for part in text.split("."))


def parse_framework(name: str | None) -> TargetFramework:
    """Parse a moniker. Unrecognized names keep their text as the family."""
    raw = (name or "").strip()
    text = raw.lower()

    if text in ("", "any", "agnostic"):
        return TargetFramework(family=ANY, name=raw)

    match = _SHORT_NET_RE.match(text)
    if match:
        version = _numbers(match.group("version"))
        # net4.7.2 style dotted .NET Framework names also exist
        family = NETCOREAPP if version[0] >= 5 else NETFRAMEWORK
        return TargetFramework(family, version, match.group("platform") or "", raw)

    match = _SHORT_FRAMEWORK_RE.match(text)
    if match:
        return TargetFramework(NETFRAMEWORK, tuple(int(d) for d in match.group("digits")), name=raw)

    match = _SHORT_NAMED_RE.match(text) or _LONG_RE.match(text)
    if match:
        return TargetFramework(_FAMILIES[match.group("family")], _numbers(match.group("version")), name=raw)

    return TargetFramework(family=raw, name=raw)


def is_compatible(project: TargetFramework, package: TargetFramework) -> bool:
    """Whether assets built for ``package`` can be consumed by ``project``."""
    if package.family == ANY:
        return True

    if package.platform and package.platform != project.platform:
        return False

    if package.family == project.family and package.family in BROAD_FAMILIES:
        return _pad(package.version) <= _pad(project.version)

    if package.family == NETSTANDARD:
        support = NETSTANDARD_SUPPORT.get(tuple(_pad(package.version, 2)[:2]))
        if support is None:
            return False
        min_core, min_framework = support
        if project.family == NETCOREAPP:
            return _pad(min_core) <= _pad(project.version)
        if project.family == NETFRAMEWORK:
            return min_framework is not None and _pad(min_framework) <= _pad(project.version)

    return False


def is_broad_family(framework: TargetFramework) -> bool:
    return framework.family in BROAD_FAMILIES
