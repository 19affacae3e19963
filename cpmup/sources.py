"""Package sources, source mapping and credentials from nuget.config."""

import logging
import os
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from pathlib import Path

from .exceptions import ConfigError
from .xmlutil import find_children, get_attribute, local_name, name_matches, parse_document

logger = logging.getLogger(__name__)

NUGET_ORG_NAME = "nuget.org"
NUGET_ORG_URL = "https://api.nuget.org/v3/index.json"
CONFIG_FILE_NAMES = ("nuget.config", "NuGet.Config", "NuGet.config")


@dataclass(frozen=True)
class PackageSource:
    name: str
    url: str
    enabled: bool = True

    @property
    def is_v3(self) -> bool:
        return self.url.lower().rstrip("/").endswith("index.json")


@dataclass(frozen=True)
class SourceCredential:
    username: str
    password: str


def _pattern_specificity(pattern: str, package_id: str) -> int | None:
    """How specifically ``pattern`` matches ``package_id``; None if it does not.

    Exact ids outrank any prefix of the same length, longer prefixes outrank
    shorter ones, and ``*`` matches everything with specificity 0.
    """
    pattern_lower = pattern.strip().lower()
    id_lower = package_id.lower()

    if pattern_lower == "*":
        return 0
    if pattern_lower.endswith("*"):
        prefix = pattern_lower[:-1]
        return len(prefix) if id_lower.startswith(prefix) else None
    return len(pattern_lower) + 1 if pattern_lower == id_lower else None


@dataclass
class PackageSourceMapping:
    """``packageSourceMapping``: source name -> package id patterns."""

    patterns: dict[str, list[str]] = field(default_factory=dict)

    def __bool__(self) -> bool:
        return any(self.patterns.values())

    def matching_sources(self, package_id: str) -> list[str]:
        """Names of the sources whose best pattern is the most specific match.

        Returns an empty list when no pattern matches.
        """
        best = -1
        names: list[str] = []
        for source_name, source_patterns in self.patterns.items():
            scores = [
                score for score in (_pattern_specificity(p, package_id) for p in source_patterns)
                if score is not None
            ]
            if not scores:
                continue
            score = max(scores)
            if score > best:
                best, names = score, [source_name]
            elif score == best:
                names.append(source_name)
        return names

    def select(self, package_id: str, sources: list[PackageSource]) -> list[PackageSource]:
        """The sources to query for ``package_id``, in configured order.

        Without a mapping, or when no pattern matches, every source is used.
        """
        if not self:
            return list(sources)
        names = {name.lower() for name in self.matching_sources(package_id)}
        if not names:
            return list(sources)
        return [source for source in sources if source.name.lower() in names]


@dataclass
class NuGetConfig:
    path: str | None = None
    sources: list[PackageSource] = field(default_factory=list)
    mapping: PackageSourceMapping = field(default_factory=PackageSourceMapping)
    credentials: dict[str, SourceCredential] = field(default_factory=dict)

    @property
    def enabled_sources(self) -> list[PackageSource]:
        enabled = [source for source in self.sources if source.enabled]
        return enabled or [PackageSource(NUGET_ORG_NAME, NUGET_ORG_URL)]


def _decode_source_name(element_name: str) -> str:
    # nuget.config escapes spaces in element names
    return element_name.replace("_x0020_", " ")


def _add_entries(section: ET.Element) -> list[tuple[str, str]]:
    entries = []
    for add in find_children(section, "add"):
        key, value = get_attribute(add, "key"), get_attribute(add, "value")
        if key and value is not None:
            entries.append((key, value))
    return entries


def parse_nuget_config(content: bytes, path: str | None = None) -> NuGetConfig:
    """Parse nuget.config content."""
    try:
        root = parse_document(content)
    except ET.ParseError as e:
        raise ConfigError(f"Invalid nuget.config {path or ''}: {e}") from e

    config = NuGetConfig(path=path)
    base_dir = Path(path).parent if path else Path.cwd()
    disabled: set[str] = set()

    for section in root:
        if not isinstance(section.tag, str):
            continue
        if name_matches(section, "packageSources"):
            for child in section:
                if name_matches(child, "clear"):
                    config.sources.clear()
                elif name_matches(child, "add"):
                    key, value = get_attribute(child, "key"), get_attribute(child, "value")
                    if not key or not value:
                        continue
                    if "://" not in value and not Path(value).is_absolute():
                        value = str((base_dir / value).resolve())
                    config.sources = [s for s in config.sources if s.name.lower() != key.lower()]
                    config.sources.append(PackageSource(key, value))
        elif name_matches(section, "disabledPackageSources"):
            disabled.update(key.lower() for key, value in _add_entries(section) if value.lower() == "true")
        elif name_matches(section, "packageSourceMapping"):
            for source in find_children(section, "packageSource"):
                key = get_attribute(source, "key")
                if not key:
                    continue
                patterns = [
                    pattern for pattern in
                    (get_attribute(package, "pattern") for package in find_children(source, "package"))
                    if pattern
                ]
                config.mapping.patterns.setdefault(key, []).extend(patterns)
        elif name_matches(section, "packageSourceCredentials"):
            for source in section:
                if not isinstance(source.tag, str):
                    continue
                values = {key.lower(): value for key, value in _add_entries(source)}
                username = values.get("username")
                password = values.get("cleartextpassword")
                if username and password:
                    config.credentials[_decode_source_name(local_name(source.tag)).lower()] = SourceCredential(
                        username, password
                    )
                elif username:
                    logger.debug(
                        "Ignoring encrypted password for source %s", _decode_source_name(local_name(source.tag))
                    )

    if disabled:
        config.sources = [
            PackageSource(s.name, s.url, enabled=s.name.lower() not in disabled) for s in config.sources
        ]

    return config


def load_nuget_config(path: str | os.PathLike | None) -> NuGetConfig:
    """Load nuget.config, or the nuget.org default when ``path`` is None."""
    if path is None:
        return NuGetConfig()

    config_path = Path(path)
    try:
        content = config_path.read_bytes()
    except OSError as e:
        raise ConfigError(f"Could not read nuget.config at {config_path}: {e}") from e

    config = parse_nuget_config(content, str(config_path))
    logger.info("Loaded %d package source(s) from %s", len(config.enabled_sources), config_path)
    return config


def find_nuget_config(directory: str | os.PathLike) -> Path | None:
    """nuget.config in ``directory``, matched case-insensitively."""
    directory = Path(directory)
    if not directory.is_dir():
        return None
    wanted = {name.lower() for name in CONFIG_FILE_NAMES}
    for child in sorted(directory.iterdir()):
        if child.is_file() and child.name.lower() in wanted:
            return child
    return None
