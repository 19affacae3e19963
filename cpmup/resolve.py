"""Latest-version resolution against NuGet package sources."""

import asyncio
import logging
from collections.abc import Callable

from .conditions import extract_major_version
from .credentials import CredentialSession
from .exceptions import RegistryError
from .frameworks import ANY, TargetFramework, is_broad_family, is_compatible, parse_framework
from .models import PackageEntry
from .registry import NuGetV3Repository, PackageMetadata, PackageRepository
from .sources import NuGetConfig, PackageSourceMapping
from .versions import compare_versions, max_version, parse_version, sort_versions_desc

logger = logging.getLogger(__name__)

# Requested alone, this framework does not accept packages that only ship
# modern .NET assets even though they are from a "broad" family.
COMPATIBILITY_SHIM_FRAMEWORKS = frozenset({"netstandard2.0"})


def is_candidate_compatible(metadata: PackageMetadata, requested: list[TargetFramework]) -> bool:
    """Whether a version can serve any of the requested frameworks.

    Versions without dependency metadata, or declaring any .NET Standard,
    .NET Core or .NET Framework group, count as compatible when no exact
    rule matches.
    """
    if not metadata.framework_groups:
        return True

    declared = [parse_framework(group) for group in metadata.framework_groups]
    if any(fw.family == ANY for fw in declared):
        return True
    if any(is_compatible(req, fw) for req in requested for fw in declared):
        return True
    return any(is_broad_family(fw) for fw in declared)


def excluded_by_shim(metadata: PackageMetadata, requested: list[TargetFramework]) -> bool:
    """Drop modern-only versions when every requested framework is the shim."""
    if not requested or not metadata.framework_groups:
        return False

    names = {fw.name.lower() for fw in requested}
    if len(names) != 1 or not names <= COMPATIBILITY_SHIM_FRAMEWORKS:
        return False

    shim = requested[0]
    declared = [parse_framework(group) for group in metadata.framework_groups]
    supports_shim = any(fw.family == ANY or is_compatible(shim, fw) for fw in declared)
    supports_newer = any(fw.is_modern_net for fw in declared)
    return not supports_shim and supports_newer


def _sort_metadata_desc(items: list[PackageMetadata]) -> list[PackageMetadata]:
    order = sort_versions_desc([m.version for m in items])
    by_version: dict[str, list[PackageMetadata]] = {}
    for item in items:
        by_version.setdefault(item.version, []).append(item)
    return [by_version[v].pop(0) for v in order]


class RegistryResolver:
    """Resolver for the latest compatible NuGet package versions."""

    def __init__(
        self,
        repositories: list[PackageRepository],
        mapping: PackageSourceMapping | None = None,
        timeout: float = 30.0,
        source_timeout: float = 15.0,
        fallback_timeout: float = 10.0,
        max_concurrency: int = 10,
    ):
        """Initialize the resolver.

        Args:
            repositories: Package sources, in configured order
            mapping: Package source mapping; None queries every source
            timeout: Overall bound per package, in seconds
            source_timeout: Bound per source metadata fetch
            fallback_timeout: Bound for the plain-resolution fallback
            max_concurrency: Packages checked per batch
        """
        self.repositories = repositories
        self.mapping = mapping or PackageSourceMapping()
        self.timeout = timeout
        self.source_timeout = source_timeout
        self.fallback_timeout = fallback_timeout
        self.max_concurrency = max_concurrency

    @classmethod
    def from_config(
        cls,
        config: NuGetConfig,
        credentials: CredentialSession | None = None,
        **kwargs,
    ) -> "RegistryResolver":
        credentials = credentials or CredentialSession.from_config(config)
        source_timeout = kwargs.get("source_timeout", 15.0)
        repositories = []
        for source in config.enabled_sources:
            if not source.is_v3:
                logger.warning("Skipping %s: only NuGet V3 feeds (index.json) are supported", source.name)
                continue
            repositories.append(NuGetV3Repository(source, credentials, timeout=source_timeout))
        return cls(repositories, mapping=config.mapping, **kwargs)

    def select_repositories(self, package_id: str) -> list[PackageRepository]:
        """Repositories allowed for ``package_id`` by the source mapping."""
        allowed = self.mapping.select(package_id, [repo.source for repo in self.repositories])
        allowed_names = {source.name.lower() for source in allowed}
        return [repo for repo in self.repositories if repo.source.name.lower() in allowed_names]

    async def latest_version(self, package_id: str, include_prerelease: bool = False) -> str | None:
        """Highest version from the first source that knows the package.

        Returns:
            The version, or None when no source has it
        """
        for repo in self.select_repositories(package_id):
            try:
                versions = await repo.list_versions(package_id)
            except RegistryError as e:
                logger.debug("Failed to check version for %s from %s: %s", package_id, repo.source.name, e)
                continue

            if versions:
                if not include_prerelease:
                    versions = [v for v in versions if not _is_prerelease(v)]
                return max_version(versions)

        return None

    async def latest_version_for_frameworks(
        self,
        package_id: str,
        frameworks: list[str],
        include_prerelease: bool = False,
        condition: str | None = None,
    ) -> str | None:
        """Newest version compatible with at least one of ``frameworks``.

        Falls back to ``latest_version`` when no source yields a compatible
        candidate, so callers see some update rather than none.
        """
        if not frameworks:
            return await self.latest_version(package_id, include_prerelease)

        requested = [parse_framework(tf) for tf in frameworks]
        required_major = extract_major_version(condition)

        for repo in self.select_repositories(package_id):
            try:
                metadata = await asyncio.wait_for(
                    repo.get_metadata(package_id, include_prerelease),
                    timeout=self.source_timeout,
                )
            except asyncio.TimeoutError:
                logger.warning("Timeout fetching metadata for %s from %s", package_id, repo.source.name)
                continue
            except RegistryError as e:
                logger.debug("Failed to get metadata for %s from %s: %s", package_id, repo.source.name, e)
                continue

            for candidate in _sort_metadata_desc(metadata):
                if not include_prerelease and _is_prerelease(candidate.version):
                    continue
                if not is_candidate_compatible(candidate, requested):
                    continue
                if excluded_by_shim(candidate, requested):
                    continue
                if required_major is not None and not _has_major(candidate.version, required_major):
                    continue
                return candidate.version

        logger.debug("No framework-compatible version of %s, falling back to latest", package_id)
        try:
            return await asyncio.wait_for(
                self.latest_version(package_id, include_prerelease),
                timeout=self.fallback_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Timeout resolving latest version of %s", package_id)
            return None

    async def get_package_info(self, package_id: str, include_prerelease: bool = False) -> PackageMetadata | None:
        """Metadata of the newest version, from the first source that has any."""
        for repo in self.select_repositories(package_id):
            try:
                metadata = await repo.get_metadata(package_id, include_prerelease)
            except RegistryError as e:
                logger.debug("Failed to get metadata for %s from %s: %s", package_id, repo.source.name, e)
                continue
            if metadata:
                return _sort_metadata_desc(metadata)[0]
        return None

    async def resolve_entry(
        self,
        entry: PackageEntry,
        include_prerelease: bool = False,
        disable_framework_check: bool = False,
    ) -> str | None:
        """Latest version for one manifest entry.

        Analyzer and test packages are resolved without the framework check.
        """
        if disable_framework_check or entry.is_analyzer_package or not entry.target_frameworks:
            return await self.latest_version(entry.id, include_prerelease)
        return await self.latest_version_for_frameworks(
            entry.id,
            entry.target_frameworks,
            include_prerelease,
            entry.condition,
        )

    async def check_entry(
        self,
        entry: PackageEntry,
        include_prerelease: bool = False,
        disable_framework_check: bool = False,
    ) -> bool:
        """Annotate ``entry`` with its latest version; False when unresolved.

        Never raises: timeouts and unexpected errors leave the entry unresolved.
        """
        try:
            latest = await asyncio.wait_for(
                self._annotate(entry, include_prerelease, disable_framework_check),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Timeout checking updates for %s", entry.id)
            return False
        except Exception:
            logger.exception("Error checking updates for %s", entry.id)
            return False

        if not latest:
            logger.debug("No version found for %s", entry.id)
            return False
        return True

    async def _annotate(self, entry: PackageEntry, include_prerelease: bool, disable_framework_check: bool) -> str | None:
        latest = await self.resolve_entry(entry, include_prerelease, disable_framework_check)
        if not latest:
            return None

        info = await self.get_package_info(entry.id, include_prerelease)
        entry.latest_version = latest
        if info is not None and compare_versions(info.version, latest) == 0:
            entry.description = info.description
            entry.published = info.published
        return latest

    async def check_for_updates(
        self,
        entries: list[PackageEntry],
        include_prerelease: bool = False,
        disable_framework_check: bool = False,
        on_progress: Callable[[PackageEntry], None] | None = None,
    ) -> list[PackageEntry]:
        """Annotate every entry, ``max_concurrency`` at a time.

        Returns:
            Entries that could not be resolved
        """
        logger.info("Checking for updates for %d packages", len(entries))
        unresolved: list[PackageEntry] = []

        for start in range(0, len(entries), self.max_concurrency):
            batch = entries[start:start + self.max_concurrency]
            outcomes = await asyncio.gather(
                *(self.check_entry(entry, include_prerelease, disable_framework_check) for entry in batch)
            )
            for entry, resolved in zip(batch, outcomes):
                if not resolved:
                    unresolved.append(entry)
                if on_progress is not None:
                    on_progress(entry)

        if unresolved:
            logger.warning(
                "Could not resolve version for %d package(s): %s",
                len(unresolved),
                ", ".join(entry.id for entry in unresolved),
            )
        return unresolved


def _is_prerelease(version: str) -> bool:
    parsed = parse_version(version)
    return parsed.is_prerelease if parsed is not None else "-" in version


def _has_major(version: str, major: int) -> bool:
    parsed = parse_version(version)
    return parsed is not None and parsed.major == major
