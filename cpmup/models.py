"""Core data models for cpmup."""

import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from datetime import datetime

from .versions import is_newer, is_prerelease


@dataclass(frozen=True)
class ProjectRecord:
    """A single project file and what it targets."""

    path: str
    name: str
    target_frameworks: tuple[str, ...] = ()
    properties: dict[str, str] = field(default_factory=dict)


@dataclass
class SolutionRecord:
    """A solution (or a directory of projects)."""

    path: str
    projects: list[ProjectRecord] = field(default_factory=list)

    @property
    def all_target_frameworks(self) -> set[str]:
        return {tf for project in self.projects for tf in project.target_frameworks}


@dataclass
class PackageEntry:
    """A package pinned in the central manifest."""

    id: str
    current_version: str
    original_version_expression: str | None = None
    latest_version: str | None = None
    condition: str | None = None
    is_global: bool = False
    applicable_frameworks: list[str] = field(default_factory=list)
    target_frameworks: list[str] = field(default_factory=list)
    is_analyzer_package: bool = False
    private_assets: str | None = None
    include_assets: str | None = None
    is_excluded: bool = False
    is_selected: bool = False
    description: str | None = None
    published: datetime | None = None

    @property
    def has_private_assets(self) -> bool:
        return bool(self.private_assets)

    @property
    def is_current_version_prerelease(self) -> bool:
        return is_prerelease(self.current_version)

    @property
    def has_update(self) -> bool:
        return is_newer(self.current_version, self.latest_version)

    @property
    def declaration_key(self) -> tuple[str, str | None, bool]:
        """Identity of the manifest element this entry came from.

        The same id may be pinned once per condition, so the id alone is not
        enough to find the element again on rewrite.
        """
        return self.id.lower(), self.condition or None, self.is_global

    @property
    def is_updatable(self) -> bool:
        return self.is_selected and self.has_update and not self.is_excluded


@dataclass
class MigrationPackageRecord:
    """An inline ``PackageReference`` version pin found in a project."""

    package_id: str
    version: str
    element: ET.Element | None = None


@dataclass
class ProjectMutationPlan:
    """The inline pins to strip from one project file."""

    project_path: str
    records: list[MigrationPackageRecord] = field(default_factory=list)


@dataclass
class MigrationResult:
    """Outcome of a migration run."""

    manifest_path: str = ""
    dry_run: bool = False
    manifest_created: bool = False
    packages: list[MigrationPackageRecord] = field(default_factory=list)
    plans: list[ProjectMutationPlan] = field(default_factory=list)
    projects_modified: list[str] = field(default_factory=list)
    project_errors: dict[str, str] = field(default_factory=dict)
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.error is None
