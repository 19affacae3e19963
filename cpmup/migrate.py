"""Migration from per-project version pins to a central manifest."""

import logging
import os
import xml.etree.ElementTree as ET
from pathlib import Path

from .exceptions import MigrationError
from .manifest import MANIFEST_FILE
from .models import MigrationPackageRecord, MigrationResult, ProjectMutationPlan, SolutionRecord
from .solution import SOLUTION_EXTENSIONS, SolutionAnalyzer
from .versions import compare_numeric
from .xmlutil import encode_text, get_attribute, iter_descendants, parse_document, read_text, scan_tags, splice

logger = logging.getLogger(__name__)

PIN_ELEMENT = "PackageReference"


def collect_pins(project_path: str | os.PathLike) -> list[MigrationPackageRecord]:
    """``PackageReference`` elements carrying both ``Include`` and ``Version``."""
    root = parse_document(Path(project_path).read_bytes())
    records = []
    for element in iter_descendants(root, PIN_ELEMENT):
        package_id = get_attribute(element, "Include")
        version = get_attribute(element, "Version")
        if package_id and version:
            records.append(MigrationPackageRecord(package_id, version, element))
    return records


def build_manifest(packages: list[MigrationPackageRecord]) -> str:
    """Central manifest text, one ``PackageVersion`` per id in id order."""
    root = ET.Element("Project")
    properties = ET.SubElement(root, "PropertyGroup")
    ET.SubElement(properties, "ManagePackageVersionsCentrally").text = "true"

    items = ET.SubElement(root, "ItemGroup")
    for package in sorted(packages, key=lambda p: p.package_id.lower()):
        ET.SubElement(items, "PackageVersion", {"Include": package.package_id, "Version": package.version})

    ET.indent(root, space="  ")
    return ET.tostring(root, encoding="unicode") + "\n"


def strip_versions(text: str) -> tuple[str, int]:
    """Remove the ``Version`` attribute from every ``PackageReference`` tag.

    Only the attribute (with its leading whitespace) is removed; the rest of
    the file is kept byte for byte.
    """
    edits = []
    for tag in scan_tags(text):
        if tag.is_end or tag.local != PIN_ELEMENT.lower():
            continue
        include = tag.attribute("Include")
        version = tag.attribute("Version")
        if include is not None and include.value and version is not None and version.value:
            edits.append((version.start, version.end, ""))
    return splice(text, edits), len(edits)


class MigrationAnalyzer:
    """Moves inline package versions into Directory.Packages.props."""

    def __init__(self, analyzer: SolutionAnalyzer | None = None):
        self.analyzer = analyzer or SolutionAnalyzer()

    def manifest_path_for(self, path: str | os.PathLike, solution: SolutionRecord) -> Path:
        target = Path(solution.path)
        if target.is_file() and target.suffix.lower() in SOLUTION_EXTENSIONS:
            return target.parent / MANIFEST_FILE
        base = Path(path)
        return (base.parent if base.is_file() else base) / MANIFEST_FILE

    def migrate(
        self,
        path: str | os.PathLike,
        dry_run: bool = False,
        overwrite: bool = False,
    ) -> MigrationResult:
        """Plan, and unless ``dry_run`` apply, a migration.

        The manifest is written first, then each project is rewritten on its
        own; a project that fails is recorded in ``project_errors`` and the
        rest carry on.
        """
        result = MigrationResult(dry_run=dry_run)
        try:
            solution = self.analyzer.analyze_path(path)
            if not solution.projects:
                raise MigrationError(f"No project files found in {path}")

            manifest_path = self.manifest_path_for(path, solution)
            result.manifest_path = str(manifest_path)

            self._plan(solution, result)
            if not result.packages:
                logger.info("No inline package versions found")
                return result

            if dry_run:
                logger.info(
                    "Dry run: %d package(s) across %d project(s) would be centralized",
                    len(result.packages),
                    len(result.plans),
                )
                return result

            if manifest_path.exists() and not overwrite:
                raise MigrationError(f"{MANIFEST_FILE} already exists at {manifest_path}")

            manifest_path.parent.mkdir(parents=True, exist_ok=True)
            manifest_path.write_text(build_manifest(result.packages), encoding="utf-8")
            result.manifest_created = True
            logger.info("Created %s with %d packages", manifest_path, len(result.packages))

            for plan in result.plans:
                self._apply(plan, result)

        except MigrationError as e:
            logger.error("Migration failed: %s", e)
            result.error = str(e)
        except OSError as e:
            logger.error("Migration failed: %s", e)
            result.error = f"Could not write {MANIFEST_FILE}: {e}"

        return result

    def _plan(self, solution: SolutionRecord, result: MigrationResult) -> None:
        highest: dict[str, MigrationPackageRecord] = {}

        for project in solution.projects:
            try:
                records = collect_pins(project.path)
            except (ET.ParseError, OSError) as e:
                logger.warning("Could not read %s: %s", project.path, e)
                result.project_errors[project.path] = str(e)
                continue

            if not records:
                continue
            result.plans.append(ProjectMutationPlan(project.path, records))

            for record in records:
                key = record.package_id.lower()
                current = highest.get(key)
                if current is None or compare_numeric(record.version, current.version) > 0:
                    highest[key] = record

        result.packages = sorted(highest.values(), key=lambda r: r.package_id.lower())

    def _apply(self, plan: ProjectMutationPlan, result: MigrationResult) -> None:
        path = Path(plan.project_path)
        try:
            text, has_bom = read_text(path.read_bytes())
            updated, removed = strip_versions(text)
            if removed:
                path.write_bytes(encode_text(updated, has_bom))
                result.projects_modified.append(plan.project_path)
                logger.info("Removed %d inline version(s) from %s", removed, path.name)
        except (OSError, UnicodeDecodeError) as e:
            logger.error("Failed to update %s: %s", path, e)
            result.project_errors[plan.project_path] = str(e)
