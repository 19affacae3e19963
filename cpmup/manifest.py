"""Directory.Packages.props parsing and rewriting."""

import logging
import os
import xml.etree.ElementTree as ET
from pathlib import Path

from .classification import DEFAULT_POLICY, ClassificationPolicy
from .conditions import applies_to_frameworks, is_satisfied
from .exceptions import ManifestNotFoundError, ManifestParseError
from .expressions import resolve
from .models import PackageEntry, SolutionRecord
from .xmlutil import (
    child_text_span,
    element_text,
    encode_text,
    escape_attribute,
    find_children,
    get_attribute,
    get_value,
    iter_descendants,
    local_name,
    name_matches,
    parse_document,
    read_text,
    scan_tags,
    splice,
)

logger = logging.getLogger(__name__)

MANIFEST_FILE = "Directory.Packages.props"
PIN_ELEMENTS = ("PackageVersion", "GlobalPackageReference")
GLOBAL_ELEMENT = "GlobalPackageReference"
FREEZE_MARKER = "FreezeVersion"


def _is_true(value: str | None) -> bool:
    return bool(value) and value.strip().lower() == "true"


def _merge_group(properties: dict[str, str], group: ET.Element) -> None:
    for prop in group:
        if not isinstance(prop.tag, str):
            continue
        value = element_text(prop)
        if value:
            properties[local_name(prop.tag)] = value


def _unconditional_groups(element: ET.Element):
    """PropertyGroups that are not inside a ``Choose`` block."""
    for child in element:
        if not isinstance(child.tag, str) or name_matches(child, "Choose"):
            continue
        if name_matches(child, "PropertyGroup"):
            yield child
        else:
            yield from _unconditional_groups(child)


def extract_properties(root: ET.Element, frameworks: set[str]) -> dict[str, str]:
    """Property table of the manifest.

    Plain property groups first, then for each ``Choose`` the first ``When``
    whose condition holds for the solution (``Otherwise`` when none does).
    """
    properties: dict[str, str] = {}
    for group in _unconditional_groups(root):
        _merge_group(properties, group)

    for choose in iter_descendants(root, "Choose"):
        branch = None
        for when in find_children(choose, "When"):
            condition = get_attribute(when, "Condition")
            if condition and is_satisfied(condition, frameworks):
                branch = when
                break
        if branch is None:
            otherwise = find_children(choose, "Otherwise")
            branch = otherwise[0] if otherwise else None
        if branch is None:
            continue
        for group in iter_descendants(branch, "PropertyGroup"):
            _merge_group(properties, group)

    return properties


def _pin_elements(root: ET.Element) -> list[ET.Element]:
    """PackageVersion and GlobalPackageReference elements, in document order."""
    pin_names = {name.lower() for name in PIN_ELEMENTS}
    return [node for node in root.iter() if node is not root and local_name(node.tag).lower() in pin_names]


class ManifestParser:
    """Reads package pins from a central manifest and writes chosen updates back."""

    def __init__(self, policy: ClassificationPolicy = DEFAULT_POLICY):
        self.policy = policy

    def parse(
        self,
        manifest_path: str | os.PathLike,
        solution: SolutionRecord | None = None,
        base_properties: dict[str, str] | None = None,
    ) -> list[PackageEntry]:
        """Parse a manifest file.

        Args:
            manifest_path: Path to Directory.Packages.props
            solution: Analyzed solution, for framework applicability
            base_properties: Properties visible to the manifest from
                Directory.Build.props files; manifest properties override them

        Returns:
            One entry per PackageVersion/GlobalPackageReference element
        """
        path = Path(manifest_path)
        if not path.is_file():
            raise ManifestNotFoundError(f"{MANIFEST_FILE} not found at: {path}")

        return self.parse_content(path.read_bytes(), solution, base_properties, source=str(path))

    def parse_content(
        self,
        content: str | bytes,
        solution: SolutionRecord | None = None,
        base_properties: dict[str, str] | None = None,
        source: str = MANIFEST_FILE,
    ) -> list[PackageEntry]:
        data = content.encode("utf-8") if isinstance(content, str) else content
        try:
            root = parse_document(data)
        except ET.ParseError as e:
            raise ManifestParseError(f"Error parsing {source}: {e}") from e

        frameworks = solution.all_target_frameworks if solution else set()
        properties = dict(base_properties or {})
        properties.update(extract_properties(root, frameworks))

        entries = []
        for element in _pin_elements(root):
            entry = self._build_entry(element, properties, frameworks)
            if entry is not None:
                entries.append(entry)

        logger.debug("Parsed %d package entries from %s", len(entries), source)
        return entries

    def _build_entry(
        self,
        element: ET.Element,
        properties: dict[str, str],
        frameworks: set[str],
    ) -> PackageEntry | None:
        package_id = get_attribute(element, "Include")
        version = get_value(element, "Version")
        if not package_id or not version:
            logger.debug("Skipping %s without Include/Version", local_name(element.tag))
            return None

        resolved = resolve(version, properties)
        condition = get_attribute(element, "Condition") or None
        private_assets = get_value(element, "PrivateAssets")
        include_assets = get_value(element, "IncludeAssets")

        if condition:
            applicable = sorted(applies_to_frameworks(condition, frameworks))
        else:
            applicable = sorted(frameworks)

        return PackageEntry(
            id=package_id,
            current_version=resolved,
            original_version_expression=version if version != resolved else None,
            condition=condition,
            is_global=name_matches(element, GLOBAL_ELEMENT),
            applicable_frameworks=applicable,
            target_frameworks=list(applicable),
            is_analyzer_package=self.policy.is_analyzer_package(package_id, private_assets, include_assets),
            private_assets=private_assets,
            include_assets=include_assets,
            is_excluded=_is_true(get_value(element, FREEZE_MARKER)),
        )

    def rewrite(self, manifest_path: str | os.PathLike, entries: list[PackageEntry]) -> int:
        """Write selected updates into the manifest file.

        Returns:
            Number of version values changed
        """
        path = Path(manifest_path)
        if not path.is_file():
            raise ManifestNotFoundError(f"{MANIFEST_FILE} not found at: {path}")

        text, has_bom = read_text(path.read_bytes())
        try:
            parse_document(text.encode("utf-8"))
        except ET.ParseError as e:
            raise ManifestParseError(f"Error parsing {path}: {e}") from e

        updated, changed = self._rewrite(text, entries)
        if changed:
            path.write_bytes(encode_text(updated, has_bom))
            logger.info("Updated %d package version(s) in %s", changed, path)
        return changed

    def rewrite_content(self, content: str, entries: list[PackageEntry]) -> str:
        """Return ``content`` with selected updates applied."""
        return self._rewrite(content, entries)[0]

    def _rewrite(self, text: str, entries: list[PackageEntry]) -> tuple[str, int]:
        updatable = [entry for entry in entries if entry.is_updatable]
        if not updatable:
            return text, 0

        pin_names = {name.lower() for name in PIN_ELEMENTS}
        tags = scan_tags(text)
        edits: list[tuple[int, int, str]] = []

        for index, tag in enumerate(tags):
            if tag.is_end or tag.local not in pin_names:
                continue
            include = tag.attribute("Include")
            if include is None or not include.value:
                continue

            condition_attr = tag.attribute("Condition")
            key = (
                include.value.lower(),
                condition_attr.value if condition_attr is not None and condition_attr.value else None,
                tag.local == GLOBAL_ELEMENT.lower(),
            )
            entry = next((e for e in updatable if e.declaration_key == key), None)
            if entry is None:
                continue

            version_attr = tag.attribute("Version")
            if version_attr is not None:
                edits.append((
                    version_attr.value_start,
                    version_attr.value_end,
                    escape_attribute(entry.latest_version, version_attr.quote),
                ))
                continue

            span = child_text_span(text, tags, index, "Version")
            if span is not None:
                edits.append((span[0], span[1], escape_attribute(entry.latest_version)))

        return splice(text, edits), len(edits)
