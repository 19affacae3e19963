"""Solution and project discovery.

Builds the set of target frameworks a solution compiles for. Properties are
layered the way MSBuild imports them: ``Directory.Build.props`` files found by
walking up from the solution directory act as defaults, each project's own
property groups override them.
"""

import logging
import os
import re
import xml.etree.ElementTree as ET
from pathlib import Path

from .expressions import resolve
from .models import ProjectRecord, SolutionRecord
from .xmlutil import element_text, get_attribute, iter_descendants, local_name, parse_document

logger = logging.getLogger(__name__)

BUILD_PROPS_FILE = "Directory.Build.props"
PROJECT_EXTENSIONS = (".csproj", ".fsproj", ".vbproj")
SOLUTION_EXTENSIONS = (".sln", ".slnx")
SKIPPED_DIRECTORIES = {"bin", "obj", ".git", ".vs", "node_modules"}

_SOLUTION_PROJECT_RE = re.compile(
    r'Project\("\{[^}]+\}"\)\s*=\s*"[^"]+",\s*"([^"]+\.(?:cs|fs|vb)proj)",',
    re.IGNORECASE,
)


def extract_properties(root: ET.Element) -> dict[str, str]:
    """Every non-empty property in every ``PropertyGroup``; last one wins."""
    properties: dict[str, str] = {}
    for group in iter_descendants(root, "PropertyGroup"):
        for prop in group:
            if not isinstance(prop.tag, str):
                continue
            value = element_text(prop)
            if value:
                properties[local_name(prop.tag)] = value
    return properties


def _split_frameworks(value: str | None) -> list[str]:
    if not value:
        return []
    return [tf.strip() for tf in value.split(";") if tf.strip()]


def _first_text(root: ET.Element, name: str) -> str | None:
    for element in iter_descendants(root, name):
        return element_text(element)
    return None


class SolutionAnalyzer:
    """Discover projects and their target frameworks."""

    def analyze_path(self, path: str | os.PathLike) -> SolutionRecord:
        """Analyze a solution file, or a directory.

        A directory holding exactly one solution file is analyzed through that
        solution; if the solution yields no projects (or there are several
        solution files) every project under the directory is scanned instead.
        """
        target = Path(path)
        if target.is_file() and target.suffix.lower() in SOLUTION_EXTENSIONS:
            return self.analyze_solution(target)

        solutions = find_solution_files(target)
        if len(solutions) == 1:
            logger.info("Found solution file: %s", solutions[0].name)
            solution = self.analyze_solution(solutions[0])
            if solution.projects:
                return solution
        elif len(solutions) > 1:
            logger.warning("Multiple solution files found in %s, analyzing directory instead", target)

        return self.analyze_directory(target)

    def analyze_solution(self, solution_path: str | os.PathLike) -> SolutionRecord:
        """Analyze the projects referenced by a ``.sln``/``.slnx`` file."""
        path = Path(solution_path)
        solution = SolutionRecord(path=str(path))

        if not path.is_file():
            logger.warning("Solution file not found: %s", path)
            return solution

        solution_dir = path.parent
        ancestor_properties = load_ancestor_properties(solution_dir)

        for relative in parse_solution_file(path):
            project_path = Path(relative)
            if not project_path.is_absolute():
                project_path = solution_dir / project_path
            if not project_path.is_file():
                logger.warning("Project listed in %s not found: %s", path.name, project_path)
                continue

            project = self.analyze_project(project_path, ancestor_properties)
            if project is not None:
                solution.projects.append(project)

        return solution

    def analyze_directory(self, directory_path: str | os.PathLike) -> SolutionRecord:
        """Analyze every project file under a directory, recursively."""
        directory = Path(directory_path)
        solution = SolutionRecord(path=str(directory))
        ancestor_properties = load_ancestor_properties(directory)

        for project_path in find_project_files(directory):
            project = self.analyze_project(project_path, ancestor_properties)
            if project is not None:
                solution.projects.append(project)

        return solution

    def analyze_project(
        self,
        project_path: str | os.PathLike,
        ancestor_properties: dict[str, str] | None = None,
    ) -> ProjectRecord | None:
        """Read one project file.

        Returns:
            The project record, or None when the file cannot be parsed
        """
        path = Path(project_path)
        try:
            root = parse_document(path.read_bytes())
        except (ET.ParseError, OSError) as e:
            logger.warning("Could not parse project %s: %s", path, e)
            return None

        properties = dict(ancestor_properties or {})
        properties.update(extract_properties(root))

        return ProjectRecord(
            path=str(path),
            name=path.stem,
            target_frameworks=tuple(extract_target_frameworks(root, properties)),
            properties=properties,
        )


def extract_target_frameworks(root: ET.Element, properties: dict[str, str]) -> list[str]:
    """``TargetFramework`` plus ``TargetFrameworks``, resolved and de-duplicated.

    When the project body declares neither, the merged property table is
    consulted so frameworks set only in ``Directory.Build.props`` count.
    """
    frameworks: list[str] = []

    single = _first_text(root, "TargetFramework")
    if single:
        frameworks.extend(_split_frameworks(resolve(single, properties)))

    multiple = _first_text(root, "TargetFrameworks")
    if multiple:
        frameworks.extend(_split_frameworks(resolve(multiple, properties)))

    if not frameworks:
        for key in ("TargetFramework", "TargetFrameworks"):
            value = properties.get(key)
            if value:
                frameworks.extend(_split_frameworks(resolve(value, properties)))

    # Unresolvable references are not frameworks
    return [tf for tf in dict.fromkeys(frameworks) if "$(" not in tf]


def load_ancestor_properties(start_directory: str | os.PathLike) -> dict[str, str]:
    """Properties from ``Directory.Build.props`` files from here up to the root.

    A nearer file wins: keys already found are never overwritten by a file
    higher up the tree.
    """
    properties: dict[str, str] = {}
    current = Path(start_directory).resolve()

    while True:
        props_path = current / BUILD_PROPS_FILE
        if props_path.is_file():
            try:
                root = parse_document(props_path.read_bytes())
            except (ET.ParseError, OSError) as e:
                logger.warning("Could not parse %s: %s", props_path, e)
            else:
                for key, value in extract_properties(root).items():
                    properties.setdefault(key, value)

        if current.parent == current:
            break
        current = current.parent

    return properties


def parse_solution_file(solution_path: Path) -> list[str]:
    """Relative project paths referenced by a solution file."""
    try:
        content = solution_path.read_text(encoding="utf-8-sig")
    except OSError as e:
        logger.warning("Could not read solution %s: %s", solution_path, e)
        return []

    if solution_path.suffix.lower() == ".slnx":
        return _parse_slnx(solution_path, content)

    return [match.replace("\\", os.sep) for match in _SOLUTION_PROJECT_RE.findall(content)]


def _parse_slnx(solution_path: Path, content: str) -> list[str]:
    try:
        root = ET.fromstring(content)
    except ET.ParseError as e:
        logger.warning("Could not parse solution %s: %s", solution_path, e)
        return []

    paths = []
    for project in iter_descendants(root, "Project"):
        project_path = get_attribute(project, "Path")
        if project_path and project_path.lower().endswith(PROJECT_EXTENSIONS):
            paths.append(project_path.replace("\\", os.sep))
    return paths


def find_solution_files(directory: Path) -> list[Path]:
    if not directory.is_dir():
        return []
    return sorted(
        child for child in directory.iterdir()
        if child.is_file() and child.suffix.lower() in SOLUTION_EXTENSIONS
    )


def find_project_files(directory: Path) -> list[Path]:
    """Project files under ``directory``, skipping build output and VCS dirs."""
    found: list[Path] = []
    for current, dirnames, filenames in os.walk(directory):
        dirnames[:] = sorted(d for d in dirnames if d.lower() not in SKIPPED_DIRECTORIES)
        for filename in sorted(filenames):
            if filename.lower().endswith(PROJECT_EXTENSIONS):
                found.append(Path(current) / filename)
    return found
