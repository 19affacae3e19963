"""Locating the central manifest and its nuget.config."""

import os
from pathlib import Path

from .exceptions import ManifestNotFoundError
from .manifest import MANIFEST_FILE
from .sources import find_nuget_config


def locate_manifest(path: str | os.PathLike) -> Path:
    """Find Directory.Packages.props from a file or directory hint.

    Args:
        path: The manifest itself, a solution/project file next to it, or a
            directory containing it

    Returns:
        Path to the manifest

    Raises:
        ManifestNotFoundError: If no manifest exists at the location
    """
    target = Path(path)

    if target.is_file():
        if target.name.lower() == MANIFEST_FILE.lower():
            return target
        target = target.parent

    if target.is_dir():
        for child in sorted(target.iterdir()):
            if child.is_file() and child.name.lower() == MANIFEST_FILE.lower():
                return child

    raise ManifestNotFoundError(f"{MANIFEST_FILE} not found at: {target}")


def locate_config(manifest_path: str | os.PathLike, explicit: str | os.PathLike | None = None) -> Path | None:
    """An explicit nuget.config, or the one next to the manifest."""
    if explicit is not None:
        return Path(explicit)
    return find_nuget_config(Path(manifest_path).parent)
