"""Tests for manifest and nuget.config discovery."""

import pytest

from cpmup.detect import locate_config, locate_manifest
from cpmup.exceptions import ManifestNotFoundError


class TestLocateManifest:
    """Test manifest discovery from path hints."""

    def test_manifest_file(self, solution_dir):
        """Should accept the manifest path itself."""
        path = solution_dir / "Directory.Packages.props"
        assert locate_manifest(path) == path

    def test_directory(self, solution_dir):
        """Should find the manifest in a directory."""
        assert locate_manifest(solution_dir).name == "Directory.Packages.props"

    def test_sibling_file(self, solution_dir):
        """Should look next to a solution or project file."""
        sln = solution_dir / "App.sln"
        sln.write_text("")
        assert locate_manifest(sln) == solution_dir / "Directory.Packages.props"

    def test_case_insensitive_name(self, tmp_path):
        """Should match the file name case-insensitively."""
        (tmp_path / "directory.packages.props").write_text("<Project />")
        assert locate_manifest(tmp_path).name == "directory.packages.props"

    def test_missing(self, tmp_path):
        """Should raise when there is no manifest."""
        with pytest.raises(ManifestNotFoundError):
            locate_manifest(tmp_path)
        with pytest.raises(ManifestNotFoundError):
            locate_manifest(tmp_path / "nowhere")


class TestLocateConfig:
    """Test nuget.config discovery."""

    def test_explicit_path_wins(self, solution_dir, tmp_path):
        """Should return an explicit path unchanged."""
        explicit = tmp_path / "custom.config"
        assert locate_config(solution_dir / "Directory.Packages.props", explicit) == explicit

    def test_next_to_manifest(self, solution_dir):
        """Should find nuget.config beside the manifest."""
        (solution_dir / "nuget.config").write_text("<configuration />")
        assert locate_config(solution_dir / "Directory.Packages.props").name == "nuget.config"

    def test_absent(self, solution_dir):
        """Should return None without a config."""
        assert locate_config(solution_dir / "Directory.Packages.props") is None
