"""Tests for CLI interface."""

import json
from unittest.mock import AsyncMock, patch

from typer.testing import CliRunner

from apps.cli.main import app


def fake_resolver(latest):
    """Resolver mock that annotates entries from ``latest``."""
    resolver = AsyncMock()

    async def check(entries, include_prerelease=False, disable_framework_check=False, on_progress=None):
        for entry in entries:
            entry.latest_version = latest.get(entry.id)
            if on_progress is not None:
                on_progress(entry)
        return [entry for entry in entries if entry.latest_version is None]

    resolver.check_for_updates.side_effect = check
    return resolver


LATEST = {"Newtonsoft.Json": "13.0.3", "Serilog": "3.1.0", "StyleCop.Analyzers": "1.1.118"}


class TestUpdateCommand:
    """Test the update command."""

    def setup_method(self):
        self.runner = CliRunner()

    def test_help(self):
        """Should show help text."""
        result = self.runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "update" in result.output
        assert "migrate" in result.output

    def test_missing_manifest(self, tmp_path):
        """Should fail when no manifest exists."""
        result = self.runner.invoke(app, ["update", str(tmp_path)])
        assert result.exit_code == 1
        assert "not found" in result.output

    def test_update_with_yes(self, solution_dir):
        """Should apply every available update with --yes."""
        manifest = solution_dir / "Directory.Packages.props"

        with patch("apps.cli.main.RegistryResolver") as mock_resolver_class:
            mock_resolver_class.from_config.return_value = fake_resolver(LATEST)
            result = self.runner.invoke(app, ["update", str(solution_dir), "--yes"])

        assert result.exit_code == 0
        assert "Updated 1 package" in result.output
        content = manifest.read_text()
        assert '<PackageVersion Include="Newtonsoft.Json" Version="13.0.3" />' in content
        assert 'Version="$(SerilogVersion)"' in content

    def test_update_dry_run(self, solution_dir):
        """Should not modify files in dry run mode."""
        manifest = solution_dir / "Directory.Packages.props"
        original_content = manifest.read_text()

        with patch("apps.cli.main.RegistryResolver") as mock_resolver_class:
            mock_resolver_class.from_config.return_value = fake_resolver(LATEST)
            result = self.runner.invoke(app, ["update", str(solution_dir), "--dry-run"])

        assert result.exit_code == 0
        assert manifest.read_text() == original_content
        assert "Newtonsoft.Json" in result.output

    def test_update_prompt_declined(self, solution_dir):
        """Should leave the manifest alone when the user declines."""
        manifest = solution_dir / "Directory.Packages.props"
        original_content = manifest.read_text()

        with patch("apps.cli.main.RegistryResolver") as mock_resolver_class:
            mock_resolver_class.from_config.return_value = fake_resolver(LATEST)
            result = self.runner.invoke(app, ["update", str(solution_dir)], input="n\n")

        assert result.exit_code == 0
        assert "No packages selected" in result.output
        assert manifest.read_text() == original_content

    def test_update_json_format(self, solution_dir):
        """Should output JSON format when requested."""
        with patch("apps.cli.main.RegistryResolver") as mock_resolver_class:
            mock_resolver_class.from_config.return_value = fake_resolver(LATEST)
            result = self.runner.invoke(app, ["update", str(solution_dir), "--format", "json"])

        assert result.exit_code == 0
        output_data = json.loads(result.stdout)
        packages = {p["id"]: p for p in output_data["packages"]}
        assert packages["Newtonsoft.Json"]["has_update"]
        assert packages["StyleCop.Analyzers"]["is_analyzer_package"]
        assert packages["Serilog"]["target_frameworks"] == ["net8.0"]

    def test_no_updates_exit_code(self, solution_dir):
        """Should exit with 2 when everything is current."""
        current = {"Newtonsoft.Json": "13.0.1", "Serilog": "3.1.0", "StyleCop.Analyzers": "1.1.118"}

        with patch("apps.cli.main.RegistryResolver") as mock_resolver_class:
            mock_resolver_class.from_config.return_value = fake_resolver(current)
            result = self.runner.invoke(app, ["update", str(solution_dir)])

        assert result.exit_code == 2
        assert "up to date" in result.output

    def test_options_passed_to_resolver(self, solution_dir):
        """Should pass prerelease and framework-check flags through."""
        resolver = fake_resolver(LATEST)

        with patch("apps.cli.main.RegistryResolver") as mock_resolver_class:
            mock_resolver_class.from_config.return_value = resolver
            self.runner.invoke(
                app,
                ["update", str(solution_dir), "--prerelease", "--disable-framework-check", "--dry-run"],
            )

        args = resolver.check_for_updates.call_args[0]
        assert args[1] is True
        assert args[2] is True

    def test_progress_reported(self, solution_dir):
        """Should pass a progress callback for table output only."""
        resolver = fake_resolver(LATEST)

        with patch("apps.cli.main.RegistryResolver") as mock_resolver_class:
            mock_resolver_class.from_config.return_value = resolver
            result = self.runner.invoke(app, ["update", str(solution_dir), "--dry-run"])
            assert result.exit_code == 0
            assert callable(resolver.check_for_updates.call_args.kwargs["on_progress"])

            self.runner.invoke(app, ["update", str(solution_dir), "--format", "json"])
            assert "on_progress" not in resolver.check_for_updates.call_args.kwargs

    def test_nuget_config_used(self, solution_dir):
        """Should build the resolver from nuget.config next to the manifest."""
        (solution_dir / "nuget.config").write_text(
            '<configuration><packageSources><add key="company" '
            'value="https://pkgs.example.com/v3/index.json" /></packageSources></configuration>'
        )

        with patch("apps.cli.main.RegistryResolver") as mock_resolver_class:
            mock_resolver_class.from_config.return_value = fake_resolver(LATEST)
            self.runner.invoke(app, ["update", str(solution_dir), "--dry-run"])

        config = mock_resolver_class.from_config.call_args[0][0]
        assert [s.name for s in config.enabled_sources] == ["company"]

    def test_invalid_manifest(self, tmp_path):
        """Should report malformed manifests."""
        (tmp_path / "Directory.Packages.props").write_text("<Project>")
        result = self.runner.invoke(app, ["update", str(tmp_path)])
        assert result.exit_code == 1
        assert "Error" in result.output


class TestMigrateCommand:
    """Test the migrate command."""

    def setup_method(self):
        self.runner = CliRunner()

    def test_migrate_dry_run(self, inline_solution):
        """Should show the plan without writing."""
        result = self.runner.invoke(app, ["migrate", str(inline_solution), "--dry-run"])

        assert result.exit_code == 0
        assert "Migration preview" in result.output
        assert "Serilog" in result.output
        assert not (inline_solution / "Directory.Packages.props").exists()

    def test_migrate_writes(self, inline_solution):
        """Should write the manifest."""
        result = self.runner.invoke(app, ["migrate", str(inline_solution)])

        assert result.exit_code == 0
        assert (inline_solution / "Directory.Packages.props").exists()

    def test_migrate_existing_manifest(self, inline_solution):
        """Should refuse to overwrite without --force."""
        (inline_solution / "Directory.Packages.props").write_text("<Project />")

        result = self.runner.invoke(app, ["migrate", str(inline_solution)])
        assert result.exit_code == 1

        result = self.runner.invoke(app, ["migrate", str(inline_solution), "--force"])
        assert result.exit_code == 0

    def test_migrate_nothing_to_do(self, tmp_path):
        """Should exit with 2 when projects have no inline versions."""
        (tmp_path / "App").mkdir()
        (tmp_path / "App" / "App.csproj").write_text('<Project><ItemGroup><PackageReference Include="A" /></ItemGroup></Project>')

        result = self.runner.invoke(app, ["migrate", str(tmp_path)])
        assert result.exit_code == 2
