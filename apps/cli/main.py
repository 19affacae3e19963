"""CLI application for cpmup."""

import asyncio
import json
from pathlib import Path

import typer
from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn
from rich.prompt import Confirm
from rich.table import Table

from cpmup.detect import locate_config, locate_manifest
from cpmup.exceptions import CpmError
from cpmup.log import setup_logging
from cpmup.manifest import ManifestParser
from cpmup.migrate import MigrationAnalyzer
from cpmup.models import MigrationResult, PackageEntry
from cpmup.resolve import RegistryResolver
from cpmup.solution import SolutionAnalyzer, load_ancestor_properties
from cpmup.sources import load_nuget_config

console = Console()


def format_json_output(entries: list[PackageEntry]) -> str:
    """Format JSON output."""
    reports = []
    for entry in entries:
        reports.append({
            "id": entry.id,
            "current_version": entry.current_version,
            "latest_version": entry.latest_version,
            "has_update": entry.has_update,
            "condition": entry.condition,
            "is_global": entry.is_global,
            "is_excluded": entry.is_excluded,
            "is_analyzer_package": entry.is_analyzer_package,
            "target_frameworks": entry.target_frameworks,
            "published": entry.published.isoformat() if entry.published else None,
        })

    return json.dumps({"packages": reports}, indent=2)


def render_table(entries: list[PackageEntry]) -> Table:
    """Table of packages and their latest versions."""
    table = Table(title="Package updates")
    table.add_column("Package", style="cyan")
    table.add_column("Current")
    table.add_column("Latest")
    table.add_column("Frameworks", style="dim")
    table.add_column("Notes", style="dim")

    for entry in sorted(entries, key=lambda e: e.id.lower()):
        notes = []
        if entry.is_global:
            notes.append("global")
        if entry.is_analyzer_package:
            notes.append("analyzer")
        if entry.is_excluded:
            notes.append("frozen")
        if entry.condition:
            notes.append(entry.condition)

        if entry.latest_version is None:
            latest = "[yellow]unresolved[/yellow]"
        elif entry.has_update:
            latest = f"[green]{entry.latest_version}[/green]"
        else:
            latest = entry.latest_version

        current = entry.current_version
        if entry.original_version_expression:
            current = f"{current} ({entry.original_version_expression})"

        table.add_row(entry.id, current, latest, ", ".join(entry.target_frameworks), "; ".join(notes))

    return table


def select_updates(entries: list[PackageEntry], assume_yes: bool) -> list[PackageEntry]:
    """Mark the packages to update, asking per package unless ``assume_yes``."""
    selected = []
    for entry in entries:
        if not entry.has_update or entry.is_excluded:
            continue
        if assume_yes or Confirm.ask(
            f"Update [cyan]{entry.id}[/cyan] {entry.current_version} -> {entry.latest_version}?",
            console=console,
            default=True,
        ):
            entry.is_selected = True
            selected.append(entry)
    return selected


def build_resolver(manifest_path: Path, config_path: str | None) -> RegistryResolver:
    config = load_nuget_config(locate_config(manifest_path, config_path))
    return RegistryResolver.from_config(config)


def print_migration_summary(result: MigrationResult) -> None:
    title = "Migration preview" if result.dry_run else "Migration summary"
    console.print(f"[bold]{title}[/bold]")
    console.print(f"  Directory.Packages.props: {result.manifest_path}")

    table = Table()
    table.add_column("Package", style="cyan")
    table.add_column("Version")
    for package in result.packages:
        table.add_row(package.package_id, package.version)
    console.print(table)

    for plan in result.plans:
        console.print(f"  {plan.project_path}: {len(plan.records)} inline version(s)")
    for project in result.projects_modified:
        console.print(f"  Updated {project}", style="green")
    for project, error in result.project_errors.items():
        console.print(f"  Failed {project}: {error}", style="red")


app = typer.Typer(
    name="cpmup",
    help="cpmup - Update centrally managed NuGet package versions",
    add_completion=False,
)


@app.command()
def update(
    path: str = typer.Argument(".", help="Directory.Packages.props, or the directory containing it"),
    config: str | None = typer.Option(None, "--config", envvar="CPMUP_NUGET_CONFIG", help="Path to nuget.config"),
    prerelease: bool = typer.Option(False, "--prerelease", help="Include prerelease versions"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show updates without applying"),
    disable_framework_check: bool = typer.Option(
        False, "--disable-framework-check", help="Ignore target framework compatibility"
    ),
    yes: bool = typer.Option(False, "--yes", "-y", help="Apply every available update without prompting"),
    format_type: str = typer.Option("table", "--format", help="Output format: table or json"),
    log_level: str = typer.Option("WARNING", "--log-level", envvar="CPMUP_LOG_LEVEL", help="Logging level"),
    log_json: bool = typer.Option(False, "--log-json", help="Emit logs as JSON lines"),
) -> None:
    """Check Directory.Packages.props for newer package versions and apply them."""
    setup_logging(log_level, log_json)

    try:
        manifest_path = locate_manifest(path)
        solution = SolutionAnalyzer().analyze_path(manifest_path.parent)
        if format_type != "json":
            console.print(
                f"Found {len(solution.projects)} project(s) targeting: "
                f"{', '.join(sorted(solution.all_target_frameworks)) or 'none'}"
            )

        parser = ManifestParser()
        entries = parser.parse(manifest_path, solution, load_ancestor_properties(manifest_path.parent))
        if not entries:
            console.print("No packages found in Directory.Packages.props")
            raise typer.Exit(0)

        resolver = build_resolver(manifest_path, config)
        if format_type == "json":
            unresolved = asyncio.run(
                resolver.check_for_updates(entries, prerelease, disable_framework_check)
            )
        else:
            with Progress(
                SpinnerColumn(),
                TextColumn("[bold]{task.fields[status]}"),
                BarColumn(),
                console=console,
                transient=True,
            ) as progress:
                task = progress.add_task("check", total=len(entries), status="Checking package sources")

                def advance(entry: PackageEntry) -> None:
                    progress.update(task, advance=1, status=f"Checked {entry.id}")

                unresolved = asyncio.run(
                    resolver.check_for_updates(entries, prerelease, disable_framework_check, on_progress=advance)
                )

        if format_type == "json":
            typer.echo(format_json_output(entries))
        else:
            console.print(render_table(entries))
            if unresolved:
                console.print(
                    f"Could not resolve: {', '.join(entry.id for entry in unresolved)}", style="yellow"
                )

        if not any(entry.has_update and not entry.is_excluded for entry in entries):
            if format_type != "json":
                console.print("All packages are up to date")
            raise typer.Exit(2)  # No changes exit code

        if dry_run or (format_type == "json" and not yes):
            raise typer.Exit(0)

        selected = select_updates(entries, yes)
        if not selected:
            console.print("No packages selected")
            raise typer.Exit(0)

        changed = parser.rewrite(manifest_path, entries)
        console.print(f"Updated {changed} package version(s) in {manifest_path}")

    except typer.Exit:
        # Re-raise typer exits (like Exit(2) for no changes)
        raise
    except CpmError as e:
        console.print(f"Error: {e}", style="red")
        raise typer.Exit(1)


@app.command()
def migrate(
    path: str = typer.Argument(".", help="Solution file or directory to migrate"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show the plan without writing files"),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing Directory.Packages.props"),
    log_level: str = typer.Option("WARNING", "--log-level", envvar="CPMUP_LOG_LEVEL", help="Logging level"),
) -> None:
    """Move inline PackageReference versions into Directory.Packages.props."""
    setup_logging(log_level)

    result = MigrationAnalyzer().migrate(path, dry_run=dry_run, overwrite=force)
    if not result.success:
        console.print(f"Error: {result.error}", style="red")
        raise typer.Exit(1)

    if not result.packages:
        console.print("No inline package versions found")
        raise typer.Exit(2)

    print_migration_summary(result)
    if result.project_errors:
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
