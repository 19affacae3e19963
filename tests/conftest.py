"""Pytest configuration and fixtures."""


import pytest

from cpmup.log import reset_logging


@pytest.fixture(autouse=True)
def clean_logging():
    """Drop handlers installed by CLI runs."""
    yield
    reset_logging()


@pytest.fixture
def sample_manifest():
    """Sample Directory.Packages.props content for testing."""
    return """<Project>
  <PropertyGroup>
    <ManagePackageVersionsCentrally>true</ManagePackageVersionsCentrally>
    <SerilogVersion>3.1.0</SerilogVersion>
  </PropertyGroup>
  <ItemGroup>
    <PackageVersion Include="Newtonsoft.Json" Version="13.0.1" />
    <PackageVersion Include="Serilog" Version="$(SerilogVersion)" />
    <PackageVersion Include="StyleCop.Analyzers" Version="1.1.118" PrivateAssets="all" />
  </ItemGroup>
</Project>
"""


@pytest.fixture
def sample_project():
    """Sample SDK-style project file."""
    return """<Project Sdk="Microsoft.NET.Sdk">
  <PropertyGroup>
    <TargetFramework>net8.0</TargetFramework>
  </PropertyGroup>
  <ItemGroup>
    <PackageReference Include="Newtonsoft.Json" />
  </ItemGroup>
</Project>
"""


@pytest.fixture
def solution_dir(tmp_path, sample_manifest, sample_project):
    """A directory with a manifest and one project under src/."""
    project_dir = tmp_path / "src" / "App"
    project_dir.mkdir(parents=True)
    (project_dir / "App.csproj").write_text(sample_project)
    (tmp_path / "Directory.Packages.props").write_text(sample_manifest)
    return tmp_path


@pytest.fixture
def inline_solution(tmp_path):
    """Two projects pinning versions inline, without a manifest."""
    for name, pins in (
        ("App", {"Newtonsoft.Json": "12.0.3", "Serilog": "2.10.0"}),
        ("Lib", {"Newtonsoft.Json": "13.0.1"}),
    ):
        references = "".join(
            f'\n    <PackageReference Include="{package_id}" Version="{version}" />'
            for package_id, version in pins.items()
        )
        project_dir = tmp_path / name
        project_dir.mkdir()
        (project_dir / f"{name}.csproj").write_text(
            f'<Project Sdk="Microsoft.NET.Sdk">\n  <ItemGroup>{references}\n  </ItemGroup>\n</Project>\n'
        )
    return tmp_path
