"""Analyzer and test package classification.

Analyzers, source generators and test tooling are consumed at build time and
rarely declare framework-specific dependency groups, so checking them against
the solution's target frameworks produces false "no compatible version"
results. Packages matched here are resolved without the framework check.

The tables are the whole policy; extend them with ``ClassificationPolicy``
rather than adding literals elsewhere.
"""

from dataclasses import dataclass

ANALYZER_ID_SUBSTRINGS = frozenset({
    "analyzer",
    "stylecop",
    "roslynator",
    "codestyle",
    "sourcelink",
    "sourcegenerator",
})

KNOWN_ANALYZER_IDS = frozenset({
    "AsyncFixer",
    "ConfigureAwaitChecker.Analyzer",
    "ErrorProne.NET.CoreAnalyzers",
    "IDisposableAnalyzers",
    "Meziantou.Analyzer",
    "Microsoft.CodeAnalysis.BannedApiAnalyzers",
    "Microsoft.CodeAnalysis.NetAnalyzers",
    "Microsoft.CodeAnalysis.PublicApiAnalyzers",
    "Microsoft.SourceLink.GitHub",
    "Microsoft.VisualStudio.Threading.Analyzers",
    "MinVer",
    "Nerdbank.GitVersioning",
    "Roslynator.Analyzers",
    "SonarAnalyzer.CSharp",
    "StyleCop.Analyzers",
})

KNOWN_TEST_IDS = frozenset({
    "AutoFixture",
    "Bogus",
    "coverlet.collector",
    "coverlet.msbuild",
    "FluentAssertions",
    "Microsoft.NET.Test.Sdk",
    "Moq",
    "MSTest.TestAdapter",
    "MSTest.TestFramework",
    "NSubstitute",
    "NUnit",
    "NUnit3TestAdapter",
    "Shouldly",
    "xunit",
    "xunit.assert",
    "xunit.core",
    "xunit.runner.visualstudio",
})

TEST_ID_SUBSTRINGS = frozenset({
    "xunit",
    "nunit",
    "mstest",
    "test.sdk",
    "testadapter",
    "coverlet",
})


@dataclass(frozen=True)
class ClassificationPolicy:
    analyzer_substrings: frozenset[str] = ANALYZER_ID_SUBSTRINGS
    analyzer_ids: frozenset[str] = KNOWN_ANALYZER_IDS
    test_ids: frozenset[str] = KNOWN_TEST_IDS
    test_substrings: frozenset[str] = TEST_ID_SUBSTRINGS

    def is_analyzer_package(
        self,
        package_id: str,
        private_assets: str | None = None,
        include_assets: str | None = None,
    ) -> bool:
        """Whether a package should skip framework-aware resolution."""
        if private_assets and private_assets.strip().lower() == "all":
            return True
        if include_assets and "analyzers" in include_assets.lower():
            return True

        lowered = package_id.lower()
        if any(s in lowered for s in self.analyzer_substrings):
            return True
        if lowered in {i.lower() for i in self.analyzer_ids}:
            return True
        if lowered in {i.lower() for i in self.test_ids}:
            return True
        return any(s in lowered for s in self.test_substrings)


DEFAULT_POLICY = ClassificationPolicy()


def is_analyzer_package(
    package_id: str,
    private_assets: str | None = None,
    include_assets: str | None = None,
) -> bool:
    return DEFAULT_POLICY.is_analyzer_package(package_id, private_assets, include_assets)
