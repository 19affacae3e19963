"""Tests for the NuGet V3 feed client."""

import base64

import httpx
import pytest

from cpmup.credentials import CredentialSession
from cpmup.exceptions import RegistryAuthError, RegistryError
from cpmup.registry import NuGetV3Repository
from cpmup.sources import PackageSource, SourceCredential

INDEX_URL = "https://feed.example.com/v3/index.json"
SERVICE_INDEX = {
    "version": "3.0.0",
    "resources": [
        {"@id": "https://feed.example.com/v3/flat/", "@type": "PackageBaseAddress/3.0.0"},
        {"@id": "https://feed.example.com/v3/registration/", "@type": "RegistrationsBaseUrl/3.6.0"},
    ],
}


def leaf(version, groups=None, published="2024-01-01T00:00:00Z", **extra):
    entry = {"version": version, "published": published, "description": f"Build {version}"}
    if groups is not None:
        entry["dependencyGroups"] = [{"targetFramework": g} for g in groups]
    entry.update(extra)
    return {"catalogEntry": entry}


def make_repository(routes, credentials=None):
    """Repository whose HTTP layer answers from ``routes``."""
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        route = routes.get(str(request.url))
        if route is None:
            return httpx.Response(404)
        if callable(route):
            return route(request)
        return httpx.Response(200, json=route)

    repository = NuGetV3Repository(
        PackageSource("feed", INDEX_URL),
        credentials=credentials,
        transport=httpx.MockTransport(handler),
    )
    return repository, requests


class TestNuGetV3Repository:
    """Test version listing and metadata."""

    @pytest.mark.asyncio
    async def test_list_versions(self):
        """Should list versions from the flat container."""
        repository, _ = make_repository({
            INDEX_URL: SERVICE_INDEX,
            "https://feed.example.com/v3/flat/newtonsoft.json/index.json": {"versions": ["12.0.3", "13.0.1"]},
        })

        assert await repository.list_versions("Newtonsoft.Json") == ["12.0.3", "13.0.1"]

    @pytest.mark.asyncio
    async def test_unknown_package(self):
        """Should return nothing for packages the feed lacks."""
        repository, _ = make_repository({INDEX_URL: SERVICE_INDEX})

        assert await repository.list_versions("Missing") == []
        assert await repository.get_metadata("Missing") == []

    @pytest.mark.asyncio
    async def test_service_index_fetched_once(self):
        """Should cache the service index across calls."""
        repository, requests = make_repository({
            INDEX_URL: SERVICE_INDEX,
            "https://feed.example.com/v3/flat/a/index.json": {"versions": ["1.0.0"]},
        })

        await repository.list_versions("A")
        await repository.list_versions("A")

        assert sum(1 for r in requests if str(r.url) == INDEX_URL) == 1

    @pytest.mark.asyncio
    async def test_get_metadata_inline_and_paged(self):
        """Should read inline pages and fetch pages that are not inlined."""
        repository, _ = make_repository({
            INDEX_URL: SERVICE_INDEX,
            "https://feed.example.com/v3/registration/serilog/index.json": {
                "items": [
                    {"items": [leaf("2.0.0", [".NETStandard2.0"]), leaf("3.0.0-dev", [".NETStandard2.0"])]},
                    {"@id": "https://feed.example.com/v3/registration/serilog/page2.json"},
                ],
            },
            "https://feed.example.com/v3/registration/serilog/page2.json": {
                "items": [leaf("3.1.0", ["net6.0", ""]), leaf("1.0.0")],
            },
        })

        metadata = await repository.get_metadata("Serilog")

        assert [m.version for m in metadata] == ["2.0.0", "3.1.0", "1.0.0"]
        assert metadata[1].framework_groups == ("net6.0", "")
        assert metadata[2].framework_groups is None
        assert metadata[0].description == "Build 2.0.0"
        assert metadata[0].published.year == 2024

        with_pre = await repository.get_metadata("Serilog", include_prerelease=True)
        assert "3.0.0-dev" in [m.version for m in with_pre]

    @pytest.mark.asyncio
    async def test_unlisted_versions_filtered(self):
        """Should drop unlisted versions and 1900 publish dates."""
        repository, _ = make_repository({
            INDEX_URL: SERVICE_INDEX,
            "https://feed.example.com/v3/registration/pkg/index.json": {
                "items": [{"items": [
                    leaf("1.0.0"),
                    leaf("1.1.0", published="1900-01-01T00:00:00Z"),
                    leaf("1.2.0", listed=False),
                ]}],
            },
        })

        assert [m.version for m in await repository.get_metadata("Pkg")] == ["1.0.0"]

    @pytest.mark.asyncio
    async def test_server_error(self):
        """Should wrap HTTP failures in RegistryError."""
        repository, _ = make_repository({
            INDEX_URL: SERVICE_INDEX,
            "https://feed.example.com/v3/flat/broken/index.json": lambda request: httpx.Response(500),
        })

        with pytest.raises(RegistryError) as exc_info:
            await repository.list_versions("Broken")
        assert exc_info.value.source_name == "feed"

    @pytest.mark.asyncio
    async def test_non_object_json(self):
        """Should reject JSON documents that are not objects."""
        repository, _ = make_repository({INDEX_URL: ["not", "an", "index"]})

        with pytest.raises(RegistryError):
            await repository.list_versions("Foo")

    @pytest.mark.asyncio
    async def test_malformed_registration_pages(self):
        """Should reject registration pages of the wrong shape."""
        repository, _ = make_repository({
            INDEX_URL: SERVICE_INDEX,
            "https://feed.example.com/v3/registration/foo/index.json": {"items": {"count": 1}},
            "https://feed.example.com/v3/flat/foo/index.json": {"versions": "1.0.0"},
        })

        with pytest.raises(RegistryError):
            await repository.get_metadata("Foo")
        with pytest.raises(RegistryError):
            await repository.list_versions("Foo")

    @pytest.mark.asyncio
    async def test_missing_resource(self):
        """Should fail when the feed lacks a required resource."""
        repository, _ = make_repository({INDEX_URL: {"resources": []}})

        with pytest.raises(RegistryError):
            await repository.list_versions("Anything")


class TestAuthentication:
    """Test credential use on 401/403."""

    @staticmethod
    def protected(request: httpx.Request) -> httpx.Response:
        if request.headers.get("Authorization"):
            if request.headers["Authorization"] == "Basic " + base64.b64encode(b"ci:token").decode():
                return httpx.Response(200, json=SERVICE_INDEX)
            return httpx.Response(403)
        return httpx.Response(401)

    @pytest.mark.asyncio
    async def test_retries_with_credentials(self):
        """Should retry with credentials after a 401."""

        class Provider:
            def get_credentials(self, source_name, source_url):
                return SourceCredential("ci", "token")

        repository, requests = make_repository(
            {
                INDEX_URL: self.protected,
                "https://feed.example.com/v3/flat/a/index.json": {"versions": ["1.0.0"]},
            },
            credentials=CredentialSession([Provider()]),
        )

        assert await repository.list_versions("A") == ["1.0.0"]
        assert requests[-1].headers.get("Authorization")

    @pytest.mark.asyncio
    async def test_rejected_credentials_marked_failed(self):
        """Should give up on a source that rejects credentials."""

        class Provider:
            def get_credentials(self, source_name, source_url):
                return SourceCredential("ci", "wrong")

        session = CredentialSession([Provider()])
        repository, _ = make_repository({INDEX_URL: self.protected}, credentials=session)

        with pytest.raises(RegistryAuthError):
            await repository.list_versions("A")
        assert session.is_failed(repository.source)

    @pytest.mark.asyncio
    async def test_no_credentials(self):
        """Should raise RegistryAuthError without a credential session."""
        repository, _ = make_repository({INDEX_URL: self.protected})

        with pytest.raises(RegistryAuthError):
            await repository.list_versions("A")
