"""NuGet V3 feed client.

Two operations per package id: list published versions (flat container) and
fetch per-version metadata including dependency groups (registration index).
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

import httpx

from .credentials import CredentialSession
from .exceptions import RegistryAuthError, RegistryError
from .sources import PackageSource
from .versions import is_prerelease

logger = logging.getLogger(__name__)

PACKAGE_BASE_ADDRESS = "PackageBaseAddress/3.0.0"
REGISTRATION_TYPES = (
    "RegistrationsBaseUrl/3.6.0",
    "RegistrationsBaseUrl/3.4.0",
    "RegistrationsBaseUrl/3.0.0-rc",
    "RegistrationsBaseUrl/3.0.0-beta",
    "RegistrationsBaseUrl",
)


@dataclass
class PackageMetadata:
    """One published version as described by the registration index."""

    version: str
    description: str | None = None
    published: datetime | None = None
    listed: bool = True
    # None when the version declares no dependency groups at all;
    # "" inside the tuple is a group without a target framework
    framework_groups: tuple[str, ...] | None = None


class PackageRepository(Protocol):
    source: PackageSource

    async def list_versions(self, package_id: str) -> list[str]:
        ...

    async def get_metadata(self, package_id: str, include_prerelease: bool = False) -> list[PackageMetadata]:
        ...


def _parse_published(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def _metadata_from_entry(entry: dict) -> PackageMetadata | None:
    version = entry.get("version")
    if not version:
        return None

    published = _parse_published(entry.get("published"))
    listed = entry.get("listed", True)
    # nuget.org marks unlisted packages with a 1900 publish date
    if published is not None and published.year <= 1900:
        listed = False

    groups = [group for group in entry.get("dependencyGroups") or [] if isinstance(group, dict)]
    return PackageMetadata(
        version=version,
        description=entry.get("description"),
        published=published,
        listed=bool(listed),
        framework_groups=tuple(group.get("targetFramework") or "" for group in groups) if groups else None,
    )


def _object_list(value, source_name: str) -> list[dict]:
    """JSON array of objects; raises RegistryError for any other shape."""
    if value is None:
        return []
    if not isinstance(value, list):
        raise RegistryError(f"Malformed response from {source_name}: expected a JSON array", source_name)
    return [item for item in value if isinstance(item, dict)]


class NuGetV3Repository:
    """A single V3 package source."""

    def __init__(
        self,
        source: PackageSource,
        credentials: CredentialSession | None = None,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.source = source
        self.credentials = credentials
        self.timeout = timeout
        self.transport = transport
        self._resources: dict[str, str] | None = None
        self._resources_lock = asyncio.Lock()
        self._auth: tuple[str, str] | None = None

    async def list_versions(self, package_id: str) -> list[str]:
        """All published versions of a package; empty when the source lacks it."""
        base = await self._resource(PACKAGE_BASE_ADDRESS)
        data = await self._get_json(f"{base.rstrip('/')}/{package_id.lower()}/index.json")
        if not data:
            return []
        versions = data.get("versions") or []
        if not isinstance(versions, list):
            raise RegistryError(f"Malformed version list from {self.source.name}", self.source.name)
        return [str(v) for v in versions]

    async def get_metadata(self, package_id: str, include_prerelease: bool = False) -> list[PackageMetadata]:
        """Listed versions with their metadata, in registry order."""
        base = await self._resource(*REGISTRATION_TYPES)
        index = await self._get_json(f"{base.rstrip('/')}/{package_id.lower()}/index.json")
        if not index:
            return []

        results = []
        for page in _object_list(index.get("items"), self.source.name):
            leaves = page.get("items")
            if leaves is None and page.get("@id"):
                page_data = await self._get_json(page["@id"])
                leaves = (page_data or {}).get("items")

            for leaf in _object_list(leaves, self.source.name):
                entry = leaf.get("catalogEntry")
                if not isinstance(entry, dict):
                    continue
                metadata = _metadata_from_entry(entry)
                if metadata is None or not metadata.listed:
                    continue
                if not include_prerelease and is_prerelease(metadata.version):
                    continue
                results.append(metadata)

        return results

    async def _resource(self, *types: str) -> str:
        resources = await self._service_index()
        for resource_type in types:
            if resource_type in resources:
                return resources[resource_type]
        raise RegistryError(f"{self.source.name} does not provide {types[0]}", self.source.name)

    async def _service_index(self) -> dict[str, str]:
        async with self._resources_lock:
            if self._resources is None:
                data = await self._get_json(self.source.url)
                if not data:
                    raise RegistryError(f"Service index not found at {self.source.url}", self.source.name)
                resources: dict[str, str] = {}
                for resource in _object_list(data.get("resources"), self.source.name):
                    resource_type, resource_id = resource.get("@type"), resource.get("@id")
                    if resource_type and resource_id:
                        for type_name in [resource_type] if isinstance(resource_type, str) else resource_type:
                            resources.setdefault(type_name, resource_id)
                self._resources = resources
            return self._resources

    async def _send(self, url: str, auth: tuple[str, str] | None) -> httpx.Response:
        async with httpx.AsyncClient(
            timeout=self.timeout,
            follow_redirects=True,
            transport=self.transport,
        ) as client:
            return await client.get(url, auth=auth)

    async def _get_json(self, url: str) -> dict | None:
        """GET a JSON document; None on 404.

        Raises:
            RegistryAuthError: 401/403 with no usable credentials
            RegistryError: network, HTTP or decoding failures
        """
        try:
            response = await self._send(url, self._auth)

            if response.status_code in (401, 403):
                response = await self._authenticate(url, response.status_code)

            if response.status_code == 404:
                return None
            response.raise_for_status()
            data = response.json()

        except httpx.TimeoutException as e:
            raise RegistryError(f"Timeout fetching {url}", self.source.name) from e
        except httpx.HTTPStatusError as e:
            raise RegistryError(f"HTTP {e.response.status_code} from {self.source.name}: {url}", self.source.name) from e
        except httpx.HTTPError as e:
            raise RegistryError(f"Network error contacting {self.source.name}: {e}", self.source.name) from e
        except ValueError as e:
            raise RegistryError(f"Malformed response from {self.source.name}: {e}", self.source.name) from e

        if not isinstance(data, dict):
            raise RegistryError(f"Malformed response from {self.source.name}: expected a JSON object at {url}", self.source.name)
        return data

    async def _authenticate(self, url: str, status_code: int) -> httpx.Response:
        if self.credentials is None or self.credentials.is_failed(self.source):
            raise RegistryAuthError(f"{self.source.name} requires authentication ({status_code})", self.source.name)

        credential = self.credentials.get_credentials(self.source)
        if credential is None:
            raise RegistryAuthError(f"No credentials for {self.source.name} ({status_code})", self.source.name)

        auth = (credential.username, credential.password)
        response = await self._send(url, auth)
        if response.status_code in (401, 403):
            self.credentials.mark_failed(self.source)
            raise RegistryAuthError(f"{self.source.name} rejected credentials ({response.status_code})", self.source.name)

        self._auth = auth
        return response
