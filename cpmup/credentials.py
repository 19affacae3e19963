"""Credentials for authenticated package sources.

The registry client asks a ``CredentialSession`` for credentials only after a
source answers 401/403. The session is created once per run, remembers what
each provider returned, and remembers sources that still failed with
credentials so they are not retried for every package.
"""

import logging
import os
from collections.abc import Mapping
from typing import Protocol

from .sources import NuGetConfig, PackageSource, SourceCredential

logger = logging.getLogger(__name__)

ENV_PREFIX = "NuGetPackageSourceCredentials_"


class CredentialProvider(Protocol):
    def get_credentials(self, source_name: str, source_url: str) -> SourceCredential | None:
        ...


class NuGetConfigCredentialProvider:
    """Clear-text ``packageSourceCredentials`` from nuget.config."""

    def __init__(self, config: NuGetConfig):
        self.config = config

    def get_credentials(self, source_name: str, source_url: str) -> SourceCredential | None:
        return self.config.credentials.get(source_name.lower())


class EnvironmentCredentialProvider:
    """``NuGetPackageSourceCredentials_<name>=Username=u;Password=p``."""

    def __init__(self, environ: Mapping[str, str] | None = None):
        self.environ = os.environ if environ is None else environ

    def get_credentials(self, source_name: str, source_url: str) -> SourceCredential | None:
        candidates = {f"{ENV_PREFIX}{name}".lower() for name in (source_name, source_name.replace(" ", "_"))}
        for key, raw in self.environ.items():
            if key.lower() in candidates:
                return _parse_env_credential(raw)
        return None


def _parse_env_credential(raw: str) -> SourceCredential | None:
    values = {}
    for part in raw.split(";"):
        if "=" in part:
            key, value = part.split("=", 1)
            values[key.strip().lower()] = value.strip()
    username, password = values.get("username"), values.get("password")
    if username and password:
        return SourceCredential(username, password)
    return None


class CredentialSession:
    """Per-run credential state shared by all registry requests."""

    def __init__(self, providers: list[CredentialProvider] | None = None):
        self.providers = list(providers or [])
        self._cache: dict[str, SourceCredential | None] = {}
        self._failed: set[str] = set()

    @classmethod
    def from_config(cls, config: NuGetConfig) -> "CredentialSession":
        return cls([NuGetConfigCredentialProvider(config), EnvironmentCredentialProvider()])

    def get_credentials(self, source: PackageSource) -> SourceCredential | None:
        key = source.name.lower()
        if key in self._failed:
            return None
        if key not in self._cache:
            self._cache[key] = self._lookup(source)
        return self._cache[key]

    def _lookup(self, source: PackageSource) -> SourceCredential | None:
        for provider in self.providers:
            credential = provider.get_credentials(source.name, source.url)
            if credential is not None:
                logger.debug("Using credentials from %s for %s", type(provider).__name__, source.name)
                return credential
        logger.debug("No credentials available for %s", source.name)
        return None

    def mark_failed(self, source: PackageSource) -> None:
        """Stop offering credentials for a source that rejected them."""
        self._failed.add(source.name.lower())

    def is_failed(self, source: PackageSource) -> bool:
        return source.name.lower() in self._failed

    def clear(self) -> None:
        self._cache.clear()
        self._failed.clear()
