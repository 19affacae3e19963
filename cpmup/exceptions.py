"""Exception hierarchy for cpmup.

Every error that aborts a whole operation derives from CpmError, so the CLI
and the web API can map them to an exit code or HTTP status in one place.
"""


class CpmError(Exception):
    """Base error."""

    code: str = "UNKNOWN"

    def __init__(self, message: str) -> None:
        super().__init__(message)


class ConfigError(CpmError):
    """nuget.config is unreadable or invalid."""

    code = "CONFIG_ERROR"


class ManifestNotFoundError(CpmError):
    """The central manifest does not exist."""

    code = "MANIFEST_NOT_FOUND"


class ManifestParseError(CpmError):
    """The central manifest is not well-formed XML."""

    code = "MANIFEST_PARSE_ERROR"


class MigrationError(CpmError):
    """Migration cannot start (no projects, manifest already present)."""

    code = "MIGRATION_ERROR"


class RegistryError(CpmError):
    """A package source failed to answer."""

    code = "REGISTRY_ERROR"

    def __init__(self, message: str, source_name: str | None = None) -> None:
        super().__init__(message)
        self.source_name = source_name


class RegistryAuthError(RegistryError):
    """A package source rejected our credentials (or we had none)."""

    code = "REGISTRY_AUTH_ERROR"
