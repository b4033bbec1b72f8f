"""Configuration management for the library circulation service.

Settings are read from the environment (``LIBRARY_CIRCULATION_*``) and an
optional ``.env`` file, validated with Pydantic v2, and shared through a
process-wide singleton:

1. Server metadata for the MCP handshake
2. Store location and lock behaviour
3. Authentication and circulation policy switches
4. Logging and transport
"""

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ServerConfig(BaseSettings):
    """Service configuration.

    Everything the circulation engine depends on is injected from here
    (lock timeout, hashing method) so tests can run with fast, isolated
    settings.
    """

    model_config = SettingsConfigDict(
        env_prefix="LIBRARY_CIRCULATION_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # === Server Metadata ===

    server_name: str = Field(
        default="library-circulation",
        description="MCP server name used in protocol handshake",
        pattern=r"^[a-z0-9-]+$",
    )

    server_version: str = Field(
        default="0.1.0",
        description="Server version for capability negotiation",
        pattern=r"^\d+\.\d+\.\d+(-[a-zA-Z0-9.]+)?$",
    )

    # === Store Configuration ===

    database_path: Path = Field(
        default=Path("data/library.db"),
        description="SQLite database file path",
    )

    database_url: str | None = Field(
        default=None,
        description="Full SQLAlchemy URL; overrides database_path when set",
        repr=False,
    )

    lock_timeout_seconds: float = Field(
        default=5.0,
        description="How long a transaction waits for a conflicting lock before failing",
        gt=0,
        le=300,
    )

    search_index_enabled: bool = Field(
        default=True,
        description="Use the SQLite FTS5 index for catalog search",
    )

    # === Authentication & Policy ===

    password_hash_method: str = Field(
        default="scrypt",
        description="werkzeug password hashing method (e.g. scrypt, pbkdf2:sha256)",
    )

    require_authentication: bool = Field(
        default=True,
        description="Require the member password for circulation tools",
    )

    restrict_returns_to_borrower: bool = Field(
        default=False,
        description="Only the current borrower may return a book",
    )

    read_page_size: int = Field(
        default=1500,
        description="Characters per page when reading book content",
        ge=100,
        le=100_000,
    )

    # === Transport & Logging ===

    transport: str = Field(
        default="stdio",
        description="Primary transport mechanism",
        pattern=r"^(stdio|streamable_http)$",
    )

    debug: bool = Field(
        default=False,
        description="Enable debug logging",
    )

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)",
        pattern=r"^(DEBUG|INFO|WARNING|ERROR)$",
    )

    @field_validator("database_path")
    @classmethod
    def validate_database_path(cls, v: Path) -> Path:
        """Resolve the database path; the directory is created on first connect."""
        return v.absolute()

    @field_validator("password_hash_method")
    @classmethod
    def validate_password_hash_method(cls, v: str) -> str:
        if v.split(":", 1)[0] not in {"scrypt", "pbkdf2"}:
            raise ValueError(f"Unsupported password hash method: {v}")
        return v

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        return v.upper() if isinstance(v, str) else v

    @property
    def is_development(self) -> bool:
        return self.debug or self.log_level == "DEBUG"

    @property
    def server_info(self) -> dict[str, str]:
        return {
            "name": self.server_name,
            "version": self.server_version,
            "transport": self.transport,
        }

    def get_database_url(self) -> str:
        """Get SQLAlchemy database URL."""
        if self.database_url:
            return self.database_url
        return f"sqlite:///{self.database_path}"


class _ConfigStore:
    """Internal storage for configuration singleton."""

    _instance: ServerConfig | None = None


def get_config() -> ServerConfig:
    """Get or create the global configuration instance."""
    if _ConfigStore._instance is None:  # type: ignore[reportPrivateUsage]
        _ConfigStore._instance = ServerConfig()  # type: ignore[reportPrivateUsage]
    return _ConfigStore._instance  # type: ignore[reportPrivateUsage]


def set_config(config: ServerConfig) -> None:
    """Install an explicit configuration (CLI flags, tests)."""
    _ConfigStore._instance = config  # type: ignore[reportPrivateUsage]


def reset_config() -> None:
    """Reset configuration (useful for testing)."""
    _ConfigStore._instance = None  # type: ignore[reportPrivateUsage]
