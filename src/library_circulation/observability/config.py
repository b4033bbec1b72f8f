"""Configuration for Logfire observability."""

import os

from pydantic import BaseModel, Field


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


class ObservabilityConfig(BaseModel):
    """Configuration for Logfire observability."""

    token: str = Field(default_factory=lambda: os.getenv("LOGFIRE_TOKEN", ""), repr=False)
    service_name: str = "library-circulation"
    environment: str = Field(default_factory=lambda: os.getenv("ENVIRONMENT", "development"))

    enabled: bool = Field(default_factory=lambda: _env_flag("LOGFIRE_ENABLED", "true"))
    console_output: bool = Field(default_factory=lambda: _env_flag("LOGFIRE_CONSOLE", "false"))
    # Without a token nothing can be sent, so sending is opt-in
    send_to_logfire: bool = Field(default_factory=lambda: _env_flag("LOGFIRE_SEND", "false"))

    # Span attributes never carry these argument names
    redacted_fields: frozenset[str] = frozenset({"password", "new_password"})
