"""Logfire observability for the library circulation service."""

import logging

import logfire

from .config import ObservabilityConfig
from .decorators import trace_resource, trace_tool

logger = logging.getLogger(__name__)


def initialize_observability(config: ObservabilityConfig | None = None) -> None:
    """Configure Logfire once at process start."""
    config = config or ObservabilityConfig()

    if not config.enabled:
        logger.debug("Observability disabled via configuration")
        return

    logfire.configure(
        token=config.token or None,
        service_name=config.service_name,
        environment=config.environment,
        send_to_logfire=config.send_to_logfire,
        console=False if not config.console_output else None,
    )
    logger.info(
        "Observability initialized (environment=%s, send_to_logfire=%s)",
        config.environment,
        config.send_to_logfire,
    )


__all__ = [
    "ObservabilityConfig",
    "initialize_observability",
    "trace_resource",
    "trace_tool",
]
