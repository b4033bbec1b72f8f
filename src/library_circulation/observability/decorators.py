"""Decorators for tracing MCP tools and resources."""

import functools
from collections.abc import Callable
from datetime import datetime
from typing import Any

import logfire

from .config import ObservabilityConfig

_REDACTED = ObservabilityConfig.model_fields["redacted_fields"].default


def trace_tool(tool_name: str):
    """Decorator to trace MCP tool execution."""

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            with logfire.span(
                f"tool.execution.{tool_name}",
                tool_name=tool_name,
                tool_category=_categorize_tool(tool_name),
            ) as span:
                start_time = datetime.now()

                if args and isinstance(args[0], dict):
                    arguments = args[0]
                else:
                    arguments = kwargs.get("arguments") or {}
                _add_attributes(span, "input", arguments)

                try:
                    result = await func(*args, **kwargs)
                except Exception as e:
                    span.set_attribute("tool.success", False)
                    span.set_attribute("tool.error", str(e))
                    raise

                span.set_attribute(
                    "tool.duration_ms", (datetime.now() - start_time).total_seconds() * 1000
                )
                _add_tool_result_attributes(span, result)
                return result

        return wrapper

    return decorator


def trace_resource(resource_type: str):
    """Lightweight decorator for resource reads."""

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            with logfire.span(
                f"resource.read.{resource_type}",
                resource_type=resource_type,
            ) as span:
                _add_attributes(span, "params", kwargs)
                result = await func(*args, **kwargs)
                if isinstance(result, dict):
                    span.set_attribute("result.keys", ",".join(sorted(result)))
                return result

        return wrapper

    return decorator


def _categorize_tool(tool_name: str) -> str:
    if tool_name in {"checkout_book", "return_book", "reserve_book", "cancel_reservation"}:
        return "circulation"
    if "search" in tool_name:
        return "discovery"
    if "read" in tool_name:
        return "reading"
    if "member" in tool_name or "password" in tool_name:
        return "membership"
    return "catalog"


def _add_attributes(span, prefix: str, data: dict):
    for key, value in data.items():
        if key in _REDACTED:
            continue
        if isinstance(value, str | int | float | bool):
            span.set_attribute(f"{prefix}.{key}", value)


def _add_tool_result_attributes(span, result: Any):
    if not isinstance(result, dict):
        return
    is_error = bool(result.get("isError"))
    span.set_attribute("tool.success", not is_error)
    if is_error:
        error = result.get("error") or {}
        span.set_attribute("tool.error_kind", error.get("kind", "unknown"))
        span.set_attribute("tool.retryable", bool(error.get("retryable", False)))
