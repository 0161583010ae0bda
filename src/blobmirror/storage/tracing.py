"""OpenTelemetry tracing for backend operations.

Span attributes never carry raw keys or filesystem paths: keys are exported
as a SHA256 digest and backends by name only.
"""

from __future__ import annotations

import functools
import hashlib
import logging
import os
from collections.abc import Callable
from typing import Any, TypeVar, cast

from opentelemetry import trace

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

OTEL_ENABLED_ENV = "BLOBMIRROR_OTEL_ENABLED"


def _get_env_bool(key: str, default: bool = False) -> bool:
    """Get boolean from environment variable."""
    val = os.environ.get(key, "").strip().lower()
    if val in ("1", "true", "yes"):
        return True
    return default


def _is_otel_enabled() -> bool:
    """Check if OpenTelemetry tracing is enabled."""
    return _get_env_bool(OTEL_ENABLED_ENV, False)


def key_digest(key: str) -> str:
    """Return the SHA256 hex digest used to correlate keys in spans."""
    return hashlib.sha256(key.encode("utf-8")).hexdigest()


def traced_storage_operation(operation: str) -> Callable[[F], F]:
    """Decorator to trace a backend method taking ``(self, key, ...)``.

    Args:
        operation: Operation name (e.g., "write", "read", "delete").

    Returns:
        Decorated function that emits spans when tracing is enabled.
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(self: Any, key: str, *args: Any, **kwargs: Any) -> Any:
            if not _is_otel_enabled():
                return func(self, key, *args, **kwargs)

            tracer = trace.get_tracer("blobmirror.backend")
            with tracer.start_as_current_span(f"blobmirror.backend.{operation}") as span:
                span.set_attribute("storage.backend", getattr(self, "backend_name", "unknown"))
                span.set_attribute("blobmirror.object_key_sha256", key_digest(key))

                try:
                    result = func(self, key, *args, **kwargs)
                except Exception as e:
                    span.set_attribute("error", True)
                    span.set_attribute("error.type", type(e).__name__)
                    raise

                _add_result_attributes(span, result, operation)
                return result

        return cast(F, wrapper)

    return decorator


def _add_result_attributes(span: Any, result: Any, operation: str) -> None:
    """Add safe result attributes (sizes and booleans only)."""
    try:
        if isinstance(result, bool):
            span.set_attribute(f"blobmirror.{operation}_result", result)
        elif isinstance(result, bytes):
            span.set_attribute("blobmirror.object_size_bytes", len(result))
    except Exception as e:
        logger.debug("Failed to add result attributes to span: %s", e)
