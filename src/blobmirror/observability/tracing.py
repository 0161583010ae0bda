"""OpenTelemetry tracing configuration for blobmirror.

Environment Variables:
    BLOBMIRROR_OTEL_ENABLED: Set to "1" to enable tracing (default: disabled)
    BLOBMIRROR_REQUIRE_OTEL: Set to "1" to fail if tracing cannot initialize
    BLOBMIRROR_OTEL_SERVICE_NAME: Service name for spans (default: "blobmirror")
    BLOBMIRROR_OTEL_EXPORTER: "otlp" or "console" (default: "otlp")
    BLOBMIRROR_OTEL_EXPORTER_OTLP_ENDPOINT: OTLP/HTTP endpoint URL (optional)
    BLOBMIRROR_OTEL_TEST_CAPTURE: Set to "1" to use in-memory exporter for tests

The OTLP exporter needs the ``otlp`` extra
(opentelemetry-exporter-otlp-proto-http).
"""

from __future__ import annotations

import logging
import os
from typing import Any

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import ReadableSpan, TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    ConsoleSpanExporter,
    SimpleSpanProcessor,
)
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

logger = logging.getLogger(__name__)

_tracer_provider: TracerProvider | None = None
_is_configured: bool = False
_test_exporter: InMemorySpanExporter | None = None


class TracingConfigError(Exception):
    """Raised when tracing configuration fails and BLOBMIRROR_REQUIRE_OTEL=1."""

    pass


def _get_env_bool(key: str, default: bool = False) -> bool:
    """Get boolean from environment variable."""
    val = os.environ.get(key, "").strip().lower()
    if val in ("1", "true", "yes"):
        return True
    if val in ("0", "false", "no", ""):
        return default
    return default


def _get_env_str(key: str, default: str = "") -> str:
    """Get string from environment variable."""
    return os.environ.get(key, default).strip()


def _create_otlp_exporter(endpoint: str | None) -> Any:
    """Create the OTLP/HTTP exporter (optional dependency)."""
    from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter

    kwargs: dict[str, Any] = {}
    if endpoint:
        kwargs["endpoint"] = endpoint
    return OTLPSpanExporter(**kwargs)


def configure_tracing() -> bool:
    """Configure OpenTelemetry tracing for blobmirror.

    Idempotent - safe to call multiple times.

    Returns:
        True if tracing is enabled and configured, False otherwise.

    Raises:
        TracingConfigError: If BLOBMIRROR_REQUIRE_OTEL=1 and configuration fails.
    """
    global _tracer_provider, _is_configured, _test_exporter

    enabled = _get_env_bool("BLOBMIRROR_OTEL_ENABLED", False)
    require_otel = _get_env_bool("BLOBMIRROR_REQUIRE_OTEL", False)
    test_capture = _get_env_bool("BLOBMIRROR_OTEL_TEST_CAPTURE", False)

    if not enabled:
        _is_configured = True
        logger.debug("OpenTelemetry tracing disabled (BLOBMIRROR_OTEL_ENABLED not set)")
        return False

    # The global provider cannot be replaced once set, so reuse the capture
    # exporter across reconfiguration in tests.
    if _test_exporter is not None and test_capture:
        return True

    if _is_configured and _tracer_provider is not None:
        return True

    _is_configured = True

    try:
        service_name = _get_env_str("BLOBMIRROR_OTEL_SERVICE_NAME", "blobmirror")
        exporter_type = _get_env_str("BLOBMIRROR_OTEL_EXPORTER", "otlp")
        endpoint = _get_env_str("BLOBMIRROR_OTEL_EXPORTER_OTLP_ENDPOINT", "")

        provider = TracerProvider(resource=Resource.create({"service.name": service_name}))

        if test_capture:
            _test_exporter = InMemorySpanExporter()
            provider.add_span_processor(SimpleSpanProcessor(_test_exporter))
        elif exporter_type == "console":
            provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
        else:
            provider.add_span_processor(BatchSpanProcessor(_create_otlp_exporter(endpoint or None)))

        trace.set_tracer_provider(provider)
        _tracer_provider = provider

        logger.info(
            "OpenTelemetry tracing configured: service=%s, exporter=%s",
            service_name,
            exporter_type if not test_capture else "in-memory",
        )
        return True

    except Exception as e:
        logger.error("Failed to configure OpenTelemetry tracing: %s", e)
        if require_otel:
            raise TracingConfigError(
                f"OpenTelemetry tracing required but configuration failed: {e}"
            ) from e
        return False


def get_test_spans() -> list[ReadableSpan]:
    """Get captured spans from the in-memory exporter (for testing)."""
    if _test_exporter is not None:
        return list(_test_exporter.get_finished_spans())
    return []


def clear_test_spans() -> None:
    """Clear captured spans from the in-memory exporter (for testing)."""
    if _test_exporter is not None:
        _test_exporter.clear()


def reset_tracing() -> None:
    """Reset tracing configuration (for testing).

    The TracerProvider cannot be replaced once set, so the capture exporter
    is kept and only its spans are cleared.
    """
    global _is_configured

    clear_test_spans()
    _is_configured = False
