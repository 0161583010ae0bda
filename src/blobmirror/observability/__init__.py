"""blobmirror observability module.

Provides OpenTelemetry tracing configuration for backend operations.
"""

from blobmirror.observability.tracing import configure_tracing

__all__ = ["configure_tracing"]
