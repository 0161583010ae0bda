"""Tests for blobmirror OpenTelemetry tracing.

- Tracing OFF by default, ON via BLOBMIRROR_OTEL_ENABLED=1
- Fail-closed only when BLOBMIRROR_REQUIRE_OTEL=1 and init fails
- Backend operations emit blobmirror.backend.<operation> spans
- No raw keys or filesystem paths in span attributes
- Tests use in-memory exporter (no external collector required)
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any
from unittest.mock import patch

import pytest

from blobmirror.storage.errors import ObjectNotFoundError
from blobmirror.storage.filesystem_store import FilesystemBackend
from blobmirror.storage.memory_store import InMemoryBackend
from blobmirror.storage.models import AccessPolicy
from blobmirror.storage.replicating_store import ReplicatingStore
from blobmirror.storage.tracing import key_digest

ENV_VARS = [
    "BLOBMIRROR_OTEL_ENABLED",
    "BLOBMIRROR_REQUIRE_OTEL",
    "BLOBMIRROR_OTEL_SERVICE_NAME",
    "BLOBMIRROR_OTEL_EXPORTER",
    "BLOBMIRROR_OTEL_TEST_CAPTURE",
    "BLOBMIRROR_OTEL_EXPORTER_OTLP_ENDPOINT",
]


@pytest.fixture(autouse=True)
def reset_tracing_env() -> Any:
    """Reset tracing environment and state before each test."""
    original_env = {k: os.environ.get(k) for k in ENV_VARS}

    for k in ENV_VARS:
        os.environ.pop(k, None)

    from blobmirror.observability.tracing import reset_tracing

    reset_tracing()

    yield

    for k in ENV_VARS:
        os.environ.pop(k, None)

    for k, v in original_env.items():
        if v is not None:
            os.environ[k] = v

    reset_tracing()


def _enable_capture() -> None:
    os.environ["BLOBMIRROR_OTEL_ENABLED"] = "1"
    os.environ["BLOBMIRROR_OTEL_TEST_CAPTURE"] = "1"

    from blobmirror.observability.tracing import clear_test_spans, configure_tracing

    assert configure_tracing() is True
    clear_test_spans()


def _spans(name_prefix: str = "blobmirror.backend.") -> list[Any]:
    from blobmirror.observability.tracing import get_test_spans

    return [s for s in get_test_spans() if s.name.startswith(name_prefix)]


class TestTracingConfiguration:
    """Tests for tracing configuration behavior."""

    def test_tracing_disabled_by_default(self) -> None:
        """Tracing should be OFF when BLOBMIRROR_OTEL_ENABLED is not set."""
        from blobmirror.observability.tracing import configure_tracing, get_test_spans

        result = configure_tracing()
        assert result is False, "Tracing should be disabled by default"

        assert get_test_spans() == []

    def test_tracing_enabled_with_env_var(self) -> None:
        os.environ["BLOBMIRROR_OTEL_ENABLED"] = "1"
        os.environ["BLOBMIRROR_OTEL_TEST_CAPTURE"] = "1"

        from blobmirror.observability.tracing import configure_tracing

        assert configure_tracing() is True

    def test_tracing_idempotent(self) -> None:
        os.environ["BLOBMIRROR_OTEL_ENABLED"] = "1"
        os.environ["BLOBMIRROR_OTEL_TEST_CAPTURE"] = "1"

        from blobmirror.observability.tracing import configure_tracing

        assert configure_tracing() == configure_tracing()

    def test_require_otel_fails_closed(self) -> None:
        """BLOBMIRROR_REQUIRE_OTEL=1 should fail if tracing init fails."""
        os.environ["BLOBMIRROR_OTEL_ENABLED"] = "1"
        os.environ["BLOBMIRROR_REQUIRE_OTEL"] = "1"

        from blobmirror.observability import tracing

        with patch.object(
            tracing, "TracerProvider", side_effect=Exception("Simulated init failure")
        ):
            tracing._is_configured = False
            tracing._tracer_provider = None

            with pytest.raises(tracing.TracingConfigError) as exc_info:
                tracing.configure_tracing()

        assert "configuration failed" in str(exc_info.value).lower()

    def test_init_failure_without_require_returns_false(self) -> None:
        os.environ["BLOBMIRROR_OTEL_ENABLED"] = "1"

        from blobmirror.observability import tracing

        with patch.object(
            tracing, "TracerProvider", side_effect=Exception("Simulated init failure")
        ):
            tracing._is_configured = False
            tracing._tracer_provider = None

            assert tracing.configure_tracing() is False


class TestBackendSpans:
    """Tests for spans emitted by backend operations."""

    def test_operations_emit_named_spans(self) -> None:
        _enable_capture()
        backend = InMemoryBackend("A")

        backend.write("data/file", b"CONTENT", policy=AccessPolicy.PRIVATE)
        backend.exists("data/file")
        backend.read("data/file")
        backend.delete("data/file")

        assert [s.name for s in _spans()] == [
            "blobmirror.backend.write",
            "blobmirror.backend.exists",
            "blobmirror.backend.read",
            "blobmirror.backend.delete",
        ]

    def test_span_attributes(self) -> None:
        _enable_capture()
        backend = InMemoryBackend("A")

        backend.write("data/file", b"CONTENT", policy=AccessPolicy.PRIVATE)
        backend.read("data/file")
        backend.exists("data/other")

        write_span, read_span, exists_span = _spans()
        assert write_span.attributes["storage.backend"] == "memory"
        assert write_span.attributes["blobmirror.object_key_sha256"] == key_digest("data/file")
        assert read_span.attributes["blobmirror.object_size_bytes"] == 7
        assert exists_span.attributes["blobmirror.exists_result"] is False

    def test_error_attributes(self) -> None:
        _enable_capture()

        with pytest.raises(ObjectNotFoundError):
            InMemoryBackend("A").read("missing")

        (span,) = _spans()
        assert span.attributes["error"] is True
        assert span.attributes["error.type"] == "ObjectNotFoundError"

    def test_no_raw_keys_or_paths_in_attributes(self, tmp_path: Path) -> None:
        _enable_capture()
        backend = FilesystemBackend(tmp_path)

        backend.write("secret/customer-42.pdf", b"v", policy=AccessPolicy.PRIVATE)
        backend.read("secret/customer-42.pdf")

        for span in _spans():
            for value in span.attributes.values():
                assert "customer-42" not in str(value)
                assert str(tmp_path) not in str(value)

    def test_mirror_operations_are_traced(self) -> None:
        _enable_capture()
        store = ReplicatingStore([InMemoryBackend("A"), InMemoryBackend("B")])

        store["data/file"].write("CONTENT")
        assert store.wait_for_replication(timeout=10)

        names = [s.name for s in _spans()]
        assert names.count("blobmirror.backend.write") == 2
        assert "blobmirror.backend.read" in names

    def test_no_spans_when_disabled(self) -> None:
        _enable_capture()
        os.environ.pop("BLOBMIRROR_OTEL_ENABLED")

        InMemoryBackend("A").write("k", b"v", policy=AccessPolicy.PRIVATE)

        assert _spans() == []
