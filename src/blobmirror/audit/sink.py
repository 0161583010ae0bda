"""Audit event sink implementations for blobmirror.

Provides append-only sinks for audit events. All sinks implement the
AuditSink protocol and tolerate concurrent appends from background tasks:
each event is written whole, never interleaved with another.

Sinks may raise AuditSinkError; AuditLog is the boundary that keeps those
errors away from storage callers.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from pathlib import Path
from typing import Protocol, runtime_checkable

from blobmirror.audit.events import AuditEvent

logger = logging.getLogger(__name__)

AUDIT_LOG_PATH_ENV = "BLOBMIRROR_AUDIT_LOG_PATH"
DEFAULT_AUDIT_LOG_PATH = "./var/audit/blobmirror.jsonl"
AUDIT_LOGGER_NAME = "blobmirror.audit"


class AuditSinkError(Exception):
    """Raised when an audit event cannot be recorded."""

    pass


@runtime_checkable
class AuditSink(Protocol):
    """Protocol for audit event sinks."""

    def record(self, event: AuditEvent) -> None:
        """Append one audit event.

        Raises:
            AuditSinkError: If the event cannot be recorded.
        """
        ...


class NullAuditSink:
    """Sink that discards every event."""

    def record(self, event: AuditEvent) -> None:
        return None


class LoggingAuditSink:
    """Sink that writes one log line per event.

    Successful attempts are logged at INFO, failures at WARNING with the
    error message and trace.
    """

    def __init__(self, logger_name: str = AUDIT_LOGGER_NAME) -> None:
        self._logger = logging.getLogger(logger_name)

    def record(self, event: AuditEvent) -> None:
        level = logging.INFO if event.succeeded else logging.WARNING
        self._logger.log(level, "%s", event.to_line())


class JsonlFileAuditSink:
    """Append-only JSONL file sink for audit events.

    Configuration:
    - File path from env BLOBMIRROR_AUDIT_LOG_PATH
      (default: ./var/audit/blobmirror.jsonl)
    - Creates parent directories if missing
    - Appends one line per event with sorted keys and minimal separators
    - Never truncates/overwrites existing content
    """

    def __init__(self, file_path: str | Path | None = None) -> None:
        """Initialize the JSONL file sink.

        Args:
            file_path: Override path for the audit log file.
                If None, reads from BLOBMIRROR_AUDIT_LOG_PATH env var,
                falling back to DEFAULT_AUDIT_LOG_PATH.
        """
        if file_path is not None:
            self._file_path = Path(file_path)
        else:
            self._file_path = Path(os.environ.get(AUDIT_LOG_PATH_ENV) or DEFAULT_AUDIT_LOG_PATH)
        self._lock = threading.Lock()

    @property
    def file_path(self) -> Path:
        """Return the configured file path."""
        return self._file_path

    def _ensure_parent_directory(self) -> None:
        parent = self._file_path.parent
        if not parent.exists():
            try:
                parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise AuditSinkError(f"Failed to create audit log directory {parent}: {e}") from e

    def record(self, event: AuditEvent) -> None:
        """Append event as a single JSON line.

        Raises:
            AuditSinkError: If serialization or file write fails.
        """
        try:
            line = json.dumps(event.to_dict(), sort_keys=True, separators=(",", ":")) + "\n"
        except (TypeError, ValueError) as e:
            raise AuditSinkError(f"Failed to serialize audit event: {e}") from e

        with self._lock:
            self._ensure_parent_directory()
            try:
                with open(self._file_path, mode="a", encoding="utf-8") as f:
                    f.write(line)
            except OSError as e:
                raise AuditSinkError(
                    f"Failed to write audit event to {self._file_path}: {e}"
                ) from e


class InMemoryAuditSink:
    """In-memory audit sink for testing (no disk writes).

    Thread-safe for concurrent background tasks.
    """

    def __init__(self) -> None:
        self._events: list[AuditEvent] = []
        self._lock = threading.Lock()

    def record(self, event: AuditEvent) -> None:
        with self._lock:
            self._events.append(event)

    @property
    def events(self) -> list[AuditEvent]:
        """Return a snapshot of all recorded events."""
        with self._lock:
            return list(self._events)

    def lines(self) -> list[str]:
        """Return the recorded events rendered with AuditEvent.to_line."""
        return [event.to_line() for event in self.events]

    def clear(self) -> None:
        """Clear all stored events."""
        with self._lock:
            self._events.clear()
