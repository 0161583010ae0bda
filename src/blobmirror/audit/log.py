"""Audit log front end used by the replicating store.

AuditLog is the boundary between storage code and audit sinks: whatever a
sink raises is logged here and discarded, so recording can never change the
outcome of the operation being recorded.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager

from blobmirror.audit.events import AuditEvent, Operation
from blobmirror.audit.sink import AuditSink, NullAuditSink

logger = logging.getLogger(__name__)


class AuditLog:
    """Records audit events to a sink without ever raising."""

    def __init__(self, sink: AuditSink | None = None) -> None:
        self._sink: AuditSink = sink if sink is not None else NullAuditSink()

    @property
    def sink(self) -> AuditSink:
        return self._sink

    def record(self, event: AuditEvent) -> None:
        """Hand event to the sink, swallowing any sink failure."""
        try:
            self._sink.record(event)
        except Exception as e:
            logger.warning(
                "Dropped audit event (%s %s): %s: %s",
                event.verb,
                event.target,
                type(e).__name__,
                e,
            )

    def record_failure(
        self,
        operation: Operation,
        target: str,
        error: BaseException,
        duration_seconds: float = 0.0,
    ) -> None:
        self.record(AuditEvent.failure(operation, target, duration_seconds, error))

    @contextmanager
    def attempt(self, operation: Operation, target: str) -> Iterator[None]:
        """Time the enclosed block and record its outcome.

        Exceptions are recorded as failures and re-raised unchanged.
        """
        started = time.perf_counter()
        try:
            yield
        except Exception as e:
            self.record(AuditEvent.failure(operation, target, time.perf_counter() - started, e))
            raise
        self.record(AuditEvent.success(operation, target, time.perf_counter() - started))
