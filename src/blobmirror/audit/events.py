"""Audit events describing one attempted backend operation."""

from __future__ import annotations

import traceback as tb
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Literal

Operation = Literal["write", "copy", "delete"]

_PAST_TENSE: dict[str, str] = {
    "write": "wrote",
    "copy": "copied",
    "delete": "deleted",
}


@dataclass(frozen=True)
class AuditEvent:
    """Outcome of one attempted operation against one target.

    Attributes:
        operation: "write", "copy" or "delete".
        target: ``scheme://identity/key``, or ``"<source> -> <destination>"``
            for copies.
        succeeded: Whether the operation completed.
        duration_seconds: Elapsed wall-clock time of the attempt.
        error: Error message for failed attempts.
        error_type: Exception class name for failed attempts.
        traceback: Formatted causal trace for failed attempts.
        recorded_at: UTC timestamp at which the event was created.
    """

    operation: Operation
    target: str
    succeeded: bool
    duration_seconds: float
    error: str | None = None
    error_type: str | None = None
    traceback: str | None = None
    recorded_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def success(cls, operation: Operation, target: str, duration_seconds: float) -> AuditEvent:
        return cls(
            operation=operation,
            target=target,
            succeeded=True,
            duration_seconds=duration_seconds,
        )

    @classmethod
    def failure(
        cls,
        operation: Operation,
        target: str,
        duration_seconds: float,
        error: BaseException,
    ) -> AuditEvent:
        return cls(
            operation=operation,
            target=target,
            succeeded=False,
            duration_seconds=duration_seconds,
            error=str(error),
            error_type=type(error).__name__,
            traceback="".join(tb.format_exception(error)).rstrip(),
        )

    @property
    def verb(self) -> str:
        """Return "wrote"/"copied"/"deleted", or "failed to <operation>"."""
        if self.succeeded:
            return _PAST_TENSE[self.operation]
        return f"failed to {self.operation}"

    def to_line(self) -> str:
        """Render the event as one human-readable log entry."""
        line = f"{self.verb} {self.target} ({self.duration_seconds * 1000:.1f}ms)"
        if self.succeeded:
            return line
        line = f"{line}: {self.error_type}: {self.error}"
        if self.traceback:
            line = f"{line}\n{self.traceback}"
        return line

    def to_dict(self) -> dict[str, Any]:
        """Convert the event to a JSON-serializable dict."""
        return {
            "operation": self.operation,
            "verb": self.verb,
            "target": self.target,
            "succeeded": self.succeeded,
            "duration_ms": round(self.duration_seconds * 1000, 3),
            "error": self.error,
            "error_type": self.error_type,
            "traceback": self.traceback,
            "recorded_at": self.recorded_at.isoformat(),
        }
