"""blobmirror audit module - append-only records of replication attempts."""

from blobmirror.audit.events import AuditEvent
from blobmirror.audit.log import AuditLog
from blobmirror.audit.sink import (
    AuditSink,
    AuditSinkError,
    InMemoryAuditSink,
    JsonlFileAuditSink,
    LoggingAuditSink,
    NullAuditSink,
)

__all__ = [
    "AuditEvent",
    "AuditLog",
    "AuditSink",
    "AuditSinkError",
    "InMemoryAuditSink",
    "JsonlFileAuditSink",
    "LoggingAuditSink",
    "NullAuditSink",
]
