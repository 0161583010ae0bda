"""Environment configuration for blobmirror stores.

Environment Variables:
    BLOBMIRROR_BACKENDS: Comma-separated backend URIs, primary first (required)
    BLOBMIRROR_ACCESS_POLICY: "private" or "public-read" (default: "private")
    BLOBMIRROR_AUDIT_LOG: "none", "logging" or "jsonl" (default: "none")
    BLOBMIRROR_AUDIT_LOG_PATH: JSONL audit file (default: ./var/audit/blobmirror.jsonl)
    BLOBMIRROR_MAX_WORKERS: Bound on concurrent replication tasks
        (default: unset, one thread per task)

All validation failures raise ConfigurationError.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from blobmirror.audit.sink import (
    AUDIT_LOG_PATH_ENV,
    DEFAULT_AUDIT_LOG_PATH,
    AuditSink,
    JsonlFileAuditSink,
    LoggingAuditSink,
    NullAuditSink,
)
from blobmirror.storage.models import AccessPolicy
from blobmirror.storage.replicating_store import ReplicatingStore
from blobmirror.tasks import ExecutorTaskRunner, TaskRunner, ThreadTaskRunner

BACKENDS_ENV = "BLOBMIRROR_BACKENDS"
ACCESS_POLICY_ENV = "BLOBMIRROR_ACCESS_POLICY"
AUDIT_LOG_ENV = "BLOBMIRROR_AUDIT_LOG"
MAX_WORKERS_ENV = "BLOBMIRROR_MAX_WORKERS"

AuditMode = Literal["none", "logging", "jsonl"]


class ConfigurationError(Exception):
    """Raised when store configuration is invalid (fail-closed behavior)."""

    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        self.message = message
        self.errors = errors or []
        super().__init__(message)


class StoreSettings(BaseModel):
    """Settings for building a ReplicatingStore."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    backends: tuple[str, ...] = Field(..., min_length=1, description="Primary first")
    access_policy: AccessPolicy = Field(default=AccessPolicy.PRIVATE)
    audit_log: AuditMode = Field(default="none")
    audit_log_path: str = Field(default=DEFAULT_AUDIT_LOG_PATH, min_length=1)
    max_workers: int | None = Field(default=None, ge=1)

    @field_validator("backends")
    @classmethod
    def no_blank_uris(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        cleaned = tuple(uri.strip() for uri in v)
        if any(not uri for uri in cleaned):
            raise ValueError("Backend URIs cannot be empty")
        return cleaned

    @field_validator("access_policy", mode="before")
    @classmethod
    def parse_policy(cls, v: object) -> AccessPolicy:
        if v is None or isinstance(v, (str, AccessPolicy)):
            return AccessPolicy.parse(v)
        raise ValueError("access_policy must be a string")


def _split_uris(raw: str) -> tuple[str, ...]:
    return tuple(part.strip() for part in raw.split(",") if part.strip())


def _validated(values: dict[str, object]) -> StoreSettings:
    try:
        return StoreSettings(**values)
    except ValidationError as e:
        errors = [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()]
        raise ConfigurationError("Invalid store configuration", errors) from e


def load_settings(environ: Mapping[str, str] | None = None) -> StoreSettings:
    """Read StoreSettings from environment variables.

    Raises:
        ConfigurationError: If a variable is missing or invalid.
    """
    env = os.environ if environ is None else environ

    values: dict[str, object] = {"backends": _split_uris(env.get(BACKENDS_ENV, ""))}

    policy = env.get(ACCESS_POLICY_ENV, "").strip()
    if policy:
        values["access_policy"] = policy

    audit_mode = env.get(AUDIT_LOG_ENV, "").strip().lower()
    if audit_mode:
        values["audit_log"] = audit_mode

    audit_path = env.get(AUDIT_LOG_PATH_ENV, "").strip()
    if audit_path:
        values["audit_log_path"] = audit_path

    max_workers = env.get(MAX_WORKERS_ENV, "").strip()
    if max_workers:
        values["max_workers"] = max_workers

    return _validated(values)


def settings_with_overrides(
    settings: StoreSettings | None = None,
    **overrides: object,
) -> StoreSettings:
    """Return settings with non-None overrides applied and re-validated."""
    values: dict[str, object] = settings.model_dump() if settings is not None else {}
    values.update({name: value for name, value in overrides.items() if value is not None})
    return _validated(values)


def build_audit_sink(settings: StoreSettings) -> AuditSink:
    """Return the audit sink selected by settings."""
    if settings.audit_log == "logging":
        return LoggingAuditSink()
    if settings.audit_log == "jsonl":
        return JsonlFileAuditSink(settings.audit_log_path)
    return NullAuditSink()


def build_task_runner(settings: StoreSettings) -> TaskRunner:
    """Return a bounded executor runner if max_workers is set, else thread-per-task."""
    if settings.max_workers is not None:
        return ExecutorTaskRunner(max_workers=settings.max_workers)
    return ThreadTaskRunner()


def build_store(settings: StoreSettings) -> ReplicatingStore:
    """Build a ReplicatingStore from settings.

    Raises:
        InvalidStoreUriError: If a backend URI cannot be turned into a backend.
    """
    return ReplicatingStore.from_uris(
        settings.backends,
        policy=settings.access_policy,
        audit_sink=build_audit_sink(settings),
        task_runner=build_task_runner(settings),
    )
