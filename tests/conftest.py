"""Pytest configuration and fixtures for blobmirror tests.

This module provides shared backends, sinks and runners for the store tests.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Any

import pytest

from blobmirror.audit.sink import InMemoryAuditSink
from blobmirror.storage.errors import StorageBackendError
from blobmirror.storage.memory_store import InMemoryBackend
from blobmirror.storage.models import AccessPolicy
from blobmirror.tasks import ThreadTaskRunner


class ScriptedBackend(InMemoryBackend):
    """In-memory backend that can fail or block chosen operations.

    Every call is appended to ``calls`` (shared between backends when a list
    is passed in) as ``(name, operation, phase)``.
    """

    def __init__(
        self,
        name: str,
        *,
        calls: list[tuple[str, str, str]] | None = None,
        fail: set[str] | None = None,
        gate: threading.Event | None = None,
    ) -> None:
        super().__init__(name)
        self.calls = calls if calls is not None else []
        self.fail = set(fail or ())
        self.gate = gate
        self._calls_lock = threading.Lock()

    def _enter(self, operation: str) -> None:
        with self._calls_lock:
            self.calls.append((self.identity, operation, "start"))
        if self.gate is not None and operation in ("write", "copy", "delete"):
            self.gate.wait(timeout=10)
        if operation in self.fail:
            raise StorageBackendError(f"{operation} refused", backend=self.location)

    def _leave(self, operation: str) -> None:
        with self._calls_lock:
            self.calls.append((self.identity, operation, "end"))

    def operations(self) -> list[str]:
        return [op for name, op, phase in self.calls if name == self.identity and phase == "start"]

    def probe(self) -> None:
        self._enter("probe")
        super().probe()
        self._leave("probe")

    def exists(self, key: str) -> bool:
        self._enter("exists")
        result = super().exists(key)
        self._leave("exists")
        return result

    def read(self, key: str) -> bytes:
        self._enter("read")
        result = super().read(key)
        self._leave("read")
        return result

    def write(self, key: str, data: bytes, *, policy: AccessPolicy) -> None:
        self._enter("write")
        super().write(key, data, policy=policy)
        self._leave("write")

    def delete(self, key: str) -> bool:
        self._enter("delete")
        result = super().delete(key)
        self._leave("delete")
        return result

    def copy_from(self, source: Any, source_key: str, key: str, *, policy: AccessPolicy) -> None:
        self._enter("copy")
        super().copy_from(source, source_key, key, policy=policy)
        self._leave("copy")


class CountingRunner(ThreadTaskRunner):
    """Thread runner that counts spawned tasks."""

    def __init__(self) -> None:
        super().__init__()
        self.spawned = 0

    def spawn(self, task: Callable[[], None], *, name: str | None = None) -> None:
        self.spawned += 1
        super().spawn(task, name=name)


@pytest.fixture
def audit_sink() -> InMemoryAuditSink:
    """Return an in-memory audit sink."""
    return InMemoryAuditSink()


@pytest.fixture
def runner() -> Any:
    """Return a thread runner that counts spawned tasks; joined on teardown."""
    counting = CountingRunner()
    yield counting
    counting.join(timeout=10)


@pytest.fixture
def calls() -> list[tuple[str, str, str]]:
    """Return a call log shared between scripted backends."""
    return []


@pytest.fixture
def make_backend(calls: list[tuple[str, str, str]]) -> Callable[..., ScriptedBackend]:
    """Return a factory for scripted backends sharing one call log."""

    def factory(name: str, **kwargs: Any) -> ScriptedBackend:
        return ScriptedBackend(name, calls=calls, **kwargs)

    return factory
