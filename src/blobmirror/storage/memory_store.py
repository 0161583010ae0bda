"""In-memory blob backend.

Keeps payloads in a process-local dict. Thread-safe, so it can serve as a
replication target for background tasks in tests and scratch stores.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator

from blobmirror.storage.backend import DEFAULT_CHUNK_SIZE, BlobBackend
from blobmirror.storage.errors import ObjectNotFoundError
from blobmirror.storage.models import AccessPolicy
from blobmirror.storage.tracing import traced_storage_operation

logger = logging.getLogger(__name__)


class InMemoryBackend(BlobBackend):
    """Dict-backed storage implementation.

    Records the access policy of every write so callers can inspect it.
    """

    def __init__(self, name: str = "default") -> None:
        self._name = name
        self._objects: dict[str, bytes] = {}
        self._policies: dict[str, AccessPolicy] = {}
        self._lock = threading.Lock()

    @property
    def backend_name(self) -> str:
        """Return the backend identifier."""
        return "memory"

    @property
    def identity(self) -> str:
        """Return the store name."""
        return self._name

    def probe(self) -> None:
        with self._lock:
            next(iter(self._objects), None)

    @traced_storage_operation("exists")
    def exists(self, key: str) -> bool:
        with self._lock:
            return key in self._objects

    @traced_storage_operation("read")
    def read(self, key: str) -> bytes:
        with self._lock:
            try:
                return self._objects[key]
            except KeyError:
                raise ObjectNotFoundError(key=key, backend=self.location) from None

    def iter_chunks(self, key: str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
        data = self.read(key)
        for offset in range(0, len(data), chunk_size):
            yield data[offset : offset + chunk_size]

    @traced_storage_operation("write")
    def write(self, key: str, data: bytes, *, policy: AccessPolicy) -> None:
        with self._lock:
            self._objects[key] = bytes(data)
            self._policies[key] = policy
        logger.debug("Stored object: backend=%s key=%s size=%d", self._name, key, len(data))

    @traced_storage_operation("delete")
    def delete(self, key: str) -> bool:
        with self._lock:
            self._policies.pop(key, None)
            return self._objects.pop(key, None) is not None

    def can_copy_from(self, source: BlobBackend) -> bool:
        return isinstance(source, InMemoryBackend)

    def copy_from(
        self,
        source: BlobBackend,
        source_key: str,
        key: str,
        *,
        policy: AccessPolicy,
    ) -> None:
        if not isinstance(source, InMemoryBackend):
            return super().copy_from(source, source_key, key, policy=policy)
        self.write(key, source.read(source_key), policy=policy)

    def keys(self) -> list[str]:
        """Return a sorted snapshot of stored keys."""
        with self._lock:
            return sorted(self._objects)

    def policy_for(self, key: str) -> AccessPolicy | None:
        """Return the access policy of the last write to key, if any."""
        with self._lock:
            return self._policies.get(key)
