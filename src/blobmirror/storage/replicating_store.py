"""Replicating blob store over an ordered list of backends.

The first backend is the primary: it alone answers exists/read, and writes
and deletes reach it synchronously on the caller's path. Every other backend
is a secondary that receives the same operation from a background task,
best-effort, once the primary has finished.

Callers see only the primary's outcome. Secondary failures are visible only
in the audit log:

    wrote s3://primary/data/file (12.0ms)
    copied s3://primary/data/file -> s3://mirror/data/file (30.5ms)
    failed to copy s3://primary/data/file -> file:///backup/data/file (0.4ms): ...
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from typing import Any

from blobmirror.audit.log import AuditLog
from blobmirror.audit.sink import AuditSink
from blobmirror.storage.backend import BlobBackend
from blobmirror.storage.errors import ObjectNotFoundError, ObjectStorageError
from blobmirror.storage.keys import DEFAULT_KEY_CONSTRAINT, KeyConstraint
from blobmirror.storage.models import AccessPolicy, Payload, ensure_binary
from blobmirror.storage.uri import backend_from_uri
from blobmirror.tasks import TaskRunner, ThreadTaskRunner

logger = logging.getLogger(__name__)

ChunkCallback = Callable[[bytes], Any]


class StoredObject:
    """Handle on one key across every copy held by a ReplicatingStore.

    Created fresh by each lookup and never cached. Instances share the
    store's backends, audit log and task runner.
    """

    def __init__(
        self,
        key: str,
        copies: Sequence[BlobBackend],
        *,
        policy: AccessPolicy,
        audit: AuditLog,
        task_runner: TaskRunner,
    ) -> None:
        self._key = key
        self._copies = tuple(copies)
        self._policy = policy
        self._audit = audit
        self._task_runner = task_runner

    def __repr__(self) -> str:
        return f"StoredObject({self._key!r}, primary={self.primary.location!r})"

    @property
    def key(self) -> str:
        return self._key

    @property
    def primary(self) -> BlobBackend:
        return self._copies[0]

    @property
    def secondaries(self) -> tuple[BlobBackend, ...]:
        return self._copies[1:]

    def exists(self) -> bool:
        """Return whether the primary holds the object."""
        return self.primary.exists(self._key)

    def read(self, on_chunk: ChunkCallback | None = None) -> bytes | None:
        """Read the object from the primary.

        Args:
            on_chunk: If given, called with each chunk of the payload in
                order instead of returning the payload.

        Returns:
            The payload, or None if the object is absent or was streamed.
        """
        if on_chunk is not None:
            self.stream(on_chunk)
            return None
        if not self.primary.exists(self._key):
            return None
        try:
            return self.primary.read(self._key)
        except ObjectNotFoundError:
            logger.debug("Object vanished before it could be read: %s", self._key)
        return None

    def stream(self, on_chunk: ChunkCallback) -> bool:
        """Pass each chunk of the primary copy to on_chunk, in order.

        Returns:
            True once every chunk was delivered, False if the object is
            absent or disappears before it is fully read.
        """
        if not self.primary.exists(self._key):
            return False
        try:
            for chunk in self.primary.iter_chunks(self._key):
                on_chunk(chunk)
        except ObjectNotFoundError:
            logger.debug("Object vanished before it could be read: %s", self._key)
            return False
        return True

    def write(self, payload: Payload) -> None:
        """Write payload to the primary, then mirror it to every secondary.

        Returns as soon as the primary write completes.

        Raises:
            TypeError: If payload is neither bytes-like nor text.
            ObjectStorageError: If the primary write fails; nothing is mirrored.
        """
        data = ensure_binary(payload)
        with self._audit.attempt("write", self.primary.describe(self._key)):
            self.primary.write(self._key, data, policy=self._policy)

        for index, secondary in enumerate(self.secondaries, start=1):
            self._task_runner.spawn(
                lambda secondary=secondary: self._mirror_write(secondary, data),
                name=f"blobmirror-copy-{index}",
            )

    def delete(self) -> bool:
        """Delete the object from the primary, then from every secondary.

        Returns:
            False if the primary did not hold the object (nothing is
            dispatched), True once the primary copy is deleted.

        Raises:
            ObjectStorageError: If the primary check or delete fails.
        """
        if not self.primary.exists(self._key):
            return False

        with self._audit.attempt("delete", self.primary.describe(self._key)):
            self.primary.delete(self._key)

        for index, secondary in enumerate(self.secondaries, start=1):
            self._task_runner.spawn(
                lambda secondary=secondary: self._mirror_delete(secondary),
                name=f"blobmirror-delete-{index}",
            )
        return True

    def _mirror_write(self, secondary: BlobBackend, data: bytes) -> None:
        target = f"{self.primary.describe(self._key)} -> {secondary.describe(self._key)}"
        try:
            with self._audit.attempt("copy", target):
                source, source_key = self.primary.locate(self._key)
                destination, destination_key = secondary.locate(self._key)
                if destination.can_copy_from(source):
                    destination.copy_from(
                        source,
                        source_key,
                        destination_key,
                        policy=self._policy,
                    )
                else:
                    secondary.write(self._key, data, policy=self._policy)
        except ObjectStorageError:
            return

    def _mirror_delete(self, secondary: BlobBackend) -> None:
        target = secondary.describe(self._key)
        try:
            present = secondary.exists(self._key)
        except ObjectStorageError as e:
            self._audit.record_failure("delete", target, e)
            return
        if not present:
            return
        try:
            with self._audit.attempt("delete", target):
                secondary.delete(self._key)
        except ObjectStorageError:
            return


class ReplicatingStore:
    """Blob store writing to a primary backend and mirroring to secondaries.

    Args:
        backends: Ordered backends; the first is the primary.
        policy: Access policy applied to every write on every backend.
        audit_sink: Destination for audit events (default: discard).
        task_runner: Runner for secondary operations (default: a new
            ThreadTaskRunner, one thread per task).
        key_constraint: Key validation (default: KeyConstraint()).

    Raises:
        ValueError: If backends is empty.
    """

    def __init__(
        self,
        backends: Iterable[BlobBackend],
        *,
        policy: AccessPolicy = AccessPolicy.PRIVATE,
        audit_sink: AuditSink | None = None,
        task_runner: TaskRunner | None = None,
        key_constraint: KeyConstraint | None = None,
    ) -> None:
        self._backends = tuple(backends)
        if not self._backends:
            raise ValueError("ReplicatingStore needs at least one backend")
        self._policy = AccessPolicy.parse(policy)
        self._audit = AuditLog(audit_sink)
        self._task_runner: TaskRunner = task_runner or ThreadTaskRunner()
        self._key_constraint = key_constraint or DEFAULT_KEY_CONSTRAINT

    @classmethod
    def from_uris(cls, uris: Iterable[str], **kwargs: Any) -> ReplicatingStore:
        """Build a store from backend URIs, primary first.

        Raises:
            InvalidStoreUriError: If any URI cannot be turned into a backend.
        """
        return cls([backend_from_uri(uri) for uri in uris], **kwargs)

    def __repr__(self) -> str:
        locations = ", ".join(backend.location for backend in self._backends)
        return f"ReplicatingStore([{locations}], policy={self._policy.value!r})"

    @property
    def backends(self) -> tuple[BlobBackend, ...]:
        return self._backends

    @property
    def primary(self) -> BlobBackend:
        return self._backends[0]

    @property
    def secondaries(self) -> tuple[BlobBackend, ...]:
        return self._backends[1:]

    @property
    def policy(self) -> AccessPolicy:
        return self._policy

    @property
    def audit_log(self) -> AuditLog:
        return self._audit

    @property
    def task_runner(self) -> TaskRunner:
        return self._task_runner

    def available(self) -> bool:
        """Return True if the primary backend answers a probe."""
        try:
            self.primary.probe()
        except ObjectStorageError as e:
            logger.info("Primary backend %s unavailable: %s", self.primary.location, e)
            return False
        return True

    def resolve(self, key: str) -> StoredObject:
        """Return the handle for key.

        Raises:
            InvalidKeyError: If key breaks the naming contract.
        """
        self._key_constraint.validate(key)
        return StoredObject(
            key,
            self._backends,
            policy=self._policy,
            audit=self._audit,
            task_runner=self._task_runner,
        )

    def __getitem__(self, key: str) -> StoredObject:
        return self.resolve(key)

    def wait_for_replication(self, timeout: float | None = None) -> bool:
        """Block until no background task is in flight.

        Returns:
            True if every task finished, False if timeout expired first.
        """
        return self._task_runner.join(timeout)

    def close(self) -> None:
        """Wait for in-flight replication and release the task runner."""
        self._task_runner.shutdown(wait=True)
