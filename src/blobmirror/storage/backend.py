"""blobmirror backend interface definition.

Provides the BlobBackend base class that every physical storage medium
implements. A backend handles single objects by key; replication across
backends is the job of ReplicatingStore.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterator

from blobmirror.storage.models import AccessPolicy

DEFAULT_CHUNK_SIZE = 64 * 1024


class BlobBackend(ABC):
    """Abstract base class for blob storage backends.

    Implementations:
    - InMemoryBackend: process-local dict (tests, scratch stores)
    - FilesystemBackend: directory tree on local disk
    - S3Backend: AWS S3 bucket via boto3
    - KeyTransformingBackend: key-rewriting wrapper around another backend

    All medium failures must surface as StorageBackendError. Payloads are
    opaque bytes; backends never apply a text encoding.
    """

    @property
    @abstractmethod
    def backend_name(self) -> str:
        """Return the backend scheme (e.g., "s3", "file", "memory")."""
        ...

    @property
    @abstractmethod
    def identity(self) -> str:
        """Return the human-readable backend identity (e.g., a bucket name)."""
        ...

    @property
    def location(self) -> str:
        """Return the ``scheme://identity`` string naming this backend."""
        return f"{self.backend_name}://{self.identity}"

    def describe(self, key: str) -> str:
        """Return the ``scheme://identity/key`` target string for logs."""
        return f"{self.location}/{key}"

    @abstractmethod
    def probe(self) -> None:
        """Check connectivity by listing zero or one objects.

        Raises:
            StorageBackendError: If the medium cannot be reached.
        """
        ...

    @abstractmethod
    def exists(self, key: str) -> bool:
        """Return True if an object is stored under key.

        Raises:
            StorageBackendError: If the backend cannot answer.
        """
        ...

    @abstractmethod
    def read(self, key: str) -> bytes:
        """Return the full payload stored under key.

        Raises:
            ObjectNotFoundError: If nothing is stored under key.
            StorageBackendError: If the backend cannot complete the read.
        """
        ...

    @abstractmethod
    def iter_chunks(self, key: str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
        """Yield the payload stored under key in chunks.

        Raises:
            ObjectNotFoundError: If nothing is stored under key.
            StorageBackendError: If the backend cannot complete the read.
        """
        ...

    @abstractmethod
    def write(self, key: str, data: bytes, *, policy: AccessPolicy) -> None:
        """Store data under key, replacing any existing object.

        Raises:
            StorageBackendError: If the backend cannot complete the write.
        """
        ...

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Delete the object under key.

        Returns:
            True if an object was deleted, False if there was none.

        Raises:
            StorageBackendError: If the backend cannot complete the deletion.
        """
        ...

    def locate(self, key: str) -> tuple[BlobBackend, str]:
        """Return the physical backend and key that actually hold key."""
        return self, key

    def can_copy_from(self, source: BlobBackend) -> bool:
        """Return True if copy_from supports source natively."""
        return False

    def copy_from(
        self,
        source: BlobBackend,
        source_key: str,
        key: str,
        *,
        policy: AccessPolicy,
    ) -> None:
        """Copy source_key on source to key on this backend.

        Only called when can_copy_from(source) is True; both arguments are
        physical (see locate).
        """
        raise NotImplementedError(
            f"{type(self).__name__} cannot copy from {type(source).__name__}"
        )
