"""blobmirror storage error types.

All errors raised by backends and the replicating store derive from
ObjectStorageError, so callers can catch storage failures with one clause.
"""

from __future__ import annotations


class ObjectStorageError(Exception):
    """Base exception for object storage operations.

    Attributes:
        message: Human-readable error message.
        key: Object key associated with the operation (if applicable).
        backend: Backend target (``scheme://identity``) involved, if known.
    """

    def __init__(
        self,
        message: str,
        *,
        key: str | None = None,
        backend: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.key = key
        self.backend = backend

    def __str__(self) -> str:
        parts = [self.message]
        if self.backend:
            parts.append(f"backend={self.backend}")
        if self.key:
            parts.append(f"key={self.key}")
        return " ".join(parts)


class InvalidKeyError(ObjectStorageError):
    """Raised when a key breaks the naming contract shared by all backends.

    Always raised before any backend I/O takes place.
    """

    def __init__(
        self,
        message: str = "Invalid key",
        *,
        key: str | None = None,
        backend: str | None = None,
    ) -> None:
        super().__init__(message, key=key, backend=backend)


class ObjectNotFoundError(ObjectStorageError):
    """Raised when reading an object that does not exist."""

    def __init__(
        self,
        message: str = "Object not found",
        *,
        key: str | None = None,
        backend: str | None = None,
    ) -> None:
        super().__init__(message, key=key, backend=backend)


class StorageBackendError(ObjectStorageError):
    """Raised when the storage medium cannot complete an operation.

    Covers connectivity, permission and I/O failures, as opposed to logical
    outcomes such as a missing object.
    """

    def __init__(
        self,
        message: str = "Storage backend error",
        *,
        key: str | None = None,
        backend: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, key=key, backend=backend)
        self.cause = cause


class InvalidStoreUriError(ObjectStorageError, ValueError):
    """Raised when a store URI cannot be turned into a backend."""

    def __init__(self, message: str, *, uri: str | None = None) -> None:
        super().__init__(message)
        self.uri = uri

    def __str__(self) -> str:
        if self.uri:
            return f"{self.message} uri={self.uri}"
        return self.message
