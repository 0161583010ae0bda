"""blobmirror object storage.

Key-addressed binary object storage with pluggable backends, and a
ReplicatingStore that writes to a primary backend synchronously while
mirroring to secondary backends in the background.

Backends:
- InMemoryBackend: process-local dict (mem://name)
- FilesystemBackend: local directory tree (file:///path)
- S3Backend: AWS S3 bucket (s3://bucket/prefix/)

Environment Variables:
    BLOBMIRROR_FILESYSTEM_BASE_DIR: Default base directory for the filesystem
        backend (default: OS temp dir / blobmirror_objects)
    BLOBMIRROR_OTEL_ENABLED: Emit OpenTelemetry spans for backend operations
"""

from blobmirror.storage.backend import BlobBackend
from blobmirror.storage.errors import (
    InvalidKeyError,
    InvalidStoreUriError,
    ObjectNotFoundError,
    ObjectStorageError,
    StorageBackendError,
)
from blobmirror.storage.filesystem_store import FilesystemBackend
from blobmirror.storage.key_transforming_store import KeyTransformingBackend, prefixed
from blobmirror.storage.keys import KeyConstraint, validate_key
from blobmirror.storage.memory_store import InMemoryBackend
from blobmirror.storage.models import AccessPolicy, ensure_binary
from blobmirror.storage.replicating_store import ReplicatingStore, StoredObject
from blobmirror.storage.s3_store import S3Backend
from blobmirror.storage.uri import backend_from_uri, register_backend_factory

__all__ = [
    "AccessPolicy",
    "BlobBackend",
    "FilesystemBackend",
    "InMemoryBackend",
    "InvalidKeyError",
    "InvalidStoreUriError",
    "KeyConstraint",
    "KeyTransformingBackend",
    "ObjectNotFoundError",
    "ObjectStorageError",
    "ReplicatingStore",
    "S3Backend",
    "StorageBackendError",
    "StoredObject",
    "backend_from_uri",
    "ensure_binary",
    "prefixed",
    "register_backend_factory",
    "validate_key",
]
