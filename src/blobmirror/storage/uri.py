"""Backend construction from store URIs.

Built-in schemes:
- ``s3://bucket[/prefix/]``: S3Backend, optionally prefixed
- ``file:///abs/path``: FilesystemBackend rooted at the path
- ``mem://name``: InMemoryBackend with the given name

Further schemes can be added with register_backend_factory.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from urllib.parse import ParseResult, unquote, urlparse

from blobmirror.storage.backend import BlobBackend
from blobmirror.storage.errors import InvalidStoreUriError
from blobmirror.storage.filesystem_store import FilesystemBackend
from blobmirror.storage.key_transforming_store import prefixed
from blobmirror.storage.memory_store import InMemoryBackend
from blobmirror.storage.s3_store import S3Backend

logger = logging.getLogger(__name__)

BackendFactory = Callable[[ParseResult], BlobBackend]

_FACTORIES: dict[str, BackendFactory] = {}


def register_backend_factory(scheme: str, factory: BackendFactory) -> None:
    """Register factory for URIs with the given scheme, replacing any previous one."""
    _FACTORIES[scheme.lower()] = factory


def registered_schemes() -> list[str]:
    """Return the registered URI schemes, sorted."""
    return sorted(_FACTORIES)


def backend_from_uri(uri: str) -> BlobBackend:
    """Build a backend from a store URI.

    Raises:
        InvalidStoreUriError: If the URI is malformed or its scheme is unknown.
    """
    parsed = urlparse(uri.strip())
    if not parsed.scheme:
        raise InvalidStoreUriError("Store URI has no scheme", uri=uri)

    factory = _FACTORIES.get(parsed.scheme.lower())
    if factory is None:
        raise InvalidStoreUriError(f"Unsupported store scheme: {parsed.scheme}", uri=uri)

    try:
        backend = factory(parsed)
    except InvalidStoreUriError as e:
        if e.uri is None:
            e.uri = uri
        raise
    logger.debug("Built %s backend from %s", backend.backend_name, uri)
    return backend


def _s3_backend(parsed: ParseResult) -> BlobBackend:
    bucket_name = parsed.hostname
    if not bucket_name:
        raise InvalidStoreUriError("No bucket specified")
    return prefixed(S3Backend(bucket_name), unquote(parsed.path))


def _file_backend(parsed: ParseResult) -> BlobBackend:
    if parsed.netloc not in ("", "localhost"):
        raise InvalidStoreUriError("File URIs must not name a remote host")
    path = unquote(parsed.path)
    if not path:
        raise InvalidStoreUriError("No directory specified")
    return FilesystemBackend(path)


def _memory_backend(parsed: ParseResult) -> BlobBackend:
    return InMemoryBackend(parsed.netloc or "default")


register_backend_factory("s3", _s3_backend)
register_backend_factory("file", _file_backend)
register_backend_factory("mem", _memory_backend)
