"""Key-rewriting wrapper around another backend.

Used to namespace a shared bucket or directory, e.g. ``s3://bucket/prefix/``
stores ``report.pdf`` as ``prefix/report.pdf``.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator

from blobmirror.storage.backend import DEFAULT_CHUNK_SIZE, BlobBackend
from blobmirror.storage.models import AccessPolicy


class KeyTransformingBackend(BlobBackend):
    """Backend that rewrites every key before delegating to inner."""

    def __init__(self, inner: BlobBackend, transform: Callable[[str], str]) -> None:
        self._inner = inner
        self._transform = transform

    @property
    def inner(self) -> BlobBackend:
        return self._inner

    @property
    def backend_name(self) -> str:
        return self._inner.backend_name

    @property
    def identity(self) -> str:
        return self._inner.identity

    def describe(self, key: str) -> str:
        return self._inner.describe(self._transform(key))

    def probe(self) -> None:
        self._inner.probe()

    def exists(self, key: str) -> bool:
        return self._inner.exists(self._transform(key))

    def read(self, key: str) -> bytes:
        return self._inner.read(self._transform(key))

    def iter_chunks(self, key: str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
        return self._inner.iter_chunks(self._transform(key), chunk_size)

    def write(self, key: str, data: bytes, *, policy: AccessPolicy) -> None:
        self._inner.write(self._transform(key), data, policy=policy)

    def delete(self, key: str) -> bool:
        return self._inner.delete(self._transform(key))

    def locate(self, key: str) -> tuple[BlobBackend, str]:
        return self._inner.locate(self._transform(key))


def prefixed(inner: BlobBackend, prefix: str) -> BlobBackend:
    """Return inner with every key placed under ``prefix/``.

    Leading and trailing slashes on prefix are ignored; an empty prefix
    returns inner unchanged.
    """
    clean = prefix.strip("/")
    if not clean:
        return inner
    return KeyTransformingBackend(inner, lambda key: f"{clean}/{key}")
