"""blobmirror filesystem blob backend.

Stores each object as a plain file at ``{base_dir}/{key}`` with:
- Atomic writes (temp file in the same directory, then replace)
- Containment checks so no key resolves outside base_dir
- Access policy mapped onto file permissions
- Empty parent directories pruned after deletes

Environment Variables:
    BLOBMIRROR_FILESYSTEM_BASE_DIR: Base directory for storage
        (default: tempfile.gettempdir() / blobmirror_objects)
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
import uuid
from collections.abc import Callable, Iterator
from pathlib import Path

from blobmirror.storage.backend import DEFAULT_CHUNK_SIZE, BlobBackend
from blobmirror.storage.errors import (
    InvalidKeyError,
    ObjectNotFoundError,
    StorageBackendError,
)
from blobmirror.storage.models import AccessPolicy
from blobmirror.storage.tracing import traced_storage_operation

logger = logging.getLogger(__name__)

FILESYSTEM_BASE_DIR_ENV = "BLOBMIRROR_FILESYSTEM_BASE_DIR"

_FILE_MODES = {
    AccessPolicy.PRIVATE: 0o600,
    AccessPolicy.PUBLIC_READ: 0o644,
}


class FilesystemBackend(BlobBackend):
    """Filesystem-based blob storage implementation.

    Keys map directly onto relative paths, so ``reports/2024/q1.pdf`` is
    stored at ``{base_dir}/reports/2024/q1.pdf``.
    """

    def __init__(self, base_dir: str | Path | None = None) -> None:
        """Initialize filesystem storage.

        Args:
            base_dir: Base directory for storage. If None, uses
                BLOBMIRROR_FILESYSTEM_BASE_DIR env var or OS temp directory.
        """
        if base_dir is None:
            base_dir = os.environ.get(FILESYSTEM_BASE_DIR_ENV)

        if base_dir is None:
            base_dir = Path(tempfile.gettempdir()) / "blobmirror_objects"
        else:
            base_dir = Path(base_dir)

        self._base_dir = base_dir.resolve()
        logger.debug("FilesystemBackend initialized with base_dir=%s", self._base_dir)

    @property
    def backend_name(self) -> str:
        """Return the backend identifier."""
        return "file"

    @property
    def identity(self) -> str:
        """Return the base directory, so targets read ``file:///base/key``."""
        return self._base_dir.as_posix()

    @property
    def base_dir(self) -> Path:
        """Return the base directory path."""
        return self._base_dir

    def _path_for(self, key: str) -> Path:
        """Map key to a path, ensuring it resolves within base_dir."""
        if not key or "\x00" in key or "\\" in key:
            raise InvalidKeyError(key=key, backend=self.location)
        path = self._base_dir / key
        resolved = path.resolve()
        try:
            resolved.relative_to(self._base_dir)
        except ValueError as e:
            raise InvalidKeyError(
                message="Key resolves outside storage base directory",
                key=key,
                backend=self.location,
            ) from e
        if resolved == self._base_dir:
            raise InvalidKeyError(key=key, backend=self.location)
        return resolved

    def _backend_error(self, action: str, key: str, error: OSError) -> StorageBackendError:
        return StorageBackendError(
            message=f"Failed to {action}: {error}",
            key=key,
            backend=self.location,
            cause=error,
        )

    def probe(self) -> None:
        try:
            with os.scandir(self._base_dir) as entries:
                next(entries, None)
        except OSError as e:
            raise StorageBackendError(
                message=f"Storage directory unavailable: {e}",
                backend=self.location,
                cause=e,
            ) from e

    @traced_storage_operation("exists")
    def exists(self, key: str) -> bool:
        path = self._path_for(key)
        try:
            return path.is_file()
        except OSError as e:
            raise self._backend_error("check object", key, e) from e

    @traced_storage_operation("read")
    def read(self, key: str) -> bytes:
        path = self._path_for(key)
        try:
            return path.read_bytes()
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError):
            raise ObjectNotFoundError(key=key, backend=self.location) from None
        except OSError as e:
            raise self._backend_error("read content", key, e) from e

    def iter_chunks(self, key: str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
        path = self._path_for(key)
        try:
            handle = path.open("rb")
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError):
            raise ObjectNotFoundError(key=key, backend=self.location) from None
        except OSError as e:
            raise self._backend_error("read content", key, e) from e

        with handle:
            while True:
                try:
                    chunk = handle.read(chunk_size)
                except OSError as e:
                    raise self._backend_error("read content", key, e) from e
                if not chunk:
                    return
                yield chunk

    def _prepare_parent(self, path: Path, key: str) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise self._backend_error("create object directory", key, e) from e

    def _stage(self, path: Path, key: str, fill: Callable[[Path], object]) -> Path:
        """Create a temporary file beside path and fill it.

        A concurrent delete may prune the parent directory between its
        creation and the temporary file landing in it, so that one case is
        retried once.

        Raises:
            OSError: If fill fails; the temporary file is removed.
        """
        retried = False
        while True:
            self._prepare_parent(path, key)
            tmp_file = path.parent / f".{path.name}.{uuid.uuid4().hex}.tmp"
            try:
                fill(tmp_file)
            except FileNotFoundError:
                tmp_file.unlink(missing_ok=True)
                if retried or path.parent.is_dir():
                    raise
                logger.debug("Object directory removed during write, retrying: key=%s", key)
                retried = True
            except OSError:
                tmp_file.unlink(missing_ok=True)
                raise
            else:
                return tmp_file

    def _replace_atomically(
        self, tmp_file: Path, path: Path, key: str, policy: AccessPolicy
    ) -> None:
        try:
            os.chmod(tmp_file, _FILE_MODES[policy])
            tmp_file.replace(path)
        except OSError as e:
            tmp_file.unlink(missing_ok=True)
            raise self._backend_error("write content", key, e) from e

    @traced_storage_operation("write")
    def write(self, key: str, data: bytes, *, policy: AccessPolicy) -> None:
        path = self._path_for(key)
        try:
            tmp_file = self._stage(path, key, lambda tmp: tmp.write_bytes(data))
        except OSError as e:
            raise self._backend_error("write content", key, e) from e
        self._replace_atomically(tmp_file, path, key, policy)

        logger.debug("Stored object: base_dir=%s key=%s size=%d", self._base_dir, key, len(data))

    @traced_storage_operation("delete")
    def delete(self, key: str) -> bool:
        path = self._path_for(key)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise self._backend_error("delete object", key, e) from e

        self._prune_empty_parents(path.parent)
        logger.debug("Deleted object: base_dir=%s key=%s", self._base_dir, key)
        return True

    def _prune_empty_parents(self, directory: Path) -> None:
        """Remove empty directories between directory and base_dir."""
        while directory != self._base_dir and self._base_dir in directory.parents:
            try:
                directory.rmdir()
            except OSError:
                return
            directory = directory.parent

    def can_copy_from(self, source: BlobBackend) -> bool:
        return isinstance(source, FilesystemBackend)

    def copy_from(
        self,
        source: BlobBackend,
        source_key: str,
        key: str,
        *,
        policy: AccessPolicy,
    ) -> None:
        if not isinstance(source, FilesystemBackend):
            return super().copy_from(source, source_key, key, policy=policy)

        source_path = source._path_for(source_key)
        path = self._path_for(key)
        try:
            tmp_file = self._stage(path, key, lambda tmp: shutil.copyfile(source_path, tmp))
        except FileNotFoundError:
            raise ObjectNotFoundError(key=source_key, backend=source.location) from None
        except OSError as e:
            raise self._backend_error("copy content", key, e) from e
        self._replace_atomically(tmp_file, path, key, policy)
