"""Tests for the blobmirror filesystem backend.

Covers:
- Roundtrip: write then read returns identical bytes
- Streaming reads in chunks
- Delete returns whether something was deleted and prunes empty directories
- Keys cannot escape the base directory
- Access policy maps onto file modes
- Native copies between filesystem backends
"""

from __future__ import annotations

import os
import stat
from pathlib import Path
from typing import Any

import pytest

from blobmirror.storage.errors import (
    InvalidKeyError,
    ObjectNotFoundError,
    StorageBackendError,
)
from blobmirror.storage.filesystem_store import FilesystemBackend
from blobmirror.storage.memory_store import InMemoryBackend
from blobmirror.storage.models import AccessPolicy

PRIVATE = AccessPolicy.PRIVATE


@pytest.fixture
def store(tmp_path: Path) -> FilesystemBackend:
    """Create a FilesystemBackend rooted in a temp directory."""
    return FilesystemBackend(base_dir=tmp_path)


class TestRoundtrip:
    """Tests for basic write/read roundtrip functionality."""

    def test_write_then_read_returns_identical_bytes(self, store: FilesystemBackend) -> None:
        data = b"Hello, World! This is test content."

        store.write("test/document.pdf", data, policy=PRIVATE)

        assert store.read("test/document.pdf") == data
        assert store.exists("test/document.pdf")

    def test_object_stored_at_key_path(self, store: FilesystemBackend, tmp_path: Path) -> None:
        store.write("a/b/c.txt", b"abc", policy=PRIVATE)

        assert (tmp_path / "a" / "b" / "c.txt").read_bytes() == b"abc"

    def test_empty_content(self, store: FilesystemBackend) -> None:
        store.write("test/empty.bin", b"", policy=PRIVATE)

        assert store.exists("test/empty.bin")
        assert store.read("test/empty.bin") == b""

    def test_large_content(self, store: FilesystemBackend) -> None:
        data = os.urandom(64 * 1024)

        store.write("test/large.bin", data, policy=PRIVATE)

        assert store.read("test/large.bin") == data

    def test_binary_content(self, store: FilesystemBackend) -> None:
        data = bytes(range(256))

        store.write("test/binary.bin", data, policy=PRIVATE)

        assert store.read("test/binary.bin") == data

    def test_overwrite_replaces_content(self, store: FilesystemBackend) -> None:
        store.write("k", b"first", policy=PRIVATE)
        store.write("k", b"second", policy=PRIVATE)

        assert store.read("k") == b"second"

    def test_no_temp_files_left_behind(self, store: FilesystemBackend, tmp_path: Path) -> None:
        store.write("dir/k", b"v", policy=PRIVATE)

        assert [p.name for p in (tmp_path / "dir").iterdir()] == ["k"]

    def test_iter_chunks(self, store: FilesystemBackend) -> None:
        data = b"0123456789" * 10
        store.write("chunks", data, policy=PRIVATE)

        chunks = list(store.iter_chunks("chunks", chunk_size=30))

        assert [len(c) for c in chunks] == [30, 30, 30, 10]
        assert b"".join(chunks) == data


class TestMissingObjects:
    """Tests for absent keys."""

    def test_exists_false_for_missing(self, store: FilesystemBackend) -> None:
        assert store.exists("nonexistent/key.txt") is False

    def test_read_missing_raises_not_found(self, store: FilesystemBackend) -> None:
        with pytest.raises(ObjectNotFoundError) as exc_info:
            store.read("nonexistent/key.txt")

        assert exc_info.value.key == "nonexistent/key.txt"

    def test_iter_chunks_missing_raises_not_found(self, store: FilesystemBackend) -> None:
        with pytest.raises(ObjectNotFoundError):
            list(store.iter_chunks("nonexistent"))

    def test_directory_is_not_an_object(self, store: FilesystemBackend) -> None:
        store.write("dir/file", b"v", policy=PRIVATE)

        assert store.exists("dir") is False
        with pytest.raises(ObjectNotFoundError):
            store.read("dir")


class TestDelete:
    """Tests for deletion."""

    def test_delete_existing_returns_true(self, store: FilesystemBackend) -> None:
        store.write("k", b"v", policy=PRIVATE)

        assert store.delete("k") is True
        assert store.exists("k") is False

    def test_delete_missing_returns_false(self, store: FilesystemBackend) -> None:
        assert store.delete("never/written") is False

    def test_delete_prunes_empty_directories(
        self, store: FilesystemBackend, tmp_path: Path
    ) -> None:
        store.write("a/b/c", b"v", policy=PRIVATE)
        store.write("a/keep", b"v", policy=PRIVATE)

        store.delete("a/b/c")

        assert not (tmp_path / "a" / "b").exists()
        assert (tmp_path / "a" / "keep").exists()
        assert tmp_path.exists()


class TestContainment:
    """Tests for keys escaping the base directory."""

    @pytest.mark.parametrize(
        "invalid_key",
        [
            "../escape",
            "foo/../../bar",
            "/absolute/path",
            "..\\escape",
            "key\x00null",
            "",
            ".",
        ],
    )
    def test_rejects_escaping_keys(self, store: FilesystemBackend, invalid_key: str) -> None:
        with pytest.raises(InvalidKeyError):
            store.write(invalid_key, b"data", policy=PRIVATE)

    def test_rejects_symlink_escape(self, store: FilesystemBackend, tmp_path: Path) -> None:
        outside = tmp_path.parent / f"{tmp_path.name}_outside"
        outside.mkdir()
        (tmp_path / "link").symlink_to(outside, target_is_directory=True)

        with pytest.raises(InvalidKeyError):
            store.write("link/file", b"data", policy=PRIVATE)


@pytest.mark.skipif(os.name == "nt", reason="POSIX file modes")
class TestAccessPolicy:
    """Tests for access policy file modes."""

    def test_private_objects_are_owner_only(self, store: FilesystemBackend, tmp_path: Path) -> None:
        store.write("private", b"v", policy=AccessPolicy.PRIVATE)

        assert stat.S_IMODE((tmp_path / "private").stat().st_mode) == 0o600

    def test_public_read_objects_are_world_readable(
        self, store: FilesystemBackend, tmp_path: Path
    ) -> None:
        store.write("public", b"v", policy=AccessPolicy.PUBLIC_READ)

        assert stat.S_IMODE((tmp_path / "public").stat().st_mode) == 0o644


class TestCopy:
    """Tests for native copies."""

    def test_can_copy_only_from_filesystem(self, store: FilesystemBackend, tmp_path: Path) -> None:
        assert store.can_copy_from(FilesystemBackend(tmp_path / "other"))
        assert not store.can_copy_from(InMemoryBackend())

    def test_copy_from_other_filesystem_backend(
        self, store: FilesystemBackend, tmp_path: Path
    ) -> None:
        source = FilesystemBackend(tmp_path / "source")
        source.write("src/key", b"payload", policy=PRIVATE)

        store.copy_from(source, "src/key", "dst/key", policy=PRIVATE)

        assert store.read("dst/key") == b"payload"

    def test_copy_of_missing_source_raises_not_found(
        self, store: FilesystemBackend, tmp_path: Path
    ) -> None:
        source = FilesystemBackend(tmp_path / "source")

        with pytest.raises(ObjectNotFoundError):
            store.copy_from(source, "missing", "dst", policy=PRIVATE)


def _prune_after_prepare(
    store: FilesystemBackend, monkeypatch: pytest.MonkeyPatch, times: int
) -> list[str]:
    """Make the first `times` directory preparations lose their directory.

    Mimics a concurrent delete pruning the freshly created parent.
    """
    original = store._prepare_parent
    calls: list[str] = []

    def prepare_then_prune(path: Path, key: str) -> None:
        original(path, key)
        calls.append(key)
        if len(calls) <= times:
            path.parent.rmdir()

    monkeypatch.setattr(store, "_prepare_parent", prepare_then_prune)
    return calls


class TestConcurrentPrune:
    """Tests for writes racing a delete that prunes the same directory."""

    def test_write_recreates_pruned_directory(
        self, store: FilesystemBackend, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        calls = _prune_after_prepare(store, monkeypatch, times=1)

        store.write("a/b/c.txt", b"abc", policy=PRIVATE)

        assert (tmp_path / "a" / "b" / "c.txt").read_bytes() == b"abc"
        assert calls == ["a/b/c.txt", "a/b/c.txt"]

    def test_copy_recreates_pruned_directory(
        self, store: FilesystemBackend, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        source = FilesystemBackend(tmp_path / "source")
        source.write("src/key", b"payload", policy=PRIVATE)
        calls = _prune_after_prepare(store, monkeypatch, times=1)

        store.copy_from(source, "src/key", "dst/key", policy=PRIVATE)

        assert store.read("dst/key") == b"payload"
        assert len(calls) == 2

    def test_write_gives_up_after_one_retry(
        self, store: FilesystemBackend, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        calls = _prune_after_prepare(store, monkeypatch, times=2)

        with pytest.raises(StorageBackendError):
            store.write("a/b/c.txt", b"abc", policy=PRIVATE)

        assert len(calls) == 2
        assert not (tmp_path / "a" / "b").exists()


class TestErrorHandling:
    """Tests for backend failures."""

    def test_write_under_existing_file_raises_backend_error(self, store: FilesystemBackend) -> None:
        store.write("file", b"v", policy=PRIVATE)

        with pytest.raises(StorageBackendError) as exc_info:
            store.write("file/child", b"v", policy=PRIVATE)

        assert exc_info.value.cause is not None

    def test_probe_missing_directory_raises(self, tmp_path: Path) -> None:
        with pytest.raises(StorageBackendError):
            FilesystemBackend(tmp_path / "missing").probe()

    def test_probe_existing_directory(self, store: FilesystemBackend) -> None:
        store.probe()


class TestBackendProperties:
    """Tests for backend-specific properties."""

    def test_backend_name(self, store: FilesystemBackend) -> None:
        assert store.backend_name == "file"

    def test_base_dir_property(self, store: FilesystemBackend, tmp_path: Path) -> None:
        assert store.base_dir == tmp_path.resolve()

    def test_describe(self, store: FilesystemBackend, tmp_path: Path) -> None:
        assert store.describe("a/b") == f"file://{tmp_path.resolve().as_posix()}/a/b"

    def test_env_var_base_dir(self, tmp_path: Path, monkeypatch: Any) -> None:
        custom_dir = tmp_path / "custom"
        custom_dir.mkdir()
        monkeypatch.setenv("BLOBMIRROR_FILESYSTEM_BASE_DIR", str(custom_dir))

        assert FilesystemBackend().base_dir == custom_dir.resolve()
