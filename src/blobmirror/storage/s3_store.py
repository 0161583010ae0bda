"""blobmirror S3 blob backend.

Stores objects in one S3 bucket through boto3. The client is created lazily;
unless a region or endpoint is given, the bucket's region is looked up with
GetBucketLocation first.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from blobmirror.storage.backend import DEFAULT_CHUNK_SIZE, BlobBackend
from blobmirror.storage.errors import ObjectNotFoundError, StorageBackendError
from blobmirror.storage.models import AccessPolicy
from blobmirror.storage.tracing import traced_storage_operation

logger = logging.getLogger(__name__)

DEFAULT_REGION = "us-east-1"

_NOT_FOUND_CODES = frozenset({"404", "NoSuchKey", "NotFound"})


def region_for_location(location: str | None) -> str:
    """Map a GetBucketLocation constraint onto a region name."""
    if not location:
        return DEFAULT_REGION
    if location == "EU":
        return "eu-west-1"
    return location


def _error_code(error: ClientError) -> str:
    return str(error.response.get("Error", {}).get("Code", ""))


def _is_not_found(error: Exception) -> bool:
    return isinstance(error, ClientError) and _error_code(error) in _NOT_FOUND_CODES


class S3Backend(BlobBackend):
    """S3 bucket storage implementation.

    Args:
        bucket_name: Name of the bucket to store objects in.
        client: Pre-built boto3 S3 client. Built on first use if omitted.
        **client_options: Passed to ``Session.client("s3", ...)``.
    """

    def __init__(self, bucket_name: str, *, client: Any = None, **client_options: Any) -> None:
        if not bucket_name:
            raise ValueError("bucket_name is required")
        self._bucket_name = bucket_name
        self._client_options = dict(client_options)
        self._client = client
        self._client_lock = threading.Lock()

    @property
    def backend_name(self) -> str:
        """Return the backend identifier."""
        return "s3"

    @property
    def identity(self) -> str:
        """Return the bucket name."""
        return self._bucket_name

    @property
    def bucket_name(self) -> str:
        return self._bucket_name

    @property
    def client_options(self) -> dict[str, Any]:
        return dict(self._client_options)

    @property
    def client(self) -> Any:
        """Return the S3 client, creating it on first use."""
        with self._client_lock:
            if self._client is None:
                self._client = self._create_client()
            return self._client

    def _create_client(self) -> Any:
        options = dict(self._client_options)
        if "region_name" not in options and "endpoint_url" not in options:
            options["region_name"] = self._resolve_region()
        return boto3.session.Session().client("s3", **options)

    def _resolve_region(self) -> str:
        """Look up the bucket region, falling back to the default region."""
        try:
            lookup = boto3.session.Session().client("s3", **self._client_options)
            response = lookup.get_bucket_location(Bucket=self._bucket_name)
        except (BotoCoreError, ClientError) as e:
            logger.debug("Bucket location lookup failed for %s: %s", self._bucket_name, e)
            return DEFAULT_REGION
        return region_for_location(response.get("LocationConstraint"))

    def _backend_error(self, action: str, key: str | None, error: Exception) -> StorageBackendError:
        return StorageBackendError(
            message=f"Failed to {action}: {error}",
            key=key,
            backend=self.location,
            cause=error,
        )

    def probe(self) -> None:
        try:
            self.client.list_objects_v2(Bucket=self._bucket_name, MaxKeys=1)
        except (BotoCoreError, ClientError) as e:
            raise self._backend_error("list bucket", None, e) from e

    @traced_storage_operation("exists")
    def exists(self, key: str) -> bool:
        try:
            self.client.head_object(Bucket=self._bucket_name, Key=key)
        except ClientError as e:
            if _is_not_found(e):
                return False
            raise self._backend_error("check object", key, e) from e
        except BotoCoreError as e:
            raise self._backend_error("check object", key, e) from e
        return True

    def _get_body(self, key: str) -> Any:
        try:
            return self.client.get_object(Bucket=self._bucket_name, Key=key)["Body"]
        except ClientError as e:
            if _is_not_found(e):
                raise ObjectNotFoundError(key=key, backend=self.location) from e
            raise self._backend_error("read object", key, e) from e
        except BotoCoreError as e:
            raise self._backend_error("read object", key, e) from e

    @traced_storage_operation("read")
    def read(self, key: str) -> bytes:
        body = self._get_body(key)
        try:
            return bytes(body.read())
        except (BotoCoreError, ClientError) as e:
            raise self._backend_error("read object", key, e) from e
        finally:
            body.close()

    def iter_chunks(self, key: str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
        body = self._get_body(key)
        try:
            yield from body.iter_chunks(chunk_size)
        except (BotoCoreError, ClientError) as e:
            raise self._backend_error("read object", key, e) from e
        finally:
            body.close()

    @traced_storage_operation("write")
    def write(self, key: str, data: bytes, *, policy: AccessPolicy) -> None:
        try:
            self.client.put_object(
                Bucket=self._bucket_name,
                Key=key,
                Body=data,
                ACL=policy.value,
            )
        except (BotoCoreError, ClientError) as e:
            raise self._backend_error("write object", key, e) from e
        logger.debug("Stored object: bucket=%s key=%s size=%d", self._bucket_name, key, len(data))

    @traced_storage_operation("delete")
    def delete(self, key: str) -> bool:
        if not self.exists(key):
            return False
        try:
            self.client.delete_object(Bucket=self._bucket_name, Key=key)
        except (BotoCoreError, ClientError) as e:
            raise self._backend_error("delete object", key, e) from e
        logger.debug("Deleted object: bucket=%s key=%s", self._bucket_name, key)
        return True

    def can_copy_from(self, source: BlobBackend) -> bool:
        return isinstance(source, S3Backend)

    def copy_from(
        self,
        source: BlobBackend,
        source_key: str,
        key: str,
        *,
        policy: AccessPolicy,
    ) -> None:
        if not isinstance(source, S3Backend):
            return super().copy_from(source, source_key, key, policy=policy)
        try:
            self.client.copy_object(
                Bucket=self._bucket_name,
                Key=key,
                CopySource={"Bucket": source.bucket_name, "Key": source_key},
                ACL=policy.value,
            )
        except ClientError as e:
            if _is_not_found(e):
                raise ObjectNotFoundError(key=source_key, backend=source.location) from e
            raise self._backend_error("copy object", key, e) from e
        except BotoCoreError as e:
            raise self._backend_error("copy object", key, e) from e
