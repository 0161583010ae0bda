"""blobmirror storage value types."""

from __future__ import annotations

from enum import Enum


class AccessPolicy(str, Enum):
    """Store-wide visibility applied to every write on every backend.

    Values match the S3 canned ACL names.
    """

    PRIVATE = "private"
    PUBLIC_READ = "public-read"

    @classmethod
    def parse(cls, value: str | AccessPolicy | None) -> AccessPolicy:
        """Parse a policy name, defaulting to PRIVATE when unset.

        Raises:
            ValueError: If the name is not a known policy.
        """
        if value is None:
            return cls.PRIVATE
        if isinstance(value, AccessPolicy):
            return value
        normalized = value.strip().lower().replace("_", "-")
        if not normalized:
            return cls.PRIVATE
        for policy in cls:
            if policy.value == normalized:
                return policy
        raise ValueError(f"Unknown access policy: {value!r}")


Payload = bytes | bytearray | memoryview | str


def ensure_binary(payload: Payload) -> bytes:
    """Normalize a payload to immutable bytes.

    Text is encoded as UTF-8; binary buffers are copied as-is.

    Raises:
        TypeError: If payload is not text or a bytes-like object.
    """
    if isinstance(payload, bytes):
        return payload
    if isinstance(payload, (bytearray, memoryview)):
        return bytes(payload)
    if isinstance(payload, str):
        return payload.encode("utf-8")
    raise TypeError(f"payload must be bytes-like or str, not {type(payload).__name__}")
