"""Object key naming contract shared by every backend.

A key must:
- be a non-empty string
- not start or end with "/"
- not contain empty, "." or ".." path segments
- fit within the maximum length (measured in UTF-8 bytes)
- satisfy the character predicate (S3 "safe characters" by default)
"""

from __future__ import annotations

import re
from collections.abc import Callable

from blobmirror.storage.errors import InvalidKeyError

DEFAULT_MAX_KEY_LENGTH = 1024

_SAFE_KEY_PATTERN = re.compile(r"^[A-Za-z0-9!_.*'()\-/]+$")

KeyPredicate = Callable[[str], bool]


def safe_characters_only(key: str) -> bool:
    """Return True if key only uses characters safe on every backend."""
    return bool(_SAFE_KEY_PATTERN.match(key))


def _violation(key: object, max_length: int, allowed: KeyPredicate) -> str | None:
    """Return a description of the first rule the key breaks, or None."""
    if not isinstance(key, str):
        return "key must be a string"
    if not key:
        return "key must not be empty"
    if key.startswith("/"):
        return "key must not start with '/'"
    if key.endswith("/"):
        return "key must not end with '/'"

    segments = key.split("/")
    if any(segment == "" for segment in segments):
        return "key must not contain empty path segments"
    if any(segment in (".", "..") for segment in segments):
        return "key must not contain '.' or '..' segments"

    if len(key.encode("utf-8")) > max_length:
        return f"key exceeds {max_length} bytes"

    if not allowed(key):
        return "key contains disallowed characters"

    return None


class KeyConstraint:
    """Validates keys before a store touches any backend.

    Args:
        max_length: Maximum key length in UTF-8 bytes.
        allowed: Predicate deciding which keys use permitted characters.
            Defaults to safe_characters_only.
    """

    def __init__(
        self,
        max_length: int = DEFAULT_MAX_KEY_LENGTH,
        allowed: KeyPredicate | None = None,
    ) -> None:
        if max_length < 1:
            raise ValueError("max_length must be positive")
        self._max_length = max_length
        self._allowed = allowed or safe_characters_only

    @property
    def max_length(self) -> int:
        """Return the maximum key length in bytes."""
        return self._max_length

    def allows(self, key: str) -> bool:
        """Return True if key satisfies the constraint."""
        return _violation(key, self._max_length, self._allowed) is None

    def validate(self, key: str) -> None:
        """Raise InvalidKeyError unless key satisfies the constraint."""
        problem = _violation(key, self._max_length, self._allowed)
        if problem is not None:
            raise InvalidKeyError(
                message=f"Invalid key: {problem}",
                key=key if isinstance(key, str) else repr(key),
            )


DEFAULT_KEY_CONSTRAINT = KeyConstraint()


def validate_key(key: str) -> None:
    """Validate key against the default constraint."""
    DEFAULT_KEY_CONSTRAINT.validate(key)
