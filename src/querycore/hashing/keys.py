"""Query key hashing.

A cache is keyed by the hash of a query key: the canonical form from
``stable_serialize`` behind a ``qk:`` namespace tag, so a bare string never
collides with a structured key (``["todos"]`` vs ``"todos"``).

Examples
--------
- ``["todos", 1]`` → ``qk:[str:"todos",num:1]``
- ``{"a": 1, "b": 2}`` and ``{"b": 2, "a": 1}`` → same hash
- ``["todos"]`` and ``"todos"`` → different hashes
"""

from __future__ import annotations

import hashlib
from typing import Any

from querycore.core.config import Settings
from querycore.core.errors import ConfigError

from .serializer import stable_serialize

DEFAULT_PREFIX = "qk:"
DEFAULT_DIGEST_LENGTH = 16


def hash_query_key(key: Any) -> str:
    """Compute the canonical hash for a query key."""
    return f"{DEFAULT_PREFIX}{stable_serialize(key)}"


def query_key_digest(key: Any, *, length: int = DEFAULT_DIGEST_LENGTH) -> str:
    """SHA-256 of the query key hash, truncated to *length* hex chars.

    Use where the store needs short, bounded keys.  Equal hashes give equal
    digests; distinct hashes collide only with SHA-256 prefix probability.
    """
    if not 1 <= length <= 64:
        raise ValueError(f"digest length must be in 1..64, got {length}")
    return hashlib.sha256(hash_query_key(key).encode()).hexdigest()[:length]


class KeyHasher:
    """Configured query key hasher.

    Parameters
    ----------
    prefix
        Namespace tag placed in front of the canonical form.
    digest_length
        Hex characters kept by ``digest()``.
    """

    def __init__(
        self,
        prefix: str = DEFAULT_PREFIX,
        digest_length: int = DEFAULT_DIGEST_LENGTH,
    ) -> None:
        if not prefix:
            raise ConfigError("KeyHasher prefix must not be empty")
        if not 1 <= digest_length <= 64:
            raise ConfigError(
                f"KeyHasher digest_length must be in 1..64, got {digest_length}"
            )
        self._prefix = prefix
        self._digest_length = digest_length

    @classmethod
    def from_settings(cls, settings: Settings) -> KeyHasher:
        return cls(
            prefix=settings.keys.prefix,
            digest_length=settings.keys.digest_length,
        )

    @property
    def prefix(self) -> str:
        return self._prefix

    @property
    def digest_length(self) -> int:
        return self._digest_length

    def hash(self, key: Any) -> str:
        return f"{self._prefix}{stable_serialize(key)}"

    def digest(self, key: Any) -> str:
        return hashlib.sha256(self.hash(key).encode()).hexdigest()[: self._digest_length]
