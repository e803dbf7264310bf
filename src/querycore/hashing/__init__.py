"""Canonical serialization and hashing of query keys."""

from __future__ import annotations

from .atoms import UNDEFINED, Symbol
from .keys import KeyHasher, hash_query_key, query_key_digest
from .serializer import classify, stable_serialize

__all__ = [
    "UNDEFINED",
    "KeyHasher",
    "Symbol",
    "classify",
    "hash_query_key",
    "query_key_digest",
    "stable_serialize",
]
