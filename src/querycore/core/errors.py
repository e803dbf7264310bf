"""Custom exception hierarchy for querycore."""

from __future__ import annotations

from .enums import CollectionKind


class QueryCoreError(Exception):
    """Base exception for all querycore errors."""


# --- Configuration ---
class ConfigError(QueryCoreError):
    """Invalid or missing configuration."""


# --- Serialization ---
class SerializationError(QueryCoreError):
    """A value could not be turned into a canonical form."""


class CircularReferenceError(SerializationError, TypeError):
    """A container was reached again while it was still being serialized.

    Identifiers must be acyclic, so this is a programming error in the
    caller rather than a transient failure.
    """

    def __init__(self, kind: CollectionKind):
        self.kind = kind
        super().__init__(f"stable_serialize: circular {kind.value} reference")
