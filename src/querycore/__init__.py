"""querycore: canonical query key hashing and batched change notifications."""

from querycore.core.errors import CircularReferenceError, QueryCoreError
from querycore.core.scheduler import AsyncioScheduler, ManualScheduler
from querycore.hashing import (
    UNDEFINED,
    KeyHasher,
    Symbol,
    hash_query_key,
    query_key_digest,
    stable_serialize,
)
from querycore.notify import NotificationBus, Subscribable, Subscription

__version__ = "0.1.0"

__all__ = [
    "UNDEFINED",
    "AsyncioScheduler",
    "CircularReferenceError",
    "KeyHasher",
    "ManualScheduler",
    "NotificationBus",
    "QueryCoreError",
    "Subscribable",
    "Subscription",
    "Symbol",
    "hash_query_key",
    "query_key_digest",
    "stable_serialize",
]
