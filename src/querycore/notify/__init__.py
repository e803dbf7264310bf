"""Batched change notifications for cache entities."""

from __future__ import annotations

from .bus import Listener, NotificationBus, Subscribable, Subscription

__all__ = ["Listener", "NotificationBus", "Subscribable", "Subscription"]
