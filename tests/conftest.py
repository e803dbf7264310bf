"""Shared fixtures for the querycore test suite."""

from __future__ import annotations

import logging

import pytest

from querycore.core.config import Settings
from querycore.core.scheduler import ManualScheduler


@pytest.fixture
def manual_scheduler() -> ManualScheduler:
    """Scheduler whose callbacks run only when the test drains it."""
    return ManualScheduler()


@pytest.fixture
def settings(monkeypatch) -> Settings:
    """Default settings, isolated from QUERYCORE_* env vars."""
    for name in (
        "QUERYCORE_KEYS__PREFIX",
        "QUERYCORE_KEYS__DIGEST_LENGTH",
        "QUERYCORE_OBSERVABILITY__LOG_LEVEL",
        "QUERYCORE_OBSERVABILITY__LOG_FORMAT",
    ):
        monkeypatch.delenv(name, raising=False)
    return Settings()


@pytest.fixture
def restore_logging():
    """Put root logger handlers back after a test reconfigures logging."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers = handlers
    root.setLevel(level)
