"""Pytest configuration and shared fixtures.

This module provides common fixtures for all tests.
"""

from __future__ import annotations

import os
from collections.abc import Iterator
from unittest.mock import patch

import pytest

from filmsync.adapters.records.memory import InMemoryRecordStore
from filmsync.persistence.blob_store import MemoryBlobStore
from sync_helpers import ManualClock

_CONFIG_ENV_VARS = (
    "RECORD_STORE_URL",
    "RECORD_STORE_API_KEY",
    "RECORD_STORE_TIMEOUT_SEC",
    "RECORD_STORE_MAX_RETRIES",
    "SYNC_COOLDOWN_SECONDS",
    "SYNC_PAGE_SIZE",
    "SYNC_CHUNK_SIZE",
    "SYNC_MAX_CONCURRENCY",
    "SYNC_BOOTSTRAP_ENABLED",
    "LOG_LEVEL",
    "LOG_FILE",
    "LOCAL_DB_PATH",
    "OFFLINE_MODE",
)


@pytest.fixture
def memory_store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture
def blob_store() -> MemoryBlobStore:
    return MemoryBlobStore()


@pytest.fixture
def manual_clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def clean_env() -> Iterator[dict[str, str]]:
    """Environment without any filmsync configuration variables."""
    env = {key: value for key, value in os.environ.items() if key not in _CONFIG_ENV_VARS}
    with patch.dict(os.environ, env, clear=True):
        yield env
