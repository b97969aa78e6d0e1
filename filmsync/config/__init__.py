from __future__ import annotations

from .record_store import RecordStoreConfig
from .settings import AppConfig, RuntimeConfig, Settings, load_config
from .sync import MAX_CHUNK_SIZE, SyncConfig

__all__ = [
    "MAX_CHUNK_SIZE",
    "AppConfig",
    "RecordStoreConfig",
    "RuntimeConfig",
    "Settings",
    "SyncConfig",
    "load_config",
]
