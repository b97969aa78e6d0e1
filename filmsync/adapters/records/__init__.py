"""Remote record store adapters."""

from filmsync.adapters.records.client import HttpRecordStoreClient, retry_with_backoff
from filmsync.adapters.records.errors import (
    ConflictError,
    RecordDecodeError,
    RecordNotFoundError,
    RecordStoreError,
    RecordStoreRetryableError,
)
from filmsync.adapters.records.memory import InMemoryRecordStore
from filmsync.adapters.records.models import (
    And,
    Equals,
    In,
    IsMissing,
    MatchAll,
    Predicate,
    Record,
    RecordPage,
    SortKey,
)
from filmsync.adapters.records.protocols import RemoteRecordStore

__all__ = [
    "And",
    "ConflictError",
    "Equals",
    "HttpRecordStoreClient",
    "In",
    "InMemoryRecordStore",
    "IsMissing",
    "MatchAll",
    "Predicate",
    "Record",
    "RecordDecodeError",
    "RecordNotFoundError",
    "RecordPage",
    "RecordStoreError",
    "RecordStoreRetryableError",
    "RemoteRecordStore",
    "SortKey",
    "retry_with_backoff",
]
