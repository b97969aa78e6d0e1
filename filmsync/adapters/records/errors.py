"""Errors raised by record store adapters."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from filmsync.adapters.records.models import Record


class RecordStoreError(Exception):
    """Base exception for record store errors."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RecordStoreRetryableError(RecordStoreError):
    """Transient failure that a later attempt may not hit."""


class RecordNotFoundError(RecordStoreError):
    """The addressed record does not exist."""

    def __init__(self, record_type: str, record_name: str) -> None:
        super().__init__(f"{record_type} record {record_name!r} not found", status_code=404)
        self.record_type = record_type
        self.record_name = record_name


class ConflictError(RecordStoreError):
    """A save was rejected because the server's record changed since it was read.

    ``server_record`` carries the server's current version when the store
    reported it, so callers can reapply their changes without another read.
    """

    def __init__(self, record_type: str, record_name: str, server_record: Record | None) -> None:
        super().__init__(
            f"{record_type} record {record_name!r} changed on the server", status_code=409
        )
        self.record_type = record_type
        self.record_name = record_name
        self.server_record = server_record


class RecordDecodeError(RecordStoreError):
    """A fetched record's payload could not be turned into a domain entity."""

    def __init__(self, record_name: str, reason: str) -> None:
        super().__init__(f"cannot decode record {record_name!r}: {reason}")
        self.record_name = record_name
        self.reason = reason
