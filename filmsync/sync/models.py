"""Sync cycle states, results and events."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from filmsync.adapters.records.models import Record


class Origin(str, Enum):
    """Who caused a snapshot change. Only ``LOCAL`` changes are pushed."""

    LOCAL = "local"
    REMOTE = "remote"
    RESTORE = "restore"


class PullPhase(str, Enum):
    IDLE = "idle"
    PULLING = "pulling"
    MERGING = "merging"
    APPLIED = "applied"
    FAILED = "failed"


class PushPhase(str, Enum):
    IDLE = "idle"
    DIFFING = "diffing"
    PUSHING = "pushing"
    DONE = "done"


class SyncResult(BaseModel):
    """Result of one pull or push cycle for one family."""

    family: str
    direction: str  # 'pull' or 'push'
    scope: str | None = None
    correlation_id: str | None = None
    items_synced: int = 0
    items_deleted: int = 0
    items_skipped: int = 0
    items_failed: int = 0
    conflicts: int = 0
    bootstrapped: bool = False
    discarded: bool = False
    errors: list[str] = Field(default_factory=list)
    retryable_errors: list[str] = Field(default_factory=list)
    permanent_errors: list[str] = Field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def ok(self) -> bool:
        return not self.errors


def record_error(result: SyncResult, message: str, retryable: bool) -> None:
    if message not in result.errors:
        result.errors.append(message)
    if retryable:
        result.retryable_errors.append(message)
    else:
        result.permanent_errors.append(message)


@dataclass(frozen=True)
class MergeConflict:
    """A save lost twice against concurrent remote writes; the server state was kept."""

    record_type: str
    identity: str
    desired_fields: dict[str, Any] = field(default_factory=dict)
    server_record: Record | None = None


@dataclass(frozen=True)
class RemoteEntry:
    """One record a local collection maps to: where it lives and what it should hold."""

    record_type: str
    fields: dict[str, Any]
