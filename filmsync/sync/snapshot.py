"""Per-scope, per-family local collections with change notification."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Generic, TypeVar

from pydantic import ValidationError

from filmsync.persistence.blob_store import family_scope_key
from filmsync.sync.models import Origin

if TYPE_CHECKING:
    from collections.abc import Callable

    from filmsync.persistence.blob_store import BlobStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


class LocalSnapshot(Generic[T]):
    """The in-memory collection of one family for the active group scope.

    Every change is written through to the blob store and announced to the
    subscribers together with its ``Origin``. Listeners receive
    ``(previous, current, origin)``; the push trigger only reacts to
    ``Origin.LOCAL``, which is how pulled data avoids being echoed back.
    """

    def __init__(
        self,
        family: str,
        blobs: BlobStore,
        *,
        dump: Callable[[T], bytes],
        load: Callable[[bytes], T],
        empty: Callable[[], T],
        storage_name: str | None = None,
    ) -> None:
        self.family = family
        self.storage_name = storage_name or family.capitalize()
        self._blobs = blobs
        self._dump = dump
        self._load = load
        self.empty_factory = empty
        self._scope: str | None = None
        self._value: T = empty()
        self._listeners: list[Callable[[T, T, Origin], None]] = []

    @property
    def value(self) -> T:
        return self._value

    @property
    def scope(self) -> str | None:
        return self._scope

    @property
    def storage_key(self) -> str:
        return family_scope_key(self.storage_name, self._scope)

    def subscribe(self, listener: Callable[[T, T, Origin], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def set(self, value: T, origin: Origin = Origin.LOCAL) -> bool:
        """Replace the collection. Returns False when nothing changed."""
        if value == self._value:
            return False
        previous = self._value
        self._value = value
        if origin is not Origin.RESTORE:
            self._persist()
        self._notify(previous, value, origin)
        return True

    def restore(self, scope: str | None) -> None:
        """Switch to ``scope`` and load its persisted collection (never pushed)."""
        self._scope = scope
        data = self._blobs.load(self.storage_key)
        value = self.empty_factory()
        if data:
            try:
                value = self._load(data)
            except (ValidationError, ValueError, TypeError) as exc:
                logger.warning(
                    "snapshot_restore_failed",
                    extra={"family": self.family, "scope": scope, "error": str(exc)},
                )
        self.set(value, Origin.RESTORE)
        logger.debug("snapshot_restored", extra={"family": self.family, "scope": scope})

    def _persist(self) -> None:
        try:
            self._blobs.save(self.storage_key, self._dump(self._value))
        except Exception:
            logger.exception(
                "snapshot_persist_failed", extra={"family": self.family, "scope": self._scope}
            )

    def _notify(self, previous: T, current: T, origin: Origin) -> None:
        for listener in list(self._listeners):
            listener(previous, current, origin)
