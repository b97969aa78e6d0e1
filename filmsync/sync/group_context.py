"""Active group selection and the registry of joined groups."""

from __future__ import annotations

import json
import logging
import uuid
from typing import TYPE_CHECKING

from pydantic import TypeAdapter, ValidationError

from filmsync.domain.group import GroupInfo

if TYPE_CHECKING:
    from collections.abc import Callable

    from filmsync.persistence.blob_store import BlobStore

logger = logging.getLogger(__name__)

KEY_CURRENT_GROUP_ID = "CurrentGroupId"
KEY_CURRENT_GROUP_NAME = "CurrentGroupName"
KEY_KNOWN_GROUPS = "KnownGroups"

_groups_adapter = TypeAdapter(list[GroupInfo])


class GroupContext:
    """Tracks which group scope every family reads and writes.

    ``scope`` is the active invite code, or ``None`` for the ungrouped
    workspace. Listeners registered with ``add_listener`` are called with the
    new scope after every scope change; leaving or joining a group never
    touches remote data.
    """

    def __init__(self, blobs: BlobStore) -> None:
        self._blobs = blobs
        self._listeners: list[Callable[[str | None], None]] = []
        self._known: list[GroupInfo] = self._load_known_groups()
        self._scope: str | None = self._load_text(KEY_CURRENT_GROUP_ID)
        self._name: str | None = self._load_text(KEY_CURRENT_GROUP_NAME)
        self._register_current()

    # ---------------------------------------------------------------- state

    @property
    def scope(self) -> str | None:
        return self._scope

    @property
    def name(self) -> str | None:
        return self._name

    @property
    def current_group(self) -> GroupInfo | None:
        if self._scope is None:
            return None
        return GroupInfo(id=self._scope, name=self._name)

    @property
    def display_name(self) -> str | None:
        group = self.current_group
        return group.display_name if group else None

    @property
    def known_groups(self) -> list[GroupInfo]:
        return list(self._known)

    def add_listener(self, listener: Callable[[str | None], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    # ----------------------------------------------------------- operations

    def create_new_group(self, name: str | None = None) -> str:
        """Start a brand-new group and make it active. Returns its invite code."""
        group_id = str(uuid.uuid4()).upper()
        cleaned = name.strip() if name else None
        self._activate(group_id, cleaned or None)
        logger.info("group_created", extra={"scope": group_id})
        return group_id

    def join_group(self, code: str) -> bool:
        """Make the group with invite code ``code`` active.

        The display name is taken from the registry when the group is known;
        otherwise it is learned later from pulled movie data.
        """
        cleaned = code.strip()
        if not cleaned:
            return False
        if cleaned == self._scope:
            return True
        known = next((group for group in self._known if group.id == cleaned), None)
        self._activate(cleaned, known.name if known else None)
        logger.info("group_joined", extra={"scope": cleaned})
        return True

    def switch_group(self, code: str | None) -> bool:
        if code is None:
            if self._scope is None:
                return True
            self._activate(None, None)
            return True
        return self.join_group(code)

    def leave_current_group(self) -> bool:
        """Forget the active group locally and fall back to the ungrouped scope."""
        if self._scope is None:
            return False
        old_scope = self._scope
        self._known = [group for group in self._known if group.id != old_scope]
        self._save_known_groups()
        self._activate(None, None)
        logger.info("group_left", extra={"scope": old_scope})
        return True

    def adopt_display_name(self, name: str | None, scope: str | None = None) -> bool:
        """Take over a group name seen in remote data for the active group."""
        if scope is not None and scope != self._scope:
            return False
        cleaned = (name or "").strip()
        if self._scope is None or not cleaned or cleaned == self._name:
            return False
        self._name = cleaned
        self._save_text(KEY_CURRENT_GROUP_NAME, cleaned)
        self._register_current()
        logger.debug("group_name_adopted", extra={"scope": self._scope})
        return True

    # -------------------------------------------------------------- helpers

    def _activate(self, scope: str | None, name: str | None) -> None:
        self._scope = scope
        self._name = name
        self._save_text(KEY_CURRENT_GROUP_ID, scope)
        self._save_text(KEY_CURRENT_GROUP_NAME, name)
        self._register_current()
        for listener in list(self._listeners):
            listener(scope)

    def _register_current(self) -> None:
        if self._scope is None:
            return
        for index, group in enumerate(self._known):
            if group.id == self._scope:
                if self._name and group.name != self._name:
                    self._known[index] = GroupInfo(id=group.id, name=self._name)
                    self._save_known_groups()
                return
        self._known.append(GroupInfo(id=self._scope, name=self._name))
        self._save_known_groups()

    def _load_text(self, key: str) -> str | None:
        data = self._blobs.load(key)
        if not data:
            return None
        return data.decode("utf-8") or None

    def _save_text(self, key: str, value: str | None) -> None:
        if value is None:
            self._blobs.delete(key)
        else:
            self._blobs.save(key, value.encode("utf-8"))

    def _load_known_groups(self) -> list[GroupInfo]:
        data = self._blobs.load(KEY_KNOWN_GROUPS)
        if not data:
            return []
        try:
            return _groups_adapter.validate_json(data)
        except ValidationError:
            logger.warning("known_groups_unreadable")
            return []

    def _save_known_groups(self) -> None:
        payload = [group.model_dump() for group in self._known]
        self._blobs.save(KEY_KNOWN_GROUPS, json.dumps(payload).encode("utf-8"))
