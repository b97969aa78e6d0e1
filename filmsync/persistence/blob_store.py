"""Local blob persistence: "save blob under key / load blob for key"."""

from __future__ import annotations

from typing import Protocol

DEFAULT_SCOPE_NAME = "Default"


def family_scope_key(family: str, scope: str | None) -> str:
    """Storage key for one family's collection in one group scope.

    ``family_scope_key("Members", None)`` → ``"Members_Default"``
    """
    return f"{family}_{scope or DEFAULT_SCOPE_NAME}"


class BlobStore(Protocol):
    def save(self, key: str, data: bytes) -> None: ...

    def load(self, key: str) -> bytes | None: ...

    def delete(self, key: str) -> None: ...

    def close(self) -> None: ...


class MemoryBlobStore:
    """Dict-backed blob store for tests and throwaway sessions."""

    def __init__(self) -> None:
        self._blobs: dict[str, bytes] = {}

    def save(self, key: str, data: bytes) -> None:
        self._blobs[key] = bytes(data)

    def load(self, key: str) -> bytes | None:
        return self._blobs.get(key)

    def delete(self, key: str) -> None:
        self._blobs.pop(key, None)

    def close(self) -> None:
        return None

    def keys(self) -> list[str]:
        return sorted(self._blobs)
