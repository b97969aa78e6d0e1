from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import BaseModel

if TYPE_CHECKING:
    from collections.abc import Iterable


def canonical_name(name: str) -> str:
    """Trimmed, lowercased form used for member identity and comparisons."""
    return name.strip().lower()


class Member(BaseModel):
    name: str

    model_config = {"extra": "ignore", "frozen": True}

    @property
    def key(self) -> str:
        return canonical_name(self.name)


def sort_members(members: Iterable[Member]) -> list[Member]:
    """Deduplicate by canonical name (last wins) and sort case-insensitively."""
    unique: dict[str, Member] = {}
    for member in members:
        if member.key:
            unique[member.key] = member
    return sorted(unique.values(), key=lambda member: member.key)
