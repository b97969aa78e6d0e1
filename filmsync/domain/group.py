from __future__ import annotations

from pydantic import BaseModel


class GroupInfo(BaseModel):
    """A group this device has joined, identified by its invite code."""

    id: str
    name: str | None = None

    model_config = {"extra": "ignore", "frozen": True}

    @property
    def display_name(self) -> str:
        if self.name and self.name.strip():
            return self.name.strip()
        return f"Group {self.id[:6]}"
