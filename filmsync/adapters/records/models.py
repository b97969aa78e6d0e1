"""Record, page and predicate models for the remote record store."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime  # noqa: TC003 - Pydantic needs this at runtime
from typing import Any

from pydantic import BaseModel, Field


class Record(BaseModel):
    """A schemaless remote record.

    ``change_tag`` is the optimistic-concurrency token: ``None`` means the
    record has never been saved, and a save must then create it.
    """

    record_type: str = Field(alias="recordType")
    record_name: str = Field(alias="recordName")
    values: dict[str, Any] = Field(default_factory=dict, alias="fields")
    change_tag: str | None = Field(default=None, alias="changeTag")
    modified_at: datetime | None = Field(default=None, alias="modifiedAt")

    model_config = {"populate_by_name": True, "extra": "ignore"}

    @classmethod
    def new(cls, record_type: str, record_name: str) -> Record:
        return cls(record_type=record_type, record_name=record_name)

    def get(self, key: str, default: Any = None) -> Any:
        return self.values.get(key, default)

    def with_fields(self, desired: dict[str, Any]) -> Record:
        """Apply desired field values on top of this record.

        A ``None`` value removes the field. Fields not mentioned are kept.
        """
        merged = dict(self.values)
        for key, value in desired.items():
            if value is None:
                merged.pop(key, None)
            else:
                merged[key] = value
        return self.model_copy(update={"values": merged})


class RecordPage(BaseModel):
    """One page of query results plus the cursor for the next page."""

    records: list[Record] = Field(default_factory=list)
    cursor: str | None = Field(default=None, alias="nextCursor")

    model_config = {"populate_by_name": True, "extra": "ignore"}


@dataclass(frozen=True)
class SortKey:
    field: str
    ascending: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {"field": self.field, "ascending": self.ascending}


class Predicate:
    """Base class for query predicates over record fields."""

    def matches(self, values: dict[str, Any]) -> bool:
        raise NotImplementedError

    def to_dict(self) -> dict[str, Any]:
        raise NotImplementedError


@dataclass(frozen=True)
class Equals(Predicate):
    field: str
    value: Any

    def matches(self, values: dict[str, Any]) -> bool:
        return self.field in values and values[self.field] == self.value

    def to_dict(self) -> dict[str, Any]:
        return {"op": "eq", "field": self.field, "value": self.value}


@dataclass(frozen=True)
class IsMissing(Predicate):
    field: str

    def matches(self, values: dict[str, Any]) -> bool:
        return values.get(self.field) is None

    def to_dict(self) -> dict[str, Any]:
        return {"op": "missing", "field": self.field}


@dataclass(frozen=True)
class In(Predicate):
    field: str
    options: tuple[Any, ...]

    def matches(self, values: dict[str, Any]) -> bool:
        return self.field in values and values[self.field] in self.options

    def to_dict(self) -> dict[str, Any]:
        return {"op": "in", "field": self.field, "values": list(self.options)}


@dataclass(frozen=True)
class And(Predicate):
    clauses: tuple[Predicate, ...]

    def matches(self, values: dict[str, Any]) -> bool:
        return all(clause.matches(values) for clause in self.clauses)

    def to_dict(self) -> dict[str, Any]:
        return {"op": "and", "clauses": [clause.to_dict() for clause in self.clauses]}


@dataclass(frozen=True)
class MatchAll(Predicate):
    def matches(self, values: dict[str, Any]) -> bool:
        return True

    def to_dict(self) -> dict[str, Any]:
        return {"op": "all"}
