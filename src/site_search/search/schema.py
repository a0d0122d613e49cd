"""Field layout of the site index.

Every page has an ``id`` (its URL) plus the fields listed here. Text fields
are analyzed into the inverted index and carry a boost that multiplies every
match in that field; stored fields are kept for display only. The layout is
written into the index file so a loaded index scores with the weights it was
built with.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


DEFAULT_TITLE_BOOST = 10.0
DEFAULT_BODY_BOOST = 1.0


class FieldType(str, Enum):
    TEXT = "text"
    STORED = "stored"


@dataclass(frozen=True)
class SchemaField:
    name: str
    field_type: FieldType = FieldType.TEXT
    boost: float = 1.0

    def __post_init__(self) -> None:
        if self.field_type is FieldType.STORED:
            object.__setattr__(self, "boost", 0.0)
        elif self.boost <= 0:
            raise ValueError(f"Boost for field '{self.name}' must be positive, got {self.boost}")

    @classmethod
    def text(cls, name: str, boost: float = 1.0) -> SchemaField:
        return cls(name, FieldType.TEXT, boost)

    @classmethod
    def stored(cls, name: str) -> SchemaField:
        return cls(name, FieldType.STORED)

    @property
    def indexed(self) -> bool:
        return self.field_type is FieldType.TEXT

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "type": self.field_type.value, "boost": self.boost}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> SchemaField:
        return cls(str(data["name"]), FieldType(data.get("type", "text")), float(data.get("boost", 1.0)))


@dataclass(frozen=True)
class Schema:
    fields: tuple[SchemaField, ...]
    _by_name: dict[str, SchemaField] = field(init=False, repr=False, compare=False)

    def __init__(self, fields: Iterable[SchemaField]) -> None:
        fields = tuple(fields)
        by_name = {schema_field.name: schema_field for schema_field in fields}
        if len(by_name) != len(fields):
            raise ValueError("Duplicate field names in schema")
        if "id" in by_name:
            raise ValueError("Field name 'id' is reserved for the document URL")
        object.__setattr__(self, "fields", fields)
        object.__setattr__(self, "_by_name", by_name)

    def __getitem__(self, name: str) -> SchemaField:
        return self._by_name[name]

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def __iter__(self) -> Iterator[SchemaField]:
        return iter(self.fields)

    def __len__(self) -> int:
        return len(self.fields)

    @property
    def text_fields(self) -> list[SchemaField]:
        return [schema_field for schema_field in self.fields if schema_field.indexed]

    def field_boosts(self) -> dict[str, float]:
        return {schema_field.name: schema_field.boost for schema_field in self.text_fields}

    def to_dict(self) -> dict[str, Any]:
        return {"fields": [schema_field.to_dict() for schema_field in self.fields]}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Schema:
        return cls(SchemaField.from_dict(entry) for entry in data["fields"])


def create_default_schema(
    *,
    title_boost: float = DEFAULT_TITLE_BOOST,
    body_boost: float = DEFAULT_BODY_BOOST,
) -> Schema:
    """``title`` and ``body`` are searched; ``snippet`` is display-only."""
    return Schema(
        [
            SchemaField.text("title", title_boost),
            SchemaField.text("body", body_boost),
            SchemaField.stored("snippet"),
        ]
    )
