"""
Typed description of the database the assistant can query.

The schema is produced either by live introspection
(``src.schema.introspection``) or by the YAML fixture
(``src.schema.loader``).  The translation layer only ever reads it.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class Column:
    name: str
    type: str
    is_primary_key: bool = False
    is_nullable: bool = True
    is_foreign: bool = False
    description: str | None = None


@dataclass(frozen=True)
class ForeignKey:
    column: str
    foreign_table: str
    foreign_column: str


@dataclass(frozen=True)
class Table:
    name: str
    columns: list[Column] = field(default_factory=list)
    foreign_keys: list[ForeignKey] = field(default_factory=list)
    error: str | None = None

    # ── Convenience look-ups ─────────────────────────

    def column_names(self) -> list[str]:
        return [c.name for c in self.columns]

    def column(self, name: str) -> Column | None:
        """Case-insensitive column lookup."""
        lowered = name.lower()
        for c in self.columns:
            if c.name.lower() == lowered:
                return c
        return None

    def has_column(self, name: str) -> bool:
        return self.column(name) is not None

    def foreign_key_to(self, table_name: str) -> ForeignKey | None:
        for fk in self.foreign_keys:
            if fk.foreign_table == table_name:
                return fk
        return None

    def to_dict(self) -> dict[str, Any]:
        """Plain-dict form used by the API and the AI prompt."""
        return {
            "name": self.name,
            "columns": [
                {
                    "name": c.name,
                    "type": c.type,
                    "isPrimaryKey": c.is_primary_key,
                    "isNullable": c.is_nullable,
                    "isForeign": c.is_foreign,
                    "description": c.description,
                }
                for c in self.columns
            ],
            "foreignKeys": [
                {
                    "column": fk.column,
                    "foreignTable": fk.foreign_table,
                    "foreignColumn": fk.foreign_column,
                }
                for fk in self.foreign_keys
            ],
            "error": self.error,
        }


def find_table(tables: list[Table], name: str) -> Table | None:
    lowered = name.lower()
    for t in tables:
        if t.name.lower() == lowered:
            return t
    return None
