"""
Loads the schema fixture YAML into typed ``Table`` objects.

The fixture is the offline stand-in for introspection: tests, the dry-run
endpoints, and a service whose database is down all translate against it.
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml

from src.core.config import get_settings
from src.core.logging import get_logger
from src.schema.models import Column, ForeignKey, Table

logger = get_logger(__name__)


# ── Parsing ──────────────────────────────────────────────

def _parse_column(raw: dict[str, Any]) -> Column:
    return Column(
        name=raw["name"],
        type=str(raw.get("type", "text")),
        is_primary_key=raw.get("primary_key", False),
        is_nullable=raw.get("nullable", True),
        is_foreign=raw.get("foreign", False),
        description=raw.get("description"),
    )


def _parse_foreign_key(raw: dict[str, Any]) -> ForeignKey:
    return ForeignKey(
        column=raw["column"],
        foreign_table=raw["foreign_table"],
        foreign_column=raw.get("foreign_column", "id"),
    )


def _parse_table(raw: dict[str, Any]) -> Table:
    return Table(
        name=raw["name"],
        columns=[_parse_column(c) for c in raw.get("columns") or []],
        foreign_keys=[_parse_foreign_key(fk) for fk in raw.get("foreign_keys") or []],
        error=raw.get("error"),
    )


def parse_schema(raw_yaml: dict[str, Any]) -> list[Table]:
    return [_parse_table(t) for t in raw_yaml.get("tables", [])]


# ── Public API ───────────────────────────────────────────

@lru_cache
def _load_from(path: str) -> tuple[Table, ...]:
    with open(Path(path)) as f:
        raw = yaml.safe_load(f) or {}
    tables = parse_schema(raw)
    logger.info("Loaded schema fixture %s (%d tables)", path, len(tables))
    return tuple(tables)


def load_schema(path: str | None = None) -> list[Table]:
    """Load and cache the schema fixture (defaults to ``settings.schema_path``)."""
    return list(_load_from(path or get_settings().schema_path))


def get_table_names() -> list[str]:
    return [t.name for t in load_schema()]
