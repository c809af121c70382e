"""
Live schema introspection through SQLAlchemy's inspector.

Only the configured tables (``settings.schema_tables``) are described.  A
table whose columns cannot be read is still returned, with ``error`` set, so
the explorer can show what went wrong instead of hiding the table.
"""
from __future__ import annotations

from sqlalchemy import inspect
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from src.core.config import get_settings
from src.core.logging import get_logger
from src.schema.models import Column, ForeignKey, Table

logger = get_logger(__name__)


def _describe_table(inspector, table_name: str) -> Table:
    pk = inspector.get_pk_constraint(table_name) or {}
    pk_columns = set(pk.get("constrained_columns") or [])

    foreign_keys: list[ForeignKey] = []
    for fk in inspector.get_foreign_keys(table_name):
        constrained = fk.get("constrained_columns") or []
        referred = fk.get("referred_columns") or []
        if not constrained or not referred:
            continue
        foreign_keys.append(ForeignKey(
            column=constrained[0],
            foreign_table=fk["referred_table"],
            foreign_column=referred[0],
        ))
    fk_columns = {fk.column for fk in foreign_keys}

    columns = [
        Column(
            name=col["name"],
            type=str(col["type"]).lower(),
            is_primary_key=col["name"] in pk_columns,
            is_nullable=bool(col.get("nullable", True)),
            is_foreign=col["name"] in fk_columns,
            description=col.get("comment"),
        )
        for col in inspector.get_columns(table_name)
    ]
    return Table(name=table_name, columns=columns, foreign_keys=foreign_keys)


def introspect_schema(engine: Engine | None = None, tables: list[str] | None = None) -> list[Table]:
    """Describe *tables* (default: ``settings.schema_tables``) from the live database.

    Raises
    ------
    SQLAlchemyError
        If the database cannot be reached at all.
    """
    if engine is None:
        from src.db.connection import get_engine

        engine = get_engine()
    wanted = tables or get_settings().schema_tables

    inspector = inspect(engine)
    existing = set(inspector.get_table_names())
    logger.info("Introspecting %d tables (%d present in database)", len(wanted), len(existing))

    result: list[Table] = []
    for name in wanted:
        if name not in existing:
            result.append(Table(name=name, error=f"Table '{name}' does not exist in the database."))
            continue
        try:
            result.append(_describe_table(inspector, name))
        except SQLAlchemyError as exc:
            logger.warning("Could not describe table %s: %s", name, exc)
            result.append(Table(name=name, error=str(exc)))
    return result
