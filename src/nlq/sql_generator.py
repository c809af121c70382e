"""
SQL Generator -- renders a QueryIntent into one SELECT statement.

Rendering is deterministic: the same intent always yields the same text.
Condition values never enter the SQL text; they are bound parameters
(``:p0``, ``:p1`` ...) carried next to it in ``GeneratedSQL.params``.
``GeneratedSQL.inline()`` produces the literal form for the SQL preview.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

from src.nlq.intent import QueryIntent
from src.core.logging import get_logger

logger = get_logger(__name__)

_BARE_IDENTIFIER = re.compile(r"^[A-Za-z_]\w*$")
_PARAM_RE = re.compile(r"(?<![:\w]):(p\d+)\b")


@dataclass(frozen=True)
class GeneratedSQL:
    text: str
    params: dict[str, Any] = field(default_factory=dict)

    def inline(self) -> str:
        """SQL with every bound parameter replaced by a quoted literal (display only)."""
        def _literal(m: re.Match) -> str:
            value = self.params.get(m.group(1))
            if isinstance(value, bool) or value is None:
                return "NULL" if value is None else str(value).upper()
            if isinstance(value, (int, float)):
                return str(value)
            return "'" + str(value).replace("'", "''") + "'"

        return _PARAM_RE.sub(_literal, self.text)


def _qualify(ref: str, table: str, enabled: bool) -> str:
    """Prefix a bare column with its table when the statement joins tables."""
    if enabled and _BARE_IDENTIFIER.match(ref):
        return f"{table}.{ref}"
    return ref


def generate_sql(intent: QueryIntent) -> GeneratedSQL:
    """Build the SELECT statement for *intent*, terminated with ``;``."""
    table = intent.table
    params: dict[str, Any] = {}

    # ── WHERE clause ─────────────────────────────────
    qualify = bool(intent.joins)
    where_parts: list[str] = []
    for i, cond in enumerate(intent.conditions):
        name = f"p{i}"
        params[name] = cond.value
        where_parts.append(f"{_qualify(cond.field, table, qualify)} {cond.operator} :{name}")
    where = (" WHERE " + " AND ".join(where_parts)) if where_parts else ""

    # Plain row count: nothing to join, group, order or page.
    if intent.type == "count" and not intent.group_by:
        sql = f"SELECT COUNT(*) as count FROM {table}{where};"
        logger.info("Generated SQL: %s", sql)
        return GeneratedSQL(sql, params)

    # ── SELECT clause ────────────────────────────────
    if intent.aggregate:
        select_parts = [_qualify(g, table, qualify) for g in intent.group_by]
        for agg in intent.aggregate:
            select_parts.append(
                f"{agg.function.upper()}({_qualify(agg.field, table, qualify)}) AS {agg.alias}"
            )
    elif intent.columns:
        select_parts = [_qualify(c, table, qualify) for c in intent.columns]
    else:
        select_parts = ["*"]

    parts = [f"SELECT {', '.join(select_parts)}", f"FROM {table}"]

    # ── JOIN clauses ─────────────────────────────────
    for join in intent.joins:
        parts.append(f"{join.type.upper()} JOIN {join.table} ON {join.condition}")

    if where:
        parts.append(where.strip())

    if intent.group_by:
        parts.append("GROUP BY " + ", ".join(_qualify(g, table, qualify) for g in intent.group_by))

    if intent.order_by:
        parts.append("ORDER BY " + ", ".join(
            f"{_qualify(o.field, table, qualify)} {o.direction.upper()}" for o in intent.order_by
        ))

    if intent.limit is not None:
        parts.append(f"LIMIT {int(intent.limit)}")
    if intent.offset is not None:
        parts.append(f"OFFSET {int(intent.offset)}")

    sql = " ".join(parts) + ";"
    logger.info("Generated SQL: %s", sql)
    return GeneratedSQL(sql, params)
