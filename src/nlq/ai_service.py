"""
AI-path translation -- asks the configured LLM for SQL or an explanation.

The model sees a plain-text rendering of the schema and the question; its
answer is cleaned of markdown fences and chatter, then has to pass the
deterministic safety gate before it is accepted.  Every failure surfaces as
``TranslationError`` so the orchestrator can fall back to the rule path.
"""
from __future__ import annotations

import re

from src.core.errors import TranslationError
from src.core.logging import get_logger
from src.nlq.llm_client import call_llm
from src.rewrite.sql_safety import check_sql_safety
from src.schema.models import Table

logger = get_logger(__name__)

_FENCE_RE = re.compile(r"```(?:sql)?", re.IGNORECASE)
_SELECT_RE = re.compile(r"\b(?:select|with)\b", re.IGNORECASE)


# ── Prompt building ──────────────────────────────────────

def build_schema_context(tables: list[Table]) -> str:
    """Describe *tables* one block per table: columns with type and constraints, then foreign keys."""
    if not tables:
        return "No schema information available"

    lines = ["Tables in the database:", ""]
    for table in tables:
        lines.append(f"Table: {table.name}")
        lines.append("Columns:")
        for col in table.columns:
            desc = f"- {col.name} ({col.type})"
            if col.is_primary_key:
                desc += " PRIMARY KEY"
            if not col.is_nullable:
                desc += " NOT NULL"
            lines.append(desc)
        if table.foreign_keys:
            lines.append("Foreign Keys:")
            for fk in table.foreign_keys:
                lines.append(f"- {fk.column} references {fk.foreign_table}.{fk.foreign_column}")
        lines.append("")
    return "\n".join(lines)


def _translation_prompt(question: str, tables: list[Table]) -> str:
    return (
        "You are a SQL query generator for a PostgreSQL clinic database. "
        "Convert the following natural language question to a single read-only SELECT statement.\n\n"
        f"Database Schema:\n{build_schema_context(tables)}\n"
        f'Natural Language Query: "{question}"\n\n'
        "Return only the SQL query without any explanation or markdown formatting."
    )


def _explanation_prompt(sql: str) -> str:
    return (
        "Explain the following SQL query in simple terms.\n\n"
        f"SQL Query: {sql}\n\n"
        "Provide a concise explanation that a non-technical person would understand."
    )


# ── Response handling ────────────────────────────────────

def clean_sql_response(text: str) -> str:
    """Strip markdown fences and any prose before the statement; end it with ``;``."""
    sql = _FENCE_RE.sub("", text).strip()
    m = _SELECT_RE.search(sql)
    if m is None:
        return sql
    sql = sql[m.start():].strip()
    if not sql.endswith(";"):
        sql += ";"
    return sql


# ── Public API ───────────────────────────────────────────

def translate_to_sql(question: str, tables: list[Table], provider: str | None = None) -> str:
    """Ask the LLM for SQL answering *question*.

    Raises
    ------
    TranslationError
        If the provider fails, or its answer is not a safe SELECT.
    """
    try:
        raw = call_llm(_translation_prompt(question, tables), provider=provider)
    except Exception as exc:
        raise TranslationError(f"AI translation failed: {exc}") from exc

    sql = clean_sql_response(raw)
    if not _SELECT_RE.match(sql):
        raise TranslationError("AI response did not contain a SELECT statement.")

    violations = check_sql_safety(sql)
    if violations:
        raise TranslationError("AI SQL rejected: " + " ".join(violations))

    logger.info("AI translation: %s", sql)
    return sql


def explain_sql(sql: str, provider: str | None = None) -> str:
    """Plain-language explanation of *sql* from the LLM.

    Raises
    ------
    TranslationError
        If the provider fails or answers with nothing.
    """
    try:
        text = call_llm(_explanation_prompt(sql), provider=provider).strip()
    except Exception as exc:
        raise TranslationError(f"AI explanation failed: {exc}") from exc
    if not text:
        raise TranslationError("AI explanation was empty.")
    return text
