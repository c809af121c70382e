"""
Deterministic SQL safety checks (non-LLM).

These checks gate every statement before it reaches Postgres, whichever
path produced it.  Model output is untrusted text, so it must pass here
before it is accepted as a translation.

Checks performed:
  1. SQL must be a single SELECT (or WITH ... SELECT) statement
  2. No multi-statement SQL
  3. No dangerous keywords (DROP, ALTER, TRUNCATE, INSERT, UPDATE, DELETE, GRANT ...)
  4. No SQL comments (--, /* */)
  5. No system schemas (pg_catalog, information_schema)
"""
from __future__ import annotations

import re

from src.core.logging import get_logger
from src.core.utils import strip_semicolons

logger = get_logger(__name__)

BLOCKED_SCHEMAS = ("pg_catalog", "information_schema")

# ── Compiled patterns ────────────────────────────────────

_DANGEROUS_KW = re.compile(
    r"\b(DROP|ALTER|TRUNCATE|INSERT|UPDATE|DELETE|MERGE|GRANT|REVOKE|"
    r"CREATE|EXECUTE|EXEC|CALL|COPY|SET\s+ROLE|RESET\s+ROLE)\b",
    re.IGNORECASE,
)

_MULTI_STMT = re.compile(r";\s*\S")  # semicolon followed by non-whitespace

_COMMENT_INLINE = re.compile(r"--")
_COMMENT_BLOCK = re.compile(r"/\*")


def check_sql_safety(sql: str) -> list[str]:
    """Return a list of safety violations (empty list = safe)."""
    errors: list[str] = []
    sql_stripped = strip_semicolons(sql)

    # ── 1. Must start with SELECT (or WITH … SELECT for CTEs) ─────
    upper = sql_stripped.upper()
    if not (upper.startswith("SELECT") or upper.startswith("WITH")):
        errors.append("SQL must be a SELECT statement.")

    # ── 2. No multi-statement ────────────────────────
    if _MULTI_STMT.search(sql_stripped):
        errors.append("Multi-statement SQL is not allowed (found ';' followed by another statement).")

    # ── 3. No dangerous keywords ─────────────────────
    m = _DANGEROUS_KW.search(sql_stripped)
    if m:
        errors.append(f"Dangerous keyword detected: '{m.group(1).upper()}'.")

    # ── 4. No SQL comments (injection vector) ────────
    if _COMMENT_INLINE.search(sql_stripped):
        errors.append("Inline comments (--) are not allowed.")
    if _COMMENT_BLOCK.search(sql_stripped):
        errors.append("Block comments (/* */) are not allowed.")

    # ── 5. Blocked schemas ───────────────────────────
    sql_lower = sql_stripped.lower()
    for schema in BLOCKED_SCHEMAS:
        if f"{schema}." in sql_lower:
            errors.append(f"Blocked schema referenced: '{schema}'.")

    if errors:
        logger.warning("SQL safety violations: %s", errors)
    return errors
