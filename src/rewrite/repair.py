"""
SQL validator / repairer -- best-effort, error-message driven.

Given a statement (and optionally the database error it produced) this
either leaves it alone, returns a repaired statement, or returns a
user-facing diagnostic starting with ``Error:``.  Repairs only cover the
handful of mistakes the translators actually make on the clinic schema;
anything else passes through as ``ok``.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Literal

from src.core.logging import get_logger
from src.core.utils import strip_semicolons
from src.rewrite.clauses import qualify_column, split_clauses

logger = get_logger(__name__)

RepairKind = Literal["ok", "repaired", "diagnostic"]

# ── Messages ─────────────────────────────────────────────

MISSING_FROM_MESSAGE = "Error: Missing FROM clause. Please specify which table to query from."
SYNTAX_ERROR_MESSAGE = "Error: SQL syntax error. Please check your query syntax."

_TABLE_SUGGESTIONS: dict[str, str] = {
    "patients": (
        "Error: To query patient data, try asking 'Show me all patients' "
        "or 'List patients with their doctors'"
    ),
    "doctors": (
        "Error: To query doctor data, try asking 'Show me all doctors' "
        "or 'List doctors with their organizations'"
    ),
    "organizations": (
        "Error: To query organization data, try asking 'Show me all organizations' "
        "or 'List doctors by organization'"
    ),
}

# missing table -> (table that must be in FROM, join template over its reference)
_SIBLING_JOINS: dict[str, tuple[str, str]] = {
    "organizations": ("doctors", "LEFT JOIN organizations ON {ref}.organization_id = organizations.id"),
    "doctors": ("patients", "LEFT JOIN doctors ON {ref}.doctor_id = doctors.id"),
    "patients": ("doctors", "LEFT JOIN patients ON patients.doctor_id = {ref}.id"),
}

_KNOWN_TABLES = {"organizations", "doctors", "patients"}
_AMBIGUOUS_COLUMNS = {"id", "name"}

# ── Patterns ─────────────────────────────────────────────

_MISSING_FROM_RE = re.compile(r"\bSELECT\b.*?\b(?:WHERE|GROUP\s+BY|ORDER\s+BY|LIMIT)\b", re.IGNORECASE | re.DOTALL)
_FROM_RE = re.compile(r"\bFROM\b", re.IGNORECASE)
_MISSING_ENTRY_RE = re.compile(r'missing FROM-clause entry for table "([^"]+)"', re.IGNORECASE)
_UNKNOWN_COLUMN_RE = re.compile(r'column "([^"]+)" does not exist', re.IGNORECASE)
_AMBIGUOUS_RE = re.compile(r'column reference "([^"]+)" is ambiguous', re.IGNORECASE)
_SYNTAX_RE = re.compile(r"syntax error", re.IGNORECASE)


@dataclass(frozen=True)
class RepairOutcome:
    kind: RepairKind
    text: str

    @property
    def is_diagnostic(self) -> bool:
        return self.kind == "diagnostic"

    @property
    def repaired(self) -> bool:
        return self.kind == "repaired"


# ── Individual repairs ───────────────────────────────────

def _missing_table(sql: str, table: str) -> RepairOutcome:
    sibling = _SIBLING_JOINS.get(table)
    if sibling is not None:
        required, template = sibling
        clauses = split_clauses(sql)
        if clauses is not None and clauses.primary_table == required and not clauses.has_join(table):
            clauses.add_join(template.format(ref=clauses.primary_ref))
            return RepairOutcome("repaired", clauses.render())

    suggestion = _TABLE_SUGGESTIONS.get(table)
    if suggestion is not None:
        return RepairOutcome("diagnostic", suggestion)
    return RepairOutcome(
        "diagnostic",
        f'Error: Missing FROM-clause entry for table "{table}". '
        "Please include this table in your query with the appropriate JOIN.",
    )


def _ambiguous_column(sql: str, column: str) -> RepairOutcome:
    diagnostic = RepairOutcome(
        "diagnostic",
        f'Error: Column reference "{column}" is ambiguous. '
        "Please qualify this column with the appropriate table name.",
    )
    if column.lower() not in _AMBIGUOUS_COLUMNS:
        return diagnostic
    clauses = split_clauses(sql)
    if clauses is None or clauses.primary_table not in _KNOWN_TABLES:
        return diagnostic

    # Both shared columns at once: the retry only gets one more chance.
    ref = clauses.primary_ref
    before = clauses.render()
    for name in ("select", "where", "group_by", "having", "order_by"):
        body = getattr(clauses, name)
        for shared in sorted(_AMBIGUOUS_COLUMNS):
            body = qualify_column(body, shared, ref)
        setattr(clauses, name, body)
    after = clauses.render()
    if after == before:
        return diagnostic
    return RepairOutcome("repaired", after)


# ── Public API ───────────────────────────────────────────

def repair_sql(sql: str, error: str | None = None) -> RepairOutcome:
    """Inspect *sql* (and the database *error* it raised, if any) and repair it.

    When *error* is omitted the text of *sql* itself is scanned for the error
    messages, so a raw database error string can be passed on its own.
    """
    fixed = strip_semicolons(sql)
    message = error if error is not None else fixed

    missing_entry = _MISSING_ENTRY_RE.search(message)
    unknown_column = _UNKNOWN_COLUMN_RE.search(message)
    ambiguous = _AMBIGUOUS_RE.search(message)

    if _MISSING_FROM_RE.search(fixed) and not _FROM_RE.search(fixed):
        outcome = RepairOutcome("diagnostic", MISSING_FROM_MESSAGE)
    elif missing_entry:
        outcome = _missing_table(fixed, missing_entry.group(1).lower())
    elif unknown_column:
        outcome = RepairOutcome(
            "diagnostic",
            f'Error: Column "{unknown_column.group(1)}" does not exist. '
            "Please check the column name and table reference.",
        )
    elif _SYNTAX_RE.search(message):
        outcome = RepairOutcome("diagnostic", SYNTAX_ERROR_MESSAGE)
    elif ambiguous:
        outcome = _ambiguous_column(fixed, ambiguous.group(1))
    else:
        outcome = RepairOutcome("ok", fixed)

    if outcome.kind == "repaired":
        logger.warning("SQL repaired: %s", outcome.text)
    elif outcome.kind == "diagnostic":
        logger.warning("SQL diagnostic: %s", outcome.text)
    return outcome


def validate_and_fix_sql(sql: str, error: str | None = None) -> str:
    """String form of ``repair_sql``: the repaired SQL, the input, or an ``Error:`` message."""
    return repair_sql(sql, error).text
