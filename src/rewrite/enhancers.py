"""
Query enhancers -- add the display context users expect from doctor and
patient queries.

* A doctor query gets its organization's name.
* A patient query gets its doctor's name, an explicit column list instead of
  ``*``, and at least 20 rows when it asked for fewer than 10.

Both rewrites are idempotent.  Aggregate / grouped statements get no join,
and anything the clause splitter cannot read is left untouched.
"""
from __future__ import annotations

import re

from src.core.logging import get_logger
from src.rewrite.clauses import qualify_column, split_clauses

logger = get_logger(__name__)

PATIENT_COLUMNS: list[str] = [
    "id", "name", "age", "gender", "address", "phone",
    "email", "doctor_id", "medical_history", "last_visit",
]

_MIN_PATIENT_LIMIT = 10
_RAISED_PATIENT_LIMIT = 20
_SHARED_COLUMNS = ("id", "name")


def _mentions(sql: str, name: str) -> bool:
    return re.search(rf"\b{re.escape(name)}\b", sql, re.IGNORECASE) is not None


def enhance_doctor_queries(sql: str) -> str:
    """Join ``organizations`` onto a doctors query and expose ``organization_name``."""
    clauses = split_clauses(sql)
    if clauses is None or clauses.primary_table != "doctors":
        return sql
    if clauses.has_join("organizations") or clauses.is_aggregate:
        return sql

    ref = clauses.primary_ref
    clauses.add_join(f"LEFT JOIN organizations ON {ref}.organization_id = organizations.id")
    clauses.qualify_select_items(ref)
    if not _mentions(sql, "organization_name"):
        items = [f"{ref}.*" if item == "*" else item for item in clauses.select_items()]
        items.append("organizations.name AS organization_name")
        clauses.set_select_items(items)

    enhanced = clauses.render()
    logger.info("Doctor query enhanced: %s", enhanced)
    return enhanced


def enhance_patient_queries(sql: str, columns: list[str] | None = None) -> str:
    """Join ``doctors`` onto a patients query, expand ``*``, and raise tiny limits.

    *columns* overrides the patient column list used to replace ``*`` (for a
    schema that differs from the default clinic layout).  Aggregate and
    grouped queries only get the limit raised.
    """
    clauses = split_clauses(sql)
    if clauses is None or clauses.primary_table != "patients":
        return sql

    ref = clauses.primary_ref
    changed = False

    if not clauses.is_aggregate:
        if not clauses.has_join("doctors"):
            clauses.add_join(f"LEFT JOIN doctors ON {ref}.doctor_id = doctors.id")
            clauses.qualify_select_items(ref)
            # doctors also has id and name
            for column in _SHARED_COLUMNS:
                clauses.where = qualify_column(clauses.where, column, ref)
                clauses.order_by = qualify_column(clauses.order_by, column, ref)
            if not _mentions(sql, "doctor_name"):
                clauses.set_select_items(clauses.select_items() + ["doctors.name AS doctor_name"])
            changed = True

        # With doctors joined a bare * would also return doctors.id / doctors.name.
        stars = {"*", f"{ref}.*", "patients.*"}
        items = clauses.select_items()
        if any(item in stars for item in items):
            explicit = [f"{ref}.{c}" for c in (columns or PATIENT_COLUMNS)]
            expanded: list[str] = []
            for item in items:
                expanded.extend(explicit if item in stars else [item])
            clauses.set_select_items(expanded)
            changed = True

    if clauses.limit.isdigit() and int(clauses.limit) < _MIN_PATIENT_LIMIT:
        clauses.limit = str(_RAISED_PATIENT_LIMIT)
        changed = True

    if not changed:
        return sql
    enhanced = clauses.render()
    logger.info("Patient query enhanced: %s", enhanced)
    return enhanced
