"""
Template-based explanations (no LLM needed).

Used whenever the AI explanation is unavailable: mock mode, a missing key,
or a provider error.  An explanation is first assembled as a
``QueryExplanation`` (from the detected intent when there is one, otherwise
from the SQL's clauses) and then rendered to a few plain sentences.
"""
from __future__ import annotations

import re

from src.core.logging import get_logger
from src.nlq.intent import QueryExplanation, QueryIntent
from src.rewrite.clauses import split_clauses

logger = get_logger(__name__)

_ACTIONS: dict[str, str] = {
    "select": "Retrieve records",
    "count": "Count records",
    "aggregate": "Calculate summary values",
    "group": "Summarize records by group",
    "filter": "Retrieve the matching records",
    "sort": "Retrieve records in a specific order",
    "join": "Combine related records",
}

_OPERATOR_WORDS: dict[str, str] = {
    "=": "is",
    "!=": "is not",
    ">": "is greater than",
    "<": "is less than",
    ">=": "is at least",
    "<=": "is at most",
    "LIKE": "contains",
}

_JOIN_TABLE_RE = re.compile(r"\bjoin\s+(\w+)", re.IGNORECASE)


def _join_words(items: list[str]) -> str:
    if len(items) <= 1:
        return "".join(items)
    return ", ".join(items[:-1]) + " and " + items[-1]


def build_explanation(intent: QueryIntent) -> QueryExplanation:
    """Describe a rule-path intent."""
    filters = None
    if intent.conditions:
        described = []
        for cond in intent.conditions:
            value = cond.value.strip("%") if cond.operator == "LIKE" and isinstance(cond.value, str) else cond.value
            described.append(f"{cond.field} {_OPERATOR_WORDS[cond.operator]} {value}")
        filters = _join_words(described)

    sorting = None
    if intent.order_by:
        sorting = _join_words([
            f"{o.field} ({'descending' if o.direction == 'desc' else 'ascending'})" for o in intent.order_by
        ])

    limit = None
    if intent.type != "count" and intent.limit is not None:
        limit = f"up to {intent.limit} rows"
        if intent.offset:
            limit += f", skipping the first {intent.offset}"

    return QueryExplanation(
        action=f"{_ACTIONS[intent.type]} from {intent.table}",
        tables=[intent.table] + [j.table for j in intent.joins],
        filters=filters,
        grouping=_join_words(intent.group_by) or None,
        sorting=sorting,
        limit=limit,
        joins=_join_words([j.table for j in intent.joins]) or None,
    )


def explanation_from_sql(sql: str) -> QueryExplanation:
    """Describe an arbitrary statement clause by clause."""
    clauses = split_clauses(sql)
    if clauses is None or clauses.primary_table is None:
        return QueryExplanation(action="Run a custom query")

    joined = [t.lower() for t in _JOIN_TABLE_RE.findall(clauses.from_)]
    action = "Calculate summary values" if clauses.is_aggregate else "Retrieve records"
    limit = f"up to {clauses.limit} rows" if clauses.limit else None
    if limit and clauses.offset:
        limit += f", skipping the first {clauses.offset}"

    return QueryExplanation(
        action=f"{action} from {clauses.primary_table}",
        tables=[clauses.primary_table] + joined,
        filters=clauses.where or None,
        grouping=clauses.group_by or None,
        sorting=clauses.order_by or None,
        limit=limit,
        joins=_join_words(joined) or None,
    )


def render_explanation(explanation: QueryExplanation) -> str:
    """Plain sentences a non-technical reader can follow."""
    sentences = [f"This query will {explanation.action[0].lower()}{explanation.action[1:]}."]
    if explanation.joins:
        sentences.append(f"It brings in related data from {explanation.joins}.")
    if explanation.filters:
        sentences.append(f"Only rows where {explanation.filters} are included.")
    if explanation.grouping:
        sentences.append(f"Results are grouped by {explanation.grouping}.")
    if explanation.sorting:
        sentences.append(f"Results are sorted by {explanation.sorting}.")
    if explanation.limit:
        sentences.append(f"It returns {explanation.limit}.")
    return " ".join(sentences)
