"""
Query service -- orchestrates translate -> enhance -> safety -> execute -> repair -> explain.

Full end-to-end pipeline.  When `execute=True` (default) the SQL runs against
Postgres in a READ ONLY transaction restricted by the request's QueryScope;
when the database rejects it, the repairer gets one chance to fix the
statement and the query is retried once.  Failures are reported on the
result (``error``), never raised, so the API can always answer.
"""
from __future__ import annotations

from typing import Any, Literal

from sqlalchemy.exc import SQLAlchemyError

from src.core.errors import ConnectivityError, ExecutionError, TableNotFoundError
from src.core.logging import get_logger
from src.core.utils import timer
from src.db.executor import QueryScope, execute_readonly
from src.nlq.intent import QueryIntent
from src.nlq.processor import NLPProcessor
from src.nlq.sql_generator import GeneratedSQL
from src.rewrite.enhancers import enhance_doctor_queries, enhance_patient_queries
from src.rewrite.repair import repair_sql
from src.rewrite.sql_safety import check_sql_safety
from src.schema.introspection import introspect_schema
from src.schema.loader import load_schema
from src.schema.models import Table

logger = get_logger(__name__)

ResultType = Literal["table", "list", "value", "empty"]


def detect_result_type(rows: list[dict[str, Any]]) -> ResultType:
    """How the rows are best shown: one value, a single-column list, or a table."""
    if not rows:
        return "empty"
    width = len(rows[0])
    if width == 1 and len(rows) == 1:
        return "value"
    if width == 1:
        return "list"
    return "table"


def get_schema(live: bool = True) -> list[Table]:
    """Live schema when the database answers, otherwise the YAML fixture."""
    if live:
        try:
            tables = introspect_schema()
        except SQLAlchemyError as exc:
            logger.warning("Schema introspection failed, using fixture: %s", exc)
        else:
            if any(t.columns for t in tables):
                return tables
            logger.warning("Introspection returned no usable tables, using fixture")
    return load_schema()


class QueryResult:
    def __init__(
        self,
        question: str,
        sql: str = "",
        params: dict[str, Any] | None = None,
        rows: list[dict[str, Any]] | None = None,
        source: str | None = None,
        fallback_reason: str | None = None,
        intent: QueryIntent | None = None,
        explanation: str = "",
        explanation_source: str | None = None,
        error: str | None = None,
        safety_errors: list[str] | None = None,
        repaired: bool = False,
        executed: bool = False,
        latency_ms: int = 0,
    ):
        self.question = question
        self.sql = sql
        self.params = params or {}
        self.rows = rows or []
        self.source = source
        self.fallback_reason = fallback_reason
        self.intent = intent
        self.explanation = explanation
        self.explanation_source = explanation_source
        self.error = error
        self.safety_errors = safety_errors or []
        self.repaired = repaired
        self.executed = executed
        self.latency_ms = latency_ms

    @property
    def result_type(self) -> ResultType:
        return detect_result_type(self.rows)

    @property
    def success(self) -> bool:
        return self.error is None and not self.safety_errors


def _run_with_repair(sql: str, params: dict[str, Any], scope: QueryScope | None) -> tuple[list[dict], str, bool, str | None]:
    """Execute, and on a database error retry once with the repaired statement.

    Returns (rows, sql actually run, repaired?, error message).
    """
    try:
        return execute_readonly(sql, params, scope), sql, False, None
    except ConnectivityError as exc:
        return [], sql, False, f"Database unavailable: {exc}"
    except ExecutionError as exc:
        error_text = str(exc)
        outcome = repair_sql(sql, error_text)

    if not outcome.repaired:
        return [], sql, False, outcome.text if outcome.is_diagnostic else error_text

    logger.info("Retrying with repaired SQL")
    try:
        return execute_readonly(outcome.text, params, scope), outcome.text, True, None
    except ConnectivityError as retry_exc:
        return [], outcome.text, True, f"Database unavailable: {retry_exc}"
    except ExecutionError as retry_exc:
        second = repair_sql(outcome.text, str(retry_exc))
        return [], outcome.text, True, second.text if second.is_diagnostic else str(retry_exc)


def ask(
    question: str,
    mode: str | None = None,
    execute: bool = True,
    scope: QueryScope | None = None,
    explain: bool = True,
    tables: list[Table] | None = None,
) -> QueryResult:
    """End-to-end: question -> QueryResult.

    Parameters
    ----------
    question : str
        Natural-language question about the clinic data.
    mode : str, optional
        LLM provider (mock | openai | anthropic | gemini); settings default.
    execute : bool
        If False, return the SQL without executing (dry-run).
    scope : QueryScope, optional
        Organizations / doctors the query is restricted to.
    explain : bool
        Attach a plain-language explanation of the SQL.
    tables : list[Table], optional
        Schema to translate against; live schema (or fixture) by default.
    """
    logger.info("QueryService.ask | question=%s | mode=%s | execute=%s", question, mode, execute)

    with timer() as t:
        if tables is None:
            tables = get_schema(live=execute)
        processor = NLPProcessor(tables, mode=mode)

        # 1. Translate: AI-path or Rule-path
        try:
            translation = processor.translate(question)
        except TableNotFoundError as exc:
            logger.warning("Translation failed: %s", exc)
            result = QueryResult(question=question, error=str(exc))
        else:
            # 2. Enhance with display joins
            sql = enhance_patient_queries(enhance_doctor_queries(translation.sql))
            params = translation.params

            # 3. Safety gate
            safety_errors = check_sql_safety(sql)

            # 4. Execute (with one repair retry)
            rows: list[dict[str, Any]] = []
            repaired = False
            error = None
            if execute and not safety_errors:
                rows, sql, repaired, error = _run_with_repair(sql, params, scope)

            preview = GeneratedSQL(sql, params).inline()

            # 5. Explanation
            explanation = ""
            explanation_source = None
            if explain and error is None and not safety_errors:
                described = processor.explain(preview, translation.intent)
                explanation, explanation_source = described.text, described.source

            result = QueryResult(
                question=question,
                sql=preview,
                params=params,
                rows=rows,
                source=translation.source,
                fallback_reason=getattr(translation, "reason", None),
                intent=translation.intent,
                explanation=explanation,
                explanation_source=explanation_source,
                error=error,
                safety_errors=safety_errors,
                repaired=repaired,
                executed=execute and not safety_errors and error is None,
            )

    result.latency_ms = t["elapsed_ms"]
    return result
