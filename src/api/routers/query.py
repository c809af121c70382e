"""POST /query, /query/translate, /query/explain and /sql/repair -- translation endpoints."""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from src.core.errors import TableNotFoundError
from src.core.logging import get_logger
from src.db.executor import QueryScope
from src.nlq.explainer import explanation_from_sql
from src.nlq.intent import QueryExplanation
from src.nlq.processor import NLPProcessor
from src.nlq.service import ask as service_ask
from src.nlq.sql_generator import GeneratedSQL
from src.rewrite.enhancers import enhance_doctor_queries, enhance_patient_queries
from src.rewrite.repair import repair_sql
from src.schema.loader import load_schema

logger = get_logger(__name__)
router = APIRouter()


class QueryRequest(BaseModel):
    question: str = Field(..., min_length=3, max_length=500, description="Natural-language question")
    mode: str | None = Field(None, description="mock | openai | anthropic | gemini (settings default)")
    execute: bool = Field(True, description="If true, run SQL against Postgres and return rows")
    explain: bool = Field(True, description="Attach a plain-language explanation")
    organization_ids: list[int] = Field(default_factory=list, description="Restrict to these organizations")
    doctor_ids: list[int] = Field(default_factory=list, description="Restrict to these doctors")


class QueryResponse(BaseModel):
    question: str
    sql: str
    params: dict[str, Any]
    rows: list[dict]
    result_type: str
    source: str | None
    fallback_reason: str | None
    intent: dict | None
    explanation: str
    explanation_source: str | None
    error: str | None
    safety_errors: list[str]
    repaired: bool
    executed: bool
    success: bool
    latency_ms: int


class TranslateRequest(BaseModel):
    question: str = Field(..., min_length=3, max_length=500)
    mode: str | None = None


class TranslateResponse(BaseModel):
    question: str
    kind: str
    source: str
    sql: str
    params: dict[str, Any]
    reason: str | None
    intent: dict | None


class ExplainRequest(BaseModel):
    sql: str = Field(..., min_length=1)
    mode: str | None = None


class ExplainResponse(BaseModel):
    sql: str
    explanation: str
    source: str
    structured: QueryExplanation


class RepairRequest(BaseModel):
    sql: str = Field(..., min_length=1)
    error: str | None = Field(None, description="Database error message the SQL produced")


class RepairResponse(BaseModel):
    kind: str
    text: str


@router.post("/query", response_model=QueryResponse)
def query_endpoint(req: QueryRequest):
    """Full pipeline: question -> SQL -> enhance -> safety check -> execute -> explain."""
    scope = QueryScope(organization_ids=tuple(req.organization_ids), doctor_ids=tuple(req.doctor_ids))
    try:
        result = service_ask(req.question, mode=req.mode, execute=req.execute, scope=scope, explain=req.explain)
    except Exception as exc:
        logger.exception("QueryService.ask failed")
        raise HTTPException(status_code=500, detail=str(exc))

    return QueryResponse(
        question=result.question,
        sql=result.sql,
        params=result.params,
        rows=result.rows,
        result_type=result.result_type,
        source=result.source,
        fallback_reason=result.fallback_reason,
        intent=result.intent.model_dump() if result.intent else None,
        explanation=result.explanation,
        explanation_source=result.explanation_source,
        error=result.error,
        safety_errors=result.safety_errors,
        repaired=result.repaired,
        executed=result.executed,
        success=result.success,
        latency_ms=result.latency_ms,
    )


@router.post("/query/translate", response_model=TranslateResponse)
def translate_endpoint(req: TranslateRequest):
    """Dry-run: question -> enhanced SQL against the schema fixture (nothing executed)."""
    try:
        translation = NLPProcessor(load_schema(), mode=req.mode).translate(req.question)
    except TableNotFoundError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    except Exception as exc:
        logger.exception("Translation failed")
        raise HTTPException(status_code=500, detail=str(exc))

    sql = enhance_patient_queries(enhance_doctor_queries(translation.sql))
    return TranslateResponse(
        question=req.question,
        kind=translation.kind,
        source=translation.source,
        sql=GeneratedSQL(sql, translation.params).inline(),
        params=translation.params,
        reason=getattr(translation, "reason", None),
        intent=translation.intent.model_dump() if translation.intent else None,
    )


@router.post("/query/explain", response_model=ExplainResponse)
def explain_endpoint(req: ExplainRequest):
    """Plain-language explanation of a SQL statement."""
    try:
        explanation = NLPProcessor(load_schema(), mode=req.mode).explain(req.sql)
    except Exception as exc:
        logger.exception("Explanation failed")
        raise HTTPException(status_code=500, detail=str(exc))

    return ExplainResponse(
        sql=req.sql,
        explanation=explanation.text,
        source=explanation.source,
        structured=explanation_from_sql(req.sql),
    )


@router.post("/sql/repair", response_model=RepairResponse)
def repair_endpoint(req: RepairRequest):
    """Best-effort repair of a statement, optionally guided by its database error."""
    outcome = repair_sql(req.sql, req.error)
    return RepairResponse(kind=outcome.kind, text=outcome.text)
