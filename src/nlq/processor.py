"""
NLPProcessor -- orchestrates AI-path translation with a Rule-path fallback.

    question -> AI-path (LLM -> clean -> safety gate)      => Translated
             '-> Rule-path (IntentDetector -> generate_sql) => Fallback(reason)

The result is a tagged value rather than an exception, so callers (and
tests) can tell which path produced the SQL and why the AI was bypassed.
Only a Rule-path ``TableNotFoundError`` escapes ``translate``.
"""
from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

from src.core.config import get_settings
from src.core.errors import TranslationError
from src.core.logging import get_logger
from src.nlq.ai_service import explain_sql, translate_to_sql
from src.nlq.detector import IntentDetector
from src.nlq.explainer import build_explanation, explanation_from_sql, render_explanation
from src.nlq.intent import QueryIntent
from src.nlq.sql_generator import GeneratedSQL, generate_sql
from src.schema.models import Table

logger = get_logger(__name__)

MOCK_MODE_REASON = "AI translation disabled (mock mode)"


# ── Result types ─────────────────────────────────────────

class Translated(BaseModel):
    """SQL produced by the AI collaborator."""

    kind: Literal["translated"] = "translated"
    sql: str
    params: dict[str, Any] = Field(default_factory=dict)
    intent: QueryIntent | None = None

    @property
    def source(self) -> str:
        return "ai"


class Fallback(BaseModel):
    """SQL produced by the rule path, with the reason the AI path was not used."""

    kind: Literal["fallback"] = "fallback"
    sql: str
    params: dict[str, Any] = Field(default_factory=dict)
    reason: str
    intent: QueryIntent

    @property
    def source(self) -> str:
        return "rules"


class Explanation(BaseModel):
    text: str
    source: Literal["ai", "template"]


# ── Orchestrator ─────────────────────────────────────────

class NLPProcessor:
    """Translate questions about *tables* into SQL and explain the result.

    Parameters
    ----------
    tables : list[Table]
        Schema the question is resolved against.
    mode : str, optional
        LLM provider (mock | openai | anthropic | gemini); defaults to
        ``settings.llm_provider``.  ``mock`` skips the AI path entirely.
    """

    def __init__(self, tables: list[Table], mode: str | None = None, default_limit: int | None = None):
        self.tables = tables
        self.mode = (mode or get_settings().llm_provider).lower()
        self.detector = IntentDetector(tables, default_limit=default_limit)

    def rule_translate(self, text: str) -> tuple[QueryIntent, GeneratedSQL]:
        intent = self.detector.detect_intent(text)
        return intent, generate_sql(intent)

    def translate(self, text: str) -> Translated | Fallback:
        """AI-path first, Rule-path on any translation failure.

        Raises ``TableNotFoundError`` when the rule path cannot tie the
        question to a table.
        """
        if self.mode == "mock":
            reason = MOCK_MODE_REASON
        else:
            try:
                sql = translate_to_sql(text, self.tables, provider=self.mode)
                logger.info("Translated via AI-path (provider=%s)", self.mode)
                return Translated(sql=sql)
            except TranslationError as exc:
                logger.warning("AI-path failed, falling back to rules: %s", exc)
                reason = str(exc)

        intent, generated = self.rule_translate(text)
        return Fallback(sql=generated.text, params=generated.params, reason=reason, intent=intent)

    def explain(self, sql: str, intent: QueryIntent | None = None) -> Explanation:
        """AI explanation of *sql*, or a templated one built from *intent* / the SQL."""
        if self.mode != "mock":
            try:
                return Explanation(text=explain_sql(sql, provider=self.mode), source="ai")
            except TranslationError as exc:
                logger.warning("AI explanation failed, using template: %s", exc)

        structured = build_explanation(intent) if intent is not None else explanation_from_sql(sql)
        return Explanation(text=render_explanation(structured), source="template")

    def process_query(self, text: str) -> str:
        """Rule-path SQL for *text*, with values written inline."""
        _, generated = self.rule_translate(text)
        return generated.inline()
