"""
Domain exceptions raised by the translation and execution layers.
"""
from __future__ import annotations


class QueryAssistantError(Exception):
    """Base class for every error this service raises on purpose."""


class TableNotFoundError(QueryAssistantError):
    """No table in the schema could be tied to the question."""

    def __init__(self, known_tables: list[str] | None = None):
        self.known_tables = known_tables or []
        hint = ""
        if self.known_tables:
            hint = f" Try mentioning one of: {', '.join(self.known_tables)}."
        super().__init__(f"Could not identify any tables in your query.{hint}")


class NoTableMatchedError(TableNotFoundError):
    """Multi-table detection found neither a table name nor a column overlap."""


class TranslationError(QueryAssistantError):
    """The AI collaborator failed or returned something that is not a SELECT."""


class ExecutionError(QueryAssistantError):
    """The database rejected the statement."""

    def __init__(self, message: str, sql: str = ""):
        self.sql = sql
        super().__init__(message)


class ConnectivityError(ExecutionError):
    """The database could not be reached at all."""
