"""
Read-only SQL executor.

Every translated query runs through `execute_readonly`, which:
  1. Strips trailing semicolons (one statement per call)
  2. Opens a READ ONLY transaction (Postgres-enforced)
  3. Enforces the query timeout (statement_timeout)
  4. Applies the request's QueryScope as transaction-local settings
  5. Binds parameters through text(); SQL without parameters goes to the
     driver verbatim so literal ``%`` and ``:`` survive
  6. Converts Decimal/date/datetime to JSON-safe Python types
"""
from __future__ import annotations

import datetime
import decimal
from dataclasses import dataclass
from typing import Any

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, SQLAlchemyError

from src.core.config import get_settings
from src.core.errors import ConnectivityError, ExecutionError
from src.core.logging import get_logger
from src.core.utils import strip_semicolons
from src.db.connection import readonly_connection
from src.db.connectivity import get_monitor

logger = get_logger(__name__)


@dataclass(frozen=True)
class QueryScope:
    """Organizations / doctors the current request is restricted to.

    Applied as ``app.organization_ids`` / ``app.doctor_ids`` for row-level
    security policies; both settings vanish when the transaction ends.
    """

    organization_ids: tuple[int, ...] = ()
    doctor_ids: tuple[int, ...] = ()

    def as_settings(self) -> dict[str, str]:
        settings: dict[str, str] = {}
        if self.organization_ids:
            settings["app.organization_ids"] = ",".join(str(int(i)) for i in self.organization_ids)
        if self.doctor_ids:
            settings["app.doctor_ids"] = ",".join(str(int(i)) for i in self.doctor_ids)
        return settings


def _serialise_value(val: Any) -> Any:
    """Convert DB types to JSON-serialisable Python types."""
    if isinstance(val, decimal.Decimal):
        return float(val)
    if isinstance(val, (datetime.date, datetime.datetime)):
        return val.isoformat()
    if isinstance(val, datetime.timedelta):
        return str(val)
    return val


def _error_message(exc: SQLAlchemyError) -> str:
    """The database's own message, without SQLAlchemy's statement echo."""
    orig = getattr(exc, "orig", None)
    return str(orig).strip() if orig is not None else str(exc)


def execute_readonly(
    sql: str,
    params: dict[str, Any] | None = None,
    scope: QueryScope | None = None,
    timeout_ms: int | None = None,
) -> list[dict[str, Any]]:
    """Execute a read-only SQL query and return rows as serialisable dicts.

    Raises
    ------
    ConnectivityError
        If the database cannot be reached.
    ExecutionError
        If the database rejects the statement.
    """
    statement = strip_semicolons(sql)
    if not statement:
        raise ExecutionError("Empty SQL statement.", sql=sql)
    timeout = timeout_ms if timeout_ms is not None else get_settings().query_timeout_ms
    logger.info("Executing SQL (%d chars, %d params)", len(statement), len(params or {}))

    connected = False
    try:
        with readonly_connection() as conn:
            connected = True
            conn.execute(text(f"SET LOCAL statement_timeout = {int(timeout)}"))
            for key, value in (scope or QueryScope()).as_settings().items():
                conn.execute(text("SELECT set_config(:key, :value, true)"), {"key": key, "value": value})

            if params:
                result = conn.execute(text(statement), params)
            else:
                result = conn.exec_driver_sql(statement, execution_options={"no_parameters": True})
            columns = list(result.keys())
            rows = [
                {col: _serialise_value(val) for col, val in zip(columns, row)}
                for row in result.fetchall()
            ]
    except SQLAlchemyError as exc:
        message = _error_message(exc)
        invalidated = isinstance(exc, DBAPIError) and exc.connection_invalidated
        if not connected or invalidated:
            logger.error("Database unreachable: %s", message)
            monitor = get_monitor()
            monitor.mark_disconnected(message)
            monitor.reconnect_in_background()
            raise ConnectivityError(message, sql=statement) from exc
        logger.warning("SQL execution failed: %s", message)
        raise ExecutionError(message, sql=statement) from exc

    get_monitor().mark_connected()
    logger.info("Returned %d rows", len(rows))
    return rows
