"""
Unit tests -- read-only executor error handling and scope settings.
No real database: the connection context manager is replaced with fakes.
"""
from contextlib import contextmanager

import pytest
from sqlalchemy.exc import OperationalError, ProgrammingError

from src.core.errors import ConnectivityError, ExecutionError
from src.db import executor
from src.db.executor import QueryScope, execute_readonly


class _RecordingMonitor:
    def __init__(self):
        self.events = []

    def mark_connected(self):
        self.events.append("connected")

    def mark_disconnected(self, error):
        self.events.append(("disconnected", error))

    def reconnect_in_background(self):
        self.events.append("reconnect")
        return True


class _RejectingConnection:
    def execute(self, statement, params=None):
        raise ProgrammingError(str(statement), {}, Exception("permission denied for table doctors"))


@pytest.fixture
def monitor(monkeypatch):
    fake = _RecordingMonitor()
    monkeypatch.setattr(executor, "get_monitor", lambda: fake)
    return fake


# ── Connectivity failures ────────────────────────────────

def test_unreachable_database_starts_background_reconnect(monkeypatch, monitor):
    @contextmanager
    def _unreachable():
        raise OperationalError("SELECT 1", {}, Exception("connection refused"))
        yield

    monkeypatch.setattr(executor, "readonly_connection", _unreachable)
    with pytest.raises(ConnectivityError, match="connection refused"):
        execute_readonly("SELECT 1")
    assert monitor.events == [("disconnected", "connection refused"), "reconnect"]


def test_rejected_statement_does_not_reconnect(monkeypatch, monitor):
    @contextmanager
    def _rejecting():
        yield _RejectingConnection()

    monkeypatch.setattr(executor, "readonly_connection", _rejecting)
    with pytest.raises(ExecutionError, match="permission denied"):
        execute_readonly("SELECT * FROM doctors")
    assert monitor.events == []


def test_empty_statement_rejected_before_connecting(monitor):
    with pytest.raises(ExecutionError):
        execute_readonly(";")
    assert monitor.events == []


# ── QueryScope ───────────────────────────────────────────

def test_scope_settings():
    scope = QueryScope(organization_ids=(1, 2), doctor_ids=(7,))
    assert scope.as_settings() == {"app.organization_ids": "1,2", "app.doctor_ids": "7"}


def test_empty_scope_sets_nothing():
    assert QueryScope().as_settings() == {}
