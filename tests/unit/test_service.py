"""
Unit tests -- query service: end-to-end pipeline with the database stubbed out.
Uses execute=False (or a fake executor) so no DB connection is needed.
"""
import pytest
from sqlalchemy.exc import OperationalError

from src.core.errors import ConnectivityError, ExecutionError
from src.db.executor import QueryScope
from src.nlq import processor as processor_module
from src.nlq import service
from src.nlq.processor import MOCK_MODE_REASON
from src.nlq.service import QueryResult, ask, detect_result_type, get_schema


class _FakeExecutor:
    """Plays back queued results (rows or exceptions) and records every call."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    def __call__(self, sql, params=None, scope=None, timeout_ms=None):
        self.calls.append((sql, params, scope))
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@pytest.fixture(autouse=True)
def offline_schema(monkeypatch):
    """Live introspection finds nothing, so every test translates against the fixture."""
    monkeypatch.setattr(service, "introspect_schema", lambda *args, **kwargs: [])


@pytest.fixture
def fake_executor(monkeypatch):
    def _install(*outcomes):
        fake = _FakeExecutor(*outcomes)
        monkeypatch.setattr(service, "execute_readonly", fake)
        return fake

    return _install


# ── Dry run ──────────────────────────────────────────────

def test_ask_returns_query_result():
    result = ask("how many doctors are there", mode="mock", execute=False)
    assert isinstance(result, QueryResult)


def test_ask_count_dry_run():
    result = ask("how many doctors are there", mode="mock", execute=False)
    assert result.success is True
    assert result.sql == "SELECT COUNT(*) as count FROM doctors;"
    assert result.source == "rules"
    assert result.fallback_reason == MOCK_MODE_REASON
    assert result.intent.type == "count"
    assert result.rows == []
    assert result.executed is False
    assert result.result_type == "empty"


def test_ask_explanation_attached():
    result = ask("how many doctors are there", mode="mock", execute=False)
    assert result.explanation == "This query will count records from doctors."
    assert result.explanation_source == "template"


def test_ask_explain_disabled():
    result = ask("how many doctors are there", mode="mock", execute=False, explain=False)
    assert result.explanation == ""
    assert result.explanation_source is None


def test_ask_enhances_patient_query():
    result = ask("show me all patients", mode="mock", execute=False)
    assert "LEFT JOIN doctors ON patients.doctor_id = doctors.id" in result.sql
    assert "doctors.name AS doctor_name" in result.sql


def test_ask_unknown_table_reported_not_raised():
    result = ask("what is the weather", mode="mock", execute=False)
    assert result.success is False
    assert result.error.startswith("Could not identify any tables in your query.")
    assert result.sql == ""


def test_ask_latency_tracked():
    result = ask("list doctors", mode="mock", execute=False)
    assert result.latency_ms >= 0


def test_ask_blocks_unsafe_ai_sql(monkeypatch):
    monkeypatch.setattr(
        processor_module, "translate_to_sql",
        lambda text, tables, provider=None: "SELECT * FROM pg_catalog.pg_tables;",
    )
    result = ask("list the system tables of doctors", mode="openai", execute=False)
    assert result.source == "ai"
    assert any("pg_catalog" in e for e in result.safety_errors)
    assert result.success is False
    assert result.explanation == ""


# ── Execution ────────────────────────────────────────────

def test_ask_executes_with_params_and_scope(fake_executor):
    fake = fake_executor([{"count": 42}])
    scope = QueryScope(organization_ids=(1, 2))
    result = ask("how many female patients are there", mode="mock", scope=scope, explain=False)
    assert result.executed is True
    assert result.rows == [{"count": 42}]
    assert result.result_type == "value"
    sql, params, used_scope = fake.calls[0]
    assert sql == "SELECT COUNT(*) as count FROM patients WHERE gender = :p0;"
    assert params == {"p0": "female"}
    assert used_scope is scope


def test_ask_repairs_ambiguous_column_and_retries(fake_executor):
    fake = fake_executor(
        ExecutionError('column reference "id" is ambiguous'),
        [{"id": 3, "name": "Dr. Who", "organization_name": "Mercy Clinic"}],
    )
    result = ask("Show me doctors whose id is 3", mode="mock", explain=False)
    assert result.repaired is True
    assert result.error is None
    assert result.result_type == "table"
    assert len(fake.calls) == 2
    assert "WHERE doctors.id = :p0" in fake.calls[1][0]
    assert "doctors.id = 3" in result.sql


def test_ask_reports_repair_diagnostic(fake_executor):
    fake_executor(ExecutionError('column "foo" does not exist'))
    result = ask("list doctors", mode="mock")
    assert result.success is False
    assert result.error == (
        'Error: Column "foo" does not exist. Please check the column name and table reference.'
    )
    assert result.executed is False
    assert result.explanation == ""


def test_ask_reports_unrepairable_error(fake_executor):
    fake_executor(ExecutionError("canceling statement due to statement timeout"))
    result = ask("list doctors", mode="mock", explain=False)
    assert result.error == "canceling statement due to statement timeout"
    assert result.repaired is False


def test_ask_reports_permission_error_without_repair(fake_executor):
    fake = fake_executor(ExecutionError("permission denied for table doctors"))
    result = ask("list doctors", mode="mock", explain=False)
    assert result.success is False
    assert result.error == "permission denied for table doctors"
    assert result.executed is False
    assert len(fake.calls) == 1


def test_ask_reports_connectivity_error(fake_executor):
    fake = fake_executor(ConnectivityError("could not connect to server"))
    result = ask("list doctors", mode="mock", explain=False)
    assert result.error == "Database unavailable: could not connect to server"
    assert len(fake.calls) == 1


# ── Result type ──────────────────────────────────────────

def test_result_type_empty():
    assert detect_result_type([]) == "empty"


def test_result_type_value():
    assert detect_result_type([{"count": 3}]) == "value"


def test_result_type_list():
    assert detect_result_type([{"name": "a"}, {"name": "b"}]) == "list"


def test_result_type_table():
    assert detect_result_type([{"id": 1, "name": "a"}]) == "table"


# ── Schema source ────────────────────────────────────────

def test_get_schema_falls_back_to_fixture(monkeypatch):
    def _unreachable(*args, **kwargs):
        raise OperationalError("SELECT 1", {}, Exception("connection refused"))

    monkeypatch.setattr(service, "introspect_schema", _unreachable)
    names = [t.name for t in get_schema(live=True)]
    assert names == ["organizations", "doctors", "patients"]


def test_get_schema_offline_skips_introspection(monkeypatch):
    def _fail(*args, **kwargs):
        raise AssertionError("introspection should not run")

    monkeypatch.setattr(service, "introspect_schema", _fail)
    assert len(get_schema(live=False)) == 3
