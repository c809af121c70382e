"""
Unit tests — SQL safety checker.
"""
import pytest

from src.rewrite.sql_safety import check_sql_safety

_SAFE_SQL = """\
SELECT
  d.name AS doctor,
  COUNT(p.id) AS patients
FROM doctors d
LEFT JOIN patients p ON p.doctor_id = d.id
WHERE d.specialty = 'Cardiology'
GROUP BY d.name
ORDER BY patients DESC
LIMIT 50;"""


def test_safe_sql_passes():
    errors = check_sql_safety(_SAFE_SQL)
    assert errors == [], f"Expected no errors but got: {errors}"


def test_cte_passes():
    assert check_sql_safety("WITH x AS (SELECT id FROM doctors) SELECT * FROM x") == []


# ── Must start with SELECT ──────────────────────────────

def test_not_select():
    errors = check_sql_safety("INSERT INTO doctors VALUES (1)")
    assert any("SELECT" in e for e in errors)


# ── No multi-statement ──────────────────────────────────

def test_multi_statement():
    errors = check_sql_safety("SELECT 1; SELECT 2")
    assert any("Multi-statement" in e for e in errors)


def test_trailing_semicolon_ok():
    assert check_sql_safety("SELECT * FROM patients;  ") == []


# ── Dangerous keywords ──────────────────────────────────

@pytest.mark.parametrize("kw", ["DROP", "DELETE", "UPDATE", "TRUNCATE", "GRANT", "CREATE"])
def test_dangerous_keywords(kw):
    errors = check_sql_safety(f"SELECT 1; {kw} TABLE patients")
    assert any(kw in e for e in errors)


def test_keyword_inside_identifier_allowed():
    assert check_sql_safety("SELECT created_at, last_update_note FROM organizations") == []


# ── Comments ─────────────────────────────────────────────

def test_inline_comment():
    errors = check_sql_safety("SELECT * FROM doctors -- hidden")
    assert any("Inline comments" in e for e in errors)


def test_block_comment():
    errors = check_sql_safety("SELECT /* x */ * FROM doctors")
    assert any("Block comments" in e for e in errors)


# ── System schemas ───────────────────────────────────────

@pytest.mark.parametrize("schema", ["pg_catalog", "information_schema"])
def test_blocked_schemas(schema):
    errors = check_sql_safety(f"SELECT * FROM {schema}.tables")
    assert any(schema in e for e in errors)
