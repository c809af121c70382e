"""
Unit tests — SQL generator: intent -> SELECT text with bound parameters.
"""
from src.nlq.detector import IntentDetector
from src.nlq.intent import Aggregate, Condition, Join, OrderBy, QueryIntent
from src.nlq.sql_generator import GeneratedSQL, generate_sql
from src.schema.loader import load_schema


# ── Projection / limit ───────────────────────────────────

def test_columns_and_limit():
    intent = QueryIntent(type="select", table="doctors", columns=["name", "specialty"], limit=10)
    assert generate_sql(intent).text == "SELECT name, specialty FROM doctors LIMIT 10;"


def test_no_columns_selects_star():
    intent = QueryIntent(table="organizations")
    assert generate_sql(intent).text == "SELECT * FROM organizations;"


def test_deterministic():
    intent = QueryIntent(
        type="filter", table="patients", columns=["name"],
        conditions=[Condition(field="age", operator=">", value=30)], limit=5,
    )
    assert generate_sql(intent) == generate_sql(intent)


# ── Conditions ───────────────────────────────────────────

def test_conditions_are_bound_parameters():
    intent = QueryIntent(
        type="filter", table="patients", columns=["name"],
        conditions=[
            Condition(field="age", operator=">", value=30),
            Condition(field="gender", operator="=", value="female"),
        ],
        limit=100,
    )
    generated = generate_sql(intent)
    assert generated.text == "SELECT name FROM patients WHERE age > :p0 AND gender = :p1 LIMIT 100;"
    assert generated.params == {"p0": 30, "p1": "female"}


def test_inline_preview():
    intent = QueryIntent(
        type="filter", table="patients", columns=["name"],
        conditions=[
            Condition(field="age", operator=">", value=30),
            Condition(field="gender", operator="=", value="female"),
        ],
    )
    assert generate_sql(intent).inline() == "SELECT name FROM patients WHERE age > 30 AND gender = 'female';"


def test_inline_doubles_quotes():
    generated = GeneratedSQL("SELECT * FROM patients WHERE name = :p0;", {"p0": "O'Brien"})
    assert generated.inline() == "SELECT * FROM patients WHERE name = 'O''Brien';"


def test_inline_leaves_casts_alone():
    generated = GeneratedSQL("SELECT created_at::date FROM organizations WHERE id = :p0;", {"p0": 1})
    assert generated.inline() == "SELECT created_at::date FROM organizations WHERE id = 1;"


def test_value_never_in_sql_text():
    intent = QueryIntent(
        type="filter", table="doctors",
        conditions=[Condition(field="name", operator="=", value="x'; DROP TABLE doctors; --")],
    )
    assert "DROP" not in generate_sql(intent).text


# ── Count ────────────────────────────────────────────────

def test_count_short_circuit():
    intent = QueryIntent(
        type="count", table="doctors", columns=["COUNT(*) AS count"],
        aggregate=[Aggregate(function="count", field="*", alias="count")], limit=100,
    )
    assert generate_sql(intent).text == "SELECT COUNT(*) as count FROM doctors;"


def test_count_keeps_where():
    intent = QueryIntent(
        type="count", table="patients",
        conditions=[Condition(field="gender", operator="=", value="female")],
        aggregate=[Aggregate(function="count", field="*", alias="count")],
    )
    generated = generate_sql(intent)
    assert generated.text == "SELECT COUNT(*) as count FROM patients WHERE gender = :p0;"
    assert generated.params == {"p0": "female"}


# ── Aggregates / grouping ────────────────────────────────

def test_group_by():
    intent = QueryIntent(
        type="group", table="patients", group_by=["gender"],
        aggregate=[Aggregate(function="count", field="*", alias="count")], limit=100,
    )
    assert generate_sql(intent).text == (
        "SELECT gender, COUNT(*) AS count FROM patients GROUP BY gender LIMIT 100;"
    )


def test_average():
    intent = QueryIntent(
        type="aggregate", table="patients",
        aggregate=[Aggregate(function="avg", field="age", alias="avg_age")], limit=100,
    )
    assert generate_sql(intent).text == "SELECT AVG(age) AS avg_age FROM patients LIMIT 100;"


# ── Joins ────────────────────────────────────────────────

def test_join_qualifies_bare_columns():
    intent = QueryIntent(
        type="join", table="patients",
        columns=["name", "doctors.name AS doctor_name"],
        conditions=[Condition(field="age", operator=">", value=60)],
        joins=[Join(table="doctors", condition="patients.doctor_id = doctors.id", type="left")],
        order_by=[OrderBy(field="name")],
    )
    assert generate_sql(intent).text == (
        "SELECT patients.name, doctors.name AS doctor_name FROM patients "
        "LEFT JOIN doctors ON patients.doctor_id = doctors.id "
        "WHERE patients.age > :p0 ORDER BY patients.name ASC;"
    )


# ── Ordering / paging ────────────────────────────────────

def test_order_limit_offset():
    intent = QueryIntent(
        type="sort", table="doctors", columns=["name"],
        order_by=[OrderBy(field="name", direction="desc")], limit=10, offset=20,
    )
    assert generate_sql(intent).text == "SELECT name FROM doctors ORDER BY name DESC LIMIT 10 OFFSET 20;"


# ── From questions ───────────────────────────────────────

def test_sorted_patients_question():
    detector = IntentDetector(load_schema(), default_limit=100)
    intent = detector.detect_intent("Show me all patients sorted by age descending")
    assert generate_sql(intent).text == (
        "SELECT id, name, age, gender, address, phone, email, doctor_id, medical_history, last_visit "
        "FROM patients ORDER BY age DESC LIMIT 100;"
    )


def test_doctors_per_organization_question():
    detector = IntentDetector(load_schema(), default_limit=100)
    intent = detector.detect_intent("how many doctors per organization")
    assert generate_sql(intent).text == (
        "SELECT organizations.name, COUNT(*) AS count FROM doctors "
        "INNER JOIN organizations ON doctors.organization_id = organizations.id "
        "GROUP BY organizations.name LIMIT 100;"
    )
