"""
Unit tests -- template explanations from intents and from raw SQL.
"""
from src.nlq.explainer import build_explanation, explanation_from_sql, render_explanation
from src.nlq.intent import Aggregate, Condition, Join, OrderBy, QueryIntent


# ── From an intent ───────────────────────────────────────

def test_filter_intent():
    intent = QueryIntent(
        type="filter", table="patients", columns=["name"],
        conditions=[
            Condition(field="age", operator=">", value=30),
            Condition(field="gender", operator="=", value="female"),
        ],
        limit=100,
    )
    expl = build_explanation(intent)
    assert expl.action == "Retrieve the matching records from patients"
    assert expl.filters == "age is greater than 30 and gender is female"
    assert render_explanation(expl) == (
        "This query will retrieve the matching records from patients. "
        "Only rows where age is greater than 30 and gender is female are included. "
        "It returns up to 100 rows."
    )


def test_count_intent_has_no_limit():
    intent = QueryIntent(
        type="count", table="doctors", limit=100,
        aggregate=[Aggregate(function="count", field="*", alias="count")],
    )
    expl = build_explanation(intent)
    assert expl.limit is None
    assert render_explanation(expl) == "This query will count records from doctors."


def test_sorting_and_offset():
    intent = QueryIntent(
        type="sort", table="patients",
        order_by=[OrderBy(field="age", direction="desc")], limit=10, offset=5,
    )
    expl = build_explanation(intent)
    assert expl.sorting == "age (descending)"
    assert expl.limit == "up to 10 rows, skipping the first 5"


def test_like_value_shown_without_wildcards():
    intent = QueryIntent(
        type="filter", table="doctors",
        conditions=[Condition(field="name", operator="LIKE", value="%Smith%")],
    )
    assert build_explanation(intent).filters == "name contains Smith"


def test_joins_and_grouping():
    intent = QueryIntent(
        type="group", table="doctors", group_by=["organizations.name"],
        aggregate=[Aggregate(function="count", field="*", alias="count")],
        joins=[Join(table="organizations", condition="doctors.organization_id = organizations.id")],
    )
    expl = build_explanation(intent)
    assert expl.tables == ["doctors", "organizations"]
    text = render_explanation(expl)
    assert "It brings in related data from organizations." in text
    assert "Results are grouped by organizations.name." in text


# ── From SQL ─────────────────────────────────────────────

def test_from_sql_clauses():
    expl = explanation_from_sql(
        "SELECT gender, COUNT(*) FROM patients p LEFT JOIN doctors d ON p.doctor_id = d.id "
        "WHERE age > 30 GROUP BY gender ORDER BY gender LIMIT 5"
    )
    assert expl.action == "Calculate summary values from patients"
    assert expl.tables == ["patients", "doctors"]
    assert expl.filters == "age > 30"
    assert expl.grouping == "gender"
    assert expl.sorting == "gender"
    assert expl.limit == "up to 5 rows"
    assert expl.joins == "doctors"


def test_from_sql_plain_select():
    expl = explanation_from_sql("SELECT * FROM organizations;")
    assert render_explanation(expl) == "This query will retrieve records from organizations."


def test_from_unsplittable_sql():
    expl = explanation_from_sql("WITH x AS (SELECT 1) SELECT * FROM x")
    assert render_explanation(expl) == "This query will run a custom query."
