"""
Unit tests — schema fixture loader and Table helpers.
"""
import pytest

from src.schema.loader import get_table_names, load_schema, parse_schema
from src.schema.models import find_table


@pytest.fixture(scope="module")
def tables():
    return load_schema()


def test_loads_all_tables(tables):
    assert len(tables) == 3


def test_table_names():
    assert get_table_names() == ["organizations", "doctors", "patients"]


def test_patient_columns_in_order(tables):
    patients = find_table(tables, "patients")
    assert patients.column_names() == [
        "id", "name", "age", "gender", "address", "phone",
        "email", "doctor_id", "medical_history", "last_visit",
    ]


def test_primary_key_flag(tables):
    doctors = find_table(tables, "doctors")
    assert doctors.column("id").is_primary_key is True
    assert doctors.column("name").is_primary_key is False


def test_foreign_keys(tables):
    doctors = find_table(tables, "doctors")
    fk = doctors.foreign_key_to("organizations")
    assert (fk.column, fk.foreign_column) == ("organization_id", "id")
    assert doctors.column("organization_id").is_foreign is True
    assert doctors.foreign_key_to("patients") is None


def test_lookups_case_insensitive(tables):
    assert find_table(tables, "Doctors").name == "doctors"
    assert find_table(tables, "DOCTORS").has_column("Specialty")


def test_to_dict_uses_camel_case(tables):
    d = find_table(tables, "patients").to_dict()
    assert d["foreignKeys"] == [{"column": "doctor_id", "foreignTable": "doctors", "foreignColumn": "id"}]
    assert set(d["columns"][0]) >= {"isPrimaryKey", "isNullable", "isForeign"}


def test_parse_defaults():
    parsed = parse_schema({"tables": [{
        "name": "visits",
        "columns": [{"name": "patient_id"}],
        "foreign_keys": [{"column": "patient_id", "foreign_table": "patients"}],
    }]})
    table = parsed[0]
    assert table.column("patient_id").type == "text"
    assert table.column("patient_id").is_nullable is True
    assert table.foreign_keys[0].foreign_column == "id"


def test_parse_empty():
    assert parse_schema({}) == []
