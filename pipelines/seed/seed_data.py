"""
Seed data generator — creates the clinic schema and fills it with realistic data.

Generates:
  - 12 organizations (clinics / hospitals)
  - ~80 doctors   (spread across organizations)
  - ~1 500 patients (each assigned to a doctor)

Tables are created if missing, with row-level-security policies that read the
transaction-local ``app.organization_ids`` / ``app.doctor_ids`` settings the
query executor applies for a scoped request.
Run:  python -m pipelines.seed.seed_data
"""
from __future__ import annotations

import os
import random
from datetime import date, datetime, timedelta
from pathlib import Path

from dotenv import load_dotenv
from faker import Faker
from sqlalchemy import create_engine, text

# ── Load .env from project root ─────────────────────────
_PROJECT_ROOT = Path(__file__).resolve().parents[2]
load_dotenv(_PROJECT_ROOT / ".env")

fake = Faker()
Faker.seed(42)
random.seed(42)

# ── Tunables ─────────────────────────────────────────────
NUM_ORGANIZATIONS = 12
DOCTORS_PER_ORG = (4, 10)
PATIENTS_PER_DOCTOR = (8, 30)

SPECIALTIES = [
    "Cardiology", "Dermatology", "Neurology", "Pediatrics", "Orthopedics",
    "Oncology", "Psychiatry", "General Practice", "Gastroenterology", "Endocrinology",
]
GENDERS = ["female", "male", "other"]
GENDER_WEIGHTS = [0.49, 0.49, 0.02]
CONDITIONS = [
    "Hypertension", "Type 2 diabetes", "Asthma", "Migraine", "Seasonal allergies",
    "Hypothyroidism", "Osteoarthritis", "Anxiety", "High cholesterol", "None reported",
]
ORG_SUFFIXES = ["Medical Center", "Clinic", "Health Partners", "Hospital", "Family Practice"]

DATE_END = date(2025, 12, 31)
VISIT_WINDOW_DAYS = 730

# ── DDL ──────────────────────────────────────────────────
SCHEMA_DDL = [
    """
    CREATE TABLE IF NOT EXISTS organizations (
        id SERIAL PRIMARY KEY,
        name TEXT NOT NULL,
        address TEXT,
        contact_number TEXT,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS doctors (
        id SERIAL PRIMARY KEY,
        name TEXT NOT NULL,
        specialty TEXT NOT NULL,
        contact_number TEXT,
        organization_id INTEGER REFERENCES organizations(id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS patients (
        id SERIAL PRIMARY KEY,
        name TEXT NOT NULL,
        age INTEGER,
        gender TEXT,
        address TEXT,
        phone TEXT,
        email TEXT,
        doctor_id INTEGER REFERENCES doctors(id),
        medical_history TEXT,
        last_visit DATE
    )
    """,
]

# An unset (or empty) setting means "no restriction".
_ORG_FILTER = (
    "coalesce(current_setting('app.organization_ids', true), '') = '' "
    "OR {column} = ANY(string_to_array(current_setting('app.organization_ids', true), ',')::int[])"
)
_DOCTOR_FILTER = (
    "coalesce(current_setting('app.doctor_ids', true), '') = '' "
    "OR {column} = ANY(string_to_array(current_setting('app.doctor_ids', true), ',')::int[])"
)

RLS_POLICIES = {
    "organizations": f"({_ORG_FILTER.format(column='id')})",
    "doctors": f"({_ORG_FILTER.format(column='organization_id')}) AND ({_DOCTOR_FILTER.format(column='id')})",
    "patients": (
        f"({_DOCTOR_FILTER.format(column='doctor_id')}) AND ("
        + _ORG_FILTER.format(
            column="(SELECT d.organization_id FROM doctors d WHERE d.id = patients.doctor_id)"
        )
        + ")"
    ),
}


def _db_url() -> str:
    user = os.getenv("POSTGRES_USER", "clinic")
    pw = os.getenv("POSTGRES_PASSWORD", "clinic_pw")
    host = os.getenv("POSTGRES_HOST", "localhost")
    port = os.getenv("POSTGRES_PORT", "5432")
    db = os.getenv("POSTGRES_DB", "clinic")
    return f"postgresql://{user}:{pw}@{host}:{port}/{db}"


# ── Generators ───────────────────────────────────────────

def gen_organizations() -> list[dict]:
    rows = []
    for oid in range(1, NUM_ORGANIZATIONS + 1):
        rows.append({
            "id": oid,
            "name": f"{fake.last_name()} {random.choice(ORG_SUFFIXES)}",
            "address": fake.address().replace("\n", ", "),
            "contact_number": fake.phone_number(),
            "created_at": datetime(2020, 1, 1) + timedelta(days=random.randint(0, 1500)),
        })
    return rows


def gen_doctors(organizations: list[dict]) -> list[dict]:
    rows = []
    did = 1
    for org in organizations:
        for _ in range(random.randint(*DOCTORS_PER_ORG)):
            rows.append({
                "id": did,
                "name": f"Dr. {fake.name()}",
                "specialty": random.choice(SPECIALTIES),
                "contact_number": fake.phone_number(),
                "organization_id": org["id"],
            })
            did += 1
    return rows


def gen_patients(doctors: list[dict]) -> list[dict]:
    rows = []
    pid = 1
    for doctor in doctors:
        for _ in range(random.randint(*PATIENTS_PER_DOCTOR)):
            gender = random.choices(GENDERS, weights=GENDER_WEIGHTS, k=1)[0]
            if gender == "female":
                name = fake.name_female()
            elif gender == "male":
                name = fake.name_male()
            else:
                name = fake.name()
            rows.append({
                "id": pid,
                "name": name,
                "age": random.randint(1, 95),
                "gender": gender,
                "address": fake.address().replace("\n", ", "),
                "phone": fake.phone_number(),
                "email": fake.email(),
                "doctor_id": doctor["id"],
                "medical_history": ", ".join(random.sample(CONDITIONS, random.randint(1, 3))),
                "last_visit": DATE_END - timedelta(days=random.randint(0, VISIT_WINDOW_DAYS)),
            })
            pid += 1
    return rows


# ── Schema / insert helpers ──────────────────────────────

def ensure_schema(engine) -> None:
    """Create the clinic tables and their row-level-security policies (idempotent)."""
    with engine.begin() as conn:
        for ddl in SCHEMA_DDL:
            conn.execute(text(ddl))
        for table, condition in RLS_POLICIES.items():
            conn.execute(text(f"ALTER TABLE {table} ENABLE ROW LEVEL SECURITY"))
            conn.execute(text(f"ALTER TABLE {table} FORCE ROW LEVEL SECURITY"))
            conn.execute(text(f"DROP POLICY IF EXISTS {table}_scope ON {table}"))
            conn.execute(text(f"CREATE POLICY {table}_scope ON {table} USING ({condition})"))
    print("  ✓ schema and policies in place")


def _bulk_insert(engine, table: str, rows: list[dict], batch_size: int = 2000):
    """Insert rows into *table* in batches using executemany-style VALUES."""
    if not rows:
        return
    cols = list(rows[0].keys())
    col_list = ", ".join(cols)
    param_list = ", ".join(f":{c}" for c in cols)
    sql = text(f"INSERT INTO {table} ({col_list}) VALUES ({param_list}) ON CONFLICT DO NOTHING")
    with engine.begin() as conn:
        for i in range(0, len(rows), batch_size):
            conn.execute(sql, rows[i : i + batch_size])
        # explicit ids were inserted; move the SERIAL sequence past them
        conn.execute(text(f"SELECT setval(pg_get_serial_sequence('{table}', 'id'), (SELECT MAX(id) FROM {table}))"))
    print(f"  ✓ {table}: {len(rows):,} rows")


# ── Main ─────────────────────────────────────────────────

def main():
    print("═══ Clinic Seed Data Generator ═══")
    engine = create_engine(_db_url(), echo=False)

    print("Creating schema …")
    ensure_schema(engine)

    # Truncate existing data for idempotency
    print("Truncating clinic tables …")
    with engine.begin() as conn:
        conn.execute(text("TRUNCATE TABLE patients, doctors, organizations RESTART IDENTITY CASCADE"))

    print("Generating data …")
    organizations = gen_organizations()
    doctors = gen_doctors(organizations)
    patients = gen_patients(doctors)

    print("Inserting …")
    _bulk_insert(engine, "organizations", organizations)
    _bulk_insert(engine, "doctors", doctors)
    _bulk_insert(engine, "patients", patients)

    print(f"\nDone — seeded {len(organizations):,} organizations, {len(doctors):,} doctors, "
          f"{len(patients):,} patients.")


if __name__ == "__main__":
    main()
