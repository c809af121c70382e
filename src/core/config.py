"""
Centralised application settings loaded from environment / .env file.
"""
from __future__ import annotations

from pathlib import Path
from functools import lru_cache

from pydantic_settings import BaseSettings
from dotenv import load_dotenv

# Load .env from project root (two levels up from this file)
_ENV_PATH = Path(__file__).resolve().parents[2] / ".env"
load_dotenv(_ENV_PATH)

_DEFAULT_SCHEMA_PATH = Path(__file__).resolve().parents[2] / "schema" / "clinic_schema.yml"


class Settings(BaseSettings):
    # ── Postgres ─────────────────────────────────────────
    postgres_user: str = "clinic"
    postgres_password: str = "clinic_pw"
    postgres_db: str = "clinic"
    postgres_host: str = "localhost"
    postgres_port: int = 5432

    # ── LLM ──────────────────────────────────────────────
    llm_provider: str = "mock"  # mock | openai | anthropic | gemini
    openai_api_key: str = ""
    anthropic_api_key: str = ""
    gemini_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    anthropic_model: str = "claude-3-haiku-20240307"
    gemini_model: str = "gemini-1.5-flash"

    # ── Query translation ────────────────────────────────
    default_row_limit: int = 100
    query_timeout_ms: int = 10_000
    schema_tables: list[str] = ["organizations", "doctors", "patients"]
    schema_path: str = str(_DEFAULT_SCHEMA_PATH)

    # ── Connectivity ─────────────────────────────────────
    reconnect_max_attempts: int = 5
    reconnect_base_delay: float = 1.0
    reconnect_max_delay: float = 30.0

    # ── App ──────────────────────────────────────────────
    api_port: int = 8000
    log_level: str = "INFO"

    @property
    def database_url(self) -> str:
        return (
            f"postgresql://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache
def get_settings() -> Settings:
    return Settings()
