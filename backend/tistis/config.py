"""Application Configuration: environment-driven settings via pydantic-settings.

Invariants:
    - All secrets come from environment variables (never hardcoded)
    - get_settings() is cached (lru_cache), single instance per process
    - Empty secret means the integration is disabled, never a crash at import time

Design Decisions:
    - pydantic-settings over raw os.environ: validation, type coercion, .env file support (ADR: developer UX)
    - Defaults provided for all non-secret settings: works out-of-the-box with docker-compose
"""

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Database
    database_url: str = (
        "postgresql+asyncpg://tistis:tistis@db:5432/tistis"
    )

    @field_validator("database_url", mode="before")
    @classmethod
    def convert_postgres_url(cls, v: str) -> str:
        """Hosted Postgres hands out postgresql:// but asyncpg needs postgresql+asyncpg://."""
        if isinstance(v, str) and v.startswith("postgresql://"):
            return v.replace("postgresql://", "postgresql+asyncpg://", 1)
        return v

    database_pool_size: int = 20
    database_max_overflow: int = 10

    # Platform (Supabase-compatible REST + auth)
    supabase_url: str = "http://localhost:54321"
    supabase_service_role_key: str = ""
    supabase_jwt_secret: str = ""
    supabase_jwt_audience: str = "authenticated"
    reports_bucket: str = "reports"

    # Public API keys
    allow_test_keys: bool = True
    audit_buffer_size: int = 50
    audit_flush_interval_seconds: float = 5.0

    # Cron / internal callers
    cron_secret: str = ""

    # WhatsApp Cloud API
    whatsapp_verify_token: str = ""
    whatsapp_app_secret: str = ""
    whatsapp_graph_version: str = "v18.0"

    # Outbound HTTP (WhatsApp, PDFShift, storage, Resend)
    http_timeout_seconds: float = 30.0
    http_max_retries: int = 3
    http_base_delay_ms: int = 500
    http_max_delay_ms: int = 10_000

    # PDF rendering
    pdfshift_api_key: str = ""

    # Email
    resend_api_key: str = ""
    email_from: str = "TIS TIS <noreply@tistis.com>"

    # Billing
    stripe_secret_key: str = ""

    # Anthropic (report narratives)
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-5"
    anthropic_max_retries: int = 3
    anthropic_timeout_seconds: int = 60
    anthropic_base_delay_ms: int = 1000
    anthropic_max_delay_ms: int = 30_000

    # API
    cors_origins: list[str] = ["http://localhost:3000"]

    # Observability
    log_level: str = "INFO"
    log_format: str = "json"


@lru_cache
def get_settings() -> Settings:
    return Settings()
