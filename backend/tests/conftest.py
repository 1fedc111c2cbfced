"""Root conftest — shared test configuration."""

import os

# Ensure tests never reach real services or real credentials
os.environ.setdefault(
    "DATABASE_URL",
    "sqlite+aiosqlite:///test.db",
)
os.environ.setdefault("SUPABASE_JWT_SECRET", "test-jwt-secret-0123456789abcdef0123")
os.environ.setdefault("CRON_SECRET", "test-cron-secret")
os.environ.setdefault("WHATSAPP_VERIFY_TOKEN", "verify-me")
os.environ.setdefault("WHATSAPP_APP_SECRET", "whatsapp-app-secret")
os.environ.setdefault("ALLOW_TEST_KEYS", "true")
os.environ.setdefault("ANTHROPIC_API_KEY", "")
os.environ.setdefault("LOG_FORMAT", "text")
