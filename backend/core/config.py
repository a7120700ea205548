from pydantic_settings import BaseSettings
from pydantic import field_validator
from typing import Optional
import os

class Settings(BaseSettings):
    APP_NAME: str = "Markup Review Store"
    DEBUG: bool = False
    # When enabled, skip table creation and migrations at startup (for tests)
    FAST_TEST_MODE: bool = False

    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "postgres"
    POSTGRES_DB: str = "postgres"
    POSTGRES_SERVER: str = "localhost"
    POSTGRES_PORT: int = 5433
    DATABASE_URL: str = "sqlite+aiosqlite:///./markup.db"

    # Connection pool (ignored for sqlite)
    DB_POOL_SIZE: int = 5
    DB_MAX_OVERFLOW: int = 10
    DB_ECHO: bool = False

    # Ingestion settings
    INGEST_TIMEOUT_SECONDS: float = 30.0  # Upper bound for one ingestion transaction
    # Reject comments carrying the same attachment URL twice; when disabled the
    # duplicates are dropped (first occurrence kept) instead.
    INGEST_REJECT_DUPLICATE_ATTACHMENTS: bool = True

    CORS_ORIGINS: str = "http://localhost:3000"

    @field_validator('DEBUG', 'FAST_TEST_MODE', 'DB_ECHO', 'INGEST_REJECT_DUPLICATE_ATTACHMENTS', mode='before')
    @classmethod
    def parse_bool_with_strip(cls, v):
        if isinstance(v, str):
            v = v.strip()
        return v

    class Config:
        # Check for .env in current directory first, then parent directory
        env_file = [".env", "../.env"]
        env_file_encoding = 'utf-8'
        extra = "allow"

    @property
    def cors_origin_list(self):
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

def _running_in_docker() -> bool:
    # Basic heuristics to detect containerized runtime
    return os.path.exists('/.dockerenv') or os.environ.get('IN_DOCKER') == '1'


settings = Settings()

# If running outside Docker and DATABASE_URL points at the docker hostname 'db',
# rewrite to localhost using HOST_DB_PORT (default 5433) for local dev.
try:
    # Auto-enable FAST_TEST_MODE when running under pytest if not explicitly set
    if not getattr(settings, 'FAST_TEST_MODE', False) and os.getenv('PYTEST_CURRENT_TEST'):
        settings.FAST_TEST_MODE = True  # type: ignore[attr-defined]

    if not _running_in_docker() and "@db:" in settings.DATABASE_URL:
        host_port = os.getenv("HOST_DB_PORT", os.getenv("POSTGRES_PORT_HOST", "5433"))
        # common compose default: container exposed on host 5433 -> container 5432
        settings.DATABASE_URL = settings.DATABASE_URL.replace("@db:5432", f"@localhost:{host_port}")  # type: ignore[attr-defined]
except Exception:
    # Don't fail settings import on best-effort rewrite
    pass
