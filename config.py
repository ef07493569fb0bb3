"""
Application configuration: environment-aware settings.

All environment variables are read here; a local .env file is loaded first
when present.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).parent

load_dotenv(BASE_DIR / ".env")


def _int_tuple(value: str) -> tuple[int, ...]:
    return tuple(int(p) for p in value.split(",") if p.strip())


class BaseConfig:
    # Core Flask
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-key-change-in-production")
    # Database: SQLite (default) or PostgreSQL (set DATABASE_URL=postgresql://...)
    DATABASE = os.environ.get("DATABASE_URL", str(BASE_DIR / "cohort_academy.db"))
    WTF_CSRF_ENABLED = True

    # Session security
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"
    PERMANENT_SESSION_LIFETIME = 86400

    # Logging
    LOG_FORMAT = os.environ.get("LOG_FORMAT", "text")  # "json" or "text"
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Rate limiting (defaults to in-memory; set REDIS_URL for Redis-backed)
    RATELIMIT_STORAGE_URI = os.environ.get("REDIS_URL", "") or "memory://"

    # Engagement rules
    # Civil zone for every today/tomorrow/D-N decision, regardless of client locale
    CIVIL_TIMEZONE = os.environ.get("CIVIL_TIMEZONE", "Asia/Seoul")
    SESSIONS_PER_ENROLLMENT = int(os.environ.get("SESSIONS_PER_ENROLLMENT", "9"))
    HOMEWORK_WINDOW_DAYS = int(os.environ.get("HOMEWORK_WINDOW_DAYS", "7"))
    MAX_ABSENCES = int(os.environ.get("MAX_ABSENCES", "2"))
    MAX_HOMEWORK_MISSING = int(os.environ.get("MAX_HOMEWORK_MISSING", "2"))
    REMINDER_DAYS = _int_tuple(os.environ.get("REMINDER_DAYS", "7,1"))


class DevelopmentConfig(BaseConfig):
    DEBUG = True


class ProductionConfig(BaseConfig):
    DEBUG = False
    LOG_FORMAT = os.environ.get("LOG_FORMAT", "json")
    SESSION_COOKIE_SECURE = True

    @classmethod
    def validate(cls):
        """Fail fast on missing or insecure configuration in production."""
        errors: list[str] = []

        if cls.SECRET_KEY in ("dev-key-change-in-production", ""):
            errors.append("SECRET_KEY must be set to a secure value in production.")
        if cls.SESSIONS_PER_ENROLLMENT <= 0:
            errors.append("SESSIONS_PER_ENROLLMENT must be positive.")

        if errors:
            raise RuntimeError(
                "Production configuration errors:\n" + "\n".join(f"  - {e}" for e in errors)
            )


class TestingConfig(BaseConfig):
    TESTING = True
    WTF_CSRF_ENABLED = False
    RATELIMIT_ENABLED = False


config_by_name = {
    "development": DevelopmentConfig,
    "production": ProductionConfig,
    "testing": TestingConfig,
}
