"""App settings — loaded from environment."""
from __future__ import annotations

import os
from dotenv import load_dotenv

load_dotenv()

DEFAULT_JWT_SECRET = "bonlog-dev-secret-change-in-prod"


class Settings:
    # API
    API_HOST = os.getenv("API_HOST", "0.0.0.0")
    API_PORT = int(os.getenv("API_PORT", "8000"))
    ENVIRONMENT = os.getenv("ENVIRONMENT", "development")  # development, production, test

    # Database
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///bonlog.db")

    # Auth
    JWT_SECRET = os.getenv("JWT_SECRET", DEFAULT_JWT_SECRET)

    # Cron trigger for the scheduled post publisher
    CRON_SECRET = os.getenv("CRON_SECRET", "")

    # Login abuse protection
    LOGIN_MAX_ATTEMPTS = int(os.getenv("LOGIN_MAX_ATTEMPTS", "5"))
    LOGIN_WINDOW_SECONDS = int(os.getenv("LOGIN_WINDOW_SECONDS", str(15 * 60)))
    LOGIN_LOCKOUT_SECONDS = int(os.getenv("LOGIN_LOCKOUT_SECONDS", str(30 * 60)))
    LOGIN_TRACKER_BACKEND = os.getenv("LOGIN_TRACKER_BACKEND", "database")  # "database" or "memory"

    # Moderation
    AUTO_HIDE_THRESHOLD = int(os.getenv("AUTO_HIDE_THRESHOLD", "10"))

    # Scheduled posts
    SCHEDULED_PUBLISH_BATCH_SIZE = int(os.getenv("SCHEDULED_PUBLISH_BATCH_SIZE", "50"))
    # Rows left in processing longer than this are expired to failed
    SCHEDULED_CLAIM_TIMEOUT_MINUTES = int(os.getenv("SCHEDULED_CLAIM_TIMEOUT_MINUTES", "15"))
    # 0 = rely on the external cron endpoint only
    SCHEDULED_PUBLISH_INTERVAL_MINUTES = int(os.getenv("SCHEDULED_PUBLISH_INTERVAL_MINUTES", "0"))

    # CORS origins (comma-separated, or * for dev)
    CORS_ORIGINS = [
        o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",")
    ]

    # Observability
    SENTRY_DSN = os.getenv("SENTRY_DSN", "")
    SENTRY_ENVIRONMENT = os.getenv("SENTRY_ENVIRONMENT", "development")
    SENTRY_TRACES_SAMPLE_RATE = float(os.getenv("SENTRY_TRACES_SAMPLE_RATE", "0.1"))

    # Logging
    LOG_FORMAT = os.getenv("LOG_FORMAT", "text")  # "text" or "json"
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


settings = Settings()
