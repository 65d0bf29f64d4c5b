"""Startup validation — catch misconfigurations before the app serves traffic."""
from __future__ import annotations

import logging
import sys

from config.settings import settings, DEFAULT_JWT_SECRET

logger = logging.getLogger(__name__)


def validate_settings() -> list[str]:
    """Validate configuration. Returns list of warnings (empty = all good).

    Raises SystemExit for critical misconfigurations in production.
    """
    warnings: list[str] = []
    is_prod = settings.ENVIRONMENT == "production"

    if is_prod and settings.JWT_SECRET == DEFAULT_JWT_SECRET:
        logger.critical("JWT_SECRET is still the default! Set a real secret for production.")
        sys.exit(1)

    # The publish endpoint would be open without it
    if is_prod and not settings.CRON_SECRET:
        logger.critical("CRON_SECRET is not set! The cron endpoint cannot be authenticated.")
        sys.exit(1)

    if is_prod and "*" in settings.CORS_ORIGINS:
        warnings.append("CORS_ORIGINS is set to *, restrict in production")

    if is_prod and settings.LOGIN_TRACKER_BACKEND == "memory":
        warnings.append("LOGIN_TRACKER_BACKEND=memory, lockouts are per-process only")

    if settings.AUTO_HIDE_THRESHOLD < 1:
        warnings.append("AUTO_HIDE_THRESHOLD < 1, every report will hide its target")

    for w in warnings:
        logger.warning("%s", w)

    if not warnings:
        logger.info("All startup checks passed")

    return warnings
