"""Authentication for cron-triggered internal endpoints.

Two accepted schemes, both keyed on CRON_SECRET:

    Authorization: Bearer <CRON_SECRET>
    Authorization: HMAC <hex sha256(timestamp)>   +   X-Cron-Timestamp: <unix ms>

The HMAC form never sends the secret and is only valid within five minutes
of its timestamp. With no secret configured outside production, auth is
skipped with a warning; in production startup refuses to run without one.
"""
from __future__ import annotations

import hashlib
import hmac
import logging
import time
from dataclasses import dataclass
from typing import Optional

from fastapi import Header, HTTPException, Request

from bonlog.middleware.rate_limit import get_client_ip
from bonlog.security_log import log_suspicious_activity
from config.settings import settings

logger = logging.getLogger(__name__)

TIMESTAMP_TOLERANCE_MS = 5 * 60 * 1000


@dataclass
class CronAuthResult:
    valid: bool
    error: Optional[str] = None


def cron_signature(timestamp: str, secret: str) -> str:
    return hmac.new(secret.encode(), timestamp.encode(), hashlib.sha256).hexdigest()


def cron_headers(secret: Optional[str] = None, now_ms: Optional[int] = None) -> dict:
    """Headers for calling a cron endpoint with the HMAC scheme."""
    secret = secret or settings.CRON_SECRET
    if not secret:
        raise RuntimeError("CRON_SECRET is not set")
    timestamp = str(now_ms if now_ms is not None else int(time.time() * 1000))
    return {
        "Authorization": f"HMAC {cron_signature(timestamp, secret)}",
        "X-Cron-Timestamp": timestamp,
    }


def verify_cron_auth(
    authorization: Optional[str],
    timestamp: Optional[str],
    secret: Optional[str] = None,
    environment: Optional[str] = None,
    now_ms: Optional[int] = None,
) -> CronAuthResult:
    secret = settings.CRON_SECRET if secret is None else secret
    environment = environment or settings.ENVIRONMENT

    if not secret:
        if environment == "production":
            return CronAuthResult(False, "CRON_SECRET is not configured")
        logger.warning("CRON_SECRET is not set, cron authentication is disabled")
        return CronAuthResult(True)

    if not authorization:
        return CronAuthResult(False, "Missing authorization header")

    if authorization.startswith("Bearer "):
        if hmac.compare_digest(authorization[7:].encode(), secret.encode()):
            return CronAuthResult(True)
        return CronAuthResult(False, "Invalid bearer token")

    if not authorization.startswith("HMAC "):
        return CronAuthResult(False, "Invalid authorization scheme")
    if not timestamp:
        return CronAuthResult(False, "Missing timestamp header")
    try:
        ts = int(timestamp)
    except ValueError:
        return CronAuthResult(False, "Invalid timestamp format")

    now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
    if abs(now_ms - ts) > TIMESTAMP_TOLERANCE_MS:
        return CronAuthResult(False, "Request timestamp is too old or too far in the future")

    provided = authorization[5:].strip()
    if not hmac.compare_digest(provided.encode(), cron_signature(timestamp, secret).encode()):
        return CronAuthResult(False, "Invalid signature")
    return CronAuthResult(True)


async def require_cron(
    request: Request,
    authorization: Optional[str] = Header(None),
    x_cron_timestamp: Optional[str] = Header(None),
) -> None:
    """FastAPI dependency guarding internal cron endpoints."""
    result = verify_cron_auth(authorization, x_cron_timestamp)
    if not result.valid:
        log_suspicious_activity(
            "cron authentication failed",
            ip=get_client_ip(request),
            details={"path": request.url.path, "reason": result.error},
        )
        raise HTTPException(status_code=401, detail="Unauthorized")
