"""Security event logging — authentication, authorization and abuse signals.

Every event becomes one line on the ``bonlog.security`` logger:

    [SECURITY] {"timestamp": ..., "type": "LOGIN_FAILURE", "severity": "medium", ...}

Severity is fixed per event type and picks the log level
(high → ERROR, medium → WARNING, low → INFO). Emails are masked before they
reach the log. Nothing here ever raises into the caller.
"""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from config.settings import settings

logger = logging.getLogger("bonlog.security")

APP_TAG = "bon-log"


class SecurityEvent(str, Enum):
    LOGIN_SUCCESS = "LOGIN_SUCCESS"
    LOGIN_FAILURE = "LOGIN_FAILURE"
    LOGIN_LOCKOUT = "LOGIN_LOCKOUT"
    REGISTER_SUCCESS = "REGISTER_SUCCESS"
    PASSWORD_RESET_REQUEST = "PASSWORD_RESET_REQUEST"
    PASSWORD_RESET_SUCCESS = "PASSWORD_RESET_SUCCESS"
    ADMIN_ACTION = "ADMIN_ACTION"
    SUSPICIOUS_ACTIVITY = "SUSPICIOUS_ACTIVITY"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    INVALID_INPUT = "INVALID_INPUT"
    UNAUTHORIZED_ACCESS = "UNAUTHORIZED_ACCESS"


SEVERITY: dict[SecurityEvent, str] = {
    SecurityEvent.LOGIN_SUCCESS: "low",
    SecurityEvent.REGISTER_SUCCESS: "low",
    SecurityEvent.PASSWORD_RESET_REQUEST: "low",
    SecurityEvent.INVALID_INPUT: "low",
    SecurityEvent.LOGIN_FAILURE: "medium",
    SecurityEvent.ADMIN_ACTION: "medium",
    SecurityEvent.PASSWORD_RESET_SUCCESS: "medium",
    SecurityEvent.RATE_LIMIT_EXCEEDED: "medium",
    SecurityEvent.LOGIN_LOCKOUT: "high",
    SecurityEvent.SUSPICIOUS_ACTIVITY: "high",
    SecurityEvent.UNAUTHORIZED_ACCESS: "high",
}

_LEVELS = {"low": logging.INFO, "medium": logging.WARNING, "high": logging.ERROR}


def mask_email(email: str) -> str:
    """Mask the local part of an email: ``testuser@x.com`` → ``t******r@x.com``."""
    local, sep, domain = (email or "").partition("@")
    if not sep or not local or not domain:
        return "***@***"
    if len(local) <= 2:
        masked = "*" * len(local)
    else:
        masked = local[0] + "*" * (len(local) - 2) + local[-1]
    return f"{masked}@{domain}"


def format_entry(event: SecurityEvent, **fields: Any) -> dict:
    entry = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "type": event.value,
        "severity": SEVERITY[event],
        "env": settings.ENVIRONMENT,
        "app": APP_TAG,
    }
    entry.update({k: v for k, v in fields.items() if v is not None})
    return entry


def _write(event: SecurityEvent, **fields: Any) -> None:
    try:
        entry = format_entry(event, **fields)
        logger.log(_LEVELS[entry["severity"]], "[SECURITY] %s", json.dumps(entry, default=str))
    except Exception:  # noqa: BLE001
        pass


def log_login_success(user_id: str, ip: Optional[str] = None, user_agent: Optional[str] = None) -> None:
    _write(SecurityEvent.LOGIN_SUCCESS, user_id=user_id, ip=ip, user_agent=user_agent)


def log_login_failure(email: str, ip: Optional[str] = None, reason: Optional[str] = None) -> None:
    _write(SecurityEvent.LOGIN_FAILURE, ip=ip, details={"email": mask_email(email), "reason": reason})


def log_login_lockout(email: str, ip: Optional[str] = None) -> None:
    _write(SecurityEvent.LOGIN_LOCKOUT, ip=ip, details={"email": mask_email(email)})


def log_register_success(user_id: str, ip: Optional[str] = None) -> None:
    _write(SecurityEvent.REGISTER_SUCCESS, user_id=user_id, ip=ip)


def log_admin_action(
    admin_id: str,
    action: str,
    target_type: Optional[str] = None,
    target_id: Optional[str] = None,
    details: Optional[dict] = None,
) -> None:
    _write(
        SecurityEvent.ADMIN_ACTION,
        user_id=admin_id,
        details={"action": action, "target_type": target_type, "target_id": target_id, **(details or {})},
    )


def log_suspicious_activity(
    description: str,
    ip: Optional[str] = None,
    user_id: Optional[str] = None,
    details: Optional[dict] = None,
) -> None:
    _write(
        SecurityEvent.SUSPICIOUS_ACTIVITY,
        user_id=user_id, ip=ip,
        details={"description": description, **(details or {})},
    )


def log_rate_limit_exceeded(limit_type: str, ip: Optional[str] = None, user_id: Optional[str] = None) -> None:
    _write(SecurityEvent.RATE_LIMIT_EXCEEDED, user_id=user_id, ip=ip, details={"limit_type": limit_type})


def log_invalid_input(field: str, reason: str, ip: Optional[str] = None, user_id: Optional[str] = None) -> None:
    _write(SecurityEvent.INVALID_INPUT, user_id=user_id, ip=ip, details={"field": field, "reason": reason})


def log_unauthorized_access(resource: str, ip: Optional[str] = None, user_id: Optional[str] = None) -> None:
    _write(SecurityEvent.UNAUTHORIZED_ACCESS, user_id=user_id, ip=ip, details={"resource": resource})


def log_password_reset_request(email: str, ip: Optional[str] = None) -> None:
    _write(SecurityEvent.PASSWORD_RESET_REQUEST, ip=ip, details={"email": mask_email(email)})


def log_password_reset_success(user_id: str, ip: Optional[str] = None) -> None:
    _write(SecurityEvent.PASSWORD_RESET_SUCCESS, user_id=user_id, ip=ip)
