"""Password Reset API — token-based reset flow.

Flow:
1. POST /api/v1/auth/forgot-password — issues a reset token (email delivery is external)
2. POST /api/v1/auth/reset-password — validates token + sets new password

- Reset tokens expire in 15 minutes and are single-use
- Only the SHA-256 of a token is stored
- Requesting a new token clears older ones for that user
"""
from __future__ import annotations

import hashlib
import secrets
import time
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from bonlog.auth import hash_password
from bonlog.db.engine import get_session
from bonlog.db.user_tables import UserRow
from bonlog.middleware.rate_limit import get_client_ip
from bonlog.security_log import log_password_reset_request, log_password_reset_success
from bonlog.services.login_tracker import login_key, reset_login_attempts
from config.settings import settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/auth", tags=["auth"])

# {hashed_token: {"user_id": str, "expires": float}}
_reset_tokens: dict[str, dict] = {}

_RESET_TTL = 900  # 15 minutes
_TOKEN_LENGTH = 32

_GENERIC_MESSAGE = "If an account exists with that email, a reset link has been sent."


def _hash_token(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


def _cleanup_expired():
    now = time.time()
    expired = [k for k, v in _reset_tokens.items() if v["expires"] < now]
    for k in expired:
        del _reset_tokens[k]


def reset_token_store():
    """Clear all tokens (for testing)."""
    _reset_tokens.clear()


class ForgotPasswordRequest(BaseModel):
    email: str = Field(..., max_length=320)


class ResetPasswordRequest(BaseModel):
    email: str = Field(..., max_length=320)
    token: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=8, max_length=128)


@router.post("/forgot-password")
async def forgot_password(
    body: ForgotPasswordRequest,
    request: Request,
    session: AsyncSession = Depends(get_session),
):
    """Request a password reset token.

    Always returns 200 to prevent email enumeration.
    """
    _cleanup_expired()
    email = body.email.strip().lower()
    log_password_reset_request(email, ip=get_client_ip(request))

    result = await session.execute(select(UserRow).where(UserRow.email == email))
    user = result.scalar_one_or_none()

    if user:
        to_remove = [k for k, v in _reset_tokens.items() if v["user_id"] == user.id]
        for k in to_remove:
            del _reset_tokens[k]

        token = secrets.token_urlsafe(_TOKEN_LENGTH)
        _reset_tokens[_hash_token(token)] = {
            "user_id": user.id,
            "expires": time.time() + _RESET_TTL,
        }

        # Token returned outside production only; production delivers it by email
        if settings.ENVIRONMENT != "production":
            return {"message": _GENERIC_MESSAGE, "reset_token": token}

    return {"message": _GENERIC_MESSAGE}


@router.post("/reset-password")
async def reset_password(
    body: ResetPasswordRequest,
    request: Request,
    session: AsyncSession = Depends(get_session),
):
    """Reset password using a valid token."""
    _cleanup_expired()

    hashed = _hash_token(body.token)
    token_data = _reset_tokens.get(hashed)
    if not token_data:
        raise HTTPException(status_code=400, detail="Invalid or expired reset token")

    email = body.email.strip().lower()
    result = await session.execute(
        select(UserRow).where(UserRow.id == token_data["user_id"], UserRow.email == email)
    )
    user = result.scalar_one_or_none()
    if not user:
        raise HTTPException(status_code=400, detail="Invalid or expired reset token")

    user.password_hash = hash_password(body.new_password)
    await session.commit()
    del _reset_tokens[hashed]

    ip = get_client_ip(request)
    # A fresh password lifts any lockout earned with the old one
    await reset_login_attempts(login_key(email, ip))
    log_password_reset_success(user.id, ip=ip)
    return {"message": "Password has been reset successfully. Please log in with your new password."}
