"""Admin console API — hidden content, notifications, audit log, user status, email blacklist.

All endpoints require a signed-in user holding an admin grant; the grant is
checked on every call by the service layer (401 / 403 otherwise).
"""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from bonlog.auth import require_user
from bonlog.db.engine import get_session
from bonlog.db.user_tables import UserRow
from bonlog.services import admin_review, blacklist

router = APIRouter(prefix="/api/v1/admin", tags=["admin"])

_CONTENT_TYPE = "^(post|comment|event|shop|review)$"


class SuspendRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class BlacklistEmailRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=320)
    reason: Optional[str] = Field(None, max_length=500)


# ── Hidden content ───────────────────────────────────────────────────────

@router.get("/hidden")
async def list_hidden(
    type: Optional[str] = Query(None, pattern=_CONTENT_TYPE),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user: UserRow = Depends(require_user),
    session: AsyncSession = Depends(get_session),
):
    """Hidden content across all kinds, most recently hidden first."""
    return await admin_review.get_hidden_content(session, user.id, type, limit=limit, offset=offset)


@router.post("/hidden/{content_type}/{content_id}/hide")
async def hide(
    content_type: str,
    content_id: str,
    user: UserRow = Depends(require_user),
    session: AsyncSession = Depends(get_session),
):
    return await admin_review.hide_content(session, user.id, content_type, content_id)


@router.post("/hidden/{content_type}/{content_id}/restore")
async def restore(
    content_type: str,
    content_id: str,
    user: UserRow = Depends(require_user),
    session: AsyncSession = Depends(get_session),
):
    return await admin_review.restore_content(session, user.id, content_type, content_id)


@router.delete("/hidden/{content_type}/{content_id}")
async def purge(
    content_type: str,
    content_id: str,
    user: UserRow = Depends(require_user),
    session: AsyncSession = Depends(get_session),
):
    """Permanently delete content. The client confirms before calling."""
    return await admin_review.delete_hidden_content(session, user.id, content_type, content_id)


# ── Notifications ────────────────────────────────────────────────────────

@router.get("/notifications")
async def notifications(
    unread_only: bool = False,
    limit: int = Query(20, ge=1, le=100),
    user: UserRow = Depends(require_user),
    session: AsyncSession = Depends(get_session),
):
    return await admin_review.get_admin_notifications(session, user.id, unread_only=unread_only, limit=limit)


@router.post("/notifications/read-all")
async def read_all_notifications(
    user: UserRow = Depends(require_user),
    session: AsyncSession = Depends(get_session),
):
    return await admin_review.mark_all_notifications_read(session, user.id)


@router.post("/notifications/{notification_id}/read")
async def read_notification(
    notification_id: str,
    user: UserRow = Depends(require_user),
    session: AsyncSession = Depends(get_session),
):
    return await admin_review.mark_notification_read(session, user.id, notification_id)


# ── Audit log ────────────────────────────────────────────────────────────

@router.get("/logs")
async def admin_logs(
    action: Optional[str] = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user: UserRow = Depends(require_user),
    session: AsyncSession = Depends(get_session),
):
    return await admin_review.get_admin_logs(session, user.id, action=action, limit=limit, offset=offset)


# ── Users ────────────────────────────────────────────────────────────────

@router.post("/users/{user_id}/suspend")
async def suspend(
    user_id: str,
    body: Optional[SuspendRequest] = None,
    user: UserRow = Depends(require_user),
    session: AsyncSession = Depends(get_session),
):
    return await admin_review.suspend_user(session, user.id, user_id, reason=body.reason if body else None)


@router.post("/users/{user_id}/activate")
async def activate(
    user_id: str,
    user: UserRow = Depends(require_user),
    session: AsyncSession = Depends(get_session),
):
    return await admin_review.activate_user(session, user.id, user_id)


# ── Email blacklist ──────────────────────────────────────────────────────

@router.get("/blacklist/emails")
async def list_blacklisted_emails(
    search: Optional[str] = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user: UserRow = Depends(require_user),
    session: AsyncSession = Depends(get_session),
):
    return await blacklist.get_email_blacklist(session, user.id, search=search, limit=limit, offset=offset)


@router.post("/blacklist/emails")
async def blacklist_email(
    body: BlacklistEmailRequest,
    user: UserRow = Depends(require_user),
    session: AsyncSession = Depends(get_session),
):
    return await blacklist.add_email_to_blacklist(session, user.id, body.email, body.reason)


@router.delete("/blacklist/emails/{entry_id}")
async def unblacklist_email(
    entry_id: str,
    user: UserRow = Depends(require_user),
    session: AsyncSession = Depends(get_session),
):
    return await blacklist.remove_email_from_blacklist(session, user.id, entry_id)
