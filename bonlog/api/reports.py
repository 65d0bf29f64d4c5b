"""Content Reporting API — community safety.

Users can report posts, comments, events, bonsai shops, shop reviews and
other users. Enough reports auto-hide the target (see services.moderation).

Admin endpoints for the moderation queue.
"""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from bonlog.auth import require_user
from bonlog.db.engine import get_session
from bonlog.db.user_tables import UserRow
from bonlog.middleware.rate_limit import get_client_ip
from bonlog.services import moderation

router = APIRouter(prefix="/api/v1", tags=["reports"])


class ReportRequest(BaseModel):
    target_type: str = Field(..., description="post, comment, event, shop, review, or user")
    target_id: str = Field(..., min_length=1, max_length=36)
    reason: str = Field(..., description="spam, inappropriate, harassment, copyright, other")
    description: Optional[str] = Field(None, max_length=2000)


class ReportUpdateRequest(BaseModel):
    status: str = Field(..., pattern="^(pending|reviewed|resolved|dismissed)$")
    note: Optional[str] = Field(None, max_length=2000)


@router.post("/reports")
async def submit_report(
    body: ReportRequest,
    request: Request,
    user: UserRow = Depends(require_user),
    session: AsyncSession = Depends(get_session),
):
    """Submit a content report."""
    return await moderation.create_report(
        session,
        reporter_id=user.id,
        target_type=body.target_type,
        target_id=body.target_id,
        reason=body.reason,
        description=body.description,
        ip=get_client_ip(request),
    )


@router.get("/reports/my")
async def my_reports(
    user: UserRow = Depends(require_user),
    session: AsyncSession = Depends(get_session),
    offset: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=50),
):
    """List reports submitted by the current user."""
    return await moderation.get_my_reports(session, user.id, limit=limit, offset=offset)


# ── Admin Endpoints ──────────────────────────────────────────────────────

@router.get("/admin/reports")
async def list_reports(
    status: Optional[str] = Query(None, pattern="^(pending|reviewed|resolved|dismissed|auto_hidden)$"),
    target_type: Optional[str] = None,
    offset: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    user: UserRow = Depends(require_user),
    session: AsyncSession = Depends(get_session),
):
    """Moderation queue."""
    return await moderation.get_reports(
        session, user.id, status=status, target_type=target_type, limit=limit, offset=offset,
    )


@router.get("/admin/reports/stats")
async def report_stats(
    user: UserRow = Depends(require_user),
    session: AsyncSession = Depends(get_session),
):
    return await moderation.get_report_stats(session, user.id)


@router.patch("/admin/reports/{report_id}")
async def update_report(
    report_id: str,
    body: ReportUpdateRequest,
    user: UserRow = Depends(require_user),
    session: AsyncSession = Depends(get_session),
):
    """Update report status (admin)."""
    return await moderation.update_report_status(session, user.id, report_id, body.status, body.note)
