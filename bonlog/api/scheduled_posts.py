"""Scheduled posts API — premium users queue posts; cron publishes them."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from bonlog.auth import require_user
from bonlog.cron_auth import require_cron
from bonlog.db.engine import get_session
from bonlog.db.user_tables import UserRow
from bonlog.services import scheduled_posts

router = APIRouter(prefix="/api/v1", tags=["scheduled-posts"])


class MediaItem(BaseModel):
    url: str = Field(..., min_length=1, max_length=2000)
    type: str = Field("image", pattern="^(image|video)$")


class ScheduledPostRequest(BaseModel):
    content: Optional[str] = Field(None, max_length=2000)
    scheduled_at: datetime
    genre_ids: list[str] = Field(default_factory=list)
    media: list[MediaItem] = Field(default_factory=list)


@router.get("/scheduled-posts")
async def list_scheduled(
    user: UserRow = Depends(require_user),
    session: AsyncSession = Depends(get_session),
):
    return await scheduled_posts.list_scheduled_posts(session, user.id)


@router.post("/scheduled-posts")
async def create_scheduled(
    body: ScheduledPostRequest,
    user: UserRow = Depends(require_user),
    session: AsyncSession = Depends(get_session),
):
    return await scheduled_posts.create_scheduled_post(
        session,
        user.id,
        scheduled_at=body.scheduled_at,
        content=body.content,
        genre_ids=body.genre_ids,
        media=[m.model_dump() for m in body.media],
    )


@router.get("/scheduled-posts/{scheduled_post_id}")
async def get_scheduled(
    scheduled_post_id: str,
    user: UserRow = Depends(require_user),
    session: AsyncSession = Depends(get_session),
):
    return await scheduled_posts.get_scheduled_post(session, user.id, scheduled_post_id)


@router.put("/scheduled-posts/{scheduled_post_id}")
async def update_scheduled(
    scheduled_post_id: str,
    body: ScheduledPostRequest,
    user: UserRow = Depends(require_user),
    session: AsyncSession = Depends(get_session),
):
    return await scheduled_posts.update_scheduled_post(
        session,
        user.id,
        scheduled_post_id,
        scheduled_at=body.scheduled_at,
        content=body.content,
        genre_ids=body.genre_ids,
        media=[m.model_dump() for m in body.media],
    )


@router.post("/scheduled-posts/{scheduled_post_id}/cancel")
async def cancel_scheduled(
    scheduled_post_id: str,
    user: UserRow = Depends(require_user),
    session: AsyncSession = Depends(get_session),
):
    return await scheduled_posts.cancel_scheduled_post(session, user.id, scheduled_post_id)


@router.delete("/scheduled-posts/{scheduled_post_id}")
async def delete_scheduled(
    scheduled_post_id: str,
    user: UserRow = Depends(require_user),
    session: AsyncSession = Depends(get_session),
):
    return await scheduled_posts.delete_scheduled_post(session, user.id, scheduled_post_id)


# ── Cron ─────────────────────────────────────────────────────────────────

@router.post("/internal/scheduled-posts/publish")
async def publish_due(
    _auth: None = Depends(require_cron),
    session: AsyncSession = Depends(get_session),
):
    """Publish every due scheduled post. Called by an external cron every few minutes."""
    result = await scheduled_posts.publish_scheduled_posts(session)
    if "error" in result:
        return result
    return {"success": True, **result}
