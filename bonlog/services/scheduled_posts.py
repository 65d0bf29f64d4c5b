"""Scheduled posts — premium users queue posts; a batch job publishes them when due.

Lifecycle (one-directional):

    pending ──claim──▶ processing ──▶ published
       │                    └───────▶ failed
       └──▶ cancelled

The publisher claims each due row with ``UPDATE ... WHERE status='pending'``
before materializing it. Two overlapping runs can both select a row, but only
one claim succeeds, so no scheduled post is published twice. A claim older
than ``SCHEDULED_CLAIM_TIMEOUT_MINUTES`` is expired to ``failed`` by the next
run, so a crashed run never leaves a row stuck in ``processing``.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from bonlog.db.scheduled_post_tables import ScheduledPostGenreRow, ScheduledPostMediaRow, ScheduledPostRow
from bonlog.db.tables import GenreRow, PostGenreRow, PostMediaRow, PostRow, utcnow
from bonlog.db.user_tables import UserRow
from bonlog.errors import AuthenticationRequired, NotFound, PermissionDenied, TransientStorageError, ValidationError
from bonlog.models.moderation import ScheduledPostStatus
from config.settings import settings

logger = logging.getLogger(__name__)

# ── Limits (premium membership) ──────────────────────────────────────────────

MAX_DAYS_AHEAD = 30
MAX_GENRES = 3
MAX_PENDING_PER_USER = 10
MAX_CONTENT_LENGTH = 2000
MAX_IMAGES = 6
MAX_VIDEOS = 3
MEDIA_TYPES = ("image", "video")


class PublishRejected(Exception):
    """The scheduled post can never be published (author gone or suspended)."""


def as_utc_naive(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


# ── Validation ───────────────────────────────────────────────────────────────

async def _require_premium(session: AsyncSession, user_id: str) -> UserRow:
    user = await session.get(UserRow, user_id)
    if user is None:
        raise AuthenticationRequired("Authentication required")
    if not user.is_premium:
        raise ValidationError("Scheduled posts are a premium feature")
    return user


def _validate_payload(
    content: Optional[str],
    scheduled_at: datetime,
    genre_ids: list[str],
    media: list[dict],
    now: datetime,
) -> None:
    if scheduled_at <= now:
        raise ValidationError("Scheduled time must be in the future")
    if scheduled_at > now + timedelta(days=MAX_DAYS_AHEAD):
        raise ValidationError(f"Scheduled time must be within {MAX_DAYS_AHEAD} days")
    if not content and not media:
        raise ValidationError("Enter text or attach media")
    if content and len(content) > MAX_CONTENT_LENGTH:
        raise ValidationError(f"Posts are limited to {MAX_CONTENT_LENGTH} characters")
    if len(genre_ids) > MAX_GENRES:
        raise ValidationError(f"Select at most {MAX_GENRES} genres")

    types = [m.get("type") or "image" for m in media]
    if any(t not in MEDIA_TYPES for t in types):
        raise ValidationError("Unsupported media type")
    if any(not m.get("url") for m in media):
        raise ValidationError("Media URL is required")
    if types.count("image") > MAX_IMAGES:
        raise ValidationError(f"At most {MAX_IMAGES} images per post")
    if types.count("video") > MAX_VIDEOS:
        raise ValidationError(f"At most {MAX_VIDEOS} videos per post")


def _attach(session: AsyncSession, scheduled_post_id: str, genre_ids: list[str], media: list[dict]) -> None:
    for i, m in enumerate(media):
        session.add(ScheduledPostMediaRow(
            scheduled_post_id=scheduled_post_id,
            url=m["url"],
            type=m.get("type") or "image",
            sort_order=i,
        ))
    for genre_id in dict.fromkeys(genre_ids):
        session.add(ScheduledPostGenreRow(scheduled_post_id=scheduled_post_id, genre_id=genre_id))


async def _owned(session: AsyncSession, user_id: str, scheduled_post_id: str) -> ScheduledPostRow:
    sp = await session.get(ScheduledPostRow, scheduled_post_id)
    if sp is None:
        raise NotFound("Scheduled post not found")
    if sp.user_id != user_id:
        raise PermissionDenied("Not your scheduled post")
    return sp


async def _serialize(session: AsyncSession, rows: list[ScheduledPostRow]) -> list[dict]:
    if not rows:
        return []
    ids = [r.id for r in rows]

    media: dict[str, list[dict]] = {i: [] for i in ids}
    for m in (await session.execute(
        select(ScheduledPostMediaRow)
        .where(ScheduledPostMediaRow.scheduled_post_id.in_(ids))
        .order_by(ScheduledPostMediaRow.sort_order)
    )).scalars():
        media[m.scheduled_post_id].append({"url": m.url, "type": m.type, "sort_order": m.sort_order})

    genres: dict[str, list[dict]] = {i: [] for i in ids}
    for sp_id, genre in (await session.execute(
        select(ScheduledPostGenreRow.scheduled_post_id, GenreRow)
        .join(GenreRow, GenreRow.id == ScheduledPostGenreRow.genre_id)
        .where(ScheduledPostGenreRow.scheduled_post_id.in_(ids))
    )).all():
        genres[sp_id].append({"id": genre.id, "name": genre.name, "category": genre.category})

    return [
        {
            "id": r.id,
            "content": r.content,
            "scheduled_at": r.scheduled_at.isoformat(),
            "status": r.status,
            "published_post_id": r.published_post_id,
            "media": media[r.id],
            "genres": genres[r.id],
            "created_at": r.created_at.isoformat() if r.created_at else None,
        }
        for r in rows
    ]


# ── User operations ──────────────────────────────────────────────────────────

async def create_scheduled_post(
    session: AsyncSession,
    user_id: str,
    scheduled_at: datetime,
    content: Optional[str] = None,
    genre_ids: Iterable[str] = (),
    media: Iterable[dict] = (),
    now: Optional[datetime] = None,
) -> dict:
    now = now or utcnow()
    content = (content or "").strip() or None
    genre_ids, media = list(genre_ids), list(media)
    scheduled_at = as_utc_naive(scheduled_at)

    try:
        await _require_premium(session, user_id)
        _validate_payload(content, scheduled_at, genre_ids, media, now)
        pending = (await session.execute(
            select(func.count(ScheduledPostRow.id)).where(
                ScheduledPostRow.user_id == user_id,
                ScheduledPostRow.status == ScheduledPostStatus.PENDING.value,
            )
        )).scalar() or 0
        if pending >= MAX_PENDING_PER_USER:
            raise ValidationError(
                f"You can have at most {MAX_PENDING_PER_USER} pending scheduled posts. Delete one first."
            )
    except ValidationError as e:
        return {"error": e.message}

    try:
        sp = ScheduledPostRow(user_id=user_id, content=content, scheduled_at=scheduled_at)
        session.add(sp)
        await session.flush()
        _attach(session, sp.id, genre_ids, media)
        await session.commit()
    except SQLAlchemyError:
        await session.rollback()
        logger.exception("Failed to create scheduled post for %s", user_id)
        return {"error": "Failed to create scheduled post"}

    return {"success": True, "scheduled_post_id": sp.id}


async def list_scheduled_posts(session: AsyncSession, user_id: str) -> dict:
    try:
        await _require_premium(session, user_id)
    except ValidationError as e:
        return {"error": e.message, "scheduled_posts": []}

    rows = (await session.execute(
        select(ScheduledPostRow)
        .where(ScheduledPostRow.user_id == user_id)
        .order_by(ScheduledPostRow.scheduled_at.asc())
    )).scalars().all()
    return {"scheduled_posts": await _serialize(session, list(rows))}


async def get_scheduled_post(session: AsyncSession, user_id: str, scheduled_post_id: str) -> dict:
    sp = await _owned(session, user_id, scheduled_post_id)
    return {"scheduled_post": (await _serialize(session, [sp]))[0]}


async def update_scheduled_post(
    session: AsyncSession,
    user_id: str,
    scheduled_post_id: str,
    scheduled_at: datetime,
    content: Optional[str] = None,
    genre_ids: Iterable[str] = (),
    media: Iterable[dict] = (),
    now: Optional[datetime] = None,
) -> dict:
    """Replace a pending post's text, time, media and genres."""
    now = now or utcnow()
    content = (content or "").strip() or None
    genre_ids, media = list(genre_ids), list(media)
    scheduled_at = as_utc_naive(scheduled_at)

    sp = await _owned(session, user_id, scheduled_post_id)
    if sp.status != ScheduledPostStatus.PENDING.value:
        return {"error": "Only pending scheduled posts can be edited"}
    try:
        _validate_payload(content, scheduled_at, genre_ids, media, now)
    except ValidationError as e:
        return {"error": e.message}

    try:
        result = await session.execute(
            update(ScheduledPostRow)
            .where(
                ScheduledPostRow.id == scheduled_post_id,
                ScheduledPostRow.status == ScheduledPostStatus.PENDING.value,
            )
            .values(content=content, scheduled_at=scheduled_at)
        )
        if result.rowcount != 1:
            await session.rollback()
            return {"error": "Only pending scheduled posts can be edited"}
        await session.execute(
            delete(ScheduledPostMediaRow).where(ScheduledPostMediaRow.scheduled_post_id == scheduled_post_id)
        )
        await session.execute(
            delete(ScheduledPostGenreRow).where(ScheduledPostGenreRow.scheduled_post_id == scheduled_post_id)
        )
        _attach(session, scheduled_post_id, genre_ids, media)
        await session.commit()
    except SQLAlchemyError:
        await session.rollback()
        logger.exception("Failed to update scheduled post %s", scheduled_post_id)
        return {"error": "Failed to update scheduled post"}

    return {"success": True}


async def cancel_scheduled_post(session: AsyncSession, user_id: str, scheduled_post_id: str) -> dict:
    sp = await _owned(session, user_id, scheduled_post_id)
    if sp.status != ScheduledPostStatus.PENDING.value:
        return {"error": "Only pending scheduled posts can be cancelled"}

    try:
        result = await session.execute(
            update(ScheduledPostRow)
            .where(
                ScheduledPostRow.id == scheduled_post_id,
                ScheduledPostRow.status == ScheduledPostStatus.PENDING.value,
            )
            .values(status=ScheduledPostStatus.CANCELLED.value)
        )
        await session.commit()
    except SQLAlchemyError:
        await session.rollback()
        logger.exception("Failed to cancel scheduled post %s", scheduled_post_id)
        return {"error": "Failed to cancel scheduled post"}

    if result.rowcount != 1:
        # Publisher claimed it first
        return {"error": "Only pending scheduled posts can be cancelled"}
    return {"success": True}


async def delete_scheduled_post(session: AsyncSession, user_id: str, scheduled_post_id: str) -> dict:
    sp = await _owned(session, user_id, scheduled_post_id)
    locked = (ScheduledPostStatus.PUBLISHED.value, ScheduledPostStatus.PROCESSING.value)
    if sp.status in locked:
        return {"error": "Published scheduled posts cannot be deleted"}

    try:
        await session.execute(
            delete(ScheduledPostMediaRow).where(ScheduledPostMediaRow.scheduled_post_id == scheduled_post_id)
        )
        await session.execute(
            delete(ScheduledPostGenreRow).where(ScheduledPostGenreRow.scheduled_post_id == scheduled_post_id)
        )
        result = await session.execute(
            delete(ScheduledPostRow).where(
                ScheduledPostRow.id == scheduled_post_id,
                ScheduledPostRow.status.notin_(locked),
            )
        )
        if result.rowcount != 1:
            await session.rollback()
            return {"error": "Published scheduled posts cannot be deleted"}
        await session.commit()
    except SQLAlchemyError:
        await session.rollback()
        logger.exception("Failed to delete scheduled post %s", scheduled_post_id)
        return {"error": "Failed to delete scheduled post"}

    return {"success": True}


# ── Publisher ────────────────────────────────────────────────────────────────

async def _fail_stale_claims(session: AsyncSession, now: datetime) -> int:
    """Move rows stuck in ``processing`` past the claim timeout to ``failed``.

    A run that dies between claim and commit would otherwise leave the row
    locked forever. Errors here are logged and never stop the batch.
    """
    cutoff = now - timedelta(minutes=settings.SCHEDULED_CLAIM_TIMEOUT_MINUTES)
    try:
        result = await session.execute(
            update(ScheduledPostRow)
            .where(
                ScheduledPostRow.status == ScheduledPostStatus.PROCESSING.value,
                ScheduledPostRow.updated_at < cutoff,
            )
            .values(status=ScheduledPostStatus.FAILED.value, updated_at=now)
        )
        await session.commit()
    except SQLAlchemyError:
        await session.rollback()
        logger.exception("Could not expire stale scheduled post claims")
        return 0

    expired = result.rowcount or 0
    if expired:
        logger.warning("Expired %d scheduled posts stuck in processing since before %s", expired, cutoff)
    return expired


async def _load_due(session: AsyncSession, now: datetime, batch_size: int) -> list[str]:
    try:
        rows = await session.execute(
            select(ScheduledPostRow.id)
            .where(
                ScheduledPostRow.status == ScheduledPostStatus.PENDING.value,
                ScheduledPostRow.scheduled_at <= now,
            )
            .order_by(ScheduledPostRow.scheduled_at.asc())
            .limit(batch_size)
        )
    except SQLAlchemyError as e:
        await session.rollback()
        raise TransientStorageError("Could not load due scheduled posts") from e
    return list(rows.scalars().all())


async def _claim(session: AsyncSession, scheduled_post_id: str) -> bool:
    result = await session.execute(
        update(ScheduledPostRow)
        .where(
            ScheduledPostRow.id == scheduled_post_id,
            ScheduledPostRow.status == ScheduledPostStatus.PENDING.value,
        )
        .values(status=ScheduledPostStatus.PROCESSING.value, updated_at=utcnow())
    )
    await session.commit()
    return result.rowcount == 1


async def _materialize(session: AsyncSession, scheduled_post_id: str) -> str:
    """Copy a claimed scheduled post into a live post. Commits; returns the post id."""
    sp = await session.get(ScheduledPostRow, scheduled_post_id)
    author = await session.get(UserRow, sp.user_id)
    if author is None or author.is_suspended:
        raise PublishRejected("author missing or suspended")

    media = (await session.execute(
        select(ScheduledPostMediaRow)
        .where(ScheduledPostMediaRow.scheduled_post_id == sp.id)
        .order_by(ScheduledPostMediaRow.sort_order)
    )).scalars().all()
    genre_ids = (await session.execute(
        select(ScheduledPostGenreRow.genre_id).where(ScheduledPostGenreRow.scheduled_post_id == sp.id)
    )).scalars().all()

    post = PostRow(user_id=sp.user_id, content=sp.content)
    session.add(post)
    await session.flush()
    for m in media:
        session.add(PostMediaRow(post_id=post.id, url=m.url, type=m.type, sort_order=m.sort_order))
    for genre_id in genre_ids:
        session.add(PostGenreRow(post_id=post.id, genre_id=genre_id))

    sp.status = ScheduledPostStatus.PUBLISHED.value
    sp.published_post_id = post.id
    await session.commit()
    return post.id


async def _mark_failed(session: AsyncSession, scheduled_post_id: str) -> None:
    try:
        await session.execute(
            update(ScheduledPostRow)
            .where(
                ScheduledPostRow.id == scheduled_post_id,
                ScheduledPostRow.status == ScheduledPostStatus.PROCESSING.value,
            )
            .values(status=ScheduledPostStatus.FAILED.value)
        )
        await session.commit()
    except SQLAlchemyError:
        await session.rollback()
        logger.exception("Could not mark scheduled post %s failed; the claim timeout will expire it", scheduled_post_id)


async def publish_scheduled_posts(
    session: AsyncSession,
    now: Optional[datetime] = None,
    batch_size: Optional[int] = None,
) -> dict:
    """Publish every due pending post (up to ``batch_size``), oldest first.

    Items are processed sequentially and isolated: a failure rolls back that
    item only and the loop continues. A row whose claim fails stays
    ``pending`` for the next run; a row that fails after its claim is marked
    ``failed``. Returns ``{"error": ...}`` only when the due rows cannot be
    read at all.
    """
    now = as_utc_naive(now) if now else utcnow()
    batch_size = batch_size or settings.SCHEDULED_PUBLISH_BATCH_SIZE

    expired = await _fail_stale_claims(session, now)
    try:
        due = await _load_due(session, now, batch_size)
    except TransientStorageError as e:
        logger.exception("Scheduled publish aborted before any item was claimed")
        return {"error": e.message}

    published = failed = skipped = 0
    errors: list[str] = []

    for sp_id in due:
        try:
            claimed = await _claim(session, sp_id)
        except SQLAlchemyError as e:
            await session.rollback()
            logger.exception("Could not claim scheduled post %s; left pending", sp_id)
            failed += 1
            errors.append(f"{sp_id}: {type(e).__name__}")
            continue
        if not claimed:
            skipped += 1
            continue
        try:
            await _materialize(session, sp_id)
            published += 1
        except PublishRejected as e:
            await session.rollback()
            logger.warning("Scheduled post %s not published: %s", sp_id, e)
            await _mark_failed(session, sp_id)
            failed += 1
            errors.append(f"{sp_id}: {e}")
        except Exception as e:
            await session.rollback()
            logger.exception("Failed to publish scheduled post %s", sp_id)
            await _mark_failed(session, sp_id)
            failed += 1
            errors.append(f"{sp_id}: {type(e).__name__}")

    if due:
        logger.info("Scheduled publish: %d published, %d failed, %d skipped", published, failed, skipped)
    return {"published": published, "failed": failed, "skipped": skipped, "expired": expired, "errors": errors}
