"""Admin review console — hidden content, notifications, user suspension, audit log.

Every operation re-reads the caller's ``admin_users`` grant first; a grant
revoked between two requests takes effect immediately.

Each privileged mutation writes its ``AdminLog`` row in the same commit as
the state change, so the audit trail never disagrees with the data.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from bonlog.db.content_tables import CommentRow, ShopRow, ShopReviewRow
from bonlog.db.report_tables import AdminLogRow, AdminNotificationRow, ReportRow
from bonlog.db.tables import PostGenreRow, PostMediaRow, utcnow
from bonlog.db.user_tables import AdminUserRow, UserRow
from bonlog.errors import AuthenticationRequired, NotFound, PermissionDenied
from bonlog.models.moderation import ContentType, ReportStatus
from bonlog.security_log import log_admin_action, log_unauthorized_access
from bonlog.services.content import CONTENT_KINDS, content_kind, snippet

logger = logging.getLogger(__name__)


async def ensure_admin(session: AsyncSession, user_id: Optional[str], ip: Optional[str] = None) -> AdminUserRow:
    """Return the caller's admin grant or raise."""
    if not user_id or await session.get(UserRow, user_id) is None:
        raise AuthenticationRequired("Authentication required")
    grant = (await session.execute(
        select(AdminUserRow).where(AdminUserRow.user_id == user_id)
    )).scalar_one_or_none()
    if grant is None:
        log_unauthorized_access("admin", ip=ip, user_id=user_id)
        raise PermissionDenied("Admin privileges required")
    return grant


def _parse_type(content_type: str) -> Optional[ContentType]:
    try:
        return ContentType(content_type)
    except ValueError:
        return None


async def _resolve_notifications(session: AsyncSession, target_type: str, target_id: str, now: datetime) -> None:
    await session.execute(
        update(AdminNotificationRow)
        .where(
            AdminNotificationRow.target_type == target_type,
            AdminNotificationRow.target_id == target_id,
            AdminNotificationRow.is_resolved == False,  # noqa: E712
        )
        .values(is_resolved=True, resolved_at=now)
    )


# ── Hidden content ───────────────────────────────────────────────────────────

async def get_hidden_content(
    session: AsyncSession,
    admin_id: str,
    content_type: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> dict:
    """Hidden items across all moderatable kinds, newest hide first.

    Without a type filter each kind is queried for ``offset + limit`` rows,
    merged, sorted, then sliced, so pages stay consistent across kinds.
    Items without ``hidden_at`` sort last.
    """
    await ensure_admin(session, admin_id)

    if content_type:
        ct = _parse_type(content_type)
        if ct is None:
            return {"error": "Invalid content type"}
        kinds = [ct]
    else:
        kinds = list(CONTENT_KINDS)

    items: list[dict] = []
    for ct in kinds:
        kind = CONTENT_KINDS[ct]
        model = kind.model
        owner_col = getattr(model, kind.owner_attr)

        stmt = (
            select(model, UserRow.display_name, UserRow.avatar_url)
            .join(UserRow, UserRow.id == owner_col, isouter=True)
            .where(model.is_hidden == True)  # noqa: E712
            .order_by(model.hidden_at.desc())
        )
        if content_type:
            stmt = stmt.offset(offset).limit(limit)
        else:
            stmt = stmt.limit(offset + limit)
        rows = (await session.execute(stmt)).all()
        if not rows:
            continue

        ids = [r[0].id for r in rows]
        counts = dict((await session.execute(
            select(ReportRow.target_id, func.count(ReportRow.id))
            .where(ReportRow.target_type == ct.value, ReportRow.target_id.in_(ids))
            .group_by(ReportRow.target_id)
        )).all())

        shop_names: dict[str, str] = {}
        if ct is ContentType.REVIEW:
            shop_ids = {r[0].shop_id for r in rows}
            shop_names = dict((await session.execute(
                select(ShopRow.id, ShopRow.name).where(ShopRow.id.in_(shop_ids))
            )).all())

        for row, display_name, avatar_url in rows:
            items.append({
                "type": ct.value,
                "id": row.id,
                "content": snippet(row, ct, shop_names.get(getattr(row, "shop_id", None))),
                "created_by": {
                    "id": getattr(row, kind.owner_attr),
                    "display_name": display_name,
                    "avatar_url": avatar_url,
                },
                "hidden_at": row.hidden_at,
                "report_count": counts.get(row.id, 0),
            })

    items.sort(key=lambda i: i["hidden_at"] or datetime.min, reverse=True)
    if not content_type:
        items = items[offset:offset + limit]
    for item in items:
        item["hidden_at"] = item["hidden_at"].isoformat() if item["hidden_at"] else None
    return {"items": items}


async def hide_content(session: AsyncSession, admin_id: str, content_type: str, content_id: str) -> dict:
    """Manually hide an item. Already hidden is a no-op."""
    await ensure_admin(session, admin_id)
    ct = _parse_type(content_type)
    if ct is None:
        return {"error": "Invalid content type"}

    model = content_kind(ct).model
    row = await session.get(model, content_id)
    if row is None:
        raise NotFound("Content not found")
    if row.is_hidden:
        return {"success": True, "changed": False}

    try:
        row.is_hidden = True
        row.hidden_at = utcnow()
        session.add(AdminLogRow(admin_id=admin_id, action="hide_content", target_type=ct.value, target_id=content_id))
        await session.commit()
    except SQLAlchemyError:
        await session.rollback()
        logger.exception("Failed to hide %s/%s", ct.value, content_id)
        return {"error": "Failed to hide content"}

    log_admin_action(admin_id, "hide_content", ct.value, content_id)
    return {"success": True, "changed": True}


async def restore_content(session: AsyncSession, admin_id: str, content_type: str, content_id: str) -> dict:
    """Un-hide an item, resolve its reports and notifications, audit. One commit."""
    await ensure_admin(session, admin_id)
    ct = _parse_type(content_type)
    if ct is None:
        return {"error": "Invalid content type"}

    model = content_kind(ct).model
    row = await session.get(model, content_id)
    if row is None:
        raise NotFound("Content not found")
    if not row.is_hidden:
        return {"success": True, "changed": False}

    now = utcnow()
    try:
        row.is_hidden = False
        row.hidden_at = None
        await session.execute(
            update(ReportRow)
            .where(ReportRow.target_type == ct.value, ReportRow.target_id == content_id)
            .values(status=ReportStatus.RESOLVED.value)
        )
        await _resolve_notifications(session, ct.value, content_id, now)
        session.add(AdminLogRow(
            admin_id=admin_id, action="restore_content", target_type=ct.value, target_id=content_id,
        ))
        await session.commit()
    except SQLAlchemyError:
        await session.rollback()
        logger.exception("Failed to restore %s/%s", ct.value, content_id)
        return {"error": "Failed to restore content"}

    log_admin_action(admin_id, "restore_content", ct.value, content_id)
    return {"success": True, "changed": True}


async def _comment_tree_ids(session: AsyncSession, root_ids: list[str]) -> list[str]:
    """All reply ids below ``root_ids`` (any depth)."""
    found: list[str] = []
    frontier = list(root_ids)
    while frontier:
        children = (await session.execute(
            select(CommentRow.id).where(CommentRow.parent_id.in_(frontier))
        )).scalars().all()
        frontier = [c for c in children if c not in found]
        found.extend(frontier)
    return found


async def _delete_dependants(session: AsyncSession, ct: ContentType, content_id: str) -> dict[ContentType, list[str]]:
    """Delete rows owned by the item. Returns the removed moderatable ids by kind."""
    removed: dict[ContentType, list[str]] = {}
    if ct is ContentType.POST:
        removed[ContentType.COMMENT] = list((await session.execute(
            select(CommentRow.id).where(CommentRow.post_id == content_id)
        )).scalars().all())
        await session.execute(delete(CommentRow).where(CommentRow.post_id == content_id))
        await session.execute(delete(PostMediaRow).where(PostMediaRow.post_id == content_id))
        await session.execute(delete(PostGenreRow).where(PostGenreRow.post_id == content_id))
    elif ct is ContentType.COMMENT:
        removed[ContentType.COMMENT] = await _comment_tree_ids(session, [content_id])
        if removed[ContentType.COMMENT]:
            await session.execute(delete(CommentRow).where(CommentRow.id.in_(removed[ContentType.COMMENT])))
    elif ct is ContentType.SHOP:
        removed[ContentType.REVIEW] = list((await session.execute(
            select(ShopReviewRow.id).where(ShopReviewRow.shop_id == content_id)
        )).scalars().all())
        await session.execute(delete(ShopReviewRow).where(ShopReviewRow.shop_id == content_id))
    return {kind: ids for kind, ids in removed.items() if ids}


async def _purge_moderation_records(session: AsyncSession, target_type: str, ids: list[str], now: datetime) -> None:
    await session.execute(
        delete(ReportRow).where(ReportRow.target_type == target_type, ReportRow.target_id.in_(ids))
    )
    await session.execute(
        update(AdminNotificationRow)
        .where(
            AdminNotificationRow.target_type == target_type,
            AdminNotificationRow.target_id.in_(ids),
            AdminNotificationRow.is_resolved == False,  # noqa: E712
        )
        .values(is_resolved=True, resolved_at=now)
    )


async def delete_hidden_content(session: AsyncSession, admin_id: str, content_type: str, content_id: str) -> dict:
    """Permanently delete an item and its dependants. Irreversible; callers confirm first."""
    await ensure_admin(session, admin_id)
    ct = _parse_type(content_type)
    if ct is None:
        return {"error": "Invalid content type"}

    model = content_kind(ct).model
    row = await session.get(model, content_id)
    if row is None:
        raise NotFound("Content not found")

    now = utcnow()
    try:
        cascaded = await _delete_dependants(session, ct, content_id)
        await session.execute(delete(model).where(model.id == content_id))
        await _purge_moderation_records(session, ct.value, [content_id], now)
        for kind, ids in cascaded.items():
            await _purge_moderation_records(session, kind.value, ids, now)
        session.add(AdminLogRow(
            admin_id=admin_id, action="delete_hidden_content", target_type=ct.value, target_id=content_id,
        ))
        await session.commit()
    except SQLAlchemyError:
        await session.rollback()
        logger.exception("Failed to delete %s/%s", ct.value, content_id)
        return {"error": "Failed to delete content"}

    log_admin_action(admin_id, "delete_hidden_content", ct.value, content_id)
    return {"success": True}


# ── Notifications ────────────────────────────────────────────────────────────

async def get_admin_notifications(
    session: AsyncSession,
    admin_id: str,
    unread_only: bool = False,
    limit: int = 20,
) -> dict:
    await ensure_admin(session, admin_id)

    stmt = select(AdminNotificationRow).order_by(AdminNotificationRow.created_at.desc()).limit(limit)
    if unread_only:
        stmt = stmt.where(AdminNotificationRow.is_read == False)  # noqa: E712
    rows = (await session.execute(stmt)).scalars().all()

    unread = (await session.execute(
        select(func.count(AdminNotificationRow.id)).where(AdminNotificationRow.is_read == False)  # noqa: E712
    )).scalar() or 0

    return {
        "notifications": [
            {
                "id": n.id,
                "type": n.type,
                "target_type": n.target_type,
                "target_id": n.target_id,
                "message": n.message,
                "report_count": n.report_count,
                "is_read": n.is_read,
                "is_resolved": n.is_resolved,
                "resolved_at": n.resolved_at.isoformat() if n.resolved_at else None,
                "created_at": n.created_at.isoformat() if n.created_at else None,
            }
            for n in rows
        ],
        "unread_count": unread,
    }


async def mark_notification_read(session: AsyncSession, admin_id: str, notification_id: str) -> dict:
    await ensure_admin(session, admin_id)
    notification = await session.get(AdminNotificationRow, notification_id)
    if notification is None:
        raise NotFound("Notification not found")
    notification.is_read = True
    await session.commit()
    return {"success": True}


async def mark_all_notifications_read(session: AsyncSession, admin_id: str) -> dict:
    await ensure_admin(session, admin_id)
    result = await session.execute(
        update(AdminNotificationRow)
        .where(AdminNotificationRow.is_read == False)  # noqa: E712
        .values(is_read=True)
    )
    await session.commit()
    return {"success": True, "updated": result.rowcount or 0}


# ── Users ────────────────────────────────────────────────────────────────────

async def _load_user_target(session: AsyncSession, admin_id: str, user_id: str) -> UserRow | dict:
    if user_id == admin_id:
        return {"error": "You cannot change your own account status"}
    user = await session.get(UserRow, user_id)
    if user is None:
        raise NotFound("User not found")
    if await session.get(AdminUserRow, user_id) is not None:
        return {"error": "Administrators cannot be suspended"}
    return user


async def suspend_user(session: AsyncSession, admin_id: str, user_id: str, reason: Optional[str] = None) -> dict:
    await ensure_admin(session, admin_id)
    user = await _load_user_target(session, admin_id, user_id)
    if isinstance(user, dict):
        return user
    if user.is_suspended:
        return {"success": True, "changed": False}

    try:
        user.is_suspended = True
        user.suspended_at = utcnow()
        session.add(AdminLogRow(
            admin_id=admin_id, action="suspend_user", target_type="user", target_id=user_id,
            details={"reason": reason} if reason else None,
        ))
        await session.commit()
    except SQLAlchemyError:
        await session.rollback()
        logger.exception("Failed to suspend user %s", user_id)
        return {"error": "Failed to suspend user"}

    log_admin_action(admin_id, "suspend_user", "user", user_id, {"reason": reason})
    return {"success": True, "changed": True}


async def activate_user(session: AsyncSession, admin_id: str, user_id: str) -> dict:
    await ensure_admin(session, admin_id)
    user = await _load_user_target(session, admin_id, user_id)
    if isinstance(user, dict):
        return user
    if not user.is_suspended:
        return {"success": True, "changed": False}

    try:
        user.is_suspended = False
        user.suspended_at = None
        session.add(AdminLogRow(admin_id=admin_id, action="activate_user", target_type="user", target_id=user_id))
        await session.commit()
    except SQLAlchemyError:
        await session.rollback()
        logger.exception("Failed to activate user %s", user_id)
        return {"error": "Failed to activate user"}

    log_admin_action(admin_id, "activate_user", "user", user_id)
    return {"success": True, "changed": True}


# ── Audit log ────────────────────────────────────────────────────────────────

async def get_admin_logs(
    session: AsyncSession,
    admin_id: str,
    action: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> dict:
    await ensure_admin(session, admin_id)

    filters = [AdminLogRow.action == action] if action else []
    rows = (await session.execute(
        select(AdminLogRow, UserRow.display_name)
        .join(UserRow, UserRow.id == AdminLogRow.admin_id, isouter=True)
        .where(*filters)
        .order_by(AdminLogRow.created_at.desc())
        .offset(offset)
        .limit(limit)
    )).all()
    total = (await session.execute(select(func.count(AdminLogRow.id)).where(*filters))).scalar() or 0

    return {
        "logs": [
            {
                "id": log.id,
                "admin": {"id": log.admin_id, "display_name": name},
                "action": log.action,
                "target_type": log.target_type,
                "target_id": log.target_id,
                "details": log.details,
                "created_at": log.created_at.isoformat() if log.created_at else None,
            }
            for log, name in rows
        ],
        "total": total,
    }
