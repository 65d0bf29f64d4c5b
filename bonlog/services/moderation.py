"""Report pipeline — user reports, threshold auto-hide, admin report queue.

Flow for ``create_report``:

    validate enums → target exists → not own content → no open duplicate
      → insert report (commit)
      → recount open reports for the target
      → count >= threshold: hide target (users: suspend) *if not already*,
        mark pending reports auto_hidden, raise one admin notification

The hide is a conditional UPDATE (``WHERE is_hidden = false``). Only the
request whose UPDATE changed the row writes the notification, so concurrent
reporters crossing the threshold together produce exactly one.
"""
from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from bonlog.db.report_tables import AdminLogRow, AdminNotificationRow, ReportRow
from bonlog.db.tables import utcnow
from bonlog.db.user_tables import UserRow
from bonlog.errors import NotFound
from bonlog.models.moderation import (
    OPEN_REPORT_STATUSES,
    TARGET_TYPE_LABELS,
    ReportReason,
    ReportStatus,
    ReportTargetType,
)
from bonlog.security_log import log_admin_action, log_invalid_input
from bonlog.services.admin_review import ensure_admin
from bonlog.services.content import load_target, owner_id, report_target
from config.settings import settings

logger = logging.getLogger(__name__)

MAX_DESCRIPTION_LENGTH = 2000


def _report_dict(r: ReportRow) -> dict:
    return {
        "id": r.id,
        "reporter_id": r.reporter_id,
        "target_type": r.target_type,
        "target_id": r.target_id,
        "reason": r.reason,
        "description": r.description,
        "status": r.status,
        "created_at": r.created_at.isoformat() if r.created_at else None,
    }


# ── User side ────────────────────────────────────────────────────────────────

async def create_report(
    session: AsyncSession,
    reporter_id: str,
    target_type: str,
    target_id: str,
    reason: str,
    description: Optional[str] = None,
    threshold: Optional[int] = None,
    ip: Optional[str] = None,
) -> dict:
    """File a report. Returns ``{success, report_id}`` or ``{error}``.

    Raises ``NotFound`` when the target does not exist.
    """
    try:
        ttype = ReportTargetType(target_type)
    except ValueError:
        log_invalid_input("target_type", f"unknown value {target_type!r}", ip=ip, user_id=reporter_id)
        return {"error": "Invalid target type"}
    try:
        rreason = ReportReason(reason)
    except ValueError:
        log_invalid_input("reason", f"unknown value {reason!r}", ip=ip, user_id=reporter_id)
        return {"error": "Invalid report reason"}

    description = (description or "").strip() or None
    if description and len(description) > MAX_DESCRIPTION_LENGTH:
        log_invalid_input("description", "too long", ip=ip, user_id=reporter_id)
        return {"error": f"Description must be at most {MAX_DESCRIPTION_LENGTH} characters"}

    if threshold is None:
        threshold = settings.AUTO_HIDE_THRESHOLD

    target = await load_target(session, ttype, target_id)
    if target is None:
        raise NotFound("Report target not found")
    if owner_id(target, ttype) == reporter_id:
        if ttype is ReportTargetType.USER:
            return {"error": "You cannot report yourself"}
        return {"error": "You cannot report your own content"}

    try:
        existing = await session.execute(
            select(ReportRow.id).where(
                ReportRow.reporter_id == reporter_id,
                ReportRow.target_type == ttype.value,
                ReportRow.target_id == target_id,
                ReportRow.status.in_([s.value for s in OPEN_REPORT_STATUSES]),
            ).limit(1)
        )
        if existing.scalar_one_or_none():
            return {"error": "You have already reported this content"}

        report = ReportRow(
            reporter_id=reporter_id,
            target_type=ttype.value,
            target_id=target_id,
            reason=rreason.value,
            description=description,
            status=ReportStatus.PENDING.value,
        )
        session.add(report)
        await session.commit()
        report_id = report.id

        count = await count_reports(session, ttype, target_id)
    except SQLAlchemyError:
        await session.rollback()
        logger.exception("Failed to create report on %s/%s", ttype.value, target_id)
        return {"error": "Failed to submit report"}

    if count >= threshold:
        try:
            await auto_hide(session, ttype, target_id, count)
        except SQLAlchemyError:
            # Report is stored; the next report past the threshold retries the hide
            await session.rollback()
            logger.exception("Auto-hide failed for %s/%s", ttype.value, target_id)

    return {"success": True, "report_id": report_id}


async def count_reports(session: AsyncSession, target_type: ReportTargetType, target_id: str) -> int:
    # Resolved and dismissed reports belong to an earlier moderation cycle
    result = await session.execute(
        select(func.count(ReportRow.id)).where(
            ReportRow.target_type == target_type.value,
            ReportRow.target_id == target_id,
            ReportRow.status.in_([s.value for s in OPEN_REPORT_STATUSES]),
        )
    )
    return result.scalar() or 0


async def auto_hide(
    session: AsyncSession,
    target_type: ReportTargetType,
    target_id: str,
    report_count: int,
) -> bool:
    """Hide (or suspend) the target if still visible. Returns True if this call hid it."""
    now = utcnow()
    model = report_target(target_type).model

    if target_type is ReportTargetType.USER:
        stmt = (
            update(UserRow)
            .where(UserRow.id == target_id, UserRow.is_suspended == False)  # noqa: E712
            .values(is_suspended=True, suspended_at=now)
        )
    else:
        stmt = (
            update(model)
            .where(model.id == target_id, model.is_hidden == False)  # noqa: E712
            .values(is_hidden=True, hidden_at=now)
        )

    result = await session.execute(stmt)
    if result.rowcount != 1:
        await session.rollback()
        return False

    await session.execute(
        update(ReportRow)
        .where(
            ReportRow.target_type == target_type.value,
            ReportRow.target_id == target_id,
            ReportRow.status == ReportStatus.PENDING.value,
        )
        .values(status=ReportStatus.AUTO_HIDDEN.value)
    )

    label = TARGET_TYPE_LABELS[target_type]
    session.add(AdminNotificationRow(
        type="auto_hidden",
        target_type=target_type.value,
        target_id=target_id,
        message=f"{label} was automatically hidden after {report_count} reports",
        report_count=report_count,
    ))
    await session.commit()

    logger.info("Auto-hid %s/%s after %d reports", target_type.value, target_id, report_count)
    return True


async def get_my_reports(session: AsyncSession, reporter_id: str, limit: int = 20, offset: int = 0) -> dict:
    result = await session.execute(
        select(ReportRow)
        .where(ReportRow.reporter_id == reporter_id)
        .order_by(ReportRow.created_at.desc())
        .offset(offset)
        .limit(limit)
    )
    return {"reports": [_report_dict(r) for r in result.scalars().all()]}


# ── Admin side ───────────────────────────────────────────────────────────────

async def get_reports(
    session: AsyncSession,
    admin_id: str,
    status: Optional[str] = None,
    target_type: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> dict:
    await ensure_admin(session, admin_id)

    filters = []
    if status:
        filters.append(ReportRow.status == status)
    if target_type:
        filters.append(ReportRow.target_type == target_type)

    result = await session.execute(
        select(ReportRow, UserRow.display_name)
        .join(UserRow, UserRow.id == ReportRow.reporter_id, isouter=True)
        .where(*filters)
        .order_by(ReportRow.created_at.desc())
        .offset(offset)
        .limit(limit)
    )
    reports = []
    for row, reporter_name in result.all():
        item = _report_dict(row)
        item["reporter"] = {"id": row.reporter_id, "display_name": reporter_name}
        reports.append(item)

    total = (await session.execute(select(func.count(ReportRow.id)).where(*filters))).scalar() or 0
    return {"reports": reports, "total": total}


async def update_report_status(
    session: AsyncSession,
    admin_id: str,
    report_id: str,
    status: str,
    note: Optional[str] = None,
) -> dict:
    await ensure_admin(session, admin_id)

    try:
        new_status = ReportStatus(status)
    except ValueError:
        return {"error": "Invalid report status"}

    report = await session.get(ReportRow, report_id)
    if report is None:
        raise NotFound("Report not found")

    previous = report.status
    try:
        report.status = new_status.value
        session.add(AdminLogRow(
            admin_id=admin_id,
            action="update_report_status",
            target_type="report",
            target_id=report_id,
            details={"previous_status": previous, "new_status": new_status.value, "note": note},
        ))
        await session.commit()
    except SQLAlchemyError:
        await session.rollback()
        logger.exception("Failed to update report %s", report_id)
        return {"error": "Failed to update report"}

    log_admin_action(
        admin_id, "update_report_status", "report", report_id,
        {"previous_status": previous, "new_status": new_status.value},
    )
    return {"success": True}


async def get_report_stats(session: AsyncSession, admin_id: str) -> dict:
    await ensure_admin(session, admin_id)

    by_status = dict((await session.execute(
        select(ReportRow.status, func.count(ReportRow.id)).group_by(ReportRow.status)
    )).all())
    by_type = dict((await session.execute(
        select(ReportRow.target_type, func.count(ReportRow.id)).group_by(ReportRow.target_type)
    )).all())

    stats = {s.value: by_status.get(s.value, 0) for s in ReportStatus}
    stats["total"] = sum(by_status.values())
    stats["by_type"] = by_type
    return {"stats": stats}
