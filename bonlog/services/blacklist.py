"""Email blacklist — admin-managed addresses that may not sign up or log in."""
from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from bonlog.db.report_tables import AdminLogRow
from bonlog.db.user_tables import EmailBlacklistRow
from bonlog.errors import NotFound
from bonlog.security_log import log_admin_action, mask_email
from bonlog.services.admin_review import ensure_admin

logger = logging.getLogger(__name__)


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


async def is_email_blacklisted(session: AsyncSession, email: str) -> bool:
    """Lookup used by signup and login. A storage error counts as not listed."""
    try:
        entry = (await session.execute(
            select(EmailBlacklistRow.id).where(EmailBlacklistRow.email == normalize_email(email))
        )).scalar_one_or_none()
    except SQLAlchemyError:
        await session.rollback()
        logger.warning("Email blacklist lookup failed; allowing %s", mask_email(email), exc_info=True)
        return False
    return entry is not None


async def add_email_to_blacklist(
    session: AsyncSession,
    admin_id: str,
    email: str,
    reason: Optional[str] = None,
) -> dict:
    await ensure_admin(session, admin_id)

    email = normalize_email(email)
    if not email or "@" not in email:
        return {"error": "Enter a valid email address"}
    reason = (reason or "").strip() or None

    existing = (await session.execute(
        select(EmailBlacklistRow.id).where(EmailBlacklistRow.email == email)
    )).scalar_one_or_none()
    if existing:
        return {"error": "This email address is already blacklisted"}

    try:
        entry = EmailBlacklistRow(email=email, reason=reason, created_by=admin_id)
        session.add(entry)
        await session.flush()
        session.add(AdminLogRow(
            admin_id=admin_id, action="blacklist_email", target_type="email_blacklist", target_id=entry.id,
            details={"email": email, "reason": reason},
        ))
        await session.commit()
    except IntegrityError:
        # Another admin added the same address first
        await session.rollback()
        return {"error": "This email address is already blacklisted"}
    except SQLAlchemyError:
        await session.rollback()
        logger.exception("Failed to blacklist %s", mask_email(email))
        return {"error": "Failed to add to the blacklist"}

    log_admin_action(admin_id, "blacklist_email", "email_blacklist", entry.id, {"email": mask_email(email)})
    return {"success": True, "id": entry.id}


async def remove_email_from_blacklist(session: AsyncSession, admin_id: str, entry_id: str) -> dict:
    await ensure_admin(session, admin_id)

    entry = await session.get(EmailBlacklistRow, entry_id)
    if entry is None:
        raise NotFound("Blacklist entry not found")
    email = entry.email

    try:
        await session.execute(delete(EmailBlacklistRow).where(EmailBlacklistRow.id == entry_id))
        session.add(AdminLogRow(
            admin_id=admin_id, action="unblacklist_email", target_type="email_blacklist", target_id=entry_id,
            details={"email": email},
        ))
        await session.commit()
    except SQLAlchemyError:
        await session.rollback()
        logger.exception("Failed to remove blacklist entry %s", entry_id)
        return {"error": "Failed to remove from the blacklist"}

    log_admin_action(admin_id, "unblacklist_email", "email_blacklist", entry_id, {"email": mask_email(email)})
    return {"success": True}


async def get_email_blacklist(
    session: AsyncSession,
    admin_id: str,
    search: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> dict:
    await ensure_admin(session, admin_id)

    filters = [EmailBlacklistRow.email.contains(normalize_email(search))] if search else []
    rows = (await session.execute(
        select(EmailBlacklistRow)
        .where(*filters)
        .order_by(EmailBlacklistRow.created_at.desc())
        .offset(offset)
        .limit(limit)
    )).scalars().all()
    total = (await session.execute(select(func.count(EmailBlacklistRow.id)).where(*filters))).scalar() or 0

    return {
        "items": [
            {
                "id": r.id,
                "email": r.email,
                "reason": r.reason,
                "created_by": r.created_by,
                "created_at": r.created_at.isoformat() if r.created_at else None,
            }
            for r in rows
        ],
        "total": total,
    }
