"""Registry of reportable / moderatable targets.

Maps each target type to its table and the column naming its owner, so the
report pipeline and the admin console can treat posts, comments, events,
shops, reviews and users uniformly.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from bonlog.db.content_tables import CommentRow, EventRow, ShopRow, ShopReviewRow
from bonlog.db.tables import PostRow
from bonlog.db.user_tables import UserRow
from bonlog.models.moderation import ContentType, ReportTargetType


@dataclass(frozen=True)
class TargetKind:
    model: Any
    owner_attr: str


CONTENT_KINDS: dict[ContentType, TargetKind] = {
    ContentType.POST: TargetKind(PostRow, "user_id"),
    ContentType.COMMENT: TargetKind(CommentRow, "user_id"),
    ContentType.EVENT: TargetKind(EventRow, "created_by"),
    ContentType.SHOP: TargetKind(ShopRow, "created_by"),
    ContentType.REVIEW: TargetKind(ShopReviewRow, "user_id"),
}

REPORT_TARGETS: dict[ReportTargetType, TargetKind] = {
    ReportTargetType(ct.value): kind for ct, kind in CONTENT_KINDS.items()
}
REPORT_TARGETS[ReportTargetType.USER] = TargetKind(UserRow, "id")


def content_kind(content_type: ContentType | str) -> TargetKind:
    return CONTENT_KINDS[ContentType(content_type)]


def report_target(target_type: ReportTargetType | str) -> TargetKind:
    return REPORT_TARGETS[ReportTargetType(target_type)]


async def load_target(session: AsyncSession, target_type: ReportTargetType | str, target_id: str):
    """Fetch the row a report points at, or ``None``."""
    kind = report_target(target_type)
    return await session.get(kind.model, target_id)


def owner_id(row, target_type: ReportTargetType | str) -> Optional[str]:
    return getattr(row, report_target(target_type).owner_attr, None)


def snippet(row, content_type: ContentType | str, shop_name: Optional[str] = None) -> str:
    """Short text for moderation lists."""
    ct = ContentType(content_type)
    if ct is ContentType.EVENT:
        return f"{row.title}: {row.description}" if row.description else row.title
    if ct is ContentType.SHOP:
        return f"{row.name} ({row.address})"
    if ct is ContentType.REVIEW:
        return f"{shop_name or 'Unknown shop'} review: {row.content or '(no comment)'}"
    return row.content or ""
