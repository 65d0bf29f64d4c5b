"""Moderation enums — closed vocabularies validated at the API boundary."""
from __future__ import annotations

from enum import Enum


class ContentType(str, Enum):
    """Moderatable content kinds (hide / restore / purge lifecycle)."""
    POST = "post"
    COMMENT = "comment"
    EVENT = "event"
    SHOP = "shop"
    REVIEW = "review"


class ReportTargetType(str, Enum):
    POST = "post"
    COMMENT = "comment"
    EVENT = "event"
    SHOP = "shop"
    REVIEW = "review"
    USER = "user"


class ReportReason(str, Enum):
    SPAM = "spam"
    INAPPROPRIATE = "inappropriate"
    HARASSMENT = "harassment"
    COPYRIGHT = "copyright"
    OTHER = "other"


class ReportStatus(str, Enum):
    PENDING = "pending"
    REVIEWED = "reviewed"
    RESOLVED = "resolved"
    DISMISSED = "dismissed"
    AUTO_HIDDEN = "auto_hidden"


# A reporter may hold one open report per target
OPEN_REPORT_STATUSES = (ReportStatus.PENDING, ReportStatus.REVIEWED, ReportStatus.AUTO_HIDDEN)

TARGET_TYPE_LABELS = {
    ReportTargetType.POST: "Post",
    ReportTargetType.COMMENT: "Comment",
    ReportTargetType.EVENT: "Event",
    ReportTargetType.SHOP: "Bonsai shop",
    ReportTargetType.REVIEW: "Review",
    ReportTargetType.USER: "User",
}


class ScheduledPostStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    PUBLISHED = "published"
    CANCELLED = "cancelled"
    FAILED = "failed"
