"""Content reporting and moderation audit tables."""
from __future__ import annotations

from sqlalchemy import (
    Column, String, Text, DateTime, Integer, Boolean, JSON,
    ForeignKey, Index,
)

from bonlog.db.tables import Base, new_id, utcnow


class ReportRow(Base):
    """User-submitted content reports for moderation."""
    __tablename__ = "reports"

    id = Column(String(36), primary_key=True, default=new_id)
    reporter_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    target_type = Column(String(20), nullable=False)  # post, comment, event, shop, review, user
    target_id = Column(String(36), nullable=False)
    reason = Column(String(50), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String(20), default="pending", nullable=False)
    created_at = Column(DateTime, default=utcnow)

    __table_args__ = (
        Index("ix_report_status", "status"),
        Index("ix_report_target", "target_type", "target_id"),
    )


class AdminNotificationRow(Base):
    """Raised when content is auto-hidden; resolved by restore or purge."""
    __tablename__ = "admin_notifications"

    id = Column(String(36), primary_key=True, default=new_id)
    type = Column(String(30), nullable=False)  # auto_hidden
    target_type = Column(String(20), nullable=False)
    target_id = Column(String(36), nullable=False)
    message = Column(Text, nullable=False)
    report_count = Column(Integer, nullable=False, default=0)
    is_read = Column(Boolean, nullable=False, default=False)
    is_resolved = Column(Boolean, nullable=False, default=False)
    resolved_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_admin_notification_target", "target_type", "target_id"),
    )


class AdminLogRow(Base):
    """Append-only audit trail of privileged mutations."""
    __tablename__ = "admin_logs"

    id = Column(String(36), primary_key=True, default=new_id)
    # No FK: entries must outlive revoked grants and deleted accounts
    admin_id = Column(String(36), nullable=False, index=True)
    action = Column(String(50), nullable=False)
    target_type = Column(String(20), nullable=True)
    target_id = Column(String(36), nullable=True)
    details = Column(JSON, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
