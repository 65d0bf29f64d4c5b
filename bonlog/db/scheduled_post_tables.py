"""Scheduled (future-dated) posts awaiting the publisher batch."""
from __future__ import annotations

from sqlalchemy import (
    Column, String, Integer, Text, DateTime,
    ForeignKey, Index, PrimaryKeyConstraint,
)

from bonlog.db.tables import Base, new_id, utcnow


class ScheduledPostRow(Base):
    __tablename__ = "scheduled_posts"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    content = Column(Text, nullable=True)
    scheduled_at = Column(DateTime, nullable=False)
    # pending -> processing -> published | failed ; pending -> cancelled
    status = Column(String(20), nullable=False, default="pending")
    published_post_id = Column(String(36), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("ix_scheduled_posts_due", "status", "scheduled_at"),
    )


class ScheduledPostMediaRow(Base):
    __tablename__ = "scheduled_post_media"

    id = Column(String(36), primary_key=True, default=new_id)
    scheduled_post_id = Column(
        String(36), ForeignKey("scheduled_posts.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    url = Column(String(2000), nullable=False)
    type = Column(String(20), nullable=False, default="image")
    sort_order = Column(Integer, nullable=False, default=0)


class ScheduledPostGenreRow(Base):
    __tablename__ = "scheduled_post_genres"

    scheduled_post_id = Column(
        String(36), ForeignKey("scheduled_posts.id", ondelete="CASCADE"), nullable=False,
    )
    genre_id = Column(String(36), ForeignKey("genres.id", ondelete="CASCADE"), nullable=False)

    __table_args__ = (
        PrimaryKeyConstraint("scheduled_post_id", "genre_id"),
    )
