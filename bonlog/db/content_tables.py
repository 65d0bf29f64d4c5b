"""Moderatable content besides posts: comments, events, shops and shop reviews."""
from __future__ import annotations

from sqlalchemy import (
    Column, String, Integer, Text, DateTime, Boolean, Float,
    ForeignKey, CheckConstraint,
)

from bonlog.db.tables import Base, new_id, utcnow


class CommentRow(Base):
    """Comment on a post (threaded via parent_id)."""
    __tablename__ = "comments"

    id = Column(String(36), primary_key=True, default=new_id)
    post_id = Column(String(36), ForeignKey("posts.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    parent_id = Column(String(36), ForeignKey("comments.id", ondelete="CASCADE"), nullable=True, index=True)
    content = Column(Text, nullable=False)
    is_hidden = Column(Boolean, nullable=False, default=False)
    hidden_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)


class EventRow(Base):
    """Bonsai exhibition / sale event listing."""
    __tablename__ = "events"

    id = Column(String(36), primary_key=True, default=new_id)
    title = Column(String(300), nullable=False)
    description = Column(Text, nullable=True)
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=True)
    prefecture = Column(String(50), nullable=True)
    venue = Column(String(300), nullable=True)
    is_hidden = Column(Boolean, nullable=False, default=False)
    hidden_at = Column(DateTime, nullable=True)
    created_by = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)


class ShopRow(Base):
    """Bonsai nursery in the shop directory."""
    __tablename__ = "bonsai_shops"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(300), nullable=False)
    address = Column(String(500), nullable=False)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    is_hidden = Column(Boolean, nullable=False, default=False)
    hidden_at = Column(DateTime, nullable=True)
    created_by = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)


class ShopReviewRow(Base):
    __tablename__ = "shop_reviews"

    id = Column(String(36), primary_key=True, default=new_id)
    shop_id = Column(String(36), ForeignKey("bonsai_shops.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    rating = Column(Integer, nullable=False)  # 1-5 stars
    content = Column(Text, nullable=True)
    is_hidden = Column(Boolean, nullable=False, default=False)
    hidden_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint("rating >= 1 AND rating <= 5", name="ck_shop_review_rating"),
    )
