"""SQLAlchemy ORM models for BON-LOG — declarative base and posts."""
from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Column, String, Integer, Text, DateTime, Boolean,
    ForeignKey, Index, PrimaryKeyConstraint,
)
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


def utcnow() -> datetime:
    """Naive UTC timestamp — every DateTime column stores naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return str(uuid.uuid4())


class PostRow(Base):
    """A live timeline post. Moderatable."""
    __tablename__ = "posts"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    content = Column(Text, nullable=True)
    is_hidden = Column(Boolean, nullable=False, default=False)
    hidden_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_posts_hidden", "is_hidden", "hidden_at"),
    )


class PostMediaRow(Base):
    __tablename__ = "post_media"

    id = Column(String(36), primary_key=True, default=new_id)
    post_id = Column(String(36), ForeignKey("posts.id", ondelete="CASCADE"), nullable=False, index=True)
    url = Column(String(2000), nullable=False)
    type = Column(String(20), nullable=False)  # image, video
    sort_order = Column(Integer, nullable=False, default=0)


class GenreRow(Base):
    """Bonsai genre tag (e.g. pine, maple, kusamono)."""
    __tablename__ = "genres"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(100), nullable=False)
    category = Column(String(100), nullable=False)
    sort_order = Column(Integer, nullable=False, default=0)


class PostGenreRow(Base):
    __tablename__ = "post_genres"

    post_id = Column(String(36), ForeignKey("posts.id", ondelete="CASCADE"), nullable=False)
    genre_id = Column(String(36), ForeignKey("genres.id", ondelete="CASCADE"), nullable=False)

    __table_args__ = (
        PrimaryKeyConstraint("post_id", "genre_id"),
    )
