"""User-related database tables: accounts, admin grants and the email blacklist."""
from __future__ import annotations

from sqlalchemy import Column, String, DateTime, Boolean, ForeignKey

from bonlog.db.tables import Base, new_id, utcnow


class UserRow(Base):
    """User account (email + password)."""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_id)
    email = Column(String(320), nullable=False, unique=True, index=True)
    password_hash = Column(String(256), nullable=True)  # PBKDF2-SHA256
    display_name = Column(String(100), nullable=True)
    avatar_url = Column(String(2000), nullable=True)

    # Premium membership unlocks scheduled posts; billing lives elsewhere
    is_premium = Column(Boolean, nullable=False, default=False)

    is_suspended = Column(Boolean, nullable=False, default=False)
    suspended_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow)


class AdminUserRow(Base):
    """Admin grant — presence of a row makes the user an administrator."""
    __tablename__ = "admin_users"

    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    role = Column(String(20), nullable=False, default="moderator")  # moderator, superadmin
    created_at = Column(DateTime, default=utcnow)


class EmailBlacklistRow(Base):
    """Email addresses barred from signing up or logging in. Stored lower-cased."""
    __tablename__ = "email_blacklist"

    id = Column(String(36), primary_key=True, default=new_id)
    email = Column(String(320), nullable=False, unique=True, index=True)
    reason = Column(String(500), nullable=True)
    created_by = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
