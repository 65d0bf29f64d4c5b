"""Failed-login counters, one row per (identity, source IP)."""
from __future__ import annotations

from sqlalchemy import Column, String, Integer, DateTime, PrimaryKeyConstraint

from bonlog.db.tables import Base


class LoginAttemptRow(Base):
    __tablename__ = "login_attempts"

    identity = Column(String(320), nullable=False)
    source_ip = Column(String(64), nullable=False)
    failure_count = Column(Integer, nullable=False, default=0)
    window_start = Column(DateTime, nullable=False)
    locked_until = Column(DateTime, nullable=True)
    expires_at = Column(DateTime, nullable=False, index=True)

    __table_args__ = (
        PrimaryKeyConstraint("identity", "source_ip"),
    )
