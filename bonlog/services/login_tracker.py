"""Login attempt tracking — temporary lockout after repeated failures.

Failures are counted per (identity, source IP). Reaching ``max_attempts``
inside the window locks that pair out for ``lockout_seconds``; a successful
login clears the counter entirely.

The backing store is injected so the tracker carries no global state of its
own: ``DatabaseAttemptStore`` (the ``login_attempts`` table) in production,
``MemoryAttemptStore`` for single-process dev and tests. Store outages fail
open.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, NamedTuple, Optional

from sqlalchemy import delete

from bonlog.db import engine as engine_mod
from bonlog.db.login_attempt_tables import LoginAttemptRow
from bonlog.db.tables import utcnow
from bonlog.security_log import log_login_failure, log_login_lockout
from config.settings import settings

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class LoginKey(NamedTuple):
    identity: str
    source_ip: str


def login_key(email: str, ip: Optional[str]) -> LoginKey:
    return LoginKey(identity=(email or "").strip().lower(), source_ip=ip or "unknown")


@dataclass
class AttemptRecord:
    failure_count: int
    window_start: datetime
    locked_until: Optional[datetime] = None


@dataclass
class LoginCheckResult:
    allowed: bool
    remaining_attempts: int
    locked_until: Optional[datetime] = None
    message: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "allowed": self.allowed,
            "remaining_attempts": self.remaining_attempts,
            "locked_until": self.locked_until.isoformat() if self.locked_until else None,
            "message": self.message,
        }


# ── Stores ───────────────────────────────────────────────────────────────────

class AttemptStore:
    """Keyed store with expiry. Expired records read as missing."""

    async def get(self, key: LoginKey) -> Optional[AttemptRecord]:
        raise NotImplementedError

    async def set(self, key: LoginKey, record: AttemptRecord, expires_at: datetime) -> None:
        raise NotImplementedError

    async def delete(self, key: LoginKey) -> None:
        raise NotImplementedError


class MemoryAttemptStore(AttemptStore):
    """Per-process store. Fine for one instance; use the DB store behind a load balancer."""

    def __init__(self, clock: Clock = utcnow):
        self._clock = clock
        self._records: dict[LoginKey, tuple[AttemptRecord, datetime]] = {}

    async def get(self, key: LoginKey) -> Optional[AttemptRecord]:
        entry = self._records.get(key)
        if entry is None:
            return None
        record, expires_at = entry
        if expires_at <= self._clock():
            del self._records[key]
            return None
        return AttemptRecord(record.failure_count, record.window_start, record.locked_until)

    async def set(self, key: LoginKey, record: AttemptRecord, expires_at: datetime) -> None:
        self._records[key] = (record, expires_at)

    async def delete(self, key: LoginKey) -> None:
        self._records.pop(key, None)

    def clear(self) -> None:
        self._records.clear()


class DatabaseAttemptStore(AttemptStore):
    """Counters in the ``login_attempts`` table, shared by every app instance."""

    def __init__(self, session_factory=None, clock: Clock = utcnow):
        self._session_factory = session_factory
        self._clock = clock

    def _session(self):
        factory = self._session_factory or engine_mod.async_session
        return factory()

    async def get(self, key: LoginKey) -> Optional[AttemptRecord]:
        async with self._session() as session:
            row = await session.get(LoginAttemptRow, (key.identity, key.source_ip))
            if row is None or row.expires_at <= self._clock():
                return None
            return AttemptRecord(row.failure_count, row.window_start, row.locked_until)

    async def set(self, key: LoginKey, record: AttemptRecord, expires_at: datetime) -> None:
        async with self._session() as session:
            await session.merge(LoginAttemptRow(
                identity=key.identity,
                source_ip=key.source_ip,
                failure_count=record.failure_count,
                window_start=record.window_start,
                locked_until=record.locked_until,
                expires_at=expires_at,
            ))
            await session.commit()

    async def delete(self, key: LoginKey) -> None:
        async with self._session() as session:
            await session.execute(
                delete(LoginAttemptRow).where(
                    LoginAttemptRow.identity == key.identity,
                    LoginAttemptRow.source_ip == key.source_ip,
                )
            )
            await session.commit()

    async def purge_expired(self) -> int:
        """Drop expired counters. Returns rows removed."""
        async with self._session() as session:
            result = await session.execute(
                delete(LoginAttemptRow).where(LoginAttemptRow.expires_at <= self._clock())
            )
            await session.commit()
            return result.rowcount or 0


# ── Tracker ──────────────────────────────────────────────────────────────────

class LoginTracker:
    def __init__(
        self,
        store: AttemptStore,
        max_attempts: int = 5,
        window_seconds: int = 15 * 60,
        lockout_seconds: int = 30 * 60,
        clock: Clock = utcnow,
    ):
        self.store = store
        self.max_attempts = max_attempts
        self.window = timedelta(seconds=window_seconds)
        self.lockout = timedelta(seconds=lockout_seconds)
        self._clock = clock

    def _open(self) -> LoginCheckResult:
        return LoginCheckResult(allowed=True, remaining_attempts=self.max_attempts)

    def _is_stale(self, record: AttemptRecord, now: datetime) -> bool:
        if record.locked_until is not None:
            return record.locked_until <= now
        return now >= record.window_start + self.window

    def _locked(self, locked_until: datetime, now: datetime) -> LoginCheckResult:
        minutes = max(1, math.ceil((locked_until - now).total_seconds() / 60))
        return LoginCheckResult(
            allowed=False,
            remaining_attempts=0,
            locked_until=locked_until,
            message=f"Account temporarily locked. Try again in {minutes} minutes.",
        )

    async def check(self, key: LoginKey) -> LoginCheckResult:
        """Is a login attempt for ``key`` allowed right now?"""
        now = self._clock()
        try:
            record = await self.store.get(key)
            if record is None:
                return self._open()
            if self._is_stale(record, now):
                await self.store.delete(key)
                return self._open()
            if record.locked_until is not None:
                return self._locked(record.locked_until, now)
            if record.failure_count >= self.max_attempts:
                return LoginCheckResult(
                    allowed=False,
                    remaining_attempts=0,
                    message="Too many failed login attempts. Please wait before trying again.",
                )
            return LoginCheckResult(
                allowed=True,
                remaining_attempts=max(0, self.max_attempts - record.failure_count),
            )
        except Exception:
            logger.warning("Login attempt check failed for %s, allowing", key.source_ip, exc_info=True)
            return self._open()

    async def record_failure(self, key: LoginKey) -> LoginCheckResult:
        """Count one failed login; locks the key out on reaching the limit."""
        now = self._clock()
        log_login_failure(key.identity, key.source_ip, "invalid_credentials")
        try:
            record = await self.store.get(key)
            if record is None or self._is_stale(record, now):
                record = AttemptRecord(failure_count=0, window_start=now)
            elif record.locked_until is not None:
                # Already locked: don't extend the lock
                return self._locked(record.locked_until, now)

            record.failure_count += 1

            if record.failure_count >= self.max_attempts:
                record.locked_until = now + self.lockout
                await self.store.set(key, record, expires_at=record.locked_until)
                log_login_lockout(key.identity, key.source_ip)
                minutes = int(self.lockout.total_seconds() // 60)
                return LoginCheckResult(
                    allowed=False,
                    remaining_attempts=0,
                    locked_until=record.locked_until,
                    message=f"Too many failed login attempts. Try again in {minutes} minutes.",
                )

            await self.store.set(key, record, expires_at=record.window_start + self.window)
            return LoginCheckResult(
                allowed=True,
                remaining_attempts=max(0, self.max_attempts - record.failure_count),
            )
        except Exception:
            logger.warning("Recording failed login for %s failed, allowing", key.source_ip, exc_info=True)
            return LoginCheckResult(allowed=True, remaining_attempts=max(0, self.max_attempts - 1))

    async def reset(self, key: LoginKey) -> None:
        """Clear the counter after a successful login."""
        try:
            await self.store.delete(key)
        except Exception:
            logger.warning("Resetting login attempts for %s failed", key.source_ip, exc_info=True)


# ── Process-wide tracker used by the auth routes ─────────────────────────────

_tracker: Optional[LoginTracker] = None


def build_tracker_from_settings() -> LoginTracker:
    if settings.LOGIN_TRACKER_BACKEND == "memory":
        store: AttemptStore = MemoryAttemptStore()
    else:
        store = DatabaseAttemptStore()
    return LoginTracker(
        store,
        max_attempts=settings.LOGIN_MAX_ATTEMPTS,
        window_seconds=settings.LOGIN_WINDOW_SECONDS,
        lockout_seconds=settings.LOGIN_LOCKOUT_SECONDS,
    )


def get_login_tracker() -> LoginTracker:
    global _tracker
    if _tracker is None:
        _tracker = build_tracker_from_settings()
    return _tracker


def set_login_tracker(tracker: Optional[LoginTracker]) -> None:
    """Swap the process-wide tracker (tests, custom stores). ``None`` rebuilds from settings."""
    global _tracker
    _tracker = tracker


async def check_login_attempt(key: LoginKey) -> LoginCheckResult:
    return await get_login_tracker().check(key)


async def record_failed_login(key: LoginKey) -> LoginCheckResult:
    return await get_login_tracker().record_failure(key)


async def reset_login_attempts(key: LoginKey) -> None:
    await get_login_tracker().reset(key)
