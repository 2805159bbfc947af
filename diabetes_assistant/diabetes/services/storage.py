"""Persistence backends for user settings and glucose readings.

Two implementations share the :class:`Storage` protocol: :class:`SqlStorage`
backed by SQLAlchemy and :class:`InMemoryStorage`, used when no database
is available. Both hand out a per-user lock through :meth:`Storage.locked`
so that a read-modify-write of one user's settings is not interleaved with
another request for the same user.
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import AsyncContextManager, Protocol, cast

import sqlalchemy as sa
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models import GlucoseReading, UserSettings
from ..utils.periods import PeriodKind, periods_from_dicts, periods_to_dicts
from . import db
from .db import BloodSugarReading, SessionMaker, User

logger = logging.getLogger(__name__)


class CommitError(RuntimeError):
    """Raised when a database commit fails."""


class UserNotFoundError(LookupError):
    def __init__(self, user_id: str) -> None:
        super().__init__(f"user not found: {user_id}")
        self.user_id = user_id


class ReadingNotFoundError(LookupError):
    def __init__(self, user_id: str, timestamp: datetime) -> None:
        super().__init__(f"no reading found with timestamp {timestamp.isoformat()}")
        self.user_id = user_id
        self.timestamp = timestamp


def commit(session: Session) -> None:
    """Commit ``session``, rolling back and raising :class:`CommitError` on failure."""
    try:
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        logger.exception("DB commit failed")
        raise CommitError from exc


def as_utc(ts: datetime) -> datetime:
    """Return ``ts`` as an aware UTC datetime; naive values are taken as UTC."""

    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


class Storage(Protocol):
    async def get_settings(self, user_id: str) -> UserSettings | None:
        """Return the user's settings or ``None`` for an unknown user."""
        ...

    async def save_settings(self, user_id: str, settings: UserSettings) -> None:
        """Replace the user's settings, creating the user if needed."""
        ...

    async def add_reading(self, user_id: str, reading: GlucoseReading) -> None:
        ...

    async def get_readings(
        self, user_id: str, since: datetime, limit: int | None = None
    ) -> list[GlucoseReading]:
        """Return readings taken at or after ``since``, newest first."""
        ...

    async def delete_reading(self, user_id: str, timestamp: datetime) -> None:
        ...

    async def ping(self) -> None:
        ...

    async def close(self) -> None:
        ...

    def locked(self, user_id: str) -> AsyncContextManager[None]:
        ...


class _UserLocks:
    """Process-local ``asyncio.Lock`` per user id.

    A lock lives only while some task holds or waits on it.
    """

    def __init__(self) -> None:
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    @asynccontextmanager
    async def locked(self, user_id: str) -> AsyncIterator[None]:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[user_id] = lock
        async with lock:
            yield


# ─────────────────────────── SQL ───────────────────────────


def _settings_from_row(row: User) -> UserSettings:
    return UserSettings(
        target_min=row.target_min,
        target_max=row.target_max,
        iob_duration=row.iob_duration,
        insulin_periods=periods_from_dicts(row.insulin_periods, PeriodKind.INSULIN),
        sensitivity_periods=periods_from_dicts(row.sensitivity_periods, PeriodKind.SENSITIVITY),
        carb_ratio_periods=periods_from_dicts(row.carb_ratio_periods, PeriodKind.CARB_RATIO),
        updated_at=as_utc(row.updated_at),
    )


def _apply_settings(row: User, settings: UserSettings) -> None:
    row.target_min = settings.target_min
    row.target_max = settings.target_max
    row.iob_duration = settings.iob_duration
    row.insulin_periods = periods_to_dicts(settings.insulin_periods, PeriodKind.INSULIN)
    row.sensitivity_periods = periods_to_dicts(
        settings.sensitivity_periods, PeriodKind.SENSITIVITY
    )
    row.carb_ratio_periods = periods_to_dicts(settings.carb_ratio_periods, PeriodKind.CARB_RATIO)
    row.updated_at = as_utc(settings.updated_at)


def _reading_from_row(row: BloodSugarReading) -> GlucoseReading:
    return GlucoseReading(value=row.value, timestamp=as_utc(row.timestamp), source=row.source)


class SqlStorage(_UserLocks):
    """Durable storage on top of SQLAlchemy sessions."""

    def __init__(self, sessionmaker: SessionMaker[Session] | None = None) -> None:
        super().__init__()
        self._sessionmaker = sessionmaker

    @property
    def sessionmaker(self) -> SessionMaker[Session]:
        return self._sessionmaker or cast(SessionMaker[Session], db.SessionLocal)

    async def get_settings(self, user_id: str) -> UserSettings | None:
        def _get(session: Session) -> UserSettings | None:
            row = session.get(User, user_id)
            return _settings_from_row(row) if row is not None else None

        return await db.run_db(_get, sessionmaker=self.sessionmaker)

    async def save_settings(self, user_id: str, settings: UserSettings) -> None:
        settings.validate()

        def _save(session: Session) -> None:
            row = session.get(User, user_id)
            if row is None:
                row = User(user_id=user_id)
                session.add(row)
            _apply_settings(row, settings)
            commit(session)

        await db.run_db(_save, sessionmaker=self.sessionmaker)

    async def add_reading(self, user_id: str, reading: GlucoseReading) -> None:
        def _add(session: Session) -> None:
            if session.get(User, user_id) is None:
                raise UserNotFoundError(user_id)
            session.add(
                BloodSugarReading(
                    user_id=user_id,
                    value=reading.value,
                    timestamp=as_utc(reading.timestamp),
                    source=reading.source,
                )
            )
            commit(session)

        await db.run_db(_add, sessionmaker=self.sessionmaker)

    async def get_readings(
        self, user_id: str, since: datetime, limit: int | None = None
    ) -> list[GlucoseReading]:
        def _query(session: Session) -> list[GlucoseReading]:
            if session.get(User, user_id) is None:
                raise UserNotFoundError(user_id)
            stmt = (
                sa.select(BloodSugarReading)
                .where(
                    BloodSugarReading.user_id == user_id,
                    BloodSugarReading.timestamp >= as_utc(since),
                )
                .order_by(BloodSugarReading.timestamp.desc(), BloodSugarReading.id.desc())
            )
            if limit:
                stmt = stmt.limit(limit)
            return [_reading_from_row(r) for r in session.scalars(stmt).all()]

        return await db.run_db(_query, sessionmaker=self.sessionmaker)

    async def delete_reading(self, user_id: str, timestamp: datetime) -> None:
        def _delete(session: Session) -> None:
            if session.get(User, user_id) is None:
                raise UserNotFoundError(user_id)
            stmt = (
                sa.select(BloodSugarReading)
                .where(
                    BloodSugarReading.user_id == user_id,
                    BloodSugarReading.timestamp == as_utc(timestamp),
                )
                .order_by(BloodSugarReading.id)
                .limit(1)
            )
            row = session.scalars(stmt).first()
            if row is None:
                raise ReadingNotFoundError(user_id, timestamp)
            session.delete(row)
            commit(session)

        await db.run_db(_delete, sessionmaker=self.sessionmaker)

    async def ping(self) -> None:
        def _ping(session: Session) -> None:
            session.execute(sa.text("SELECT 1"))

        await db.run_db(_ping, sessionmaker=self.sessionmaker)

    async def close(self) -> None:
        if self._sessionmaker is None:
            db.dispose_engine()


# ───────────────────────── in-memory ─────────────────────────


@dataclass
class _MemoryUser:
    settings: UserSettings
    # newest first
    readings: list[GlucoseReading] = field(default_factory=list)


class InMemoryStorage(_UserLocks):
    """Volatile storage; everything is lost when the process stops."""

    def __init__(self) -> None:
        super().__init__()
        self._users: dict[str, _MemoryUser] = {}

    def _user(self, user_id: str) -> _MemoryUser:
        user = self._users.get(user_id)
        if user is None:
            raise UserNotFoundError(user_id)
        return user

    async def get_settings(self, user_id: str) -> UserSettings | None:
        user = self._users.get(user_id)
        return user.settings if user is not None else None

    async def save_settings(self, user_id: str, settings: UserSettings) -> None:
        settings.validate()
        user = self._users.get(user_id)
        if user is None:
            self._users[user_id] = _MemoryUser(settings=settings)
        else:
            user.settings = settings

    async def add_reading(self, user_id: str, reading: GlucoseReading) -> None:
        user = self._user(user_id)
        stored = GlucoseReading(reading.value, as_utc(reading.timestamp), reading.source)
        user.readings.insert(0, stored)
        user.readings.sort(key=lambda r: r.timestamp, reverse=True)

    async def get_readings(
        self, user_id: str, since: datetime, limit: int | None = None
    ) -> list[GlucoseReading]:
        since_utc = as_utc(since)
        readings = [r for r in self._user(user_id).readings if r.timestamp >= since_utc]
        if limit:
            readings = readings[:limit]
        return readings

    async def delete_reading(self, user_id: str, timestamp: datetime) -> None:
        user = self._user(user_id)
        target = as_utc(timestamp)
        # equal timestamps are kept newest insert first; drop the oldest one
        for idx in range(len(user.readings) - 1, -1, -1):
            if user.readings[idx].timestamp == target:
                del user.readings[idx]
                return
        raise ReadingNotFoundError(user_id, timestamp)

    async def ping(self) -> None:
        return None

    async def close(self) -> None:
        self._users.clear()


__all__ = [
    "CommitError",
    "InMemoryStorage",
    "ReadingNotFoundError",
    "SqlStorage",
    "Storage",
    "UserNotFoundError",
    "as_utc",
    "commit",
]
