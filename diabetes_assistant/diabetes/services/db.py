# db.py: SQLAlchemy models and engine management

from __future__ import annotations

import asyncio
import logging
import threading
from datetime import datetime
from typing import Any, Callable, Optional, Protocol, TypeVar
from typing_extensions import Concatenate, ParamSpec

import sqlalchemy as sa
from sqlalchemy import JSON, TIMESTAMP, Float, ForeignKey, Integer, String, create_engine, func
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError, UnboundExecutionError
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    Session,
    close_all_sessions,
    mapped_column,
    relationship,
    sessionmaker,
)

from diabetes_assistant.config import get_settings

logger = logging.getLogger(__name__)


engine: Engine | None = None
engine_lock = threading.Lock()
# SQLite in-memory DBs share a single connection which is not threadsafe for
# concurrent writes.
sqlite_memory_lock = threading.Lock()
SessionLocal: sessionmaker[Session] = sessionmaker(autoflush=False, autocommit=False)


class Base(DeclarativeBase):
    pass


T = TypeVar("T")
P = ParamSpec("P")
S = TypeVar("S", bound=Session)


class SessionMaker(Protocol[S]):
    def __call__(self) -> S: ...


async def run_db(
    fn: Callable[Concatenate[S, P], T],
    *args: P.args,
    sessionmaker: SessionMaker[S] | None = None,
    **kwargs: P.kwargs,
) -> T:
    """Execute blocking DB work in a thread and return the result.

    Parameters
    ----------
    fn:
        Callable accepting an active session as first argument.
    sessionmaker:
        Factory to create new :class:`~sqlalchemy.orm.Session` instances. Defaults
        to the module's ``SessionLocal`` so tests can inject their own.
    *args, **kwargs:
        Additional arguments forwarded to ``fn``.
    """

    if sessionmaker is None:
        sessionmaker = SessionLocal

    def wrapper() -> T:
        with sessionmaker() as session:
            return fn(session, *args, **kwargs)

    try:
        with sessionmaker() as _session:
            bind = _session.get_bind()
    except UnboundExecutionError as exc:
        logger.error("Database engine is not initialized. Call init_db() to configure it.")
        raise RuntimeError(
            "Database engine is not initialized; run init_db() before calling run_db()."
        ) from exc

    if bind.url.drivername.startswith("sqlite") and bind.url.database in (None, "", ":memory:"):
        with sqlite_memory_lock:
            return wrapper()

    return await asyncio.to_thread(wrapper)


def dispose_engine(target: Engine | None = None) -> None:
    """Dispose of a SQLAlchemy engine.

    Parameters
    ----------
    target:
        The engine to dispose. If ``None`` the module's global engine is used
        and reset.
    """

    global engine
    with engine_lock:
        eng = target or engine
        if eng is None:
            return
        close_all_sessions()
        eng.dispose()
        if target is None and eng is engine:
            engine = None
            SessionLocal.configure(bind=None)


# ───────────────────────── models ────────────────────────────


class User(Base):
    """User record holding the full dosing configuration.

    Period sets are stored as JSON lists in the same shape the API uses
    (``startTime``, ``hours`` and a kind-specific value field).
    """

    __tablename__ = "users"
    user_id: Mapped[str] = mapped_column(String, primary_key=True)
    target_min: Mapped[float] = mapped_column(Float, nullable=False)
    target_max: Mapped[float] = mapped_column(Float, nullable=False)
    iob_duration: Mapped[float] = mapped_column(Float, nullable=False)
    insulin_periods: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False)
    sensitivity_periods: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False)
    carb_ratio_periods: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now()
    )
    readings: Mapped[list["BloodSugarReading"]] = relationship(
        "BloodSugarReading",
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class BloodSugarReading(Base):
    __tablename__ = "blood_sugar_readings"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[str] = mapped_column(
        String,
        ForeignKey("users.user_id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    value: Mapped[float] = mapped_column(Float, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, index=True
    )
    source: Mapped[Optional[str]] = mapped_column(String)
    user: Mapped[User] = relationship("User", back_populates="readings")


# ────────────────────── initialisation ────────────────────────
def init_db(database_url: str | None = None) -> Engine:
    """Create the engine and tables if they do not exist yet."""
    global engine

    url = sa.engine.make_url(database_url or get_settings().database_url)
    connect_args: dict[str, Any] = {}
    if url.drivername.startswith("sqlite"):
        connect_args["check_same_thread"] = False

    with engine_lock:
        if engine is None or engine.url != url:
            if engine is not None:
                engine.dispose()
            try:
                engine = create_engine(url, connect_args=connect_args)
            except SQLAlchemyError as exc:
                logger.error("Failed to initialize database engine: %s", exc)
                raise RuntimeError("Failed to initialize database engine") from exc
            SessionLocal.configure(bind=engine)
            logger.info(
                "Database engine configured for %s",
                url.render_as_string(hide_password=True),
            )

    if engine is None:
        raise RuntimeError("Database engine is not configured; call init_db()")

    Base.metadata.create_all(bind=engine)
    return engine
