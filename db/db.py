"""
Async DB helpers for the expiry reminder engine.
Uses SQLAlchemy 2.0 + asyncpg driver – no raw SQL strings in app code.

Every helper takes an explicit ``AsyncSession``; callers obtain one from an
injected ``async_sessionmaker`` through :func:`session_scope`. The lazily
built module-level session maker exists only for the wiring layer (CLI,
Celery, FastAPI).
"""

from __future__ import annotations

import os
from contextlib import asynccontextmanager
from datetime import date, datetime, timedelta
from typing import Any, AsyncIterator, Mapping, Sequence
from uuid import uuid4

from sqlalchemy import Row, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine,
)

from app.errors import PersistenceError
from db.models import Base, Document, Reminder, ReminderSetting, User, Vehicle

# ──────────────────────────────────────────────────────────────────────
# 1. Engine / session factory
# ──────────────────────────────────────────────────────────────────────
_engine: AsyncEngine | None = None
_session_maker: async_sessionmaker[AsyncSession] | None = None


def build_url() -> str:
    url = os.getenv("DATABASE_URL") or os.getenv("DATABASE_PUBLIC_URL")
    if not url:
        raise RuntimeError("DATABASE_URL not set")
    if "+asyncpg" not in url:
        url = url.replace("postgres://", "postgresql+asyncpg://", 1).replace(
            "postgresql://", "postgresql+asyncpg://", 1
        )
    return url


def create_engine(url: str | None = None, **kwargs: Any) -> AsyncEngine:
    return create_async_engine(url or build_url(), **kwargs)


def get_engine() -> AsyncEngine:
    global _engine
    if _engine is None:
        _engine = create_engine(pool_size=5, max_overflow=5)
    return _engine


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    global _session_maker
    if _session_maker is None:
        _session_maker = async_sessionmaker(get_engine(), expire_on_commit=False)
    return _session_maker


async def create_all(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def dispose_engine() -> None:
    global _engine, _session_maker
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_maker = None


@asynccontextmanager
async def session_scope(
    session_maker: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncSession]:
    """One short unit of work; commits on exit, maps driver faults to PersistenceError."""
    try:
        async with session_maker() as session:
            yield session
            await session.commit()
    except (SQLAlchemyError, OSError) as exc:
        raise PersistenceError(f"storage unavailable: {exc}") from exc


def _insert_for(session: AsyncSession, model):
    dialect = session.bind.dialect.name
    if dialect == "postgresql":
        return pg_insert(model)
    if dialect == "sqlite":
        return sqlite_insert(model)
    raise PersistenceError(f"insert-if-absent not supported on dialect {dialect!r}")


# ──────────────────────────────────────────────────────────────────────
# 2. Documents (read-only)
# ──────────────────────────────────────────────────────────────────────

async def fetch_documents_in_window(
    session: AsyncSession, start: date, horizon_days: int
) -> Sequence[Row[tuple[Document, User, Vehicle | None]]]:
    end = start + timedelta(days=horizon_days)
    stmt = (
        select(Document, User, Vehicle)
        .join(User, User.id == Document.user_id)
        .outerjoin(Vehicle, Vehicle.id == Document.vehicle_id)
        .where(
            Document.expiry_date.is_not(None),
            Document.expiry_date >= start,
            Document.expiry_date <= end,
        )
        .order_by(Document.expiry_date.asc(), Document.id.asc())
    )
    res = await session.execute(stmt)
    return res.all()


# ──────────────────────────────────────────────────────────────────────
# 3. Reminder settings
# ──────────────────────────────────────────────────────────────────────

async def fetch_settings(session: AsyncSession, user_id: str) -> ReminderSetting | None:
    res = await session.execute(
        select(ReminderSetting).where(ReminderSetting.user_id == user_id)
    )
    return res.scalar_one_or_none()


async def insert_settings_if_absent(
    session: AsyncSession, user_id: str, defaults: Mapping[str, Any]
) -> bool:
    stmt = (
        _insert_for(session, ReminderSetting)
        .values(user_id=user_id, **defaults)
        .on_conflict_do_nothing(index_elements=[ReminderSetting.user_id])
    )
    res = await session.execute(stmt)
    return res.rowcount == 1


async def update_settings(
    session: AsyncSession, user_id: str, values: Mapping[str, Any]
) -> None:
    await session.execute(
        update(ReminderSetting)
        .where(ReminderSetting.user_id == user_id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )


# ──────────────────────────────────────────────────────────────────────
# 4. Reminders
# ──────────────────────────────────────────────────────────────────────

async def insert_reminder_if_absent(
    session: AsyncSession,
    *,
    user_id: str,
    document_id: str,
    vehicle_id: str | None,
    channel: str,
    due_date: date,
) -> bool:
    """Insert keyed by (document_id, due_date, channel); an existing row is left as is."""
    stmt = (
        _insert_for(session, Reminder)
        .values(
            id=str(uuid4()),
            user_id=user_id,
            document_id=document_id,
            vehicle_id=vehicle_id,
            channel=channel,
            due_date=due_date,
            sent=False,
        )
        .on_conflict_do_nothing(
            index_elements=[Reminder.document_id, Reminder.due_date, Reminder.channel]
        )
    )
    res = await session.execute(stmt)
    return res.rowcount == 1


async def fetch_due_unsent(
    session: AsyncSession, today: date
) -> Sequence[Row[tuple[Reminder, Document, User, Vehicle | None]]]:
    stmt = (
        select(Reminder, Document, User, Vehicle)
        .join(Document, Document.id == Reminder.document_id)
        .join(User, User.id == Reminder.user_id)
        .outerjoin(Vehicle, Vehicle.id == Reminder.vehicle_id)
        .where(
            Reminder.sent.is_(False),
            Reminder.due_date <= today,
            Document.expiry_date.is_not(None),
        )
        .order_by(Reminder.due_date.asc(), Document.expiry_date.asc(), Reminder.id.asc())
    )
    res = await session.execute(stmt)
    return res.all()


async def claim_reminder(session: AsyncSession, reminder_id: str, now: datetime) -> bool:
    """Flip sent false → true; True only for the caller that performed the flip."""
    res = await session.execute(
        update(Reminder)
        .where(Reminder.id == reminder_id, Reminder.sent.is_(False))
        .values(sent=True, sent_at=now)
        .execution_options(synchronize_session=False)
    )
    return res.rowcount == 1


async def record_delivery_error(session: AsyncSession, reminder_id: str, err: str) -> None:
    await session.execute(
        update(Reminder)
        .where(Reminder.id == reminder_id)
        .values(last_error=err)
        .execution_options(synchronize_session=False)
    )


async def fetch_pending_for_user(session: AsyncSession, user_id: str) -> list[Reminder]:
    res = await session.execute(
        select(Reminder)
        .where(Reminder.user_id == user_id, Reminder.sent.is_(False))
        .order_by(Reminder.due_date.asc(), Reminder.channel.asc())
    )
    return list(res.scalars())


async def fetch_user_reminder(
    session: AsyncSession, user_id: str, reminder_id: str
) -> Reminder | None:
    res = await session.execute(
        select(Reminder).where(Reminder.id == reminder_id, Reminder.user_id == user_id)
    )
    return res.scalar_one_or_none()


async def mark_user_reminder_sent(
    session: AsyncSession, user_id: str, reminder_id: str, now: datetime
) -> None:
    await session.execute(
        update(Reminder)
        .where(
            Reminder.id == reminder_id,
            Reminder.user_id == user_id,
            Reminder.sent.is_(False),
        )
        .values(sent=True, sent_at=now)
        .execution_options(synchronize_session=False)
    )
