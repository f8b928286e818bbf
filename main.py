import logging
import secrets
from typing import List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

import db
from app.errors import NotFoundError, PersistenceError
from app.services import expiry_check, settings_resolver
from app.types.reminder_contract import (
    ReminderOut,
    ReminderSettings,
    ReminderSettingsUpdate,
    RunSummary,
)
from app.utils.notifiers import Notifiers, default_notifiers
from config import configure_logging, settings

configure_logging()
_LOGGER = logging.getLogger(__name__)

app = FastAPI()


@app.on_event("shutdown")
async def shutdown_event():
    await db.dispose_engine()


# --------------------------------------------
# Dependencies
# --------------------------------------------

def get_session_maker() -> async_sessionmaker[AsyncSession]:
    return db.get_session_maker()


def get_notifiers() -> Notifiers:
    return default_notifiers()


def require_admin(x_admin_token: Optional[str] = Header(default=None)) -> None:
    expected = settings.REMINDERS_ADMIN_TOKEN
    if not expected:
        return  # dev mode: no token configured
    if not x_admin_token or not secrets.compare_digest(x_admin_token, expected):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid admin token")


def _storage_down(exc: PersistenceError) -> HTTPException:
    _LOGGER.error("Storage unavailable: %s", exc)
    return HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, "Storage unavailable")


# --------------------------------------------
# Endpoints
# --------------------------------------------

@app.get("/health")
async def health():
    return {"ok": True}


@app.post("/v1/reminders/run", response_model=RunSummary, dependencies=[Depends(require_admin)])
async def run_reminders(
    session_maker: async_sessionmaker[AsyncSession] = Depends(get_session_maker),
    notifiers: Notifiers = Depends(get_notifiers),
):
    """Manual trigger, equivalent to one scheduled pass."""
    try:
        return await expiry_check.run_expiry_check(session_maker, notifiers)
    except PersistenceError as exc:
        raise _storage_down(exc)


@app.get("/v1/users/{user_id}/reminders/pending", response_model=List[ReminderOut])
async def pending_reminders(
    user_id: str,
    session_maker: async_sessionmaker[AsyncSession] = Depends(get_session_maker),
):
    try:
        return await expiry_check.pending_reminders(session_maker, user_id)
    except PersistenceError as exc:
        raise _storage_down(exc)


@app.post(
    "/v1/users/{user_id}/reminders/{reminder_id}/mark-sent",
    response_model=ReminderOut,
    dependencies=[Depends(require_admin)],
)
async def mark_sent(
    user_id: str,
    reminder_id: str,
    session_maker: async_sessionmaker[AsyncSession] = Depends(get_session_maker),
):
    try:
        return await expiry_check.admin_mark_sent(session_maker, user_id, reminder_id)
    except NotFoundError:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Reminder not found")
    except PersistenceError as exc:
        raise _storage_down(exc)


@app.get("/v1/users/{user_id}/reminder-settings", response_model=ReminderSettings)
async def get_reminder_settings(
    user_id: str,
    session_maker: async_sessionmaker[AsyncSession] = Depends(get_session_maker),
):
    try:
        return await settings_resolver.resolve(session_maker, user_id)
    except PersistenceError as exc:
        raise _storage_down(exc)


@app.patch("/v1/users/{user_id}/reminder-settings", response_model=ReminderSettings)
async def update_reminder_settings(
    user_id: str,
    changes: ReminderSettingsUpdate,
    session_maker: async_sessionmaker[AsyncSession] = Depends(get_session_maker),
):
    try:
        return await settings_resolver.update(session_maker, user_id, changes)
    except PersistenceError as exc:
        raise _storage_down(exc)
