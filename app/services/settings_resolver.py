"""Per-user reminder preferences, created lazily with the documented defaults."""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

import db
from app.errors import ConfigurationError
from app.types.reminder_contract import (
    DEFAULT_SETTINGS,
    ReminderSettings,
    ReminderSettingsUpdate,
)

_LOGGER = logging.getLogger(__name__)


async def _load(session: AsyncSession, user_id: str) -> ReminderSettings:
    row = await db.fetch_settings(session, user_id)
    if row is None:
        raise ConfigurationError(user_id)
    return ReminderSettings.model_validate(row)


async def resolve(
    session_maker: async_sessionmaker[AsyncSession], user_id: str
) -> ReminderSettings:
    """Return the user's current settings, inserting the default row on first use.

    Two concurrent first reads both attempt the insert; ``ON CONFLICT DO
    NOTHING`` lets exactly one of them win and both then read the same row.
    """
    async with db.session_scope(session_maker) as s:
        try:
            return await _load(s, user_id)
        except ConfigurationError:
            created = await db.insert_settings_if_absent(s, user_id, DEFAULT_SETTINGS)
            if created:
                _LOGGER.info("Created default reminder settings for user %s", user_id)

    async with db.session_scope(session_maker) as s:
        return await _load(s, user_id)


async def update(
    session_maker: async_sessionmaker[AsyncSession],
    user_id: str,
    changes: ReminderSettingsUpdate,
) -> ReminderSettings:
    current = await resolve(session_maker, user_id)
    values = changes.changes()
    if not values:
        return current

    async with db.session_scope(session_maker) as s:
        await db.update_settings(s, user_id, values)
    _LOGGER.info("Updated reminder settings for user %s: %s", user_id, sorted(values))

    async with db.session_scope(session_maker) as s:
        return await _load(s, user_id)
