"""Pick the reminders that may be dispatched right now.

Materialization reflects settings at scan time; dispatch must reflect
settings at send time, so every candidate is re-checked against the owner's
current preferences before it is handed to the dispatcher. Skipped rows are
left unsent and untouched.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, time
from typing import Dict, List, Tuple

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

import db
from app.services import settings_resolver
from app.services.due_window import to_due_document
from app.types.reminder_contract import Channel, DueReminder, ReminderSettings

_LOGGER = logging.getLogger(__name__)

SKIP_CHANNEL_DISABLED = "channel_disabled"
SKIP_QUIET_HOURS = "quiet_hours"


@dataclass
class Evaluation:
    due: List[DueReminder] = field(default_factory=list)
    skipped: List[Tuple[str, str]] = field(default_factory=list)  # (reminder_id, reason)


async def due_and_unsent(
    session_maker: async_sessionmaker[AsyncSession],
    today: date,
    local_time: time | None = None,
) -> Evaluation:
    async with db.session_scope(session_maker) as s:
        rows = await db.fetch_due_unsent(s, today)

    result = Evaluation()
    current: Dict[str, ReminderSettings] = {}

    for reminder, document, user, vehicle in rows:
        prefs = current.get(reminder.user_id)
        if prefs is None:
            prefs = await settings_resolver.resolve(session_maker, reminder.user_id)
            current[reminder.user_id] = prefs

        channel = Channel(reminder.channel)
        if not prefs.enabled(channel):
            _LOGGER.info(
                "Skipping reminder %s: %s disabled for user %s",
                reminder.id, channel.value, reminder.user_id,
            )
            result.skipped.append((reminder.id, SKIP_CHANNEL_DISABLED))
            continue
        if local_time is not None and prefs.in_quiet_hours(local_time):
            _LOGGER.info(
                "Deferring reminder %s: user %s is in quiet hours", reminder.id, reminder.user_id
            )
            result.skipped.append((reminder.id, SKIP_QUIET_HOURS))
            continue

        result.due.append(
            DueReminder(
                reminder_id=reminder.id,
                channel=channel,
                due_date=reminder.due_date,
                document=to_due_document(document, user, vehicle),
            )
        )
    return result
