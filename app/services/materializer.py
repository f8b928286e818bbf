"""Turn scanned documents into persisted reminder rows, one per enabled channel."""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import List, NamedTuple

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

import db
from app.types.reminder_contract import Channel, DueDocument, ReminderSettings

_LOGGER = logging.getLogger(__name__)


class Materialized(NamedTuple):
    channel: Channel
    due_date: date
    created: bool


def due_date_for(expiry_date: date, days_before: int) -> date:
    if days_before < 0:
        raise ValueError("days_before must be non-negative")
    return expiry_date - timedelta(days=days_before)


async def materialize(
    session_maker: async_sessionmaker[AsyncSession],
    document: DueDocument,
    settings: ReminderSettings,
) -> List[Materialized]:
    """Ensure a reminder row exists for every channel enabled right now.

    Existing rows are never touched, so a reminder that was already sent
    stays sent no matter how many times this runs.
    """
    results: List[Materialized] = []
    for channel in settings.enabled_channels():
        due = due_date_for(document.expiry_date, settings.days_before(channel))
        async with db.session_scope(session_maker) as s:
            created = await db.insert_reminder_if_absent(
                s,
                user_id=document.owner.user_id,
                document_id=document.document_id,
                vehicle_id=document.vehicle_id,
                channel=channel.value,
                due_date=due,
            )
        if created:
            _LOGGER.debug(
                "Materialized %s reminder for document %s due %s",
                channel.value, document.document_id, due,
            )
        results.append(Materialized(channel, due, created))
    return results
