"""Expiry check pass: scan → materialize → evaluate → dispatch.

Safe to run repeatedly and concurrently. Correctness rests on the unique
(document_id, due_date, channel) key and on the claim-before-send update;
there is no external lock.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import List, Optional, Tuple
from zoneinfo import ZoneInfo

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

import db
from app.errors import NotFoundError, PersistenceError
from app.services import dispatcher, due_evaluator, due_window, materializer, settings_resolver
from app.types.reminder_contract import (
    DeliveryFailure,
    DispatchOutcome,
    ReminderOut,
    RunSummary,
)
from app.utils.notifiers import Notifiers
from config import settings

_LOGGER = logging.getLogger(__name__)


def _clock(now: Optional[datetime], tz_name: str) -> Tuple[datetime, datetime]:
    """Return (aware instant, same instant in the reminder timezone)."""
    tz = ZoneInfo(tz_name)
    if now is None:
        now = datetime.now(tz=timezone.utc)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=tz)
    return now, now.astimezone(tz)


async def run_expiry_check(
    session_maker: async_sessionmaker[AsyncSession],
    notifiers: Notifiers,
    now: Optional[datetime] = None,
    *,
    horizon_days: Optional[int] = None,
    tz: Optional[str] = None,
    concurrency: Optional[int] = None,
) -> RunSummary:
    now, local = _clock(now, tz or settings.DEFAULT_TIMEZONE)
    today = local.date()
    horizon = settings.REMINDER_HORIZON_DAYS if horizon_days is None else horizon_days
    summary = RunSummary()

    _LOGGER.info("Expiry check started (today=%s, horizon=%sd)", today, horizon)
    try:
        documents = await due_window.scan(session_maker, today, horizon)
        summary.processed = len(documents)

        for doc in documents:
            prefs = await settings_resolver.resolve(session_maker, doc.owner.user_id)
            try:
                rows = await materializer.materialize(session_maker, doc, prefs)
            except (ValueError, OverflowError) as exc:
                _LOGGER.error(
                    "Skipping document %s: unusable settings for user %s: %s",
                    doc.document_id, doc.owner.user_id, exc,
                )
                summary.invalid_settings += 1
                continue
            summary.materialized += sum(1 for r in rows if r.created)

        evaluation = await due_evaluator.due_and_unsent(session_maker, today, local.time())
        summary.due = len(evaluation.due)
        summary.deferred = len(evaluation.skipped)

        results = await dispatcher.dispatch_all(
            session_maker,
            evaluation.due,
            notifiers,
            now,
            concurrency or settings.REMINDER_DISPATCH_CONCURRENCY,
        )
    except PersistenceError:
        _LOGGER.exception("Expiry check aborted: storage unavailable")
        raise

    for item in results:
        if item.outcome is DispatchOutcome.DISPATCHED:
            summary.dispatched += 1
        elif item.outcome is DispatchOutcome.FAILED:
            summary.failed += 1
            summary.failures.append(
                DeliveryFailure(
                    reminder_id=item.reminder.reminder_id,
                    user_id=item.reminder.document.owner.user_id,
                    channel=item.reminder.channel,
                    error=item.error.detail if item.error else "unknown error",
                )
            )
        elif item.outcome is DispatchOutcome.NO_CONTACT:
            summary.no_contact += 1
        else:
            summary.already_claimed += 1
    summary.skipped = (
        summary.deferred + summary.no_contact + summary.already_claimed + summary.invalid_settings
    )

    _LOGGER.info(
        "Expiry check finished: processed=%d materialized=%d due=%d dispatched=%d failed=%d "
        "skipped=%d (deferred=%d no_contact=%d already_claimed=%d invalid_settings=%d)",
        summary.processed, summary.materialized, summary.due,
        summary.dispatched, summary.failed, summary.skipped,
        summary.deferred, summary.no_contact, summary.already_claimed, summary.invalid_settings,
    )
    return summary


async def pending_reminders(
    session_maker: async_sessionmaker[AsyncSession], user_id: str
) -> List[ReminderOut]:
    async with db.session_scope(session_maker) as s:
        rows = await db.fetch_pending_for_user(s, user_id)
        return [ReminderOut.model_validate(r) for r in rows]


async def admin_mark_sent(
    session_maker: async_sessionmaker[AsyncSession],
    user_id: str,
    reminder_id: str,
    now: Optional[datetime] = None,
) -> ReminderOut:
    """Administrative correction; an already-sent reminder keeps its original sent_at."""
    now = now or datetime.now(tz=timezone.utc)
    async with db.session_scope(session_maker) as s:
        if await db.fetch_user_reminder(s, user_id, reminder_id) is None:
            raise NotFoundError(f"reminder {reminder_id} not found for user {user_id}")
        await db.mark_user_reminder_sent(s, user_id, reminder_id, now)

    async with db.session_scope(session_maker) as s:
        row = await db.fetch_user_reminder(s, user_id, reminder_id)
        _LOGGER.info("Reminder %s marked sent by admin for user %s", reminder_id, user_id)
        return ReminderOut.model_validate(row)
