"""Send due reminders, at most once each.

A reminder is claimed (``sent`` false → true in one conditional UPDATE)
before its notifier is called. Only the pass that wins the claim sends. If
the send then fails the row stays sent; the failure is logged, stored in
``last_error`` and never retried.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import List, NamedTuple, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

import db
from app.errors import TransientDeliveryError
from app.services import messages
from app.types.reminder_contract import (
    Channel,
    DeliveryResult,
    DispatchOutcome,
    DueReminder,
)
from app.utils.notifiers import Notifiers
from config import settings

_LOGGER = logging.getLogger(__name__)


class Dispatched(NamedTuple):
    reminder: DueReminder
    outcome: DispatchOutcome
    error: Optional[TransientDeliveryError] = None


def _send(reminder: DueReminder, address: str, notifiers: Notifiers) -> DeliveryResult:
    doc = reminder.document
    if reminder.channel == Channel.EMAIL:
        return notifiers.send_email(
            address, messages.email_subject(doc), messages.email_body(doc, settings.DASHBOARD_URL)
        )
    return notifiers.send_whatsapp(address, messages.whatsapp_body(doc))


async def dispatch(
    session_maker: async_sessionmaker[AsyncSession],
    reminder: DueReminder,
    notifiers: Notifiers,
    now: datetime,
) -> Dispatched:
    owner = reminder.document.owner
    address = owner.address_for(reminder.channel)
    if address is None:
        _LOGGER.info(
            "Reminder %s left pending: user %s has no %s contact",
            reminder.reminder_id, owner.user_id, reminder.channel.value,
        )
        return Dispatched(reminder, DispatchOutcome.NO_CONTACT)

    async with db.session_scope(session_maker) as s:
        won = await db.claim_reminder(s, reminder.reminder_id, now)
    if not won:
        _LOGGER.info("Reminder %s already claimed by another pass", reminder.reminder_id)
        return Dispatched(reminder, DispatchOutcome.ALREADY_CLAIMED)

    try:
        result = await asyncio.to_thread(_send, reminder, address, notifiers)
    except Exception as exc:  # noqa: BLE001
        result = DeliveryResult.failure(f"notifier raised: {exc!r}")

    if result.ok:
        _LOGGER.info(
            "Reminder %s sent via %s (%s)",
            reminder.reminder_id, reminder.channel.value, result.provider or "-",
        )
        return Dispatched(reminder, DispatchOutcome.DISPATCHED)

    err = TransientDeliveryError(
        reminder.reminder_id, reminder.channel.value, result.error or "unknown error"
    )
    _LOGGER.warning("%s (user %s)", err, owner.user_id)
    async with db.session_scope(session_maker) as s:
        await db.record_delivery_error(s, reminder.reminder_id, err.detail)
    return Dispatched(reminder, DispatchOutcome.FAILED, err)


async def dispatch_all(
    session_maker: async_sessionmaker[AsyncSession],
    reminders: Sequence[DueReminder],
    notifiers: Notifiers,
    now: datetime,
    concurrency: int = 1,
) -> List[Dispatched]:
    """Dispatch every reminder independently; results keep the input order.

    A ``PersistenceError`` from any unit aborts the whole batch. With
    ``concurrency > 1`` units still waiting for a slot are dropped and the
    error is raised once the in-flight units have finished.
    """
    if concurrency <= 1:
        return [await dispatch(session_maker, r, notifiers, now) for r in reminders]

    gate = asyncio.Semaphore(concurrency)
    aborted = asyncio.Event()

    async def _one(r: DueReminder) -> Optional[Dispatched]:
        async with gate:
            if aborted.is_set():
                return None
            try:
                return await dispatch(session_maker, r, notifiers, now)
            except BaseException:
                aborted.set()
                raise

    results = await asyncio.gather(*(_one(r) for r in reminders), return_exceptions=True)
    errors = [r for r in results if isinstance(r, BaseException)]
    if errors:
        if len(errors) > 1:
            _LOGGER.error("%d dispatch units failed; raising the first", len(errors))
        raise errors[0]
    return list(results)
