import asyncio
from datetime import date

import pytest

import db
from app.errors import PersistenceError
from app.services import dispatcher
from app.types.reminder_contract import (
    Channel, DispatchOutcome, DueDocument, DueReminder, OwnerContact,
)
from app.utils.notifiers import Notifiers
from tests.helpers import at

NOW = at(2025, 11, 17)


async def _due_reminder(session_maker, seed, *, channel=Channel.EMAIL, email="owner@example.com",
                        whatsapp=None):
    await seed.user("u1", email=email, whatsapp=whatsapp)
    await seed.document("d1", "u1", date(2025, 12, 1), number="POL-77")
    async with db.session_scope(session_maker) as s:
        await db.insert_reminder_if_absent(
            s, user_id="u1", document_id="d1", vehicle_id=None,
            channel=channel.value, due_date=date(2025, 11, 17),
        )
    (row,) = await seed.reminders("d1")
    return DueReminder(
        reminder_id=row.id,
        channel=channel,
        due_date=row.due_date,
        document=DueDocument(
            document_id="d1", doc_type="Insurance", number="POL-77",
            expiry_date=date(2025, 12, 1),
            owner=OwnerContact(user_id="u1", name="Wanjiku", email=email, whatsapp_number=whatsapp),
        ),
    )


@pytest.mark.asyncio
async def test_successful_dispatch_claims_and_sends(session_maker, seed, outbox):
    reminder = await _due_reminder(session_maker, seed)

    res = await dispatcher.dispatch(session_maker, reminder, outbox.notifiers, NOW)

    assert res.outcome is DispatchOutcome.DISPATCHED
    (address, subject, body) = outbox.emails[0]
    assert address == "owner@example.com"
    assert subject == "Reminder: Insurance expires 01 Dec 2025"
    assert "Insurance (POL-77) for your vehicle expires on 01 Dec 2025" in body
    (row,) = await seed.reminders("d1")
    assert row.sent is True and row.sent_at is not None and row.last_error is None


@pytest.mark.asyncio
async def test_second_dispatch_loses_the_claim(session_maker, seed, outbox):
    reminder = await _due_reminder(session_maker, seed)

    first = await dispatcher.dispatch(session_maker, reminder, outbox.notifiers, NOW)
    second = await dispatcher.dispatch(session_maker, reminder, outbox.notifiers, NOW)

    assert first.outcome is DispatchOutcome.DISPATCHED
    assert second.outcome is DispatchOutcome.ALREADY_CLAIMED
    assert len(outbox.emails) == 1


@pytest.mark.asyncio
async def test_claim_taken_by_another_pass_skips_send(session_maker, seed, outbox):
    reminder = await _due_reminder(session_maker, seed)
    async with db.session_scope(session_maker) as s:
        assert await db.claim_reminder(s, reminder.reminder_id, NOW) is True
        assert await db.claim_reminder(s, reminder.reminder_id, NOW) is False

    (res,) = await dispatcher.dispatch_all(session_maker, [reminder], outbox.notifiers, NOW)

    assert res.outcome is DispatchOutcome.ALREADY_CLAIMED
    assert outbox.emails == []


@pytest.mark.asyncio
async def test_failed_send_keeps_reminder_sent_and_records_error(session_maker, seed, outbox):
    reminder = await _due_reminder(session_maker, seed)
    outbox.failing.add("owner@example.com")

    res = await dispatcher.dispatch(session_maker, reminder, outbox.notifiers, NOW)

    assert res.outcome is DispatchOutcome.FAILED
    assert res.error.channel == "email" and res.error.detail == "network error"
    (row,) = await seed.reminders("d1")
    assert row.sent is True
    assert row.last_error == "network error"


@pytest.mark.asyncio
async def test_raising_notifier_is_contained(session_maker, seed, outbox):
    reminder = await _due_reminder(session_maker, seed)

    def explode(address, subject, body):
        raise RuntimeError("socket closed")

    notifiers = Notifiers(send_email=explode, send_whatsapp=outbox.send_whatsapp)
    res = await dispatcher.dispatch(session_maker, reminder, notifiers, NOW)

    assert res.outcome is DispatchOutcome.FAILED
    assert "socket closed" in res.error.detail


@pytest.mark.asyncio
async def test_missing_contact_leaves_reminder_pending(session_maker, seed, outbox):
    reminder = await _due_reminder(session_maker, seed, channel=Channel.WHATSAPP, whatsapp=None)

    res = await dispatcher.dispatch(session_maker, reminder, outbox.notifiers, NOW)

    assert res.outcome is DispatchOutcome.NO_CONTACT
    assert outbox.whatsapps == []
    (row,) = await seed.reminders("d1")
    assert row.sent is False


@pytest.mark.asyncio
async def test_whatsapp_reminder_uses_whatsapp_notifier(session_maker, seed, outbox):
    reminder = await _due_reminder(
        session_maker, seed, channel=Channel.WHATSAPP, whatsapp="+254712345678"
    )

    res = await dispatcher.dispatch(session_maker, reminder, outbox.notifiers, NOW)

    assert res.outcome is DispatchOutcome.DISPATCHED
    assert outbox.emails == []
    assert outbox.whatsapps == [
        ("+254712345678", "Reminder: Insurance (POL-77) for your vehicle expires on 01 Dec 2025.")
    ]


async def _batch(session_maker, seed, n):
    await seed.user("u1")
    batch = []
    for i in range(n):
        doc_id = f"d{i}"
        await seed.document(doc_id, "u1", date(2025, 12, 1))
        async with db.session_scope(session_maker) as s:
            await db.insert_reminder_if_absent(
                s, user_id="u1", document_id=doc_id, vehicle_id=None,
                channel="email", due_date=date(2025, 11, 17),
            )
        (row,) = await seed.reminders(doc_id)
        batch.append(DueReminder(
            reminder_id=row.id,
            channel=Channel.EMAIL,
            due_date=row.due_date,
            document=DueDocument(
                document_id=doc_id, doc_type="Insurance", expiry_date=date(2025, 12, 1),
                owner=OwnerContact(user_id="u1", email=f"owner{i}@example.com"),
            ),
        ))
    return batch


@pytest.mark.asyncio
async def test_bounded_fan_out_sends_all_and_keeps_order(session_maker, seed, outbox):
    batch = await _batch(session_maker, seed, 6)

    results = await dispatcher.dispatch_all(
        session_maker, batch, outbox.notifiers, NOW, concurrency=4
    )

    assert [r.reminder.reminder_id for r in results] == [b.reminder_id for b in batch]
    assert all(r.outcome is DispatchOutcome.DISPATCHED for r in results)
    assert sorted(address for address, _, _ in outbox.emails) == [
        f"owner{i}@example.com" for i in range(6)
    ]
    assert all(row.sent for row in await seed.reminders())


@pytest.mark.asyncio
async def test_storage_error_in_fan_out_waits_for_in_flight_units(
    session_maker, seed, outbox, monkeypatch
):
    batch = await _batch(session_maker, seed, 4)
    finished = []

    async def fake_dispatch(sm, reminder, notifiers, now):
        if reminder.reminder_id == batch[1].reminder_id:
            raise PersistenceError("storage unavailable: connection reset")
        await asyncio.sleep(0.01)
        finished.append(reminder.reminder_id)
        return dispatcher.Dispatched(reminder, DispatchOutcome.DISPATCHED)

    monkeypatch.setattr(dispatcher, "dispatch", fake_dispatch)
    with pytest.raises(PersistenceError):
        await dispatcher.dispatch_all(session_maker, batch, outbox.notifiers, NOW, concurrency=2)

    # the first unit was in flight and completed; units queued behind the slot never ran
    assert finished == [batch[0].reminder_id]
