from datetime import date, time

import pytest

from app.services import due_evaluator, due_window, materializer, settings_resolver
from app.services.due_evaluator import SKIP_CHANNEL_DISABLED, SKIP_QUIET_HOURS
from app.types.reminder_contract import Channel, ReminderSettingsUpdate


async def _materialize_all(session_maker, today):
    for doc in await due_window.scan(session_maker, today, 90):
        prefs = await settings_resolver.resolve(session_maker, doc.owner.user_id)
        await materializer.materialize(session_maker, doc, prefs)


@pytest.mark.asyncio
async def test_only_due_and_unsent_reminders_are_selected(session_maker, seed):
    await seed.user("u1")
    await seed.document("due", "u1", date(2025, 12, 1))      # email due 11-17
    await seed.document("later", "u1", date(2025, 12, 2))    # email due 11-18
    await _materialize_all(session_maker, date(2025, 11, 1))

    before = await due_evaluator.due_and_unsent(session_maker, date(2025, 11, 16))
    on_day = await due_evaluator.due_and_unsent(session_maker, date(2025, 11, 17))

    assert before.due == []
    assert [r.document.document_id for r in on_day.due] == ["due"]
    assert on_day.due[0].channel is Channel.EMAIL


@pytest.mark.asyncio
async def test_channel_disabled_after_materialization_is_skipped(session_maker, seed):
    await seed.user("u1", whatsapp="+254712345678", whatsapp_enabled=True, email_enabled=False)
    await seed.document("d1", "u1", date(2025, 12, 1))
    await _materialize_all(session_maker, date(2025, 11, 20))
    await settings_resolver.update(
        session_maker, "u1", ReminderSettingsUpdate(whatsapp_enabled=False)
    )

    result = await due_evaluator.due_and_unsent(session_maker, date(2025, 11, 24))

    assert result.due == []
    (row,) = await seed.reminders("d1")
    assert result.skipped == [(row.id, SKIP_CHANNEL_DISABLED)]
    assert row.sent is False


@pytest.mark.asyncio
async def test_re_enabled_channel_is_immediately_due(session_maker, seed):
    await seed.user("u1", whatsapp="+254712345678", whatsapp_enabled=False)
    await seed.document("d1", "u1", date(2025, 12, 1))
    await _materialize_all(session_maker, date(2025, 11, 20))
    await settings_resolver.update(
        session_maker, "u1", ReminderSettingsUpdate(whatsapp_enabled=True)
    )
    await _materialize_all(session_maker, date(2025, 11, 28))

    result = await due_evaluator.due_and_unsent(session_maker, date(2025, 11, 28))

    assert sorted(r.channel.value for r in result.due) == ["email", "whatsapp"]


@pytest.mark.asyncio
async def test_quiet_hours_defer_dispatch(session_maker, seed):
    await seed.user("u1", quiet_hours_start=time(22, 0), quiet_hours_end=time(6, 0))
    await seed.document("d1", "u1", date(2025, 12, 1))
    await _materialize_all(session_maker, date(2025, 11, 17))

    night = await due_evaluator.due_and_unsent(session_maker, date(2025, 11, 17), time(23, 30))
    morning = await due_evaluator.due_and_unsent(session_maker, date(2025, 11, 17), time(9, 0))

    assert night.due == [] and night.skipped[0][1] == SKIP_QUIET_HOURS
    assert len(morning.due) == 1


@pytest.mark.asyncio
async def test_reminder_of_deleted_document_is_left_alone(session_maker, seed):
    from sqlalchemy import delete
    from db.models import Document

    await seed.user("u1")
    await seed.document("d1", "u1", date(2025, 12, 1))
    await _materialize_all(session_maker, date(2025, 11, 1))
    async with session_maker() as s:
        await s.execute(delete(Document).where(Document.id == "d1"))
        await s.commit()

    result = await due_evaluator.due_and_unsent(session_maker, date(2025, 11, 20))

    assert result.due == [] and result.skipped == []
    (row,) = await seed.reminders("d1")
    assert row.sent is False
