from datetime import date

import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

import db
from db.models import Document, Reminder, ReminderSetting, User, Vehicle
from app.types.reminder_contract import DeliveryResult
from app.utils.notifiers import Notifiers


@pytest_asyncio.fixture
async def session_maker(tmp_path):
    # File-backed SQLite with the default pool: each session gets its own
    # connection, so concurrent units of work are independent transactions.
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        connect_args={"timeout": 30},
    )
    await db.create_all(engine)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()


class Seeder:
    def __init__(self, session_maker):
        self.sm = session_maker

    async def user(self, user_id, *, email="owner@example.com", whatsapp=None, name="Wanjiku", **prefs):
        async with self.sm() as s:
            s.add(User(id=user_id, name=name, email=email, whatsapp_number=whatsapp))
            if prefs:
                s.add(ReminderSetting(user_id=user_id, **prefs))
            await s.commit()

    async def vehicle(self, vehicle_id, user_id, *, name="Toyota Probox", plate="KDH 123A"):
        async with self.sm() as s:
            s.add(Vehicle(id=vehicle_id, user_id=user_id, name=name, plate_number=plate))
            await s.commit()

    async def document(self, doc_id, user_id, expiry: date | None, *,
                       doc_type="Insurance", number=None, vehicle_id=None):
        async with self.sm() as s:
            s.add(Document(
                id=doc_id, user_id=user_id, vehicle_id=vehicle_id,
                doc_type=doc_type, number=number, expiry_date=expiry,
            ))
            await s.commit()

    async def reminders(self, document_id=None):
        async with self.sm() as s:
            stmt = select(Reminder).order_by(Reminder.due_date, Reminder.channel)
            if document_id is not None:
                stmt = stmt.where(Reminder.document_id == document_id)
            return list((await s.execute(stmt)).scalars())

    async def settings_row(self, user_id):
        async with self.sm() as s:
            return await s.get(ReminderSetting, user_id)


@pytest.fixture
def seed(session_maker):
    return Seeder(session_maker)


class Outbox:
    """Fake notifiers recording every send; chosen addresses fail."""

    def __init__(self):
        self.emails = []
        self.whatsapps = []
        self.failing = set()

    def send_email(self, address, subject, body):
        self.emails.append((address, subject, body))
        if address in self.failing:
            return DeliveryResult.failure("network error", provider="fake")
        return DeliveryResult(ok=True, provider="fake", message_id=f"m{len(self.emails)}")

    def send_whatsapp(self, number, body):
        self.whatsapps.append((number, body))
        if number in self.failing:
            return DeliveryResult.failure("network error", provider="fake")
        return DeliveryResult(ok=True, provider="fake", message_id=f"w{len(self.whatsapps)}")

    @property
    def notifiers(self) -> Notifiers:
        return Notifiers(send_email=self.send_email, send_whatsapp=self.send_whatsapp)


@pytest.fixture
def outbox():
    return Outbox()
