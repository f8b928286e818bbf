"""ORM models.

``users``, ``vehicles`` and ``documents`` belong to the document-management
side of the system; they are mapped here only so the reminder engine can read
them. ``reminder_settings`` and ``reminders`` are owned by the engine.
"""

from __future__ import annotations

from datetime import date, datetime, time
from uuid import uuid4

from sqlalchemy import (
    Boolean, Date, DateTime, ForeignKey, Index, Integer, String, Text, Time,
    CheckConstraint, UniqueConstraint, func, true, false,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


# ──────────────────────────────────────────────────────────────────────
# External, read-only
# ──────────────────────────────────────────────────────────────────────

class User(Base):
    __tablename__ = "users"

    id:              Mapped[str] = mapped_column(String(64), primary_key=True)
    name:            Mapped[str | None] = mapped_column(String(255))
    email:           Mapped[str | None] = mapped_column(String(255))
    whatsapp_number: Mapped[str | None] = mapped_column(String(32))


class Vehicle(Base):
    __tablename__ = "vehicles"

    id:           Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id:      Mapped[str] = mapped_column(ForeignKey("users.id"))
    name:         Mapped[str | None] = mapped_column(String(255))
    plate_number: Mapped[str | None] = mapped_column(String(32))


class Document(Base):
    __tablename__ = "documents"

    id:          Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id:     Mapped[str] = mapped_column(ForeignKey("users.id"))
    vehicle_id:  Mapped[str | None] = mapped_column(ForeignKey("vehicles.id"))
    doc_type:    Mapped[str] = mapped_column(String(64))
    number:      Mapped[str | None] = mapped_column(String(128))
    expiry_date: Mapped[date | None] = mapped_column(Date)

    __table_args__ = (
        Index("ix_documents_expiry_date", "expiry_date"),
    )


# ──────────────────────────────────────────────────────────────────────
# Owned by the reminder engine
# ──────────────────────────────────────────────────────────────────────

class ReminderSetting(Base):
    __tablename__ = "reminder_settings"

    user_id:              Mapped[str] = mapped_column(String(64), primary_key=True)
    email_enabled:        Mapped[bool] = mapped_column(Boolean, server_default=true())
    email_days_before:    Mapped[int] = mapped_column(Integer, server_default="14")
    whatsapp_enabled:     Mapped[bool] = mapped_column(Boolean, server_default=false())
    whatsapp_days_before: Mapped[int] = mapped_column(Integer, server_default="7")
    quiet_hours_start:    Mapped[time | None] = mapped_column(Time)
    quiet_hours_end:      Mapped[time | None] = mapped_column(Time)
    created_at:           Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at:           Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        CheckConstraint(
            "email_days_before >= 0 AND whatsapp_days_before >= 0",
            name="ck_reminder_settings_days_before",
        ),
    )


class Reminder(Base):
    __tablename__ = "reminders"

    id:          Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    user_id:     Mapped[str] = mapped_column(String(64))
    document_id: Mapped[str] = mapped_column(String(64))
    vehicle_id:  Mapped[str | None] = mapped_column(String(64))
    channel:     Mapped[str] = mapped_column(String(16))
    due_date:    Mapped[date] = mapped_column(Date)
    sent:        Mapped[bool] = mapped_column(Boolean, default=False, server_default=false())
    sent_at:     Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    last_error:  Mapped[str | None] = mapped_column(Text)
    created_at:  Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("document_id", "due_date", "channel", name="uq_reminders_document_due_channel"),
        CheckConstraint("channel IN ('email', 'whatsapp')", name="ck_reminders_channel"),
        Index("ix_reminders_sent_due_date", "sent", "due_date"),
        Index("ix_reminders_user_sent", "user_id", "sent"),
    )
