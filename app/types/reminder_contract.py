"""Pydantic models that define the contract between the reminder engine,
its storage helpers, the notifiers and the HTTP surface.

These classes are intentionally framework-agnostic so they can be reused by
workers, API responses, and tests without pulling in FastAPI or database
layers.
"""

from __future__ import annotations

import enum
from datetime import date, datetime, time
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from config import settings as app_settings


class Channel(str, enum.Enum):
    EMAIL = "email"
    WHATSAPP = "whatsapp"


# Documented defaults for a user that never touched their settings.
DEFAULT_SETTINGS = {
    "email_enabled": True,
    "email_days_before": 14,
    "whatsapp_enabled": False,
    "whatsapp_days_before": 7,
}

# Columns a settings update is allowed to touch.
SETTINGS_MUTABLE_FIELDS = (
    "email_enabled",
    "email_days_before",
    "whatsapp_enabled",
    "whatsapp_days_before",
    "quiet_hours_start",
    "quiet_hours_end",
)


def _check_days_before(v: int) -> int:
    if v < 0 or v > app_settings.REMINDER_MAX_DAYS_BEFORE:
        raise ValueError(
            f"days_before must be between 0 and {app_settings.REMINDER_MAX_DAYS_BEFORE}"
        )
    return v


# ──────────────────────────────
# Settings
# ──────────────────────────────


class ReminderSettings(BaseModel):
    """A user's current notification preferences (one row per user)."""

    model_config = ConfigDict(from_attributes=True)

    user_id: str
    email_enabled: bool = DEFAULT_SETTINGS["email_enabled"]
    email_days_before: int = DEFAULT_SETTINGS["email_days_before"]
    whatsapp_enabled: bool = DEFAULT_SETTINGS["whatsapp_enabled"]
    whatsapp_days_before: int = DEFAULT_SETTINGS["whatsapp_days_before"]
    quiet_hours_start: Optional[time] = None
    quiet_hours_end: Optional[time] = None

    def enabled(self, channel: Channel) -> bool:
        if channel == Channel.EMAIL:
            return self.email_enabled
        return self.whatsapp_enabled

    def days_before(self, channel: Channel) -> int:
        if channel == Channel.EMAIL:
            return self.email_days_before
        return self.whatsapp_days_before

    def enabled_channels(self) -> List[Channel]:
        return [ch for ch in Channel if self.enabled(ch)]

    def in_quiet_hours(self, local_time: time) -> bool:
        """True when ``local_time`` falls in [start, end); the window may wrap midnight."""
        start, end = self.quiet_hours_start, self.quiet_hours_end
        if start is None or end is None or start == end:
            return False
        t = local_time.replace(tzinfo=None)
        if start < end:
            return start <= t < end
        return t >= start or t < end


class ReminderSettingsUpdate(BaseModel):
    """Partial settings change; only fields explicitly provided are applied."""

    model_config = ConfigDict(extra="forbid")

    email_enabled: Optional[bool] = None
    email_days_before: Optional[int] = None
    whatsapp_enabled: Optional[bool] = None
    whatsapp_days_before: Optional[int] = None
    quiet_hours_start: Optional[time] = None
    quiet_hours_end: Optional[time] = None

    @field_validator("email_days_before", "whatsapp_days_before")
    def _bounded_lead(cls, v):  # noqa: N805
        if v is None:
            raise ValueError("days_before cannot be null")
        return _check_days_before(v)

    @field_validator("email_enabled", "whatsapp_enabled")
    def _no_null_toggle(cls, v):  # noqa: N805
        if v is None:
            raise ValueError("channel toggle cannot be null")
        return v

    @model_validator(mode="after")
    def _quiet_hours_pair(self):  # noqa: N805
        touched = {"quiet_hours_start", "quiet_hours_end"} & self.model_fields_set
        if len(touched) == 1:
            raise ValueError("quiet_hours_start and quiet_hours_end must be set together")
        if (self.quiet_hours_start is None) != (self.quiet_hours_end is None):
            raise ValueError("quiet hours need both a start and an end (or both null)")
        return self

    def changes(self) -> dict:
        return {
            name: getattr(self, name)
            for name in SETTINGS_MUTABLE_FIELDS
            if name in self.model_fields_set
        }


# ──────────────────────────────
# Scan / evaluation rows
# ──────────────────────────────


class OwnerContact(BaseModel):
    user_id: str
    name: Optional[str] = None
    email: Optional[str] = None
    whatsapp_number: Optional[str] = None

    def address_for(self, channel: Channel) -> Optional[str]:
        value = self.email if channel == Channel.EMAIL else self.whatsapp_number
        return value.strip() if value and value.strip() else None


class DueDocument(BaseModel):
    """A document expiring inside the look-ahead window, joined with its owner."""

    document_id: str
    vehicle_id: Optional[str] = None
    doc_type: str
    number: Optional[str] = None
    expiry_date: date
    owner: OwnerContact
    vehicle_name: Optional[str] = None
    plate_number: Optional[str] = None

    @property
    def vehicle_label(self) -> str:
        return self.vehicle_name or self.plate_number or "your vehicle"


class DueReminder(BaseModel):
    """A materialized reminder that is due and still unsent."""

    reminder_id: str
    channel: Channel
    due_date: date
    document: DueDocument


# ──────────────────────────────
# Delivery / dispatch
# ──────────────────────────────


class DeliveryResult(BaseModel):
    """What a notifier reports back. Notifiers return failures, never raise them."""

    ok: bool
    provider: Optional[str] = None
    message_id: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def failure(cls, error: str, provider: Optional[str] = None) -> "DeliveryResult":
        return cls(ok=False, provider=provider, error=error)


class DispatchOutcome(str, enum.Enum):
    DISPATCHED = "dispatched"
    FAILED = "failed"
    ALREADY_CLAIMED = "already_claimed"
    NO_CONTACT = "no_contact"


class DeliveryFailure(BaseModel):
    reminder_id: str
    user_id: str
    channel: Channel
    error: str


class RunSummary(BaseModel):
    processed: int = 0  # documents scanned
    materialized: int = 0  # reminder rows created during this pass
    due: int = 0
    dispatched: int = 0
    failed: int = 0
    skipped: int = 0  # sum of the four counters below
    deferred: int = 0  # channel disabled or quiet hours
    no_contact: int = 0
    already_claimed: int = 0
    invalid_settings: int = 0  # documents whose lead time could not be applied
    failures: List[DeliveryFailure] = Field(default_factory=list)


class ReminderOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    document_id: str
    vehicle_id: Optional[str] = None
    channel: Channel
    due_date: date
    sent: bool
    sent_at: Optional[datetime] = None
    last_error: Optional[str] = None
