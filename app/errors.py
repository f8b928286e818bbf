"""Error taxonomy of the expiry reminder engine.

Delivery failures stay local to one reminder; storage failures abort the
whole pass and surface to whoever triggered it.
"""

from __future__ import annotations


class ReminderEngineError(Exception):
    """Base class for every error raised by the reminder engine."""


class ConfigurationError(ReminderEngineError):
    """A user has no reminder_settings row yet (recovered by creating defaults)."""

    def __init__(self, user_id: str):
        super().__init__(f"no reminder settings for user {user_id}")
        self.user_id = user_id


class TransientDeliveryError(ReminderEngineError):
    """A notifier reported a failed send for one reminder."""

    def __init__(self, reminder_id: str, channel: str, detail: str):
        super().__init__(f"{channel} delivery failed for reminder {reminder_id}: {detail}")
        self.reminder_id = reminder_id
        self.channel = channel
        self.detail = detail


class PersistenceError(ReminderEngineError):
    """Storage is unavailable; none of the idempotency guarantees hold."""


class NotFoundError(ReminderEngineError):
    """Requested row does not exist or is not owned by the caller."""
