from __future__ import annotations

import logging
import re
from typing import Optional

import telnyx
from telnyx.error import TelnyxError

from app.types.reminder_contract import DeliveryResult
from config import settings

_LOGGER = logging.getLogger(__name__)

_E164 = re.compile(r"^\+[1-9]\d{7,14}$")


def to_e164(number: str) -> Optional[str]:
    """Normalise ``whatsapp:+254 712-345 678`` style input to ``+254712345678``."""
    cleaned = re.sub(r"[\s\-().]", "", number.removeprefix("whatsapp:"))
    if cleaned.startswith("00"):
        cleaned = "+" + cleaned[2:]
    elif not cleaned.startswith("+"):
        cleaned = "+" + cleaned
    return cleaned if _E164.match(cleaned) else None


class WhatsAppNotifier:
    """``send_whatsapp(e164_number, body)`` through the Telnyx messaging API."""

    provider = "telnyx"

    def __init__(self, api_key: str | None, from_number: str | None):
        self.api_key = api_key
        self.from_number = from_number

    @classmethod
    def from_settings(cls) -> "WhatsAppNotifier":
        return cls(settings.TELNYX_API_KEY, settings.TELNYX_WHATSAPP_NUMBER)

    def __call__(self, to: str, body: str) -> DeliveryResult:
        if not self.api_key or not self.from_number:
            _LOGGER.warning("[WhatsApp] DEV mode: would send to %s: %s", to, body)
            return DeliveryResult(ok=True, provider="dev")

        number = to_e164(to)
        if number is None:
            return DeliveryResult.failure(f"invalid WhatsApp number {to!r}", provider=self.provider)

        try:
            msg = telnyx.Message.create(
                api_key=self.api_key, from_=self.from_number, to=number, text=body
            )
        except TelnyxError as exc:
            _LOGGER.warning("[WhatsApp] send to %s failed: %s", number, exc)
            return DeliveryResult.failure(str(exc), provider=self.provider)
        return DeliveryResult(ok=True, provider=self.provider, message_id=getattr(msg, "id", None))
