from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from app.types.reminder_contract import DeliveryResult
from app.utils.mailer import EmailNotifier
from app.utils.whatsapp import WhatsAppNotifier

SendEmail = Callable[[str, str, str], DeliveryResult]  # (address, subject, body)
SendWhatsApp = Callable[[str, str], DeliveryResult]  # (e164_number, body)


@dataclass(frozen=True)
class Notifiers:
    """One delivery capability per channel, injected into the reminder engine."""

    send_email: SendEmail
    send_whatsapp: SendWhatsApp


def default_notifiers() -> Notifiers:
    return Notifiers(
        send_email=EmailNotifier.from_settings(),
        send_whatsapp=WhatsAppNotifier.from_settings(),
    )
