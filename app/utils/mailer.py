"""Email notifier: SMTP first, Mailtrap HTTP API as fallback.

The notifier never raises; every outcome is reported as a ``DeliveryResult``.
"""

from __future__ import annotations

import logging
import smtplib
import ssl
from email.message import EmailMessage
from email.utils import formataddr, make_msgid
from typing import Optional

import requests

from app.types.reminder_contract import DeliveryResult
from config import settings

_LOGGER = logging.getLogger(__name__)

# Rejections of this message by a working server; another transport would not help.
_PERMANENT_SMTP_ERRORS = (
    smtplib.SMTPRecipientsRefused,
    smtplib.SMTPSenderRefused,
    smtplib.SMTPDataError,
    smtplib.SMTPNotSupportedError,
)


def is_transient(exc: BaseException) -> bool:
    """Connectivity, timeout and auth failures are worth a second path."""
    if isinstance(exc, _PERMANENT_SMTP_ERRORS):
        return False
    return isinstance(exc, OSError)  # smtplib.SMTPException, socket timeouts, refused connections


class SmtpTransport:
    name = "smtp"

    def __init__(
        self,
        host: str,
        port: int,
        user: str,
        password: str,
        *,
        secure: bool = False,
        timeout: int = 20,
        from_email: str = settings.FROM_EMAIL,
        from_name: str = settings.FROM_NAME,
    ):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.secure = secure
        self.timeout = timeout
        self.from_email = from_email
        self.from_name = from_name

    @classmethod
    def from_settings(cls) -> Optional["SmtpTransport"]:
        if not (settings.SMTP_HOST and settings.SMTP_USER and settings.SMTP_PASS):
            return None
        return cls(
            settings.SMTP_HOST,
            settings.SMTP_PORT,
            settings.SMTP_USER,
            settings.SMTP_PASS,
            secure=settings.SMTP_SECURE,
            timeout=settings.SMTP_TIMEOUT,
        )

    def _connect(self) -> smtplib.SMTP:
        if self.secure:
            return smtplib.SMTP_SSL(
                self.host, self.port, timeout=self.timeout, context=ssl.create_default_context()
            )
        conn = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
        conn.starttls(context=ssl.create_default_context())
        return conn

    def send(self, to: str, subject: str, body: str) -> str:
        msg = EmailMessage()
        msg["From"] = formataddr((self.from_name, self.from_email))
        msg["To"] = to
        msg["Subject"] = subject
        msg["Message-ID"] = make_msgid(domain=self.from_email.rpartition("@")[2] or None)
        msg.set_content(body)

        with self._connect() as conn:
            conn.login(self.user, self.password)
            conn.send_message(msg)
        return msg["Message-ID"]


class MailtrapTransport:
    name = "mailtrap"

    def __init__(
        self,
        api_token: str,
        *,
        url: str = settings.MAILTRAP_API_URL,
        sender_email: str = settings.MAILTRAP_SENDER_EMAIL,
        sender_name: str = settings.MAILTRAP_SENDER_NAME,
        timeout: int = 20,
    ):
        self.api_token = api_token
        self.url = url
        self.sender_email = sender_email
        self.sender_name = sender_name
        self.timeout = timeout

    @classmethod
    def from_settings(cls) -> Optional["MailtrapTransport"]:
        if not settings.MAILTRAP_API_TOKEN:
            return None
        return cls(settings.MAILTRAP_API_TOKEN)

    def send(self, to: str, subject: str, body: str) -> Optional[str]:
        resp = requests.post(
            self.url,
            json={
                "from": {"email": self.sender_email, "name": self.sender_name},
                "to": [{"email": to}],
                "subject": subject,
                "text": body,
            },
            headers={"Api-Token": self.api_token},
            timeout=self.timeout,
        )
        resp.raise_for_status()
        ids = (resp.json() or {}).get("message_ids") or [None]
        return ids[0]


class EmailNotifier:
    """``send_email(address, subject, body)`` with a primary/fallback strategy."""

    def __init__(self, primary: SmtpTransport | None = None, fallback: MailtrapTransport | None = None):
        self.primary = primary
        self.fallback = fallback

    @classmethod
    def from_settings(cls) -> "EmailNotifier":
        return cls(SmtpTransport.from_settings(), MailtrapTransport.from_settings())

    def __call__(self, address: str, subject: str, body: str) -> DeliveryResult:
        if self.primary is None and self.fallback is None:
            _LOGGER.warning("[mailer] DEV mode: would email %s: %s", address, subject)
            return DeliveryResult(ok=True, provider="dev")

        if self.primary is not None:
            try:
                message_id = self.primary.send(address, subject, body)
                _LOGGER.info("[mailer] SMTP send OK: %s", message_id)
                return DeliveryResult(ok=True, provider=self.primary.name, message_id=message_id)
            except Exception as exc:  # noqa: BLE001
                _LOGGER.warning("[mailer] SMTP send failed: %r", exc)
                if not is_transient(exc) or self.fallback is None:
                    return DeliveryResult.failure(f"smtp: {exc}", provider=self.primary.name)

        try:
            message_id = self.fallback.send(address, subject, body)
        except (requests.RequestException, ValueError) as exc:
            _LOGGER.warning("[mailer] HTTP send failed: %r", exc)
            return DeliveryResult.failure(f"mailtrap: {exc}", provider=self.fallback.name)
        _LOGGER.info("[mailer] HTTP fallback sent: %s", message_id)
        return DeliveryResult(ok=True, provider=self.fallback.name, message_id=message_id)
