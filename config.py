import logging
import os

from dotenv import load_dotenv

load_dotenv()


class Settings:
    # --- Database ---
    DATABASE_URL = os.environ.get("DATABASE_URL")
    DATABASE_PUBLIC_URL = os.environ.get("DATABASE_PUBLIC_URL")

    # --- Redis ---
    REDIS_URL = os.environ.get("REDIS_URL", "redis://localhost:6379/0")

    # --- Reminder engine ---
    DEFAULT_TIMEZONE = os.environ.get("DEFAULT_TIMEZONE", "Africa/Nairobi")
    REMINDER_HORIZON_DAYS = int(os.environ.get("REMINDER_HORIZON_DAYS", "90"))
    REMINDER_MAX_DAYS_BEFORE = int(os.environ.get("REMINDER_MAX_DAYS_BEFORE", "90"))
    REMINDER_DISPATCH_CONCURRENCY = int(os.environ.get("REMINDER_DISPATCH_CONCURRENCY", "1"))
    EXPIRY_CHECK_MINUTE = int(os.environ.get("EXPIRY_CHECK_MINUTE", "0"))
    REMINDERS_ADMIN_TOKEN = os.environ.get("REMINDERS_ADMIN_TOKEN")

    # --- Telnyx (WhatsApp) ---
    TELNYX_API_KEY = os.environ.get("TELNYX_API_KEY")
    TELNYX_PUBLIC_KEY = os.environ.get("TELNYX_PUBLIC_KEY")
    TELNYX_WHATSAPP_NUMBER = os.environ.get("TELNYX_WHATSAPP_NUMBER")

    # --- SMTP (primary email path) ---
    SMTP_HOST = os.environ.get("SMTP_HOST")
    SMTP_PORT = int(os.environ.get("SMTP_PORT", "587"))
    SMTP_SECURE = os.environ.get("SMTP_SECURE", "false").lower() == "true"  # true for 465
    SMTP_USER = os.environ.get("SMTP_USER")
    SMTP_PASS = os.environ.get("SMTP_PASS")
    SMTP_TIMEOUT = int(os.environ.get("SMTP_TIMEOUT", "20"))
    FROM_EMAIL = os.environ.get("FROM_EMAIL", "no-reply@saka360.com")
    FROM_NAME = os.environ.get("FROM_NAME", "Saka360")

    # --- Mailtrap (HTTP email fallback) ---
    MAILTRAP_API_TOKEN = os.environ.get("MAILTRAP_API_TOKEN")
    MAILTRAP_API_URL = os.environ.get("MAILTRAP_API_URL", "https://send.api.mailtrap.io/api/send")
    MAILTRAP_SENDER_EMAIL = os.environ.get("MAILTRAP_SENDER_EMAIL", FROM_EMAIL)
    MAILTRAP_SENDER_NAME = os.environ.get("MAILTRAP_SENDER_NAME", FROM_NAME)

    # --- Links placed in outgoing messages ---
    DASHBOARD_URL = os.environ.get("DASHBOARD_URL", "https://saka360.com/dashboard")

    # --- Logging ---
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")


settings = Settings()


def configure_logging(level: str | None = None) -> None:
    """Install a root handler once per process (CLI, worker, API)."""
    logging.basicConfig(
        level=(level or settings.LOG_LEVEL).upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
