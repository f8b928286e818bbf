from .db import (
    build_url,
    create_engine,
    get_engine,
    get_session_maker,
    create_all,
    dispose_engine,
    session_scope,
    fetch_documents_in_window,
    fetch_settings,
    insert_settings_if_absent,
    update_settings,
    insert_reminder_if_absent,
    fetch_due_unsent,
    claim_reminder,
    record_delivery_error,
    fetch_pending_for_user,
    fetch_user_reminder,
    mark_user_reminder_sent,
)  # noqa: F401
from .models import Base, Document, Reminder, ReminderSetting, User, Vehicle  # noqa: F401
