"""Celery task wrapping one expiry check pass.

No retries: a pass that fails on storage is picked up again by the next
scheduled tick, and delivery failures are never retried.
"""

from __future__ import annotations

import asyncio
import logging

from app.celery_app import celery_app
from app.errors import PersistenceError
from app.services.expiry_check import run_expiry_check as _run
from app.utils.notifiers import Notifiers, default_notifiers
from config import configure_logging
import db

configure_logging()
_LOGGER = logging.getLogger(__name__)


async def _run_once(notifiers: Notifiers) -> dict:
    try:
        summary = await _run(db.get_session_maker(), notifiers)
    finally:
        await db.dispose_engine()
    return summary.model_dump(mode="json")


@celery_app.task(name="app.workers.expiry.run_expiry_check", bind=True)
def run_expiry_check(self):  # noqa: D401
    """Run one pass and return its summary as a JSON-able dict."""
    try:
        return asyncio.run(_run_once(default_notifiers()))
    except PersistenceError:
        _LOGGER.error("Expiry check task %s failed on storage; waiting for next tick", self.request.id)
        raise
