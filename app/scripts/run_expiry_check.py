"""One-shot expiry check, for a platform cron or a manual run:
    python -m app.scripts.run_expiry_check [--date YYYY-MM-DD]
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from datetime import date, datetime, time
from zoneinfo import ZoneInfo

from app.errors import PersistenceError
from app.services.expiry_check import run_expiry_check
from app.types.reminder_contract import RunSummary
from app.utils.notifiers import default_notifiers
from config import configure_logging, settings
import db


async def main(as_of: date | None = None) -> RunSummary:
    now = None
    if as_of is not None:
        now = datetime.combine(as_of, time(9, 0), tzinfo=ZoneInfo(settings.DEFAULT_TIMEZONE))
    try:
        return await run_expiry_check(db.get_session_maker(), default_notifiers(), now)
    finally:
        await db.dispose_engine()


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run one expiry reminder pass.")
    parser.add_argument(
        "--date",
        type=date.fromisoformat,
        default=None,
        help="evaluate as if today were this date (YYYY-MM-DD)",
    )
    return parser.parse_args(argv)


if __name__ == "__main__":  # pragma: no cover
    configure_logging()
    args = _parse_args()
    print("[CRON] run_expiry_check: job started")
    try:
        summary = asyncio.run(main(args.date))
    except PersistenceError as e:
        print(f"[CRON] run_expiry_check: job failed: {e}")
        sys.exit(1)
    print(f"[CRON] run_expiry_check: job completed successfully {summary.model_dump_json()}")
