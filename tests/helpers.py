from datetime import datetime
from zoneinfo import ZoneInfo

TZ = "Africa/Nairobi"


def at(y: int, m: int, d: int, hour: int = 9) -> datetime:
    """A pass instant, local to the reminder timezone."""
    return datetime(y, m, d, hour, 0, tzinfo=ZoneInfo(TZ))
