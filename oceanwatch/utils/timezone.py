"""
Timezone utilities.

All timestamps are stored as naive UTC datetimes; schedules run in
SCHEDULER_TIMEZONE (Pacific by default, like the game servers).
"""
from datetime import datetime, timezone

UTC = timezone.utc


def utc_now() -> datetime:
    """Current UTC time as a naive datetime (database convention)."""
    return datetime.now(UTC).replace(tzinfo=None)
