"""
Upcoming-event reminders derived from the current event list
"""

from datetime import datetime, timedelta, tzinfo
from typing import Iterable, List, Optional

from app.schemas.event import Event

REMINDER_WINDOW = timedelta(hours=48)


def due_soon(
    events: Iterable[Event],
    now: datetime,
    tz: Optional[tzinfo] = None,
    window: timedelta = REMINDER_WINDOW,
) -> List[Event]:
    """Events scheduled strictly after ``now`` and strictly less than ``window`` ahead.

    Event times are local wall-clock values. When ``now`` is timezone-aware
    they are read in ``tz`` (or ``now``'s zone); a naive ``now`` is compared
    as-is. Input order is preserved and unparseable times are skipped.
    """
    zone = tz or now.tzinfo
    upcoming = []
    for event in events:
        try:
            scheduled = event.scheduled_at
        except ValueError:
            continue
        if now.tzinfo is not None:
            scheduled = scheduled.replace(tzinfo=zone)
        delta = scheduled - now
        if timedelta(0) < delta < window:
            upcoming.append(event)
    return upcoming
