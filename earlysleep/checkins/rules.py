from __future__ import annotations

from collections.abc import Iterable

from earlysleep.checkins.types import CheckinStatus, CheckinSummary
from earlysleep.core.dates import yesterday


def build_checkin_id(uid: str, date_key: str) -> str:
    return f"{uid}#{date_key}"


def compute_checkin_summary(
    *,
    streak: int,
    total_days: int,
    last_checkin_date: str,
    status: str,
    date_key: str,
) -> CheckinSummary:
    """Counters after a new (non-duplicate) check-in on date_key."""
    if status == CheckinStatus.HIT.value:
        if last_checkin_date == yesterday(date_key):
            next_streak = streak + 1
        elif last_checkin_date == date_key:
            next_streak = streak
        else:
            next_streak = 1
    else:
        next_streak = 0

    return CheckinSummary(
        today_status=status,
        streak=next_streak,
        total_days=total_days + 1,
        last_checkin_date=date_key,
    )


def streak_from_history(records: Iterable[tuple[str, str]]) -> int:
    """Recomputes the streak from (date_key, status) pairs.

    Counts consecutive calendar days of `hit` backward from the most recent record;
    a most recent record that is not a hit means the streak is broken.
    """
    statuses = {date_key: status for date_key, status in records}
    if not statuses:
        return 0

    cursor = max(statuses)
    streak = 0
    while statuses.get(cursor) == CheckinStatus.HIT.value:
        streak += 1
        cursor = yesterday(cursor)
    return streak
