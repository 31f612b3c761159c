from __future__ import annotations

import re
from datetime import date, datetime, timedelta, timezone

DATE_KEY_RE = re.compile(r"^\d{8}$")
HM_RE = re.compile(r"^\d{2}:\d{2}$")

MIN_TZ_OFFSET_MINUTES = -12 * 60
MAX_TZ_OFFSET_MINUTES = 14 * 60


def format_date_key(value: date) -> str:
    return f"{value.year:04d}{value.month:02d}{value.day:02d}"


def parse_date_key(value: str) -> date:
    """Parses a strict YYYYMMDD key, raising ValueError for anything else."""
    if not DATE_KEY_RE.match(value):
        raise ValueError(f"invalid date key: {value!r}")
    return date(int(value[0:4]), int(value[4:6]), int(value[6:8]))


def normalize_date_key(value: object) -> str | None:
    """Accepts YYYYMMDD or any string whose digits form a real calendar date."""
    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    if not trimmed:
        return None
    digits = trimmed if DATE_KEY_RE.match(trimmed) else re.sub(r"\D", "", trimmed)
    if len(digits) != 8:
        return None
    try:
        return format_date_key(parse_date_key(digits))
    except ValueError:
        return None


def yesterday(date_key: str) -> str:
    return format_date_key(parse_date_key(date_key) - timedelta(days=1))


def normalize_hm(value: object, fallback: str = "22:00") -> str:
    if not isinstance(value, str):
        return fallback
    trimmed = value.strip()
    if not HM_RE.match(trimmed):
        return fallback
    hour = min(max(int(trimmed[:2]), 0), 23)
    minute = min(max(int(trimmed[3:]), 0), 59)
    return f"{hour:02d}:{minute:02d}"


def quantize_slot_key(target_hm: object) -> str:
    normalized = normalize_hm(target_hm)
    slot_minute = "00" if int(normalized[3:]) < 30 else "30"
    return f"{normalized[:2]}:{slot_minute}"


def normalize_tz_offset(value: object, fallback: int = 480) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return fallback
    if value != value or value in (float("inf"), float("-inf")):
        return fallback
    return max(min(int(value), MAX_TZ_OFFSET_MINUTES), MIN_TZ_OFFSET_MINUTES)


def today_from_offset(tz_offset_minutes: int, now_utc: datetime | None = None) -> str:
    current = now_utc or datetime.now(timezone.utc)
    local = current.astimezone(timezone.utc) + timedelta(minutes=tz_offset_minutes)
    return format_date_key(local.date())
