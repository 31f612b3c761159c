from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class CheckinStatus(str, Enum):
    HIT = "hit"
    LATE = "late"
    MISS = "miss"
    PENDING = "pending"


VALID_CHECKIN_STATUSES = frozenset(status.value for status in CheckinStatus)


@dataclass(frozen=True, slots=True)
class CheckinSummary:
    today_status: str
    streak: int
    total_days: int
    last_checkin_date: str


@dataclass(frozen=True, slots=True)
class CheckinView:
    id: str
    uid: str
    date: str
    status: str
    tz_offset_minutes: int
    timestamp: str | None
    goodnight_message_id: str | None

    def as_payload(self) -> dict[str, object]:
        return {
            "id": self.id,
            "uid": self.uid,
            "date": self.date,
            "status": self.status,
            "tzOffset": self.tz_offset_minutes,
            "timestamp": self.timestamp,
            "gnMsgId": self.goodnight_message_id,
        }


@dataclass(frozen=True, slots=True)
class CheckinOutcome:
    record: CheckinView
    duplicate: bool
