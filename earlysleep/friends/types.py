from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class FriendRequestStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


RESOLUTION_DECISIONS = frozenset({FriendRequestStatus.ACCEPTED.value, FriendRequestStatus.REJECTED.value})


@dataclass(frozen=True, slots=True)
class ResolveResult:
    status: str
    edge_id: str | None
    edge_created: bool


@dataclass(frozen=True, slots=True)
class FriendsPage:
    friends: list[dict[str, object]]
    next_cursor: str | None
    incoming: list[dict[str, object]]
    outgoing: list[dict[str, object]]
