from __future__ import annotations

import math
from collections.abc import Sequence
from datetime import datetime, timezone
from uuid import uuid4

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from earlysleep.core.config import get_settings
from earlysleep.core.errors import (
    AlreadyExistsError,
    InvalidArgError,
    NotFoundError,
    UnauthorizedError,
)
from earlysleep.db.models.friend_requests import FriendRequest
from earlysleep.db.models.friendships import Friendship
from earlysleep.db.models.users import User
from earlysleep.db.repo.friends_repo import FriendsRepo
from earlysleep.db.repo.users_repo import UsersRepo
from earlysleep.friends.types import (
    RESOLUTION_DECISIONS,
    FriendRequestStatus,
    FriendsPage,
    ResolveResult,
)
from earlysleep.identity.constants import DEFAULT_NICKNAME_PREFIX

logger = structlog.get_logger(__name__)

PAGE_DEFAULT_LIMIT = 20
PAGE_MAX_LIMIT = 50
CURSOR_SEPARATOR = "|"
REQUESTS_LIST_LIMIT = 50


def build_edge_id(uid_a: str, uid_b: str) -> str:
    a, b = str(uid_a), str(uid_b)
    return f"{a}#{b}" if a < b else f"{b}#{a}"


def _require_uid(value: object, message: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidArgError(message)
    return value.strip()


def _clamp_page_limit(value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        return PAGE_DEFAULT_LIMIT
    limit = int(value)
    if limit <= 0:
        return PAGE_DEFAULT_LIMIT
    return min(limit, PAGE_MAX_LIMIT)


def _parse_cursor(value: object) -> tuple[datetime | None, str | None]:
    """Reads `<createdAt iso>|<edge id>`; a bare timestamp pages by time alone."""
    if not isinstance(value, str) or not value.strip():
        return None, None
    created_raw, _, edge_id = value.strip().partition(CURSOR_SEPARATOR)
    try:
        parsed = datetime.fromisoformat(created_raw.replace("Z", "+00:00"))
    except ValueError:
        return None, None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed, edge_id or None


def _format_cursor(edge: Friendship) -> str:
    return f"{edge.created_at.isoformat()}{CURSOR_SEPARATOR}{edge.id}"


def _profile_view(uid: str, profile: User | None) -> dict[str, object]:
    return {
        "uid": uid,
        "nickname": profile.nickname if profile is not None else f"{DEFAULT_NICKNAME_PREFIX}{uid}",
        "targetHM": profile.target_hm if profile is not None else "",
        "slotKey": profile.slot_key if profile is not None else "",
        "todayStatus": profile.today_status if profile is not None else "pending",
        "streak": profile.streak if profile is not None else 0,
        "totalDays": profile.total_days if profile is not None else 0,
    }


def _request_view(request: FriendRequest, counterpart_uid: str, profile: User | None) -> dict[str, object]:
    view = _profile_view(counterpart_uid, profile)
    view.pop("slotKey")
    view["requestId"] = request.id
    view["status"] = request.status
    view["createdAt"] = request.created_at.isoformat() if request.created_at is not None else None
    return view


class FriendService:
    @staticmethod
    async def send_request(
        session: AsyncSession,
        *,
        from_uid: str,
        to_uid: object,
        now_utc: datetime | None = None,
    ) -> str:
        target_uid = _require_uid(to_uid, "missing target uid")
        if target_uid == from_uid:
            raise InvalidArgError("cannot send a friend request to yourself")

        target = await UsersRepo.get_by_uid(session, target_uid)
        if target is None:
            raise NotFoundError("user not found")

        if await FriendsRepo.get_edge(session, build_edge_id(from_uid, target_uid)) is not None:
            raise AlreadyExistsError("already friends")
        if await FriendsRepo.has_pending_request(session, from_uid=from_uid, to_uid=target_uid):
            raise AlreadyExistsError("a pending request already exists")

        request_id = uuid4().hex
        created = await FriendsRepo.try_create_pending_request(
            session,
            request_id=request_id,
            from_uid=from_uid,
            to_uid=target_uid,
            now_utc=now_utc or datetime.now(timezone.utc),
        )
        if not created:
            raise AlreadyExistsError("a pending request already exists")

        logger.info("friend_request_sent", request_id=request_id, from_uid=from_uid, to_uid=target_uid)
        return request_id

    @staticmethod
    async def resolve_request(
        session: AsyncSession,
        *,
        request_id: object,
        decider_uid: str,
        decision: object,
        now_utc: datetime | None = None,
    ) -> ResolveResult:
        """Accepts or rejects a pending request inside the caller's transaction.

        The request row stays locked until commit, so the edge existence check, the edge
        write and the status flip are atomic with respect to concurrent resolutions.
        Resolving an already resolved request returns its current status without writing.
        """
        resolved_request_id = _require_uid(request_id, "missing request id")
        if not isinstance(decision, str) or decision.strip() not in RESOLUTION_DECISIONS:
            raise InvalidArgError("invalid decision")
        resolved_decision = decision.strip()

        request = await FriendsRepo.get_request_by_id_for_update(session, resolved_request_id)
        if request is None:
            raise NotFoundError("friend request not found")
        if request.to_uid != decider_uid:
            raise UnauthorizedError("not allowed to resolve this request")

        edge_id = build_edge_id(request.from_uid, request.to_uid)
        if request.status != FriendRequestStatus.PENDING.value:
            return ResolveResult(status=request.status, edge_id=None, edge_created=False)

        now = now_utc or datetime.now(timezone.utc)
        edge_created = False
        if resolved_decision == FriendRequestStatus.ACCEPTED.value:
            if await FriendsRepo.get_edge(session, edge_id) is None:
                a_uid, b_uid = edge_id.split("#", maxsplit=1)
                edge_created = await FriendsRepo.try_create_edge(
                    session,
                    edge_id=edge_id,
                    a_uid=a_uid,
                    b_uid=b_uid,
                    now_utc=now,
                )

        await FriendsRepo.set_request_status(
            session,
            request_id=resolved_request_id,
            status=resolved_decision,
            now_utc=now,
        )
        request.status = resolved_decision
        logger.info(
            "friend_request_resolved",
            request_id=resolved_request_id,
            decision=resolved_decision,
            edge_created=edge_created,
        )
        return ResolveResult(
            status=resolved_decision,
            edge_id=edge_id if resolved_decision == FriendRequestStatus.ACCEPTED.value else None,
            edge_created=edge_created,
        )

    @staticmethod
    async def remove_friend(session: AsyncSession, *, uid: str, target_uid: object) -> bool:
        resolved_target = _require_uid(target_uid, "missing target uid")
        deleted = await FriendsRepo.delete_edge(session, build_edge_id(uid, resolved_target))
        if deleted:
            logger.info("friendship_removed", uid=uid, target_uid=resolved_target)
        return deleted > 0

    @staticmethod
    async def ensure_edge_for_accepted(
        session: AsyncSession,
        *,
        request: FriendRequest,
        now_utc: datetime | None = None,
    ) -> bool:
        edge_id = build_edge_id(request.from_uid, request.to_uid)
        if await FriendsRepo.get_edge(session, edge_id) is not None:
            return False
        a_uid, b_uid = edge_id.split("#", maxsplit=1)
        return await FriendsRepo.try_create_edge(
            session,
            edge_id=edge_id,
            a_uid=a_uid,
            b_uid=b_uid,
            now_utc=now_utc or datetime.now(timezone.utc),
        )

    @staticmethod
    async def finish_request(
        session: AsyncSession,
        *,
        request_id: object,
        sender_uid: str,
        now_utc: datetime | None = None,
    ) -> bool:
        """Sender-side follow-up: creates the edge of an accepted request if it is missing."""
        resolved_request_id = _require_uid(request_id, "missing request id")
        request = await FriendsRepo.get_request_by_id(session, resolved_request_id)
        if request is None:
            raise NotFoundError("friend request not found")
        if request.from_uid != sender_uid:
            raise UnauthorizedError("not allowed to access this request")
        if request.status != FriendRequestStatus.ACCEPTED.value:
            return False

        added = await FriendService.ensure_edge_for_accepted(session, request=request, now_utc=now_utc)
        if added:
            logger.warning("friendship_edge_repaired", request_id=request.id, source="finish")
        return added

    @staticmethod
    async def sweep_missing_edges(
        session: AsyncSession,
        *,
        limit: int = 100,
        now_utc: datetime | None = None,
    ) -> dict[str, int]:
        requests = await FriendsRepo.list_accepted_without_edge(session, limit=limit)
        repaired = 0
        for request in requests:
            if await FriendService.ensure_edge_for_accepted(session, request=request, now_utc=now_utc):
                repaired += 1
                logger.warning("friendship_edge_repaired", request_id=request.id, source="sweep")
        return {"scanned": len(requests), "repaired": repaired}

    @staticmethod
    async def _load_profiles(session: AsyncSession, uids: Sequence[str]) -> dict[str, User]:
        chunk_size = get_settings().user_lookup_chunk_size
        unique_uids = list(dict.fromkeys(uids))
        profiles: dict[str, User] = {}
        for offset in range(0, len(unique_uids), chunk_size):
            for user in await UsersRepo.list_by_uids(session, unique_uids[offset : offset + chunk_size]):
                profiles[user.uid] = user
        return profiles

    @staticmethod
    async def list_page(
        session: AsyncSession,
        *,
        uid: str,
        cursor: object = None,
        limit: object = None,
    ) -> FriendsPage:
        resolved_limit = _clamp_page_limit(limit)
        created_before, before_id = _parse_cursor(cursor)
        edges = await FriendsRepo.list_edges_for_uid(
            session,
            uid=uid,
            created_before=created_before,
            before_id=before_id,
            limit=resolved_limit,
        )
        incoming = await FriendsRepo.list_incoming_pending(session, uid=uid, limit=REQUESTS_LIST_LIMIT)
        outgoing = await FriendsRepo.list_outgoing(
            session,
            uid=uid,
            statuses=(FriendRequestStatus.PENDING.value, FriendRequestStatus.ACCEPTED.value),
            limit=REQUESTS_LIST_LIMIT,
        )

        friend_uids = [edge.b_uid if edge.a_uid == uid else edge.a_uid for edge in edges]
        related = friend_uids + [item.from_uid for item in incoming] + [item.to_uid for item in outgoing]
        profiles = await FriendService._load_profiles(session, related)

        last_edge = edges[-1] if edges else None
        next_cursor = (
            _format_cursor(last_edge)
            if last_edge is not None and last_edge.created_at is not None and len(edges) == resolved_limit
            else None
        )
        return FriendsPage(
            friends=[_profile_view(friend_uid, profiles.get(friend_uid)) for friend_uid in friend_uids],
            next_cursor=next_cursor,
            incoming=[_request_view(item, item.from_uid, profiles.get(item.from_uid)) for item in incoming],
            outgoing=[_request_view(item, item.to_uid, profiles.get(item.to_uid)) for item in outgoing],
        )
