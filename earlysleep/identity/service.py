from __future__ import annotations

import random
from collections.abc import Awaitable, Callable, Mapping
from datetime import datetime, timezone
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from earlysleep.core.config import get_settings
from earlysleep.core.dates import normalize_hm, normalize_tz_offset, quantize_slot_key
from earlysleep.core.errors import InternalError, UnauthorizedError
from earlysleep.core.uid_codes import generate_unique_uid
from earlysleep.db.models.users import User
from earlysleep.db.repo.users_repo import UsersRepo
from earlysleep.identity.constants import (
    DEFAULT_NICKNAME_PREFIX,
    DEFAULT_TARGET_HM,
    MAX_NICKNAME_LENGTH,
    MAX_OPENID_LENGTH,
)

logger = structlog.get_logger(__name__)

# A freshly generated uid can still lose a race on the unique index; retry the insert this often.
CREATE_USER_ATTEMPTS = 3


def _resolve_nickname(raw: object, uid: str) -> str:
    if isinstance(raw, str) and raw.strip():
        return raw.strip()[:MAX_NICKNAME_LENGTH]
    return f"{DEFAULT_NICKNAME_PREFIX}{uid}"


def to_user_response(user: User) -> dict[str, Any]:
    return {
        "uid": user.uid,
        "nickname": user.nickname,
        "tzOffset": user.tz_offset_minutes,
        "targetHM": user.target_hm,
        "slotKey": user.slot_key,
        "todayStatus": user.today_status,
        "streak": user.streak,
        "totalDays": user.total_days,
        "lastCheckinDate": user.last_checkin_date or "",
        "createdAt": user.created_at.isoformat() if user.created_at is not None else None,
    }


class IdentityService:
    @staticmethod
    def require_caller(openid: str | None) -> str:
        if not isinstance(openid, str) or not openid.strip() or len(openid.strip()) > MAX_OPENID_LENGTH:
            raise UnauthorizedError("missing caller identity")
        return openid.strip()

    @staticmethod
    async def ensure_user(
        session: AsyncSession,
        *,
        openid: str | None,
        overrides: Mapping[str, object] | None = None,
        now_utc: datetime | None = None,
        rng: random.Random | None = None,
        uid_exists: Callable[[str], Awaitable[bool]] | None = None,
    ) -> User:
        """Returns the caller's user, creating it on first contact.

        Overrides (nickname, tzOffset, targetHM) only apply when the user is created.
        """
        user_id = IdentityService.require_caller(openid)
        existing = await UsersRepo.get_by_id(session, user_id)
        if existing is not None:
            return existing

        resolved_overrides = overrides or {}
        now = now_utc or datetime.now(timezone.utc)
        tz_offset = normalize_tz_offset(
            resolved_overrides.get("tzOffset"),
            fallback=get_settings().default_tz_offset_minutes,
        )
        target_hm = normalize_hm(resolved_overrides.get("targetHM"), DEFAULT_TARGET_HM)

        async def _default_uid_exists(candidate: str) -> bool:
            return await UsersRepo.uid_exists(session, candidate)

        exists_check = uid_exists or _default_uid_exists
        for _ in range(CREATE_USER_ATTEMPTS):
            uid = await generate_unique_uid(exists_check, rng=rng)
            created = await UsersRepo.try_create(
                session,
                user_id=user_id,
                uid=uid,
                nickname=_resolve_nickname(resolved_overrides.get("nickname"), uid),
                tz_offset_minutes=tz_offset,
                target_hm=target_hm,
                slot_key=quantize_slot_key(target_hm),
                now_utc=now,
            )
            user = await UsersRepo.get_by_id(session, user_id)
            if user is not None:
                if created:
                    logger.info("user_created", uid=user.uid, slot_key=user.slot_key)
                return user
            logger.warning("user_uid_collision_on_insert", uid=uid)

        raise InternalError("unable to create user")
