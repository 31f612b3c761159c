from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Index, Integer, SmallInteger, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from earlysleep.db.models.base import Base


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint(
            "today_status IN ('none','hit','late','miss','pending')",
            name="ck_users_today_status",
        ),
        CheckConstraint("streak >= 0", name="ck_users_streak_non_negative"),
        CheckConstraint("total_days >= 0", name="ck_users_total_days_non_negative"),
        Index("idx_users_slot_key", "slot_key"),
    )

    # Caller identity token; owned by the identity resolver.
    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    uid: Mapped[str] = mapped_column(String(16), unique=True, nullable=False)
    nickname: Mapped[str] = mapped_column(Text, nullable=False)
    tz_offset_minutes: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    target_hm: Mapped[str] = mapped_column(String(5), nullable=False)
    slot_key: Mapped[str] = mapped_column(String(5), nullable=False)
    today_status: Mapped[str] = mapped_column(String(16), nullable=False, server_default=text("'none'"))
    streak: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    total_days: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    last_checkin_date: Mapped[str] = mapped_column(String(8), nullable=False, server_default=text("''"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("now()"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("now()"),
    )
