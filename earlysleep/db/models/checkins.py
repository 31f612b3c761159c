from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Index, SmallInteger, String, text
from sqlalchemy.orm import Mapped, mapped_column

from earlysleep.db.models.base import Base


class Checkin(Base):
    __tablename__ = "checkins"
    __table_args__ = (
        CheckConstraint(
            "status IN ('hit','late','miss','pending')",
            name="ck_checkins_status",
        ),
        Index("idx_checkins_date_id", "date", "id"),
        Index("idx_checkins_uid_date", "uid", "date"),
    )

    # uid#YYYYMMDD
    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    uid: Mapped[str] = mapped_column(String(16), nullable=False)
    date: Mapped[str] = mapped_column(String(8), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    tz_offset_minutes: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    goodnight_message_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("now()"),
    )
