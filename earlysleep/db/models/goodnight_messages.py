from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Float, Index, Integer, String, Text
from sqlalchemy import text as sql_text
from sqlalchemy.orm import Mapped, mapped_column

from earlysleep.db.models.base import Base


class GoodnightMessage(Base):
    __tablename__ = "goodnight_messages"
    __table_args__ = (
        CheckConstraint("rand >= 0 AND rand < 1", name="ck_goodnight_messages_rand_range"),
        CheckConstraint(
            "status IN ('approved','pending','rejected')",
            name="ck_goodnight_messages_status",
        ),
        Index("idx_goodnight_messages_status_rand", "status", "rand"),
        Index("idx_goodnight_messages_status_slot_rand", "status", "slot_key", "rand"),
        Index("idx_goodnight_messages_user_date", "user_id", "date"),
    )

    # uid_YYYYMMDD
    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    uid: Mapped[str] = mapped_column(String(16), nullable=False)
    date: Mapped[str] = mapped_column(String(8), nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    slot_key: Mapped[str] = mapped_column(String(5), nullable=False)
    rand: Mapped[float] = mapped_column(Float, nullable=False)
    likes: Mapped[int] = mapped_column(Integer, nullable=False, server_default=sql_text("0"))
    dislikes: Mapped[int] = mapped_column(Integer, nullable=False, server_default=sql_text("0"))
    score: Mapped[int] = mapped_column(Integer, nullable=False, server_default=sql_text("0"))
    status: Mapped[str] = mapped_column(String(16), nullable=False, server_default=sql_text("'approved'"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=sql_text("now()"),
    )
