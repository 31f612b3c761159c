from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from earlysleep.db.models.base import Base


class SlotDaily(Base):
    __tablename__ = "slot_daily"
    __table_args__ = (
        CheckConstraint("participants >= 0", name="ck_slot_daily_participants_non_negative"),
        CheckConstraint("hits >= 0 AND hits <= participants", name="ck_slot_daily_hits_range"),
        CheckConstraint("hit_rate >= 0 AND hit_rate <= 1", name="ck_slot_daily_hit_rate_range"),
        Index("idx_slot_daily_date", "date"),
    )

    # slotKey#YYYYMMDD
    id: Mapped[str] = mapped_column(String(16), primary_key=True)
    slot_key: Mapped[str] = mapped_column(String(5), nullable=False)
    date: Mapped[str] = mapped_column(String(8), nullable=False)
    participants: Mapped[int] = mapped_column(Integer, nullable=False)
    hits: Mapped[int] = mapped_column(Integer, nullable=False)
    hit_rate: Mapped[float] = mapped_column(Numeric(6, 4, asdecimal=False), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
