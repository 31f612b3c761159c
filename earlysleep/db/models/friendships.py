from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Index, String, text
from sqlalchemy.orm import Mapped, mapped_column

from earlysleep.db.models.base import Base


class Friendship(Base):
    __tablename__ = "friendships"
    __table_args__ = (
        CheckConstraint('a_uid COLLATE "C" < b_uid COLLATE "C"', name="ck_friendships_sorted_pair"),
        Index("idx_friendships_a_created", "a_uid", "created_at"),
        Index("idx_friendships_b_created", "b_uid", "created_at"),
    )

    # min(uidA, uidB)#max(uidA, uidB)
    id: Mapped[str] = mapped_column(String(40), primary_key=True)
    a_uid: Mapped[str] = mapped_column(String(16), nullable=False)
    b_uid: Mapped[str] = mapped_column(String(16), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("now()"),
    )
