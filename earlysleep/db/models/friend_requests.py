from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Index, String, text
from sqlalchemy.orm import Mapped, mapped_column

from earlysleep.db.models.base import Base


class FriendRequest(Base):
    __tablename__ = "friend_requests"
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending','accepted','rejected')",
            name="ck_friend_requests_status",
        ),
        CheckConstraint("from_uid <> to_uid", name="ck_friend_requests_not_self"),
        Index(
            "uq_friend_requests_pending_pair",
            "from_uid",
            "to_uid",
            unique=True,
            postgresql_where=text("status = 'pending'"),
        ),
        Index("idx_friend_requests_to_status_created", "to_uid", "status", "created_at"),
        Index("idx_friend_requests_from_status_created", "from_uid", "status", "created_at"),
        Index("idx_friend_requests_status_updated", "status", "updated_at"),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    from_uid: Mapped[str] = mapped_column(String(16), nullable=False)
    to_uid: Mapped[str] = mapped_column(String(16), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
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
