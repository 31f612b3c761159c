from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, CheckConstraint, DateTime, Index, SmallInteger, String, text
from sqlalchemy.orm import Mapped, mapped_column

from earlysleep.db.models.base import Base


class GoodnightReactionEvent(Base):
    __tablename__ = "goodnight_reaction_events"
    __table_args__ = (
        CheckConstraint(
            "status IN ('queued','done','failed')",
            name="ck_goodnight_reaction_events_status",
        ),
        Index("idx_goodnight_reaction_events_status_created", "status", "created_at", "id"),
        Index("idx_goodnight_reaction_events_message", "message_id"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    message_id: Mapped[str] = mapped_column(String(32), nullable=False)
    voter_uid: Mapped[str] = mapped_column(String(16), nullable=False)
    delta_likes: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    delta_dislikes: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    delta_score: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, server_default=text("'queued'"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("now()"),
    )
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class GoodnightVote(Base):
    __tablename__ = "goodnight_votes"
    __table_args__ = (
        CheckConstraint("value IN (-1, 1)", name="ck_goodnight_votes_value"),
        Index("idx_goodnight_votes_message", "message_id"),
    )

    # voterUid#messageId
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    message_id: Mapped[str] = mapped_column(String(32), nullable=False)
    voter_uid: Mapped[str] = mapped_column(String(16), nullable=False)
    value: Mapped[int] = mapped_column(SmallInteger, nullable=False)
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
