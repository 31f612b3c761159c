"""initial_schema

Revision ID: 5c2e8a1f7b30
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

revision: str = "5c2e8a1f7b30"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(128), nullable=False),
        sa.Column("uid", sa.String(16), nullable=False),
        sa.Column("nickname", sa.Text(), nullable=False),
        sa.Column("tz_offset_minutes", sa.SmallInteger(), nullable=False),
        sa.Column("target_hm", sa.String(5), nullable=False),
        sa.Column("slot_key", sa.String(5), nullable=False),
        sa.Column("today_status", sa.String(16), nullable=False, server_default=sa.text("'none'")),
        sa.Column("streak", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_days", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("last_checkin_date", sa.String(8), nullable=False, server_default=sa.text("''")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint(
            "today_status IN ('none','hit','late','miss','pending')",
            name="ck_users_today_status",
        ),
        sa.CheckConstraint("streak >= 0", name="ck_users_streak_non_negative"),
        sa.CheckConstraint("total_days >= 0", name="ck_users_total_days_non_negative"),
        sa.PrimaryKeyConstraint("id", name="pk_users"),
        sa.UniqueConstraint("uid", name="uq_users_uid"),
    )
    op.create_index("idx_users_slot_key", "users", ["slot_key"])

    op.create_table(
        "checkins",
        sa.Column("id", sa.String(32), nullable=False),
        sa.Column("uid", sa.String(16), nullable=False),
        sa.Column("date", sa.String(8), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("tz_offset_minutes", sa.SmallInteger(), nullable=False),
        sa.Column("goodnight_message_id", sa.String(64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint("status IN ('hit','late','miss','pending')", name="ck_checkins_status"),
        sa.PrimaryKeyConstraint("id", name="pk_checkins"),
    )
    op.create_index("idx_checkins_date_id", "checkins", ["date", "id"])
    op.create_index("idx_checkins_uid_date", "checkins", ["uid", "date"])

    op.create_table(
        "friend_requests",
        sa.Column("id", sa.String(32), nullable=False),
        sa.Column("from_uid", sa.String(16), nullable=False),
        sa.Column("to_uid", sa.String(16), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint("status IN ('pending','accepted','rejected')", name="ck_friend_requests_status"),
        sa.CheckConstraint("from_uid <> to_uid", name="ck_friend_requests_not_self"),
        sa.PrimaryKeyConstraint("id", name="pk_friend_requests"),
    )
    op.create_index(
        "uq_friend_requests_pending_pair",
        "friend_requests",
        ["from_uid", "to_uid"],
        unique=True,
        postgresql_where=sa.text("status = 'pending'"),
    )
    op.create_index(
        "idx_friend_requests_to_status_created",
        "friend_requests",
        ["to_uid", "status", "created_at"],
    )
    op.create_index(
        "idx_friend_requests_from_status_created",
        "friend_requests",
        ["from_uid", "status", "created_at"],
    )
    op.create_index("idx_friend_requests_status_updated", "friend_requests", ["status", "updated_at"])

    op.create_table(
        "friendships",
        sa.Column("id", sa.String(40), nullable=False),
        sa.Column("a_uid", sa.String(16), nullable=False),
        sa.Column("b_uid", sa.String(16), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint('a_uid COLLATE "C" < b_uid COLLATE "C"', name="ck_friendships_sorted_pair"),
        sa.PrimaryKeyConstraint("id", name="pk_friendships"),
    )
    op.create_index("idx_friendships_a_created", "friendships", ["a_uid", "created_at"])
    op.create_index("idx_friendships_b_created", "friendships", ["b_uid", "created_at"])

    op.create_table(
        "goodnight_messages",
        sa.Column("id", sa.String(32), nullable=False),
        sa.Column("user_id", sa.String(128), nullable=False),
        sa.Column("uid", sa.String(16), nullable=False),
        sa.Column("date", sa.String(8), nullable=False),
        sa.Column("text", sa.Text(), nullable=False),
        sa.Column("slot_key", sa.String(5), nullable=False),
        sa.Column("rand", sa.Float(), nullable=False),
        sa.Column("likes", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("dislikes", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("score", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("status", sa.String(16), nullable=False, server_default=sa.text("'approved'")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint("rand >= 0 AND rand < 1", name="ck_goodnight_messages_rand_range"),
        sa.CheckConstraint(
            "status IN ('approved','pending','rejected')",
            name="ck_goodnight_messages_status",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_goodnight_messages"),
    )
    op.create_index("idx_goodnight_messages_status_rand", "goodnight_messages", ["status", "rand"])
    op.create_index(
        "idx_goodnight_messages_status_slot_rand",
        "goodnight_messages",
        ["status", "slot_key", "rand"],
    )
    op.create_index("idx_goodnight_messages_user_date", "goodnight_messages", ["user_id", "date"])

    op.create_table(
        "goodnight_reaction_events",
        sa.Column("id", sa.BigInteger(), sa.Identity(always=False), nullable=False),
        sa.Column("message_id", sa.String(32), nullable=False),
        sa.Column("voter_uid", sa.String(16), nullable=False),
        sa.Column("delta_likes", sa.SmallInteger(), nullable=False),
        sa.Column("delta_dislikes", sa.SmallInteger(), nullable=False),
        sa.Column("delta_score", sa.SmallInteger(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default=sa.text("'queued'")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("status IN ('queued','done','failed')", name="ck_goodnight_reaction_events_status"),
        sa.PrimaryKeyConstraint("id", name="pk_goodnight_reaction_events"),
    )
    op.create_index(
        "idx_goodnight_reaction_events_status_created",
        "goodnight_reaction_events",
        ["status", "created_at", "id"],
    )
    op.create_index("idx_goodnight_reaction_events_message", "goodnight_reaction_events", ["message_id"])

    op.create_table(
        "goodnight_votes",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("message_id", sa.String(32), nullable=False),
        sa.Column("voter_uid", sa.String(16), nullable=False),
        sa.Column("value", sa.SmallInteger(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint("value IN (-1, 1)", name="ck_goodnight_votes_value"),
        sa.PrimaryKeyConstraint("id", name="pk_goodnight_votes"),
    )
    op.create_index("idx_goodnight_votes_message", "goodnight_votes", ["message_id"])

    op.create_table(
        "slot_daily",
        sa.Column("id", sa.String(16), nullable=False),
        sa.Column("slot_key", sa.String(5), nullable=False),
        sa.Column("date", sa.String(8), nullable=False),
        sa.Column("participants", sa.Integer(), nullable=False),
        sa.Column("hits", sa.Integer(), nullable=False),
        sa.Column("hit_rate", sa.Numeric(6, 4), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("participants >= 0", name="ck_slot_daily_participants_non_negative"),
        sa.CheckConstraint("hits >= 0 AND hits <= participants", name="ck_slot_daily_hits_range"),
        sa.CheckConstraint("hit_rate >= 0 AND hit_rate <= 1", name="ck_slot_daily_hit_rate_range"),
        sa.PrimaryKeyConstraint("id", name="pk_slot_daily"),
    )
    op.create_index("idx_slot_daily_date", "slot_daily", ["date"])


def downgrade() -> None:
    op.drop_index("idx_slot_daily_date", table_name="slot_daily")
    op.drop_table("slot_daily")

    op.drop_index("idx_goodnight_votes_message", table_name="goodnight_votes")
    op.drop_table("goodnight_votes")

    op.drop_index("idx_goodnight_reaction_events_message", table_name="goodnight_reaction_events")
    op.drop_index("idx_goodnight_reaction_events_status_created", table_name="goodnight_reaction_events")
    op.drop_table("goodnight_reaction_events")

    op.drop_index("idx_goodnight_messages_user_date", table_name="goodnight_messages")
    op.drop_index("idx_goodnight_messages_status_slot_rand", table_name="goodnight_messages")
    op.drop_index("idx_goodnight_messages_status_rand", table_name="goodnight_messages")
    op.drop_table("goodnight_messages")

    op.drop_index("idx_friendships_b_created", table_name="friendships")
    op.drop_index("idx_friendships_a_created", table_name="friendships")
    op.drop_table("friendships")

    op.drop_index("idx_friend_requests_status_updated", table_name="friend_requests")
    op.drop_index("idx_friend_requests_from_status_created", table_name="friend_requests")
    op.drop_index("idx_friend_requests_to_status_created", table_name="friend_requests")
    op.drop_index("uq_friend_requests_pending_pair", table_name="friend_requests")
    op.drop_table("friend_requests")

    op.drop_index("idx_checkins_uid_date", table_name="checkins")
    op.drop_index("idx_checkins_date_id", table_name="checkins")
    op.drop_table("checkins")

    op.drop_index("idx_users_slot_key", table_name="users")
    op.drop_table("users")
