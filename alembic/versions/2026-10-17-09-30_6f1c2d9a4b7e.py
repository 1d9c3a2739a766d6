"""Initial watchlist schema

Revision ID: 6f1c2d9a4b7e
Revises:
Create Date: 2026-10-17 09:30:12.481337

"""

from typing import Sequence, Union

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "6f1c2d9a4b7e"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

CONTENT_KIND = sa.Enum("MOVIE", "SHOW", name="contentkind")
ITEM_STATUS = sa.Enum(
    "PENDING", "REQUESTED", "GRABBED", "NOTIFIED", name="itemstatus"
)
FEED_CHANNEL = sa.Enum("SELF", "FRIENDS", name="feedchannel")


def upgrade() -> None:
    op.create_table(
        "user",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("watchlist_id", sa.String(), nullable=True),
        sa.Column("can_sync", sa.Boolean(), nullable=False),
        sa.Column("is_primary", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("user", schema=None) as batch_op:
        batch_op.create_index("ix_user_name", ["name"], unique=True)
        batch_op.create_index("ix_user_watchlist_id", ["watchlist_id"], unique=False)
        batch_op.create_index("ix_user_is_primary", ["is_primary"], unique=False)

    op.create_table(
        "watchlist_item",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("key", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=True),
        sa.Column("type", CONTENT_KIND, nullable=True),
        sa.Column("thumb", sa.String(), nullable=True),
        sa.Column("guids", sa.JSON(), nullable=False),
        sa.Column("genres", sa.JSON(), nullable=False),
        sa.Column("status", ITEM_STATUS, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["user.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("watchlist_item", schema=None) as batch_op:
        batch_op.create_index("ix_watchlist_item_user_id", ["user_id"], unique=False)
        batch_op.create_index("ix_watchlist_item_key", ["key"], unique=False)
        batch_op.create_index("ix_watchlist_item_status", ["status"], unique=False)
        batch_op.create_index(
            "ix_watchlist_item_user_key", ["user_id", "key"], unique=True
        )

    op.create_table(
        "pending_diff_item",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("source", FEED_CHANNEL, nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("type", CONTENT_KIND, nullable=False),
        sa.Column("thumb", sa.String(), nullable=True),
        sa.Column("guids", sa.JSON(), nullable=False),
        sa.Column("genres", sa.JSON(), nullable=False),
        sa.Column("routed", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("pending_diff_item", schema=None) as batch_op:
        batch_op.create_index(
            "ix_pending_diff_item_source", ["source"], unique=False
        )
        batch_op.create_index(
            "ix_pending_diff_item_created_at", ["created_at"], unique=False
        )

    op.create_table(
        "notification_log",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["user.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("notification_log", schema=None) as batch_op:
        batch_op.create_index(
            "ix_notification_log_user_title", ["user_id", "title"], unique=True
        )

    op.create_table(
        "routing_record",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("key", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("type", CONTENT_KIND, nullable=False),
        sa.Column("guids", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("attributed_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["user.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("routing_record", schema=None) as batch_op:
        batch_op.create_index("ix_routing_record_user_id", ["user_id"], unique=False)
        batch_op.create_index("ix_routing_record_key", ["key"], unique=False)

    op.create_table(
        "house_keeping",
        sa.Column("key", sa.String(), nullable=False),
        sa.Column("value", sa.String(), nullable=True),
        sa.PrimaryKeyConstraint("key"),
    )


def downgrade() -> None:
    op.drop_table("house_keeping")
    with op.batch_alter_table("routing_record", schema=None) as batch_op:
        batch_op.drop_index("ix_routing_record_key")
        batch_op.drop_index("ix_routing_record_user_id")
    op.drop_table("routing_record")
    with op.batch_alter_table("notification_log", schema=None) as batch_op:
        batch_op.drop_index("ix_notification_log_user_title")
    op.drop_table("notification_log")
    with op.batch_alter_table("pending_diff_item", schema=None) as batch_op:
        batch_op.drop_index("ix_pending_diff_item_created_at")
        batch_op.drop_index("ix_pending_diff_item_source")
    op.drop_table("pending_diff_item")
    with op.batch_alter_table("watchlist_item", schema=None) as batch_op:
        batch_op.drop_index("ix_watchlist_item_user_key")
        batch_op.drop_index("ix_watchlist_item_status")
        batch_op.drop_index("ix_watchlist_item_key")
        batch_op.drop_index("ix_watchlist_item_user_id")
    op.drop_table("watchlist_item")
    with op.batch_alter_table("user", schema=None) as batch_op:
        batch_op.drop_index("ix_user_is_primary")
        batch_op.drop_index("ix_user_watchlist_id")
        batch_op.drop_index("ix_user_name")
    op.drop_table("user")
