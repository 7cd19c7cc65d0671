"""Create BookSwap tables

Revision ID: 001
Revises: None
Create Date: 2026-10-18 00:00:00.000000+00:00

What:  Creates profiles, books, swap_requests, notifications and chat_messages.
How:   PostgreSQL: UUID keys, TIMESTAMP WITH TIME ZONE, JSONB payloads.
       Enum columns are VARCHAR, validated by the application.

Rollback: downgrade() drops every table (destructive, all data lost).
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    # ── profiles ──────────────────────────────────────────────────────────
    op.create_table(
        "profiles",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False, comment="Auth provider user id"),
        sa.Column("username", sa.String(50), nullable=True),
        sa.Column("full_name", sa.String(100), nullable=True),
        sa.Column("bio", sa.Text(), nullable=True),
        sa.Column("location", sa.String(100), nullable=True),
        sa.Column(
            "avatar_url",
            sa.String(255),
            nullable=True,
            comment="Storage key of the avatar object, e.g. '<user_id>/avatar.png'",
        ),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_profiles"),
        sa.UniqueConstraint("username", name="uq_profiles_username"),
    )
    # Usernames are unique regardless of case
    op.create_index(
        "uq_profiles_username_lower",
        "profiles",
        [sa.text("lower(username)")],
        unique=True,
    )

    # ── books ─────────────────────────────────────────────────────────────
    op.create_table(
        "books",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            nullable=False,
        ),
        sa.Column("owner_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("authors", postgresql.JSONB(), server_default=sa.text("'[]'::jsonb"), nullable=False),
        sa.Column("isbn", sa.String(20), nullable=True),
        sa.Column("genre", sa.String(100), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("thumbnail_url", sa.Text(), nullable=True),
        sa.Column("google_volume_id", sa.String(100), nullable=True),
        sa.Column("condition", sa.String(20), server_default="GOOD", nullable=False),
        sa.Column("is_available", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_books"),
        sa.ForeignKeyConstraint(["owner_id"], ["profiles.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("owner_id", "google_volume_id", name="uq_books_owner_volume"),
        sa.CheckConstraint(
            "condition IN ('AS_NEW', 'FINE', 'VERY_GOOD', 'GOOD', 'FAIR', 'POOR')",
            name="ck_books_condition",
        ),
    )
    op.create_index("idx_books_owner_id", "books", ["owner_id"])
    op.create_index("idx_books_available_created", "books", ["is_available", "created_at"])

    # ── swap_requests ─────────────────────────────────────────────────────
    op.create_table(
        "swap_requests",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            nullable=False,
        ),
        sa.Column("book_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("requester_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("owner_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("offered_book_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("status", sa.String(20), server_default="PENDING", nullable=False),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("counter_offered_book_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("counter_offer_message", sa.Text(), nullable=True),
        sa.Column("cancelled_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("requester_completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("owner_completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("requester_rating", sa.SmallInteger(), nullable=True),
        sa.Column("owner_rating", sa.SmallInteger(), nullable=True),
        sa.Column("requester_feedback", sa.Text(), nullable=True),
        sa.Column("owner_feedback", sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_swap_requests"),
        sa.ForeignKeyConstraint(["book_id"], ["books.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["requester_id"], ["profiles.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["owner_id"], ["profiles.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["offered_book_id"], ["books.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["counter_offered_book_id"], ["books.id"], ondelete="SET NULL"),
        sa.CheckConstraint(
            "status IN ('PENDING', 'ACCEPTED', 'DECLINED', 'CANCELLED', 'COMPLETED')",
            name="ck_swap_status",
        ),
        sa.CheckConstraint(
            "requester_rating IS NULL OR requester_rating BETWEEN 1 AND 5",
            name="ck_swap_requester_rating_range",
        ),
        sa.CheckConstraint(
            "owner_rating IS NULL OR owner_rating BETWEEN 1 AND 5",
            name="ck_swap_owner_rating_range",
        ),
        sa.CheckConstraint(
            "(status = 'COMPLETED' AND completed_at IS NOT NULL)"
            " OR (status <> 'COMPLETED' AND completed_at IS NULL)",
            name="ck_swap_completed_at_matches_status",
        ),
        sa.CheckConstraint("requester_id <> owner_id", name="ck_swap_not_self"),
    )
    op.create_index("idx_swap_requests_owner_status", "swap_requests", ["owner_id", "status"])
    op.create_index("idx_swap_requests_requester_status", "swap_requests", ["requester_id", "status"])
    op.create_index("idx_swap_requests_book_id", "swap_requests", ["book_id"])

    # ── notifications ─────────────────────────────────────────────────────
    op.create_table(
        "notifications",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            nullable=False,
        ),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("type", sa.String(40), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("data", postgresql.JSONB(), server_default=sa.text("'{}'::jsonb"), nullable=False),
        sa.Column("is_read", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id", name="pk_notifications"),
        sa.ForeignKeyConstraint(["user_id"], ["profiles.id"], ondelete="CASCADE"),
    )
    op.create_index("idx_notifications_user_read", "notifications", ["user_id", "is_read"])
    op.create_index(
        "idx_notifications_user_type_created",
        "notifications",
        ["user_id", "type", "created_at"],
    )

    # ── chat_messages ─────────────────────────────────────────────────────
    op.create_table(
        "chat_messages",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            nullable=False,
        ),
        sa.Column("conversation_id", sa.String(80), nullable=False),
        sa.Column("sender_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("recipient_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("attachment_url", sa.Text(), nullable=True),
        sa.Column("attachment_type", sa.String(100), nullable=True),
        sa.Column("attachment_size", sa.Integer(), nullable=True),
        sa.Column("is_read", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id", name="pk_chat_messages"),
        sa.ForeignKeyConstraint(["sender_id"], ["profiles.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["recipient_id"], ["profiles.id"], ondelete="CASCADE"),
    )
    op.create_index(
        "idx_chat_messages_conversation_created",
        "chat_messages",
        ["conversation_id", "created_at"],
    )
    op.create_index("idx_chat_messages_recipient_read", "chat_messages", ["recipient_id", "is_read"])


def downgrade() -> None:
    op.drop_table("chat_messages")
    op.drop_table("notifications")
    op.drop_table("swap_requests")
    op.drop_table("books")
    op.drop_index("uq_profiles_username_lower", table_name="profiles")
    op.drop_table("profiles")
