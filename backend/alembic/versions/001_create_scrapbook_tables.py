"""Create scrapbook tables

Revision ID: 001
Revises: None
Create Date: 2026-10-19 00:00:00.000000+00:00

What:  users, entries, score_records, allowed_emails and access_requests,
       with the constraints the services rely on for duplicate suppression:
       - users.email / users.external_id / users.share_code unique
       - entries (target_user_id, system_key) unique (one welcome entry)
       - score_records.user_id unique (one ledger row per user)
       - allowed_emails.email unique
       - access_requests: partial unique index, one pending row per email

Rollback: downgrade() drops every table (destructive).
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column(
            "external_id",
            sa.String(255),
            nullable=True,
            comment="Subject id from the external identity provider",
        ),
        sa.Column(
            "email",
            sa.String(320),
            nullable=False,
            comment="Lowercased, trimmed email address",
        ),
        sa.Column("display_name", sa.String(255), nullable=False),
        sa.Column("alias", sa.String(60), nullable=True),
        sa.Column("bio", sa.Text(), nullable=True),
        sa.Column(
            "picture_url",
            sa.Text(),
            nullable=True,
            comment="Avatar URL reported by the identity provider",
        ),
        sa.Column(
            "custom_picture_path",
            sa.String(255),
            nullable=True,
            comment="Locally stored avatar, relative to the uploads root",
        ),
        sa.Column(
            "share_code",
            sa.String(36),
            nullable=False,
            comment="Opaque public page handle (uuid4)",
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("external_id"),
        sa.UniqueConstraint("email"),
        sa.UniqueConstraint("share_code"),
    )
    op.create_index("idx_users_created_at", "users", ["created_at"])

    op.create_table(
        "entries",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("target_user_id", sa.Integer(), nullable=False),
        sa.Column("author_user_id", sa.Integer(), nullable=False),
        sa.Column("kind", sa.String(10), nullable=False),
        sa.Column("text_content", sa.Text(), nullable=True),
        sa.Column("file_path", sa.String(255), nullable=True),
        sa.Column("original_name", sa.String(255), nullable=True),
        sa.Column("mime_type", sa.String(100), nullable=True),
        sa.Column("system_key", sa.String(50), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["target_user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["author_user_id"], ["users.id"], ondelete="CASCADE"),
        sa.CheckConstraint("kind IN ('text', 'image', 'audio')", name="ck_entries_kind"),
        sa.CheckConstraint(
            "(kind = 'text' AND text_content IS NOT NULL AND file_path IS NULL) OR "
            "(kind IN ('image', 'audio') AND file_path IS NOT NULL AND text_content IS NULL)",
            name="ck_entries_content_matches_kind",
        ),
        sa.UniqueConstraint(
            "target_user_id", "system_key", name="uq_entries_target_system_key"
        ),
    )
    op.create_index("idx_entries_target_user", "entries", ["target_user_id"])
    op.create_index("idx_entries_author_user", "entries", ["author_user_id"])
    op.create_index("idx_entries_created_at", "entries", ["created_at"])

    op.create_table(
        "score_records",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("best_score", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("user_id"),
        sa.CheckConstraint("best_score >= 0", name="ck_score_records_non_negative"),
    )
    op.create_index(
        "idx_score_records_best_score",
        "score_records",
        [sa.text("best_score DESC")],
    )

    op.create_table(
        "allowed_emails",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )

    op.create_table(
        "access_requests",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("external_id", sa.String(255), nullable=True),
        sa.Column("display_name", sa.String(255), nullable=False),
        sa.Column("picture_url", sa.Text(), nullable=True),
        sa.Column(
            "status",
            sa.String(20),
            nullable=False,
            server_default=sa.text("'pending'"),
        ),
        sa.Column("requested_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')",
            name="ck_access_requests_status",
        ),
    )
    op.create_index("idx_access_requests_email", "access_requests", ["email"])
    op.create_index("idx_access_requests_status", "access_requests", ["status"])
    op.create_index(
        "uq_access_requests_pending_email",
        "access_requests",
        ["email"],
        unique=True,
        postgresql_where=sa.text("status = 'pending'"),
        sqlite_where=sa.text("status = 'pending'"),
    )


def downgrade() -> None:
    op.drop_index("uq_access_requests_pending_email", table_name="access_requests")
    op.drop_index("idx_access_requests_status", table_name="access_requests")
    op.drop_index("idx_access_requests_email", table_name="access_requests")
    op.drop_table("access_requests")
    op.drop_table("allowed_emails")
    op.drop_index("idx_score_records_best_score", table_name="score_records")
    op.drop_table("score_records")
    op.drop_index("idx_entries_created_at", table_name="entries")
    op.drop_index("idx_entries_author_user", table_name="entries")
    op.drop_index("idx_entries_target_user", table_name="entries")
    op.drop_table("entries")
    op.drop_index("idx_users_created_at", table_name="users")
    op.drop_table("users")
