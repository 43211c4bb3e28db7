"""membership and moderation

Revision ID: 4c1e9a7d2b30
Revises:
Create Date: 2026-10-19 09:12:44.318502

"""
from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "4c1e9a7d2b30"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

COMMUNITY_ID = sa.BigInteger().with_variant(sa.Integer(), "sqlite")


def _enum(name: str, *values: str) -> sa.Enum:
    return sa.Enum(*values, name=name, native_enum=False, length=32)


def _community_fk() -> sa.ForeignKeyConstraint:
    return sa.ForeignKeyConstraint(["community_id"], ["community.id"], ondelete="CASCADE")


def upgrade() -> None:
    """Create communities, membership, bans, post moderation and the audit log."""
    op.create_table(
        "community",
        sa.Column("id", COMMUNITY_ID, autoincrement=True, nullable=False),
        sa.Column("slug", sa.String(length=64), nullable=False),
        sa.Column("display_name", sa.Text(), nullable=False),
        sa.Column("description_md", sa.Text(), nullable=True),
        sa.Column("privacy", _enum("communityprivacy", "public", "private"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("slug"),
    )
    op.create_table(
        "community_settings",
        sa.Column("community_id", COMMUNITY_ID, nullable=False),
        sa.Column("allow_post_images", sa.Boolean(), nullable=False),
        sa.Column("allow_post_links", sa.Boolean(), nullable=False),
        sa.Column("join_method", sa.String(length=32), nullable=True),
        sa.Column("require_post_approval", sa.Boolean(), nullable=False),
        sa.Column("restricted_words", sa.Text(), nullable=True),
        sa.Column("minimum_account_age_days", sa.Integer(), nullable=False),
        sa.Column("minimum_karma_required", sa.Integer(), nullable=False),
        sa.Column("custom_theme_color", sa.String(length=32), nullable=True),
        sa.Column("custom_banner_url", sa.Text(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        _community_fk(),
        sa.PrimaryKeyConstraint("community_id"),
    )
    op.create_table(
        "community_member",
        sa.Column("community_id", COMMUNITY_ID, nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("role", _enum("memberrole", "member", "moderator", "admin"), nullable=False),
        sa.Column("joined_at", sa.DateTime(timezone=True), nullable=False),
        _community_fk(),
        sa.PrimaryKeyConstraint("community_id", "user_id"),
    )
    op.create_table(
        "moderator_permission",
        sa.Column("community_id", COMMUNITY_ID, nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("manage_settings", sa.Boolean(), nullable=False),
        sa.Column("manage_members", sa.Boolean(), nullable=False),
        sa.Column("manage_posts", sa.Boolean(), nullable=False),
        sa.Column("manage_comments", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        _community_fk(),
        sa.PrimaryKeyConstraint("community_id", "user_id"),
    )
    op.create_table(
        "community_join_request",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("community_id", COMMUNITY_ID, nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column(
            "status",
            _enum("requeststatus", "pending", "approved", "rejected"),
            nullable=False,
        ),
        sa.Column("decided_by", sa.String(length=64), nullable=True),
        sa.Column("requested_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        _community_fk(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_community_join_request_community_id",
        "community_join_request",
        ["community_id"],
    )
    op.create_index(
        "uq_join_request_pending",
        "community_join_request",
        ["community_id", "user_id"],
        unique=True,
        sqlite_where=sa.text("status = 'pending'"),
        postgresql_where=sa.text("status = 'pending'"),
    )
    op.create_table(
        "banned_user",
        sa.Column("community_id", COMMUNITY_ID, nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("banned_by", sa.String(length=64), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        _community_fk(),
        sa.PrimaryKeyConstraint("community_id", "user_id"),
    )
    op.create_table(
        "post_moderation",
        sa.Column("post_id", sa.BigInteger(), autoincrement=False, nullable=False),
        sa.Column("community_id", COMMUNITY_ID, nullable=False),
        sa.Column("author_id", sa.String(length=64), nullable=True),
        sa.Column(
            "status",
            _enum("moderationstatus", "pending", "approved", "rejected"),
            nullable=False,
        ),
        sa.Column("moderator_id", sa.String(length=64), nullable=True),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("moderated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        _community_fk(),
        sa.PrimaryKeyConstraint("post_id"),
    )
    op.create_index("ix_post_moderation_community_id", "post_moderation", ["community_id"])
    op.create_table(
        "moderation_log",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("community_id", COMMUNITY_ID, nullable=False),
        sa.Column("moderator_id", sa.String(length=64), nullable=False),
        sa.Column("action_type", sa.String(length=32), nullable=False),
        sa.Column("target_type", sa.String(length=32), nullable=False),
        sa.Column("target_id", sa.String(length=64), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_moderation_log_community_created",
        "moderation_log",
        ["community_id", "created_at"],
    )


def downgrade() -> None:
    """Drop every membership table."""
    op.drop_index("ix_moderation_log_community_created", table_name="moderation_log")
    op.drop_table("moderation_log")
    op.drop_index("ix_post_moderation_community_id", table_name="post_moderation")
    op.drop_table("post_moderation")
    op.drop_table("banned_user")
    op.drop_index("uq_join_request_pending", table_name="community_join_request")
    op.drop_index("ix_community_join_request_community_id", table_name="community_join_request")
    op.drop_table("community_join_request")
    op.drop_table("moderator_permission")
    op.drop_table("community_member")
    op.drop_table("community_settings")
    op.drop_table("community")
