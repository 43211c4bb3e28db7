"""community rules

Revision ID: 9b3d61f0a7c2
Revises: 4c1e9a7d2b30
Create Date: 2026-10-21 14:03:17.902114

"""
from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "9b3d61f0a7c2"
down_revision: Union[str, Sequence[str], None] = "4c1e9a7d2b30"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

COMMUNITY_ID = sa.BigInteger().with_variant(sa.Integer(), "sqlite")


def upgrade() -> None:
    """Create the ordered community rule table."""
    op.create_table(
        "community_rule",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("community_id", COMMUNITY_ID, nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["community_id"], ["community.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_community_rule_community_position",
        "community_rule",
        ["community_id", "position"],
    )


def downgrade() -> None:
    """Drop the community rule table."""
    op.drop_index("ix_community_rule_community_position", table_name="community_rule")
    op.drop_table("community_rule")
