"""SQLAlchemy models for communities, their settings and their members."""

from __future__ import annotations

from datetime import datetime
from enum import Enum as PyEnum

from sqlalchemy import BigInteger, Boolean, DateTime, Enum, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from chorus_membership.db.session import Base
from chorus_membership.db.time import utcnow
from chorus_membership.models.enums import CommunityPrivacy, JoinMethod, MemberRole


# SQLite only autoincrements INTEGER primary keys.
CommunityIdType = BigInteger().with_variant(Integer, "sqlite")


def enum_column(enum_cls: type[PyEnum]) -> Enum:
    """Store a str enum by value in a plain VARCHAR column."""
    return Enum(
        enum_cls,
        native_enum=False,
        values_callable=lambda members: [member.value for member in members],
        length=32,
        validate_strings=True,
    )


class Community(Base):
    """Community identity and display metadata."""

    __tablename__ = "community"

    id: Mapped[int] = mapped_column(CommunityIdType, primary_key=True, autoincrement=True)
    slug: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    display_name: Mapped[str] = mapped_column(Text, nullable=False)
    description_md: Mapped[str | None] = mapped_column(Text, nullable=True)
    privacy: Mapped[CommunityPrivacy] = mapped_column(
        enum_column(CommunityPrivacy),
        nullable=False,
        default=CommunityPrivacy.PUBLIC,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    # 1:1, created with the community and removed only with it.
    settings: Mapped[CommunitySettings] = relationship(
        "CommunitySettings",
        back_populates="community",
        cascade="all, delete-orphan",
        uselist=False,
    )


class CommunitySettings(Base):
    """Per-community configuration consulted by joins and content creation."""

    __tablename__ = "community_settings"

    community_id: Mapped[int] = mapped_column(
        CommunityIdType,
        ForeignKey("community.id", ondelete="CASCADE"),
        primary_key=True,
    )
    allow_post_images: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    allow_post_links: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    # Kept as free text so rows written by older releases still load; read it
    # through `resolved_join_method`.
    join_method: Mapped[str | None] = mapped_column(
        String(32), nullable=True, default=JoinMethod.AUTO_APPROVE.value
    )
    require_post_approval: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    restricted_words: Mapped[str | None] = mapped_column(Text, nullable=True)
    minimum_account_age_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    minimum_karma_required: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    custom_theme_color: Mapped[str | None] = mapped_column(String(32), nullable=True)
    custom_banner_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    community: Mapped[Community] = relationship("Community", back_populates="settings")

    @property
    def resolved_join_method(self) -> JoinMethod:
        return JoinMethod.parse(self.join_method)


class Membership(Base):
    """Role held by a user inside a community; at most one row per pair."""

    __tablename__ = "community_member"

    community_id: Mapped[int] = mapped_column(
        CommunityIdType,
        ForeignKey("community.id", ondelete="CASCADE"),
        primary_key=True,
    )
    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    role: Mapped[MemberRole] = mapped_column(
        enum_column(MemberRole), nullable=False, default=MemberRole.MEMBER
    )
    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )


class ModeratorCapabilityGrant(Base):
    """Capabilities granted to a moderator; ignored for admins."""

    __tablename__ = "moderator_permission"

    community_id: Mapped[int] = mapped_column(
        CommunityIdType,
        ForeignKey("community.id", ondelete="CASCADE"),
        primary_key=True,
    )
    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    manage_settings: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    manage_members: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    manage_posts: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    manage_comments: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    def as_dict(self) -> dict[str, bool]:
        return {
            "manage_settings": self.manage_settings,
            "manage_members": self.manage_members,
            "manage_posts": self.manage_posts,
            "manage_comments": self.manage_comments,
        }
