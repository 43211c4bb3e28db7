"""Community-related Pydantic schemas."""

from pydantic import BaseModel, Field

from chorus_membership.models.enums import CommunityPrivacy, JoinMethod

_CLEARABLE_SETTINGS = frozenset({"restricted_words", "custom_theme_color", "custom_banner_url"})


class CommunityCreate(BaseModel):
    """Schema for creating a new community."""

    slug: str = Field(..., min_length=1, max_length=64, pattern=r"^[a-z0-9][a-z0-9_-]*$")
    display_name: str = Field(..., min_length=1)
    description_md: str | None = None
    privacy: CommunityPrivacy = CommunityPrivacy.PUBLIC
    join_method: JoinMethod | None = None
    require_post_approval: bool = False


class CommunityUpdate(BaseModel):
    """Partial update of a community's display metadata and privacy."""

    display_name: str | None = Field(default=None, min_length=1)
    description_md: str | None = None
    privacy: CommunityPrivacy | None = None

    def changes(self) -> dict[str, object]:
        """Return the explicitly provided fields; `None` clears only the description."""
        return {
            key: value
            for key, value in self.model_dump(exclude_unset=True).items()
            if value is not None or key == "description_md"
        }


class CommunityRuleCreate(BaseModel):
    """A new rule; without a position it is appended after the last one."""

    title: str = Field(..., min_length=1, max_length=200)
    description: str | None = None
    position: int | None = Field(default=None, ge=1)


class CommunityRuleUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None
    position: int | None = Field(default=None, ge=1)

    def changes(self) -> dict[str, object]:
        return {
            key: value
            for key, value in self.model_dump(exclude_unset=True).items()
            if value is not None or key == "description"
        }


class CommunitySettingsUpdate(BaseModel):
    """Partial settings update; only fields explicitly set are applied."""

    allow_post_images: bool | None = None
    allow_post_links: bool | None = None
    join_method: JoinMethod | None = None
    require_post_approval: bool | None = None
    restricted_words: str | None = None
    minimum_account_age_days: int | None = Field(default=None, ge=0)
    minimum_karma_required: int | None = Field(default=None, ge=0)
    custom_theme_color: str | None = Field(default=None, max_length=32)
    custom_banner_url: str | None = None

    def changes(self) -> dict[str, object]:
        """Return the explicitly provided fields with enums reduced to values.

        An explicit `None` clears the free-text fields and is ignored for the
        rest, which have no empty state.
        """
        provided = self.model_dump(exclude_unset=True)
        changes = {
            key: value
            for key, value in provided.items()
            if value is not None or key in _CLEARABLE_SETTINGS
        }
        if isinstance(changes.get("join_method"), JoinMethod):
            changes["join_method"] = changes["join_method"].value
        return changes


class CapabilityUpdate(BaseModel):
    """Partial moderator capability grant."""

    manage_settings: bool | None = None
    manage_members: bool | None = None
    manage_posts: bool | None = None
    manage_comments: bool | None = None

    def changes(self) -> dict[str, bool]:
        return {
            key: value
            for key, value in self.model_dump(exclude_unset=True).items()
            if value is not None
        }
