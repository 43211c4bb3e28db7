"""Moderation-facing Pydantic schemas."""

from pydantic import BaseModel, ConfigDict

from chorus_membership.models.enums import ModerationStatus, Visibility


class VisibilityResult(BaseModel):
    """Whether a viewer may see a post.

    `status` and `reason` are populated only for the post's author and the
    community's moderators; other viewers get the bare visibility.
    """

    model_config = ConfigDict(frozen=True)

    visibility: Visibility
    status: ModerationStatus | None = None
    reason: str | None = None

    @property
    def is_visible(self) -> bool:
        return self.visibility is Visibility.VISIBLE
