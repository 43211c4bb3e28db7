"""References to content owned by the posts collaborator."""

from pydantic import BaseModel, ConfigDict


class ContentRef(BaseModel):
    """A post as seen by the moderation core: its id, community and author."""

    model_config = ConfigDict(frozen=True)

    post_id: int
    community_id: int
    author_id: str | None = None
