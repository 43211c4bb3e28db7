"""Caller identity supplied by the (external) identity provider."""

from pydantic import BaseModel, ConfigDict, Field

from chorus_membership.models.enums import PlatformRole


class CallerIdentity(BaseModel):
    """Verified caller of a core operation.

    `platform_role == admin` is a cross-community bypass honoured by the
    permission resolver.
    """

    model_config = ConfigDict(frozen=True)

    user_id: str = Field(..., min_length=1, max_length=64)
    platform_role: PlatformRole = PlatformRole.USER

    @property
    def is_platform_admin(self) -> bool:
        return self.platform_role is PlatformRole.ADMIN
