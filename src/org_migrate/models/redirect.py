"""Redirect mapping models."""

from enum import Enum

from pydantic import BaseModel, Field

# fromOrgId value for identifiers in the standalone namespace
STANDALONE_ORG_ID = 0


class RedirectType(str, Enum):
    """Kind of identifier a redirect translates."""

    USER = 'User'
    TEAM = 'Team'


class RedirectMapping(BaseModel):
    """Maps an old identifier to its organization URL.

    Unique per ``(type, from, from_org_id)``.
    """

    type: RedirectType = Field(..., description='Identifier kind')
    from_: str = Field(..., alias='from', description='Old identifier')
    from_org_id: int = Field(
        default=STANDALONE_ORG_ID, description='Namespace of the old identifier'
    )
    to_url: str = Field(..., description='Where the identifier now resolves')

    class Config:
        """Pydantic configuration."""

        populate_by_name = True

    @property
    def key(self):
        return (self.type, self.from_, self.from_org_id)
