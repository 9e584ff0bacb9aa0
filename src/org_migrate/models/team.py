"""Team entity models."""

from typing import Optional

from pydantic import BaseModel, Field, validator


class TeamMetadata(BaseModel):
    """Team metadata with the keys this tool reads."""

    is_organization: bool = Field(
        default=False,
        alias='isOrganization',
        description='Team record is an organization container',
    )
    requested_slug: Optional[str] = Field(
        default=None,
        alias='requestedSlug',
        description='Slug to adopt when the organization has none',
    )
    org_auto_accept_email: Optional[str] = Field(
        default=None,
        alias='orgAutoAcceptEmail',
        description='Email domain used to derive organization usernames',
    )

    class Config:
        """Pydantic configuration."""

        populate_by_name = True
        extra = 'allow'

    @validator('is_organization', pre=True)
    def validate_is_organization(cls, v):
        if v is None:
            return False
        return v


class Team(BaseModel):
    """Directory team record. Organizations are teams tagged in metadata."""

    id: int = Field(..., description='Team ID')
    name: Optional[str] = Field(default=None, description='Team name')
    slug: Optional[str] = Field(default=None, description='Team slug')
    parent_id: Optional[int] = Field(
        default=None, description='Containing organization ID'
    )
    metadata: TeamMetadata = Field(
        default_factory=TeamMetadata, description='Team metadata'
    )

    @validator('metadata', pre=True)
    def validate_metadata(cls, v):
        """Treat a missing metadata blob as empty metadata."""
        if v is None:
            return {}
        return v

    @property
    def is_organization(self) -> bool:
        return self.metadata.is_organization

    def describe(self) -> str:
        return f'{self.slug or "<no slug>"} (ID: {self.id})'
