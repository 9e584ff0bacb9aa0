"""User entity models."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, validator


class MigrationProvenance(BaseModel):
    """Record of a user's move into an organization.

    Stored under ``metadata.migratedToOrgFrom``. ``username`` is the last
    known standalone username and is what a reversal restores.
    """

    username: Optional[str] = Field(
        default=None, description='Standalone username before migration'
    )
    reverted: bool = Field(default=False, description='Migration was reverted')
    revert_time: Optional[datetime] = Field(
        default=None, alias='revertTime', description='When it was reverted'
    )
    last_migration_time: Optional[datetime] = Field(
        default=None,
        alias='lastMigrationTime',
        description='When the user was last migrated',
    )

    class Config:
        """Pydantic configuration."""

        populate_by_name = True


class UserMetadata(BaseModel):
    """Free-form user metadata with the keys this tool reads and writes."""

    migrated_to_org_from: Optional[MigrationProvenance] = Field(
        default=None, alias='migratedToOrgFrom', description='Migration provenance'
    )

    class Config:
        """Pydantic configuration."""

        populate_by_name = True
        extra = 'allow'


class User(BaseModel):
    """Directory user record."""

    id: int = Field(..., description='User ID')
    username: Optional[str] = Field(default=None, description='Username')
    email: str = Field(..., description='Email address')
    name: Optional[str] = Field(default=None, description='Full name')
    organization_id: Optional[int] = Field(
        default=None, description='Owning organization, None when standalone'
    )
    metadata: UserMetadata = Field(
        default_factory=UserMetadata, description='User metadata'
    )

    @validator('email')
    def validate_email(cls, v):
        """Basic email validation."""
        if '@' not in v:
            raise ValueError('Invalid email format')
        return v.lower()

    @validator('metadata', pre=True)
    def validate_metadata(cls, v):
        """Treat a missing metadata blob as empty metadata."""
        if v is None:
            return {}
        return v

    @property
    def provenance(self) -> Optional[MigrationProvenance]:
        return self.metadata.migrated_to_org_from

    def describe(self) -> str:
        return f'{self.username or "<no username>"} (ID: {self.id})'
