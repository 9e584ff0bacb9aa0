"""Migration request model."""

from typing import Optional

from pydantic import BaseModel, Field, validator

from ..models.membership import MembershipRole
from .steps import MigrationOperation


class MigrationRequest(BaseModel):
    """One operation to run against the directory.

    Field requirements depend on ``operation``; the engine validates the
    user reference itself so the error taxonomy stays in one place.
    """

    operation: MigrationOperation = Field(..., description='Operation to run')
    target_org_id: int = Field(..., description='Organization involved')

    user_id: Optional[int] = Field(default=None, description='User ID')
    username: Optional[str] = Field(default=None, description='Username')
    target_org_username: Optional[str] = Field(
        default=None, description='Username to use inside the organization'
    )
    role: Optional[MembershipRole] = Field(
        default=None, description='Organization membership role'
    )
    accepted: Optional[bool] = Field(
        default=None, description='Organization membership accepted'
    )

    team_id: Optional[int] = Field(default=None, description='Team ID')
    move_members: bool = Field(
        default=False, description='Also migrate every member of the team'
    )

    @validator('operation', pre=True)
    def validate_operation(cls, v):
        """Accept both ``migrate_user_to_org`` and ``migrateUserToOrg``."""
        if isinstance(v, str) and not v.islower():
            aliases = {
                'migrateUserToOrg': 'migrate_user_to_org',
                'moveTeamToOrg': 'move_team_to_org',
                'removeTeamFromOrg': 'remove_team_from_org',
                'removeUserFromOrg': 'remove_user_from_org',
            }
            return aliases.get(v, v)
        return v

    @validator('role', pre=True)
    def validate_role(cls, v):
        if isinstance(v, str):
            return v.upper()
        return v

    @validator('team_id', always=True)
    def validate_team_id(cls, v, values):
        operation = values.get('operation')
        if (
            operation in (MigrationOperation.MOVE_TEAM, MigrationOperation.REMOVE_TEAM)
            and v is None
        ):
            raise ValueError(f'team_id is required for {operation.value}')
        return v

    def describe(self) -> str:
        if self.operation in (MigrationOperation.MOVE_TEAM, MigrationOperation.REMOVE_TEAM):
            subject = f'team {self.team_id}'
        else:
            subject = f'user {self.username or self.user_id}'
        return f'{self.operation.value} {subject} (org {self.target_org_id})'
