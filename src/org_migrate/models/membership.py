"""Membership entity models."""

from enum import Enum

from pydantic import BaseModel, Field


class MembershipRole(str, Enum):
    """Role a user holds inside a team or organization."""

    MEMBER = 'MEMBER'
    ADMIN = 'ADMIN'
    OWNER = 'OWNER'


class Membership(BaseModel):
    """Link between a user and a team. Unique per ``(user_id, team_id)``."""

    user_id: int = Field(..., description='Member user ID')
    team_id: int = Field(..., description='Team or organization ID')
    role: MembershipRole = Field(
        default=MembershipRole.MEMBER, description='Role within the team'
    )
    accepted: bool = Field(default=False, description='Invitation accepted')

    @property
    def key(self):
        return (self.user_id, self.team_id)
