"""Data models for directory entities."""

from .user import User, UserMetadata, MigrationProvenance
from .team import Team, TeamMetadata
from .membership import Membership, MembershipRole
from .redirect import RedirectMapping, RedirectType, STANDALONE_ORG_ID

__all__ = [
    'User',
    'UserMetadata',
    'MigrationProvenance',
    'Team',
    'TeamMetadata',
    'Membership',
    'MembershipRole',
    'RedirectMapping',
    'RedirectType',
    'STANDALONE_ORG_ID',
]
