"""Organization Migration Tool

Moves standalone users and teams of a directory service into organizations,
and back out again, keeping usernames, team placement, memberships and
redirects consistent.
"""

__version__ = '0.1.0'
__author__ = 'Org Migration Team'
__email__ = 'team@example.com'

from .cli import main

__all__ = ['main']
