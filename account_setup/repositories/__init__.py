"""
Repository Layer Package.

Data-access abstractions over the local SQLite database for domain data
(the user profile).  Secrets go through the credential vault instead.

Usage:
    from account_setup.repositories import UserProfileRepository
"""

from account_setup.repositories.base_repository import BaseRepository
from account_setup.repositories.user_profile_repository import (
    InMemoryProfileStore,
    ProfileStore,
    UserProfileRepository,
)

__all__ = [
    "BaseRepository",
    "InMemoryProfileStore",
    "ProfileStore",
    "UserProfileRepository",
]
