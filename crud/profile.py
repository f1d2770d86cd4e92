"""
ProfileRepository for database operations on UserProfile model
"""

from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from database_models import UserProfile


class ProfileRepository:
    """
    Repository class for UserProfile database operations.
    Profiles are provisioned by the auth platform; this service mostly reads them.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_profile_by_user_id(self, user_id: str) -> Optional[UserProfile]:
        """
        Retrieve a profile by the owning user id.

        Args:
            user_id: Auth platform user id (token `sub`)

        Returns:
            UserProfile object if found, None otherwise
        """
        result = await self.db.execute(
            select(UserProfile)
            .where(UserProfile.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_plan(self, user_id: str) -> Optional[str]:
        """Return the plan id for a user, or None when the profile is missing."""
        result = await self.db.execute(
            select(UserProfile.plan).where(UserProfile.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def create_profile(self, profile_data: dict) -> UserProfile:
        """
        Create a profile row.

        Args:
            profile_data: Dictionary containing profile data. Must include:
                - user_id: str
                Optional:
                - plan, name, email, language, level

        Returns:
            Created UserProfile object
        """
        profile = UserProfile(
            user_id=profile_data["user_id"],
            plan=profile_data.get("plan", "free_trial"),
            name=profile_data.get("name", ""),
            email=profile_data.get("email"),
            language=profile_data.get("language", "english"),
            level=profile_data.get("level", "intermediate"),
        )
        self.db.add(profile)
        await self.db.flush()
        await self.db.refresh(profile)
        return profile

