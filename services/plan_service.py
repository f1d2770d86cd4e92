"""
Plan classification: paid (unlimited) vs metered trial users
"""
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import PAID_PLANS
from crud.profile import ProfileRepository
from utils.errors import ProfileNotFound

logger = logging.getLogger(__name__)


def is_paid_plan(plan_id) -> bool:
    """Paid tiers are a fixed allow-list; anything else is metered."""
    return plan_id in PAID_PLANS


class PlanService:
    """Looks up a user's plan on their profile row."""

    def __init__(self, db: AsyncSession, profile_repo: ProfileRepository = None):
        self.db = db
        self.profile_repo = profile_repo or ProfileRepository(db)

    async def classify(self, user_id: str) -> str:
        """
        Return the user's plan id.

        Raises:
            ProfileNotFound: If the user has no profile row. This is a
                provisioning problem, not a credit denial.
        """
        plan = await self.profile_repo.get_plan(user_id)
        if plan is None:
            logger.warning(f"[CREDITS] Profile not found for user {user_id}")
            raise ProfileNotFound()
        return plan
