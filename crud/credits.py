"""
CreditLedgerRepository for database operations on the UserCredits ledger
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from database_models import UserCredits

logger = logging.getLogger(__name__)


class CreditLedgerRepository:
    """
    Repository class for the per-user credit ledger.
    Encapsulates all SQL touching the user_credits table.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_user_id(self, user_id: str) -> Optional[UserCredits]:
        """
        Retrieve the ledger row for a user.

        Always reloads column values from the database so that a row already
        present in the session identity map is never returned stale.
        """
        result = await self.db.execute(
            select(UserCredits)
            .where(UserCredits.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def create_default(self, user_id: str, now: Optional[datetime] = None) -> UserCredits:
        """
        Insert a ledger row with the configured trial defaults and flush it.

        Raises:
            IntegrityError: If a row for this user already exists
        """
        started_at = now or datetime.now(timezone.utc)
        ledger = UserCredits(
            user_id=user_id,
            total_credits=settings.default_total_credits,
            used_credits=0,
            total_audio_credits=settings.default_total_audio_credits,
            used_audio_credits=0,
            trial_started_at=started_at,
            trial_ends_at=started_at + timedelta(days=settings.trial_days),
            created_at=started_at,
            updated_at=started_at,
        )
        self.db.add(ledger)
        await self.db.flush()
        return ledger

    async def get_or_init(self, user_id: str) -> UserCredits:
        """
        Return the user's ledger, creating it with defaults on first access.

        The new row is committed immediately. A concurrent caller that loses the
        insert race hits the unique constraint on user_id; that conflict is
        treated as "re-read and use the existing row".
        """
        ledger = await self.get_by_user_id(user_id)
        if ledger is not None:
            return ledger

        try:
            ledger = await self.create_default(user_id)
            await self.db.commit()
            logger.info(f"Credit ledger created for user {user_id}")
            return ledger
        except IntegrityError:
            await self.db.rollback()
            logger.info(f"Credit ledger for user {user_id} created concurrently, re-reading")

        ledger = await self.get_by_user_id(user_id)
        if ledger is None:
            raise RuntimeError(f"Credit ledger for user {user_id} missing after insert conflict")
        return ledger

    async def increment_usage(self, user_id: str, is_audio_request: bool) -> Optional[tuple]:
        """
        Atomically consume one credit (and one audio credit for audio requests).

        Runs a single conditional UPDATE so concurrent requests cannot both spend
        the last credit. Both counters of an audio request move in the same
        statement.

        Returns:
            (used_credits, total_credits, used_audio_credits, total_audio_credits)
            after the update, or None when no row matched (balance exhausted
            or ledger missing)
        """
        values = {
            "used_credits": UserCredits.used_credits + 1,
            "updated_at": datetime.now(timezone.utc),
        }
        conditions = [
            UserCredits.user_id == user_id,
            UserCredits.used_credits < UserCredits.total_credits,
        ]
        if is_audio_request:
            values["used_audio_credits"] = UserCredits.used_audio_credits + 1
            conditions.append(UserCredits.used_audio_credits < UserCredits.total_audio_credits)

        stmt = (
            update(UserCredits)
            .where(*conditions)
            .values(**values)
            .returning(
                UserCredits.used_credits,
                UserCredits.total_credits,
                UserCredits.used_audio_credits,
                UserCredits.total_audio_credits,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        row = result.first()
        return tuple(row) if row is not None else None
