"""
Entitlement Gate - server-side credit check and deduction

Runs before every billable vendor call. Paid plans bypass metering; trial
users are checked against their trial window and credit balances and, when
allowed, have their counters incremented in a single atomic statement.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from crud.credits import CreditLedgerRepository
from crud.profile import ProfileRepository
from models.entitlement import EntitlementDecision
from services.plan_service import PlanService, is_paid_plan
from services.trial_service import is_trial_expired
from utils.errors import (
    AudioCreditsExhausted,
    CreditsExhausted,
    LedgerWriteFailure,
    TrialExpired,
)

logger = logging.getLogger(__name__)


class EntitlementGate:
    """
    Decides whether a request may proceed and consumes credits for it.

    This is the only code path allowed to change the ledger's used_* counters.
    """

    def __init__(
        self,
        db: AsyncSession,
        plan_service: Optional[PlanService] = None,
        ledger_repo: Optional[CreditLedgerRepository] = None,
    ):
        self.db = db
        self.plan_service = plan_service or PlanService(db, ProfileRepository(db))
        self.ledger_repo = ledger_repo or CreditLedgerRepository(db)

    async def authorize(
        self,
        user_id: str,
        is_audio_request: bool,
        now: Optional[datetime] = None,
    ) -> EntitlementDecision:
        """
        Check and deduct credits for one request.

        Args:
            user_id: Verified caller id
            is_audio_request: True for speech-to-text / text-to-speech
            now: Evaluation time (defaults to current UTC time)

        Returns:
            EntitlementDecision with allowed=True

        Raises:
            ProfileNotFound: No profile row for the user (404)
            TrialExpired / CreditsExhausted / AudioCreditsExhausted: Denials (402)
            LedgerWriteFailure: Storage error while deducting (500)
        """
        plan = await self.plan_service.classify(user_id)
        if is_paid_plan(plan):
            logger.info(f"[CREDITS] Paid plan, bypassing credit check | user={user_id} plan={plan}")
            return EntitlementDecision(allowed=True, is_paid_plan=True)

        now = now or datetime.now(timezone.utc)
        ledger = await self.ledger_repo.get_or_init(user_id)

        if is_trial_expired(ledger, now):
            logger.info(f"[CREDITS] Trial expired | user={user_id} trial_ends_at={ledger.trial_ends_at}")
            raise TrialExpired()

        self._check_balance(user_id, ledger.total_credits - ledger.used_credits,
                            ledger.total_audio_credits - ledger.used_audio_credits,
                            is_audio_request)

        try:
            counters = await self.ledger_repo.increment_usage(user_id, is_audio_request)
            if counters is None:
                await self.db.rollback()
            else:
                await self.db.commit()
        except SQLAlchemyError as e:
            logger.error(f"[CREDITS] Failed to deduct credits | user={user_id} error={e}")
            await self.db.rollback()
            raise LedgerWriteFailure() from e

        if counters is None:
            # Another request consumed the balance between our read and the update
            return await self._deny_after_conflict(user_id, is_audio_request)

        used, total, used_audio, total_audio = counters
        decision = EntitlementDecision(
            allowed=True,
            is_paid_plan=False,
            remaining_credits=total - used,
            remaining_audio_credits=(total_audio - used_audio) if is_audio_request else None,
        )
        logger.info(
            f"[CREDITS] {'Audio credits' if is_audio_request else 'Credit'} deducted | user={user_id} "
            f"remaining={decision.remaining_credits} audio_remaining={decision.remaining_audio_credits}"
        )
        return decision

    def _check_balance(self, user_id: str, remaining: int, remaining_audio: int, is_audio_request: bool) -> None:
        if remaining <= 0:
            logger.info(f"[CREDITS] Credits exhausted | user={user_id} remaining={remaining}")
            raise CreditsExhausted()
        if is_audio_request and remaining_audio <= 0:
            logger.info(f"[CREDITS] Audio credits exhausted | user={user_id} audio_remaining={remaining_audio}")
            raise AudioCreditsExhausted()

    async def _deny_after_conflict(self, user_id: str, is_audio_request: bool) -> EntitlementDecision:
        ledger = await self.ledger_repo.get_by_user_id(user_id)
        if ledger is None:
            logger.error(f"[CREDITS] Ledger vanished during deduction | user={user_id}")
            raise LedgerWriteFailure()
        self._check_balance(user_id, ledger.total_credits - ledger.used_credits,
                            ledger.total_audio_credits - ledger.used_audio_credits,
                            is_audio_request)
        # Row exists and still has balance, yet the conditional update matched nothing
        logger.error(f"[CREDITS] Conditional deduction matched no row | user={user_id}")
        raise LedgerWriteFailure()
