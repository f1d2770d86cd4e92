"""
Credits Router - balance read model and the client mirror's write path
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from auth import AuthenticatedCaller, get_current_caller
from database import get_db
from crud.credits import CreditLedgerRepository
from models.requests import CreditUseRequest
from services.entitlement_service import EntitlementGate
from services.plan_service import PlanService, is_paid_plan
from services.trial_service import as_utc, is_trial_expired, trial_days_remaining
from utils.shared_utils import log_endpoint_event

router = APIRouter(prefix="/api", tags=["credits"])

# Reported instead of real totals for plans without metering
UNLIMITED = -1


@router.get("/credits")
async def get_credits(
    caller: AuthenticatedCaller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    """
    Current balance for the signed-in user.
    Creates the trial ledger on first read for metered users.
    """
    plan = await PlanService(db).classify(caller.user_id)

    if is_paid_plan(plan):
        return {
            "plan": plan,
            "hasUnlimitedCredits": True,
            "totalCredits": UNLIMITED,
            "usedCredits": 0,
            "remainingCredits": UNLIMITED,
            "totalAudioCredits": UNLIMITED,
            "usedAudioCredits": 0,
            "remainingAudioCredits": UNLIMITED,
            "trialEndsAt": None,
            "trialDaysRemaining": None,
            "isTrialExpired": False,
        }

    ledger = await CreditLedgerRepository(db).get_or_init(caller.user_id)
    return {
        "plan": plan,
        "hasUnlimitedCredits": False,
        "totalCredits": ledger.total_credits,
        "usedCredits": ledger.used_credits,
        "remainingCredits": ledger.remaining_credits,
        "totalAudioCredits": ledger.total_audio_credits,
        "usedAudioCredits": ledger.used_audio_credits,
        "remainingAudioCredits": ledger.remaining_audio_credits,
        "trialEndsAt": as_utc(ledger.trial_ends_at).isoformat(),
        "trialDaysRemaining": trial_days_remaining(ledger),
        "isTrialExpired": is_trial_expired(ledger),
    }


@router.post("/credits/use")
async def use_credit(
    request: CreditUseRequest,
    caller: AuthenticatedCaller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    """
    Consume one credit on behalf of the client mirror.
    Goes through the Entitlement Gate like every other deduction.
    """
    decision = await EntitlementGate(db).authorize(caller.user_id, is_audio_request=request.kind == "audio")
    log_endpoint_event("/api/credits/use", caller.user_id, "success", {"kind": request.kind})
    return decision.to_public()
