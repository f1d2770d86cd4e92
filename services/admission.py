"""
Admission step shared by the billable handlers.

Authenticated callers go through the Entitlement Gate; demo callers only
through the in-memory demo limiter. Runs before any vendor call.
"""
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from auth import AuthenticatedCaller, Caller, DemoCaller
from models.entitlement import EntitlementDecision
from services.entitlement_service import EntitlementGate
from utils.rate_limit import DemoUsageLimiter, demo_limiter


async def admit(
    caller: Caller,
    db: AsyncSession,
    is_audio_request: bool,
    limiter: DemoUsageLimiter = demo_limiter,
) -> Optional[EntitlementDecision]:
    """
    Let the request through or raise the matching denial.

    Returns the gate decision for authenticated callers, None for demo callers.
    """
    if isinstance(caller, DemoCaller):
        limiter.consume(caller.client_key, "audio" if is_audio_request else "message")
        return None
    if isinstance(caller, AuthenticatedCaller):
        return await EntitlementGate(db).authorize(caller.user_id, is_audio_request)
    raise TypeError(f"Unknown caller type: {type(caller).__name__}")
