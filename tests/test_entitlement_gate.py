"""
Tests for the Entitlement Gate: plan bypass, trial window, balances,
atomic deduction and failure handling.
"""
import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import update
from sqlalchemy.exc import OperationalError

from crud.credits import CreditLedgerRepository
from database_models import UserCredits
from models.entitlement import EntitlementDecision
from services.entitlement_service import EntitlementGate
from tests.conftest import fetch_ledger, seed_profile
from utils.errors import (
    AudioCreditsExhausted,
    CreditsExhausted,
    LedgerWriteFailure,
    ProfileNotFound,
    TrialExpired,
)


async def init_ledger(session_factory, user_id: str, **fields):
    """Create the default ledger for a user and optionally overwrite some columns."""
    async with session_factory() as session:
        await CreditLedgerRepository(session).get_or_init(user_id)
        if fields:
            await session.execute(
                update(UserCredits).where(UserCredits.user_id == user_id).values(**fields)
            )
        await session.commit()


@pytest.mark.asyncio
async def test_first_text_request_for_new_user(session_factory, test_db):
    await seed_profile(session_factory, "user-1")

    decision = await EntitlementGate(test_db).authorize("user-1", is_audio_request=False)

    assert decision.allowed is True
    assert decision.is_paid_plan is False
    assert decision.remaining_credits == 69
    assert decision.remaining_audio_credits is None

    ledger = await fetch_ledger(session_factory, "user-1")
    assert ledger.total_credits == 70
    assert ledger.used_credits == 1
    assert ledger.total_audio_credits == 14
    assert ledger.used_audio_credits == 0


@pytest.mark.asyncio
async def test_text_requests_only_move_text_counter(session_factory, test_db):
    await seed_profile(session_factory, "user-1")
    gate = EntitlementGate(test_db)

    for _ in range(5):
        await gate.authorize("user-1", is_audio_request=False)

    ledger = await fetch_ledger(session_factory, "user-1")
    assert ledger.used_credits == 5
    assert ledger.used_audio_credits == 0


@pytest.mark.asyncio
async def test_audio_requests_move_both_counters(session_factory, test_db):
    await seed_profile(session_factory, "user-1")
    gate = EntitlementGate(test_db)

    decisions = [await gate.authorize("user-1", is_audio_request=True) for _ in range(3)]

    assert [d.remaining_audio_credits for d in decisions] == [13, 12, 11]
    assert [d.remaining_credits for d in decisions] == [69, 68, 67]
    ledger = await fetch_ledger(session_factory, "user-1")
    assert ledger.used_credits == 3
    assert ledger.used_audio_credits == 3


@pytest.mark.asyncio
@pytest.mark.parametrize("plan", ["beginner", "pro", "fluency_plus"])
async def test_paid_plan_bypasses_ledger(session_factory, test_db, plan):
    await seed_profile(session_factory, "paid-user", plan=plan)
    gate = EntitlementGate(test_db)

    for _ in range(10):
        decision = await gate.authorize("paid-user", is_audio_request=True)
        assert decision.allowed is True
        assert decision.is_paid_plan is True
        assert decision.remaining_credits is None

    assert await fetch_ledger(session_factory, "paid-user") is None


@pytest.mark.asyncio
async def test_paid_plan_leaves_existing_ledger_untouched(session_factory, test_db):
    await seed_profile(session_factory, "upgraded", plan="pro")
    await init_ledger(session_factory, "upgraded", used_credits=70)

    decision = await EntitlementGate(test_db).authorize("upgraded", is_audio_request=False)

    assert decision.is_paid_plan is True
    ledger = await fetch_ledger(session_factory, "upgraded")
    assert ledger.used_credits == 70


@pytest.mark.asyncio
async def test_unknown_plan_is_metered(session_factory, test_db):
    await seed_profile(session_factory, "legacy", plan="something_else")

    decision = await EntitlementGate(test_db).authorize("legacy", is_audio_request=False)

    assert decision.is_paid_plan is False
    assert decision.remaining_credits == 69


@pytest.mark.asyncio
async def test_exhausted_credits_denied_without_mutation(session_factory, test_db):
    await seed_profile(session_factory, "user-1")
    await init_ledger(session_factory, "user-1", used_credits=70)

    with pytest.raises(CreditsExhausted) as exc_info:
        await EntitlementGate(test_db).authorize("user-1", is_audio_request=False)

    assert exc_info.value.status_code == 402
    assert "Credits exhausted" in exc_info.value.message
    ledger = await fetch_ledger(session_factory, "user-1")
    assert ledger.used_credits == 70
    assert ledger.used_audio_credits == 0


@pytest.mark.asyncio
async def test_exhausted_audio_credits_deny_audio_only(session_factory, test_db):
    await seed_profile(session_factory, "user-1")
    await init_ledger(session_factory, "user-1", used_credits=10, used_audio_credits=14)
    gate = EntitlementGate(test_db)

    with pytest.raises(AudioCreditsExhausted):
        await gate.authorize("user-1", is_audio_request=True)

    ledger = await fetch_ledger(session_factory, "user-1")
    assert ledger.used_credits == 10
    assert ledger.used_audio_credits == 14

    # Text turns still go through
    decision = await gate.authorize("user-1", is_audio_request=False)
    assert decision.remaining_credits == 59


@pytest.mark.asyncio
async def test_text_exhaustion_also_blocks_audio(session_factory, test_db):
    await seed_profile(session_factory, "user-1")
    await init_ledger(session_factory, "user-1", used_credits=70, used_audio_credits=0)

    with pytest.raises(CreditsExhausted):
        await EntitlementGate(test_db).authorize("user-1", is_audio_request=True)


@pytest.mark.asyncio
async def test_expired_trial_denied_regardless_of_balance(session_factory, test_db):
    await seed_profile(session_factory, "user-1")
    await init_ledger(
        session_factory,
        "user-1",
        trial_ends_at=datetime.now(timezone.utc) - timedelta(minutes=1),
    )

    with pytest.raises(TrialExpired) as exc_info:
        await EntitlementGate(test_db).authorize("user-1", is_audio_request=True)

    assert exc_info.value.status_code == 402
    ledger = await fetch_ledger(session_factory, "user-1")
    assert ledger.used_credits == 0
    assert ledger.used_audio_credits == 0


@pytest.mark.asyncio
async def test_trial_checked_against_evaluation_time(session_factory, test_db):
    await seed_profile(session_factory, "user-1")
    gate = EntitlementGate(test_db)

    await gate.authorize("user-1", is_audio_request=False)
    with pytest.raises(TrialExpired):
        await gate.authorize("user-1", is_audio_request=False, now=datetime.now(timezone.utc) + timedelta(days=8))


@pytest.mark.asyncio
async def test_missing_profile_is_not_a_credit_denial(session_factory, test_db):
    with pytest.raises(ProfileNotFound) as exc_info:
        await EntitlementGate(test_db).authorize("ghost", is_audio_request=False)

    assert exc_info.value.status_code == 404
    assert await fetch_ledger(session_factory, "ghost") is None


@pytest.mark.asyncio
async def test_never_allows_past_total(session_factory, test_db):
    await seed_profile(session_factory, "user-1")
    await init_ledger(session_factory, "user-1", total_credits=3, total_audio_credits=1)
    gate = EntitlementGate(test_db)

    outcomes = []
    for is_audio in [True, True, False, False, False, False]:
        try:
            await gate.authorize("user-1", is_audio_request=is_audio)
            outcomes.append("allowed")
        except (CreditsExhausted, AudioCreditsExhausted) as e:
            outcomes.append(e.reason)

    assert outcomes == [
        "allowed",
        "audio_credits_exhausted",
        "allowed",
        "allowed",
        "credits_exhausted",
        "credits_exhausted",
    ]
    ledger = await fetch_ledger(session_factory, "user-1")
    assert ledger.used_credits == 3
    assert ledger.used_audio_credits == 1


@pytest.mark.asyncio
async def test_concurrent_requests_spend_last_credit_once(session_factory):
    await seed_profile(session_factory, "user-1")
    await init_ledger(session_factory, "user-1", used_credits=69)

    async def attempt():
        async with session_factory() as session:
            try:
                return await EntitlementGate(session).authorize("user-1", is_audio_request=False)
            except CreditsExhausted as e:
                return e

    results = await asyncio.gather(attempt(), attempt())

    allowed = [r for r in results if isinstance(r, EntitlementDecision)]
    denied = [r for r in results if isinstance(r, CreditsExhausted)]
    assert len(allowed) == 1
    assert len(denied) == 1
    assert allowed[0].remaining_credits == 0
    ledger = await fetch_ledger(session_factory, "user-1")
    assert ledger.used_credits == 70


@pytest.mark.asyncio
async def test_stale_read_cannot_double_spend(session_factory, test_db):
    """Both requests read remaining=1; the conditional update lets only one through."""
    await seed_profile(session_factory, "user-1")
    await init_ledger(session_factory, "user-1", used_credits=69)

    class StaleReadRepository(CreditLedgerRepository):
        async def get_or_init(self, user_id):
            ledger = await super().get_or_init(user_id)
            # Simulate another request deducting right after our read
            async with session_factory() as other:
                await CreditLedgerRepository(other).increment_usage(user_id, False)
                await other.commit()
            return ledger

    gate = EntitlementGate(test_db, ledger_repo=StaleReadRepository(test_db))

    with pytest.raises(CreditsExhausted):
        await gate.authorize("user-1", is_audio_request=False)

    ledger = await fetch_ledger(session_factory, "user-1")
    assert ledger.used_credits == 70


@pytest.mark.asyncio
async def test_storage_error_is_not_reported_as_exhausted(session_factory, test_db):
    await seed_profile(session_factory, "user-1")

    class BrokenLedgerRepository(CreditLedgerRepository):
        async def increment_usage(self, user_id, is_audio_request):
            raise OperationalError("UPDATE user_credits", {}, Exception("disk I/O error"))

    gate = EntitlementGate(test_db, ledger_repo=BrokenLedgerRepository(test_db))

    with pytest.raises(LedgerWriteFailure) as exc_info:
        await gate.authorize("user-1", is_audio_request=True)

    assert exc_info.value.status_code == 500
    assert exc_info.value.message == "Failed to process credits"
    ledger = await fetch_ledger(session_factory, "user-1")
    assert ledger.used_credits == 0
    assert ledger.used_audio_credits == 0


@pytest.mark.asyncio
async def test_decision_serializes_with_public_names(session_factory, test_db):
    await seed_profile(session_factory, "user-1")

    decision = await EntitlementGate(test_db).authorize("user-1", is_audio_request=True)

    assert decision.to_public() == {
        "allowed": True,
        "isPaidPlan": False,
        "remainingCredits": 69,
        "remainingAudioCredits": 13,
    }


@pytest.mark.asyncio
async def test_denials_travel_as_exceptions_with_reason(session_factory, test_db):
    await seed_profile(session_factory, "paid", plan="pro")
    await seed_profile(session_factory, "user-1")
    await init_ledger(session_factory, "user-1", used_credits=70)
    gate = EntitlementGate(test_db)

    paid = await gate.authorize("paid", is_audio_request=False)
    assert paid.reason is None
    assert paid.to_public() == {"allowed": True, "isPaidPlan": True}

    with pytest.raises(CreditsExhausted) as exc_info:
        await gate.authorize("user-1", is_audio_request=False)
    assert exc_info.value.reason == "credits_exhausted"
