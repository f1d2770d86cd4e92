"""
Trial window helpers for metered (free trial) ledgers
"""
import math
from datetime import datetime, timezone
from typing import Optional

from database_models import UserCredits


def as_utc(value: datetime) -> datetime:
    """
    Normalize a stored timestamp to an aware UTC datetime.
    SQLite hands back naive values; they are stored in UTC.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def is_trial_expired(ledger: UserCredits, now: Optional[datetime] = None) -> bool:
    """
    A trial is expired once the current time is strictly after trial_ends_at.
    """
    now = now or datetime.now(timezone.utc)
    return now > as_utc(ledger.trial_ends_at)


def trial_days_remaining(ledger: UserCredits, now: Optional[datetime] = None) -> int:
    """
    Days left in the trial window, rounded up and never negative.
    """
    now = now or datetime.now(timezone.utc)
    remaining = (as_utc(ledger.trial_ends_at) - now).total_seconds() / 86400
    return max(0, math.ceil(remaining))
