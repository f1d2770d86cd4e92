"""
Error taxonomy shared by services and routers.

Every error carries the HTTP status it is surfaced with and a stable,
user-facing message. Vendor-specific details are logged, never returned.
"""
from typing import Optional


class AppError(Exception):
    """Base class for errors rendered as {"error": message}"""

    status_code = 500
    message = "Internal Server Error"

    def __init__(self, message: Optional[str] = None):
        if message is not None:
            self.message = message
        super().__init__(self.message)


class AuthError(AppError):
    status_code = 401
    message = "Unauthorized"


class ProfileNotFound(AppError):
    status_code = 404
    message = "User profile not found"


class CreditDenied(AppError):
    """Expected, user-facing denial. Clients route to the upgrade flow."""

    status_code = 402
    reason = "denied"


class TrialExpired(CreditDenied):
    reason = "trial_expired"
    message = "Trial period expired. Please upgrade your plan."


class CreditsExhausted(CreditDenied):
    reason = "credits_exhausted"
    message = "Credits exhausted. Please upgrade your plan."


class AudioCreditsExhausted(CreditDenied):
    reason = "audio_credits_exhausted"
    message = "Audio credits exhausted. Please upgrade your plan."


class LedgerWriteFailure(AppError):
    """The atomic increment failed; the balance must not be assumed decremented."""

    status_code = 500
    message = "Failed to process credits"


class DemoLimitReached(AppError):
    status_code = 429
    message = "Demo limit reached. Create an account to keep practicing."


class ServiceNotConfigured(AppError):
    status_code = 500
    message = "Service is not configured"


# Vendor error categories
VENDOR_RATE_LIMITED = "rate_limited"
VENDOR_QUOTA_EXHAUSTED = "quota_exhausted"
VENDOR_FAILURE = "failure"

_VENDOR_STATUS = {
    VENDOR_RATE_LIMITED: 429,
    VENDOR_QUOTA_EXHAUSTED: 402,
    VENDOR_FAILURE: 500,
}

_VENDOR_MESSAGES = {
    VENDOR_RATE_LIMITED: "Rate limit exceeded. Please try again in a few seconds.",
    VENDOR_QUOTA_EXHAUSTED: "AI service quota exhausted. Please try again later.",
    VENDOR_FAILURE: "AI service error",
}


class VendorError(AppError):
    """Downstream AI/speech API failure mapped to a stable category"""

    def __init__(self, category: str = VENDOR_FAILURE):
        if category not in _VENDOR_STATUS:
            category = VENDOR_FAILURE
        self.category = category
        self.status_code = _VENDOR_STATUS[category]
        super().__init__(_VENDOR_MESSAGES[category])


def vendor_category_for_status(status_code: Optional[int], body: str = "") -> str:
    """Map a vendor HTTP status (and body hints) to a vendor error category."""
    if status_code == 429:
        return VENDOR_RATE_LIMITED
    if status_code == 402 or "quota_exceeded" in (body or ""):
        return VENDOR_QUOTA_EXHAUSTED
    return VENDOR_FAILURE
