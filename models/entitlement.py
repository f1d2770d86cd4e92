from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class EntitlementDecision(BaseModel):
    """
    Outcome of one gate check. Produced per request, never persisted or cached.

    The gate only returns allowed decisions. Denials are raised as
    CreditDenied subclasses, which carry the same `reason` tag
    ("trial_expired", "credits_exhausted", "audio_credits_exhausted") and are
    rendered as 402 {"error": message}. `reason` is therefore unset on
    returned decisions and dropped from `to_public()`.
    """

    model_config = ConfigDict(populate_by_name=True)

    allowed: bool
    is_paid_plan: bool = Field(alias="isPaidPlan")
    reason: Optional[str] = None
    remaining_credits: Optional[int] = Field(default=None, alias="remainingCredits")
    remaining_audio_credits: Optional[int] = Field(default=None, alias="remainingAudioCredits")

    def to_public(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)
