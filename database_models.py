from sqlalchemy import Column, Integer, String, DateTime, CheckConstraint
from datetime import datetime, timezone
from database import Base

from config.settings import PLAN_FREE_TRIAL


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserProfile(Base):
    """
    Profile row provisioned by the hosted auth platform at signup.
    Only the plan is consulted for entitlement decisions.
    """
    __tablename__ = "user_profiles"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, unique=True, nullable=False, index=True)
    plan = Column(String, nullable=False, default=PLAN_FREE_TRIAL)
    name = Column(String, nullable=False, default="")
    email = Column(String, nullable=True)
    language = Column(String, nullable=False, default="english")
    level = Column(String, nullable=False, default="intermediate")
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class UserCredits(Base):
    """
    Credit ledger for a metered (trial) user.
    One row per user; used_* counters only move through the entitlement gate.
    """
    __tablename__ = "user_credits"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, unique=True, nullable=False, index=True)
    total_credits = Column(Integer, nullable=False)
    used_credits = Column(Integer, nullable=False, default=0)
    total_audio_credits = Column(Integer, nullable=False)
    used_audio_credits = Column(Integer, nullable=False, default=0)
    trial_started_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    trial_ends_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("total_credits >= 0", name="ck_total_credits_non_negative"),
        CheckConstraint("used_credits >= 0", name="ck_used_credits_non_negative"),
        CheckConstraint("total_audio_credits >= 0", name="ck_total_audio_credits_non_negative"),
        CheckConstraint("used_audio_credits >= 0", name="ck_used_audio_credits_non_negative"),
        CheckConstraint("used_credits <= total_credits", name="ck_used_credits_within_total"),
        CheckConstraint("used_audio_credits <= total_audio_credits", name="ck_used_audio_credits_within_total"),
    )

    @property
    def remaining_credits(self) -> int:
        return max(0, self.total_credits - self.used_credits)

    @property
    def remaining_audio_credits(self) -> int:
        return max(0, self.total_audio_credits - self.used_audio_credits)
