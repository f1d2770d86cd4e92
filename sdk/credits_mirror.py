"""
Client-side mirror of the credit ledger.

A read-through cache used for balance display and upgrade prompts. It is
advisory: the server-side Entitlement Gate is the only enforcement point,
and this copy may be stale (other tabs, other devices, concurrent requests).
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import httpx

logger = logging.getLogger(__name__)


class CreditsMirror:
    """Cached view of GET /api/credits with optimistic local decrements.

    Args:
        base_url: API root, e.g. "https://api.example.com"
        token: Bearer token of the signed-in user
        transport: Optional httpx transport (tests use httpx.MockTransport)
    """

    def __init__(self, base_url: str, token: str, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.transport = transport
        self.snapshot: Optional[Dict[str, Any]] = None
        self.error: Optional[str] = None

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Authorization": f"Bearer {self.token}"},
            transport=self.transport,
            timeout=10.0,
        )

    async def refetch(self) -> Optional[Dict[str, Any]]:
        """Reload the balance from the server. Keeps the old copy on failure."""
        try:
            async with self._client() as client:
                res = await client.get("/api/credits")
                res.raise_for_status()
                self.snapshot = res.json()
                self.error = None
        except httpx.HTTPError as e:
            logger.warning(f"Error fetching credits: {e}")
            self.error = "Failed to load credits"
        return self.snapshot

    @property
    def has_unlimited_credits(self) -> bool:
        return bool(self.snapshot and self.snapshot.get("hasUnlimitedCredits"))

    @property
    def remaining_credits(self) -> int:
        if not self.snapshot:
            return 0
        if self.has_unlimited_credits:
            return -1
        return max(0, self.snapshot.get("remainingCredits", 0))

    @property
    def remaining_audio_credits(self) -> int:
        if not self.snapshot:
            return 0
        if self.has_unlimited_credits:
            return -1
        return max(0, self.snapshot.get("remainingAudioCredits", 0))

    @property
    def is_expired(self) -> bool:
        if not self.snapshot or self.has_unlimited_credits:
            return False
        ends_at = self.snapshot.get("trialEndsAt")
        if ends_at:
            trial_end = datetime.fromisoformat(ends_at)
            if trial_end.tzinfo is None:
                trial_end = trial_end.replace(tzinfo=timezone.utc)
            return datetime.now(timezone.utc) > trial_end
        return bool(self.snapshot.get("isTrialExpired"))

    def can_send_message(self) -> bool:
        if self.has_unlimited_credits:
            return True
        return self.remaining_credits > 0 and not self.is_expired

    def can_use_audio(self) -> bool:
        return self.can_send_message() and (self.has_unlimited_credits or self.remaining_audio_credits > 0)

    async def use_credit(self) -> bool:
        return await self._use("text")

    async def use_audio_credit(self) -> bool:
        return await self._use("audio")

    async def _use(self, kind: str) -> bool:
        """
        Post the increment, then decrement the local copy once it is accepted.

        Returns False when the local copy says no balance is left or the
        write did not go through; a failed write leaves the local copy as it was.
        """
        if self.has_unlimited_credits:
            return True
        allowed = self.can_use_audio() if kind == "audio" else self.can_send_message()
        if not allowed:
            return False

        try:
            async with self._client() as client:
                res = await client.post("/api/credits/use", json={"kind": kind})
                res.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f"Error using credit: {e}")
            return False
        self._decrement_local(kind)
        return True

    def _decrement_local(self, kind: str) -> None:
        snap = self.snapshot
        snap["usedCredits"] = snap.get("usedCredits", 0) + 1
        snap["remainingCredits"] = max(0, snap.get("remainingCredits", 0) - 1)
        if kind == "audio":
            snap["usedAudioCredits"] = snap.get("usedAudioCredits", 0) + 1
            snap["remainingAudioCredits"] = max(0, snap.get("remainingAudioCredits", 0) - 1)
