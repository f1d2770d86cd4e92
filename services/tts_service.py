"""
Text-to-Speech Service - ElevenLabs voice synthesis
"""
import logging
from typing import Optional

import httpx

from config.settings import settings
from utils.errors import ServiceNotConfigured, VendorError, vendor_category_for_status

logger = logging.getLogger(__name__)

DEFAULT_VOICE_ID = "JBFqnCBsd6RMkjVDRZzb"

# Practice language -> ElevenLabs voice
VOICE_MAP = {
    "english": "JBFqnCBsd6RMkjVDRZzb",
    "spanish": "onwK4e9ZLuTAKqWW03F9",
    "french": "EXAVITQu4vr4xnSDxMaL",
    "german": "N2lVS1w4EtoT3dr4eOWO",
    "italian": "XB0fDUnXU5powFXDhCwa",
}

VOICE_SETTINGS = {
    "stability": 0.5,
    "similarity_boost": 0.75,
    "style": 0.3,
    "use_speaker_boost": True,
}


def voice_for_language(language: Optional[str]) -> str:
    return VOICE_MAP.get((language or "").lower(), DEFAULT_VOICE_ID)


class TextToSpeechService:
    """Service class for ElevenLabs speech synthesis"""

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api_key = settings.elevenlabs_api_key
        self.transport = transport

    async def synthesize(self, text: str, language: str = "english") -> bytes:
        """
        Generate speech and return the complete MP3 payload.

        Raises:
            ServiceNotConfigured: If ELEVENLABS_API_KEY is missing
            VendorError: On any ElevenLabs failure
        """
        if not self.api_key:
            logger.error("ELEVENLABS_API_KEY is not set. Cannot generate speech.")
            raise ServiceNotConfigured("Text-to-speech is not configured")

        voice_id = voice_for_language(language)
        logger.info(f"[TTS] Generating speech | chars={len(text)} language={language} voice={voice_id}")

        url = f"{settings.elevenlabs_base_url}/text-to-speech/{voice_id}"
        headers = {
            "Accept": "audio/mpeg",
            "Content-Type": "application/json",
            "xi-api-key": self.api_key,
        }
        payload = {
            "text": text,
            "model_id": settings.elevenlabs_model_id,
            "voice_settings": VOICE_SETTINGS,
        }

        try:
            async with httpx.AsyncClient(transport=self.transport, timeout=settings.vendor_timeout) as client:
                res = await client.post(url, headers=headers, json=payload)
        except httpx.RequestError as e:
            logger.warning(f"[TTS] ElevenLabs request failed: {e}")
            raise VendorError() from e

        if not res.is_success:
            logger.warning(f"[TTS] ElevenLabs returned {res.status_code}: {res.text[:500]}")
            raise VendorError(vendor_category_for_status(res.status_code, res.text))

        return res.content


_tts_service = TextToSpeechService()


def get_tts_service() -> TextToSpeechService:
    """FastAPI dependency returning the shared TTS service."""
    return _tts_service
