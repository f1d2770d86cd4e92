"""
Conversation Service - AI gateway calls for chat, transcription and analysis
"""
import json
import logging
import re
from typing import AsyncIterator, List, Optional

import openai
from openai import AsyncOpenAI

from config.settings import settings
from services.prompts import TRANSCRIPTION_PROMPT, build_analysis_prompts
from utils.errors import ServiceNotConfigured, VendorError, vendor_category_for_status

logger = logging.getLogger(__name__)

# Returned when the analysis model does not produce parseable JSON
FALLBACK_ANALYSIS = {
    "overallScore": 70,
    "grammar": 70,
    "vocabulary": 70,
    "clarity": 75,
    "fluency": 70,
    "contextCoherence": 75,
    "errors": [],
    "improvements": ["Continue praticando regularmente", "Tente usar vocabulário mais variado"],
    "correctPhrases": ["Boa tentativa de manter a conversa fluindo"],
    "estimatedLevel": "B1",
}

_CODE_FENCE = re.compile(r"```(?:json)?\n?")


def to_vendor_error(error: openai.APIError) -> VendorError:
    """Translate an OpenAI SDK error into the stable vendor taxonomy."""
    if isinstance(error, openai.APIStatusError):
        body = json.dumps(error.body, default=str) if error.body is not None else ""
        logger.warning(f"AI gateway error {error.status_code}: {body[:500]}")
        return VendorError(vendor_category_for_status(error.status_code, body))
    logger.warning(f"AI gateway request failed: {error}")
    return VendorError()


def parse_analysis(content: str) -> dict:
    """Parse the model's JSON report, stripping markdown fences; fall back to a neutral report."""
    cleaned = _CODE_FENCE.sub("", content or "").strip()
    try:
        report = json.loads(cleaned)
    except json.JSONDecodeError as e:
        logger.warning(f"Analysis JSON parse error, using fallback: {e}")
        return dict(FALLBACK_ANALYSIS)
    if not isinstance(report, dict):
        logger.warning("Analysis response is not a JSON object, using fallback")
        return dict(FALLBACK_ANALYSIS)
    return report


class ConversationService:
    """Service class for the OpenAI-compatible AI gateway"""

    def __init__(self, client: Optional[AsyncOpenAI] = None):
        self._client = client

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            if not settings.ai_gateway_api_key:
                logger.error("AI_GATEWAY_API_KEY is not set. Cannot call the AI gateway.")
                raise ServiceNotConfigured("AI gateway is not configured")
            self._client = AsyncOpenAI(
                api_key=settings.ai_gateway_api_key,
                base_url=settings.ai_gateway_url,
                timeout=settings.vendor_timeout,
            )
        return self._client

    async def open_chat_stream(self, system_prompt: str, messages: List[dict]) -> AsyncIterator[bytes]:
        """
        Start a streamed completion and return an iterator of SSE-encoded chunks.

        The request is sent (and vendor errors raised as VendorError) before
        this returns, so callers can still answer with a JSON error.
        """
        try:
            stream = await self.client.chat.completions.create(
                model=settings.chat_model,
                messages=[{"role": "system", "content": system_prompt}, *messages],
                stream=True,
            )
        except openai.APIError as e:
            raise to_vendor_error(e) from e
        return self._relay(stream)

    async def _relay(self, stream) -> AsyncIterator[bytes]:
        """Forward chunks in vendor order; closing the iterator abandons the vendor stream."""
        try:
            async for chunk in stream:
                yield f"data: {chunk.model_dump_json(exclude_none=True)}\n\n".encode("utf-8")
            yield b"data: [DONE]\n\n"
        except openai.APIError as e:
            err = to_vendor_error(e)
            yield f"data: {json.dumps({'error': err.message})}\n\n".encode("utf-8")
        finally:
            await stream.close()

    async def transcribe(self, audio_base64: str, audio_format: str) -> str:
        """Transcribe base64 audio (webm or wav) and return the trimmed text."""
        try:
            response = await self.client.chat.completions.create(
                model=settings.transcription_model,
                messages=[{
                    "role": "user",
                    "content": [
                        {"type": "text", "text": TRANSCRIPTION_PROMPT},
                        {"type": "input_audio", "input_audio": {"data": audio_base64, "format": audio_format}},
                    ],
                }],
            )
        except openai.APIError as e:
            raise to_vendor_error(e) from e

        if not response.choices:
            return ""
        return (response.choices[0].message.content or "").strip()

    async def analyze(self, messages: List[dict], scenario_id: str, user_level: Optional[str], user_language: str) -> dict:
        """Score a finished conversation and return the feedback report."""
        system_prompt, user_prompt = build_analysis_prompts(messages, scenario_id, user_level, user_language)
        try:
            response = await self.client.chat.completions.create(
                model=settings.analysis_model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
            )
        except openai.APIError as e:
            raise to_vendor_error(e) from e

        content = response.choices[0].message.content if response.choices else ""
        logger.info(f"Analysis response received | length={len(content or '')}")
        return parse_analysis(content)


_conversation_service = ConversationService()


def get_conversation_service() -> ConversationService:
    """FastAPI dependency returning the shared gateway service."""
    return _conversation_service
