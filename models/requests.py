"""
Request schemas for the conversation, speech and credits endpoints.

Unknown fields are rejected and every string is length-bounded so oversized
payloads fail validation before any work is done.
"""
import base64
import binascii
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictStr, field_validator

Language = Literal["english", "spanish", "french", "italian", "german"]
Scenario = Literal["restaurant", "interview", "hotel", "airport", "shopping", "business", "hospital", "transport"]
Level = Literal["A1", "A2", "B1", "B2", "C1", "C2", "basic", "intermediate", "advanced"]
Role = Literal["user", "assistant", "system"]

MAX_MESSAGE_CHARS = 4000
MAX_MESSAGES = 100
MAX_TTS_CHARS = 5000
MAX_AUDIO_BASE64_CHARS = 15 * 1024 * 1024


class StrictRequest(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class ChatMessage(StrictRequest):
    role: Role
    content: StrictStr = Field(..., min_length=1, max_length=MAX_MESSAGE_CHARS)


class ChatRequest(StrictRequest):
    messages: List[ChatMessage] = Field(..., min_length=1, max_length=MAX_MESSAGES)
    scenario_id: Scenario = Field(..., alias="scenarioId")
    user_level: Optional[Level] = Field(default=None, alias="userLevel")
    user_language: Language = Field(default="english", alias="userLanguage")
    adaptive_level: Optional[Level] = Field(default=None, alias="adaptiveLevel")
    include_instant_feedback: StrictBool = Field(default=False, alias="includeInstantFeedback")
    ui_language: Optional[StrictStr] = Field(default=None, max_length=10, alias="uiLanguage")
    is_demo_mode: StrictBool = Field(default=False, alias="isDemoMode")


class AnalyzeRequest(StrictRequest):
    messages: List[ChatMessage] = Field(..., min_length=1, max_length=MAX_MESSAGES)
    scenario_id: Scenario = Field(..., alias="scenarioId")
    user_level: Optional[Level] = Field(default=None, alias="userLevel")
    user_language: Language = Field(default="english", alias="userLanguage")
    is_demo_mode: StrictBool = Field(default=False, alias="isDemoMode")


class SpeechToTextRequest(StrictRequest):
    audio: StrictStr = Field(..., min_length=1, max_length=MAX_AUDIO_BASE64_CHARS)
    mime_type: StrictStr = Field(default="audio/webm", max_length=100, alias="mimeType")
    language: Language = "english"
    is_demo_mode: StrictBool = Field(default=False, alias="isDemoMode")

    @field_validator("audio")
    @classmethod
    def audio_must_be_base64(cls, value: str) -> str:
        try:
            base64.b64decode(value, validate=True)
        except (binascii.Error, ValueError):
            raise ValueError("Audio must be base64 encoded")
        return value

    @field_validator("mime_type")
    @classmethod
    def mime_type_must_be_audio(cls, value: str) -> str:
        if not value.startswith("audio/"):
            raise ValueError("Invalid audio MIME type")
        return value

    @property
    def audio_format(self) -> str:
        return "webm" if "webm" in self.mime_type else "wav"


class TextToSpeechRequest(StrictRequest):
    text: StrictStr = Field(..., min_length=1, max_length=MAX_TTS_CHARS)
    language: Language = "english"
    is_demo_mode: StrictBool = Field(default=False, alias="isDemoMode")


class CreditUseRequest(StrictRequest):
    kind: Literal["text", "audio"] = "text"
