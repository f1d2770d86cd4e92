"""
Configuration settings for the application
"""
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Normalized Plan IDs
PLAN_FREE_TRIAL = "free_trial"
PLAN_BEGINNER = "beginner"
PLAN_PRO = "pro"
PLAN_FLUENCY_PLUS = "fluency_plus"

# Plans that bypass metering entirely
PAID_PLANS = frozenset({PLAN_BEGINNER, PLAN_PRO, PLAN_FLUENCY_PLUS})


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )

    # Token verification (hosted auth platform signs HS256 tokens with this secret)
    jwt_secret_key: Optional[str] = Field(default=None, alias="JWT_SECRET_KEY")
    jwt_audience: str = Field(default="authenticated", alias="JWT_AUDIENCE")

    # Infrastructure configuration
    redis_url: Optional[str] = Field(default=None, alias="REDIS_URL")
    database_url: Optional[str] = Field(default="sqlite+aiosqlite:///./sql_app.db", alias="DATABASE_URL")

    # AI gateway (OpenAI-compatible chat/completions)
    ai_gateway_url: str = Field(default="https://ai.gateway.lovable.dev/v1", alias="AI_GATEWAY_URL")
    ai_gateway_api_key: Optional[str] = Field(default=None, alias="AI_GATEWAY_API_KEY")
    chat_model: str = Field(default="google/gemini-3-flash-preview", alias="CHAT_MODEL")
    transcription_model: str = Field(default="google/gemini-2.5-flash", alias="TRANSCRIPTION_MODEL")
    analysis_model: str = Field(default="google/gemini-2.5-flash", alias="ANALYSIS_MODEL")

    # ElevenLabs text-to-speech
    elevenlabs_api_key: Optional[str] = Field(default=None, alias="ELEVENLABS_API_KEY")
    elevenlabs_base_url: str = Field(default="https://api.elevenlabs.io/v1", alias="ELEVENLABS_BASE_URL")
    elevenlabs_model_id: str = Field(default="eleven_multilingual_v2", alias="ELEVENLABS_MODEL_ID")

    # Trial ledger defaults
    default_total_credits: int = Field(default=70, alias="DEFAULT_TOTAL_CREDITS")
    default_total_audio_credits: int = Field(default=14, alias="DEFAULT_TOTAL_AUDIO_CREDITS")
    trial_days: int = Field(default=7, alias="TRIAL_DAYS")

    # Demo mode (no account, in-memory counters only)
    demo_max_messages: int = Field(default=5, alias="DEMO_MAX_MESSAGES")
    demo_max_audio_requests: int = Field(default=10, alias="DEMO_MAX_AUDIO_REQUESTS")
    demo_window_seconds: int = Field(default=86400, alias="DEMO_WINDOW_SECONDS")
    demo_max_tracked_clients: int = Field(default=10000, alias="DEMO_MAX_TRACKED_CLIENTS")

    # Per-IP request rate limit
    rate_limit_per_minute: int = Field(default=30, alias="RATE_LIMIT_PER_MINUTE")

    # Vendor HTTP timeout in seconds
    vendor_timeout: float = Field(default=60.0, alias="VENDOR_TIMEOUT")

    # Frontend configuration
    frontend_url: Optional[str] = Field(default="http://localhost:5173", alias="FRONTEND_URL")

    # Render.com deployment configuration
    render: Optional[str] = Field(default=None, alias="RENDER")
    render_external_url: Optional[str] = Field(default=None, alias="RENDER_EXTERNAL_URL")
    render_service_name: Optional[str] = Field(default=None, alias="RENDER_SERVICE_NAME")

    # Environment configuration
    env: Optional[str] = Field(default=None, alias="ENV")


# Instantiate settings object
settings = Settings()

# Determine if we're in production mode
IS_PRODUCTION = bool(settings.render) or bool(settings.env and settings.env.lower() == "production")
