"""
Fluency practice backend
Scenario chat, speech-to-text and text-to-speech behind the credit entitlement gate
"""

from pathlib import Path
import logging
import traceback

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

# Import routers
from routers.chat_router import chat_router
from routers.speech_router import speech_router
from routers.credits_router import router as credits_router
from utils.rate_limit import RateLimiterMiddleware
from utils.errors import AppError
from database import init_db
from config.settings import settings

# ============================================================================
# LOGGING
# ============================================================================

# Write ALL events to ./logs/app.log and stderr
LOGS_DIR = Path("./logs")
LOGS_DIR.mkdir(exist_ok=True)
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.FileHandler(LOGS_DIR / "app.log"),
        logging.StreamHandler()
    ]
)
logger = logging.getLogger(__name__)

from backend.utils.responses import error_response, validation_error_response

# ============================================================================
# FASTAPI APP SETUP
# ============================================================================

app = FastAPI(title="Fluency Practice API")


def _is_render_env() -> bool:
    """Check if running in Render.com environment"""
    return bool(settings.render or settings.render_external_url or settings.render_service_name)


# Uncaught exception middleware - logs all unhandled exceptions and returns 500
class UncaughtExceptionMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):
        try:
            return await call_next(request)
        except Exception as e:
            logger.error(f"Uncaught exception: {e}\n{traceback.format_exc()}")
            return JSONResponse(
                status_code=500,
                content={"error": "Internal Server Error"}
            )


# Phase 1: Required API keys for startup validation
REQUIRED_KEYS = {
    "JWT_SECRET_KEY": lambda: settings.jwt_secret_key,
    "AI_GATEWAY_API_KEY": lambda: settings.ai_gateway_api_key,
    "ELEVENLABS_API_KEY": lambda: settings.elevenlabs_api_key,
}


# Security headers middleware
class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses: HSTS, X-Frame-Options, X-Content-Type-Options"""
    async def dispatch(self, request, call_next):
        response = await call_next(request)

        # Only set in production (Render environment) where HTTPS is guaranteed
        if _is_render_env():
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-Content-Type-Options"] = "nosniff"

        return response


app.add_middleware(UncaughtExceptionMiddleware)
app.add_middleware(RateLimiterMiddleware)
app.add_middleware(SecurityHeadersMiddleware)

# CORS MUST be near the bottom
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.frontend_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ============================================================================
# ERROR HANDLERS
# ============================================================================


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error(f"{request.url.path} failed: {exc.__class__.__name__}: {exc.message}")
    return error_response(exc.message, status=exc.status_code)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if any(err.get("type") == "json_invalid" for err in errors):
        return error_response("Invalid JSON in request body", status=400)
    return validation_error_response(errors)


# ============================================================================
# STARTUP CHECKS
# ============================================================================


@app.on_event("startup")
async def validate_keys():
    """Validate required API keys are present (non-fatal)"""
    missing = [key for key, value in REQUIRED_KEYS.items() if not value()]
    if missing:
        logger.warning(f"⚠️ Missing API keys: {missing}")
    else:
        logger.info("🔐 All API keys loaded successfully")


@app.on_event("startup")
async def initialize_database():
    """Create the profile and credit ledger tables."""
    try:
        await init_db()
        logger.info("✅ Database initialized successfully")
    except Exception as e:
        logger.error(f"❌ Database initialization failed: {e}")
        raise


@app.get("/health")
async def health():
    return {"ok": True}


# ============================================================================
# INCLUDE ROUTERS
# ============================================================================
app.include_router(chat_router)
app.include_router(speech_router)
app.include_router(credits_router)

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
