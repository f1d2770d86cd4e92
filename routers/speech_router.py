"""
Speech Router - speech-to-text and text-to-speech (one audio credit each)
"""
from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from auth import resolve_caller
from database import get_db
from models.requests import SpeechToTextRequest, TextToSpeechRequest
from services.admission import admit
from services.conversation_service import ConversationService, get_conversation_service
from services.tts_service import TextToSpeechService, get_tts_service
from utils.shared_utils import log_endpoint_event

# Create router
speech_router = APIRouter(tags=["speech"])


@speech_router.post("/speech-to-text")
async def speech_to_text(
    http_request: Request,
    request: SpeechToTextRequest,
    db: AsyncSession = Depends(get_db),
    conversation_service: ConversationService = Depends(get_conversation_service),
):
    """Transcribe a recorded answer"""
    caller = resolve_caller(http_request, request.is_demo_mode)
    await admit(caller, db, is_audio_request=True)

    text = await conversation_service.transcribe(request.audio, request.audio_format)

    log_endpoint_event("/speech-to-text", str(caller), "success", {
        "mime_type": request.mime_type,
        "chars": len(text),
    })
    return {"text": text}


@speech_router.post("/text-to-speech")
async def text_to_speech(
    http_request: Request,
    request: TextToSpeechRequest,
    db: AsyncSession = Depends(get_db),
    tts_service: TextToSpeechService = Depends(get_tts_service),
):
    """Synthesize the persona's reply as MP3"""
    caller = resolve_caller(http_request, request.is_demo_mode)
    await admit(caller, db, is_audio_request=True)

    audio = await tts_service.synthesize(request.text, request.language)

    log_endpoint_event("/text-to-speech", str(caller), "success", {
        "language": request.language,
        "bytes": len(audio),
    })
    return Response(content=audio, media_type="audio/mpeg")
