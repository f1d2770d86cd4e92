"""
Chat Router - streamed scenario conversation and conversation analysis
"""
from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from auth import resolve_caller
from database import get_db
from models.requests import AnalyzeRequest, ChatRequest
from services.admission import admit
from services.conversation_service import ConversationService, get_conversation_service
from services.prompts import build_system_prompt
from utils.shared_utils import log_endpoint_event

# Create router
chat_router = APIRouter(tags=["chat"])


@chat_router.post("/chat")
async def chat(
    http_request: Request,
    request: ChatRequest,
    db: AsyncSession = Depends(get_db),
    conversation_service: ConversationService = Depends(get_conversation_service),
):
    """Stream the persona's reply as server-sent events (text turn: one credit)"""
    caller = resolve_caller(http_request, request.is_demo_mode)
    decision = await admit(caller, db, is_audio_request=False)

    system_prompt = build_system_prompt(
        scenario_id=request.scenario_id,
        user_language=request.user_language,
        user_level=request.user_level,
        adaptive_level=request.adaptive_level,
        include_instant_feedback=request.include_instant_feedback,
        ui_language=request.ui_language,
    )
    stream = await conversation_service.open_chat_stream(
        system_prompt,
        [m.model_dump() for m in request.messages],
    )

    log_endpoint_event("/chat", str(caller), "streaming", {
        "scenario": request.scenario_id,
        "language": request.user_language,
        "messages": len(request.messages),
        "remaining_credits": decision.remaining_credits if decision else None,
    })
    return StreamingResponse(
        stream,
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache"},
    )


@chat_router.post("/analyze-conversation")
async def analyze_conversation(
    http_request: Request,
    request: AnalyzeRequest,
    conversation_service: ConversationService = Depends(get_conversation_service),
):
    """Score a finished conversation (signed-in and demo users, not metered)"""
    caller = resolve_caller(http_request, request.is_demo_mode)

    report = await conversation_service.analyze(
        messages=[m.model_dump() for m in request.messages],
        scenario_id=request.scenario_id,
        user_level=request.user_level,
        user_language=request.user_language,
    )
    log_endpoint_event("/analyze-conversation", str(caller), "success", {
        "overall_score": report.get("overallScore"),
        "language": request.user_language,
    })
    return report
