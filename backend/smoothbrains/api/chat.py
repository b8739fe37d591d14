"""
SmoothBrains Backend: Chat API (POST /api/chat, /summary, /session-name, /wrinkle-points)
"""

from fastapi import APIRouter, HTTPException, Request

from smoothbrains import conversation
from smoothbrains.config import generate_error_code, log
from smoothbrains.llm import LLMError, LLMValidationError
from smoothbrains.models import ChatRequest, ChatSummaryRequest, SessionNameRequest, WrinklePointsRequest
from smoothbrains.rate_limit import LLM_RATE_LIMIT, limiter

router = APIRouter(prefix="/api/chat", tags=["chat"])


@router.post("/summary")
@limiter.limit(LLM_RATE_LIMIT)
async def summary(request: Request, body: ChatSummaryRequest):
    """
    POST /api/chat/summary

    Returns: { summary, sentences }
    """
    if not body.messages:
        raise HTTPException(status_code=400, detail="No messages provided")

    try:
        return await conversation.summarize_conversation(body.messages)
    except LLMError as e:
        code = generate_error_code()
        log("ERROR", "conversation summary failed", messages=len(body.messages), error=str(e), error_code=code)
        raise HTTPException(
            status_code=500,
            detail={"message": "Could not summarize the conversation.", "error_code": code},
        )


@router.post("/session-name")
@limiter.limit(LLM_RATE_LIMIT)
async def session_name(request: Request, body: SessionNameRequest):
    """POST /api/chat/session-name. Returns: { name }"""
    return {"name": await conversation.generate_session_name(body.context)}


@router.post("/wrinkle-points")
@limiter.limit(LLM_RATE_LIMIT)
async def wrinkle_points(request: Request, body: WrinklePointsRequest):
    """POST /api/chat/wrinkle-points. Returns: { pointChange, explanation }"""
    return await conversation.evaluate_wrinkle_points(
        body.user_message,
        body.current_idea,
        body.conversation_history,
        body.current_wrinkle_points,
    )


@router.post("")
@limiter.limit(LLM_RATE_LIMIT)
async def chat(request: Request, body: ChatRequest):
    """
    POST /api/chat

    With generatePMFAnalysis: { response, pmfAnalysis, suggestions }.
    Otherwise: { response, suggestions, metadata }.
    """
    try:
        if body.generate_pmf_analysis:
            return await conversation.chat_pmf_analysis(body.idea or body.message)
        return await conversation.chat_reply(
            body.message,
            body.conversation_history,
            idea=body.idea,
            current_question=body.current_question,
        )
    except (LLMError, LLMValidationError) as e:
        code = generate_error_code()
        log("ERROR", "chat failed", pmf=body.generate_pmf_analysis, error=str(e), error_code=code)
        raise HTTPException(
            status_code=500,
            detail={"message": "The assistant is unavailable right now. Please try again.", "error_code": code},
        )
