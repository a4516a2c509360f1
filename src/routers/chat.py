"""AI assistant endpoints."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Query

from src.ai.context import UserNotFoundError
from src.ai.ollama import OllamaError
from src.dependencies import AppSettings, Chat, CurrentUser
from src.models.base import ErrorDetail
from src.models.chat import AIStatusRead, ChatHistoryRead, ChatMessageCreate, ChatReply

router = APIRouter(prefix="/ai", tags=["ai"])
logger = logging.getLogger("healthnest.chat")


@router.post(
    "/chat",
    response_model=ChatReply,
    responses={503: {"model": ErrorDetail}, 404: {"model": ErrorDetail}},
)
async def chat(
    user: CurrentUser, body: ChatMessageCreate, service: Chat, settings: AppSettings
) -> Any:
    if len(body.message) > settings.chat_max_message_length:
        raise HTTPException(status_code=400, detail="Message is too long")
    try:
        result = await service.process_message(user.user_id, body.message)
    except OllamaError as exc:
        logger.warning("AI request failed for user %d: %s", user.user_id, exc)
        raise HTTPException(
            status_code=503, detail="AI service is temporarily unavailable."
        ) from exc
    except UserNotFoundError as exc:
        raise HTTPException(status_code=404, detail="User not found") from exc
    return ChatReply(
        response=result.response,
        session_id=result.session_id,
        response_time=result.response_time,
        tokens_used=result.tokens_used,
    )


@router.get("/history", response_model=ChatHistoryRead)
async def history(
    user: CurrentUser,
    service: Chat,
    limit: int = Query(default=50, ge=0, le=500),
) -> Any:
    conversation = await service.history(user.user_id, limit)
    return ChatHistoryRead.model_validate(conversation)


@router.delete("/history", status_code=204)
async def clear_history(user: CurrentUser, service: Chat) -> None:
    await service.clear(user.user_id)


@router.get("/status", response_model=AIStatusRead)
async def status(user: CurrentUser, service: Chat, settings: AppSettings) -> Any:
    try:
        await service.client.check_health()
    except OllamaError as exc:
        return AIStatusRead(ai_service_healthy=False, model=settings.ollama_model, error=str(exc))
    return AIStatusRead(ai_service_healthy=True, model=settings.ollama_model)
