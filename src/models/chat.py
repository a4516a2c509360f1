"""Pydantic models for the AI assistant endpoints."""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import Field

from src.models.base import HealthNestBase


class ChatMessageCreate(HealthNestBase):
    message: str = Field(min_length=1, max_length=1000)


class ChatReply(HealthNestBase):
    response: str
    session_id: uuid.UUID
    response_time: int  # milliseconds
    tokens_used: int
    success: bool = True


class ChatMessageRead(HealthNestBase):
    id: int
    session_id: uuid.UUID
    role: str
    content: str
    tokens_used: int = 0
    response_time: int = 0
    message_index: int
    timestamp: datetime


class ChatHistoryRead(HealthNestBase):
    session_id: uuid.UUID | None = None
    user_id: int
    messages: list[ChatMessageRead] = Field(default_factory=list)
    success: bool = True


class AIStatusRead(HealthNestBase):
    ai_service_healthy: bool
    model: str
    error: str | None = None
