"""Chat sessions, message persistence and the question/answer flow."""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Protocol

from src.ai.context import UserContext, build_healthcare_prompt, serialize_context
from src.ai.ollama import OllamaClient, OllamaError
from src.services.database import execute, fetch, fetchrow, get_connection

logger = logging.getLogger("healthnest.ai.chat")

APOLOGY_MESSAGE = (
    "I'm having trouble processing your request right now. "
    "Please try again in a few moments."
)


# ---------------------------------------------------------------------------
# Types
# ---------------------------------------------------------------------------


@dataclass
class ChatSession:
    session_id: uuid.UUID
    user_id: int
    session_type: str = "general"
    context_data: str = ""
    is_active: bool = True
    last_used_at: datetime | None = None


@dataclass
class ChatMessage:
    session_id: uuid.UUID
    role: str  # "user" | "assistant"
    content: str
    tokens_used: int = 0
    response_time: int = 0
    message_index: int = 0
    id: int | None = None
    timestamp: datetime | None = None


@dataclass
class ChatResult:
    response: str
    session_id: uuid.UUID
    response_time: int
    tokens_used: int


@dataclass
class ConversationHistory:
    user_id: int
    session_id: uuid.UUID | None = None
    messages: list[ChatMessage] = field(default_factory=list)


def estimate_tokens(text: str) -> int:
    return len(text) // 4


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------


class ChatStore(Protocol):
    async def active_session(self, user_id: int) -> ChatSession | None: ...

    async def create_session(self, session: ChatSession) -> ChatSession: ...

    async def add_message(self, message: ChatMessage) -> ChatMessage: ...

    async def touch_session(self, session_id: uuid.UUID) -> None: ...

    async def list_messages(
        self, session_id: uuid.UUID, limit: int | None = None
    ) -> list[ChatMessage]: ...

    async def clear(self, user_id: int) -> int: ...


def _session_from_row(row: Any) -> ChatSession:
    return ChatSession(
        session_id=row["session_id"],
        user_id=row["user_id"],
        session_type=row["session_type"],
        context_data=row["context_data"] or "",
        is_active=row["is_active"],
        last_used_at=row["last_used_at"],
    )


def _message_from_row(row: Any) -> ChatMessage:
    return ChatMessage(
        id=row["id"],
        session_id=row["session_id"],
        role=row["role"],
        content=row["content"],
        tokens_used=row["tokens_used"],
        response_time=row["response_time"],
        message_index=row["message_index"],
        timestamp=row["timestamp"],
    )


class PostgresChatStore:
    """``chat_sessions`` / ``chat_messages`` tables over the shared pool."""

    async def active_session(self, user_id: int) -> ChatSession | None:
        row = await fetchrow(
            """
            SELECT * FROM chat_sessions
            WHERE user_id = $1 AND is_active
            ORDER BY last_used_at DESC
            LIMIT 1
            """,
            user_id,
        )
        return _session_from_row(row) if row else None

    async def create_session(self, session: ChatSession) -> ChatSession:
        row = await fetchrow(
            """
            INSERT INTO chat_sessions (
                session_id, user_id, session_type, context_data, is_active, last_used_at
            ) VALUES ($1, $2, $3, $4, TRUE, NOW())
            RETURNING *
            """,
            session.session_id, session.user_id, session.session_type, session.context_data,
        )
        return _session_from_row(row)

    async def add_message(self, message: ChatMessage) -> ChatMessage:
        # message_index is 1-based within the session.  Locking the session
        # row serializes concurrent writers so the count is never read twice.
        async with get_connection() as conn:
            await conn.execute(
                "SELECT 1 FROM chat_sessions WHERE session_id = $1 FOR UPDATE",
                message.session_id,
            )
            row = await conn.fetchrow(
                """
                INSERT INTO chat_messages (
                    session_id, role, content, tokens_used, response_time, message_index
                ) VALUES (
                    $1, $2, $3, $4, $5,
                    (SELECT COUNT(*) + 1 FROM chat_messages WHERE session_id = $1)
                )
                RETURNING *
                """,
                message.session_id, message.role, message.content,
                message.tokens_used, message.response_time,
            )
        return _message_from_row(row)

    async def touch_session(self, session_id: uuid.UUID) -> None:
        await execute(
            "UPDATE chat_sessions SET last_used_at = NOW() WHERE session_id = $1",
            session_id,
        )

    async def list_messages(
        self, session_id: uuid.UUID, limit: int | None = None
    ) -> list[ChatMessage]:
        query = "SELECT * FROM chat_messages WHERE session_id = $1 ORDER BY message_index ASC"
        if limit and limit > 0:
            rows = await fetch(query + " LIMIT $2", session_id, limit)
        else:
            rows = await fetch(query, session_id)
        return [_message_from_row(r) for r in rows]

    async def clear(self, user_id: int) -> int:
        async with get_connection() as conn:
            await conn.execute(
                """
                DELETE FROM chat_messages
                WHERE session_id IN (SELECT session_id FROM chat_sessions WHERE user_id = $1)
                """,
                user_id,
            )
            status = await conn.execute("DELETE FROM chat_sessions WHERE user_id = $1", user_id)
        return int(status.split()[-1])


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


ContextLoader = Callable[[int], Awaitable[UserContext]]


class ChatService:
    """Answers health questions using the user's context and a local LLM."""

    def __init__(
        self,
        client: OllamaClient,
        store: ChatStore,
        context_loader: ContextLoader,
    ) -> None:
        self.client = client
        self.store = store
        self._load_context = context_loader

    async def _session_for(self, context: UserContext) -> ChatSession:
        session = await self.store.active_session(context.user_id)
        if session is not None:
            return session
        session = await self.store.create_session(
            ChatSession(
                session_id=uuid.uuid4(),
                user_id=context.user_id,
                session_type=context.user_role,
                context_data=serialize_context(context),
            )
        )
        logger.info("Opened chat session %s for user %d", session.session_id, context.user_id)
        return session

    async def process_message(self, user_id: int, message: str) -> ChatResult:
        """Answer one question from ``user_id``.

        The user's message is always persisted once a session exists.  If the
        model call fails an apology is stored as the assistant turn and
        ``OllamaError`` propagates to the caller.
        """
        started = time.monotonic()
        await self.client.check_health()

        context = await self._load_context(user_id)
        session = await self._session_for(context)
        prompt = build_healthcare_prompt(context, message)

        await self.store.add_message(
            ChatMessage(session_id=session.session_id, role="user", content=message)
        )

        try:
            reply = await self.client.generate(prompt)
        except OllamaError:
            logger.warning("Model call failed for user %d, storing apology", user_id)
            await self.store.add_message(
                ChatMessage(
                    session_id=session.session_id, role="assistant", content=APOLOGY_MESSAGE
                )
            )
            raise

        elapsed_ms = int((time.monotonic() - started) * 1000)
        saved = await self.store.add_message(
            ChatMessage(
                session_id=session.session_id,
                role="assistant",
                content=reply.response,
                tokens_used=estimate_tokens(reply.response),
                response_time=elapsed_ms,
            )
        )
        await self.store.touch_session(session.session_id)

        return ChatResult(
            response=reply.response,
            session_id=session.session_id,
            response_time=elapsed_ms,
            tokens_used=saved.tokens_used,
        )

    async def history(self, user_id: int, limit: int | None = 50) -> ConversationHistory:
        session = await self.store.active_session(user_id)
        if session is None:
            return ConversationHistory(user_id=user_id)
        messages = await self.store.list_messages(session.session_id, limit)
        return ConversationHistory(
            user_id=user_id, session_id=session.session_id, messages=messages
        )

    async def clear(self, user_id: int) -> None:
        removed = await self.store.clear(user_id)
        logger.info("Cleared %d chat session(s) for user %d", removed, user_id)
