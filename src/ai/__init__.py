"""AI health assistant backed by a local Ollama model."""

from src.ai.chat import ChatService, PostgresChatStore
from src.ai.context import UserContext, build_healthcare_prompt, build_user_context
from src.ai.ollama import OllamaClient, OllamaError

__all__ = [
    "ChatService",
    "OllamaClient",
    "OllamaError",
    "PostgresChatStore",
    "UserContext",
    "build_healthcare_prompt",
    "build_user_context",
]
