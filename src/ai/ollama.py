"""Async client for a local Ollama language-model server."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from src.config import Settings

logger = logging.getLogger("healthnest.ai.ollama")


class OllamaError(Exception):
    """The model server is unreachable, unhealthy, or returned a bad reply."""


@dataclass
class OllamaReply:
    response: str
    done: bool = True
    model: str = ""


class OllamaClient:
    """Thin wrapper over the Ollama ``/api/generate`` and ``/api/tags`` endpoints."""

    def __init__(
        self,
        base_url: str = "http://localhost:11434",
        model: str = "healthbot",
        timeout: float = 60.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            base_url:    Root URL of the Ollama server.
            model:       Default model name for generation.
            timeout:     Request timeout in seconds.
            http_client: Optional pre-configured httpx client (for testing).
        """
        self.base_url = base_url.rstrip("/")
        self.model = model
        self._timeout = timeout
        self._http_client = http_client

    @classmethod
    def from_settings(cls, settings: Settings) -> "OllamaClient":
        return cls(
            base_url=settings.ollama_url,
            model=settings.ollama_model,
            timeout=settings.ollama_timeout_seconds,
        )

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        url = f"{self.base_url}{path}"
        try:
            if self._http_client:
                return await self._http_client.request(method, url, **kwargs)
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                return await client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise OllamaError(f"Ollama service unreachable: {exc}") from exc

    async def generate(self, prompt: str, model: str | None = None) -> OllamaReply:
        """Generate a complete (non-streamed) response for ``prompt``.

        Raises:
            OllamaError: on transport failure, non-200 status, or a body
                without a ``response`` field.
        """
        response = await self._request(
            "POST",
            "/api/generate",
            json={"model": model or self.model, "prompt": prompt, "stream": False},
        )
        if response.status_code != 200:
            raise OllamaError(
                f"Ollama API error (status {response.status_code}): {response.text}"
            )
        try:
            data = response.json()
            text = data["response"]
        except (ValueError, KeyError, TypeError) as exc:
            raise OllamaError(f"failed to decode Ollama response: {exc}") from exc

        return OllamaReply(
            response=text,
            done=bool(data.get("done", True)),
            model=data.get("model", model or self.model),
        )

    async def check_health(self) -> None:
        """Raise ``OllamaError`` unless ``/api/tags`` answers 200."""
        response = await self._request("GET", "/api/tags")
        if response.status_code != 200:
            raise OllamaError(f"Ollama service unhealthy (status {response.status_code})")

    async def is_healthy(self) -> bool:
        try:
            await self.check_health()
        except OllamaError as exc:
            logger.warning("Ollama health check failed: %s", exc)
            return False
        return True
