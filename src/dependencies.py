"""Shared FastAPI dependencies injected into route handlers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, HTTPException, Request

from src.ai.chat import ChatService
from src.config import Settings, get_settings
from src.mockhealth.coordinator import HealthDataCoordinator


@dataclass(frozen=True)
class AuthContext:
    """Authenticated user context extracted from the bearer token."""

    user_id: int
    role: str  # "patient" | "admin"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


async def get_current_user(request: Request) -> AuthContext:
    """Extract the authenticated user from the request state.

    The JWT auth middleware sets ``request.state.auth`` before routes run.
    """
    auth: AuthContext | None = getattr(request.state, "auth", None)
    if auth is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return auth


async def get_admin_user(user: Annotated[AuthContext, Depends(get_current_user)]) -> AuthContext:
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="User is not an admin")
    return user


def get_coordinator(request: Request) -> HealthDataCoordinator:
    """The mock-data coordinator created in the app lifespan."""
    return request.app.state.coordinator


def get_chat_service(request: Request) -> ChatService:
    return request.app.state.chat_service


# Annotated shortcuts for route signatures
CurrentUser = Annotated[AuthContext, Depends(get_current_user)]
AdminUser = Annotated[AuthContext, Depends(get_admin_user)]
AppSettings = Annotated[Settings, Depends(get_settings)]
Coordinator = Annotated[HealthDataCoordinator, Depends(get_coordinator)]
Chat = Annotated[ChatService, Depends(get_chat_service)]
