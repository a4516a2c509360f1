"""HealthNest API — FastAPI application entry point.

Run locally:
    uvicorn src.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.ai.chat import ChatService, PostgresChatStore
from src.ai.context import build_user_context
from src.ai.ollama import OllamaClient
from src.config import get_settings
from src.middleware.auth import JWTAuthMiddleware
from src.mockhealth.coordinator import HealthDataCoordinator
from src.mockhealth.store import PostgresMetricStore
from src.routers import chat, health, households, patients, users
from src.services.database import close_pool, init_pool
from src.services.schema import ensure_schema

# ---------- Logging ----------

logging.basicConfig(
    level=get_settings().log_level.upper(),
    format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    stream=sys.stdout,
)
logger = logging.getLogger("healthnest")


# ---------- Lifespan ----------

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup / shutdown hooks."""
    settings = get_settings()
    logger.info(
        "Starting HealthNest API v%s [%s]",
        settings.app_version,
        settings.environment,
    )
    await init_pool(settings)
    if settings.auto_create_schema:
        await ensure_schema()

    store = PostgresMetricStore()
    coordinator = HealthDataCoordinator.from_settings(settings, store)
    if settings.mock_data_enabled:
        coordinator.start_maintenance()
    app.state.coordinator = coordinator

    async def load_context(user_id: int):
        return await build_user_context(user_id, store)

    app.state.chat_service = ChatService(
        OllamaClient.from_settings(settings), PostgresChatStore(), load_context
    )

    yield

    await coordinator.shutdown()
    await close_pool()
    logger.info("HealthNest API shut down")


# ---------- App factory ----------

def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title="HealthNest API",
        description=(
            "Elderly health monitoring — household care management, synthetic "
            "vital-sign streams, and an AI health assistant."
        ),
        version=settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # ---------- Middleware (order matters — outermost first) ----------

    # JWT authentication
    app.add_middleware(JWTAuthMiddleware, settings=settings)

    # CORS — must be the innermost middleware so it can handle preflight
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ---------- Health check (outside v1 prefix — always at /health) ----------
    app.include_router(health.router)

    # ---------- API v1 routes ----------
    v1_prefix = "/api/v1"

    app.include_router(patients.router, prefix=v1_prefix)
    app.include_router(households.router, prefix=v1_prefix)
    app.include_router(chat.router, prefix=v1_prefix)
    app.include_router(users.router, prefix=v1_prefix)

    return app


app = create_app()
