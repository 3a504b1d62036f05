"""
CondoScout Backend - Main FastAPI Application.

This is the entry point for the CondoScout API. It hosts the real-estate
concierge chat: per-identity chat sessions, Gemini conversations grounded
with Google Maps, and place cards extracted from the grounding data.

Run with:
    uvicorn condoscout.main:app --reload
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from supabase import acreate_client
from supabase._async.client import AsyncClient as AsyncSupabaseClient

from condoscout.agents.workspace import WorkspaceRegistry
from condoscout.api.v1.chat import router as chat_router
from condoscout.api.v1.identity import router as identity_router
from condoscout.config import Settings, get_settings
from condoscout.constants import API_TITLE, API_VERSION
from condoscout.logging_config import setup_logging
from condoscout.middleware import RequestContextMiddleware
from condoscout.services.gemini_client import GeminiChatService, get_gemini_client
from condoscout.services.storage import (
    FileStorage,
    IdentityRecordStore,
    KeyValueStorage,
    MemoryStorage,
    SessionStorage,
    SupabaseStorage,
)

# Get settings before logging setup so we know the debug flag
settings = get_settings()

# Configure logging
setup_logging(settings.debug)

logger = structlog.get_logger(__name__)


def build_durable_storage(
    settings: Settings, supabase_client: AsyncSupabaseClient | None
) -> KeyValueStorage:
    """Pick the durable backend; Supabase falls back to files when unavailable."""
    if settings.storage.backend == "supabase":
        if supabase_client is not None:
            logger.info("durable_storage_supabase", table=settings.storage.supabase_table)
            return SupabaseStorage(supabase_client, settings.storage.supabase_table)
        logger.warning(
            "durable_storage_supabase_unavailable",
            detail="Falling back to file storage",
        )
    logger.info("durable_storage_file", directory=settings.storage.directory)
    return FileStorage(settings.storage.directory)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Lifespan event handler for startup and shutdown."""
    logger.info("api_startup", cors_origins=settings.cors_origins)

    if not settings.gemini_api_key:
        logger.warning("gemini_key_missing", detail="Chat replies will degrade to the apology text")
    else:
        logger.info("gemini_configured", model=settings.gemini.model)

    # Initialize Supabase async client (identity provider, optional durable storage)
    supabase_client: AsyncSupabaseClient | None = None
    if settings.supabase_url and settings.supabase_secret_key:
        try:
            supabase_client = await acreate_client(
                settings.supabase_url,
                settings.supabase_secret_key,
            )
            logger.info("supabase_configured")
        except Exception as e:
            logger.warning("supabase_init_failed", error=str(e))
    else:
        logger.warning("supabase_not_configured", detail="Sign-in will return 503; guests only")

    _app.state.supabase = supabase_client

    durable = build_durable_storage(settings, supabase_client)
    storage = SessionStorage(durable=durable, ephemeral=MemoryStorage())
    chat_service = GeminiChatService(get_gemini_client(settings.gemini_api_key), settings.gemini)

    _app.state.registry = WorkspaceRegistry(chat_service, storage)
    _app.state.identity_records = IdentityRecordStore(durable)

    logger.info("services_initialized")

    yield

    logger.info("api_shutdown")


# Create FastAPI app
app = FastAPI(
    title=API_TITLE,
    description=(
        "Real-estate concierge API. Chat with Royce to find condominiums, "
        "apartments and hotels; replies come with map-grounded place cards."
    ),
    version=API_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# Request context middleware must come before CORS so every response gets
# the X-Request-ID header (including preflight OPTIONS responses).
app.add_middleware(RequestContextMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Include routers
app.include_router(chat_router, prefix="/api/v1")
app.include_router(identity_router, prefix="/api/v1")


@app.get("/")
async def root() -> dict:
    """Root endpoint with API info."""
    return {
        "name": API_TITLE,
        "version": API_VERSION,
        "description": "Real-estate concierge chat with map-grounded place cards",
        "docs": "/docs",
    }


@app.get("/health")
async def health() -> dict:
    """Health check endpoint."""
    return {"status": "healthy"}
