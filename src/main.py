"""Entry point for the AI call screening service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from agents.errors import AssistantError, RangeNotSatisfiableError
from api.dependencies import get_audio_store
from api.routes import router as api_router
from api.twilio_routes import router as twilio_router
from config.settings import get_settings
from db.base import engine, init_db

LOGGER = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    audio_store = get_audio_store()
    yield
    audio_store.close()
    await engine.dispose()


settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

app = FastAPI(
    title="AI Call Screening",
    description="Answers calls, screens the caller and lets the recipient accept, deny or block by text.",
    lifespan=lifespan,
)
app.include_router(api_router, prefix="/api")
app.include_router(twilio_router, prefix="/api")


@app.exception_handler(AssistantError)
async def assistant_error_handler(request: Request, exc: AssistantError) -> JSONResponse:
    if exc.status_code >= 500:
        LOGGER.error("%s %s failed: %s", request.method, request.url.path, exc.detail)
    headers = None
    if isinstance(exc, RangeNotSatisfiableError):
        headers = {"Content-Range": f"bytes */{exc.size}"}
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=headers)
