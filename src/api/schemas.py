"""API-facing Pydantic models."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    status: str = "healthy"
    timestamp: datetime
    active_calls: int
    tts_configured: bool
    twilio_configured: bool
    prerecorded_audio_files: list[str] = Field(
        description="Prompt file names, prefixed with 'MISSING: ' when absent."
    )


class BlockedNumberResponse(BaseModel):
    phone_number: str
    caller_name: str | None
    call_sid: str | None
    blocked_at: datetime
