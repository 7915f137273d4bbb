"""FastAPI routes for health, media assets and operator tools."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Annotated

from fastapi import APIRouter, Depends, Header, Query, Response

from agents.sessions import SessionStore
from api.dependencies import (
    get_audio_store,
    get_block_list,
    get_media_library,
    get_session_store,
    get_synthesizer,
)
from api.schemas import BlockedNumberResponse, HealthResponse
from config.settings import get_settings
from db.repository import BlockListRepository
from speech.tts import BaseSynthesizer, tts_configured
from telephony.media import (
    CACHE_NONE,
    CACHE_PUBLIC,
    EphemeralAudioStore,
    MediaLibrary,
    build_file_response,
)

LOGGER = logging.getLogger(__name__)

router = APIRouter()

RangeHeader = Annotated[str | None, Header(alias="Range")]


@router.get("/health", response_model=HealthResponse)
async def health(
    store: SessionStore = Depends(get_session_store),
    media: MediaLibrary = Depends(get_media_library),
) -> HealthResponse:
    settings = get_settings()
    return HealthResponse(
        timestamp=datetime.now(timezone.utc),
        active_calls=len(store),
        tts_configured=tts_configured(),
        twilio_configured=bool(settings.twilio_account_sid and settings.twilio_auth_token),
        prerecorded_audio_files=media.prompt_inventory(),
    )


@router.get("/audio/{filename}")
async def prompt_audio(
    filename: str,
    range_header: RangeHeader = None,
    media: MediaLibrary = Depends(get_media_library),
) -> Response:
    return build_file_response(media.prompt_path(filename), range_header, cache_control=CACHE_PUBLIC)


@router.get("/hold-music")
async def hold_music(
    range_header: RangeHeader = None,
    media: MediaLibrary = Depends(get_media_library),
) -> Response:
    path = media.hold_music_path()
    LOGGER.debug("Serving hold music %s", path.name)
    return build_file_response(path, range_header, cache_control=CACHE_PUBLIC)


@router.get("/temp-audio/{name}")
async def temp_audio(
    name: str,
    range_header: RangeHeader = None,
    audio_store: EphemeralAudioStore = Depends(get_audio_store),
) -> Response:
    return build_file_response(audio_store.resolve(name), range_header, cache_control=CACHE_NONE)


@router.get("/tts/preview")
async def tts_preview(
    text: str = Query(..., min_length=1, max_length=1000),
    synthesizer: BaseSynthesizer = Depends(get_synthesizer),
) -> Response:
    """Synthesize ``text`` with the configured provider so operators can audition the voice."""

    audio = await synthesizer.synthesize(text)
    return Response(content=audio, media_type=synthesizer.media_type)


@router.get("/blocked", response_model=list[BlockedNumberResponse])
async def blocked_numbers(
    block_list: BlockListRepository = Depends(get_block_list),
) -> list[BlockedNumberResponse]:
    entries = await block_list.list_blocked()
    return [
        BlockedNumberResponse(
            phone_number=entry.phone_number,
            caller_name=entry.caller_name,
            call_sid=entry.call_sid,
            blocked_at=entry.blocked_at,
        )
        for entry in entries
    ]
