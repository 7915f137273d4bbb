"""Shared FastAPI dependencies.

Separated to avoid circular imports between route modules. Every provider is
cached so one process shares a single session store, audio store and gateway.
Tests replace them through ``app.dependency_overrides``.
"""

from __future__ import annotations

from functools import lru_cache
from typing import TYPE_CHECKING

from agents.actions import CallControl, ScreeningPolicy
from agents.sessions import SessionStore
from config.settings import get_settings
from telephony.media import EphemeralAudioStore, MediaLibrary
from telephony.twiml import PublicUrls

if TYPE_CHECKING:  # pragma: no cover
    from agents.oracle import ReasoningOracle
    from agents.orchestrator import TurnOrchestrator
    from agents.reconciliation import NotificationReconciler
    from db.repository import BlockListRepository
    from integrations.twilio_client import TelephonyGateway
    from speech.tts import BaseSynthesizer


@lru_cache(maxsize=1)
def get_session_store() -> SessionStore:
    return SessionStore()


@lru_cache(maxsize=1)
def get_media_library() -> MediaLibrary:
    settings = get_settings()
    urls = PublicUrls(base_url=settings.public_base_url or "")
    return MediaLibrary(
        settings.prompts_audio_dir,
        settings.hold_music_dir,
        urls,
        language=settings.twilio_speech_language,
    )


@lru_cache(maxsize=1)
def get_audio_store() -> EphemeralAudioStore:
    settings = get_settings()
    return EphemeralAudioStore(settings.temp_audio_dir, settings.temp_audio_ttl_seconds)


@lru_cache(maxsize=1)
def get_block_list() -> BlockListRepository:
    from db.repository import BlockListRepository

    return BlockListRepository()


@lru_cache(maxsize=1)
def get_gateway() -> TelephonyGateway:
    from integrations.twilio_client import build_twilio_gateway

    return build_twilio_gateway()


@lru_cache(maxsize=1)
def get_synthesizer() -> BaseSynthesizer:
    from speech.tts import build_synthesizer

    return build_synthesizer()


@lru_cache(maxsize=1)
def get_oracle() -> ReasoningOracle:
    # Lazy import so the LLM SDKs load only when the first call arrives.
    from agents.oracle import ScreeningOracle
    from llm.factory import build_llm_client

    return ScreeningOracle(build_llm_client())


def get_screening_policy() -> ScreeningPolicy:
    settings = get_settings()
    if not settings.recipient_phone_number:
        raise ValueError("RECIPIENT_PHONE_NUMBER is not configured")
    return ScreeningPolicy(
        recipient=settings.recipient_phone_number,
        caller_id=settings.twilio_from_number,
        language=settings.twilio_speech_language,
        gather_timeout=settings.gather_timeout_seconds,
        speech_timeout=settings.speech_timeout_seconds,
        dial_timeout=settings.dial_timeout_seconds,
        hold_music_loop=settings.hold_music_loop,
    )


@lru_cache(maxsize=1)
def get_call_control() -> CallControl:
    return CallControl(get_gateway(), get_media_library(), get_screening_policy())


@lru_cache(maxsize=1)
def get_orchestrator() -> TurnOrchestrator:
    from agents.orchestrator import TurnOrchestrator

    return TurnOrchestrator(
        get_session_store(),
        get_oracle(),
        get_call_control(),
        get_synthesizer(),
        get_audio_store(),
    )


@lru_cache(maxsize=1)
def get_reconciler() -> NotificationReconciler:
    from agents.reconciliation import NotificationReconciler

    return NotificationReconciler(get_session_store(), get_call_control(), get_block_list())
