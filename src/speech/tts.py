"""Text-to-speech synthesis for prompts spoken to the caller."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

import httpx

from agents.errors import MalformedEncodingDescriptorError, SynthesisFailureError
from config.settings import get_settings
from telephony.codec import wrap_pcm_as_container

LOGGER = logging.getLogger(__name__)


class BaseSynthesizer(ABC):
    """Interface for all text-to-speech synthesizers."""

    media_type: str = "audio/mpeg"
    suffix: str = ".mp3"

    @abstractmethod
    async def synthesize(self, text: str) -> bytes:
        """Return encoded audio for ``text``.

        Raises:
            SynthesisFailureError: if the provider fails or returns no audio.
        """


class FishAudioSynthesizer(BaseSynthesizer):
    """Fish Audio HTTP API, mp3 output with a fixed reference voice."""

    def __init__(self) -> None:
        settings = get_settings()
        if not settings.fish_audio_api_key:
            raise ValueError("Fish Audio API key must be configured.")

        self._endpoint = settings.fish_audio_endpoint
        self._api_key = settings.fish_audio_api_key
        self._model = settings.fish_audio_model
        self._reference_id = settings.fish_audio_reference_id

    async def synthesize(self, text: str) -> bytes:
        payload = {
            "text": text,
            "format": "mp3",
            "mp3_bitrate": 128,
            "sample_rate": 44100,
            "chunk_length": 200,
            "normalize": True,
            "latency": "balanced",
        }
        if self._reference_id:
            payload["reference_id"] = self._reference_id

        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
            "model": self._model,
        }
        try:
            async with httpx.AsyncClient(timeout=60) as client:
                response = await client.post(self._endpoint, json=payload, headers=headers)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            LOGGER.error("Fish Audio TTS failed: %s", exc)
            raise SynthesisFailureError(f"Fish Audio TTS failed: {exc}") from exc

        if not response.content:
            raise SynthesisFailureError("Fish Audio TTS returned no audio.")
        return response.content


class GeminiSynthesizer(BaseSynthesizer):
    """Gemini speech generation; raw L16 chunks are wrapped into a WAV container."""

    media_type = "audio/wav"
    suffix = ".wav"

    API_ROOT = "https://generativelanguage.googleapis.com/v1beta/models"

    def __init__(self) -> None:
        settings = get_settings()
        if not settings.gemini_api_key:
            raise ValueError("Gemini API key must be configured.")

        self._api_key = settings.gemini_api_key
        self._model = settings.gemini_tts_model
        self._voice = settings.gemini_tts_voice

    async def synthesize(self, text: str) -> bytes:
        payload = {
            "contents": [{"parts": [{"text": text}]}],
            "generationConfig": {
                "responseModalities": ["AUDIO"],
                "speechConfig": {
                    "voiceConfig": {"prebuiltVoiceConfig": {"voiceName": self._voice}},
                },
            },
        }
        try:
            async with httpx.AsyncClient(timeout=60) as client:
                response = await client.post(
                    f"{self.API_ROOT}/{self._model}:generateContent",
                    json=payload,
                    headers={"x-goog-api-key": self._api_key},
                )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            LOGGER.error("Gemini TTS failed: %s", exc)
            raise SynthesisFailureError(f"Gemini TTS failed: {exc}") from exc

        chunks, mime_type = self._inline_audio(data)
        if not chunks:
            raise SynthesisFailureError("Gemini TTS returned no audio.")
        try:
            return wrap_pcm_as_container(chunks, mime_type)
        except (MalformedEncodingDescriptorError, ValueError) as exc:
            raise SynthesisFailureError(f"Gemini TTS returned unusable audio: {exc}") from exc

    @staticmethod
    def _inline_audio(data: dict) -> tuple[list[str], str]:
        chunks: list[str] = []
        mime_type = "audio/L16;rate=24000"
        for candidate in data.get("candidates") or []:
            for part in (candidate.get("content") or {}).get("parts") or []:
                inline = part.get("inlineData") or {}
                if inline.get("data"):
                    chunks.append(inline["data"])
                    mime_type = inline.get("mimeType") or mime_type
        return chunks, mime_type


def build_synthesizer() -> BaseSynthesizer:
    """Factory returning the configured synthesizer."""

    settings = get_settings()
    if settings.tts_provider == "fish_audio":
        return FishAudioSynthesizer()
    if settings.tts_provider == "gemini":
        return GeminiSynthesizer()
    raise ValueError(f"Unsupported TTS provider: {settings.tts_provider}")


def tts_configured() -> bool:
    settings = get_settings()
    if settings.tts_provider == "fish_audio":
        return bool(settings.fish_audio_api_key)
    return bool(settings.gemini_api_key)
