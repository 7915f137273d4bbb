"""Application-wide configuration loading and validation."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Centralized environment configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    environment: Literal["local", "dev", "prod"] = Field(default="local")
    log_level: str = Field(default="INFO")

    # Database (block list)
    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/screening.db",
        description="SQLAlchemy connection string.",
    )
    auto_create_db_schema: bool = Field(
        default=True,
        description="If true, creates tables automatically on startup (useful for local/dev).",
    )

    # LLM connectivity (reasoning oracle)
    llm_provider: Literal["self_hosted_vllm", "openai"] = Field(default="openai")
    llm_endpoint: str | None = Field(
        default=None,
        description="HTTP endpoint for the inference server or an OpenAI-compatible base URL.",
    )
    llm_api_key: str | None = Field(default=None)
    llm_model: str = Field(default="gpt-4o-mini")

    # Text to speech
    tts_provider: Literal["fish_audio", "gemini"] = Field(default="fish_audio")
    fish_audio_api_key: str | None = Field(default=None)
    fish_audio_endpoint: str = Field(default="https://api.fish.audio/v1/tts")
    fish_audio_reference_id: str | None = Field(default=None)
    fish_audio_model: str = Field(default="speech-1.6")
    gemini_api_key: str | None = Field(default=None)
    gemini_tts_model: str = Field(default="gemini-2.5-flash-preview-tts")
    gemini_tts_voice: str = Field(default="Kore")

    # Twilio (Voice + SMS)
    twilio_account_sid: str | None = Field(default=None)
    twilio_auth_token: str | None = Field(default=None)
    twilio_from_number: str | None = Field(default=None, description="E.164, e.g. +1415...")
    recipient_phone_number: str | None = Field(
        default=None,
        description="Number of the person being screened for; receives alerts and forwarded calls.",
    )
    public_base_url: str | None = Field(
        default=None,
        description="Public base URL for Twilio webhooks and media (e.g. https://<ngrok>.ngrok-free.app).",
    )
    twilio_speech_language: str = Field(default="en-US")
    gather_timeout_seconds: int = Field(default=15, ge=1)
    speech_timeout_seconds: int = Field(default=3, ge=1)
    dial_timeout_seconds: int = Field(default=30, ge=1)
    hold_music_loop: int = Field(default=999, ge=0)

    # Media
    data_dir: Path = Field(default=Path("./data"))
    prompts_audio_dir: Path = Field(default=Path("./data/audio"))
    hold_music_dir: Path = Field(default=Path("./data/hold"))
    temp_audio_dir: Path = Field(default=Path("./data/temp"))
    temp_audio_ttl_seconds: float = Field(
        default=120.0,
        gt=0,
        description="How long synthesized per-turn audio stays retrievable.",
    )

    @field_validator("data_dir", "prompts_audio_dir", "hold_music_dir", "temp_audio_dir")
    @classmethod
    def ensure_dir(cls, value: Path) -> Path:
        value.mkdir(parents=True, exist_ok=True)
        return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance."""

    return Settings()
