"""Audio assets served back to the telephony provider.

Three read paths share one range-aware streaming response:
- pre-recorded prompts (greet, hold, deny, accepted),
- looped hold music, picked from whatever files are available,
- short-lived synthesized per-turn audio kept in an :class:`EphemeralAudioStore`.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import mimetypes
import os
import tempfile
from collections.abc import Iterator
from pathlib import Path
from typing import BinaryIO, Final

from fastapi.responses import StreamingResponse

from agents.errors import AssetNotFoundError, RangeNotSatisfiableError
from telephony.twiml import Play, PublicUrls, Say

LOGGER = logging.getLogger(__name__)

CHUNK_SIZE: Final[int] = 64 * 1024
CACHE_PUBLIC: Final[str] = "public, max-age=3600"
CACHE_NONE: Final[str] = "no-cache"

PROMPT_TEXTS: Final[dict[str, str]] = {
    "greet": (
        "Hello, I'm an AI assistant screening calls for spam or unwanted callers. "
        "May I please have your name and the reason for your call?"
    ),
    "hold": (
        "I've passed your information on to the person you were trying to call. "
        "I'll now put you on hold while I wait for a response."
    ),
    "deny": (
        "The person you were trying to reach is currently unable to take your call. "
        "Please try again later."
    ),
    "accepted": (
        "You'll now be connected to the person you were trying to reach, "
        "as they've accepted the call."
    ),
}

HOLD_MUSIC_PRIORITY: Final[tuple[str, ...]] = ("micro", "tiny", "compressed", "35min")
AUDIO_SUFFIXES: Final[frozenset[str]] = frozenset({".mp3", ".wav"})


def _safe_name(name: str) -> str:
    if not name or name != Path(name).name or name.startswith("."):
        raise AssetNotFoundError(f"Audio file not found: {name}")
    return name


def guess_media_type(path: Path) -> str:
    media_type, _ = mimetypes.guess_type(path.name)
    return media_type or "audio/mpeg"


def parse_range_header(header: str | None, size: int) -> tuple[int, int] | None:
    """Return the inclusive ``(start, end)`` byte span requested by a Range header.

    ``None`` means "serve the whole asset" (no header, other units, or syntax we
    ignore). Only the first span of a multi-range request is honoured.

    Raises:
        RangeNotSatisfiableError: if the span lies outside the asset.
    """

    if not header:
        return None
    unit, _, spans = header.partition("=")
    if unit.strip().lower() != "bytes" or not spans.strip():
        return None

    first = spans.split(",")[0].strip()
    start_text, sep, end_text = first.partition("-")
    if not sep:
        return None

    try:
        if not start_text:
            suffix = int(end_text)
            if suffix <= 0:
                raise RangeNotSatisfiableError(size)
            start, end = max(size - suffix, 0), size - 1
        else:
            start = int(start_text)
            end = int(end_text) if end_text else size - 1
    except ValueError:
        return None

    if size == 0 or start >= size or end < start:
        raise RangeNotSatisfiableError(size)
    return start, min(end, size - 1)


def _iter_file(handle: BinaryIO, start: int, length: int) -> Iterator[bytes]:
    try:
        handle.seek(start)
        remaining = length
        while remaining > 0:
            chunk = handle.read(min(CHUNK_SIZE, remaining))
            if not chunk:
                break
            remaining -= len(chunk)
            yield chunk
    finally:
        handle.close()


def build_file_response(
    path: Path,
    range_header: str | None,
    *,
    cache_control: str,
    media_type: str | None = None,
) -> StreamingResponse:
    """Stream ``path`` whole (200) or partially (206) depending on ``range_header``.

    The file handle is opened before the response is returned, so a concurrent
    deletion of the file does not break an in-flight read.
    """

    try:
        handle = path.open("rb")
    except (FileNotFoundError, IsADirectoryError) as exc:
        raise AssetNotFoundError(f"Audio file not found: {path.name}") from exc

    size = os.fstat(handle.fileno()).st_size
    try:
        span = parse_range_header(range_header, size)
    except RangeNotSatisfiableError:
        handle.close()
        raise

    headers = {"Accept-Ranges": "bytes", "Cache-Control": cache_control}
    if span is None:
        headers["Content-Length"] = str(size)
        return StreamingResponse(
            _iter_file(handle, 0, size),
            status_code=200,
            media_type=media_type or guess_media_type(path),
            headers=headers,
        )

    start, end = span
    length = end - start + 1
    headers["Content-Range"] = f"bytes {start}-{end}/{size}"
    headers["Content-Length"] = str(length)
    return StreamingResponse(
        _iter_file(handle, start, length),
        status_code=206,
        media_type=media_type or guess_media_type(path),
        headers=headers,
    )


class EphemeralAudioStore:
    """Content-addressed directory of synthesized audio with TTL eviction.

    Every ``put`` (re)arms a fire-and-forget timer that deletes the file once the
    TTL elapses. Eviction tolerates files that are already gone.
    """

    def __init__(self, directory: Path, ttl_seconds: float) -> None:
        self._directory = directory
        self._ttl = ttl_seconds
        self._timers: dict[str, asyncio.TimerHandle] = {}
        self._directory.mkdir(parents=True, exist_ok=True)

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def __len__(self) -> int:
        return len(self._timers)

    async def put(self, data: bytes, *, suffix: str = ".mp3") -> str:
        name = f"{hashlib.sha256(data).hexdigest()[:32]}{suffix}"
        await asyncio.to_thread(self._write, name, data)
        self._schedule_eviction(name)
        LOGGER.debug("Stored %s (%d bytes, ttl %.0fs)", name, len(data), self._ttl)
        return name

    def _write(self, name: str, data: bytes) -> None:
        with tempfile.NamedTemporaryFile(
            dir=self._directory, prefix=f".{name}.", suffix=".part", delete=False
        ) as handle:
            handle.write(data)
        os.replace(handle.name, self._directory / name)

    def _schedule_eviction(self, name: str) -> None:
        previous = self._timers.pop(name, None)
        if previous is not None:
            previous.cancel()
        loop = asyncio.get_running_loop()
        self._timers[name] = loop.call_later(self._ttl, self._evict, name)

    def _evict(self, name: str) -> None:
        self._timers.pop(name, None)
        try:
            (self._directory / name).unlink(missing_ok=True)
            LOGGER.debug("Evicted temp audio %s", name)
        except OSError:
            LOGGER.warning("Could not delete temp audio %s", name, exc_info=True)

    def resolve(self, name: str) -> Path:
        path = self._directory / _safe_name(name)
        if not path.is_file():
            raise AssetNotFoundError(f"Audio file not found: {name}")
        return path

    def close(self) -> None:
        """Cancel pending timers and delete everything still stored."""

        for name, timer in list(self._timers.items()):
            timer.cancel()
            self._evict(name)


class MediaLibrary:
    """Locates pre-recorded prompts and hold music, and turns them into play instructions."""

    def __init__(
        self,
        prompts_dir: Path,
        hold_music_dir: Path,
        urls: PublicUrls,
        *,
        language: str = "en-US",
    ) -> None:
        self._prompts_dir = prompts_dir
        self._hold_music_dir = hold_music_dir
        self._urls = urls
        self._language = language

    @property
    def urls(self) -> PublicUrls:
        return self._urls

    def prompt_path(self, filename: str) -> Path:
        path = self._prompts_dir / _safe_name(filename)
        if not path.is_file():
            raise AssetNotFoundError(f"Audio file not found: {filename}")
        return path

    def prompt(self, name: str) -> Play | Say:
        """Play the pre-recorded prompt, or speak its text if the file is missing."""

        filename = f"{name}.mp3"
        if (self._prompts_dir / filename).is_file():
            return Play(self._urls.prompt_audio(filename))
        LOGGER.warning("Pre-recorded prompt %s missing, falling back to <Say>", filename)
        return Say(PROMPT_TEXTS[name], language=self._language)

    def prompt_inventory(self) -> list[str]:
        inventory = []
        for name in PROMPT_TEXTS:
            filename = f"{name}.mp3"
            present = (self._prompts_dir / filename).is_file()
            inventory.append(filename if present else f"MISSING: {filename}")
        return inventory

    def hold_music_path(self) -> Path:
        if not self._hold_music_dir.is_dir():
            raise AssetNotFoundError("Hold music file not found")
        candidates = sorted(
            path.name
            for path in self._hold_music_dir.iterdir()
            if path.is_file() and path.suffix.lower() in AUDIO_SUFFIXES
        )
        if not candidates:
            raise AssetNotFoundError("Hold music file not found")

        for keyword in HOLD_MUSIC_PRIORITY:
            for name in candidates:
                if keyword in name:
                    return self._hold_music_dir / name
        return self._hold_music_dir / candidates[0]
