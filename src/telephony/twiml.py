"""Telephony instruction model and TwiML rendering."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from urllib.parse import quote
from xml.sax.saxutils import escape, quoteattr


@dataclass(frozen=True, slots=True)
class Play:
    url: str
    loop: int = 1


@dataclass(frozen=True, slots=True)
class Say:
    text: str
    language: str | None = None


@dataclass(frozen=True, slots=True)
class Gather:
    action_url: str
    timeout: int = 15
    speech_timeout: int = 3
    language: str = "en-US"
    prompts: tuple[Play | Say, ...] = field(default_factory=tuple)


@dataclass(frozen=True, slots=True)
class Dial:
    target: str
    caller_id: str | None = None
    timeout: int = 30


@dataclass(frozen=True, slots=True)
class Hangup:
    pass


Instruction = Play | Say | Gather | Dial | Hangup

_XML_PROLOG = "<?xml version=\"1.0\" encoding=\"UTF-8\"?>"


def _render_play(item: Play) -> str:
    loop = f" loop={quoteattr(str(item.loop))}" if item.loop != 1 else ""
    return f"<Play{loop}>{escape(item.url)}</Play>"


def _render_say(item: Say) -> str:
    lang = f" language={quoteattr(item.language)}" if item.language else ""
    return f"<Say{lang}>{escape(item.text)}</Say>"


def _render(item: Instruction) -> str:
    if isinstance(item, Play):
        return _render_play(item)
    if isinstance(item, Say):
        return _render_say(item)
    if isinstance(item, Gather):
        nested = "".join(_render(prompt) for prompt in item.prompts)
        return (
            "<Gather input=\"speech\""
            f" action={quoteattr(item.action_url)} method=\"POST\""
            f" timeout=\"{int(item.timeout)}\" speechTimeout=\"{int(item.speech_timeout)}\""
            f" language={quoteattr(item.language)} enhanced=\"true\">"
            f"{nested}"
            "</Gather>"
        )
    if isinstance(item, Dial):
        caller_id = f" callerId={quoteattr(item.caller_id)}" if item.caller_id else ""
        return f"<Dial timeout=\"{int(item.timeout)}\"{caller_id}>{escape(item.target)}</Dial>"
    if isinstance(item, Hangup):
        return "<Hangup/>"
    raise TypeError(f"Unsupported instruction: {item!r}")


def render_voice_response(instructions: Iterable[Instruction]) -> str:
    body = "".join(_render(item) for item in instructions)
    return f"{_XML_PROLOG}<Response>{body}</Response>"


def render_message_response(message: str) -> str:
    return f"{_XML_PROLOG}<Response><Message>{escape(message)}</Message></Response>"


@dataclass(frozen=True, slots=True)
class PublicUrls:
    """Absolute URLs Twilio uses to call back into this service."""

    base_url: str
    prefix: str = "/api"

    def _url(self, path: str) -> str:
        return f"{self.base_url.rstrip('/')}{self.prefix}{path}"

    def speech_result(self, call_id: str) -> str:
        return self._url(f"/twilio/voice-response/{quote(call_id, safe='')}")

    def prompt_audio(self, filename: str) -> str:
        return self._url(f"/audio/{quote(filename)}")

    def hold_music(self) -> str:
        return self._url("/hold-music")

    def temp_audio(self, name: str) -> str:
        return self._url(f"/temp-audio/{quote(name)}")


def terminal_sequence(prompt: Play | Say) -> Sequence[Instruction]:
    return (prompt, Hangup())
