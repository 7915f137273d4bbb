"""Telephony side effects and the instruction sequences they send to a live call."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from integrations.twilio_client import TelephonyGateway
from telephony.media import MediaLibrary
from telephony.twiml import Gather, Hangup, Instruction, Play, Say

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScreeningPolicy:
    """Who gets alerted and how the live call is steered."""

    recipient: str
    caller_id: str | None = None
    language: str = "en-US"
    gather_timeout: int = 15
    speech_timeout: int = 3
    dial_timeout: int = 30
    hold_music_loop: int = 999


class CallControl:
    """Builds instruction sequences and pushes them through the telephony gateway.

    Transport failures surface as ``TelephonyError`` so callers can release the
    side effect they claimed.
    """

    def __init__(self, gateway: TelephonyGateway, media: MediaLibrary, policy: ScreeningPolicy) -> None:
        self._gateway = gateway
        self._media = media
        self._policy = policy

    @property
    def policy(self) -> ScreeningPolicy:
        return self._policy

    def gather(self, call_id: str, *prompts: Play | Say) -> Gather:
        return Gather(
            action_url=self._media.urls.speech_result(call_id),
            timeout=self._policy.gather_timeout,
            speech_timeout=self._policy.speech_timeout,
            language=self._policy.language,
            prompts=tuple(prompts),
        )

    def deny(self) -> list[Instruction]:
        return [self._media.prompt("deny"), Hangup()]

    def greeting(self, call_id: str) -> list[Instruction]:
        # Second bare gather gives a silent caller one more chance before the deny prompt.
        return [
            self.gather(call_id, self._media.prompt("greet")),
            self.gather(call_id),
            *self.deny(),
        ]

    def speak_and_listen(self, call_id: str, audio_name: str) -> list[Instruction]:
        """Play stored synthesized audio inside a gather; hang up if the caller stays silent."""

        audio = Play(self._media.urls.temp_audio(audio_name))
        return [self.gather(call_id, audio), *self.deny()]

    async def place_on_hold(self, call_id: str) -> None:
        instructions = [
            self._media.prompt("hold"),
            Play(self._media.urls.hold_music(), loop=self._policy.hold_music_loop),
        ]
        await self._gateway.update_call(call_id, instructions)
        LOGGER.info("Call %s placed on hold", call_id)

    async def hang_up(self, call_id: str) -> None:
        await self._gateway.update_call(call_id, self.deny())
        LOGGER.info("Call %s hung up with deny prompt", call_id)

    async def connect(self, call_id: str) -> None:
        await self._gateway.dial(
            call_id,
            self._policy.recipient,
            self._policy.caller_id,
            prelude=[self._media.prompt("accepted")],
            timeout=self._policy.dial_timeout,
        )
        LOGGER.info("Call %s forwarded to %s", call_id, self._policy.recipient)

    async def notify(self, message: str) -> None:
        await self._gateway.send_message(self._policy.recipient, message)
