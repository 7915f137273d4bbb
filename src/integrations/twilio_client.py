"""Twilio configuration and the outbound telephony/messaging gateway."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass

from agents.errors import TelephonyError
from config.settings import get_settings
from telephony.twiml import Dial, Instruction, render_voice_response

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class TwilioConfig:
    account_sid: str
    auth_token: str
    from_number: str
    public_base_url: str


def get_twilio_config() -> TwilioConfig:
    settings = get_settings()
    if not settings.twilio_account_sid or not settings.twilio_auth_token:
        raise ValueError("Twilio credentials are not configured")
    if not settings.twilio_from_number:
        raise ValueError("Twilio from-number is not configured")
    if not settings.public_base_url:
        raise ValueError("PUBLIC_BASE_URL is required for Twilio callbacks")

    return TwilioConfig(
        account_sid=settings.twilio_account_sid,
        auth_token=settings.twilio_auth_token,
        from_number=settings.twilio_from_number,
        public_base_url=settings.public_base_url.rstrip("/"),
    )


def build_twilio_client():
    from twilio.rest import Client

    cfg = get_twilio_config()
    return Client(cfg.account_sid, cfg.auth_token)


class TelephonyGateway(ABC):
    """Outbound call control and messaging."""

    @abstractmethod
    async def update_call(self, call_id: str, instructions: Sequence[Instruction]) -> None:
        """Replace what the live call is doing with ``instructions``."""

    @abstractmethod
    async def send_message(self, to: str, body: str) -> None:
        """Send a text message."""

    async def dial(
        self,
        call_id: str,
        target: str,
        caller_id: str | None,
        *,
        prelude: Sequence[Instruction] = (),
        timeout: int = 30,
    ) -> None:
        await self.update_call(
            call_id,
            [*prelude, Dial(target=target, caller_id=caller_id, timeout=timeout)],
        )


class TwilioGateway(TelephonyGateway):
    """Twilio REST implementation; the blocking SDK calls run in worker threads."""

    def __init__(self, client, from_number: str) -> None:
        self._client = client
        self._from_number = from_number

    async def update_call(self, call_id: str, instructions: Sequence[Instruction]) -> None:
        from twilio.base.exceptions import TwilioException

        twiml = render_voice_response(instructions)
        try:
            await asyncio.to_thread(self._client.calls(call_id).update, twiml=twiml)
        except (TwilioException, OSError) as exc:
            LOGGER.error("Updating call %s failed: %s", call_id, exc)
            raise TelephonyError(f"Updating call {call_id} failed: {exc}") from exc
        LOGGER.info("Updated call %s", call_id)

    async def send_message(self, to: str, body: str) -> None:
        from twilio.base.exceptions import TwilioException

        try:
            message = await asyncio.to_thread(
                self._client.messages.create,
                body=body,
                from_=self._from_number,
                to=to,
            )
        except (TwilioException, OSError) as exc:
            LOGGER.error("SMS to %s failed: %s", to, exc)
            raise TelephonyError(f"SMS to {to} failed: {exc}") from exc
        LOGGER.info("SMS sent to %s: %s", to, getattr(message, "sid", "?"))


def build_twilio_gateway() -> TwilioGateway:
    cfg = get_twilio_config()
    return TwilioGateway(build_twilio_client(), cfg.from_number)
