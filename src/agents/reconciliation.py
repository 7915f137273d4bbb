"""Match the recipient's text-message reply to a call waiting on hold."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from sqlalchemy.exc import SQLAlchemyError

from agents.actions import CallControl
from agents.errors import TelephonyError, UnknownSessionError
from agents.notifications import REPLY_HELP
from agents.sessions import CallSession, SessionStore, SideEffect

LOGGER = logging.getLogger(__name__)


class ReplyCommand(str, Enum):
    ACCEPT = "ACCEPT"
    DENY = "DENY"
    BLOCK = "BLOCK"
    UNRECOGNIZED = "UNRECOGNIZED"


def parse_reply_command(body: str | None) -> ReplyCommand:
    text = (body or "").strip().upper()
    try:
        command = ReplyCommand(text)
    except ValueError:
        return ReplyCommand.UNRECOGNIZED
    return command


class BlockList(Protocol):
    async def block(
        self,
        phone_number: str,
        *,
        caller_name: str | None = None,
        call_sid: str | None = None,
    ) -> object: ...


@dataclass(frozen=True)
class ReconciliationResult:
    """Text to send back to the recipient and the call it resolved, if any."""

    message: str
    call_id: str | None = None


_CLAIMS: dict[ReplyCommand, SideEffect] = {
    ReplyCommand.ACCEPT: SideEffect.FORWARD,
    ReplyCommand.DENY: SideEffect.TERMINATE,
    ReplyCommand.BLOCK: SideEffect.TERMINATE,
}

_NO_ACTIVE_CALL: dict[ReplyCommand, str] = {
    ReplyCommand.ACCEPT: "No active call to connect.",
    ReplyCommand.DENY: "No active call to end.",
    ReplyCommand.BLOCK: "No active call to block.",
}


class NotificationReconciler:
    """Applies ACCEPT / DENY / BLOCK replies to the first call awaiting a decision.

    Only sessions that were notified about and are on hold qualify. When several
    calls wait at once the earliest-created one wins.
    """

    def __init__(self, store: SessionStore, control: CallControl, block_list: BlockList) -> None:
        self._store = store
        self._control = control
        self._block_list = block_list

    async def resolve(self, command: ReplyCommand, from_address: str | None = None) -> ReconciliationResult:
        LOGGER.info("Reply %s received from %s", command.value, from_address or "unknown sender")
        if command is ReplyCommand.UNRECOGNIZED:
            return ReconciliationResult(message=REPLY_HELP)

        kind = _CLAIMS[command]
        session = await self._claim_waiting_call(kind)
        if session is None:
            return ReconciliationResult(message=_NO_ACTIVE_CALL[command])

        if command is ReplyCommand.ACCEPT:
            return await self._accept(session)
        if command is ReplyCommand.DENY:
            return await self._deny(session)
        return await self._block(session)

    async def _claim_waiting_call(self, kind: SideEffect) -> CallSession | None:
        def _reserve(session: CallSession) -> CallSession | None:
            if not session.awaiting_reply:
                return None
            if session.side_effects & {SideEffect.TERMINATE, SideEffect.FORWARD}:
                return None
            session.claim(kind)
            return session.snapshot()

        for candidate in self._store.sessions():
            if not candidate.awaiting_reply:
                continue
            try:
                claimed = await self._store.mutate(candidate.call_id, _reserve)
            except UnknownSessionError:
                continue
            if claimed is not None:
                return claimed
        return None

    async def _release(self, call_id: str, kind: SideEffect) -> None:
        try:
            await self._store.mutate(call_id, lambda session: session.release(kind))
        except UnknownSessionError:
            pass

    async def _accept(self, session: CallSession) -> ReconciliationResult:
        try:
            await self._control.connect(session.call_id)
        except TelephonyError as exc:
            LOGGER.error("Forwarding call %s failed: %s", session.call_id, exc)
            await self._release(session.call_id, SideEffect.FORWARD)
            return ReconciliationResult(message="Error connecting the call. Please try again.")
        await self._store.resolve(session.call_id)
        return ReconciliationResult(message="Call has been connected to you.", call_id=session.call_id)

    async def _deny(self, session: CallSession) -> ReconciliationResult:
        try:
            await self._control.hang_up(session.call_id)
        except TelephonyError as exc:
            LOGGER.error("Ending call %s failed: %s", session.call_id, exc)
            await self._release(session.call_id, SideEffect.TERMINATE)
            return ReconciliationResult(message="Error ending the call.")
        await self._store.resolve(session.call_id)
        return ReconciliationResult(message="Call has been declined and ended.", call_id=session.call_id)

    async def _block(self, session: CallSession) -> ReconciliationResult:
        try:
            await self._control.hang_up(session.call_id)
        except TelephonyError as exc:
            LOGGER.error("Ending call %s before blocking failed: %s", session.call_id, exc)
            await self._release(session.call_id, SideEffect.TERMINATE)
            return ReconciliationResult(message="Error blocking the caller.")
        await self._store.resolve(session.call_id)

        caller_name = session.extracted.name if session.extracted else "Unknown Caller"
        try:
            await self._block_list.block(
                session.caller_address,
                caller_name=caller_name,
                call_sid=session.call_id,
            )
        except SQLAlchemyError:
            LOGGER.exception("Persisting block for %s failed", session.caller_address)
            return ReconciliationResult(message="Error blocking the caller.", call_id=session.call_id)

        return ReconciliationResult(
            message=(
                f"Number {session.caller_address} has been blocked and call ended. "
                "Future calls from this number will be automatically rejected."
            ),
            call_id=session.call_id,
        )
