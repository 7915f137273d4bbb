"""In-memory call session registry with per-call serialized mutation."""

from __future__ import annotations

import asyncio
import copy
import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TypeVar

from agents.errors import (
    DuplicateSideEffectError,
    InvalidPhaseTransitionError,
    SessionAlreadyExistsError,
    UnknownSessionError,
)

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class CallPhase(str, Enum):
    GREETED = "greeted"
    GATHERING = "gathering"
    ON_HOLD = "on_hold"
    RESOLVED = "resolved"


class SideEffect(str, Enum):
    HOLD = "hold"
    NOTIFY = "notify"
    TERMINATE = "terminate"
    FORWARD = "forward"


class Classification(str, Enum):
    LEGITIMATE = "legitimate"
    SPAM = "spam"


class Speaker(str, Enum):
    CALLER = "caller"
    ASSISTANT = "assistant"


# Phases only move forward; any live phase may jump to RESOLVED on a terminal event.
_ALLOWED_TRANSITIONS: dict[CallPhase, frozenset[CallPhase]] = {
    CallPhase.GREETED: frozenset({CallPhase.GATHERING, CallPhase.RESOLVED}),
    CallPhase.GATHERING: frozenset({CallPhase.ON_HOLD, CallPhase.RESOLVED}),
    CallPhase.ON_HOLD: frozenset({CallPhase.RESOLVED}),
    CallPhase.RESOLVED: frozenset(),
}


@dataclass(frozen=True, slots=True)
class Turn:
    speaker: Speaker
    text: str


@dataclass(frozen=True, slots=True)
class CallerDetails:
    name: str
    summary: str


@dataclass
class CallSession:
    """Live state for one screened call."""

    call_id: str
    caller_address: str
    phase: CallPhase = CallPhase.GREETED
    turns: list[Turn] = field(default_factory=list)
    extracted: CallerDetails | None = None
    classification: Classification | None = None
    side_effects: set[SideEffect] = field(default_factory=set)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def awaiting_reply(self) -> bool:
        """True while a human reply may still resolve this call."""

        return SideEffect.NOTIFY in self.side_effects and self.phase is CallPhase.ON_HOLD

    def transition(self, target: CallPhase) -> None:
        if target is self.phase:
            return
        if target not in _ALLOWED_TRANSITIONS[self.phase]:
            raise InvalidPhaseTransitionError(
                f"Call {self.call_id}: {self.phase.value} -> {target.value} not allowed"
            )
        LOGGER.info("Call %s phase %s -> %s", self.call_id, self.phase.value, target.value)
        self.phase = target

    def add_turn(self, speaker: Speaker, text: str) -> None:
        self.turns.append(Turn(speaker=speaker, text=text))

    def claim(self, kind: SideEffect) -> None:
        """Reserve a side-effect kind; raises if it already fired."""

        if kind in self.side_effects:
            raise DuplicateSideEffectError(f"{kind.value} already fired for call {self.call_id}")
        self.side_effects.add(kind)

    def release(self, kind: SideEffect) -> None:
        self.side_effects.discard(kind)

    def record_extraction(self, details: CallerDetails, classification: Classification) -> None:
        if self.extracted is None:
            self.extracted = details
        if self.classification is None:
            self.classification = classification

    def record_classification(self, classification: Classification) -> None:
        if self.classification is None:
            self.classification = classification

    def snapshot(self) -> CallSession:
        return copy.deepcopy(self)


class SessionStore:
    """Registry of live calls keyed by call id.

    Mutation for one call id is serialized through a per-call ``asyncio.Lock``;
    unrelated calls never wait on each other. Readers get deep copies so nothing
    outside ``mutate``/``transaction`` can change a live session.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, CallSession] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, call_id: object) -> bool:
        return call_id in self._sessions

    def create(self, call_id: str, caller_address: str) -> CallSession:
        if call_id in self._sessions:
            raise SessionAlreadyExistsError(f"Call {call_id} is already tracked")
        session = CallSession(call_id=call_id, caller_address=caller_address)
        self._sessions[call_id] = session
        self._locks[call_id] = asyncio.Lock()
        LOGGER.info("Tracking call %s from %s", call_id, caller_address)
        return session.snapshot()

    def get(self, call_id: str) -> CallSession | None:
        session = self._sessions.get(call_id)
        return session.snapshot() if session else None

    def sessions(self) -> list[CallSession]:
        """Snapshots of all live sessions in creation order."""

        return [session.snapshot() for session in self._sessions.values()]

    @asynccontextmanager
    async def transaction(self, call_id: str) -> AsyncIterator[CallSession]:
        """Hold the call's lock and yield the live session for read-modify-write."""

        lock = self._locks.get(call_id)
        if lock is None:
            raise UnknownSessionError(f"Call {call_id} is not tracked")
        async with lock:
            session = self._sessions.get(call_id)
            # The session may have been removed while we waited for the lock.
            if session is None:
                raise UnknownSessionError(f"Call {call_id} is not tracked")
            yield session

    async def mutate(self, call_id: str, fn: Callable[[CallSession], T]) -> T:
        async with self.transaction(call_id) as session:
            return fn(session)

    def remove(self, call_id: str) -> CallSession | None:
        session = self._sessions.pop(call_id, None)
        self._locks.pop(call_id, None)
        if session is not None:
            LOGGER.info("Stopped tracking call %s", call_id)
        return session

    async def resolve(self, call_id: str) -> CallSession | None:
        """Move a call to RESOLVED and drop it; tolerant of already-removed calls."""

        try:
            async with self.transaction(call_id) as session:
                session.transition(CallPhase.RESOLVED)
                self.remove(call_id)
                return session.snapshot()
        except UnknownSessionError:
            return None
