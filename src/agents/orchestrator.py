"""Turn orchestration: one caller utterance in, at most one spoken prompt out.

Each side effect follows claim, transport, commit. The kind is claimed on the
session under its lock, the telephony request goes out with the lock released,
and only a successful transport advances the phase. A failed transport releases
the claim so a later turn may retry it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from agents.actions import CallControl
from agents.errors import DuplicateSideEffectError, TelephonyError, UnknownSessionError
from agents.notifications import classify_caller, format_screening_alert, format_termination_alert
from agents.oracle import ReasoningOracle
from agents.schemas import OracleAction, OracleActionKind
from agents.sessions import (
    CallerDetails,
    CallPhase,
    CallSession,
    Classification,
    SessionStore,
    SideEffect,
    Speaker,
)
from agents.state_utils import strip_echoed_history
from speech.tts import BaseSynthesizer
from telephony.media import EphemeralAudioStore
from telephony.twiml import Instruction

LOGGER = logging.getLogger(__name__)

FALLBACK_PROMPT = (
    "I'm sorry, I'm having trouble processing that. "
    "Could you please repeat your name and reason for calling?"
)
PROCESSING_PROMPT = "I'm processing your information. Please hold on."

_ENDS_CALL = frozenset({SideEffect.TERMINATE, SideEffect.FORWARD})


@dataclass(frozen=True)
class TurnOutcome:
    """Result of one advanced turn.

    ``prompt`` is ``None`` when nothing should be spoken: the call went on hold,
    ended, or was not accepting speech. ``hangup_pending`` asks the webhook
    response itself to hang up because the out-of-band hangup failed.
    """

    prompt: str | None
    on_hold: bool = False
    terminal: bool = False
    hangup_pending: bool = False
    fired: tuple[SideEffect, ...] = ()


class TurnOrchestrator:
    def __init__(
        self,
        store: SessionStore,
        oracle: ReasoningOracle,
        control: CallControl,
        synthesizer: BaseSynthesizer,
        audio_store: EphemeralAudioStore,
    ) -> None:
        self._store = store
        self._oracle = oracle
        self._control = control
        self._synthesizer = synthesizer
        self._audio_store = audio_store

    async def respond(self, call_id: str, utterance: str) -> list[Instruction]:
        """Advance the call and return the instructions for the webhook response.

        An unknown call or a silent turn yields an empty sequence; a synthesis
        failure ends the call with the deny prompt.
        """

        try:
            outcome = await self.advance(call_id, utterance)
        except UnknownSessionError:
            LOGGER.info("Speech result for untracked call %s ignored", call_id)
            return []

        if outcome.hangup_pending:
            return self._control.deny()
        if outcome.prompt is None:
            return []

        try:
            audio = await self._synthesizer.synthesize(outcome.prompt)
            name = await self._audio_store.put(audio, suffix=self._synthesizer.suffix)
        except Exception:
            LOGGER.exception("Could not synthesize prompt for call %s", call_id)
            return self._control.deny()

        return self._control.speak_and_listen(call_id, name)

    async def advance(self, call_id: str, utterance: str) -> TurnOutcome:
        """Record the caller's utterance, consult the oracle and apply its actions.

        Raises:
            UnknownSessionError: if the call is not tracked.
            ValueError: if ``utterance`` is blank.
        """

        text = utterance.strip()
        if not text:
            raise ValueError("Utterance must not be empty.")

        def _open_turn(session: CallSession) -> CallSession | None:
            if session.phase not in (CallPhase.GREETED, CallPhase.GATHERING):
                return None
            session.transition(CallPhase.GATHERING)
            session.add_turn(Speaker.CALLER, text)
            return session.snapshot()

        snapshot = await self._store.mutate(call_id, _open_turn)
        if snapshot is None:
            LOGGER.info("Call %s is not gathering; speech ignored", call_id)
            return TurnOutcome(prompt=None, on_hold=True)

        try:
            decision = await self._oracle.generate(snapshot.caller_address, snapshot.turns)
        except Exception as exc:
            LOGGER.warning("Oracle failed for call %s: %s", call_id, exc)
            return await self._reply(call_id, FALLBACK_PROMPT)

        if decision.is_empty:
            LOGGER.warning("Oracle returned neither reply nor actions for call %s", call_id)
            return await self._reply(call_id, FALLBACK_PROMPT)

        actions = list(decision.actions)
        if any(action.action is OracleActionKind.TERMINATE for action in actions):
            # The termination alert replaces a notification requested in the same turn.
            actions = [a for a in actions if a.action is not OracleActionKind.SEND_NOTIFICATION]

        fired: list[SideEffect] = []
        hangup_pending = False
        for action in actions:
            try:
                effects, hangup_failed = await self._execute(call_id, action)
            except UnknownSessionError:
                LOGGER.info("Call %s ended while applying actions", call_id)
                return TurnOutcome(prompt=None, terminal=True, fired=tuple(fired))
            fired.extend(effects)
            hangup_pending = hangup_pending or hangup_failed
            if _ENDS_CALL.intersection(effects):
                return TurnOutcome(
                    prompt=None,
                    terminal=True,
                    hangup_pending=hangup_pending,
                    fired=tuple(fired),
                )

        if SideEffect.HOLD in fired:
            return TurnOutcome(prompt=None, on_hold=True, fired=tuple(fired))

        prompt = strip_echoed_history(decision.reply) if decision.reply else ""
        if not prompt:
            prompt = PROCESSING_PROMPT if decision.actions else FALLBACK_PROMPT
        outcome = await self._reply(call_id, prompt)
        return TurnOutcome(
            prompt=outcome.prompt,
            on_hold=outcome.on_hold,
            terminal=outcome.terminal,
            fired=tuple(fired),
        )

    async def _reply(self, call_id: str, prompt: str) -> TurnOutcome:
        def _record(session: CallSession) -> bool:
            # A hold or hangup that went out concurrently wins over a spoken reply.
            if session.phase is not CallPhase.GATHERING or session.side_effects & (
                {SideEffect.HOLD} | _ENDS_CALL
            ):
                return False
            session.add_turn(Speaker.ASSISTANT, prompt)
            return True

        try:
            recorded = await self._store.mutate(call_id, _record)
        except UnknownSessionError:
            return TurnOutcome(prompt=None, terminal=True)
        if not recorded:
            return TurnOutcome(prompt=None, on_hold=True)
        return TurnOutcome(prompt=prompt)

    async def _execute(self, call_id: str, action: OracleAction) -> tuple[list[SideEffect], bool]:
        kind = action.action
        if kind is OracleActionKind.REQUEST_HOLD:
            return await self._hold(call_id), False
        if kind is OracleActionKind.SEND_NOTIFICATION:
            return await self._notify(call_id, action), False
        if kind is OracleActionKind.TERMINATE:
            return await self._terminate(call_id)
        if kind is OracleActionKind.FORWARD:
            return await self._forward(call_id), False
        raise ValueError(f"Unhandled action: {kind}")

    async def _claim(self, call_id: str, kind: SideEffect) -> CallSession | None:
        def _reserve(session: CallSession) -> CallSession | None:
            if session.side_effects & _ENDS_CALL:
                return None
            try:
                session.claim(kind)
            except DuplicateSideEffectError:
                return None
            return session.snapshot()

        snapshot = await self._store.mutate(call_id, _reserve)
        if snapshot is None:
            LOGGER.warning("Suppressed duplicate %s for call %s", kind.value, call_id)
        return snapshot

    async def _release(self, call_id: str, kind: SideEffect) -> None:
        try:
            await self._store.mutate(call_id, lambda session: session.release(kind))
        except UnknownSessionError:
            pass

    async def _hold(self, call_id: str) -> list[SideEffect]:
        if await self._claim(call_id, SideEffect.HOLD) is None:
            return []
        try:
            await self._control.place_on_hold(call_id)
        except TelephonyError as exc:
            LOGGER.error("Hold failed for call %s, releasing claim: %s", call_id, exc)
            await self._release(call_id, SideEffect.HOLD)
            return []
        await self._store.mutate(call_id, lambda session: session.transition(CallPhase.ON_HOLD))
        return [SideEffect.HOLD]

    async def _notify(self, call_id: str, action: OracleAction) -> list[SideEffect]:
        snapshot = await self._claim(call_id, SideEffect.NOTIFY)
        if snapshot is None:
            return []

        details = CallerDetails(name=action.name or "Unknown Caller", summary=action.summary or "")
        classification = classify_caller(details.name, details.summary)
        message = format_screening_alert(
            call_id=call_id,
            caller_address=snapshot.caller_address,
            name=details.name,
            summary=details.summary,
            classification=classification,
        )
        try:
            await self._control.notify(message)
        except TelephonyError as exc:
            LOGGER.error("Notification failed for call %s, releasing claim: %s", call_id, exc)
            await self._release(call_id, SideEffect.NOTIFY)
            return []

        await self._store.mutate(
            call_id, lambda session: session.record_extraction(details, classification)
        )
        LOGGER.info("Notified recipient about call %s (%s)", call_id, classification.value)
        return [SideEffect.NOTIFY]

    async def _terminate(self, call_id: str) -> tuple[list[SideEffect], bool]:
        def _reserve(session: CallSession) -> tuple[CallSession, bool] | None:
            if session.side_effects & _ENDS_CALL:
                return None
            session.claim(SideEffect.TERMINATE)
            # Terminate and a separate notification never both fire; the termination alert stands in.
            auto_notify = SideEffect.NOTIFY not in session.side_effects
            if auto_notify:
                session.claim(SideEffect.NOTIFY)
            session.record_classification(Classification.SPAM)
            return session.snapshot(), auto_notify

        reserved = await self._store.mutate(call_id, _reserve)
        if reserved is None:
            LOGGER.warning("Suppressed duplicate terminate for call %s", call_id)
            return [], False
        snapshot, auto_notify = reserved

        fired = [SideEffect.TERMINATE]
        if auto_notify:
            try:
                await self._control.notify(
                    format_termination_alert(call_id=call_id, caller_address=snapshot.caller_address)
                )
                fired.append(SideEffect.NOTIFY)
            except TelephonyError as exc:
                LOGGER.error("Termination alert for call %s failed: %s", call_id, exc)

        hangup_failed = False
        try:
            await self._control.hang_up(call_id)
        except TelephonyError as exc:
            # The session still ends; the webhook response carries the hangup instead.
            LOGGER.error("Hangup failed for call %s: %s", call_id, exc)
            hangup_failed = True

        await self._store.resolve(call_id)
        return fired, hangup_failed

    async def _forward(self, call_id: str) -> list[SideEffect]:
        if await self._claim(call_id, SideEffect.FORWARD) is None:
            return []
        try:
            await self._control.connect(call_id)
        except TelephonyError as exc:
            LOGGER.error("Forward failed for call %s, releasing claim: %s", call_id, exc)
            await self._release(call_id, SideEffect.FORWARD)
            return []
        await self._store.resolve(call_id)
        return [SideEffect.FORWARD]
