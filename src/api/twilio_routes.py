"""Twilio webhooks for screened calls.

This module provides:
- Voice webhook answering inbound calls with the greeting gather.
- Speech-result webhook driving one conversation turn.
- Status callback tearing sessions down when the call ends.
- SMS webhook applying the recipient's ACCEPT / DENY / BLOCK reply.

Handlers always answer with TwiML; failures become a deny prompt or an empty response.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.exc import SQLAlchemyError

from agents.actions import CallControl
from agents.errors import SessionAlreadyExistsError
from agents.orchestrator import TurnOrchestrator
from agents.reconciliation import NotificationReconciler, parse_reply_command
from agents.sessions import SessionStore
from api.dependencies import (
    get_block_list,
    get_call_control,
    get_media_library,
    get_orchestrator,
    get_reconciler,
    get_session_store,
)
from db.repository import BlockListRepository
from telephony.media import MediaLibrary
from telephony.twiml import Instruction, render_message_response, render_voice_response, terminal_sequence

LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="/twilio", tags=["twilio"])

TERMINAL_CALL_STATUSES = frozenset({"completed", "failed", "busy", "no-answer", "canceled"})


def _twiml_response(xml: str) -> Response:
    # Twilio expects application/xml
    return Response(content=xml, media_type="application/xml")


def _voice(instructions: list[Instruction] | tuple[Instruction, ...]) -> Response:
    return _twiml_response(render_voice_response(instructions))


async def _form_value(request: Request, key: str) -> str:
    form = await request.form()
    return str(form.get(key) or "").strip()


@router.post("/voice")
async def twilio_voice_webhook(
    request: Request,
    store: SessionStore = Depends(get_session_store),
    media: MediaLibrary = Depends(get_media_library),
    control: CallControl = Depends(get_call_control),
    block_list: BlockListRepository = Depends(get_block_list),
) -> Response:
    call_sid = await _form_value(request, "CallSid")
    caller = await _form_value(request, "From") or "Unknown"
    if not call_sid:
        LOGGER.warning("Voice webhook without CallSid")
        return _voice(terminal_sequence(media.prompt("deny")))

    try:
        blocked = await block_list.is_blocked(caller)
    except SQLAlchemyError:
        LOGGER.exception("Block-list lookup failed for %s; screening the call", caller)
        blocked = False
    if blocked:
        LOGGER.info("Rejecting blocked caller %s (call %s)", caller, call_sid)
        return _voice(terminal_sequence(media.prompt("deny")))

    try:
        store.create(call_sid, caller)
    except SessionAlreadyExistsError:
        LOGGER.info("Voice webhook redelivered for call %s", call_sid)

    return _voice(control.greeting(call_sid))


@router.post("/voice-response/{call_sid}")
async def twilio_speech_result(
    call_sid: str,
    request: Request,
    media: MediaLibrary = Depends(get_media_library),
    orchestrator: TurnOrchestrator = Depends(get_orchestrator),
) -> Response:
    speech = await _form_value(request, "SpeechResult")
    if not speech:
        LOGGER.info("No speech captured for call %s", call_sid)
        return _voice(terminal_sequence(media.prompt("deny")))

    LOGGER.info("Call %s caller said: %s", call_sid, speech)
    return _voice(await orchestrator.respond(call_sid, speech))


@router.post("/status")
async def twilio_status_callback(
    request: Request,
    store: SessionStore = Depends(get_session_store),
) -> Response:
    call_sid = await _form_value(request, "CallSid")
    status = (await _form_value(request, "CallStatus")).lower()
    LOGGER.info("Call %s status %s", call_sid or "?", status or "?")

    if call_sid and status in TERMINAL_CALL_STATUSES:
        await store.resolve(call_sid)
    return Response(status_code=200)


@router.post("/sms")
async def twilio_sms_webhook(
    request: Request,
    reconciler: NotificationReconciler = Depends(get_reconciler),
) -> Response:
    body = await _form_value(request, "Body")
    sender = await _form_value(request, "From")

    result = await reconciler.resolve(parse_reply_command(body), sender or None)
    if result.call_id:
        LOGGER.info("Reply from %s resolved call %s", sender, result.call_id)
    return _twiml_response(render_message_response(result.message))
