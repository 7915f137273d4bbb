from __future__ import annotations

import asyncio

import pytest

from agents.notifications import REPLY_HELP
from agents.reconciliation import NotificationReconciler, ReplyCommand, parse_reply_command
from agents.sessions import CallerDetails, CallPhase, Classification, SideEffect
from conftest import RECIPIENT, SERVICE_NUMBER, FakeBlockList
from telephony.twiml import Dial, Hangup

_run = asyncio.run


def _hold_with_notification(store, call_id: str, caller: str, name: str = "John") -> None:
    store.create(call_id, caller)

    def _prepare(session) -> None:
        session.transition(CallPhase.GATHERING)
        session.claim(SideEffect.NOTIFY)
        session.claim(SideEffect.HOLD)
        session.record_extraction(CallerDetails(name, "warranty"), Classification.LEGITIMATE)
        session.transition(CallPhase.ON_HOLD)

    _run(store.mutate(call_id, _prepare))


@pytest.mark.parametrize(
    ("body", "expected"),
    [
        ("ACCEPT", ReplyCommand.ACCEPT),
        ("  accept \n", ReplyCommand.ACCEPT),
        ("Deny", ReplyCommand.DENY),
        ("block", ReplyCommand.BLOCK),
        ("yes please", ReplyCommand.UNRECOGNIZED),
        ("", ReplyCommand.UNRECOGNIZED),
        (None, ReplyCommand.UNRECOGNIZED),
    ],
)
def test_parse_reply_command(body, expected):
    assert parse_reply_command(body) is expected


@pytest.mark.parametrize(
    ("command", "message"),
    [
        (ReplyCommand.ACCEPT, "No active call to connect."),
        (ReplyCommand.DENY, "No active call to end."),
        (ReplyCommand.BLOCK, "No active call to block."),
    ],
)
def test_reply_without_waiting_call_does_nothing(store, control, gateway, command, message):
    store.create("CA-live", "+15550009999")  # gathering, never notified
    reconciler = NotificationReconciler(store, control, FakeBlockList())

    result = _run(reconciler.resolve(command, RECIPIENT))

    assert result.message == message
    assert result.call_id is None
    assert gateway.updates == []
    assert "CA-live" in store


def test_unrecognized_reply_returns_help(store, control, gateway):
    _hold_with_notification(store, "CA1", "+15550000001")
    reconciler = NotificationReconciler(store, control, FakeBlockList())

    result = _run(reconciler.resolve(ReplyCommand.UNRECOGNIZED, RECIPIENT))

    assert result.message == REPLY_HELP
    assert store.get("CA1").phase is CallPhase.ON_HOLD
    assert gateway.updates == []


def test_accept_forwards_first_waiting_call(store, control, gateway):
    _hold_with_notification(store, "CA1", "+15550000001")
    _hold_with_notification(store, "CA2", "+15550000002")
    reconciler = NotificationReconciler(store, control, FakeBlockList())

    result = _run(reconciler.resolve(ReplyCommand.ACCEPT, RECIPIENT))

    assert result.message == "Call has been connected to you."
    assert result.call_id == "CA1"
    assert "CA1" not in store
    assert "CA2" in store
    call_id, instructions = gateway.updates[0]
    assert call_id == "CA1"
    assert instructions[-1] == Dial(target=RECIPIENT, caller_id=SERVICE_NUMBER, timeout=30)


def test_deny_hangs_up_and_removes(store, control, gateway):
    _hold_with_notification(store, "CA1", "+15550000001")
    reconciler = NotificationReconciler(store, control, FakeBlockList())

    result = _run(reconciler.resolve(ReplyCommand.DENY, RECIPIENT))

    assert result.message == "Call has been declined and ended."
    assert len(store) == 0
    assert gateway.updates[0][1][-1] == Hangup()


def test_block_hangs_up_and_records_caller(store, control, gateway):
    _hold_with_notification(store, "CA1", "+15550000001", name="Mallory")
    block_list = FakeBlockList()
    reconciler = NotificationReconciler(store, control, block_list)

    result = _run(reconciler.resolve(ReplyCommand.BLOCK, RECIPIENT))

    assert result.message == (
        "Number +15550000001 has been blocked and call ended. "
        "Future calls from this number will be automatically rejected."
    )
    assert block_list.entries == {"+15550000001": ("Mallory", "CA1")}
    assert len(store) == 0
    assert gateway.updates[0][1][-1] == Hangup()


def test_transport_failure_keeps_call_waiting(store, control, gateway):
    _hold_with_notification(store, "CA1", "+15550000001")
    gateway.fail_updates = True
    reconciler = NotificationReconciler(store, control, FakeBlockList())

    result = _run(reconciler.resolve(ReplyCommand.ACCEPT, RECIPIENT))

    assert result.message == "Error connecting the call. Please try again."
    session = store.get("CA1")
    assert session.phase is CallPhase.ON_HOLD
    assert SideEffect.FORWARD not in session.side_effects

    gateway.fail_updates = False
    assert _run(reconciler.resolve(ReplyCommand.ACCEPT, RECIPIENT)).call_id == "CA1"


def test_concurrent_replies_resolve_a_call_once(store, control, gateway):
    _hold_with_notification(store, "CA1", "+15550000001")
    reconciler = NotificationReconciler(store, control, FakeBlockList())

    async def scenario():
        return await asyncio.gather(
            reconciler.resolve(ReplyCommand.ACCEPT, RECIPIENT),
            reconciler.resolve(ReplyCommand.DENY, RECIPIENT),
        )

    results = _run(scenario())

    assert sum(result.call_id == "CA1" for result in results) == 1
    assert len(gateway.updates) == 1
