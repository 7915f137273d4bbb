from __future__ import annotations

import asyncio

import pytest

from agents.errors import (
    DuplicateSideEffectError,
    InvalidPhaseTransitionError,
    SessionAlreadyExistsError,
    UnknownSessionError,
)
from agents.sessions import (
    CallerDetails,
    CallPhase,
    Classification,
    SessionStore,
    SideEffect,
    Speaker,
)

_run = asyncio.run


def test_create_rejects_live_duplicate(store):
    store.create("CA1", "+15551230000")
    with pytest.raises(SessionAlreadyExistsError):
        store.create("CA1", "+15551230000")


def test_get_returns_isolated_snapshot(store):
    store.create("CA1", "+15551230000")
    snapshot = store.get("CA1")
    snapshot.turns.append(None)
    snapshot.side_effects.add(SideEffect.HOLD)

    fresh = store.get("CA1")
    assert fresh.turns == []
    assert fresh.side_effects == set()
    assert store.get("missing") is None


def test_concurrent_appends_for_one_call_are_serialized(store):
    store.create("CA1", "+15551230000")

    async def append(index: int) -> None:
        async with store.transaction("CA1") as session:
            count = len(session.turns)
            await asyncio.sleep(0)
            # A lost update would leave two turns with the same index.
            session.add_turn(Speaker.CALLER, f"{index}:{count}")

    async def scenario() -> None:
        await asyncio.gather(*(append(i) for i in range(20)))

    _run(scenario())
    turns = store.get("CA1").turns
    assert len(turns) == 20
    assert sorted(int(turn.text.split(":")[1]) for turn in turns) == list(range(20))


def test_unrelated_calls_do_not_share_a_lock(store):
    store.create("CA1", "+1")
    store.create("CA2", "+2")

    async def scenario() -> list[str]:
        order: list[str] = []

        async def slow() -> None:
            async with store.transaction("CA1"):
                order.append("CA1 start")
                await asyncio.sleep(0.01)
                order.append("CA1 end")

        async def fast() -> None:
            await asyncio.sleep(0)
            async with store.transaction("CA2"):
                order.append("CA2")

        await asyncio.gather(slow(), fast())
        return order

    assert _run(scenario()) == ["CA1 start", "CA2", "CA1 end"]


def test_mutate_unknown_call_raises(store):
    with pytest.raises(UnknownSessionError):
        _run(store.mutate("nope", lambda session: None))


def test_phases_only_move_forward(store):
    store.create("CA1", "+1")

    async def scenario() -> None:
        await store.mutate("CA1", lambda s: s.transition(CallPhase.GATHERING))
        await store.mutate("CA1", lambda s: s.transition(CallPhase.ON_HOLD))
        with pytest.raises(InvalidPhaseTransitionError):
            await store.mutate("CA1", lambda s: s.transition(CallPhase.GATHERING))

    _run(scenario())
    assert store.get("CA1").phase is CallPhase.ON_HOLD


def test_greeted_cannot_skip_to_on_hold(store):
    store.create("CA1", "+1")
    with pytest.raises(InvalidPhaseTransitionError):
        _run(store.mutate("CA1", lambda s: s.transition(CallPhase.ON_HOLD)))


def test_side_effect_claims_are_at_most_once(store):
    store.create("CA1", "+1")

    async def scenario() -> None:
        await store.mutate("CA1", lambda s: s.claim(SideEffect.NOTIFY))
        with pytest.raises(DuplicateSideEffectError):
            await store.mutate("CA1", lambda s: s.claim(SideEffect.NOTIFY))
        await store.mutate("CA1", lambda s: s.release(SideEffect.NOTIFY))
        await store.mutate("CA1", lambda s: s.claim(SideEffect.NOTIFY))

    _run(scenario())
    assert store.get("CA1").side_effects == {SideEffect.NOTIFY}


def test_extraction_and_classification_are_write_once(store):
    store.create("CA1", "+1")
    first = CallerDetails(name="John", summary="warranty")

    async def scenario() -> None:
        await store.mutate("CA1", lambda s: s.record_extraction(first, Classification.LEGITIMATE))
        await store.mutate(
            "CA1",
            lambda s: s.record_extraction(CallerDetails("Other", "x"), Classification.SPAM),
        )

    _run(scenario())
    session = store.get("CA1")
    assert session.extracted == first
    assert session.classification is Classification.LEGITIMATE


def test_resolve_removes_and_tolerates_missing(store):
    store.create("CA1", "+1")
    resolved = _run(store.resolve("CA1"))
    assert resolved.phase is CallPhase.RESOLVED
    assert "CA1" not in store
    assert len(store) == 0
    assert _run(store.resolve("CA1")) is None


def test_sessions_preserve_creation_order():
    store = SessionStore()
    for call_id in ("CA3", "CA1", "CA2"):
        store.create(call_id, "+1")
    assert [session.call_id for session in store.sessions()] == ["CA3", "CA1", "CA2"]
