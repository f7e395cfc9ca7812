from __future__ import annotations

import asyncio

import pytest

from conductor.engine.channel import SessionChannel
from conductor.engine.errors import SessionStateError
from conductor.engine.lifecycle import can_transition, validate_transition
from conductor.engine.models import SessionStatus


def test_happy_path_transitions_are_allowed():
    path = [
        SessionStatus.INITIALIZING,
        SessionStatus.STARTING,
        SessionStatus.ACTIVE,
        SessionStatus.WAITING_FOR_INPUT,
        SessionStatus.ACTIVE,
        SessionStatus.COMPLETED,
    ]
    for current, target in zip(path, path[1:]):
        assert can_transition(current, target), (current, target)


@pytest.mark.parametrize("terminal", [
    SessionStatus.COMPLETED, SessionStatus.FAILED, SessionStatus.TERMINATED,
])
def test_terminal_states_are_final(terminal):
    for target in SessionStatus:
        assert not can_transition(terminal, target)


def test_every_live_state_can_be_terminated():
    for status in (
        SessionStatus.INITIALIZING,
        SessionStatus.STARTING,
        SessionStatus.ACTIVE,
        SessionStatus.WAITING_FOR_INPUT,
    ):
        assert can_transition(status, SessionStatus.TERMINATED)


def test_validate_transition_names_allowed_targets():
    with pytest.raises(SessionStateError) as exc_info:
        validate_transition("s1", SessionStatus.COMPLETED, SessionStatus.ACTIVE)
    assert "none (terminal)" in str(exc_info.value)

    with pytest.raises(SessionStateError):
        validate_transition("s1", SessionStatus.INITIALIZING, SessionStatus.ACTIVE)


@pytest.mark.asyncio
async def test_channel_delivers_in_publish_order():
    channel = SessionChannel("sess-1")
    received = []

    async def on_event(event):
        received.append(event["n"])

    channel.subscribe(on_event)
    for n in range(20):
        channel.publish({"event": "output", "n": n})
    await channel.close()
    assert received == list(range(20))


@pytest.mark.asyncio
async def test_channel_stamps_session_id_and_timestamp():
    channel = SessionChannel("sess-1")
    received = []

    async def on_event(event):
        received.append(event)

    channel.subscribe(on_event)
    channel.publish({"event": "output"})
    await channel.close()
    assert received[0]["session_id"] == "sess-1"
    assert received[0]["timestamp"]


@pytest.mark.asyncio
async def test_failing_subscriber_does_not_break_others():
    channel = SessionChannel("sess-1")
    received = []

    async def broken(event):
        raise RuntimeError("subscriber bug")

    async def healthy(event):
        received.append(event["event"])

    channel.subscribe(broken)
    channel.subscribe(healthy)
    channel.publish({"event": "a"})
    channel.publish({"event": "b"})
    await channel.close()
    assert received == ["a", "b"]


@pytest.mark.asyncio
async def test_unsubscribe_and_publish_after_close():
    channel = SessionChannel("sess-1")
    received = []

    async def on_event(event):
        received.append(event["event"])

    unsubscribe = channel.subscribe(on_event)
    channel.publish({"event": "first"})
    await asyncio.sleep(0.01)
    unsubscribe()
    channel.publish({"event": "second"})
    await channel.close()
    channel.publish({"event": "third"})
    await asyncio.sleep(0.01)

    assert received == ["first"]
    assert channel.closed
    assert channel.subscriber_count == 0


@pytest.mark.asyncio
async def test_close_from_inside_a_subscriber():
    channel = SessionChannel("sess-1")
    seen = []

    async def closer(event):
        seen.append(event["event"])
        await channel.close()

    channel.subscribe(closer)
    channel.publish({"event": "only"})
    await asyncio.sleep(0.05)
    assert seen == ["only"]
    assert channel.closed


@pytest.mark.asyncio
async def test_full_channel_drops_events():
    channel = SessionChannel("sess-1", maxsize=2)
    for n in range(5):
        channel.publish({"event": "output", "n": n})
    assert channel.dropped == 3
    await channel.close()
