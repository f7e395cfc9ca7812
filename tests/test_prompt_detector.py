from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from conductor.engine.errors import InvalidResponseKeyError, PromptNotFoundError
from conductor.engine.models import ModeKind, PromptOption, PromptType, SessionStatus
from conductor.engine.prompt_detector import (
    ApprovalPolicy,
    PromptDetector,
    affirmative_option,
    classify_prompt,
)
from conductor.engine.session_registry import SessionRegistry


@pytest.mark.parametrize("text,expected", [
    ("Do you want to proceed?", PromptType.PROCEED_CONFIRMATION),
    ("Options:\n[1] Proceed\n[2] Cancel", PromptType.NUMBERED_CHOICE),
    ("Press Enter to continue", PromptType.CONTINUE_PROMPT),
    ("Continue?", PromptType.CONTINUE_PROMPT),
    ("Overwrite existing file? (y/N)", PromptType.YES_NO),
    ("Choose an option:", PromptType.SELECTION_PROMPT),
    ("select: ", PromptType.SELECTION_PROMPT),
])
def test_classify_prompt(text, expected):
    match = classify_prompt(text)
    assert match is not None
    assert match.prompt_type == expected


def test_classify_prompt_priority_order():
    # Both shapes present: the proceed confirmation wins.
    match = classify_prompt("Do you want to proceed? (y/n)")
    assert match.prompt_type == PromptType.PROCEED_CONFIRMATION


def test_plain_output_is_not_a_prompt():
    assert classify_prompt("Writing src/app.py\nDone.") is None


def test_affirmative_option():
    options = [PromptOption("n", "No", "n\n"), PromptOption("y", "Yes", "y\n")]
    assert affirmative_option(options).key == "y"
    assert affirmative_option([PromptOption("q", "Quit", "q\n")]) is None
    by_label = [PromptOption("a", "Proceed anyway", "a\n")]
    assert affirmative_option(by_label).key == "a"


def test_approval_policy_bounds_and_determinism():
    with pytest.raises(ValueError):
        ApprovalPolicy(1.5)
    prompt = MagicMock()
    assert all(ApprovalPolicy(1.0)(prompt) for _ in range(50))
    assert not any(ApprovalPolicy(0.0)(prompt) for _ in range(50))

    first = ApprovalPolicy(0.5, seed=7)
    second = ApprovalPolicy(0.5, seed=7)
    assert [first(prompt) for _ in range(20)] == [second(prompt) for _ in range(20)]


@pytest.fixture
def supervisor():
    sup = MagicMock()
    sup.write = AsyncMock(return_value=True)
    sup.kill = AsyncMock()
    return sup


@pytest.fixture
def registry(supervisor, tmp_path):
    return SessionRegistry(supervisor, projects_dir=tmp_path)


def _active_session(registry, auto_approve=False):
    session = registry.create("alice", "task", ModeKind.SUPERVISION, auto_approve=auto_approve)
    registry.transition(session, SessionStatus.STARTING)
    registry.transition(session, SessionStatus.ACTIVE)
    session.slots["main"] = MagicMock(is_alive=True)
    return session


@pytest.mark.asyncio
async def test_detection_moves_session_to_waiting(registry, supervisor):
    detector = PromptDetector(registry, supervisor, policy=ApprovalPolicy(1.0))
    session = _active_session(registry)

    prompt = detector.process_chunk(session, "Do you want to proceed?\n")

    assert prompt is not None
    assert session.current_prompt is prompt
    assert session.status == SessionStatus.WAITING_FOR_INPUT
    assert prompt.auto_response is None  # auto-approve is off
    # While pending, further chunks are not classified
    assert detector.process_chunk(session, "Continue? (y/n)") is None
    assert session.current_prompt is prompt


@pytest.mark.asyncio
async def test_respond_writes_option_and_returns_to_active(registry, supervisor):
    detector = PromptDetector(registry, supervisor)
    session = _active_session(registry)
    events = []

    async def on_event(event):
        events.append(event)

    session.channel.subscribe(on_event)
    detector.process_chunk(session, "Apply changes? (y/n)")

    option = await detector.respond(session, "n")

    assert option.label == "No"
    supervisor.write.assert_awaited_once_with(session.slots["main"], "n\n")
    assert session.current_prompt is None
    assert session.status == SessionStatus.ACTIVE
    assert session.output[-1].stream == "stdin"

    await registry.terminate(session.session_id)
    kinds = [e["event"] for e in events]
    assert kinds.index("prompt") < kinds.index("prompt_response")
    response = next(e for e in events if e["event"] == "prompt_response")
    assert response["key"] == "n"
    assert response["auto"] is False
    assert response["delivered"] is True
    prompt_event = next(e for e in events if e["event"] == "prompt")
    assert prompt_event["prompt_type"] == "yes_no"
    assert [o["key"] for o in prompt_event["options"]] == ["y", "n"]


@pytest.mark.asyncio
async def test_respond_errors(registry, supervisor):
    detector = PromptDetector(registry, supervisor)
    session = _active_session(registry)

    with pytest.raises(PromptNotFoundError):
        await detector.respond(session, "1")

    detector.process_chunk(session, "Do you want to proceed?")
    with pytest.raises(InvalidResponseKeyError) as exc_info:
        await detector.respond(session, "9")
    assert exc_info.value.valid == ["1", "2"]
    # The prompt is still pending after a bad key
    assert session.current_prompt is not None
    supervisor.write.assert_not_awaited()


@pytest.mark.asyncio
async def test_auto_approval_answers_after_delay(registry, supervisor):
    detector = PromptDetector(
        registry, supervisor, policy=ApprovalPolicy(1.0), auto_response_delay=0.01,
    )
    session = _active_session(registry, auto_approve=True)

    prompt = detector.process_chunk(session, "Do you want to proceed?")
    assert prompt.auto_response.key == "1"
    await asyncio.sleep(0.1)

    supervisor.write.assert_awaited_once_with(session.slots["main"], "1\n")
    assert session.current_prompt is None
    assert session.status == SessionStatus.ACTIVE


@pytest.mark.asyncio
async def test_policy_rejection_leaves_prompt_pending(registry, supervisor):
    detector = PromptDetector(
        registry, supervisor, policy=ApprovalPolicy(0.0), auto_response_delay=0.0,
    )
    session = _active_session(registry, auto_approve=True)

    prompt = detector.process_chunk(session, "Do you want to proceed?")
    await asyncio.sleep(0.05)
    assert prompt.auto_response is None
    assert session.current_prompt is prompt
    supervisor.write.assert_not_awaited()


@pytest.mark.asyncio
async def test_human_answer_cancels_pending_auto_response(registry, supervisor):
    detector = PromptDetector(
        registry, supervisor, policy=ApprovalPolicy(1.0), auto_response_delay=0.2,
    )
    session = _active_session(registry, auto_approve=True)
    detector.process_chunk(session, "Do you want to proceed?")

    await detector.respond(session, "2")
    await asyncio.sleep(0.3)

    supervisor.write.assert_awaited_once_with(session.slots["main"], "2\n")


@pytest.mark.asyncio
async def test_cancel_drops_auto_response(registry, supervisor):
    detector = PromptDetector(
        registry, supervisor, policy=ApprovalPolicy(1.0), auto_response_delay=0.05,
    )
    session = _active_session(registry, auto_approve=True)
    detector.process_chunk(session, "Do you want to proceed?")
    detector.cancel(session.session_id)
    await asyncio.sleep(0.1)
    supervisor.write.assert_not_awaited()


@pytest.mark.asyncio
async def test_send_input_clears_prompt(registry, supervisor):
    detector = PromptDetector(registry, supervisor)
    session = _active_session(registry)
    detector.process_chunk(session, "Choose an option:")

    assert await detector.send_input(session, "custom answer\n") is True
    supervisor.write.assert_awaited_once_with(session.slots["main"], "custom answer\n")
    assert session.current_prompt is None
    assert session.status == SessionStatus.ACTIVE

    assert await detector.send_input(session, "x", slot="agent-9") is False


@pytest.mark.asyncio
async def test_terminal_session_is_ignored(registry, supervisor):
    detector = PromptDetector(registry, supervisor)
    session = _active_session(registry)
    await registry.terminate(session.session_id)
    assert detector.process_chunk(session, "Do you want to proceed?") is None


@pytest.mark.asyncio
async def test_drop_forgets_prompt_of_closed_slot(registry, supervisor):
    detector = PromptDetector(
        registry, supervisor, policy=ApprovalPolicy(1.0), auto_response_delay=0.05,
    )
    session = _active_session(registry, auto_approve=True)
    detector.process_chunk(session, "Continue?", slot="main")

    # Another slot closing leaves the prompt pending
    assert detector.drop(session, "agent-2") is False
    assert session.current_prompt is not None

    assert detector.drop(session, "main") is True
    assert session.current_prompt is None
    assert session.status == SessionStatus.ACTIVE

    # The stale auto-response never reaches the slot
    await asyncio.sleep(0.1)
    supervisor.write.assert_not_awaited()

    # A later process in the same slot gets its own prompt
    prompt = detector.process_chunk(session, "Overwrite? (y/n)")
    assert prompt.prompt_type == PromptType.YES_NO
    assert detector.drop(session, "main") is True
    assert detector.drop(session, "main") is False
