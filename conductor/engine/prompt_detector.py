"""Interactive prompt detection and auto-approval.

Per session the detector is a two-state machine:

    Idle ──(chunk matches a prompt shape)──> AwaitingResponse
    AwaitingResponse ──(respond / send_input / auto-response)──> Idle
    AwaitingResponse ──(prompting process closes: drop)──> Idle

While a prompt is pending, further chunks are not classified.
"""
from __future__ import annotations

import asyncio
import logging
import random
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from .errors import (
    InvalidResponseKeyError,
    OrchestrationError,
    PromptNotFoundError,
)
from .models import (
    MAIN_SLOT,
    Prompt,
    PromptOption,
    PromptType,
    Session,
    SessionStatus,
)

if TYPE_CHECKING:
    from .process_supervisor import ProcessSupervisor
    from .session_registry import SessionRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PromptPattern:
    """A prompt shape: how to recognise it and which answers it takes."""
    prompt_type: PromptType
    pattern: re.Pattern[str]
    options: tuple[PromptOption, ...]


_PROCEED_CANCEL = (
    PromptOption("1", "Proceed", "1\n"),
    PromptOption("2", "Cancel", "2\n"),
)

# Priority order: the first match wins.
PROMPT_PATTERNS: tuple[PromptPattern, ...] = (
    PromptPattern(
        PromptType.PROCEED_CONFIRMATION,
        re.compile(r"do you want to proceed\?", re.IGNORECASE),
        _PROCEED_CANCEL,
    ),
    PromptPattern(
        PromptType.NUMBERED_CHOICE,
        re.compile(r"\[1\]\s*proceed", re.IGNORECASE),
        _PROCEED_CANCEL,
    ),
    PromptPattern(
        PromptType.CONTINUE_PROMPT,
        re.compile(r"press enter to continue|continue\?", re.IGNORECASE),
        (
            PromptOption("enter", "Continue", "\n"),
            PromptOption("q", "Quit", "q\n"),
        ),
    ),
    PromptPattern(
        PromptType.YES_NO,
        re.compile(r"\(y/n\)", re.IGNORECASE),
        (
            PromptOption("y", "Yes", "y\n"),
            PromptOption("n", "No", "n\n"),
        ),
    ),
    PromptPattern(
        PromptType.SELECTION_PROMPT,
        re.compile(r"choose an option:|select:|pick:", re.IGNORECASE),
        (
            PromptOption("1", "Option 1", "1\n"),
            PromptOption("2", "Option 2", "2\n"),
            PromptOption("3", "Option 3", "3\n"),
        ),
    ),
)

_AFFIRMATIVE_KEYS = {"1", "y", "enter"}
_AFFIRMATIVE_WORDS = ("proceed", "yes", "continue")


def classify_prompt(text: str) -> PromptPattern | None:
    """Return the highest-priority prompt shape found in text, if any."""
    for candidate in PROMPT_PATTERNS:
        if candidate.pattern.search(text):
            return candidate
    return None


def affirmative_option(
    options: Sequence[PromptOption],
) -> PromptOption | None:
    for option in options:
        label = option.label.lower()
        if option.key in _AFFIRMATIVE_KEYS or any(
            word in label for word in _AFFIRMATIVE_WORDS
        ):
            return option
    return None


ApprovalDecision = Callable[[Prompt], bool]


class ApprovalPolicy:
    """Approve a detected prompt with a fixed probability.

    Pass a seed for reproducible decisions; probability 1.0 always
    approves and 0.0 never does.
    """

    def __init__(self, probability: float = 0.95, seed: int | None = None):
        if not 0.0 <= probability <= 1.0:
            raise ValueError(f"probability must be in [0, 1], got {probability}")
        self.probability = probability
        self._rng = random.Random(seed)

    def __call__(self, prompt: Prompt) -> bool:
        return self._rng.random() < self.probability


class PromptDetector:
    """Classifies stdout chunks and answers prompts for one engine."""

    def __init__(
        self,
        registry: SessionRegistry,
        supervisor: ProcessSupervisor,
        policy: ApprovalDecision | None = None,
        auto_response_delay: float = 1.5,
    ) -> None:
        self._registry = registry
        self._supervisor = supervisor
        self._policy: ApprovalDecision = policy or ApprovalPolicy()
        self._auto_response_delay = auto_response_delay
        self._timers: dict[str, asyncio.Task[None]] = {}

    def process_chunk(
        self, session: Session, chunk: str, slot: str = MAIN_SLOT,
    ) -> Prompt | None:
        """Inspect one stdout chunk. Returns the new Prompt, if one was detected."""
        if session.current_prompt is not None or session.is_terminal:
            return None
        match = classify_prompt(chunk)
        if match is None:
            return None

        prompt = Prompt(
            prompt_type=match.prompt_type,
            options=list(match.options),
            raw_text=chunk,
            slot=slot,
        )
        if session.auto_approve and self._policy(prompt):
            prompt.auto_response = affirmative_option(prompt.options)

        session.current_prompt = prompt
        if session.status == SessionStatus.ACTIVE:
            self._registry.transition(session, SessionStatus.WAITING_FOR_INPUT)
        self._registry.publish(session, {"event": "prompt", **prompt.to_dict()})
        logger.info(
            "Prompt detected in %s/%s: %s%s",
            session.session_id[:12], slot, prompt.prompt_type.value,
            f" (auto-approving {prompt.auto_response.label})"
            if prompt.auto_response else "",
        )

        if prompt.auto_response is not None:
            self._timers[session.session_id] = asyncio.create_task(
                self._auto_respond(session, prompt),
                name=f"auto-respond-{session.session_id[:12]}",
            )
        return prompt

    async def _auto_respond(self, session: Session, prompt: Prompt) -> None:
        await asyncio.sleep(self._auto_response_delay)
        if session.is_terminal or session.current_prompt is not prompt:
            return
        option = prompt.auto_response
        if option is None:
            return
        try:
            await self.respond(session, option.key, auto=True)
        except OrchestrationError as exc:
            logger.warning(
                "Auto-response for %s failed: %s", session.session_id[:12], exc,
            )

    def _clear_prompt(self, session: Session) -> None:
        session.current_prompt = None
        timer = self._timers.pop(session.session_id, None)
        if timer is not None and timer is not asyncio.current_task():
            timer.cancel()
        if session.status == SessionStatus.WAITING_FOR_INPUT:
            self._registry.transition(session, SessionStatus.ACTIVE)

    async def respond(
        self, session: Session, option_key: str, auto: bool = False,
    ) -> PromptOption:
        """Answer the pending prompt with one of its option keys.

        Raises:
            PromptNotFoundError: No prompt is pending.
            InvalidResponseKeyError: The prompt does not offer option_key.
        """
        prompt = session.current_prompt
        if prompt is None:
            raise PromptNotFoundError(session.session_id)
        option = prompt.option(option_key)
        if option is None:
            raise InvalidResponseKeyError(
                session.session_id, option_key, [o.key for o in prompt.options],
            )

        self._clear_prompt(session)
        handle = session.slots.get(prompt.slot)
        delivered = False
        if handle is not None:
            delivered = await self._supervisor.write(handle, option.response)
        if not delivered:
            logger.warning(
                "Response %r for %s/%s was not delivered (process gone)",
                option.key, session.session_id[:12], prompt.slot,
            )
        session.append_output("stdin", option.response, slot=prompt.slot)
        self._registry.publish(session, {
            "event": "prompt_response",
            "key": option.key,
            "label": option.label,
            "auto": auto,
            "slot": prompt.slot,
            "delivered": delivered,
        })
        logger.info(
            "%s prompt in %s with %s",
            "Auto-answered" if auto else "Answered",
            session.session_id[:12], option.label,
        )
        return option

    async def send_input(
        self, session: Session, text: str, slot: str | None = None,
    ) -> bool:
        """Write raw text to a session process; clears any pending prompt."""
        if slot is None:
            slot = (
                session.current_prompt.slot
                if session.current_prompt else MAIN_SLOT
            )
        if session.current_prompt is not None:
            self._clear_prompt(session)
        handle = session.slots.get(slot)
        if handle is None:
            return False
        session.last_activity = datetime.now(timezone.utc)
        return await self._supervisor.write(handle, text)

    def drop(self, session: Session, slot: str) -> bool:
        """Forget a pending prompt whose process in ``slot`` has closed.

        Returns True when a prompt was dropped. Prompts from other slots
        stay pending.
        """
        prompt = session.current_prompt
        if prompt is None or prompt.slot != slot:
            return False
        self._clear_prompt(session)
        logger.info(
            "Dropped unanswered %s prompt in %s/%s: process closed",
            prompt.prompt_type.value, session.session_id[:12], slot,
        )
        return True

    def cancel(self, session_id: str) -> None:
        """Drop any pending auto-response for a session being torn down."""
        timer = self._timers.pop(session_id, None)
        if timer is not None and timer is not asyncio.current_task():
            timer.cancel()
