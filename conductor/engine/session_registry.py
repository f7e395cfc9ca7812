"""Session registry: owns session records, working dirs, and owner indices.

The registry is the only component that mutates the session table.
Finished sessions move to a bounded history so status queries still
work after teardown.
"""
from __future__ import annotations

import asyncio
import logging
import re
import time
import uuid
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any

from .channel import SessionChannel
from .errors import SessionNotFoundError, SessionStateError
from .lifecycle import validate_transition
from .models import (
    MAIN_SLOT,
    TERMINAL_STATUSES,
    ModeKind,
    Session,
    SessionStatus,
)

if TYPE_CHECKING:
    from .process_supervisor import ProcessHandle, ProcessSupervisor

logger = logging.getLogger(__name__)

_OWNER_SAFE_RE = re.compile(r"[^A-Za-z0-9_.-]+")


@dataclass
class SessionMetrics:
    """Lifecycle counters across every session the registry has seen."""
    sessions_started: int = 0
    sessions_completed: int = 0
    sessions_failed: int = 0
    sessions_terminated: int = 0
    total_session_seconds: float = 0.0

    @property
    def average_session_seconds(self) -> float:
        finished = (
            self.sessions_completed
            + self.sessions_failed
            + self.sessions_terminated
        )
        return self.total_session_seconds / finished if finished else 0.0

    def snapshot(self) -> dict[str, float]:
        return {
            "sessions_started": self.sessions_started,
            "sessions_completed": self.sessions_completed,
            "sessions_failed": self.sessions_failed,
            "sessions_terminated": self.sessions_terminated,
            "average_session_seconds": round(
                self.average_session_seconds, 3,
            ),
        }


def generate_project_name(request: str, session_id: str) -> str:
    """Directory name for a session: project type, date, time, short id."""
    text = (request or "").lower()
    if "landing" in text:
        project_type = "landing"
    elif "dashboard" in text or "admin" in text:
        project_type = "dashboard"
    elif "api" in text or "backend" in text:
        project_type = "api"
    elif "app" in text or "application" in text:
        project_type = "app"
    else:
        project_type = "website"
    now = datetime.now()
    suffix = session_id.rsplit("-", 1)[-1][-6:]
    return (
        f"conductor-{project_type}-{now:%Y-%m-%d}-{now:%H-%M}-{suffix}"
    )


class SessionRegistry:
    """Creates, indexes, and tears down sessions.

    Enforces:
    - unique session ids
    - at most one live process handle per session slot
    - validated, monotonic status transitions
    """

    def __init__(
        self,
        supervisor: ProcessSupervisor,
        projects_dir: str | Path = "projects",
        history_limit: int = 200,
        channel_queue_size: int = 1000,
    ) -> None:
        self._supervisor = supervisor
        self._projects_dir = Path(projects_dir).expanduser()
        self._channel_queue_size = channel_queue_size
        self._sessions: dict[str, Session] = {}
        self._owner_index: dict[str, list[str]] = {}
        self._history: deque[Session] = deque(maxlen=history_limit)
        self.metrics = SessionMetrics()

    @property
    def projects_dir(self) -> Path:
        return self._projects_dir

    def _allocate_id(self, mode: ModeKind, owner_id: str) -> str:
        owner = _OWNER_SAFE_RE.sub("_", owner_id) or "anon"
        base = f"{mode.value}-{owner}-{int(time.time() * 1000)}"
        session_id = base
        counter = 1
        while session_id in self._sessions or self.find(session_id):
            session_id = f"{base}-{counter}"
            counter += 1
        return session_id

    def create(
        self,
        owner_id: str,
        request: str,
        mode: ModeKind,
        cwd: str | Path | None = None,
        auto_approve: bool = True,
    ) -> Session:
        """Allocate and store a new session in the INITIALIZING state.

        The working directory is only computed here; it is created by
        ensure_working_dir() when a process is about to run in it.
        """
        session_id = self._allocate_id(mode, owner_id)
        base = Path(cwd).expanduser() if cwd else self._projects_dir
        working_dir = base / generate_project_name(request, str(uuid.uuid4()))
        session = Session(
            session_id=session_id,
            owner_id=owner_id,
            mode=mode,
            request=request,
            working_dir=working_dir,
            auto_approve=auto_approve,
        )
        session.channel = SessionChannel(
            session_id, maxsize=self._channel_queue_size,
        )
        self._sessions[session_id] = session
        self._owner_index.setdefault(owner_id, []).append(session_id)
        self.metrics.sessions_started += 1
        logger.info(
            "Session created: %s (owner=%s, mode=%s, dir=%s)",
            session_id, owner_id, mode.value, working_dir,
        )
        return session

    def ensure_working_dir(self, session: Session) -> Path:
        session.working_dir.mkdir(parents=True, exist_ok=True)
        return session.working_dir

    def get(self, session_id: str) -> Session:
        """Get an active session. Raises SessionNotFoundError."""
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def find(self, session_id: str) -> Session | None:
        """Active session or historical record, if any."""
        session = self._sessions.get(session_id)
        if session is not None:
            return session
        for record in self._history:
            if record.session_id == session_id:
                return record
        return None

    def list_active(self) -> list[Session]:
        return list(self._sessions.values())

    def list_by_owner(self, owner_id: str) -> list[Session]:
        sessions = []
        for session_id in self._owner_index.get(owner_id, []):
            session = self.find(session_id)
            if session is not None:
                sessions.append(session)
        return sessions

    def publish(self, session: Session, event: dict[str, Any]) -> None:
        if session.channel is not None:
            session.channel.publish(event)

    # ── Process slots ──

    def attach_process(
        self,
        session: Session,
        handle: ProcessHandle,
        slot: str = MAIN_SLOT,
    ) -> None:
        """Bind a handle to a slot. One live handle per slot."""
        if session.is_terminal:
            raise SessionStateError(
                session.session_id,
                f"cannot attach a process to a {session.status.value} session",
            )
        current = session.slots.get(slot)
        if current is not None and current.is_alive:
            raise SessionStateError(
                session.session_id,
                f"slot '{slot}' already owns live process pid={current.pid}",
            )
        session.slots[slot] = handle

    def detach_process(
        self,
        session: Session,
        slot: str = MAIN_SLOT,
        handle: ProcessHandle | None = None,
    ) -> None:
        current = session.slots.get(slot)
        if current is None:
            return
        if handle is not None and current is not handle:
            return
        del session.slots[slot]

    # ── Status ──

    def transition(
        self,
        session: Session,
        status: SessionStatus,
        error: str | None = None,
    ) -> bool:
        """Move a session to a new status and publish the change.

        Returns False when the session is already in that status.
        """
        if session.status == status:
            return False
        validate_transition(session.session_id, session.status, status)
        old = session.status
        session.status = status
        if error:
            session.error = error
        logger.info(
            "Session %s: %s -> %s", session.session_id, old.value, status.value,
        )
        self.publish(session, {
            "event": "status_changed",
            "old_status": old.value,
            "new_status": status.value,
            "error": error,
        })
        return True

    # ── Teardown ──

    async def terminate(self, session_id: str) -> Session:
        """Kill every owned process, detach subscribers, mark terminated.

        Calling it again returns the already-finished record.
        """
        session = self._sessions.pop(session_id, None)
        if session is None:
            record = self.find(session_id)
            if record is None:
                raise SessionNotFoundError(session_id)
            logger.debug("terminate(%s): already %s", session_id, record.status.value)
            return record

        logger.info("Terminating session: %s", session_id)
        handles = list(session.slots.values())
        self.transition(session, SessionStatus.TERMINATED)
        await asyncio.gather(
            *(self._supervisor.kill(h) for h in handles),
            return_exceptions=True,
        )
        session.slots.clear()
        session.current_prompt = None
        await self._close(session)
        return session

    async def finish(
        self,
        session_id: str,
        status: SessionStatus,
        error: str | None = None,
    ) -> Session:
        """Natural completion or failure. No-op once the session is gone."""
        if status not in TERMINAL_STATUSES:
            raise SessionStateError(
                session_id, f"finish() needs a terminal status, got {status.value}",
            )
        session = self._sessions.pop(session_id, None)
        if session is None:
            record = self.find(session_id)
            if record is None:
                raise SessionNotFoundError(session_id)
            return record
        self.transition(session, status, error=error)
        session.current_prompt = None
        for slot, handle in list(session.slots.items()):
            if not handle.is_alive:
                del session.slots[slot]
        await self._close(session)
        return session

    async def _close(self, session: Session) -> None:
        session.ended_at = datetime.now(timezone.utc)
        self.metrics.total_session_seconds += session.duration_seconds
        if session.status == SessionStatus.COMPLETED:
            self.metrics.sessions_completed += 1
        elif session.status == SessionStatus.FAILED:
            self.metrics.sessions_failed += 1
        else:
            self.metrics.sessions_terminated += 1
        self.publish(session, {
            "event": "session_closed",
            "status": session.status.value,
            "error": session.error,
            "duration_seconds": round(session.duration_seconds, 3),
        })
        if session.channel is not None:
            await session.channel.close()
        self._history.append(session)
        logger.info(
            "Session closed: %s (%s after %.1fs)",
            session.session_id, session.status.value, session.duration_seconds,
        )

    async def shutdown(self) -> None:
        for session_id in list(self._sessions):
            await self.terminate(session_id)

    # ── Queries ──

    def status(self, session_id: str) -> dict[str, Any]:
        session = self.find(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        data = session.snapshot()
        data["is_active"] = session_id in self._sessions
        return data

    def history(self, limit: int = 50) -> list[Session]:
        """Most recently finished sessions first."""
        records = list(self._history)[-limit:]
        return sorted(records, key=lambda s: s.created_at, reverse=True)

    def stats(self) -> dict[str, Any]:
        every = list(self._sessions.values()) + list(self._history)
        return {
            "total_sessions": len(every),
            "active_sessions": len(self._sessions),
            "waiting_for_input": sum(
                1 for s in self._sessions.values()
                if s.status == SessionStatus.WAITING_FOR_INPUT
            ),
            "completed_sessions": sum(
                1 for s in every if s.status == SessionStatus.COMPLETED
            ),
            "failed_sessions": sum(
                1 for s in every if s.status == SessionStatus.FAILED
            ),
            "total_owners": len(self._owner_index),
            "projects_directory": str(self._projects_dir),
            **self.metrics.snapshot(),
        }
