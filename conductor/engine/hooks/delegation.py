"""Single-flight FIFO queue in front of the AI call.

At most one delegation runs at a time. After each item the worker
pauses ``inter_item_delay`` seconds before taking the next.
"""
from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from ..errors import DelegationFailure
from ..models import DelegationRequest
from .agent_catalog import AgentCatalog, AgentProfile

logger = logging.getLogger(__name__)

# async def ai_call(prompt: str, request: DelegationRequest) -> Any
AICall = Callable[[str, DelegationRequest], Awaitable[Any]]


def compose_prompt(profile: AgentProfile, request: DelegationRequest) -> str:
    context = json.dumps(request.context, indent=2, default=str)
    return (
        f"{profile.research_prompt()}\n\n"
        f"TASK: {request.task}\n"
        f"CONTEXT: {context}\n\n"
        "Provide your research and recommendations based on the above context."
    )


class DelegationQueue:
    """Runs delegated tasks one after another through an injected AI call."""

    def __init__(
        self,
        ai_call: AICall,
        catalog: AgentCatalog | None = None,
        inter_item_delay: float = 0.1,
        call_timeout: float | None = None,
    ) -> None:
        self._ai_call = ai_call
        self._catalog = catalog or AgentCatalog()
        self._delay = inter_item_delay
        self._timeout = call_timeout
        self._queue: asyncio.Queue[DelegationRequest] = asyncio.Queue()
        self._worker: asyncio.Task[None] | None = None
        self._current: DelegationRequest | None = None
        self.processed = 0

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    @property
    def busy(self) -> bool:
        return self._current is not None

    def enqueue(self, agent: str, context: Any, task: str) -> asyncio.Future[Any]:
        """Queue a delegation and return the future of its result."""
        loop = asyncio.get_running_loop()
        request = DelegationRequest(
            agent=agent, task=task, context=context, future=loop.create_future(),
        )
        self._queue.put_nowait(request)
        logger.debug(
            "Delegation %s queued: %s -> %s (pending=%d)",
            request.request_id, task, agent, self._queue.qsize(),
        )
        if self._worker is None or self._worker.done():
            self._worker = loop.create_task(self._run(), name="delegation-worker")
        return request.future

    async def delegate(self, agent: str, context: Any, task: str) -> Any:
        """Queue a delegation and wait for it. Raises DelegationFailure."""
        return await self.enqueue(agent, context, task)

    async def _run(self) -> None:
        while True:
            request = await self._queue.get()
            try:
                if request.future.done():
                    logger.debug(
                        "Skipping abandoned delegation %s", request.request_id,
                    )
                    continue
                self._current = request
                await self._process(request)
                self.processed += 1
            finally:
                self._current = None
                self._queue.task_done()
            await asyncio.sleep(self._delay)

    async def _process(self, request: DelegationRequest) -> None:
        profile = self._catalog.resolve(request.agent)
        prompt = compose_prompt(profile, request)
        try:
            if self._timeout is not None:
                result = await asyncio.wait_for(
                    self._ai_call(prompt, request), timeout=self._timeout,
                )
            else:
                result = await self._ai_call(prompt, request)
        except DelegationFailure as exc:
            self._reject(request, exc)
        except asyncio.TimeoutError:
            self._reject(request, DelegationFailure(
                request.agent, request.task,
                f"AI call timed out after {self._timeout}s",
            ))
        except Exception as exc:
            failure = DelegationFailure(request.agent, request.task, str(exc))
            failure.__cause__ = exc
            self._reject(request, failure)
        else:
            if request.future.done():
                logger.debug(
                    "Discarding result for abandoned delegation %s",
                    request.request_id,
                )
            else:
                request.future.set_result(result)

    def _reject(self, request: DelegationRequest, error: DelegationFailure) -> None:
        logger.warning("Delegation %s failed: %s", request.request_id, error)
        if not request.future.done():
            request.future.set_exception(error)

    async def join(self) -> None:
        """Wait until every queued delegation has been processed."""
        await self._queue.join()

    async def close(self) -> None:
        """Stop the worker and fail whatever is still queued."""
        current = self._current
        if self._worker is not None:
            self._worker.cancel()
            await asyncio.gather(self._worker, return_exceptions=True)
            self._worker = None
        stranded = [current] if current is not None else []
        while not self._queue.empty():
            stranded.append(self._queue.get_nowait())
            self._queue.task_done()
        for request in stranded:
            if not request.future.done():
                request.future.set_exception(DelegationFailure(
                    request.agent, request.task, "delegation queue closed",
                ))
        self._current = None
