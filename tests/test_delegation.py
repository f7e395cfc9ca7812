from __future__ import annotations

import asyncio

import pytest

from conductor.engine.errors import DelegationFailure
from conductor.engine.hooks.agent_catalog import AgentCatalog, AgentProfile
from conductor.engine.hooks.delegation import DelegationQueue, compose_prompt
from conductor.engine.hooks.metrics import MetricsCollector
from conductor.engine.models import DelegationRequest


class RecordingAICall:
    """Fake AI call that sleeps per task and records overlap."""

    def __init__(self, durations=None, fail_on=()):
        self.durations = durations or {}
        self.fail_on = set(fail_on)
        self.started = []
        self.prompts = []
        self.active = 0
        self.max_active = 0

    async def __call__(self, prompt, request):
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        self.started.append(request.task)
        self.prompts.append(prompt)
        try:
            await asyncio.sleep(self.durations.get(request.task, 0))
            if request.task in self.fail_on:
                raise RuntimeError(f"model refused {request.task}")
            return {"task": request.task, "agent": request.agent}
        finally:
            self.active -= 1


def _catalog(tmp_path):
    return AgentCatalog(project_root=tmp_path, user_dir=tmp_path / "user-agents")


@pytest.mark.asyncio
async def test_queue_is_fifo_and_single_flight(tmp_path):
    ai_call = RecordingAICall(durations={"t1": 0.05, "t2": 0.0, "t3": 0.02})
    queue = DelegationQueue(ai_call, _catalog(tmp_path), inter_item_delay=0.0)

    futures = [queue.enqueue("agent", {"i": i}, f"t{i}") for i in (1, 2, 3)]
    assert queue.pending == 3
    results = await asyncio.gather(*futures)

    assert [r["task"] for r in results] == ["t1", "t2", "t3"]
    assert ai_call.started == ["t1", "t2", "t3"]
    assert ai_call.max_active == 1
    await queue.join()
    assert queue.processed == 3
    assert not queue.busy
    await queue.close()


@pytest.mark.asyncio
async def test_inter_item_delay_spaces_calls(tmp_path):
    ai_call = RecordingAICall()
    queue = DelegationQueue(ai_call, _catalog(tmp_path), inter_item_delay=0.1)
    loop = asyncio.get_running_loop()
    started = loop.time()
    await asyncio.gather(
        queue.delegate("a", {}, "first"), queue.delegate("a", {}, "second"),
    )
    assert loop.time() - started >= 0.1
    await queue.close()


@pytest.mark.asyncio
async def test_failure_rejects_only_that_request(tmp_path):
    ai_call = RecordingAICall(fail_on={"bad"})
    queue = DelegationQueue(ai_call, _catalog(tmp_path), inter_item_delay=0.0)

    good = queue.enqueue("a", {}, "good")
    bad = queue.enqueue("a", {}, "bad")
    after = queue.enqueue("a", {}, "after")

    assert (await good)["task"] == "good"
    with pytest.raises(DelegationFailure) as exc_info:
        await bad
    assert "model refused bad" in str(exc_info.value)
    assert isinstance(exc_info.value.__cause__, RuntimeError)
    assert (await after)["task"] == "after"
    await queue.close()


@pytest.mark.asyncio
async def test_delegation_failure_from_call_is_passed_through(tmp_path):
    async def refuse(prompt, request):
        raise DelegationFailure(request.agent, request.task, "quota exhausted")

    queue = DelegationQueue(refuse, _catalog(tmp_path), inter_item_delay=0.0)
    with pytest.raises(DelegationFailure) as exc_info:
        await queue.delegate("a", {}, "t")
    assert exc_info.value.reason == "quota exhausted"
    await queue.close()


@pytest.mark.asyncio
async def test_timeout_fails_request_and_queue_moves_on(tmp_path):
    ai_call = RecordingAICall(durations={"stuck": 5.0})
    queue = DelegationQueue(
        ai_call, _catalog(tmp_path), inter_item_delay=0.0, call_timeout=0.05,
    )
    stuck = queue.enqueue("a", {}, "stuck")
    quick = queue.enqueue("a", {}, "quick")

    with pytest.raises(DelegationFailure) as exc_info:
        await stuck
    assert "timed out" in str(exc_info.value)
    assert (await quick)["task"] == "quick"
    await queue.close()


@pytest.mark.asyncio
async def test_abandoned_request_is_skipped(tmp_path):
    ai_call = RecordingAICall(durations={"first": 0.05})
    queue = DelegationQueue(ai_call, _catalog(tmp_path), inter_item_delay=0.0)
    first = queue.enqueue("a", {}, "first")
    abandoned = queue.enqueue("a", {}, "abandoned")
    abandoned.cancel()

    await first
    await queue.join()
    assert ai_call.started == ["first"]
    await queue.close()


@pytest.mark.asyncio
async def test_close_fails_running_and_queued(tmp_path):
    ai_call = RecordingAICall(durations={"slow": 5.0})
    queue = DelegationQueue(ai_call, _catalog(tmp_path), inter_item_delay=0.0)
    running = queue.enqueue("a", {}, "slow")
    queued = queue.enqueue("a", {}, "next")
    await asyncio.sleep(0.02)
    assert queue.busy

    await queue.close()

    for future in (running, queued):
        with pytest.raises(DelegationFailure) as exc_info:
            await future
        assert "queue closed" in str(exc_info.value)
    assert queue.pending == 0


@pytest.mark.asyncio
async def test_prompt_uses_catalog_profile(tmp_path):
    agents = tmp_path / ".claude" / "agents"
    agents.mkdir(parents=True)
    (agents / "auditor.md").write_text(
        "---\nname: auditor\ndescription: Security review\n---\nYou audit code for vulnerabilities.\n"
    )
    catalog = _catalog(tmp_path)
    catalog.load()
    ai_call = RecordingAICall()
    queue = DelegationQueue(ai_call, catalog, inter_item_delay=0.0)

    await queue.delegate("auditor", {"files": ["a.py"]}, "review auth")
    await queue.delegate("stranger", {}, "anything")

    assert ai_call.prompts[0].startswith("You audit code for vulnerabilities.")
    assert "TASK: review auth" in ai_call.prompts[0]
    assert '"files": [\n    "a.py"\n  ]' in ai_call.prompts[0]
    assert ai_call.prompts[1].startswith("You are stranger: Dynamic agent")
    await queue.close()


def test_compose_prompt_layout():
    loop = asyncio.new_event_loop()
    try:
        request = DelegationRequest(
            agent="x", task="summarise", context={"a": 1}, future=loop.create_future(),
        )
    finally:
        loop.close()
    prompt = compose_prompt(AgentProfile(name="x", system_prompt="SYSTEM"), request)
    assert prompt == (
        "SYSTEM\n\nTASK: summarise\nCONTEXT: {\n  \"a\": 1\n}\n\n"
        "Provide your research and recommendations based on the above context."
    )


def test_metrics_snapshot():
    metrics = MetricsCollector()
    metrics.record_script(0.010)
    metrics.record_script(0.010)
    metrics.record_delegation(0.500)
    metrics.record_failure()

    snap = metrics.snapshot()
    assert snap["script_executions"] == 2
    assert snap["ai_delegations"] == 1
    assert snap["failures"] == 1
    assert snap["avg_script_ms"] == 10.0
    assert snap["avg_ai_ms"] == 500.0
    assert snap["delegation_rate"] == "50.0%"
    assert snap["expected_latency"] == {"script_only": "~10ms", "with_ai": "~510ms"}


def test_metrics_empty_and_window():
    metrics = MetricsCollector(window=2)
    assert metrics.snapshot()["delegation_rate"] == "0.0%"
    assert metrics.snapshot()["avg_script_ms"] == 0.0
    for seconds in (1.0, 0.002, 0.004):
        metrics.record_script(seconds)
    snap = metrics.snapshot()
    assert snap["recent_avg_script_ms"] == 3.0
    assert snap["avg_script_ms"] == pytest.approx(335.33, abs=0.01)


def test_agent_catalog_precedence_and_parsing(tmp_path):
    project = tmp_path / ".claude" / "agents"
    user = tmp_path / "user-agents"
    project.mkdir(parents=True)
    user.mkdir()
    (project / "reviewer.md").write_text(
        "---\nname: reviewer\ndescription: Project reviewer\ntools: Read, Grep\n---\nReview it.\n"
    )
    (user / "reviewer.md").write_text(
        "---\nname: reviewer\ndescription: User reviewer\n---\nUser body.\n"
    )
    (user / "planner.md").write_text(
        "---\nname: planner\ntools: [Read]\n---\n"
    )
    (user / "notes.md").write_text("no frontmatter here\n")
    (user / "broken.md").write_text("---\nname: [unclosed\n---\nbody\n")

    catalog = AgentCatalog(project_root=tmp_path, user_dir=user)
    assert catalog.load() == 2
    assert catalog.names() == ["planner", "reviewer"]

    reviewer = catalog.get("reviewer")
    assert reviewer.description == "Project reviewer"
    assert reviewer.tools == ["Read", "Grep"]
    assert reviewer.system_prompt == "Review it."
    assert reviewer.source == "project"

    planner = catalog.get("planner")
    assert planner.tools == ["Read"]
    assert planner.research_prompt() == "You are planner."

    dynamic = catalog.resolve("ghost")
    assert dynamic.description == "Dynamic agent"
    assert catalog.get("ghost") is None
