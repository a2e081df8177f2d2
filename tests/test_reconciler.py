"""Tests for the tool invocation reconciler."""

import asyncio

import pytest
from conftest import (
    calls,
    echo_tool,
)

from fincoach.agent.reconciler import (
    DENIAL_MESSAGE,
    UNAVAILABLE_MESSAGE,
    Reconciler,
    record_decision,
    supply_result,
)
from fincoach.core.schema import (
    Message,
    ToolCallState,
    Transcript,
)
from fincoach.errors import (
    UnknownTool,
    UnknownToolCall,
)
from fincoach.tools import (
    Tool,
    ToolRegistry,
)


def _transcript(*messages: Message) -> Transcript:
    transcript = Transcript()
    for message in messages:
        transcript.append(message)
    return transcript


def test_auto_calls_are_resolved(registry: ToolRegistry) -> None:
    """Calls that need no confirmation run and carry their result."""

    transcript = _transcript(Message.user("hi"), calls(("c1", "getTransactions", {"limit": 3})))
    result = asyncio.run(Reconciler(registry).reconcile(transcript))

    call = transcript.find_call("c1")
    assert call.state == ToolCallState.RESULT_AVAILABLE
    assert call.result.content == "getTransactions:{'limit': 3}"
    assert result.resolved == [call]
    assert result.pending_human == 0


def test_reconcile_is_idempotent() -> None:
    """A second pass over a reconciled transcript changes nothing and runs nothing again."""

    runs = []

    async def count(arguments):
        runs.append(arguments)
        return "ok"

    reg = ToolRegistry()
    reg.register(Tool(name="getTransactions", description="", executor=count))
    transcript = _transcript(calls(("c1", "getTransactions", {})))
    reconciler = Reconciler(reg)

    asyncio.run(reconciler.reconcile(transcript))
    before = transcript.model_dump()
    second = asyncio.run(reconciler.reconcile(transcript))

    assert transcript.model_dump() == before
    assert second.resolved == []
    assert len(runs) == 1


def test_results_keep_request_order() -> None:
    """Results land on their own call whatever order the executors finish in."""

    reg = ToolRegistry()
    reg.register(echo_tool("slow", delay=0.05))
    reg.register(echo_tool("fast"))
    transcript = _transcript(calls(("c1", "slow", {}), ("c2", "fast", {})))

    result = asyncio.run(Reconciler(reg).reconcile(transcript))

    assert [call.call_id for call in result.resolved] == ["c1", "c2"]
    assert transcript.find_call("c1").result.content == "slow:{}"
    assert transcript.find_call("c2").result.content == "fast:{}"


def test_auto_calls_run_concurrently() -> None:
    """Two slow calls finish in roughly the time of one."""

    reg = ToolRegistry()
    reg.register(echo_tool("a", delay=0.2))
    reg.register(echo_tool("b", delay=0.2))
    transcript = _transcript(calls(("c1", "a", {}), ("c2", "b", {})))

    async def timed() -> float:
        loop = asyncio.get_running_loop()
        start = loop.time()
        await Reconciler(reg).reconcile(transcript)
        return loop.time() - start

    assert asyncio.run(timed()) < 0.35


def test_confirmation_required_calls_wait(registry: ToolRegistry) -> None:
    """A gated call is left untouched and reported as awaiting a human."""

    transcript = _transcript(
        calls(("c1", "getTransactions", {}), ("c2", "getInvestmentRecommendations", {"amount": 1000}))
    )
    result = asyncio.run(Reconciler(registry).reconcile(transcript))

    gated = transcript.find_call("c2")
    assert gated.state == ToolCallState.CALL_REQUESTED
    assert gated.result is None
    assert result.awaiting == [gated]
    assert result.pending_human == 1
    assert transcript.find_call("c1").is_resolved


def test_denied_call_gets_rejection(registry: ToolRegistry) -> None:
    """Denying a call attaches the fixed rejection text without running the tool."""

    transcript = _transcript(calls(("c2", "getInvestmentRecommendations", {})))
    record_decision(transcript, "c2", approved=False)
    result = asyncio.run(Reconciler(registry).reconcile(transcript))

    call = transcript.find_call("c2")
    assert call.result.content == DENIAL_MESSAGE
    assert call.result.is_error
    assert result.awaiting == []


def test_approved_call_runs(registry: ToolRegistry) -> None:
    """Approving a call lets the next pass execute it."""

    transcript = _transcript(calls(("c2", "getInvestmentRecommendations", {"amount": 5})))
    record_decision(transcript, "c2", approved=True)
    asyncio.run(Reconciler(registry).reconcile(transcript))

    assert transcript.find_call("c2").result.content == "getInvestmentRecommendations:{'amount': 5}"


def test_decision_on_unknown_or_resolved_call(registry: ToolRegistry) -> None:
    """Decisions target only calls that are still pending."""

    transcript = _transcript(calls(("c1", "getTransactions", {})))
    with pytest.raises(UnknownToolCall):
        record_decision(transcript, "missing", approved=True)

    asyncio.run(Reconciler(registry).reconcile(transcript))
    with pytest.raises(UnknownToolCall):
        record_decision(transcript, "c1", approved=True)


def test_supply_result_resolves_call(registry: ToolRegistry) -> None:
    """A client-supplied result resolves the call without running the tool."""

    transcript = _transcript(calls(("c2", "getInvestmentRecommendations", {})))
    supply_result(transcript, "c2", "done elsewhere")
    result = asyncio.run(Reconciler(registry).reconcile(transcript))

    assert transcript.find_call("c2").result.content == "done elsewhere"
    assert result.resolved == []


def test_unknown_tool_is_fatal(registry: ToolRegistry) -> None:
    """A call naming an unregistered tool aborts the pass."""

    transcript = _transcript(calls(("c1", "launchRocket", {})))
    with pytest.raises(UnknownTool, match="launchRocket"):
        asyncio.run(Reconciler(registry).reconcile(transcript))


def test_failing_tool_becomes_error_result() -> None:
    """Executor failures and bad arguments are replayed to the model as error results."""

    async def boom(_):
        raise RuntimeError("backend down")

    reg = ToolRegistry()
    reg.register(Tool(name="getTransactions", description="", executor=boom))
    transcript = _transcript(calls(("c1", "getTransactions", {})))
    asyncio.run(Reconciler(reg).reconcile(transcript))

    result = transcript.find_call("c1").result
    assert result.is_error
    assert result.content.startswith("Error: ")
    assert "backend down" in result.content


def test_cancel_discards_results(registry: ToolRegistry) -> None:
    """Results of calls finishing after cancellation are not written back."""

    transcript = _transcript(calls(("c1", "getTransactions", {})))
    cancel = asyncio.Event()
    cancel.set()
    result = asyncio.run(Reconciler(registry).reconcile(transcript, cancel))

    assert result.discarded
    assert not transcript.find_call("c1").is_resolved


def test_stale_call_to_missing_tool_gets_error_result(registry: ToolRegistry) -> None:
    """An older call whose tool disappeared is resolved with an error instead of failing the pass."""

    transcript = _transcript(calls(("old", "getWeather", {"city": "Durban"})), calls(("new", "getTransactions", {})))
    result = asyncio.run(Reconciler(registry).reconcile(transcript, fresh_call_ids={"new"}))

    stale = transcript.find_call("old")
    assert stale.result.content == UNAVAILABLE_MESSAGE.format(name="getWeather")
    assert stale.result.is_error
    assert transcript.find_call("new").is_resolved
    assert [call.call_id for call in result.resolved] == ["old", "new"]


def test_fresh_call_to_missing_tool_stays_fatal(registry: ToolRegistry) -> None:
    """A call the model has just made to an unknown tool still aborts the pass."""

    transcript = _transcript(calls(("new", "getWeather", {})))
    with pytest.raises(UnknownTool):
        asyncio.run(Reconciler(registry).reconcile(transcript, fresh_call_ids={"new"}))
