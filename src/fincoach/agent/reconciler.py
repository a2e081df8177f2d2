"""
Tool invocation reconciler.

Walks the transcript, runs every pending call that may run without a human, and leaves the rest
untouched so the presentation layer can ask for a decision.  After a pass, every call the model
requested is either resolved or waiting for a human; a transcript with no waiting calls is safe to
resubmit to the model.

Results are written back into the call parts themselves, so their order in the replayed
transcript is the order the model requested them in, whatever order the executors finish in.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import (
    dataclass,
    field,
)
from typing import (
    Collection,
    List,
    Optional,
    Tuple,
)

from fincoach.agent.tool_executor import execute_tool
from fincoach.core.schema import (
    ToolCallPart,
    ToolDecision,
    ToolResult,
    Transcript,
)
from fincoach.errors import (
    ToolExecutionError,
    UnknownTool,
    UnknownToolCall,
)
from fincoach.tools import (
    Tool,
    ToolRegistry,
)

logger = logging.getLogger(__name__)

DENIAL_MESSAGE = "Error: User denied access to tool execution"
UNAVAILABLE_MESSAGE = "Error: Tool '{name}' is unavailable"


@dataclass
class ReconcileResult:
    """Outcome of one reconciliation pass."""

    transcript: Transcript
    pending_human: int = 0
    resolved: List[ToolCallPart] = field(default_factory=list)
    awaiting: List[ToolCallPart] = field(default_factory=list)
    discarded: bool = False


class Reconciler:
    """Resolves pending tool calls against a :class:`ToolRegistry`."""

    def __init__(self, registry: ToolRegistry, tool_timeout: float | None = None):
        self.registry = registry
        self.tool_timeout = tool_timeout

    async def reconcile(
        self,
        transcript: Transcript,
        cancel: Optional[asyncio.Event] = None,
        fresh_call_ids: Optional[Collection[str]] = None,
    ) -> ReconcileResult:
        """
        Run one pass over *transcript*, mutating tool-call parts in place.

        Auto-runnable calls and human-approved calls are executed concurrently; denied calls get a
        synthetic rejection; calls still needing a human are reported in ``awaiting``.  If *cancel*
        is set while executors are in flight, their results are discarded.

        *fresh_call_ids* names the calls the model has just requested.  Only those may fail the pass
        with :class:`UnknownTool`; an older pending call whose tool has since disappeared (a remote
        source that is down this turn) is resolved with an "unavailable" error result instead.
        *None* treats every pending call as fresh.

        Raises
        ------
        UnknownTool
            If a fresh call names a tool the registry does not know.
        """
        result = ReconcileResult(transcript=transcript)
        runnable: List[Tuple[ToolCallPart, Tool]] = []

        for call in transcript.pending_calls():
            try:
                entry = self.registry.resolve(call.tool_name)
            except UnknownTool:
                if fresh_call_ids is None or call.call_id in fresh_call_ids:
                    raise
                logger.warning("Tool '%s' for call %s is no longer available", call.tool_name, call.call_id)
                call.resolve(ToolResult(content=UNAVAILABLE_MESSAGE.format(name=call.tool_name), is_error=True))
                result.resolved.append(call)
                continue
            if not entry.requires_confirmation or call.decision == ToolDecision.APPROVED:
                runnable.append((call, entry))
            elif call.decision == ToolDecision.DENIED:
                call.resolve(ToolResult(content=DENIAL_MESSAGE, is_error=True))
                result.resolved.append(call)
            else:
                result.awaiting.append(call)

        if runnable:
            logger.debug("Executing %d tool calls: %s", len(runnable), [c.tool_name for c, _ in runnable])
            outcomes = await asyncio.gather(*(self._run(call, entry) for call, entry in runnable))
            if cancel is not None and cancel.is_set():
                logger.info("Turn cancelled; discarding %d tool results", len(outcomes))
                result.discarded = True
            else:
                for (call, _), outcome in zip(runnable, outcomes):
                    call.resolve(outcome)
                    result.resolved.append(call)

        result.pending_human = len(result.awaiting)
        return result

    async def _run(self, call: ToolCallPart, entry: Tool) -> ToolResult:
        try:
            return await execute_tool(entry, call.arguments, timeout=self.tool_timeout)
        except ToolExecutionError as exc:
            return ToolResult(content=f"Error: {exc}", is_error=True)


def _awaiting_call(transcript: Transcript, call_id: str) -> ToolCallPart:
    call = transcript.find_call(call_id)
    if call is None or call.is_resolved:
        raise UnknownToolCall(call_id)
    return call


def record_decision(transcript: Transcript, call_id: str, approved: bool) -> ToolCallPart:
    """
    Store a human approve/deny verdict on a pending call.

    The next :meth:`Reconciler.reconcile` pass runs the executor for an approved call and attaches
    a rejection result for a denied one.
    """
    call = _awaiting_call(transcript, call_id)
    call.decision = ToolDecision.APPROVED if approved else ToolDecision.DENIED
    return call


def supply_result(transcript: Transcript, call_id: str, content: str, is_error: bool = False) -> ToolCallPart:
    """Resolve a pending call with a result produced outside the reconciler."""
    call = _awaiting_call(transcript, call_id)
    call.resolve(ToolResult(content=content, is_error=is_error))
    return call
