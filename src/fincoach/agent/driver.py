"""Turn loop: model call, tool reconciliation, repeat until the model stops asking for tools."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import (
    dataclass,
    field,
)
from enum import Enum
from typing import (
    Any,
    AsyncIterator,
    Dict,
    List,
    Literal,
    Optional,
)

from fincoach.agent.oracle import ModelOracle
from fincoach.agent.reconciler import (
    ReconcileResult,
    Reconciler,
)
from fincoach.core.schema import (
    Message,
    ToolCallPart,
    Transcript,
)
from fincoach.errors import ModelOracleError
from fincoach.tools import ToolRegistry

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """\
You are an expert financial coach working for Investec, specializing in helping young South African \
professionals manage their finances. Your goal is to provide personalized, practical financial advice.

IMPORTANT PERSONALITY AND BEHAVIOR:
- Be friendly, encouraging, and professional
- Use South African context (Rand currency, local financial products, SARS tax implications)
- Always personalize advice based on the user's profile
- If the user's profile is incomplete, guide them to complete it first
- Proactively use your financial tools to provide data-driven insights
- Be motivational but realistic about financial goals

CONVERSATION FLOW:
1. If this is a new user, introduce yourself and get their name using setUserName
2. If profile incomplete, gather: age, profession, monthly income, financial goals, risk tolerance \
using updateUserProfile
3. Once profile is complete, provide personalized coaching using your financial tools

FINANCIAL EXPERTISE AREAS:
- Budgeting and expense tracking
- Investment recommendations (SA equity, ETFs, bonds, unit trusts)
- Sustainable (ESG) investing and carbon footprint reduction
- Goal setting and tracking (emergency funds, retirement, property, etc.)
- Tax optimization strategies
- Debt management
- Financial wellness and behavioral coaching

Always use your available tools to provide specific, actionable advice rather than generic responses.
"""


class TurnState(str, Enum):
    """States of the turn driver."""

    AWAITING_MODEL = "awaiting-model"
    MODEL_RESPONDED = "model-responded"
    TOOL_CALLS_PENDING = "tool-calls-pending"
    SUSPENDED = "suspended"
    DONE = "done"


EventType = Literal["message", "tool-result", "confirmation-required", "error", "finish"]


@dataclass
class TurnEvent:
    """One item of the stream handed to the presentation layer."""

    type: EventType
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class DriverConfig:
    """Explicit configuration for :class:`TurnDriver`."""

    system_prompt: str = SYSTEM_PROMPT
    max_steps: int = 100
    tool_timeout: float | None = None


@dataclass
class TurnOutcome:
    """How a turn ended."""

    state: TurnState
    steps: int = 0
    pending_confirmations: List[str] = field(default_factory=list)
    cancelled: bool = False
    step_limit_reached: bool = False
    error: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        """JSON-friendly view for the ``finish`` event."""
        return {
            "state": self.state.value,
            "steps": self.steps,
            "pending_confirmations": self.pending_confirmations,
            "cancelled": self.cancelled,
            "step_limit_reached": self.step_limit_reached,
            "error": self.error,
        }


def _call_event(kind: EventType, call: ToolCallPart) -> TurnEvent:
    return TurnEvent(kind, {"call": call.model_dump(mode="json")})


class TurnDriver:
    """
    Drives one turn of the conversation.

    ``AWAITING_MODEL -> MODEL_RESPONDED -> (TOOL_CALLS_PENDING | DONE)``; pending tool calls loop
    back to ``AWAITING_MODEL`` once every call is resolved, or suspend the turn while a call waits
    for a human.  Suspension is not terminal: the caller re-invokes :meth:`run` on the same
    transcript once the decision is recorded.
    """

    def __init__(self, oracle: ModelOracle, registry: ToolRegistry, config: DriverConfig | None = None):
        self.oracle = oracle
        self.registry = registry
        self.config = config or DriverConfig()
        self.reconciler = Reconciler(registry, tool_timeout=self.config.tool_timeout)
        self.state = TurnState.AWAITING_MODEL
        self.outcome: Optional[TurnOutcome] = None

    def _transition(self, state: TurnState) -> None:
        logger.debug("Turn state %s -> %s", self.state.value, state.value)
        self.state = state

    async def run(
        self, transcript: Transcript, cancel: Optional[asyncio.Event] = None
    ) -> AsyncIterator[TurnEvent]:
        """
        Run the turn on *transcript* (mutated in place) and yield events as they happen.

        The last event is always ``finish`` carrying :meth:`TurnOutcome.as_dict`.

        Raises
        ------
        UnknownTool
            If the model requests a tool absent from the registry.  Calls left over from an earlier
            turn whose tool has disappeared are resolved with an error result instead.
        """
        cancel = cancel or asyncio.Event()
        outcome = TurnOutcome(state=TurnState.AWAITING_MODEL)
        self.outcome = outcome
        self._transition(TurnState.AWAITING_MODEL)

        # Resolve whatever the previous turn left behind (human decisions included).
        reconciled = await self.reconciler.reconcile(transcript, cancel, fresh_call_ids=())
        for event in self._reconcile_events(reconciled):
            yield event

        while not self._halted(reconciled, outcome, cancel):
            if outcome.steps >= self.config.max_steps:
                logger.warning("Step limit of %d reached; ending turn", self.config.max_steps)
                outcome.step_limit_reached = True
                break

            outcome.steps += 1
            try:
                reply = await self._complete(transcript, cancel)
            except ModelOracleError as exc:
                logger.error("Model oracle failed: %s", exc)
                outcome.error = str(exc)
                yield TurnEvent("error", {"message": str(exc)})
                break
            if reply is None:
                outcome.cancelled = True
                break

            transcript.append(reply)
            self._transition(TurnState.MODEL_RESPONDED)
            yield TurnEvent("message", {"message": reply.model_dump(mode="json")})

            if not reply.tool_calls or cancel.is_set():
                break

            self._transition(TurnState.TOOL_CALLS_PENDING)
            fresh = {call.call_id for call in reply.tool_calls}
            reconciled = await self.reconciler.reconcile(transcript, cancel, fresh_call_ids=fresh)
            for event in self._reconcile_events(reconciled):
                yield event
            if not reconciled.awaiting:
                self._transition(TurnState.AWAITING_MODEL)

        if reconciled.discarded or cancel.is_set():
            outcome.cancelled = True
        if reconciled.awaiting and not outcome.cancelled and outcome.error is None:
            self._transition(TurnState.SUSPENDED)
            outcome.pending_confirmations = [call.call_id for call in reconciled.awaiting]
        else:
            self._transition(TurnState.DONE)
        outcome.state = self.state
        yield TurnEvent("finish", outcome.as_dict())

    def _halted(self, reconciled: ReconcileResult, outcome: TurnOutcome, cancel: asyncio.Event) -> bool:
        return bool(reconciled.awaiting) or reconciled.discarded or cancel.is_set() or outcome.error is not None

    def _reconcile_events(self, reconciled: ReconcileResult) -> List[TurnEvent]:
        events = [_call_event("tool-result", call) for call in reconciled.resolved]
        events.extend(_call_event("confirmation-required", call) for call in reconciled.awaiting)
        return events

    async def _complete(self, transcript: Transcript, cancel: asyncio.Event) -> Optional[Message]:
        """Ask the oracle for the next message; *None* if *cancel* fired first."""
        request = asyncio.ensure_future(
            self.oracle.complete(self.config.system_prompt, transcript.messages, self.registry.specs())
        )
        aborted = asyncio.ensure_future(cancel.wait())
        try:
            await asyncio.wait({request, aborted}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            aborted.cancel()
        if not request.done():
            request.cancel()
            logger.info("Model request aborted by caller")
            return None
        return request.result()

