"""
Per-user chat agent.

Each end user gets one :class:`ChatAgent`.  It owns the transcript and the session state, and
processes one turn at a time: a new user message (or a resume after a confirmation) is only
accepted once the previous turn has finished or suspended.
"""

from __future__ import annotations

import asyncio
import logging
from typing import (
    AsyncIterator,
    Iterable,
    List,
    Optional,
)

from fincoach.agent.discovery import (
    RemoteToolConnection,
    RemoteToolSource,
)
from fincoach.agent.driver import (
    DriverConfig,
    TurnDriver,
    TurnEvent,
)
from fincoach.agent.oracle import ModelOracle
from fincoach.agent.reconciler import (
    record_decision,
    supply_result,
)
from fincoach.backend.client import BackendClient
from fincoach.core.schema import (
    Message,
    ToolCallPart,
    Transcript,
)
from fincoach.core.state import SessionState
from fincoach.errors import (
    ConfirmationPending,
    DiscoveryUnavailable,
)
from fincoach.tools import (
    TOOLS_REQUIRING_CONFIRMATION,
    Tool,
    ToolRegistry,
)
from fincoach.tools.backend import build_backend_tools
from fincoach.tools.profile import build_profile_tools

logger = logging.getLogger(__name__)


class ChatAgent:
    """Conversation state plus the per-turn wiring of tools, oracle and driver."""

    def __init__(
        self,
        session_id: str,
        oracle: ModelOracle,
        backend: BackendClient,
        remote_source: Optional[RemoteToolSource] = None,
        config: Optional[DriverConfig] = None,
        confirmation_required: Iterable[str] = TOOLS_REQUIRING_CONFIRMATION,
    ):
        self.session_id = session_id
        self.oracle = oracle
        self.backend = backend
        self.remote_source = remote_source
        self.config = config or DriverConfig()
        self.confirmation_required = frozenset(confirmation_required)
        self.transcript = Transcript()
        self.state = SessionState()
        self._lock = asyncio.Lock()
        self._cancel: Optional[asyncio.Event] = None

    # ------------------------------------------------------------------ #
    # Tools
    # ------------------------------------------------------------------ #
    def local_tools(self) -> List[Tool]:
        """Profile tools bound to this agent's state, then the backend API tools."""
        return build_profile_tools(self.state) + build_backend_tools(self.backend)

    async def _discover(self) -> Optional[RemoteToolConnection]:
        if self.remote_source is None:
            return None
        try:
            return await self.remote_source.connect()
        except DiscoveryUnavailable as exc:
            logger.warning("Continuing with local tools only: %s", exc)
            return None

    def build_registry(self, connection: Optional[RemoteToolConnection] = None) -> ToolRegistry:
        """Local tools first; remote tools whose names collide are skipped."""
        registry = ToolRegistry(self.confirmation_required)
        for entry in self.local_tools():
            registry.register(entry)
        if connection is not None:
            registry.merge(connection.as_tools())
        return registry

    # ------------------------------------------------------------------ #
    # Turns
    # ------------------------------------------------------------------ #
    @property
    def awaiting_confirmation(self) -> List[ToolCallPart]:
        """Calls that need a human decision before the conversation can continue."""
        return [
            call
            for call in self.transcript.pending_calls()
            if call.tool_name in self.confirmation_required and call.decision is None
        ]

    async def send(self, text: Optional[str] = None) -> AsyncIterator[TurnEvent]:
        """
        Run one turn and yield its events.

        *text* is appended as a user message; pass *None* to resume after a decision.

        Raises
        ------
        ConfirmationPending
            If *text* is given while a confirmation is still outstanding.
        """
        async with self._lock:
            if text is not None:
                if self.awaiting_confirmation:
                    raise ConfirmationPending("Please respond to the pending tool confirmation first.")
                self.transcript.append(Message.user(text))

            self._cancel = asyncio.Event()
            connection = await self._discover()
            try:
                driver = TurnDriver(self.oracle, self.build_registry(connection), self.config)
                async for event in driver.run(self.transcript, self._cancel):
                    yield event
            finally:
                self._cancel = None
                if connection is not None:
                    await connection.close()

    def decide(self, call_id: str, approved: bool) -> ToolCallPart:
        """Record a human approve/deny verdict; the next :meth:`send` acts on it."""
        call = record_decision(self.transcript, call_id, approved)
        logger.info("Call %s (%s) %s", call_id, call.tool_name, "approved" if approved else "denied")
        return call

    def supply_result(self, call_id: str, content: str) -> ToolCallPart:
        """Resolve a pending call with a result produced by the client."""
        return supply_result(self.transcript, call_id, content)

    def stop(self) -> bool:
        """Signal the running turn to abort; False if no turn is running."""
        if self._cancel is None:
            return False
        self._cancel.set()
        return True

    def clear_history(self) -> None:
        """Forget the transcript; the profile state is kept."""
        self.transcript.clear()
