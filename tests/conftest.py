"""Shared fixtures and fakes for the test-suite."""

from typing import (
    Any,
    Dict,
    List,
    Optional,
    Sequence,
    Union,
)

import pytest

from fincoach.agent.driver import (
    TurnDriver,
    TurnOutcome,
)
from fincoach.agent.oracle import ModelOracle
from fincoach.config import Settings
from fincoach.core.schema import (
    Message,
    Role,
    TextPart,
    ToolCallPart,
    Transcript,
)
from fincoach.tools import (
    Tool,
    ToolRegistry,
    ToolSpec,
)

Scripted = Union[Message, Exception]


def reply(text: str) -> Message:
    """Assistant message with a single text part."""
    return Message(role=Role.ASSISTANT, parts=[TextPart(content=text)])


def calls(*requested: tuple, text: str = "") -> Message:
    """Assistant message requesting ``(call_id, tool_name, arguments)`` tool calls."""
    parts: List[Any] = [TextPart(content=text)] if text else []
    parts.extend(
        ToolCallPart(call_id=call_id, tool_name=name, arguments=arguments)
        for call_id, name, arguments in requested
    )
    return Message(role=Role.ASSISTANT, parts=parts)


class ScriptedOracle(ModelOracle):
    """Replays a fixed list of replies and records what it was asked."""

    def __init__(self, script: Sequence[Scripted]):
        self.script = list(script)
        self.requests: List[List[Dict[str, Any]]] = []

    @classmethod
    def from_settings(cls, settings: Settings) -> "ScriptedOracle":
        return cls([])

    async def complete(self, system: str, transcript: Sequence[Message], tools: Sequence[ToolSpec]) -> Message:
        self.requests.append([message.model_dump(mode="json") for message in transcript])
        if not self.script:
            raise AssertionError("oracle called more often than scripted")
        item = self.script.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


def echo_tool(name: str, requires_confirmation: bool = False, delay: float = 0.0) -> Tool:
    """Tool that returns ``<name>:<arguments>`` after an optional delay."""
    import asyncio  # pylint: disable=import-outside-toplevel

    async def execute(arguments: Dict[str, Any]) -> str:
        if delay:
            await asyncio.sleep(delay)
        return f"{name}:{arguments}"

    return Tool(name=name, description=f"{name} tool", executor=execute, requires_confirmation=requires_confirmation)


async def run_turn(driver: TurnDriver, transcript: Transcript, cancel: Optional[Any] = None) -> TurnOutcome:
    """Run *driver* to its end, discarding the event stream."""
    async for _ in driver.run(transcript, cancel):
        pass
    return driver.outcome


@pytest.fixture
def registry() -> ToolRegistry:
    """Registry with one auto-run tool and one that needs confirmation."""
    reg = ToolRegistry()
    reg.register(echo_tool("getTransactions"))
    reg.register(echo_tool("getInvestmentRecommendations"))
    return reg
