"""Tests for the per-user chat agent."""

import asyncio
from typing import List

import httpx
import pytest
from conftest import (
    ScriptedOracle,
    calls,
    reply,
)
from test_discovery import FakeServer

from fincoach.agent.chat_agent import ChatAgent
from fincoach.agent.discovery import RemoteToolSource
from fincoach.agent.driver import TurnEvent
from fincoach.backend.client import BackendClient
from fincoach.errors import ConfirmationPending

BACKEND = BackendClient("http://backend.test", transport=httpx.MockTransport(lambda r: httpx.Response(500)))


def _drain(agent: ChatAgent, text=None) -> List[TurnEvent]:
    async def run() -> List[TurnEvent]:
        return [event async for event in agent.send(text)]

    return asyncio.run(run())


def test_local_tools_registered() -> None:
    """Profile and backend tools are always available."""

    agent = ChatAgent("s1", ScriptedOracle([]), BACKEND)
    registry = agent.build_registry()

    assert {"getUserInfo", "updateUserProfile", "setUserName", "getTransactions"} <= {t.name for t in registry}


def test_remote_tools_merged_and_connection_closed() -> None:
    """Remote tools join the registry for the turn; the connection is released afterwards."""

    server = FakeServer()
    source = RemoteToolSource("http://tools.test/mcp", transport=httpx.MockTransport(server))
    oracle = ScriptedOracle([calls(("c1", "getWeather", {"city": "Durban"})), reply("Sunny!")])
    agent = ChatAgent("s1", oracle, BACKEND, remote_source=source)

    events = _drain(agent, "weather?")

    assert events[1].data["call"]["result"]["content"] == "Sunny in Durban"
    assert server.methods()[-1] == "DELETE"


def test_unreachable_remote_source_falls_back() -> None:
    """The turn proceeds with local tools when discovery fails."""

    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    source = RemoteToolSource("http://tools.test/mcp", transport=httpx.MockTransport(refuse))
    agent = ChatAgent("s1", ScriptedOracle([reply("Hi!")]), BACKEND, remote_source=source)

    events = _drain(agent, "hello")
    assert events[-1].data["state"] == "done"


def test_new_message_rejected_while_awaiting() -> None:
    """User input is refused until the pending confirmation is answered."""

    oracle = ScriptedOracle([calls(("c1", "getTransactions", {}))])
    agent = ChatAgent("s1", oracle, BACKEND, confirmation_required={"getTransactions"})
    _drain(agent, "spending?")

    assert [call.call_id for call in agent.awaiting_confirmation] == ["c1"]
    with pytest.raises(ConfirmationPending):
        _drain(agent, "hello?")

    agent.decide("c1", approved=False)
    assert agent.awaiting_confirmation == []


def test_clear_history_keeps_state() -> None:
    """Clearing the transcript does not forget the profile."""

    agent = ChatAgent("s1", ScriptedOracle([calls(("c1", "setUserName", {"name": "Sipho"})), reply("Hi Sipho")]), BACKEND)
    _drain(agent, "I'm Sipho")
    agent.clear_history()

    assert len(agent.transcript) == 0
    assert agent.state.user_name == "Sipho"
    assert agent.stop() is False


def test_remote_outage_does_not_break_session() -> None:
    """An approved remote call whose server went away is answered with an error and the session goes on."""

    server = FakeServer()
    outage = {"down": False}

    def handler(request: httpx.Request) -> httpx.Response:
        if outage["down"]:
            raise httpx.ConnectError("refused", request=request)
        return server(request)

    source = RemoteToolSource("http://tools.test/mcp", transport=httpx.MockTransport(handler))
    oracle = ScriptedOracle(
        [calls(("c1", "getWeather", {"city": "Durban"})), reply("The weather service is down."), reply("Hi again!")]
    )
    agent = ChatAgent("s1", oracle, BACKEND, remote_source=source, confirmation_required={"getWeather"})

    assert _drain(agent, "weather?")[-1].data["state"] == "suspended"
    agent.decide("c1", approved=True)
    outage["down"] = True

    resumed = _drain(agent)
    assert resumed[0].type == "tool-result"
    assert resumed[0].data["call"]["result"] == {"content": "Error: Tool 'getWeather' is unavailable", "is_error": True}
    assert resumed[-1].data["state"] == "done"

    later = _drain(agent, "hello")
    assert later[-1].data["state"] == "done"
    assert len(oracle.requests) == 3
