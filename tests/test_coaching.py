"""Tests for the coaching tools and the MCP endpoint serving them."""

import asyncio
import json
from typing import (
    Any,
    Dict,
    List,
)

import httpx
import pytest
from conftest import (
    ScriptedOracle,
    calls,
    reply,
)
from fastapi import FastAPI
from fastapi.testclient import TestClient

from fincoach.agent.chat_agent import ChatAgent
from fincoach.agent.discovery import (
    SESSION_HEADER,
    RemoteToolSource,
)
from fincoach.agent.driver import TurnEvent
from fincoach.agent.tool_executor import execute_tool
from fincoach.api.app import create_app
from fincoach.backend.client import BackendClient
from fincoach.coaching.server import (
    INVALID_PARAMS,
    CoachingToolServer,
    build_coaching_router,
)
from fincoach.coaching.tools import build_coaching_tools
from fincoach.config import Settings
from fincoach.errors import (
    InvalidArguments,
    ModelOracleError,
)
from fincoach.tools import Tool

BACKEND = BackendClient("http://backend.test", transport=httpx.MockTransport(lambda r: httpx.Response(500)))

INVESTMENT_ARGS = {
    "riskTolerance": "moderate",
    "investmentAmount": 10000,
    "timeHorizon": 5,
    "investmentGoals": ["retirement"],
}


def _tools(oracle: ScriptedOracle, mock_data: bool = True) -> Dict[str, Tool]:
    return {entry.name: entry for entry in build_coaching_tools(lambda: oracle, mock_data=mock_data)}


def _run(entry: Tool, args: Dict[str, Any]) -> str:
    return asyncio.run(execute_tool(entry, args)).content


def _prompt(oracle: ScriptedOracle) -> str:
    return oracle.requests[-1][0]["parts"][0]["content"]


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------
def test_tool_catalogue() -> None:
    """All five coaching tools are offered, in a stable order."""

    assert list(_tools(ScriptedOracle([]))) == [
        "analyzeSpendingPatterns",
        "generateBudgetPlan",
        "getInvestmentRecommendations",
        "trackFinancialGoals",
        "getPersonalizedFinancialTips",
    ]


@pytest.mark.parametrize(
    "income, expected",
    [
        (20000, "25.0"),
        (30000, "50.0"),
        (None, "25.0"),
    ],
)
def test_spending_analysis_savings_rate(income, expected) -> None:
    """The savings rate is derived from income against the demo spending total."""

    args = {"monthlyIncome": income} if income else {}
    payload = json.loads(_run(_tools(ScriptedOracle([]))["analyzeSpendingPatterns"], args))

    assert payload["totalSpending"] == 15000
    assert payload["savingsRate"] == expected
    assert len(payload["recommendations"]) == 3


@pytest.mark.parametrize(
    "risk, sa_equity, bonds, returns",
    [
        ("aggressive", "40%", "20%", "12-15%"),
        ("moderate", "30%", "30%", "8-12%"),
        ("conservative", "20%", "45%", "6-9%"),
    ],
)
def test_investment_portfolio_follows_risk(risk, sa_equity, bonds, returns) -> None:
    """The suggested split and expected return depend on the risk profile."""

    args = dict(INVESTMENT_ARGS, riskTolerance=risk)
    payload = json.loads(_run(_tools(ScriptedOracle([]))["getInvestmentRecommendations"], args))

    assert payload["riskProfile"] == risk
    assert payload["recommendedPortfolio"]["SA Equity Funds"] == sa_equity
    assert payload["recommendedPortfolio"]["Bonds"] == bonds
    assert payload["projectedReturns"] == f"Expected annual return: {returns}"


def test_data_tools_without_demo_figures() -> None:
    """With demo data off the data tools say where real data would come from."""

    tools = _tools(ScriptedOracle([]), mock_data=False)

    assert _run(tools["analyzeSpendingPatterns"], {}) == "Spending analysis would connect to real banking data here"
    assert (
        _run(tools["getInvestmentRecommendations"], INVESTMENT_ARGS)
        == "Investment recommendations would connect to real market data here"
    )


def test_budget_plan_asks_the_model() -> None:
    """The budget plan is written by the model from the user's income and goals."""

    oracle = ScriptedOracle([reply("Save R4000 a month.")])
    args = {"monthlyIncome": 20000, "financialGoals": ["house", "car"], "currentAge": 27}
    result = _run(_tools(oracle)["generateBudgetPlan"], args)

    assert result == "Save R4000 a month."
    prompt = _prompt(oracle)
    assert "monthly income of R20000." in prompt
    assert "Their financial goals are: house, car." in prompt
    assert "They are 27 years old" in prompt
    assert "retire at" not in prompt


def test_goal_tracking_progress() -> None:
    """Progress and months to the goal are worked out before the model is asked."""

    oracle = ScriptedOracle([reply("Keep going!")])
    args = {"goalType": "house_deposit", "targetAmount": 10000, "currentAmount": 2500, "monthlyContribution": 1000}
    result = _run(_tools(oracle)["trackFinancialGoals"], args)

    assert result == "Keep going!"
    prompt = _prompt(oracle)
    assert prompt.startswith("A user is saving for house deposit.")
    assert "(25.0% complete)" in prompt
    assert "They need R7500 more and will reach their goal in 8 months." in prompt


def test_goal_tracking_rejects_zero_contribution() -> None:
    """A zero monthly contribution is refused before anything is computed."""

    args = {"goalType": "other", "targetAmount": 1000, "currentAmount": 0, "monthlyContribution": 0}
    with pytest.raises(InvalidArguments):
        asyncio.run(execute_tool(_tools(ScriptedOracle([]))["trackFinancialGoals"], args))


def test_tips_default_profession() -> None:
    """Tips are requested for a generic professional when no profession is known."""

    oracle = ScriptedOracle([reply("1. Budget. 2. Save. 3. Invest.")])
    args = {"userProfile": {"age": 24, "monthlyIncome": 18000.5, "mainFinancialChallenges": ["debt"]}}
    _run(_tools(oracle)["getPersonalizedFinancialTips"], args)

    assert "for a 24-year-old professional earning R18000.5 per month" in _prompt(oracle)


# ---------------------------------------------------------------------------
# MCP endpoint
# ---------------------------------------------------------------------------
def _rpc(method: str, params: Dict[str, Any] | None = None, message_id: int | None = 1) -> Dict[str, Any]:
    message: Dict[str, Any] = {"jsonrpc": "2.0", "method": method}
    if message_id is not None:
        message["id"] = message_id
    if params is not None:
        message["params"] = params
    return message


def _endpoint(oracle: ScriptedOracle) -> TestClient:
    app = FastAPI()
    app.include_router(build_coaching_router(CoachingToolServer(build_coaching_tools(lambda: oracle))))
    return TestClient(app)


def _open(client: TestClient) -> Dict[str, str]:
    response = client.post("/mcp", json=_rpc("initialize", {"protocolVersion": "2025-03-26"}))
    assert response.status_code == 200
    assert response.json()["result"]["serverInfo"]["name"] == "fincoach-coaching"
    return {SESSION_HEADER: response.headers[SESSION_HEADER]}


def test_endpoint_session_lifecycle() -> None:
    """initialize opens a session, later requests need it, DELETE ends it."""

    client = _endpoint(ScriptedOracle([]))
    headers = _open(client)

    notified = client.post("/mcp", json=_rpc("notifications/initialized", message_id=None), headers=headers)
    assert notified.status_code == 202
    listed = client.post("/mcp", json=_rpc("tools/list", message_id=2), headers=headers).json()
    names = [item["name"] for item in listed["result"]["tools"]]
    assert names[:2] == ["analyzeSpendingPatterns", "generateBudgetPlan"]
    assert "inputSchema" in listed["result"]["tools"][0]

    assert client.delete("/mcp", headers=headers).status_code == 200
    assert client.post("/mcp", json=_rpc("tools/list"), headers=headers).status_code == 404
    assert client.delete("/mcp", headers=headers).status_code == 404


def test_endpoint_tool_calls() -> None:
    """Results come back as text content; failures as ``isError`` results or JSON-RPC errors."""

    client = _endpoint(ScriptedOracle([ModelOracleError("provider down")]))
    headers = _open(client)

    def call(name: str, arguments: Dict[str, Any]) -> Dict[str, Any]:
        params = {"name": name, "arguments": arguments}
        return client.post("/mcp", json=_rpc("tools/call", params), headers=headers).json()

    ok = call("getInvestmentRecommendations", INVESTMENT_ARGS)["result"]
    assert ok["isError"] is False
    assert json.loads(ok["content"][0]["text"])["riskProfile"] == "moderate"

    assert call("getInvestmentRecommendations", {"riskTolerance": "reckless"})["result"]["isError"] is True
    assert call("generateBudgetPlan", {"monthlyIncome": 1, "financialGoals": []})["result"]["isError"] is True
    assert call("getWeather", {})["error"]["code"] == INVALID_PARAMS


def test_endpoint_rejects_bad_messages() -> None:
    """Bodies that are not JSON-RPC 2.0 are refused."""

    client = _endpoint(ScriptedOracle([]))

    assert client.post("/mcp", content=b"{", headers={"Content-Type": "application/json"}).status_code == 400
    assert client.post("/mcp", json={"method": "initialize"}).status_code == 400
    headers = _open(client)
    assert client.post("/mcp", json=_rpc("resources/list"), headers=headers).json()["error"]["code"] == -32601


# ---------------------------------------------------------------------------
# Served to a chat agent
# ---------------------------------------------------------------------------
def _drain(agent: ChatAgent, text=None) -> List[TurnEvent]:
    async def run() -> List[TurnEvent]:
        return [event async for event in agent.send(text)]

    return asyncio.run(run())


def test_gated_coaching_tool_end_to_end() -> None:
    """A served coaching tool needs approval in the chat agent and runs once approved."""

    tools_app = create_app(Settings(_env_file=None, MCP_TOOLS_URL=None), oracle=ScriptedOracle([]), backend=BACKEND)
    source = RemoteToolSource("http://coach.test/mcp", transport=httpx.ASGITransport(app=tools_app))
    oracle = ScriptedOracle(
        [calls(("c1", "getInvestmentRecommendations", INVESTMENT_ARGS)), reply("A moderate mix suits you.")]
    )
    agent = ChatAgent("s1", oracle, BACKEND, remote_source=source)

    first = _drain(agent, "where should I invest R10000?")
    assert [event.type for event in first] == ["message", "confirmation-required", "finish"]
    assert first[-1].data["state"] == "suspended"
    assert len(oracle.requests) == 1

    agent.decide("c1", approved=True)
    resumed = _drain(agent)

    assert resumed[0].type == "tool-result"
    result = resumed[0].data["call"]["result"]
    assert result["is_error"] is False
    assert json.loads(result["content"])["recommendedPortfolio"]["SA Equity Funds"] == "30%"
    assert resumed[-1].data["state"] == "done"
    assert len(oracle.requests) == 2
