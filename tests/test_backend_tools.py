"""Tests for the backend client and the endpoint-backed tools."""

import asyncio
import json
from typing import (
    Dict,
    List,
)

import httpx
import pytest

from fincoach.agent.tool_executor import execute_tool
from fincoach.backend.client import BackendClient
from fincoach.backend.contracts import ESGInvestmentsResponse
from fincoach.errors import BackendHttpError
from fincoach.tools import Tool
from fincoach.tools.backend import (
    ENDPOINTS,
    build_backend_tools,
)

ESG_BODY = {
    "esgPortfolioScore": 7.8,
    "recommendations": [
        {
            "name": "Satrix MSCI World ESG ETF",
            "esgScore": 8.5,
            "impactArea": "Climate",
            "riskLevel": "Medium",
            "recommendedAmount": 5000,
            "expectedReturn": "9-11%",
            "impactDescription": "Lower-carbon global equities",
        }
    ],
    "currentHoldings": [],
    "unexpectedField": "ignored",
}


def _client(handler) -> BackendClient:
    return BackendClient("http://backend.test/", transport=httpx.MockTransport(handler))


def _tools(client: BackendClient) -> Dict[str, Tool]:
    return {entry.name: entry for entry in build_backend_tools(client)}


def test_one_tool_per_endpoint() -> None:
    """Every endpoint gets a tool with a distinct name."""

    tools = _tools(_client(lambda request: httpx.Response(200, json={})))
    assert sorted(tools) == sorted(endpoint.tool_name for endpoint in ENDPOINTS)
    assert len(tools) == 8


def test_fetch_validates_contract() -> None:
    """A conforming body is parsed; unknown fields are dropped."""

    seen: List[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        return httpx.Response(200, json=ESG_BODY)

    payload = asyncio.run(_client(handler).fetch("/api/esg-investments", ESGInvestmentsResponse))

    assert seen == ["http://backend.test/api/esg-investments"]
    assert payload.esgPortfolioScore == 7.8
    assert payload.recommendations[0].impactArea == "Climate"


def test_http_error_raises() -> None:
    """Non-2xx statuses surface as *BackendHttpError* with the status code."""

    client = _client(lambda request: httpx.Response(503))
    with pytest.raises(BackendHttpError) as info:
        asyncio.run(client.request("/api/transactions"))
    assert info.value.status_code == 503


def test_malformed_body_raises() -> None:
    """A body that does not match its contract is an error, not an empty result."""

    client = _client(lambda request: httpx.Response(200, json={"esgPortfolioScore": "n/a"}))
    with pytest.raises(BackendHttpError, match="Malformed response"):
        asyncio.run(client.fetch("/api/esg-investments", ESGInvestmentsResponse))


def test_tool_returns_pretty_json() -> None:
    """A successful tool call returns the validated body as indented JSON."""

    tools = _tools(_client(lambda request: httpx.Response(200, json=ESG_BODY)))
    result = asyncio.run(execute_tool(tools["getESGInvestments"], {}))

    body = json.loads(result.content)
    assert body["esgPortfolioScore"] == 7.8
    assert "unexpectedField" not in body
    assert "\n  " in result.content


def test_tool_reports_backend_failure() -> None:
    """Backend failures become a readable message for the model instead of an exception."""

    tools = _tools(_client(lambda request: httpx.Response(500)))
    result = asyncio.run(execute_tool(tools["getESGInvestments"], {}))

    assert result.content.startswith("Unable to fetch ESG investments:")
    assert "HTTP 500" in result.content
