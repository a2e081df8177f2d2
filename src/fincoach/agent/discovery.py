"""
Remote tool discovery over the Model Context Protocol.

Speaks the streamable-HTTP transport: every JSON-RPC message is a POST to the server URL, and the
reply comes back either as a JSON body or as a ``text/event-stream`` body whose ``data:`` lines
carry the JSON-RPC response.  The server-assigned ``Mcp-Session-Id`` header identifies the
connection and is released with an HTTP ``DELETE`` when the turn ends.
"""

from __future__ import annotations

import itertools
import json
import logging
from dataclasses import (
    dataclass,
    field,
)
from typing import (
    Any,
    Dict,
    List,
    Optional,
)

import httpx

from fincoach.errors import (
    DiscoveryUnavailable,
    ToolExecutionError,
)
from fincoach.tools import Tool

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "2025-03-26"
SESSION_HEADER = "Mcp-Session-Id"
CLIENT_INFO = {"name": "fincoach", "version": "0.1.0"}


@dataclass
class RemoteToolDefinition:
    """A tool advertised by the remote server."""

    name: str
    description: str = ""
    input_schema: Dict[str, Any] = field(default_factory=dict)


def _decode_reply(response: httpx.Response) -> Dict[str, Any]:
    """Extract the JSON-RPC reply from a JSON or event-stream body."""
    content_type = response.headers.get("content-type", "")
    if content_type.startswith("text/event-stream"):
        for line in response.text.splitlines():
            if line.startswith("data:"):
                payload = line[len("data:") :].strip()
                if payload:
                    return json.loads(payload)
        raise ValueError("event stream carried no data")
    return response.json()


class RemoteToolConnection:
    """An initialised session with the remote tool server."""

    def __init__(self, client: httpx.AsyncClient, url: str, connection_id: Optional[str]):
        self._client = client
        self._url = url
        self._ids = itertools.count(1)
        self.connection_id = connection_id
        self.tools: List[RemoteToolDefinition] = []
        self.closed = False

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json, text/event-stream"}
        if self.connection_id:
            headers[SESSION_HEADER] = self.connection_id
        return headers

    async def rpc(self, method: str, params: Dict[str, Any] | None = None) -> Dict[str, Any]:
        """Send a JSON-RPC request and return its ``result``."""
        message: Dict[str, Any] = {"jsonrpc": "2.0", "id": next(self._ids), "method": method}
        if params is not None:
            message["params"] = params
        response = await self._client.post(self._url, json=message, headers=self._headers())
        response.raise_for_status()
        if self.connection_id is None:
            self.connection_id = response.headers.get(SESSION_HEADER)
        reply = _decode_reply(response)
        if "error" in reply:
            raise RuntimeError(reply["error"].get("message", "unknown JSON-RPC error"))
        return reply.get("result", {})

    async def notify(self, method: str) -> None:
        """Send a JSON-RPC notification (no reply expected)."""
        response = await self._client.post(
            self._url, json={"jsonrpc": "2.0", "method": method}, headers=self._headers()
        )
        response.raise_for_status()

    async def list_tools(self) -> List[RemoteToolDefinition]:
        """Fetch and cache the advertised tools."""
        result = await self.rpc("tools/list")
        self.tools = [
            RemoteToolDefinition(
                name=item.get("name", ""),
                description=item.get("description", ""),
                input_schema=item.get("inputSchema", {}),
            )
            for item in result.get("tools", [])
            if item.get("name")
        ]
        return self.tools

    async def call_tool(self, name: str, arguments: Dict[str, Any]) -> str:
        """
        Invoke *name* remotely and return its text content.

        Raises
        ------
        ToolExecutionError
            If the call fails in transport or the server flags the result as an error.
        """
        try:
            result = await self.rpc("tools/call", {"name": name, "arguments": arguments})
        except (httpx.HTTPError, RuntimeError, ValueError) as exc:
            raise ToolExecutionError(f"Remote tool '{name}' failed: {exc}") from exc
        text = "\n".join(
            part.get("text", "") for part in result.get("content", []) if part.get("type") == "text"
        )
        if result.get("isError"):
            raise ToolExecutionError(text or f"Remote tool '{name}' reported an error")
        return text

    def as_tools(self) -> List[Tool]:
        """Registry entries whose executors call back into this connection."""

        def bind(definition: RemoteToolDefinition) -> Tool:
            async def execute(arguments: Dict[str, Any]) -> str:
                return await self.call_tool(definition.name, arguments)

            return Tool(
                name=definition.name,
                description=definition.description,
                executor=execute,
                input_schema=definition.input_schema,
                source="remote",
            )

        return [bind(definition) for definition in self.tools]

    async def close(self) -> None:
        """Terminate the remote session and release the HTTP client."""
        if self.closed:
            return
        self.closed = True
        try:
            if self.connection_id:
                await self._client.delete(self._url, headers=self._headers())
        except httpx.HTTPError as exc:
            logger.debug("Ignoring error while closing connection %s: %s", self.connection_id, exc)
        finally:
            await self._client.aclose()
        logger.debug("Closed remote tool connection %s", self.connection_id)


class RemoteToolSource:
    """
    Factory for :class:`RemoteToolConnection` objects.

    Parameters
    ----------
    url:
        MCP endpoint of the remote tool server.
    timeout:
        Per-request timeout in seconds.
    transport:
        Optional transport override (``httpx.MockTransport`` in tests).
    """

    def __init__(self, url: str, timeout: float = 30.0, transport: httpx.AsyncBaseTransport | None = None):
        self.url = url
        self.timeout = timeout
        self._transport = transport

    async def connect(self) -> RemoteToolConnection:
        """
        Run the connect-then-list handshake.

        Raises
        ------
        DiscoveryUnavailable
            If the server cannot be reached or answers the handshake with an error.
        """
        client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        connection = RemoteToolConnection(client, self.url, connection_id=None)
        try:
            await connection.rpc(
                "initialize",
                {"protocolVersion": PROTOCOL_VERSION, "capabilities": {}, "clientInfo": CLIENT_INFO},
            )
            await connection.notify("notifications/initialized")
            await connection.list_tools()
        except (httpx.HTTPError, RuntimeError, ValueError) as exc:
            await connection.close()
            raise DiscoveryUnavailable(f"Remote tool source {self.url} unavailable: {exc}") from exc

        logger.info(
            "Discovered %d remote tools from %s (connection=%s)",
            len(connection.tools),
            self.url,
            connection.connection_id,
        )
        return connection
