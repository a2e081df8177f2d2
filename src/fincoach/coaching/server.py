"""
MCP endpoint serving the coaching tools.

Speaks the streamable-HTTP transport understood by :mod:`fincoach.agent.discovery`: every
JSON-RPC message is POSTed to ``/mcp`` and answered with a JSON body.  ``initialize`` hands out
the ``Mcp-Session-Id`` header that later requests must carry; ``DELETE /mcp`` ends the session.
"""

import logging
import uuid
from typing import (
    Any,
    Dict,
    List,
    Set,
)

from fastapi import (
    APIRouter,
    Request,
    Response,
)
from fastapi.responses import JSONResponse

from fincoach.agent.discovery import (
    PROTOCOL_VERSION,
    SESSION_HEADER,
)
from fincoach.agent.tool_executor import execute_tool
from fincoach.errors import (
    ToolExecutionError,
    UnknownTool,
)
from fincoach.tools import (
    Tool,
    ToolRegistry,
)

logger = logging.getLogger(__name__)

SERVER_INFO = {"name": "fincoach-coaching", "version": "0.1.0"}

# JSON-RPC error codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602


def _result(message_id: Any, result: Dict[str, Any]) -> Dict[str, Any]:
    return {"jsonrpc": "2.0", "id": message_id, "result": result}


def _error(message_id: Any, code: int, message: str) -> Dict[str, Any]:
    return {"jsonrpc": "2.0", "id": message_id, "error": {"code": code, "message": message}}


def _text(text: str, is_error: bool = False) -> Dict[str, Any]:
    return {"content": [{"type": "text", "text": text}], "isError": is_error}


class CoachingToolServer:
    """Session bookkeeping and method dispatch for the MCP endpoint."""

    def __init__(self, tools: List[Tool], tool_timeout: float | None = None):
        self.registry = ToolRegistry(confirmation_required=())
        for entry in tools:
            self.registry.register(entry)
        self.tool_timeout = tool_timeout
        self.sessions: Set[str] = set()

    def list_tools(self) -> Dict[str, Any]:
        return {
            "tools": [
                {"name": spec["name"], "description": spec["description"], "inputSchema": spec["input_schema"]}
                for spec in self.registry.specs()
            ]
        }

    async def call_tool(self, params: Dict[str, Any]) -> Dict[str, Any]:
        """Run a tool; failures come back as ``isError`` results rather than JSON-RPC errors."""
        name = params.get("name", "")
        entry = self.registry.resolve(name)
        try:
            result = await execute_tool(entry, params.get("arguments") or {}, timeout=self.tool_timeout)
        except ToolExecutionError as exc:
            return _text(str(exc), is_error=True)
        return _text(result.content)

    async def dispatch(self, message: Dict[str, Any]) -> Dict[str, Any]:
        message_id = message.get("id")
        method = message.get("method")
        if method == "initialize":
            return _result(
                message_id,
                {"protocolVersion": PROTOCOL_VERSION, "capabilities": {"tools": {}}, "serverInfo": SERVER_INFO},
            )
        if method == "ping":
            return _result(message_id, {})
        if method == "tools/list":
            return _result(message_id, self.list_tools())
        if method == "tools/call":
            try:
                return _result(message_id, await self.call_tool(message.get("params") or {}))
            except UnknownTool as exc:
                return _error(message_id, INVALID_PARAMS, str(exc))
        return _error(message_id, METHOD_NOT_FOUND, f"Method '{method}' not found")


def build_coaching_router(server: CoachingToolServer, path: str = "/mcp") -> APIRouter:
    """Routes for the MCP endpoint backed by *server*."""
    router = APIRouter()

    @router.post(path)
    async def handle(request: Request) -> Response:
        try:
            message = await request.json()
        except ValueError:
            return JSONResponse(_error(None, PARSE_ERROR, "Parse error"), status_code=400)
        if not isinstance(message, dict) or message.get("jsonrpc") != "2.0":
            return JSONResponse(_error(None, INVALID_REQUEST, "Invalid request"), status_code=400)

        session_id = request.headers.get(SESSION_HEADER)
        if message.get("method") == "initialize":
            session_id = uuid.uuid4().hex
            server.sessions.add(session_id)
            logger.info("Opened MCP session %s", session_id)
        elif session_id not in server.sessions:
            return JSONResponse(_error(message.get("id"), INVALID_REQUEST, "Unknown session"), status_code=404)

        if "id" not in message:
            # Notifications get no reply.
            return Response(status_code=202)
        reply = await server.dispatch(message)
        return JSONResponse(reply, headers={SESSION_HEADER: session_id})

    @router.delete(path)
    async def close(request: Request) -> Response:
        session_id = request.headers.get(SESSION_HEADER)
        if session_id not in server.sessions:
            return Response(status_code=404)
        server.sessions.discard(session_id)
        logger.info("Closed MCP session %s", session_id)
        return Response(status_code=200)

    return router
