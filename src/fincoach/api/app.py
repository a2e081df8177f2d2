"""
Core API backend for fincoach.

This module exposes the chat agent over HTTP for the presentation clients:
- **GET /health**  - liveness probe for health checks.
- **POST /sessions** - create (or reattach to) a session, returns a session ID.
- **GET /sessions** - list all active sessions.
- **GET /sessions/{id}/messages** - current transcript; **DELETE** clears it.
- **GET /sessions/{id}/state** - profile state gathered so far.
- **POST /sessions/{id}/chat** - run a turn, streamed as server-sent events.
- **POST /sessions/{id}/tool-calls/{call_id}/decision** - approve or deny a pending call.
- **POST /sessions/{id}/tool-calls/{call_id}/result** - resolve a pending call directly.
- **POST /sessions/{id}/stop** - abort the running turn.
- **GET /tools/confirmation-required** - tool names the client must gate.
- **POST/DELETE /mcp** - coaching tools over MCP (when ``SERVE_COACHING_TOOLS`` is set).
"""

import json
import logging
import uuid
from typing import (
    AsyncIterator,
    Dict,
    List,
    Optional,
)

from fastapi import (
    FastAPI,
    HTTPException,
    Request,
)
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import (
    JSONResponse,
    StreamingResponse,
)

from fincoach.agent.chat_agent import ChatAgent
from fincoach.agent.discovery import RemoteToolSource
from fincoach.agent.driver import (
    DriverConfig,
    TurnEvent,
)
from fincoach.agent.oracle import (
    ModelOracle,
    load_oracle,
)
from fincoach.api.models import (
    ChatRequest,
    ConfirmationListResponse,
    DecisionRequest,
    SessionRequest,
    SessionResponse,
    StateResponse,
    ToolResultRequest,
    TranscriptResponse,
)
from fincoach.backend.client import BackendClient
from fincoach.coaching.server import (
    CoachingToolServer,
    build_coaching_router,
)
from fincoach.coaching.tools import build_coaching_tools
from fincoach.config import (
    Settings,
    settings as default_settings,
)
from fincoach.errors import (
    FincoachError,
    UnknownTool,
    UnknownToolCall,
)
from fincoach.tools import ToolRegistry
from fincoach.tools.backend import build_backend_tools

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helper functions
# ---------------------------------------------------------------------------
def format_sse(event: TurnEvent) -> str:
    """Serialise *event* as one server-sent-events frame."""
    return f"event: {event.type}\ndata: {json.dumps(event.data)}\n\n"


async def _event_stream(agent: ChatAgent, text: Optional[str]) -> AsyncIterator[str]:
    try:
        async for event in agent.send(text):
            yield format_sse(event)
    except (FincoachError, ValueError) as exc:
        # The turn is over; close the stream the same way a finished turn does.
        logger.error("Turn aborted for session %s: %s", agent.session_id, exc)
        yield format_sse(TurnEvent("error", {"message": str(exc), "fatal": isinstance(exc, UnknownTool)}))
        yield format_sse(TurnEvent("finish", {"state": "done", "error": str(exc)}))


def create_app(
    settings: Settings | None = None,
    oracle: ModelOracle | None = None,
    backend: BackendClient | None = None,
    remote_source: RemoteToolSource | None = None,
) -> FastAPI:
    """
    Build the API application.

    Dependencies left as *None* are built from *settings*; the oracle is only loaded when the first
    session is created.
    """
    settings = settings or default_settings
    config = DriverConfig(max_steps=settings.MAX_STEPS, tool_timeout=settings.TOOL_TIMEOUT_SECONDS)
    backend = backend or BackendClient(settings.BACKEND_API_URL, timeout=settings.HTTP_TIMEOUT_SECONDS)
    if remote_source is None and settings.MCP_TOOLS_URL:
        remote_source = RemoteToolSource(settings.MCP_TOOLS_URL, timeout=settings.HTTP_TIMEOUT_SECONDS)

    app = FastAPI(title="Fincoach API", version="0.1.0", description="Conversational financial coach API")
    app.state.settings = settings
    app.state.oracle = oracle
    # Session storage (in-memory, lives as long as the process)
    app.state.sessions: Dict[str, ChatAgent] = {}

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def get_oracle() -> ModelOracle:
        if app.state.oracle is None:
            app.state.oracle = load_oracle(settings)
        return app.state.oracle

    # Tools known without a session, used to answer which names need confirmation
    catalog = ToolRegistry(settings.TOOLS_REQUIRING_CONFIRMATION)
    catalog.merge(build_backend_tools(backend))

    if settings.SERVE_COACHING_TOOLS:
        coaching = build_coaching_tools(get_oracle, mock_data=settings.COACHING_MOCK_DATA)
        app.include_router(
            build_coaching_router(CoachingToolServer(coaching, tool_timeout=settings.TOOL_TIMEOUT_SECONDS))
        )
        catalog.merge(coaching)

    def get_or_create_session(session_id: Optional[str] = None) -> ChatAgent:
        """Get existing session or create a new one."""
        sessions: Dict[str, ChatAgent] = app.state.sessions
        if session_id and session_id in sessions:
            return sessions[session_id]
        new_session_id = session_id or str(uuid.uuid4())
        sessions[new_session_id] = ChatAgent(
            new_session_id,
            get_oracle(),
            backend,
            remote_source=remote_source,
            config=config,
            confirmation_required=settings.TOOLS_REQUIRING_CONFIRMATION,
        )
        logger.info("Created session %s", new_session_id)
        return sessions[new_session_id]

    def get_session(session_id: str) -> ChatAgent:
        agent = app.state.sessions.get(session_id)
        if agent is None:
            raise HTTPException(status_code=404, detail=f"Unknown session '{session_id}'")
        return agent

    def transcript_response(agent: ChatAgent) -> TranscriptResponse:
        return TranscriptResponse(
            session_id=agent.session_id,
            messages=agent.transcript.messages,
            awaiting_confirmation=[call.call_id for call in agent.awaiting_confirmation],
        )

    # -----------------------------------------------------------------------
    # Routes
    # -----------------------------------------------------------------------
    @app.get("/health", summary="Health check")
    async def health() -> dict[str, str]:
        """Return a simple liveness payload."""
        return {"status": "ok"}

    @app.get("/", summary="API root")
    async def root() -> dict[str, str]:
        """Return a simple welcome message."""
        return {"message": "Welcome to the Fincoach API! Use /docs for API documentation."}

    @app.post("/sessions", response_model=SessionResponse, summary="Create a new session")
    async def create_session(req: Optional[SessionRequest] = None) -> SessionResponse:
        """Create a conversation session; a user name maps to a stable ``chat-<name>`` id."""
        session_id = f"chat-{req.user_name}" if req and req.user_name else None
        agent = get_or_create_session(session_id)
        return SessionResponse(session_id=agent.session_id)

    @app.get("/sessions", response_model=List[str], summary="List active sessions")
    async def list_sessions() -> List[str]:
        """List all active session IDs."""
        return list(app.state.sessions.keys())

    @app.get("/sessions/{session_id}/messages", response_model=TranscriptResponse)
    async def get_messages(session_id: str) -> TranscriptResponse:
        """Return the session transcript."""
        return transcript_response(get_session(session_id))

    @app.delete("/sessions/{session_id}/messages", response_model=TranscriptResponse)
    async def clear_messages(session_id: str) -> TranscriptResponse:
        """Clear the session transcript."""
        agent = get_session(session_id)
        agent.clear_history()
        return transcript_response(agent)

    @app.get("/sessions/{session_id}/state", response_model=StateResponse)
    async def get_state(session_id: str) -> StateResponse:
        """Return the profile state of the session."""
        agent = get_session(session_id)
        return StateResponse(session_id=session_id, state=agent.state.model_dump(by_alias=True))

    @app.post("/sessions/{session_id}/chat", summary="Run a turn (server-sent events)")
    async def chat(session_id: str, req: ChatRequest) -> StreamingResponse:
        """Append the user message (if any) and stream the turn."""
        agent = get_session(session_id)
        if req.message is not None and agent.awaiting_confirmation:
            raise HTTPException(
                status_code=409, detail="Please respond to the tool confirmation above..."
            )
        return StreamingResponse(_event_stream(agent, req.message), media_type="text/event-stream")

    @app.post("/sessions/{session_id}/tool-calls/{call_id}/decision", response_model=TranscriptResponse)
    async def decide(session_id: str, call_id: str, req: DecisionRequest) -> TranscriptResponse:
        """Approve or deny a call awaiting confirmation."""
        agent = get_session(session_id)
        try:
            agent.decide(call_id, req.approved)
        except UnknownToolCall as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return transcript_response(agent)

    @app.post("/sessions/{session_id}/tool-calls/{call_id}/result", response_model=TranscriptResponse)
    async def provide_result(session_id: str, call_id: str, req: ToolResultRequest) -> TranscriptResponse:
        """Resolve a pending call with a client-supplied result."""
        agent = get_session(session_id)
        try:
            agent.supply_result(call_id, req.content)
        except UnknownToolCall as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return transcript_response(agent)

    @app.post("/sessions/{session_id}/stop")
    async def stop(session_id: str) -> dict[str, bool]:
        """Abort the running turn, if any."""
        return {"stopped": get_session(session_id).stop()}

    @app.get("/tools/confirmation-required", response_model=ConfirmationListResponse)
    async def confirmation_required() -> ConfirmationListResponse:
        """Tool names the presentation layer must gate behind a user decision."""
        return ConfirmationListResponse(tools=sorted(catalog.list_confirmation_required()))

    @app.exception_handler(FincoachError)
    async def fincoach_error_handler(_: Request, exc: FincoachError) -> JSONResponse:
        logger.warning("Request failed: %s", exc)
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    return app


app = create_app()


# ---------------------------------------------------------------------------
# Public helper to launch the API (imported by main.py)
# ---------------------------------------------------------------------------
def run_api(
    host: str = "0.0.0.0", port: int = 8000, reload: bool = False, log_level: str | None = None
) -> None:
    """Start a uvicorn server hosting *app*.

    Parameters
    ----------
    host, port:
        Bind address for the HTTP server.
    reload:
        If *True*, enable auto-reload (useful in development).
    log_level:
        Logging level to use (default from settings if not provided).
    """

    # Lazy import - keeps uvicorn an optional dependency at pkg-import time
    import uvicorn  # pylint: disable=import-outside-toplevel

    if log_level is None:  # Use the default from settings if not provided
        log_level = default_settings.LOG_LEVEL

    logger.info("Starting Fincoach API at %s:%d (reload=%s, log_level=%s)", host, port, reload, log_level)
    logger.debug("API settings: %s", default_settings.model_dump(exclude={"OPENAI_API_KEY", "ANTHROPIC_API_KEY", "AI_AZURE_API_KEY"}))

    uvicorn.run(
        "fincoach.api.app:app",
        host=host,
        port=port,
        reload=reload,
        log_level=log_level,
    )


# ---------------------------------------------------------------------------
# `python -m fincoach.api.app` helper
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    run_api(reload=True)
