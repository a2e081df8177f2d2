"""
Pydantic models for fincoach API requests and responses.
This module defines the request and response schemas used by the fincoach API.
"""

from typing import (
    Any,
    Dict,
    List,
    Optional,
)

from pydantic import (
    BaseModel,
    Field,
)

from fincoach.core.schema import Message


# ---------------------------------------------------------------------------
# Pydantic request / response schema
# ---------------------------------------------------------------------------
class SessionRequest(BaseModel):
    """Request to create a new session."""

    user_name: Optional[str] = Field(None, description="Name used to derive the session id")


class SessionResponse(BaseModel):
    """Response with session information."""

    session_id: str


class ChatRequest(BaseModel):
    """Incoming user message; omit ``message`` to resume after a confirmation."""

    message: Optional[str] = Field(None, description="User message for the coach")


class DecisionRequest(BaseModel):
    """Human verdict on a tool call that needs confirmation."""

    approved: bool


class ToolResultRequest(BaseModel):
    """Result supplied by the client for a pending tool call."""

    content: str


class TranscriptResponse(BaseModel):
    """Current transcript of a session."""

    session_id: str
    messages: List[Message]
    awaiting_confirmation: List[str] = Field(default_factory=list)


class StateResponse(BaseModel):
    """Profile state of a session."""

    session_id: str
    state: Dict[str, Any]


class ConfirmationListResponse(BaseModel):
    """Tool names that must be confirmed by the user."""

    tools: List[str]
