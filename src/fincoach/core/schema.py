"""
Schema definitions for the chat transcript.

These data models are the contract between the model oracle, the tool reconciler, the turn driver
and the presentation clients.  They are kept free of runtime logic so they can be imported anywhere
without side-effects.

A transcript is an ordered list of :class:`Message` objects.  Each message holds parts: free text,
or tool calls that start as ``call-requested`` and become ``result-available`` once a result is
attached.  Tool-call parts are the only thing mutated in place after a message is appended.
"""

import uuid
from enum import Enum
from typing import (
    Annotated,
    Any,
    Dict,
    Iterator,
    List,
    Literal,
    Optional,
    Union,
)

from pydantic import (
    BaseModel,
    Field,
)


def new_call_id() -> str:
    """Return a process-unique, opaque tool call id."""
    return f"call_{uuid.uuid4().hex}"


class Role(str, Enum):
    """Author of a transcript message."""

    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class ToolCallState(str, Enum):
    """Lifecycle of a tool-call part."""

    CALL_REQUESTED = "call-requested"
    RESULT_AVAILABLE = "result-available"


class ToolDecision(str, Enum):
    """Human verdict on a call that needs confirmation."""

    APPROVED = "approved"
    DENIED = "denied"


class ToolResult(BaseModel):
    """Resolution of a tool call as replayed to the model."""

    content: str
    is_error: bool = False


class TextPart(BaseModel):
    """Free text authored by the user or the model."""

    kind: Literal["text"] = "text"
    content: str


class ToolCallPart(BaseModel):
    """A tool invocation requested by the model."""

    kind: Literal["tool-call"] = "tool-call"
    call_id: str = Field(default_factory=new_call_id)
    tool_name: str
    arguments: Dict[str, Any] = Field(default_factory=dict)
    state: ToolCallState = ToolCallState.CALL_REQUESTED
    result: Optional[ToolResult] = None
    decision: Optional[ToolDecision] = None

    @property
    def is_resolved(self) -> bool:
        """True once the call carries its result."""
        return self.state == ToolCallState.RESULT_AVAILABLE and self.result is not None

    def resolve(self, result: ToolResult) -> None:
        """Attach *result* and mark the call resolved.  A call is resolved exactly once."""
        if self.is_resolved:
            raise ValueError(f"Tool call '{self.call_id}' is already resolved.")
        self.result = result
        self.state = ToolCallState.RESULT_AVAILABLE


Part = Annotated[Union[TextPart, ToolCallPart], Field(discriminator="kind")]


class Message(BaseModel):
    """One transcript entry."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    role: Role
    parts: List[Part] = Field(default_factory=list)

    @classmethod
    def user(cls, text: str) -> "Message":
        """Build a user message holding a single text part."""
        return cls(role=Role.USER, parts=[TextPart(content=text)])

    @property
    def text(self) -> str:
        """Concatenated text of all text parts."""
        return "".join(part.content for part in self.parts if isinstance(part, TextPart))

    @property
    def tool_calls(self) -> List[ToolCallPart]:
        """Tool-call parts in the order the model requested them."""
        return [part for part in self.parts if isinstance(part, ToolCallPart)]


class Transcript(BaseModel):
    """Ordered conversation history replayed to the model each turn."""

    messages: List[Message] = Field(default_factory=list)

    def __len__(self) -> int:
        return len(self.messages)

    def append(self, message: Message) -> Message:
        """
        Append *message* to the transcript.

        Raises
        ------
        ValueError
            If one of its tool calls reuses a call id already present in the transcript.
        """
        known = {call.call_id for call in self.iter_tool_calls()}
        for call in message.tool_calls:
            if call.call_id in known:
                raise ValueError(f"Duplicate tool call id '{call.call_id}'.")
            known.add(call.call_id)
        self.messages.append(message)
        return message

    def iter_tool_calls(self) -> Iterator[ToolCallPart]:
        """Yield every tool-call part in transcript order."""
        for message in self.messages:
            yield from message.tool_calls

    def pending_calls(self) -> List[ToolCallPart]:
        """Tool calls still waiting for a result, in transcript order."""
        return [call for call in self.iter_tool_calls() if not call.is_resolved]

    def find_call(self, call_id: str) -> Optional[ToolCallPart]:
        """Return the tool call with *call_id*, if any."""
        for call in self.iter_tool_calls():
            if call.call_id == call_id:
                return call
        return None

    def last_assistant(self) -> Optional[Message]:
        """Most recent assistant message, if any."""
        for message in reversed(self.messages):
            if message.role == Role.ASSISTANT:
                return message
        return None

    def clear(self) -> None:
        """Drop the whole history."""
        self.messages.clear()
