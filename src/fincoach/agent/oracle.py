"""
Model oracle interface for fincoach.

This module is the only place that *directly* calls an LLM.  Everything else (turn driver,
reconciler, tools) stays model-agnostic and only sees :class:`~fincoach.core.schema.Message`
objects.

We support three back-ends out of the box:

1. **OpenAI** chat completions with function calling.
2. **Azure OpenAI**, the same wire format addressed through a deployment.
3. **Anthropic** messages with ``tool_use`` blocks.

Additional providers can be added by subclassing :class:`ModelOracle` and registering via
:func:`register_oracle`.  The provider is chosen by :func:`load_oracle` from an explicit
:class:`~fincoach.config.Settings` object.
"""

import json
import logging
from abc import (
    ABC,
    abstractmethod,
)
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Sequence,
    Type,
)

from fincoach.config import Settings
from fincoach.core.schema import (
    Message,
    Role,
    TextPart,
    ToolCallPart,
)
from fincoach.errors import ModelOracleError
from fincoach.tools import ToolSpec

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Registry helpers
# ---------------------------------------------------------------------------
_ORACLE_REGISTRY: dict[str, Type["ModelOracle"]] = {}


def register_oracle(name: str) -> Callable:
    """Decorator to register an oracle class under *name*."""

    def wrapper(cls: Type["ModelOracle"]) -> Type["ModelOracle"]:
        _ORACLE_REGISTRY[name] = cls
        return cls

    return wrapper


def load_oracle(settings: Settings, name: str | None = None) -> "ModelOracle":
    """
    Factory that returns an instantiated oracle.

    Fallback order:
    1. *name* arg
    2. ``settings.MODEL_PROVIDER``
    """

    target = (name or settings.MODEL_PROVIDER).lower()
    cls = _ORACLE_REGISTRY.get(target)
    if cls is None:
        raise ValueError(f"Model provider '{target}' is not registered.")
    logger.info("Using model provider '%s'", target)
    return cls.from_settings(settings)


# ---------------------------------------------------------------------------
# Base class
# ---------------------------------------------------------------------------
class ModelOracle(ABC):
    """Abstract oracle that turns a transcript into the next assistant message."""

    @classmethod
    @abstractmethod
    def from_settings(cls, settings: Settings) -> "ModelOracle":
        """Build the oracle from configuration."""

    @abstractmethod
    async def complete(
        self, system: str, transcript: Sequence[Message], tools: Sequence[ToolSpec]
    ) -> Message:
        """
        Return the assistant's reply to *transcript*.

        The reply may hold text parts and/or ``call-requested`` tool-call parts.  Implementations
        raise :class:`ModelOracleError` on any provider failure.
        """


def _parse_arguments(raw: str | None) -> Dict[str, Any]:
    """Decode function-call arguments; undecodable input is kept for the validator to reject."""
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        logger.error("Model emitted non-JSON tool arguments: %s", raw)
        return {"_raw": raw}
    return parsed if isinstance(parsed, dict) else {"_raw": parsed}


# ---------------------------------------------------------------------------
# Concrete oracles
# ---------------------------------------------------------------------------
@register_oracle("openai")
class OpenAIOracle(ModelOracle):
    """OpenAI chat completions with function calling."""

    def __init__(self, client: Any, model: str, temperature: float = 0.2):
        self.client = client
        self.model = model
        self.temperature = temperature

    @classmethod
    def from_settings(cls, settings: Settings) -> "OpenAIOracle":
        import openai  # pylint: disable=import-outside-toplevel

        return cls(openai.AsyncOpenAI(api_key=settings.OPENAI_API_KEY), settings.OPENAI_API_MODEL)

    @staticmethod
    def to_wire(system: str, transcript: Sequence[Message]) -> List[Dict[str, Any]]:
        """Convert the transcript to chat-completions messages.  Unresolved calls are omitted."""
        wire: List[Dict[str, Any]] = [{"role": "system", "content": system}]
        for message in transcript:
            calls = [call for call in message.tool_calls if call.is_resolved]
            if message.role == Role.USER:
                wire.append({"role": "user", "content": message.text})
                continue
            if message.role == Role.ASSISTANT and (message.text or calls):
                entry: Dict[str, Any] = {"role": "assistant", "content": message.text or None}
                if calls:
                    entry["tool_calls"] = [
                        {
                            "id": call.call_id,
                            "type": "function",
                            "function": {"name": call.tool_name, "arguments": json.dumps(call.arguments)},
                        }
                        for call in calls
                    ]
                wire.append(entry)
            for call in calls:
                assert call.result is not None
                wire.append({"role": "tool", "tool_call_id": call.call_id, "content": call.result.content})
        return wire

    @staticmethod
    def to_tools(tools: Sequence[ToolSpec]) -> List[Dict[str, Any]]:
        """Convert tool specs to the ``tools`` request parameter."""
        return [
            {
                "type": "function",
                "function": {
                    "name": spec["name"],
                    "description": spec["description"],
                    "parameters": spec["input_schema"],
                },
            }
            for spec in tools
        ]

    async def complete(
        self, system: str, transcript: Sequence[Message], tools: Sequence[ToolSpec]
    ) -> Message:
        request: Dict[str, Any] = {
            "model": self.model,
            "messages": self.to_wire(system, transcript),
            "temperature": self.temperature,
        }
        if tools:
            request["tools"] = self.to_tools(tools)

        try:
            resp = await self.client.chat.completions.create(**request)
        except Exception as e:  # pylint: disable=broad-except
            logger.error("OpenAI oracle error: %s", str(e))
            raise ModelOracleError(f"Error calling OpenAI: {e}") from e

        choice = resp.choices[0].message
        logger.debug("OpenAI oracle response: %s", choice)
        parts: List[TextPart | ToolCallPart] = []
        if choice.content:
            parts.append(TextPart(content=choice.content))
        for call in choice.tool_calls or []:
            parts.append(
                ToolCallPart(
                    call_id=call.id,
                    tool_name=call.function.name,
                    arguments=_parse_arguments(call.function.arguments),
                )
            )
        return Message(role=Role.ASSISTANT, parts=parts)


@register_oracle("azure")
class AzureOpenAIOracle(OpenAIOracle):
    """Azure-hosted OpenAI deployment; same wire format as :class:`OpenAIOracle`."""

    @classmethod
    def from_settings(cls, settings: Settings) -> "AzureOpenAIOracle":
        import openai  # pylint: disable=import-outside-toplevel

        if not settings.AI_AZURE_RESOURCE_NAME or not settings.AI_AZURE_MODEL_DEPLOYMENT:
            raise ValueError("Azure provider needs AI_AZURE_RESOURCE_NAME and AI_AZURE_MODEL_DEPLOYMENT")
        client = openai.AsyncAzureOpenAI(
            azure_endpoint=f"https://{settings.AI_AZURE_RESOURCE_NAME}.openai.azure.com",
            api_key=settings.AI_AZURE_API_KEY,
            api_version=settings.AI_AZURE_API_VERSION,
        )
        return cls(client, settings.AI_AZURE_MODEL_DEPLOYMENT)


@register_oracle("anthropic")
class AnthropicOracle(ModelOracle):
    """Anthropic Claude messages with ``tool_use`` blocks."""

    def __init__(self, client: Any, model: str, max_tokens: int = 4096, temperature: float = 0.2):
        self.client = client
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature

    @classmethod
    def from_settings(cls, settings: Settings) -> "AnthropicOracle":
        import anthropic  # pylint: disable=import-outside-toplevel

        return cls(anthropic.AsyncAnthropic(api_key=settings.ANTHROPIC_API_KEY), settings.ANTHROPIC_MODEL)

    @staticmethod
    def to_wire(transcript: Sequence[Message]) -> List[Dict[str, Any]]:
        """Convert the transcript to Anthropic messages; tool results travel in a user turn."""
        wire: List[Dict[str, Any]] = []
        for message in transcript:
            calls = [call for call in message.tool_calls if call.is_resolved]
            if message.role == Role.USER:
                wire.append({"role": "user", "content": message.text})
                continue
            blocks: List[Dict[str, Any]] = []
            if message.role == Role.ASSISTANT:
                if message.text:
                    blocks.append({"type": "text", "text": message.text})
                blocks.extend(
                    {"type": "tool_use", "id": call.call_id, "name": call.tool_name, "input": call.arguments}
                    for call in calls
                )
                if blocks:
                    wire.append({"role": "assistant", "content": blocks})
            if calls:
                wire.append(
                    {
                        "role": "user",
                        "content": [
                            {
                                "type": "tool_result",
                                "tool_use_id": call.call_id,
                                "content": call.result.content if call.result else "",
                                "is_error": bool(call.result and call.result.is_error),
                            }
                            for call in calls
                        ],
                    }
                )
        return wire

    async def complete(
        self, system: str, transcript: Sequence[Message], tools: Sequence[ToolSpec]
    ) -> Message:
        request: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "system": system,
            "messages": self.to_wire(transcript),
            "temperature": self.temperature,
        }
        if tools:
            request["tools"] = [
                {"name": spec["name"], "description": spec["description"], "input_schema": spec["input_schema"]}
                for spec in tools
            ]

        try:
            response = await self.client.messages.create(**request)
        except Exception as e:  # pylint: disable=broad-except
            logger.error("Anthropic oracle error: %s", str(e))
            raise ModelOracleError(f"Error calling Anthropic: {e}") from e

        parts: List[TextPart | ToolCallPart] = []
        for block in response.content:
            if block.type == "text":
                parts.append(TextPart(content=block.text))
            elif block.type == "tool_use":
                parts.append(ToolCallPart(call_id=block.id, tool_name=block.name, arguments=dict(block.input)))
        logger.debug("Anthropic oracle response: %s", parts)
        return Message(role=Role.ASSISTANT, parts=parts)
