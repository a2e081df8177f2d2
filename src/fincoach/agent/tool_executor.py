"""Runs a single registered tool and wraps every failure in ``ToolExecutionError``."""

import asyncio
import json
import logging
from typing import (
    Any,
    Dict,
)

from pydantic import (
    BaseModel,
    ValidationError,
)

from fincoach.core.schema import ToolResult
from fincoach.errors import (
    InvalidArguments,
    ToolExecutionError,
)
from fincoach.tools import Tool

logger = logging.getLogger(__name__)


def format_payload(payload: Any) -> str:
    """Render an executor return value as the text replayed to the model."""
    if isinstance(payload, str):
        return payload
    if isinstance(payload, BaseModel):
        return payload.model_dump_json(indent=2, by_alias=True)
    try:
        return json.dumps(payload, indent=2, default=str)
    except (TypeError, ValueError):
        return str(payload)


async def execute_tool(
    tool: Tool, args: Dict[str, Any] | None = None, timeout: float | None = None
) -> ToolResult:
    """
    Validate *args* for *tool* and await its executor.

    Parameters
    ----------
    tool:
        The registered tool to run.
    args:
        Arguments as emitted by the model.  If *None*, an empty dict is assumed.
    timeout:
        Upper bound in seconds for the executor; *None* waits indefinitely.

    Returns
    -------
    ToolResult
        The formatted executor output.

    Raises
    ------
    InvalidArguments
        If *args* do not satisfy the tool's input model.
    ToolExecutionError
        If the executor raises or exceeds *timeout*.
    """

    if args is None:
        args = {}

    try:
        payload = tool.parse_arguments(args)
    except ValidationError as exc:
        logger.warning("Invalid arguments for tool '%s': %s", tool.name, exc)
        raise InvalidArguments(f"Invalid arguments for tool '{tool.name}': {exc}") from exc

    try:
        logger.debug("Executing tool '%s' with args=%s", tool.name, args)
        output = await asyncio.wait_for(tool.executor(payload), timeout=timeout)
    except asyncio.TimeoutError as exc:
        logger.warning("Tool '%s' timed out after %ss", tool.name, timeout)
        raise ToolExecutionError(f"Tool '{tool.name}' timed out after {timeout}s") from exc
    except ToolExecutionError:
        logger.exception("Tool '%s' reported a failure", tool.name)
        raise
    except Exception as exc:  # noqa: BLE001
        logger.exception("Unhandled error in tool '%s'", tool.name)
        raise ToolExecutionError(f"Tool '{tool.name}' raised an error: {exc}") from exc

    return ToolResult(content=format_payload(output))
