"""Common utility functions shared by the presentation clients."""

import json
from enum import Enum
from typing import (
    Any,
    Dict,
    Iterable,
    Iterator,
    Tuple,
)


class AnsiColors(Enum):
    """
    ANSI color codes for terminal output.
    """

    RED = "\033[91m"
    GREEN = "\033[92m"
    YELLOW = "\033[33m"
    BLUE = "\033[94m"


def colored_print(text: str, color: AnsiColors, *args: Any, **kwargs: Any) -> None:
    """
    Print text in color.

    Args:
        text: The text to print
        color: The color to use (AnsiColors enum)
        args: Additional positional arguments for print
        kwargs: Additional keyword arguments for print
    """
    print(f"{color.value}{text}\033[0m", *args, **kwargs)  # ANSI reset at the end


def iter_sse(lines: Iterable[str]) -> Iterator[Tuple[str, Dict[str, Any]]]:
    """
    Group server-sent-event lines into ``(event, data)`` pairs.

    Frames are separated by a blank line; ``data`` is decoded as JSON.
    """
    event, data = "message", ""
    for line in lines:
        if not line:
            if data:
                yield event, json.loads(data)
            event, data = "message", ""
        elif line.startswith("event:"):
            event = line[len("event:") :].strip()
        elif line.startswith("data:"):
            data += line[len("data:") :].strip()
    if data:
        yield event, json.loads(data)


def message_text(message: Dict[str, Any]) -> str:
    """Concatenate the text parts of a serialised message."""
    return "".join(part.get("content", "") for part in message.get("parts", []) if part.get("kind") == "text")
