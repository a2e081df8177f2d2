"""CLI client for the Fincoach API."""

from __future__ import annotations

import logging
from typing import (
    Any,
    Dict,
    List,
    Optional,
    Tuple,
    cast,
)

import httpx

from fincoach.common import (
    AnsiColors,
    colored_print,
    iter_sse,
    message_text,
)
from fincoach.config import settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# CLI Client
# ---------------------------------------------------------------------------
def api_url(endpoint: str) -> str:
    return f"http://localhost:{settings.API_PORT}{endpoint}"


def get_user_message(prompt: str = "") -> Tuple[str, bool]:
    """
    Get a message from the user via standard input.

    Returns:
        Tuple of (user_input, success_flag)
        The success_flag is False if input couldn't be read (e.g., Ctrl+C)
    """
    try:
        user_input = input(prompt).strip()
        return user_input, True
    except (EOFError, KeyboardInterrupt):
        return "", False


def call_api(endpoint: str, data: Dict[str, Any], max_retries: int = 5) -> Dict[str, Any]:
    """Make a POST request to the API and return the response with retries."""
    for attempt in range(max_retries):
        try:
            with httpx.Client(timeout=settings.HTTP_TIMEOUT_SECONDS) as client:
                response = client.post(api_url(endpoint), json=data)
                response.raise_for_status()
                return cast(Dict[str, Any], response.json())
        except httpx.ConnectError:
            if attempt < max_retries - 1:
                retry_delay = 0.5 * (2**attempt)  # exponential backoff: 0.5s, 1s, 2s, 4s...
                logger.info(
                    "API not ready yet, retrying in %.1f seconds (attempt %d/%d)...",
                    retry_delay,
                    attempt + 1,
                    max_retries,
                )
                import time  # pylint: disable=import-outside-toplevel

                time.sleep(retry_delay)
                continue
            break
        except httpx.HTTPStatusError as e:
            detail = e.response.json().get("detail", str(e))
            colored_print(f"API error: {detail}", AnsiColors.RED)
            return {}
        except httpx.HTTPError as e:
            logger.error("API request error: %s", str(e))
            colored_print(f"Error connecting to API: {e}", AnsiColors.RED)
            return {}

    colored_print(f"Failed to connect to API after {max_retries} attempts", AnsiColors.RED)
    return {}


def stream_turn(session_id: str, message: Optional[str]) -> Dict[str, Any]:
    """
    Run one turn, printing events as they arrive.

    Returns the ``finish`` payload (empty if the stream broke off).
    """
    finish: Dict[str, Any] = {}
    try:
        with httpx.Client(timeout=None) as client:
            with client.stream(
                "POST", api_url(f"/sessions/{session_id}/chat"), json={"message": message}
            ) as response:
                if response.status_code == 409:
                    colored_print("Please respond to the tool confirmation above...", AnsiColors.RED)
                    return {"state": "suspended"}
                response.raise_for_status()
                for event, data in iter_sse(response.iter_lines()):
                    if event == "message":
                        text = message_text(data["message"])
                        if text:
                            colored_print(f"\n🤖 Coach: {text}", AnsiColors.YELLOW)
                    elif event == "tool-result":
                        call = data["call"]
                        colored_print(f"[{call['tool_name']}] {call['result']['content']}", AnsiColors.GREEN)
                    elif event == "error":
                        colored_print(f"⚠️ {data.get('message')}", AnsiColors.RED)
                    elif event == "finish":
                        finish = data
    except httpx.HTTPError as e:
        logger.error("Streaming error: %s", e)
        colored_print(f"Error talking to API: {e}", AnsiColors.RED)
    return finish


def confirm_pending(session_id: str, call_ids: List[str]) -> bool:
    """Ask the user about each pending call; False if input was aborted."""
    transcript = call_api_get(f"/sessions/{session_id}/messages")
    calls = {
        part["call_id"]: part
        for message in transcript.get("messages", [])
        for part in message.get("parts", [])
        if part.get("kind") == "tool-call"
    }
    for call_id in call_ids:
        call = calls.get(call_id, {"tool_name": call_id, "arguments": {}})
        colored_print(
            f"\n🔐 The coach wants to run {call['tool_name']} with {call['arguments']}", AnsiColors.BLUE
        )
        answer, ok = get_user_message("Approve? [y/N] ")
        if not ok:
            return False
        call_api(
            f"/sessions/{session_id}/tool-calls/{call_id}/decision",
            {"approved": answer.lower() in {"y", "yes"}},
        )
    return True


def call_api_get(endpoint: str) -> Dict[str, Any]:
    """GET *endpoint* and return the decoded JSON body."""
    try:
        with httpx.Client(timeout=settings.HTTP_TIMEOUT_SECONDS) as client:
            response = client.get(api_url(endpoint))
            response.raise_for_status()
            return cast(Dict[str, Any], response.json())
    except httpx.HTTPError as e:
        logger.error("API request error: %s", e)
        return {}


def run_cli() -> None:
    """Run the CLI client that communicates with the API."""
    colored_print("\n💰 What's your name? ", AnsiColors.BLUE, end="")
    name, ok = get_user_message()
    if not ok:
        return
    session_response = call_api("/sessions", {"user_name": name or None})
    session_id = session_response.get("session_id")

    if not session_id:
        colored_print("⚠️ Failed to create a session", AnsiColors.RED)
        return

    colored_print(
        "\n💰 Investec financial coach - type 'clear' to reset, 'exit' or 'quit' (or Ctrl+C) to exit",
        AnsiColors.GREEN,
    )
    while True:
        colored_print("\n🧑 You: ", AnsiColors.BLUE, end="")
        user_msg, ok = get_user_message()
        if not ok or user_msg.lower() in {"exit", "quit"}:
            break
        if not user_msg:
            continue
        if user_msg.lower() == "clear":
            with httpx.Client(timeout=settings.HTTP_TIMEOUT_SECONDS) as client:
                client.delete(api_url(f"/sessions/{session_id}/messages"))
            colored_print("History cleared.", AnsiColors.GREEN)
            continue

        finish = stream_turn(session_id, user_msg)
        # Suspended turns resume once every pending call has a verdict.
        while finish.get("state") == "suspended":
            if not confirm_pending(session_id, finish.get("pending_confirmations", [])):
                return
            finish = stream_turn(session_id, None)


if __name__ == "__main__":
    run_cli()
