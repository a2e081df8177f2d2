"""
Fincoach entry point.

This file handles startup concerns (arg-parsing, logging) and launches the appropriate interface
(API, CLI, or Web UI).
"""

import argparse
import logging
import sys

from fincoach.config import settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _init_logging(level: str) -> None:
    numeric = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=numeric,
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        stream=sys.stdout,
    )
    # Every backend and MCP request is logged by httpx at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------
def main(argv: list[str] | None = None) -> None:
    """
    Main entry point for the financial coach.

    Sets up the command-line interface, initializes logging, and starts the application in API,
    CLI, or web mode.  CLI and web modes also run the API in a background thread.
    """
    if argv is None:
        argv = sys.argv[1:]

    parser = argparse.ArgumentParser(description="Run the Investec financial coach")
    parser.add_argument(
        "--mode",
        choices=["api", "cli", "web"],
        type=str.lower,
        default="api",
        help="Launch interactive REST API, CLI, or web interface (default: api)",
    )
    parser.add_argument(
        "--log-level",
        choices=["debug", "info", "warning", "error", "critical"],
        type=str.lower,
        default=settings.LOG_LEVEL,
        help="Logging level (default from env: %(default)s)",
    )
    parser.add_argument(
        "--provider",
        choices=["openai", "azure", "anthropic"],
        type=str.lower,
        default=settings.MODEL_PROVIDER,
        help="Model provider (default from env: %(default)s)",
    )
    args = parser.parse_args(argv)

    # Override settings with command-line arguments
    settings.LOG_LEVEL = args.log_level
    settings.MODEL_PROVIDER = args.provider

    _init_logging(settings.LOG_LEVEL)

    logger.info("Starting fincoach [%s mode, %s provider]", args.mode, settings.MODEL_PROVIDER)

    # Lazy import so the app module sees the overridden settings
    from fincoach.api.app import run_api  # pylint: disable=import-outside-toplevel

    if args.mode == "api":
        # Run only the API server
        run_api(host="0.0.0.0", port=settings.API_PORT, reload=settings.DEBUG)
        return

    import threading  # pylint: disable=import-outside-toplevel

    # Start API server in a separate thread
    api_thread = threading.Thread(
        target=run_api,
        kwargs={
            "host": "0.0.0.0",
            "port": settings.API_PORT,
            "reload": False,  # Reload doesn't work well with threading
            "log_level": "warning",
        },
        daemon=True,
    )
    api_thread.start()

    if args.mode == "cli":
        from fincoach.client.cli import run_cli  # pylint: disable=import-outside-toplevel

        run_cli()
    else:
        from fincoach.client.webapp import run_webapp  # pylint: disable=import-outside-toplevel

        run_webapp(port=settings.WEBUI_PORT, reload=settings.DEBUG)


if __name__ == "__main__":
    main()
