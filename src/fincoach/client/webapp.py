"""
Simple web UI for the financial coach that communicates with the API backend.

The page streams turns from ``/sessions/{id}/chat`` and shows approve/deny buttons for tool calls
that need the user's confirmation.  The message input stays locked while a confirmation is
outstanding.
"""

from pathlib import Path

from fastapi import (
    FastAPI,
    Request,
)
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates

from fincoach.common import (
    AnsiColors,
    colored_print,
)
from fincoach.config import settings

TEMPLATES_DIR = Path(__file__).parent / "templates"

# Create a FastAPI app for the web UI
webapp = FastAPI(
    title="Fincoach Web UI", version="0.1.0", description="Investec financial coach web interface"
)
templates = Jinja2Templates(directory=str(TEMPLATES_DIR))


@webapp.get("/", response_class=HTMLResponse)
async def read_root(request: Request) -> HTMLResponse:
    """Serve the main web UI page."""
    return templates.TemplateResponse(
        request,
        "index.html",
        {"api_port": settings.API_PORT, "welcome": "Welcome! I'm your Investec financial coach."},
    )


def run_webapp(
    host: str = "0.0.0.0", port: int | None = None, reload: bool = False, log_level: str | None = None
) -> None:
    """Run the web UI server."""
    import uvicorn  # pylint: disable=import-outside-toplevel

    if log_level is None:  # Use the default from settings if not provided
        log_level = settings.LOG_LEVEL
    port = port or settings.WEBUI_PORT

    colored_print(
        f"Web UI is running at http://localhost:{port}. Visit this URL in your browser.",
        AnsiColors.GREEN,
    )
    colored_print(
        "Press Ctrl+C to stop the server.",
        AnsiColors.YELLOW,
    )
    uvicorn.run(
        "fincoach.client.webapp:webapp",
        host=host,
        port=port,
        reload=reload,
        log_level=log_level,
    )


if __name__ == "__main__":
    run_webapp(reload=False)
