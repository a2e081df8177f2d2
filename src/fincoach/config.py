"""Configuration settings for the application."""

from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings

from fincoach.tools import TOOLS_REQUIRING_CONFIRMATION as DEFAULT_CONFIRMATION_REQUIRED


class Settings(BaseSettings):
    """Pydantic settings class for the application."""

    # Define the settings with default values and types
    # These will be loaded from environment variables or a .env file if not provided
    API_PORT: int = 8000
    WEBUI_PORT: int = 8080
    DEBUG: bool = False
    LOG_LEVEL: str = "info"  # Options: debug, info, warning, error, critical

    # Model oracle
    MODEL_PROVIDER: str = "openai"  # Options: openai, azure, anthropic
    OPENAI_API_KEY: str | None = None
    OPENAI_API_MODEL: str = "gpt-4o-mini"
    AI_AZURE_RESOURCE_NAME: str | None = None
    AI_AZURE_API_KEY: str | None = None
    AI_AZURE_MODEL_DEPLOYMENT: str | None = None
    AI_AZURE_API_VERSION: str = "2024-10-21"
    ANTHROPIC_API_KEY: str | None = None
    ANTHROPIC_MODEL: str = "claude-3-5-haiku-latest"

    # Downstream services
    BACKEND_API_URL: str = "http://localhost:8787"
    MCP_TOOLS_URL: str | None = "http://localhost:8000/mcp"
    SERVE_COACHING_TOOLS: bool = True  # Mount the coaching tools MCP endpoint on the API
    COACHING_MOCK_DATA: bool = True  # Demo figures for the spending and investment tools
    HTTP_TIMEOUT_SECONDS: float = 30.0

    # Turn loop
    MAX_STEPS: int = 100
    TOOL_TIMEOUT_SECONDS: float | None = 60.0
    TOOLS_REQUIRING_CONFIRMATION: List[str] = Field(default_factory=lambda: sorted(DEFAULT_CONFIRMATION_REQUIRED))

    class Config:
        """Configuration for Pydantic settings."""

        # Load environment variables from a .env file
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
