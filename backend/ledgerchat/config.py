"""Application settings loaded from environment variables using pydantic-settings."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """ledgerchat application configuration.

    All settings can be overridden via environment variables.
    The API key defaults to None and is checked when the chat agent is
    built, not at application startup.
    """

    ANTHROPIC_API_KEY: str | None = None
    ANTHROPIC_MODEL: str = "claude-sonnet-4-6"
    COMPLETION_MAX_TOKENS: int = 1024
    COMPLETION_TIMEOUT_SECONDS: float = 60.0
    CHAT_HISTORY_LIMIT: int = 10
    CONTEXT_WINDOW_DAYS: int = 30
    CONTEXT_MAX_TRANSACTIONS: int = 20
    DATABASE_DIR: str = "./data"
    FRONTEND_URL: str = "http://localhost:3000"
    LOG_LEVEL: str = "INFO"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }
