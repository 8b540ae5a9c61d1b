"""Application settings loaded from environment variables."""

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _env_file() -> str | None:
    if os.getenv("PYTEST_CURRENT_TEST"):
        return None
    return ".env"


class Settings(BaseSettings):
    """Agent configuration. All values come from environment variables."""

    # Anthropic (completion provider)
    anthropic_api_key: str = Field(default="")
    claude_model: str = Field(default="claude-sonnet-4-5-20250929")
    max_tool_rounds: int = Field(default=10)

    # Outbound email (Resend)
    resend_api_key: str = Field(default="")
    email_from: str = Field(default="AI Agent <agent@example.com>")

    # Public base URL, used to build OAuth callback URLs
    host: str = Field(default="http://localhost:8787")
    agent_namespace: str = Field(default="chat")

    # Database
    database_path: Path = Field(default=Path("data/chat_agent.db"))

    # Turso (hosted libSQL): when set, overrides local database_path
    turso_database_url: str = Field(default="")
    turso_auth_token: str = Field(default="")

    # Scheduler
    scheduler_timezone: str = Field(default="UTC")

    # HTTP front door
    server_port: int = Field(default=8787)

    # MCP OAuth client identity
    mcp_client_id: str = Field(default="chat-agent")
    mcp_client_name: str = Field(default="chat-agent")

    # External lookups
    weather_api_url: str = Field(default="https://wttr.in")
    number_fact_api_url: str = Field(default="http://numbersapi.com")
    http_timeout: float = Field(default=15.0)

    # Logging
    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(env_file=_env_file(), env_file_encoding="utf-8")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        if os.getenv("PYTEST_CURRENT_TEST"):
            return (init_settings,)
        return (init_settings, env_settings, dotenv_settings, file_secret_settings)

    def required_missing(self) -> list[str]:
        """Return env var names of required credentials that are unset."""
        missing = []
        if not self.anthropic_api_key:
            missing.append("ANTHROPIC_API_KEY")
        if not self.resend_api_key:
            missing.append("RESEND_API_KEY")
        return missing

    def callback_path(self, session_id: str) -> str:
        """Path of the per-session OAuth callback endpoint."""
        return f"/agents/{self.agent_namespace}/{session_id}/callback"

    def callback_url(self, session_id: str) -> str:
        return f"{self.host.rstrip('/')}{self.callback_path(session_id)}"


settings = Settings()
