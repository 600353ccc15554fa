"""
Configuration management for igent.

Uses pydantic-settings for environment variable parsing and validation.
Nested sections are addressed with a double underscore, for example
IGENT_PROVIDER__MODEL or IGENT_CONTEXT__SUMMARIZE_WHEN.
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_WORK_DIR = Path.home() / ".igent"

DEFAULT_SYSTEM_PROMPT = "You are a helpful AI assistant. Be concise and accurate."

# Base URLs for providers that speak the OpenAI wire format
PROVIDER_BASE_URLS: dict[str, str | None] = {
    "openai": "https://api.openai.com/v1",
    "zhipu": "https://open.bigmodel.cn/api/paas/v4",
    "anthropic": None,
}

PROVIDER_MODELS: dict[str, str] = {
    "openai": "gpt-4o-mini",
    "zhipu": "glm-4-flash",
    "anthropic": "claude-sonnet-4-20250514",
}


class ProviderConfig(BaseModel):
    """Configuration for the LLM provider."""

    type: Literal["openai", "zhipu", "anthropic"] = "openai"
    base_url: str | None = None
    api_key: str = ""
    model: str = ""
    max_tokens: int = 4096
    temperature: float = 0.7

    @model_validator(mode="after")
    def apply_provider_defaults(self) -> "ProviderConfig":
        if not self.base_url:
            self.base_url = PROVIDER_BASE_URLS.get(self.type)
        if not self.model:
            self.model = PROVIDER_MODELS.get(self.type, "")
        return self


class ContextConfig(BaseModel):
    """Context window and summarization settings."""

    max_messages: int = Field(default=50, ge=1, description="Max history messages per turn")
    max_tokens: int = Field(default=4000, ge=1, description="Approximate context token budget")
    summarize_when: int = Field(default=30, ge=1, description="Summarize at this message count")
    keep_recent: int = Field(default=10, ge=1, description="Messages kept verbatim on summarize")
    summary_timeout_seconds: float = 30.0


class AgentConfig(BaseModel):
    """General agent settings."""

    name: str = "igent"
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    max_tool_iterations: int = Field(default=10, ge=1)
    turn_timeout_seconds: float = 300.0
    auto_approve_safe_tools: bool = False


class LoggingConfig(BaseModel):
    """Logging settings."""

    level: Literal["debug", "info", "warn", "warning", "error"] = "info"
    format: Literal["text", "json"] = "text"

    @field_validator("level", "format", mode="before")
    @classmethod
    def lowercase(cls, v: str) -> str:
        return v.lower() if isinstance(v, str) else v


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_prefix="IGENT_",
        env_file=(".env", str(DEFAULT_WORK_DIR / ".env")),
        env_file_encoding="utf-8",
        extra="ignore",
        env_nested_delimiter="__",
    )

    work_dir: Path = DEFAULT_WORK_DIR
    provider: ProviderConfig = Field(default_factory=ProviderConfig)
    context: ContextConfig = Field(default_factory=ContextConfig)
    agent: AgentConfig = Field(default_factory=AgentConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("work_dir", mode="after")
    @classmethod
    def expand_work_dir(cls, v: Path) -> Path:
        return v.expanduser()

    @model_validator(mode="after")
    def resolve_api_key(self) -> "Settings":
        # Nested env binding is easy to get wrong, so accept the flat names too
        if not self.provider.api_key:
            for var in ("IGENT_API_KEY", "OPENAI_API_KEY"):
                key = os.getenv(var, "")
                if key:
                    self.provider.api_key = key
                    break
        return self

    @property
    def env_path(self) -> Path:
        """Location of the per-user settings file."""
        return self.work_dir / ".env"

    def ensure_work_dir(self) -> Path:
        """Create the working directory if it doesn't exist."""
        self.work_dir.mkdir(parents=True, exist_ok=True)
        return self.work_dir

    def to_env(self) -> str:
        """Render the settings as a .env file body."""
        lines = [
            "# igent configuration",
            "",
            f"IGENT_PROVIDER__TYPE={self.provider.type}",
            f"IGENT_PROVIDER__BASE_URL={self.provider.base_url or ''}",
            f"IGENT_PROVIDER__API_KEY={self.provider.api_key}",
            f"IGENT_PROVIDER__MODEL={self.provider.model}",
            "",
            f"IGENT_WORK_DIR={self.work_dir}",
            f"IGENT_CONTEXT__MAX_MESSAGES={self.context.max_messages}",
            f"IGENT_CONTEXT__MAX_TOKENS={self.context.max_tokens}",
            f"IGENT_CONTEXT__SUMMARIZE_WHEN={self.context.summarize_when}",
            "",
            f"IGENT_AGENT__NAME={self.agent.name}",
            f"IGENT_LOGGING__LEVEL={self.logging.level}",
            f"IGENT_LOGGING__FORMAT={self.logging.format}",
        ]
        return "\n".join(lines) + "\n"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
