"""
Configuration management for agentloop.

Settings come from (highest priority first) explicit keyword arguments or a
YAML file, ``AGENTLOOP_*`` environment variables, a ``.env`` file, and the
defaults below.
"""

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings

from agentloop.infrastructure.llm.models import get_default_model
from agentloop.infrastructure.tools.native import TOOL_CLASSES

# Conventional credential variables, read (never written) as a fallback
PROVIDER_API_KEY_ENV = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "google": "GEMINI_API_KEY",
    "openrouter": "OPENROUTER_API_KEY",
}


class AgentSettings(BaseSettings):
    """Agent configuration with environment variable support."""

    # Provider
    provider: str = Field(default="openai", description="Model provider name")
    model: str | None = Field(default=None, description="Model id (provider default when unset)")
    api_key: SecretStr | None = Field(default=None, description="Provider credential")
    base_url: str | None = Field(default=None, description="Optional API base URL override")
    temperature: float | None = Field(default=None, ge=0.0, le=2.0, description="Sampling temperature")
    max_tokens: int | None = Field(default=None, gt=0, description="Completion token limit")

    # Loop
    max_rounds: int = Field(default=5, ge=1, le=10, description="Maximum tool-calling rounds per execution")
    system_prompt: str | None = Field(default=None, description="System prompt sent with every round")
    max_output_chars: int = Field(default=20000, gt=0, description="Per-field cap for tool output sent to the model")

    # Tools
    tools: list[str] = Field(
        default_factory=lambda: list(TOOL_CLASSES),
        description="Subset of built-in tools to register",
    )
    bash_timeout_ms: int = Field(default=30000, ge=1, le=600000, description="Default shell command timeout")

    # Sessions
    session_max_age_seconds: float = Field(default=24 * 60 * 60, gt=0, description="Idle age after which sessions are cleaned up")

    # Logging
    log_level: str = Field(default="WARNING", description="Logging level")
    log_json: bool = Field(default=False, description="Render logs as JSON lines")

    model_config = {
        "env_file": ".env",
        "env_prefix": "AGENTLOOP_",
        "case_sensitive": False,
        "extra": "ignore",
    }

    @field_validator("tools")
    @classmethod
    def _known_tools(cls, value: list[str]) -> list[str]:
        unknown = [name for name in value if name not in TOOL_CLASSES]
        if unknown:
            raise ValueError(f"Unknown tools: {', '.join(unknown)}. Available: {', '.join(TOOL_CLASSES)}")
        return value

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.upper()

    @classmethod
    def load_from_file(cls, config_path: str | Path, **overrides: Any) -> "AgentSettings":
        """
        Load settings from a YAML configuration file.

        Args:
            config_path: Path to the YAML file
            **overrides: Values taking precedence over the file

        Raises:
            FileNotFoundError: If the file does not exist
            ValueError: If the file is empty or not a mapping
        """
        config_file = Path(config_path)
        if not config_file.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        with open(config_file, "r", encoding="utf-8") as f:
            config_data = yaml.safe_load(f)

        if not isinstance(config_data, dict):
            raise ValueError(f"Config file is empty or invalid: {config_path}")

        config_data.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**config_data)

    def resolved_model(self) -> str | None:
        return self.model or get_default_model(self.provider)

    def resolve_api_key(self) -> str | None:
        """Configured key, else the provider's conventional environment variable."""
        if self.api_key is not None and self.api_key.get_secret_value():
            return self.api_key.get_secret_value()
        env_var = PROVIDER_API_KEY_ENV.get(self.provider)
        return os.getenv(env_var) if env_var else None
