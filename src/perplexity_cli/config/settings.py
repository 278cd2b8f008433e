"""
Configuration settings for Perplexity CLI.

This module provides runtime settings using Pydantic settings with support
for environment variables and .env files. The API key and query history are
not settings; they live in the config store (see ``config.store``).
"""

from pathlib import Path
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_BASE_URL = "https://api.perplexity.ai"
DEFAULT_SYSTEM_PROMPT = "Be precise and concise."
CONFIG_FILE_NAME = "config.json"


class PerplexityCliSettings(BaseSettings):
    """
    Runtime settings for Perplexity CLI.

    Settings are loaded from multiple sources in order of preference:
    1. Environment variables (prefixed with PERPLEXITY_CLI_)
    2. .env file in the current directory
    3. Default values
    """

    model_config = SettingsConfigDict(
        env_prefix="PERPLEXITY_CLI_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # API Configuration
    base_url: str = Field(
        default=DEFAULT_BASE_URL,
        description="Base URL of the OpenAI-compatible chat-completion API"
    )

    # Model Configuration
    default_model: str = Field(
        default="sonar",
        description="Model used when --model is not given"
    )

    system_prompt: str = Field(
        default=DEFAULT_SYSTEM_PROMPT,
        description="System message sent ahead of every question"
    )

    timeout: float = Field(
        default=60.0,
        description="Request timeout in seconds",
        gt=0
    )

    # Directory Configuration
    config_dir: Path = Field(
        default_factory=lambda: Path.home() / ".perplexity-cli",
        description="Directory holding config.json"
    )

    # Logging Configuration
    log_level: str = Field(
        default="WARNING",
        description="Logging level"
    )

    debug: bool = Field(
        default=False,
        description="Enable debug logging"
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level '{v}'. Valid levels: {', '.join(sorted(valid_levels))}")
        return v_upper

    @property
    def config_file_path(self) -> Path:
        """Path to the JSON config file holding the API key and history."""
        return self.config_dir / CONFIG_FILE_NAME

    @property
    def effective_log_level(self) -> str:
        return "DEBUG" if self.debug else self.log_level


def get_settings() -> PerplexityCliSettings:
    """Get the current Perplexity CLI settings."""
    return PerplexityCliSettings()
