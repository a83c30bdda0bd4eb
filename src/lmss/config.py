"""Configuration loader with YAML parsing, env-var interpolation, and Pydantic validation."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator


class ClientSettings(BaseModel):
    base_url: str = "http://localhost:1234/v1"
    api_key: str = "lm-studio"  # local servers accept any bearer token
    default_model: Optional[str] = None
    request_timeout: float = 120.0  # seconds, whole chat completion
    model_fetch_timeout: float = 30.0  # seconds, GET /models
    auto_select_first_model: bool = True

    @field_validator("base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator("request_timeout", "model_fetch_timeout")
    @classmethod
    def _positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("timeouts must be positive")
        return value


class AgentConfig(BaseModel):
    system_prompt: Optional[str] = None
    temperature: float = 0.7
    max_tokens: Optional[int] = None
    working_dir: Optional[str] = None
    tools: list[str] = Field(
        default_factory=lambda: ["list_directory", "read_file", "write_file", "get_current_time"]
    )


class AppConfig(BaseModel):
    log_level: str = "INFO"
    client: ClientSettings = Field(default_factory=ClientSettings)
    agent: AgentConfig = Field(default_factory=AgentConfig)


_ENV_VAR_PATTERN = re.compile(r"\$\{(\w+)\}")


def _interpolate_env_vars(text: str) -> str:
    """Replace ${VAR_NAME} patterns with environment variable values."""

    def _replace(match: re.Match) -> str:
        value = os.environ.get(match.group(1))
        if value is None:
            return match.group(0)
        return value

    return _ENV_VAR_PATTERN.sub(_replace, text)


def load_config(config_path: str | Path = "lmss.yaml", env_path: str | Path = ".env") -> AppConfig:
    """Load and validate configuration from a YAML file with env-var interpolation."""
    env_file = Path(env_path)
    if env_file.exists():
        load_dotenv(env_file)

    config_file = Path(config_path)
    if not config_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_file}")

    raw_text = config_file.read_text(encoding="utf-8")
    data = yaml.safe_load(_interpolate_env_vars(raw_text)) or {}

    return AppConfig(**data)
