"""Configuration loading with environment variable substitution."""

import os
import re
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field

from code_sandbox.languages import Language

ENV_VAR_PATTERN = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)\}")

CONFIG_PATH_ENV = "CODE_SANDBOX_CONFIG"

MANAGED_LABEL = "io.code-sandbox.managed"


def substitute_env_vars(value: Any) -> Any:
    """Recursively substitute ${VAR_NAME} patterns with environment variables."""
    if isinstance(value, str):
        def replace(match: re.Match[str]) -> str:
            var_name = match.group(1)
            env_value = os.environ.get(var_name)
            if env_value is None:
                raise ValueError(f"Environment variable {var_name} is not set")
            return env_value

        return ENV_VAR_PATTERN.sub(replace, value)
    elif isinstance(value, dict):
        return {k: substitute_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [substitute_env_vars(v) for v in value]
    return value


class EngineConfig(BaseModel):
    """Container engine connection settings."""

    backend: str = "docker"
    base_url: str | None = None  # Falls back to DOCKER_HOST / local socket
    timeout_seconds: int = 120


class SandboxConfig(BaseModel):
    """Environment lifecycle settings."""

    default_image: str = "python:3.12-slim-bookworm"
    workdir: str = "/app"
    stop_timeout_seconds: int = 10
    wait_timeout_seconds: float | None = None
    progress_interval_seconds: float = 1.0
    pull_policy: Literal["missing", "always"] = "missing"
    label: str = MANAGED_LABEL
    # Per-language base image overrides
    images: dict[Language, str] = Field(default_factory=dict)


class LoggingConfig(BaseModel):
    """Logging settings."""

    level: str = "INFO"
    format: Literal["json", "text"] = "json"


class ServerConfig(BaseModel):
    """MCP server settings."""

    name: str = "code-sandbox-mcp"
    transport: Literal["stdio", "sse"] = "stdio"
    host: str = "127.0.0.1"
    port: int = 9520


class Config(BaseModel):
    """Main configuration for code-sandbox."""

    engine: EngineConfig = Field(default_factory=EngineConfig)
    sandbox: SandboxConfig = Field(default_factory=SandboxConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)

    @classmethod
    def from_file(cls, path: str | Path) -> "Config":
        """Load configuration from a YAML or JSON file."""
        path = Path(path)
        with path.open() as f:
            if path.suffix in (".yaml", ".yml"):
                data = yaml.safe_load(f)
            else:
                import json
                data = json.load(f)

        # Substitute environment variables
        data = substitute_env_vars(data or {})
        return cls.model_validate(data)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Config":
        """Load configuration from a dictionary."""
        data = substitute_env_vars(data)
        return cls.model_validate(data)

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from the file named by CODE_SANDBOX_CONFIG, or defaults."""
        path = os.environ.get(CONFIG_PATH_ENV)
        if path:
            return cls.from_file(path)
        return cls()
