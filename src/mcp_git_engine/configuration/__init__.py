"""Configuration module for the MCP Git engine.

Configuration is a single pydantic model bound to environment variables.
Values are validated on construction, so a bad ``GIT_ENGINE_TIMEOUT_MS`` fails
at startup instead of on the first git call.

Environment variable binding:
    ```bash
    export GIT_ENGINE_TIMEOUT_MS=30000
    export GIT_ENGINE_PROVIDER=embedded
    export GIT_ENGINE_STRICT_FLAGS=true
    export GIT_SIGN_COMMITS=true
    ```

Usage examples:
    >>> from mcp_git_engine.configuration import load_config
    >>> config = load_config()
    >>> config.timeout_ms
    60000

    >>> # Tests build configurations directly
    >>> config = EngineConfig(timeout_ms=500, provider="cli")
"""

import logging
import os
from pathlib import Path
from typing import Literal, Mapping, Optional

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, Field, field_validator

from ..constants import GitOperationDefaults

logger = logging.getLogger(__name__)

ENV_BINDINGS = {
    "timeout_ms": "GIT_ENGINE_TIMEOUT_MS",
    "provider": "GIT_ENGINE_PROVIDER",
    "spawn_strategy": "GIT_ENGINE_SPAWN_STRATEGY",
    "strict_flags": "GIT_ENGINE_STRICT_FLAGS",
    "sign_commits": "GIT_SIGN_COMMITS",
    "git_binary": "GIT_ENGINE_GIT_BINARY",
    "log_level": "GIT_ENGINE_LOG_LEVEL",
    "base_directory": "GIT_BASE_DIR",
}


class EngineConfig(BaseModel):
    """Runtime configuration for the engine and its MCP adapter."""

    timeout_ms: int = Field(
        default=GitOperationDefaults.TIMEOUT_MS,
        gt=0,
        description="Per-call timeout applied when the caller does not supply one",
    )
    provider: Literal["auto", "cli", "embedded"] = "auto"
    spawn_strategy: Optional[Literal["asyncio", "thread"]] = None
    strict_flags: bool = Field(
        default=False,
        description="Reject long options outside the known-safe list instead of warning",
    )
    sign_commits: bool = False
    git_binary: str = GitOperationDefaults.GIT_BINARY
    log_level: str = "WARNING"
    base_directory: Optional[Path] = None

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {value}")
        return level

    @field_validator("spawn_strategy", mode="before")
    @classmethod
    def empty_strategy_means_detect(cls, value):
        if value == "":
            return None
        return value

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "EngineConfig":
        environ = os.environ if environ is None else environ
        values = {
            field: environ[var]
            for field, var in ENV_BINDINGS.items()
            if environ.get(var) not in (None, "")
        }
        return cls(**values)


def load_config(env_file: Optional[Path] = None) -> EngineConfig:
    """Load a ``.env`` file (without overriding the process environment) and
    build the configuration from ``os.environ``."""
    if env_file is not None:
        if env_file.exists():
            load_dotenv(env_file, override=False)
            logger.info(f"Loaded environment variables from {env_file}")
        else:
            logger.warning(f"Environment file {env_file} does not exist")
    else:
        load_dotenv(find_dotenv(usecwd=True), override=False)
    return EngineConfig.from_env()


__all__ = ["EngineConfig", "load_config", "ENV_BINDINGS"]
