"""Unified configuration via pydantic-settings."""

import logging
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_LOG_LEVELS = frozenset(logging.getLevelNamesMapping())


class GitwardConfig(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="GITWARD_",
        env_file=".env",
        env_file_encoding="utf-8",
    )

    # git executable
    git_binary: str = "git"
    command_timeout_seconds: float = 30.0
    network_timeout_seconds: float = 120.0
    mergetool_timeout_seconds: float | None = None
    mergetool: str | None = None

    # Remote defaults
    default_remote: str = "origin"

    # Applied once per repository root, via `git config`
    repo_settings: dict[str, str] = {"core.quotepath": "false"}

    # Logging
    log_level: str = "INFO"
    log_dir: Path | None = None
    log_max_bytes: int = 10_485_760
    log_backup_count: int = 5

    @field_validator("command_timeout_seconds", "network_timeout_seconds")
    @classmethod
    def require_positive_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("timeout must be positive")
        return v

    @field_validator("mergetool_timeout_seconds")
    @classmethod
    def require_positive_mergetool_timeout(cls, v: float | None) -> float | None:
        if v is not None and v <= 0:
            raise ValueError("timeout must be positive")
        return v

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        level = str(v).strip().upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"unknown log level: {v}")
        return level

    @field_validator("default_remote")
    @classmethod
    def require_remote_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("default_remote must not be empty")
        return v
