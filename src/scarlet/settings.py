"""Instance configuration: one JSON file per target repository.

Loading happens in three steps: an optional ``.env`` next to the config file is loaded
into the environment (existing variables win), ``${NAME}`` placeholders in string values
are replaced from the environment, and the result is validated by the pydantic models
below.  Keys are camelCase on disk; unknown keys are rejected.
"""

from __future__ import annotations

import json
import os
import re
from enum import Enum
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from .agents import AgentKind

_ENV_PLACEHOLDER_RE = re.compile(r"\$\{(\w+)\}")


class ConfigError(ValueError):
    """Raised when the configuration file is missing, malformed or invalid."""


class LogLevel(str, Enum):
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class _Section(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid", frozen=True)


class TargetRepoConfig(_Section):
    local_path: Path
    remote_url: str | None = None
    remote: str = "origin"
    main_branch: str = "main"
    prd_glob: str = "docs/prd/**/*.md"

    @field_validator("main_branch", "prd_glob", "remote")
    @classmethod
    def _non_empty(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must be non-empty")
        return value.strip()


class PollingConfig(_Section):
    interval_seconds: int = Field(default=60, ge=10, le=86_400)


class AgentSettings(_Section):
    type: AgentKind
    command: str | None = None
    timeout: int = Field(default=300, ge=1, le=86_400)


class GitSettings(_Section):
    branch_prefix: str = "scarlet/"
    commit_author: str = "Scarlet Agent <scarlet@example.com>"
    github_token: str | None = None
    create_pr: bool = True

    @field_validator("github_token")
    @classmethod
    def _blank_token_is_absent(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        return value.strip()

    @field_validator("commit_author")
    @classmethod
    def _author_shape(cls, value: str) -> str:
        if not re.fullmatch(r"[^<>]+ <[^<>\s]+>", value.strip()):
            raise ValueError("must look like 'Name <email>'")
        return value.strip()


class StateSettings(_Section):
    path: Path = Path(".scarlet/state.json")


class LoggingSettings(_Section):
    level: LogLevel = LogLevel.INFO
    file: Path | None = None

    @field_validator("level", mode="before")
    @classmethod
    def _normalize_level(cls, value: Any) -> Any:
        if isinstance(value, str):
            lowered = value.strip().lower()
            return "warning" if lowered == "warn" else lowered
        return value


class ScarletConfig(_Section):
    target_repo: TargetRepoConfig
    agent: AgentSettings
    polling: PollingConfig = PollingConfig()
    git: GitSettings = GitSettings()
    state: StateSettings = StateSettings()
    logging: LoggingSettings = LoggingSettings()

    @property
    def repo_root(self) -> Path:
        return self.target_repo.local_path

    @property
    def state_path(self) -> Path:
        return _resolve_under(self.repo_root, self.state.path)

    @property
    def log_file_path(self) -> Path | None:
        if self.logging.file is None:
            return None
        return _resolve_under(self.repo_root, self.logging.file)

    @property
    def pull_requests_enabled(self) -> bool:
        return self.git.create_pr and self.git.github_token is not None


def _resolve_under(root: Path, path: Path) -> Path:
    return path if path.is_absolute() else root / path


def interpolate_env(value: Any) -> Any:
    """Replace ``${NAME}`` in every string of a JSON-like structure; unset names become ``""``."""
    if isinstance(value, str):
        return _ENV_PLACEHOLDER_RE.sub(lambda match: os.environ.get(match.group(1), ""), value)
    if isinstance(value, list):
        return [interpolate_env(item) for item in value]
    if isinstance(value, dict):
        return {key: interpolate_env(item) for key, item in value.items()}
    return value


def _format_validation_error(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = "/" + "/".join(str(item) for item in error["loc"])
        parts.append(f"{location} {error['msg']}")
    return "; ".join(parts)


def load_config(path: Path) -> ScarletConfig:
    """Load, interpolate and validate an instance config file.

    Args:
        path: Path to the JSON config file.

    Returns:
        The validated configuration.

    Raises:
        ConfigError: If the file cannot be read, is not a JSON object, or fails validation.
    """
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Unable to read config {path}: {exc}") from exc
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Config {path} is not valid JSON: {exc}") from exc
    if not isinstance(parsed, dict):
        raise ConfigError(f"Config {path} must contain a JSON object")

    env_path = path.parent / ".env"
    if env_path.is_file():
        load_dotenv(env_path, override=False)

    try:
        return ScarletConfig.model_validate(interpolate_env(parsed))
    except ValidationError as exc:
        raise ConfigError(f"Invalid config: {_format_validation_error(exc)}") from exc
