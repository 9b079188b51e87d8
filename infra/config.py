"""
Sandbox Configuration
---------------------
Typed configuration for SafeExecutor.
Loads from YAML with environment variable overrides.

Environment overrides use SANDBOX_<SECTION>_<KEY>, e.g.
SANDBOX_EXECUTION_DEFAULT_TIMEOUT_MS=10000. List values are
comma-separated.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional
import logging
import os

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from core.errors import ConfigError
from security.command_validator import DEFAULT_WHITELIST


ENV_PREFIX = "SANDBOX_"


def _default_tool_timeouts() -> Dict[str, int]:
    return {
        "file-read": 5000,
        "file-write": 5000,
        "list-dir": 5000,
        "file-stat": 3000,
        "shell": 10000,
    }


class ExecutionSettings(BaseModel):
    """Timeout settings, in milliseconds."""
    default_timeout_ms: int = Field(default=30000, gt=0)
    max_timeout_ms: int = Field(default=300000, gt=0)
    tool_timeouts: Dict[str, int] = Field(default_factory=_default_tool_timeouts)

    @field_validator("tool_timeouts")
    @classmethod
    def _positive_timeouts(cls, value: Dict[str, int]) -> Dict[str, int]:
        for tool_id, timeout in value.items():
            if timeout <= 0:
                raise ValueError(f"Timeout for {tool_id} must be positive")
        return value

    @model_validator(mode="after")
    def _within_max(self) -> "ExecutionSettings":
        if self.default_timeout_ms > self.max_timeout_ms:
            raise ValueError("Default timeout cannot exceed max timeout")
        for tool_id, timeout in self.tool_timeouts.items():
            if timeout > self.max_timeout_ms:
                raise ValueError(f"Tool {tool_id} timeout exceeds maximum")
        return self


class FilesystemSettings(BaseModel):
    """File access settings."""
    allowed_directories: List[str] = Field(default_factory=lambda: [os.getcwd()])
    working_directory: Optional[str] = None
    max_file_size: int = Field(default=10 * 1024 * 1024, gt=0)
    max_output_size: int = Field(default=1024 * 1024, gt=0)
    allow_symlinks: bool = False
    backup_on_write: bool = False

    @field_validator("allowed_directories")
    @classmethod
    def _non_empty(cls, value: List[str]) -> List[str]:
        if not value:
            raise ValueError("At least one allowed directory is required")
        return value

    @model_validator(mode="after")
    def _output_within_file_size(self) -> "FilesystemSettings":
        if self.max_file_size < self.max_output_size:
            raise ValueError("Max file size cannot be less than max output size")
        return self


class AuditSettings(BaseModel):
    history_limit: int = Field(default=100, gt=0)
    audit_file: Optional[str] = None


class ShellSettings(BaseModel):
    """Shell tool settings. Disabled unless turned on explicitly."""
    enabled: bool = False
    whitelist: List[str] = Field(default_factory=lambda: list(DEFAULT_WHITELIST))
    block_list: List[str] = Field(default_factory=list)


class SandboxConfig(BaseModel):
    """Full sandbox configuration."""
    execution: ExecutionSettings = Field(default_factory=ExecutionSettings)
    filesystem: FilesystemSettings = Field(default_factory=FilesystemSettings)
    audit: AuditSettings = Field(default_factory=AuditSettings)
    shell: ShellSettings = Field(default_factory=ShellSettings)
    tool_definitions_file: Optional[str] = None


def _env_overrides(environ: Dict[str, str]) -> Dict[str, Dict[str, Any]]:
    """Collect SANDBOX_<SECTION>_<KEY> variables into nested dicts."""
    overrides: Dict[str, Dict[str, Any]] = {}
    sections = {
        "execution": ExecutionSettings,
        "filesystem": FilesystemSettings,
        "audit": AuditSettings,
        "shell": ShellSettings,
    }

    for section, model in sections.items():
        for key, info in model.model_fields.items():
            env_key = f"{ENV_PREFIX}{section.upper()}_{key.upper()}"
            value = environ.get(env_key)
            if value is None:
                continue
            if info.annotation == List[str]:
                parsed: Any = [v.strip() for v in value.split(",") if v.strip()]
            else:
                # YAML scalars: "5000" -> 5000, "true" -> True, "{a: 1}" -> dict
                parsed = yaml.safe_load(value)
            overrides.setdefault(section, {})[key] = parsed

    return overrides


def load_config(
    path: Optional[str] = None,
    environ: Optional[Dict[str, str]] = None,
) -> SandboxConfig:
    """
    Load configuration from YAML, then apply environment overrides.

    A missing file yields defaults. Raises ConfigError on invalid values.
    """
    logger = logging.getLogger("sandbox.infra.config")
    environ = os.environ if environ is None else environ
    data: Dict[str, Any] = {}

    if path is not None:
        config_path = Path(path)
        if config_path.exists():
            with open(config_path, 'r') as f:
                data = yaml.safe_load(f) or {}
            logger.info(f"Loaded config from {config_path}")
        else:
            logger.warning(f"Config file not found: {config_path}")

    if not isinstance(data, dict):
        raise ConfigError(f"Config root must be a mapping: {path}")

    for section, values in _env_overrides(environ).items():
        merged = dict(data.get(section) or {})
        merged.update(values)
        data[section] = merged

    try:
        return SandboxConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid sandbox configuration: {e}") from e
