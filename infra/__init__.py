# Infrastructure module - Logging, configuration and the execution audit trail

from .logging import (
    get_logger, configure_logging, reset_logging,
    SessionContext, get_session_id
)
from .config import (
    SandboxConfig, ExecutionSettings, FilesystemSettings, AuditSettings, ShellSettings,
    load_config
)
from .audit import ExecutionHistory

__all__ = [
    # Logging
    "get_logger",
    "configure_logging",
    "reset_logging",
    "SessionContext",
    "get_session_id",
    # Config
    "SandboxConfig",
    "ExecutionSettings",
    "FilesystemSettings",
    "AuditSettings",
    "ShellSettings",
    "load_config",
    # Audit
    "ExecutionHistory",
]
