"""
Sandbox Centralized Logging
---------------------------
Structured logging with session_id propagation for execution traceability.

Design:
- Every execute() call runs inside a SessionContext
- session_id propagates through: Executor -> Validator -> Registry -> Operations
- Console output via Rich, file output as JSON lines
- Severity discipline: INFO=completed, WARNING=rejected, ERROR=failed/timed out

Usage:
    from infra.logging import get_logger, SessionContext

    logger = get_logger("tools.executor")

    with SessionContext("session-1"):
        logger.info("Executing file-read")
"""

import contextvars
import json
import logging
import logging.handlers
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from rich.logging import RichHandler

# Context variable for session_id - thread-safe and async-safe
_session_id_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "session_id", default=None
)

ROOT_LOGGER = "sandbox"


def get_session_id() -> Optional[str]:
    """Get the current session ID from context."""
    return _session_id_var.get()


class SessionContext:
    """
    Context manager scoping logs to a session.

    Usage:
        with SessionContext("s1"):
            logger.info("...")  # record.session_id == "s1"
    """

    def __init__(self, session_id: Optional[str]):
        self._session_id = session_id
        self._token: Optional[contextvars.Token] = None

    def __enter__(self) -> Optional[str]:
        self._token = _session_id_var.set(self._session_id)
        return self._session_id

    def __exit__(self, *args) -> None:
        if self._token is not None:
            _session_id_var.reset(self._token)


class SessionIdFilter(logging.Filter):
    """Logging filter that adds session_id to every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "session_id", None) is None:
            record.session_id = get_session_id() or "-"
        return True


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured file logging."""

    EXTRA_FIELDS = ("tool_name", "execution_time_ms", "success", "reason", "details")

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "session_id": getattr(record, "session_id", "-"),
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        for key in self.EXTRA_FIELDS:
            if hasattr(record, key):
                log_entry[key] = getattr(record, key)

        return json.dumps(log_entry, default=str)


class SessionConsoleFormatter(logging.Formatter):
    """Prefixes console messages with the session id when one is set."""

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        session_id = getattr(record, "session_id", "-")
        return f"[{session_id}] {message}" if session_id != "-" else message


_logging_initialized = False


def configure_logging(
    level: int = logging.INFO,
    log_dir: Optional[str] = None,
    console: bool = True,
    file: bool = False,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 3,
) -> logging.Logger:
    """
    Configure the sandbox logging system. Idempotent.

    Args:
        level: Logging level (default INFO)
        log_dir: Directory for the JSON log file (default: ./logs)
        console: Enable Rich console output
        file: Enable rotating JSON file output
    """
    global _logging_initialized

    root_logger = logging.getLogger(ROOT_LOGGER)
    if _logging_initialized:
        return root_logger

    root_logger.setLevel(level)
    root_logger.handlers.clear()
    session_filter = SessionIdFilter()

    if console:
        console_handler = RichHandler(rich_tracebacks=True, show_path=False)
        console_handler.setLevel(level)
        console_handler.setFormatter(SessionConsoleFormatter("%(name)s: %(message)s"))
        console_handler.addFilter(session_filter)
        root_logger.addHandler(console_handler)

    if file:
        log_path = Path(log_dir) if log_dir else Path("logs")
        log_path.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            str(log_path / "sandbox.log"),
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(logging.DEBUG)  # File gets everything
        file_handler.setFormatter(JSONFormatter())
        file_handler.addFilter(session_filter)
        root_logger.addHandler(file_handler)

    _logging_initialized = True
    return root_logger


def reset_logging() -> None:
    """Remove handlers so configure_logging() can run again."""
    global _logging_initialized

    root_logger = logging.getLogger(ROOT_LOGGER)
    for handler in list(root_logger.handlers):
        handler.close()
        root_logger.removeHandler(handler)
    _logging_initialized = False


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger in the sandbox namespace.

    Args:
        name: Logger name (prefixed with 'sandbox.' if not already)
    """
    if not name.startswith(ROOT_LOGGER):
        name = f"{ROOT_LOGGER}.{name}"
    return logging.getLogger(name)
