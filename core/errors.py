"""
Error Handling Module
---------------------
Typed errors for the tool-execution sandbox.

Every failure inside SafeExecutor.execute() is one of these, converted into
a failed ToolExecutionResult. Only ToolError (registry misconfiguration)
is allowed to escape to the caller.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, auto
from typing import Any, Dict, List, Optional
import logging
import traceback


class ErrorCategory(Enum):
    """Categories of errors for handling decisions."""
    VALIDATION_ERROR = auto()   # Parameters do not match the tool schema
    PATH_VIOLATION = auto()     # Path escapes or attacks the allowed roots
    COMMAND_VIOLATION = auto()  # Shell command not whitelisted or unsafe
    NOT_FOUND = auto()          # Unknown tool id
    TIMEOUT_ERROR = auto()      # Execution exceeded its bound
    EXECUTION_ERROR = auto()    # The tool's own operation failed
    CONFIGURATION_ERROR = auto()
    SYSTEM_ERROR = auto()


class SandboxError(Exception):
    """Base class for all sandbox errors."""

    code = "SANDBOX_ERROR"
    category = ErrorCategory.SYSTEM_ERROR

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        return self.message


class ValidationError(SandboxError):
    """Malformed or missing parameters against a tool's declared schema."""
    code = "VALIDATION_FAILED"
    category = ErrorCategory.VALIDATION_ERROR

    def __init__(self, message: str, field_name: str = ""):
        super().__init__(message, {"field": field_name} if field_name else None)
        self.field_name = field_name


class PathTraversalError(SandboxError):
    """Path contains a traversal or encoding attack pattern."""
    code = "PATH_TRAVERSAL_ATTEMPT"
    category = ErrorCategory.PATH_VIOLATION

    def __init__(self, path: str, reason: str):
        super().__init__(reason, {"path": path})
        self.path = path


class PathNotAllowedError(SandboxError):
    """Path resolves outside every allowed root."""
    code = "PATH_NOT_ALLOWED"
    category = ErrorCategory.PATH_VIOLATION

    def __init__(self, path: str, reason: Optional[str] = None):
        super().__init__(
            reason or f"Path not allowed: {path} is outside permitted directories",
            {"path": path},
        )
        self.path = path


class CommandNotAllowedError(SandboxError):
    """Shell command rejected by the command validator."""
    code = "COMMAND_NOT_ALLOWED"
    category = ErrorCategory.COMMAND_VIOLATION

    def __init__(self, command: str, reason: str):
        super().__init__(reason, {"command": command})
        self.command = command


class ToolNotFoundError(SandboxError):
    """Unknown tool id."""
    code = "TOOL_NOT_FOUND"
    category = ErrorCategory.NOT_FOUND

    def __init__(self, tool_id: str):
        super().__init__(f"Tool not found: {tool_id}", {"tool_id": tool_id})
        self.tool_id = tool_id


class ToolTimeoutError(SandboxError):
    """Execution exceeded its timeout."""
    code = "TIMEOUT"
    category = ErrorCategory.TIMEOUT_ERROR

    def __init__(self, timeout_ms: int, tool_id: str = ""):
        message = f"Execution timed out after {timeout_ms} ms"
        if tool_id:
            message += f": {tool_id}"
        super().__init__(message, {"timeout_ms": timeout_ms, "tool_id": tool_id})
        self.timeout_ms = timeout_ms


class ExecutionError(SandboxError):
    """The tool's own operation failed (OS error, size limit, ...)."""
    code = "EXECUTION_FAILED"
    category = ErrorCategory.EXECUTION_ERROR


class ToolError(SandboxError):
    """Registry configuration mistake, e.g. a duplicate tool id."""
    code = "TOOL_REGISTRATION"
    category = ErrorCategory.CONFIGURATION_ERROR


class ConfigError(SandboxError):
    """Invalid sandbox configuration."""
    code = "INVALID_CONFIG"
    category = ErrorCategory.CONFIGURATION_ERROR


_SUGGESTIONS: Dict[str, str] = {
    "TIMEOUT": "The operation took too long. Try a smaller input or raise the tool timeout.",
    "VALIDATION_FAILED": "Check the tool parameters against its schema.",
    "PATH_TRAVERSAL_ATTEMPT": "Path access denied for security reasons.",
    "PATH_NOT_ALLOWED": "Use a path inside one of the allowed directories.",
    "COMMAND_NOT_ALLOWED": "Use a whitelisted command without shell operators.",
    "TOOL_NOT_FOUND": "Check the tool id; list the registry to see available tools.",
    "EXECUTION_FAILED": "Check that the file exists and that you have access to it.",
}


def get_error_suggestion(error: SandboxError) -> str:
    """Recovery hint for a sandbox error."""
    return _SUGGESTIONS.get(
        error.code,
        "An error occurred during execution. Check the error details.",
    )


@dataclass
class ErrorRecord:
    """A handled error, kept for statistics."""
    category: ErrorCategory
    code: str
    message: str
    details: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)
    stack_trace: Optional[str] = None

    @classmethod
    def from_exception(cls, exception: Exception) -> "ErrorRecord":
        if isinstance(exception, SandboxError):
            return cls(
                category=exception.category,
                code=exception.code,
                message=exception.message,
                details=exception.details,
            )
        return cls(
            category=ErrorCategory.SYSTEM_ERROR,
            code="UNEXPECTED",
            message=str(exception) or type(exception).__name__,
            stack_trace=traceback.format_exc(),
        )

    def __repr__(self) -> str:
        return f"ErrorRecord({self.category.name}: {self.message})"


class ErrorHandler:
    """
    Central error handler with logging and bounded statistics.
    """

    LEVELS: Dict[ErrorCategory, int] = {
        ErrorCategory.VALIDATION_ERROR: logging.WARNING,
        ErrorCategory.PATH_VIOLATION: logging.WARNING,
        ErrorCategory.COMMAND_VIOLATION: logging.WARNING,
        ErrorCategory.NOT_FOUND: logging.WARNING,
        ErrorCategory.TIMEOUT_ERROR: logging.ERROR,
        ErrorCategory.EXECUTION_ERROR: logging.ERROR,
        ErrorCategory.CONFIGURATION_ERROR: logging.ERROR,
        ErrorCategory.SYSTEM_ERROR: logging.CRITICAL,
    }

    def __init__(self, max_history: int = 100):
        self._logger = logging.getLogger("sandbox.errors")
        self._error_history: List[ErrorRecord] = []
        self._max_history = max_history

    def handle(self, exception: Exception, tool_id: str = "") -> ErrorRecord:
        """Log an error and remember it. Returns the stored record."""
        record = ErrorRecord.from_exception(exception)
        level = self.LEVELS.get(record.category, logging.ERROR)

        self._logger.log(
            level,
            f"{record.code} in {tool_id or '-'}: {record.message}",
            extra={"tool_name": tool_id, "details": record.details},
        )
        if record.stack_trace:
            self._logger.debug(f"Stack trace:\n{record.stack_trace}")

        self._error_history.append(record)
        if len(self._error_history) > self._max_history:
            self._error_history.pop(0)

        return record

    def get_error_stats(self) -> Dict[str, int]:
        """Count handled errors per category."""
        stats: Dict[str, int] = {}
        for record in self._error_history:
            key = record.category.name
            stats[key] = stats.get(key, 0) + 1
        return stats

    def clear_history(self) -> None:
        self._error_history.clear()
