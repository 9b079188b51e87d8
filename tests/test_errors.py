"""
Error Handling Tests
--------------------
Tests for the error taxonomy, suggestions and the error handler.
"""

import logging
import pytest
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).parent.parent))

from core.errors import (
    CommandNotAllowedError, ErrorCategory, ErrorHandler, ErrorRecord, ExecutionError, PathNotAllowedError,
    PathTraversalError, SandboxError, ToolNotFoundError, ToolTimeoutError,
    ValidationError, get_error_suggestion
)


class TestErrorTypes:

    def test_hierarchy(self):
        for error in (
            ValidationError("bad"),
            PathTraversalError("/x/..", "traversal"),
            PathNotAllowedError("/etc"),
            ToolNotFoundError("nope"),
            ToolTimeoutError(100),
            ExecutionError("io"),
            CommandNotAllowedError("rm x", "not whitelisted"),
        ):
            assert isinstance(error, SandboxError)

    def test_messages(self):
        assert str(PathNotAllowedError("/etc/passwd")) == (
            "Path not allowed: /etc/passwd is outside permitted directories"
        )
        assert str(ToolNotFoundError("nonexistent")) == "Tool not found: nonexistent"
        assert str(ToolTimeoutError(50, "slow")) == "Execution timed out after 50 ms: slow"

    def test_details(self):
        error = ValidationError("Session ID is required", "session_id")

        assert error.details == {"field": "session_id"}
        assert error.category == ErrorCategory.VALIDATION_ERROR
        assert PathTraversalError("/a", "r").details == {"path": "/a"}

    def test_command_not_allowed(self):
        error = CommandNotAllowedError("rm -rf x", 'Command "rm" is not whitelisted')

        assert str(error) == 'Command "rm" is not whitelisted'
        assert error.code == "COMMAND_NOT_ALLOWED"
        assert error.category == ErrorCategory.COMMAND_VIOLATION
        assert error.details == {"command": "rm -rf x"}
        assert "whitelisted command" in get_error_suggestion(error)

    def test_suggestions(self):
        assert "allowed directories" in get_error_suggestion(PathNotAllowedError("/etc"))
        assert "too long" in get_error_suggestion(ToolTimeoutError(1))
        assert get_error_suggestion(SandboxError("x")).startswith("An error occurred")


class TestErrorHandler:

    def test_handle_sandbox_error(self):
        handler = ErrorHandler()

        record = handler.handle(PathNotAllowedError("/etc"), "file-read")

        assert record.code == "PATH_NOT_ALLOWED"
        assert record.category == ErrorCategory.PATH_VIOLATION
        assert handler.get_error_stats() == {"PATH_VIOLATION": 1}

    def test_handle_unexpected(self):
        record = ErrorRecord.from_exception(KeyError("k"))

        assert record.category == ErrorCategory.SYSTEM_ERROR
        assert record.code == "UNEXPECTED"

    def test_log_levels(self, caplog):
        """Rejections log as warnings, failures as errors."""
        handler = ErrorHandler()
        with caplog.at_level(logging.DEBUG, logger="sandbox.errors"):
            handler.handle(ValidationError("bad"))
            handler.handle(CommandNotAllowedError("rm", "blocked"))
            handler.handle(ExecutionError("io"))

        levels = [r.levelno for r in caplog.records if r.name == "sandbox.errors"]
        assert levels == [logging.WARNING, logging.WARNING, logging.ERROR]

    def test_history_bounded(self):
        handler = ErrorHandler(max_history=3)
        for _ in range(5):
            handler.handle(ExecutionError("io"))

        assert handler.get_error_stats() == {"EXECUTION_ERROR": 3}
        handler.clear_history()
        assert handler.get_error_stats() == {}
