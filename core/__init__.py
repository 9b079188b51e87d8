# Core module - Data model, errors, execution state machine
# The composition root lives in core.sandbox (imported on demand)

from .models import (
    ParameterType, ParamValue, ToolParameter, ToolDefinition,
    ExecutionContext, ExecutionState, ExecutionRecord, ToolExecutionResult,
    PathRejection, PathValidationResult, CommandValidationResult
)
from .errors import (
    SandboxError, ValidationError, PathTraversalError, PathNotAllowedError,
    CommandNotAllowedError,
    ToolNotFoundError, ToolTimeoutError, ExecutionError, ToolError, ConfigError,
    ErrorCategory, ErrorHandler, get_error_suggestion
)
from .state_machine import ExecutionStateMachine, StateTransition

__all__ = [
    # Models
    "ParameterType", "ParamValue", "ToolParameter", "ToolDefinition",
    "ExecutionContext", "ExecutionState", "ExecutionRecord", "ToolExecutionResult",
    "PathRejection", "PathValidationResult", "CommandValidationResult",
    # Errors
    "SandboxError", "ValidationError", "PathTraversalError", "PathNotAllowedError",
    "CommandNotAllowedError",
    "ToolNotFoundError", "ToolTimeoutError", "ExecutionError", "ToolError",
    "ConfigError", "ErrorCategory", "ErrorHandler", "get_error_suggestion",
    # State machine
    "ExecutionStateMachine", "StateTransition",
]
