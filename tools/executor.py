"""
Safe Executor
-------------
Sandboxed execution of tools with path confinement, timeout enforcement,
and audit logging.

Exit Criterion: no path reaches a filesystem tool without passing the
PathValidator, and nothing escapes execute() as an exception.

Rules:
- Path arguments validated before any filesystem call
- Executors only ever see canonical paths
- Shell commands whitelisted, run without a shell, every operand confined
- Sync executors run in worker threads so the timeout always applies
- Timeouts enforced per call
- Every attempt recorded in the execution history
"""

from typing import Any, Callable, Dict, Iterable, List, Optional, Union
import asyncio
import shlex
import time

from core.errors import (
    CommandNotAllowedError, ExecutionError, PathNotAllowedError, PathTraversalError,
    SandboxError,
    ToolNotFoundError, ToolTimeoutError, ValidationError, ErrorHandler,
    get_error_suggestion
)
from core.state_machine import ExecutionStateMachine
from infra.audit import ExecutionHistory
from infra.config import SandboxConfig
from infra.logging import SessionContext, get_logger
from security.command_validator import CommandValidator
from security.path_validator import PathValidator
from core.models import (
    ExecutionContext, ExecutionRecord, ExecutionState, PathRejection,
    ToolDefinition, ToolExecutionResult
)
from tools.operations import FileOperations, ShellOperations
from tools.registry import ToolRegistry


RawInput = Union[str, Dict[str, Any], None]


class SafeExecutor:
    """
    The enforcement point where registry metadata, path confinement,
    timeouts and audit logging meet.

    This is the ONLY entry point for tool execution.
    """

    DEFAULT_TIMEOUT_MS = 30000
    MAX_TIMEOUT_MS = 300000

    def __init__(
        self,
        registry: ToolRegistry,
        allowed_paths: Iterable[str],
        default_timeout_ms: int = DEFAULT_TIMEOUT_MS,
        tool_timeouts: Optional[Dict[str, int]] = None,
        max_timeout_ms: int = MAX_TIMEOUT_MS,
        history_limit: int = ExecutionHistory.DEFAULT_LIMIT,
        working_directory: Optional[str] = None,
        allow_symlinks: bool = False,
        max_file_size: int = 10 * 1024 * 1024,
        max_output_size: int = 1024 * 1024,
        backup_on_write: bool = False,
        enable_shell: bool = False,
        command_whitelist: Optional[Iterable[str]] = None,
        command_block_list: Optional[Iterable[str]] = None,
        history: Optional[ExecutionHistory] = None,
    ):
        if default_timeout_ms <= 0 or default_timeout_ms > max_timeout_ms:
            raise ValueError("default_timeout_ms must be positive and <= max_timeout_ms")

        self.registry = registry
        self._validator = PathValidator(
            allowed_paths,
            working_directory=working_directory,
            allow_symlinks=allow_symlinks,
        )
        self._operations = FileOperations(
            max_file_size=max_file_size,
            max_output_size=max_output_size,
        )
        self._default_timeout_ms = default_timeout_ms
        self._max_timeout_ms = max_timeout_ms
        self._timeouts: Dict[str, int] = {}
        self._history = (
            history if history is not None else ExecutionHistory(limit=history_limit)
        )
        self._enable_shell = enable_shell
        self._commands = CommandValidator(command_whitelist, command_block_list)
        self._shell = ShellOperations(max_output_size=max_output_size)

        # Commands run in the working directory when it is inside a root
        working = self._validator.working_directory
        self._shell_cwd = (
            working if self._validator.is_within_roots(working)
            else self._validator.allowed_roots[0]
        )
        self._errors = ErrorHandler()
        self._logger = get_logger("tools.executor")

        for tool_id, timeout_ms in (tool_timeouts or {}).items():
            self.set_tool_timeout(tool_id, timeout_ms)

        # Built-in behavior, keyed by tool id; called with (args, timeout_ms)
        self._builtin_ops: Dict[str, Callable[[Dict[str, Any], int], Any]] = {
            "file-read": lambda args, _: self._operations.read_file(args["path"]),
            "file-write": lambda args, _: self._operations.write_file(
                args["path"], args["content"], backup=backup_on_write
            ),
            "list-dir": lambda args, _: self._operations.list_directory(args["path"]),
            "file-stat": lambda args, _: self._operations.stat(args["path"]),
            "shell": lambda args, timeout_ms: self._shell.run(
                shlex.split(args["command"]), self._shell_cwd, timeout_ms
            ),
        }

    @classmethod
    def from_config(
        cls,
        registry: ToolRegistry,
        config: SandboxConfig,
    ) -> "SafeExecutor":
        """Build an executor from a SandboxConfig."""
        return cls(
            registry,
            allowed_paths=config.filesystem.allowed_directories,
            default_timeout_ms=config.execution.default_timeout_ms,
            tool_timeouts=config.execution.tool_timeouts,
            max_timeout_ms=config.execution.max_timeout_ms,
            working_directory=config.filesystem.working_directory,
            allow_symlinks=config.filesystem.allow_symlinks,
            max_file_size=config.filesystem.max_file_size,
            max_output_size=config.filesystem.max_output_size,
            backup_on_write=config.filesystem.backup_on_write,
            enable_shell=config.shell.enabled,
            command_whitelist=config.shell.whitelist,
            command_block_list=config.shell.block_list,
            history=ExecutionHistory(
                limit=config.audit.history_limit,
                audit_file=config.audit.audit_file,
            ),
        )

    @property
    def allowed_paths(self) -> List[str]:
        return list(self._validator.allowed_roots)

    @property
    def path_validator(self) -> PathValidator:
        return self._validator

    @property
    def command_validator(self) -> CommandValidator:
        return self._commands

    def add_command_to_whitelist(self, command: str) -> None:
        self._commands.add_to_whitelist(command)

    # Timeouts

    def set_tool_timeout(self, tool_id: str, timeout_ms: int) -> None:
        """Override the timeout for one tool."""
        if timeout_ms <= 0:
            raise ValueError(f"Timeout for {tool_id} must be positive")
        if timeout_ms > self._max_timeout_ms:
            raise ValueError(
                f"Timeout {timeout_ms} ms exceeds maximum {self._max_timeout_ms} ms"
            )
        self._timeouts[tool_id] = timeout_ms

    def get_tool_timeout(self, tool_id: str) -> int:
        return self._timeouts.get(tool_id, self._default_timeout_ms)

    def _resolve_timeout(self, tool_id: str, timeout_ms: Optional[int]) -> int:
        if timeout_ms is not None and timeout_ms > 0:
            return min(timeout_ms, self._max_timeout_ms)
        return self.get_tool_timeout(tool_id)

    # History

    def get_execution_history(self, tool_id: str) -> List[ExecutionRecord]:
        """Ordered audit trail for a tool, oldest first."""
        return self._history.get(tool_id)

    @property
    def history(self) -> ExecutionHistory:
        return self._history

    # Execution

    async def execute(
        self,
        tool_id: str,
        raw_input: RawInput,
        context: ExecutionContext,
        timeout_ms: Optional[int] = None,
    ) -> ToolExecutionResult:
        """
        Execute a tool with validation, path confinement and a timeout.

        Never raises: every failure mode is encoded in the result.
        """
        with SessionContext(context.session_id):
            start = time.monotonic()
            machine = ExecutionStateMachine(tool_id)
            machine.transition(ExecutionState.VALIDATING)

            try:
                tool, args = self._authorize(tool_id, raw_input, context)
            except SandboxError as e:
                machine.transition(ExecutionState.REJECTED, e.code)
                return self._finish(tool_id, raw_input, context, start, machine, error=e)
            except Exception as e:
                machine.transition(ExecutionState.REJECTED, type(e).__name__)
                return self._finish(
                    tool_id, raw_input, context, start, machine,
                    error=ValidationError(str(e) or type(e).__name__),
                )

            machine.transition(ExecutionState.AUTHORIZED)
            machine.transition(ExecutionState.EXECUTING)

            timeout = self._resolve_timeout(tool_id, timeout_ms)
            try:
                result = await asyncio.wait_for(
                    self._dispatch(tool, args, context, timeout),
                    timeout=timeout / 1000,
                )
            except asyncio.TimeoutError:
                machine.transition(ExecutionState.TIMED_OUT, f"{timeout} ms")
                return self._finish(
                    tool_id, raw_input, context, start, machine,
                    error=ToolTimeoutError(timeout, tool_id),
                )
            except ToolTimeoutError as e:
                # Raised by a child process killed at its own deadline
                machine.transition(ExecutionState.TIMED_OUT, f"{e.timeout_ms} ms")
                return self._finish(tool_id, raw_input, context, start, machine, error=e)
            except SandboxError as e:
                machine.transition(ExecutionState.FAILED, e.code)
                return self._finish(tool_id, raw_input, context, start, machine, error=e)
            except Exception as e:
                machine.transition(ExecutionState.FAILED, type(e).__name__)
                return self._finish(
                    tool_id, raw_input, context, start, machine,
                    error=ExecutionError(str(e) or type(e).__name__),
                )

            if result.success:
                machine.transition(ExecutionState.SUCCEEDED)
                return self._finish(
                    tool_id, raw_input, context, start, machine, data=result.data
                )

            machine.transition(ExecutionState.FAILED, "tool reported failure")
            return self._finish(
                tool_id, raw_input, context, start, machine,
                error=ExecutionError(result.error),
            )

    def _authorize(self, tool_id: str, raw_input: RawInput, context: ExecutionContext):
        """
        Resolve the tool, coerce and shape-check its input, and confine
        every path-bearing argument. Raises a SandboxError on rejection.
        """
        tool = self.registry.get_tool(tool_id)
        if tool is None:
            raise ToolNotFoundError(tool_id)
        if not context.session_id:
            raise ValidationError("Session ID is required", "session_id")

        args = self.registry.apply_defaults(tool_id, self._coerce_input(tool, raw_input))
        valid, error = self.registry.check_tool_parameters(tool_id, args)
        if not valid:
            raise ValidationError(error)

        if tool.touches_filesystem:
            for param in tool.path_parameters():
                if param.name in args:
                    args[param.name] = self._confine(args[param.name])

        if "shell:execute" in tool.permissions:
            self._authorize_command(args.get("command", ""))

        return tool, args

    def _authorize_command(self, command: str) -> None:
        """Whitelist-check a command line and confine every operand."""
        if not self._enable_shell:
            raise CommandNotAllowedError(command, "Shell execution is disabled")

        result = self._commands.validate(command)
        if not result.valid:
            raise CommandNotAllowedError(command, result.error)

        for operand in CommandValidator.path_arguments(result.argv):
            self._confine(operand)

    def _confine(self, path: str) -> str:
        """Validate one path argument and return its canonical form."""
        result = self._validator.validate(path)
        if not result.valid:
            if result.reason == PathRejection.OUTSIDE_ROOTS:
                raise PathNotAllowedError(path)
            raise PathTraversalError(path, result.error)

        real = self._validator.check_real_path(result.canonical_path)
        if not real.valid:
            raise PathNotAllowedError(path, real.error)

        return result.canonical_path

    @staticmethod
    def _coerce_input(tool: ToolDefinition, raw_input: RawInput) -> Dict[str, Any]:
        """
        Map raw input onto the tool's parameters.

        Dicts pass through. Strings are split on whitespace into at most
        one part per parameter, in declared order, so the last parameter
        keeps any remaining spaces ("file-write /tmp/a hello world").
        """
        if raw_input is None:
            return {}
        if isinstance(raw_input, dict):
            return dict(raw_input)
        if not isinstance(raw_input, str):
            raise ValidationError(
                f"Input must be a string or a mapping, got {type(raw_input).__name__}"
            )

        text = raw_input.strip()
        if not text or not tool.parameters:
            return {}

        parts = text.split(None, len(tool.parameters) - 1)
        return {param.name: value for param, value in zip(tool.parameters, parts)}

    async def _dispatch(
        self,
        tool: ToolDefinition,
        args: Dict[str, Any],
        context: ExecutionContext,
        timeout_ms: int,
    ) -> ToolExecutionResult:
        operation = self._builtin_ops.get(tool.id)
        if operation is not None:
            # Runs in a worker thread; on timeout the thread is abandoned
            # and its result discarded
            data = await asyncio.to_thread(operation, args, timeout_ms)
            return ToolExecutionResult.ok(data=data)

        if tool.touches_filesystem and not self.registry.has_executor(tool.id):
            raise ExecutionError(f'No executor registered for filesystem tool "{tool.id}"')

        return await self.registry.execute_tool(tool.id, context, args)

    def _finish(
        self,
        tool_id: str,
        raw_input: RawInput,
        context: ExecutionContext,
        start: float,
        machine: ExecutionStateMachine,
        data: Any = None,
        error: Optional[SandboxError] = None,
    ) -> ToolExecutionResult:
        """Build the result, record it, and log the outcome."""
        duration_ms = (time.monotonic() - start) * 1000

        if error is None:
            result = ToolExecutionResult.ok(
                data=data, execution_time_ms=duration_ms, state=machine.state
            )
            self._logger.info(
                f"Executed {tool_id} in {duration_ms:.1f} ms",
                extra={"tool_name": tool_id, "execution_time_ms": duration_ms, "success": True},
            )
        else:
            self._errors.handle(error, tool_id)
            result = ToolExecutionResult.fail(
                error.message or error.code,
                execution_time_ms=duration_ms,
                suggestion=get_error_suggestion(error),
                state=machine.state,
            )

        self._history.append(
            ExecutionRecord.from_result(tool_id, raw_input, result, context.session_id)
        )
        return result

    def get_error_stats(self) -> Dict[str, int]:
        return self._errors.get_error_stats()
