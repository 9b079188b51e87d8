"""
Tool Registry
-------------
Schema-described tool definitions with parameter shape checks.
Each tool is unit-testable without the executor.

The registry is an explicitly constructed instance, owned by the
composition root and passed to SafeExecutor. There is no global registry.
"""

from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union
import asyncio
import inspect
import json
import logging
import time

import yaml

from core.errors import ToolError, ValidationError
from core.models import (
    ExecutionContext, ParameterType, ParamValue, ToolDefinition,
    ToolExecutionResult, ToolParameter
)


ToolExecutorFn = Callable[
    [ExecutionContext, Dict[str, Any]],
    Union[ToolExecutionResult, Any, Awaitable[Any]]
]


def _elapsed_ms(start: float) -> float:
    return (time.monotonic() - start) * 1000


BUILTIN_TOOLS: List[ToolDefinition] = [
    ToolDefinition(
        id="file-read",
        name="Read File",
        description="Read contents of a file",
        category="file",
        parameters=[
            ToolParameter(
                name="path",
                type=ParameterType.STRING,
                description="Path to the file to read",
                format="path",
            ),
        ],
        permissions={"fs:read"},
        examples=["file-read ./README.md"],
    ),
    ToolDefinition(
        id="file-write",
        name="Write File",
        description="Write contents to a file",
        category="file",
        parameters=[
            ToolParameter(
                name="path",
                type=ParameterType.STRING,
                description="Path to the file to write",
                format="path",
            ),
            ToolParameter(
                name="content",
                type=ParameterType.STRING,
                description="Content to write to the file",
            ),
        ],
        permissions={"fs:write"},
        examples=["file-write ./output.txt Hello World"],
    ),
    ToolDefinition(
        id="list-dir",
        name="List Directory",
        description="List files in a directory",
        category="file",
        parameters=[
            ToolParameter(
                name="path",
                type=ParameterType.STRING,
                description="Path to the directory",
                required=False,
                default=".",
                format="path",
            ),
        ],
        permissions={"fs:read"},
        examples=["list-dir", "list-dir ./src"],
    ),
    ToolDefinition(
        id="file-stat",
        name="File Stats",
        description="Get size, type and permissions of a file or directory",
        category="file",
        parameters=[
            ToolParameter(
                name="path",
                type=ParameterType.STRING,
                description="Path to inspect",
                format="path",
            ),
        ],
        permissions={"fs:read"},
        examples=["file-stat ./README.md"],
    ),
    ToolDefinition(
        id="shell",
        name="Shell Command",
        description="Run a whitelisted command inside the working directory",
        category="shell",
        parameters=[
            ToolParameter(
                name="command",
                type=ParameterType.STRING,
                description="Command line, e.g. \"ls -la src\"",
            ),
        ],
        permissions={"shell:execute"},
        examples=["shell ls -la", "shell git status"],
    ),
]


class ToolRegistry:
    """
    Catalogue of invocable tools.

    Definitions are immutable once registered; re-registering an id is a
    configuration error, never an overwrite.
    """

    def __init__(self, include_builtins: bool = True):
        self._tools: Dict[str, ToolDefinition] = {}
        self._executors: Dict[str, ToolExecutorFn] = {}
        self._logger = logging.getLogger("sandbox.tools.registry")

        if include_builtins:
            for tool in BUILTIN_TOOLS:
                self._tools[tool.id] = tool
                self._logger.debug(f"Registered built-in tool: {tool.id}")

    def register_tool(
        self,
        definition: ToolDefinition,
        executor: Optional[ToolExecutorFn] = None
    ) -> None:
        """
        Register a tool.

        Raises ToolError if the id is taken, or if a filesystem tool declares
        no path parameter (its paths could never be confined).
        """
        if definition.id in self._tools:
            raise ToolError(f'Tool with id "{definition.id}" is already registered')
        if definition.touches_filesystem and not definition.path_parameters():
            raise ToolError(
                f'Filesystem tool "{definition.id}" declares no path parameter '
                '(mark it with format: path)'
            )

        self._tools[definition.id] = definition
        if executor is not None:
            self._executors[definition.id] = executor

        self._logger.info(
            f"Registered tool: {definition.id} "
            f"({', '.join(sorted(definition.permissions)) or 'no permissions'})"
        )

    def get_tool(self, tool_id: str) -> Optional[ToolDefinition]:
        return self._tools.get(tool_id)

    def has_executor(self, tool_id: str) -> bool:
        return tool_id in self._executors

    def list_tools(self) -> List[ToolDefinition]:
        return list(self._tools.values())

    def list_tools_by_category(self, category: str) -> List[ToolDefinition]:
        return [t for t in self._tools.values() if t.category == category]

    def get_schemas_for_llm(self) -> List[Dict]:
        """Get all tool schemas in OpenAI function format."""
        return [tool.to_openai_function() for tool in self._tools.values()]

    def check_tool_parameters(
        self,
        tool_id: str,
        params: Dict[str, Any]
    ) -> Tuple[bool, Optional[str]]:
        """
        Shape check of params against the tool schema.
        Returns (is_valid, error_message).
        """
        tool = self.get_tool(tool_id)
        if tool is None:
            return False, f'Tool "{tool_id}" not found'

        for param in tool.parameters:
            if param.name not in params:
                if param.required:
                    return False, f"Missing required parameter: {param.name}"
                continue

            try:
                tagged = ParamValue.of(params[param.name])
            except TypeError as e:
                return False, f'Parameter "{param.name}" has invalid type: {e}'

            if tagged.type != param.type:
                return False, (
                    f'Parameter "{param.name}" has invalid type. '
                    f"Expected {param.type.value}, got {tagged.type.value}"
                )

        known = {p.name for p in tool.parameters}
        for name in params:
            if name not in known:
                return False, f"Unknown parameter: {name}"

        return True, None

    def validate_tool_parameters(self, tool_id: str, params: Dict[str, Any]) -> bool:
        """Like check_tool_parameters(), but raises ValidationError."""
        valid, error = self.check_tool_parameters(tool_id, params)
        if not valid:
            raise ValidationError(error)
        return True

    def apply_defaults(self, tool_id: str, params: Dict[str, Any]) -> Dict[str, Any]:
        """Return a copy of params with schema defaults filled in."""
        tool = self.get_tool(tool_id)
        merged = dict(params)
        if tool is None:
            return merged
        for param in tool.parameters:
            if param.name not in merged and param.default is not None:
                merged[param.name] = param.default
        return merged

    async def execute_tool(
        self,
        tool_id: str,
        context: ExecutionContext,
        params: Dict[str, Any]
    ) -> ToolExecutionResult:
        """
        Validate params and dispatch to the registered executor.

        Never raises. Tools without an executor return a stub result in
        development; filesystem tools are refused in production.
        """
        start = time.monotonic()

        tool = self.get_tool(tool_id)
        if tool is None:
            return ToolExecutionResult.fail(
                f'Tool "{tool_id}" not found',
                execution_time_ms=_elapsed_ms(start)
            )

        valid, error = self.check_tool_parameters(tool_id, params)
        if not valid:
            self._logger.warning(f"Validation failed for {tool_id}: {error}")
            return ToolExecutionResult.fail(error, execution_time_ms=_elapsed_ms(start))

        executor = self._executors.get(tool_id)
        if executor is None:
            if tool.touches_filesystem and context.is_production:
                self._logger.error(f"No executor registered for filesystem tool: {tool_id}")
                return ToolExecutionResult.fail(
                    f'No executor registered for filesystem tool "{tool_id}"',
                    execution_time_ms=_elapsed_ms(start)
                )

            self._logger.warning(f"No executor registered for tool: {tool_id}")
            return ToolExecutionResult.ok(
                data={
                    "message": (
                        f'[Stub] Tool "{tool.name}" would execute with params: '
                        f"{json.dumps(params, default=str)}"
                    ),
                    "stub": True,
                },
                execution_time_ms=_elapsed_ms(start)
            )

        try:
            if inspect.iscoroutinefunction(executor):
                output = await executor(context, params)
            else:
                # Plain callables run in a worker thread so a slow one cannot
                # stall the event loop or outlive its timeout unnoticed
                output = await asyncio.to_thread(executor, context, params)
            if inspect.isawaitable(output):
                output = await output
        except Exception as e:
            self._logger.error(f"Tool execution failed: {tool_id}: {e}")
            return ToolExecutionResult.fail(
                str(e) or type(e).__name__,
                execution_time_ms=_elapsed_ms(start)
            )

        if isinstance(output, ToolExecutionResult):
            result = output
        else:
            result = ToolExecutionResult.ok(data=output, execution_time_ms=_elapsed_ms(start))

        self._logger.info(f"Tool executed: {tool_id} ({result.execution_time_ms:.1f} ms)")
        return result

    def load_from_yaml(self, path: str) -> int:
        """
        Load tool definitions (metadata only) from a YAML file.
        Returns number of tools loaded.
        """
        with open(path, 'r') as f:
            data = yaml.safe_load(f) or {}

        count = 0
        for tool_data in data.get('tools', []):
            try:
                self.register_tool(self._parse_tool_definition(tool_data))
                count += 1
            except (ToolError, KeyError, TypeError, ValueError) as e:
                self._logger.error(f"Failed to load tool: {e}")

        return count

    def _parse_tool_definition(self, data: Dict) -> ToolDefinition:
        """Parse a tool definition from dict."""
        params = []
        for param_data in data.get('parameters', []):
            params.append(ToolParameter(
                name=param_data['name'],
                type=ParameterType(param_data.get('type', 'string')),
                description=param_data.get('description', ''),
                required=param_data.get('required', True),
                default=param_data.get('default'),
                format=param_data.get('format'),
            ))

        return ToolDefinition(
            id=data['id'],
            name=data.get('name', data['id']),
            description=data.get('description', ''),
            version=str(data.get('version', '1.0.0')),
            category=data.get('category', 'general'),
            parameters=params,
            permissions=data.get('permissions', []),
            examples=data.get('examples', []),
        )

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, tool_id: str) -> bool:
        return tool_id in self._tools
