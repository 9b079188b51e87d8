"""
Tool Data Model
---------------
Immutable value types shared by the registry, the executor and the
path validator.
"""

import copy
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum, auto
from typing import Any, Dict, FrozenSet, List, Optional, Tuple


class ParameterType(str, Enum):
    """Supported parameter types."""
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ARRAY = "array"
    OBJECT = "object"


@dataclass(frozen=True)
class ParamValue:
    """
    A parameter value tagged with its runtime type.

    Schema checks compare tags instead of reflecting on raw values,
    so a bool can never pass as a number.
    """
    type: ParameterType
    value: Any

    @classmethod
    def of(cls, raw: Any) -> "ParamValue":
        """Tag a raw Python value. Raises TypeError if it has no tag."""
        # bool before int: bool is a subclass of int
        if isinstance(raw, bool):
            return cls(ParameterType.BOOLEAN, raw)
        if isinstance(raw, (int, float)):
            return cls(ParameterType.NUMBER, raw)
        if isinstance(raw, str):
            return cls(ParameterType.STRING, raw)
        if isinstance(raw, (list, tuple)):
            return cls(ParameterType.ARRAY, list(raw))
        if isinstance(raw, dict):
            return cls(ParameterType.OBJECT, raw)
        raise TypeError(f"Unsupported parameter value type: {type(raw).__name__}")


@dataclass(frozen=True)
class ToolParameter:
    """Definition of a tool parameter."""
    name: str
    type: ParameterType
    description: str
    required: bool = True
    default: Optional[Any] = None
    format: Optional[str] = None  # "path" marks a path-bearing argument

    @property
    def is_path(self) -> bool:
        """Marked with format "path", or a string named "path" / "*_path"."""
        if self.format == "path":
            return True
        return self.type == ParameterType.STRING and (
            self.name == "path" or self.name.endswith("_path")
        )

    def to_json_schema(self) -> Dict:
        """Convert to JSON Schema format."""
        schema = {
            "type": self.type.value,
            "description": self.description
        }
        if self.default is not None:
            schema["default"] = self.default
        if self.format:
            schema["format"] = self.format
        return schema


@dataclass(frozen=True)
class ToolDefinition:
    """
    Tool definition.

    Owned by the ToolRegistry; frozen once constructed. Behavior is
    supplied separately as an executor function.
    """
    id: str
    name: str
    description: str
    version: str = "1.0.0"
    category: str = "general"
    parameters: Tuple[ToolParameter, ...] = ()
    permissions: FrozenSet[str] = frozenset()
    examples: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        # Accept lists/sets from callers but store immutable containers
        object.__setattr__(self, "parameters", tuple(self.parameters))
        object.__setattr__(self, "permissions", frozenset(self.permissions))
        object.__setattr__(self, "examples", tuple(self.examples))

        names = [p.name for p in self.parameters]
        if len(names) != len(set(names)):
            raise ValueError(f"Duplicate parameter names in tool {self.id}")

    @property
    def touches_filesystem(self) -> bool:
        """True if the tool reads or writes the filesystem."""
        return self.category == "file" or any(
            p.startswith("fs:") for p in self.permissions
        )

    def get_parameter(self, name: str) -> Optional[ToolParameter]:
        for param in self.parameters:
            if param.name == name:
                return param
        return None

    def path_parameters(self) -> List[ToolParameter]:
        return [p for p in self.parameters if p.is_path]

    def to_json_schema(self) -> Dict:
        """Convert parameters to a full JSON Schema object."""
        return {
            "type": "object",
            "properties": {p.name: p.to_json_schema() for p in self.parameters},
            "required": [p.name for p in self.parameters if p.required],
            "additionalProperties": False
        }

    def to_openai_function(self) -> Dict:
        """Convert to OpenAI function calling format."""
        return {
            "type": "function",
            "function": {
                "name": self.id,
                "description": self.description,
                "parameters": self.to_json_schema()
            }
        }


@dataclass(frozen=True)
class ExecutionContext:
    """Context for one execution. Never mutated by the sandbox."""
    session_id: str
    user_id: Optional[str] = None
    project_id: Optional[str] = None
    environment: str = "development"  # "development" | "production"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


class PathRejection(Enum):
    """Why a path failed validation."""
    INVALID = auto()
    NULL_BYTE = auto()
    SUSPICIOUS = auto()
    TRAVERSAL = auto()
    OUTSIDE_ROOTS = auto()


@dataclass(frozen=True)
class PathValidationResult:
    """Outcome of PathValidator.validate()."""
    valid: bool
    error: Optional[str] = None
    canonical_path: Optional[str] = None
    reason: Optional[PathRejection] = None

    @classmethod
    def accept(cls, canonical_path: str) -> "PathValidationResult":
        return cls(valid=True, canonical_path=canonical_path)

    @classmethod
    def reject(cls, reason: PathRejection, error: str) -> "PathValidationResult":
        return cls(valid=False, error=error, reason=reason)


@dataclass(frozen=True)
class CommandValidationResult:
    """Outcome of CommandValidator.validate(). argv is the parsed command."""
    valid: bool
    error: Optional[str] = None
    argv: Tuple[str, ...] = ()

    @classmethod
    def accept(cls, argv: List[str]) -> "CommandValidationResult":
        return cls(valid=True, argv=tuple(argv))

    @classmethod
    def reject(cls, error: str) -> "CommandValidationResult":
        return cls(valid=False, error=error)


class ExecutionState(Enum):
    """Lifecycle of one execution."""
    PENDING = auto()
    VALIDATING = auto()
    REJECTED = auto()
    AUTHORIZED = auto()
    EXECUTING = auto()
    SUCCEEDED = auto()
    FAILED = auto()
    TIMED_OUT = auto()


@dataclass(frozen=True)
class ToolExecutionResult:
    """Result of one execution attempt."""
    success: bool
    data: Any = None
    error: Optional[str] = None
    execution_time_ms: float = 0.0
    suggestion: Optional[str] = None
    state: Optional[ExecutionState] = None

    def __post_init__(self) -> None:
        if self.success and self.error is not None:
            raise ValueError("A successful result cannot carry an error")
        if not self.success and not self.error:
            raise ValueError("A failed result must carry an error")

    @classmethod
    def ok(cls, data: Any = None, execution_time_ms: float = 0.0,
           state: Optional[ExecutionState] = None) -> "ToolExecutionResult":
        return cls(success=True, data=data, execution_time_ms=execution_time_ms, state=state)

    @classmethod
    def fail(cls, error: str, execution_time_ms: float = 0.0,
             suggestion: Optional[str] = None,
             state: Optional[ExecutionState] = None) -> "ToolExecutionResult":
        return cls(
            success=False,
            error=error,
            execution_time_ms=execution_time_ms,
            suggestion=suggestion,
            state=state,
        )

    def __repr__(self) -> str:
        status = "✓" if self.success else "✗"
        return f"ToolExecutionResult({status} {self.data if self.success else self.error})"


@dataclass(frozen=True)
class ExecutionRecord:
    """Audit entry describing one execution attempt."""
    tool_id: str
    input: Any
    status: str  # "success" | "failure"
    duration_ms: float
    error: Optional[str] = None
    session_id: Optional[str] = None
    state: Optional[ExecutionState] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_result(
        cls,
        tool_id: str,
        raw_input: Any,
        result: ToolExecutionResult,
        session_id: Optional[str] = None,
    ) -> "ExecutionRecord":
        return cls(
            tool_id=tool_id,
            input=copy.deepcopy(raw_input),
            status="success" if result.success else "failure",
            duration_ms=result.execution_time_ms,
            error=result.error,
            session_id=session_id,
            state=result.state,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for the JSON-lines audit file."""
        return {
            "tool_id": self.tool_id,
            "input": self.input,
            "status": self.status,
            "error": self.error,
            "session_id": self.session_id,
            "state": self.state.name if self.state else None,
            "duration_ms": self.duration_ms,
            "timestamp": self.timestamp.isoformat(),
        }
