# Tools module - Tool registry, file operations and the safe executor
# Every tool call goes through SafeExecutor; the registry only describes tools

from .registry import ToolRegistry, BUILTIN_TOOLS
from .operations import FileOperations, ShellOperations
from .executor import SafeExecutor

__all__ = [
    "ToolRegistry",
    "BUILTIN_TOOLS",
    "FileOperations",
    "ShellOperations",
    "SafeExecutor",
]
