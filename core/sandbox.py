"""
Sandbox Composition Root
------------------------
Assembles the registry and the executor from configuration.

The registry is created here and passed by reference; nothing in the
sandbox reaches for a global instance.
"""

from typing import Optional
import logging

from infra.config import SandboxConfig, load_config
from tools.executor import SafeExecutor
from tools.registry import ToolRegistry


def create_sandbox(
    config: Optional[SandboxConfig] = None,
    registry: Optional[ToolRegistry] = None,
) -> SafeExecutor:
    """
    Build a SafeExecutor with its registry.

    Args:
        config: Sandbox configuration (default: load_config() defaults + env)
        registry: Pre-built registry (default: built-in tools only)
    """
    logger = logging.getLogger("sandbox.core")
    if config is None:
        config = load_config()
    if registry is None:
        registry = ToolRegistry()

    if config.tool_definitions_file:
        count = registry.load_from_yaml(config.tool_definitions_file)
        logger.info(f"Loaded {count} tool definitions from {config.tool_definitions_file}")

    executor = SafeExecutor.from_config(registry, config)
    logger.info(
        f"Sandbox ready: {len(registry)} tools, "
        f"roots={executor.allowed_paths}"
    )
    return executor
