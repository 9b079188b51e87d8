"""
Sandbox Test Configuration
--------------------------
Shared fixtures and configuration for all tests.

Filesystem tests run inside pytest's tmp_path, which is the only allowed
root unless a test says otherwise.
"""

import sys
from pathlib import Path
import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from core.models import ExecutionContext
from infra.logging import reset_logging
from tools.executor import SafeExecutor
from tools.registry import ToolRegistry


# =============================================================================
# Test Isolation
# =============================================================================

@pytest.fixture(autouse=True)
def isolated_logging():
    """
    Undo configure_logging() between tests.

    The sandbox logger keeps module-level state; a test that configures
    handlers must not leak them into the next one.
    """
    yield
    reset_logging()


@pytest.fixture(scope="session")
def project_root():
    """Return the project root path."""
    return PROJECT_ROOT


# =============================================================================
# Sandbox Fixtures
# =============================================================================

@pytest.fixture
def sandbox_root(tmp_path):
    """An allowed root with a small tree in it."""
    root = tmp_path / "workspace"
    root.mkdir()
    (root / "hello.txt").write_text("Hello, sandbox!")
    (root / "src").mkdir()
    (root / "src" / "main.py").write_text("print('hi')\n")
    return root


@pytest.fixture
def registry():
    """Registry with built-in file tools only."""
    return ToolRegistry()


@pytest.fixture
def executor(registry, sandbox_root):
    """Executor confined to sandbox_root."""
    return SafeExecutor(
        registry,
        allowed_paths=[str(sandbox_root)],
        working_directory=str(sandbox_root),
        default_timeout_ms=5000,
    )


@pytest.fixture
def context():
    """Development execution context."""
    return ExecutionContext(session_id="s1", user_id="tester")


@pytest.fixture
def production_context():
    return ExecutionContext(session_id="s1", environment="production")
