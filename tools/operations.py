"""
File and Shell Operations
-------------------------
The filesystem-touching behavior behind the built-in tools.

These functions trust their input: they must only ever receive canonical
paths already approved by PathValidator, and commands already approved by
CommandValidator. SafeExecutor is the only caller.
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Sequence, Tuple
import logging
import shutil
import subprocess

from core.errors import ExecutionError, ToolTimeoutError


def format_bytes(size: float) -> str:
    units = ["B", "KB", "MB", "GB"]
    unit = 0
    while size >= 1024 and unit < len(units) - 1:
        size /= 1024
        unit += 1
    return f"{size:.2f} {units[unit]}"


class FileOperations:
    """Size-bounded file reads, writes, listings and stats."""

    TRUNCATION_MARKER = "\n... [truncated]"

    def __init__(
        self,
        max_file_size: int = 10 * 1024 * 1024,
        max_output_size: int = 1024 * 1024,
        encoding: str = "utf-8",
    ):
        self.max_file_size = max_file_size
        self.max_output_size = max_output_size
        self.encoding = encoding
        self._logger = logging.getLogger("sandbox.tools.operations")

    def read_file(self, path: str) -> Dict[str, Any]:
        """Read a text file, truncating output over max_output_size."""
        resolved = Path(path)
        try:
            if not resolved.exists():
                raise ExecutionError(f"File not found: {path}")
            if not resolved.is_file():
                raise ExecutionError(f"Not a file: {path}")

            size = resolved.stat().st_size
            if size > self.max_file_size:
                raise ExecutionError(
                    f"File size ({format_bytes(size)}) exceeds maximum "
                    f"({format_bytes(self.max_file_size)})"
                )

            content = resolved.read_text(encoding=self.encoding, errors="replace")
        except OSError as e:
            raise ExecutionError(f"Failed to read file: {e}") from e

        truncated = len(content) > self.max_output_size
        if truncated:
            content = content[:self.max_output_size] + self.TRUNCATION_MARKER

        self._logger.debug(f"Read {size} bytes from {path}")
        return {"path": path, "content": content, "size": size, "truncated": truncated}

    def write_file(self, path: str, content: str, backup: bool = False) -> Dict[str, Any]:
        """Write text to a file, optionally keeping a .backup copy."""
        data = content.encode(self.encoding)
        if len(data) > self.max_file_size:
            raise ExecutionError(
                f"Content size ({format_bytes(len(data))}) exceeds maximum "
                f"({format_bytes(self.max_file_size)})"
            )

        resolved = Path(path)
        result: Dict[str, Any] = {"path": path, "bytes_written": len(data)}
        try:
            if resolved.is_dir():
                raise ExecutionError(f"Cannot write to a directory: {path}")
            if backup and resolved.exists():
                backup_path = resolved.with_name(resolved.name + ".backup")
                shutil.copyfile(resolved, backup_path)
                result["backup"] = str(backup_path)

            resolved.parent.mkdir(parents=True, exist_ok=True)
            resolved.write_bytes(data)
        except OSError as e:
            raise ExecutionError(f"Failed to write file: {e}") from e

        self._logger.debug(f"Wrote {len(data)} bytes to {path}")
        return result

    def list_directory(self, path: str) -> List[Dict[str, Any]]:
        """List directory entries sorted by name."""
        resolved = Path(path)
        try:
            if not resolved.exists():
                raise ExecutionError(f"Directory not found: {path}")
            if not resolved.is_dir():
                raise ExecutionError(f"Not a directory: {path}")

            entries = []
            for item in sorted(resolved.iterdir(), key=lambda p: p.name):
                if item.is_dir():
                    entries.append({"name": item.name, "type": "directory"})
                else:
                    entries.append({
                        "name": item.name,
                        "type": "file",
                        "size": item.stat().st_size,
                    })
        except OSError as e:
            raise ExecutionError(f"Failed to list directory: {e}") from e

        return entries

    def stat(self, path: str) -> Dict[str, Any]:
        resolved = Path(path)
        try:
            info = resolved.stat()
        except FileNotFoundError as e:
            raise ExecutionError(f"File not found: {path}") from e
        except OSError as e:
            raise ExecutionError(f"Failed to get file stats: {e}") from e

        return {
            "path": path,
            "size": info.st_size,
            "is_file": resolved.is_file(),
            "is_directory": resolved.is_dir(),
            "modified": datetime.fromtimestamp(info.st_mtime, tz=timezone.utc).isoformat(),
            "permissions": oct(info.st_mode & 0o777)[2:],
        }


class ShellOperations:
    """
    Runs an approved argv list as a child process, without a shell.

    The process is killed when its timeout expires; output beyond
    max_output_size is truncated.
    """

    TRUNCATION_MARKER = FileOperations.TRUNCATION_MARKER

    def __init__(self, max_output_size: int = 1024 * 1024, encoding: str = "utf-8"):
        self.max_output_size = max_output_size
        self.encoding = encoding
        self._logger = logging.getLogger("sandbox.tools.shell")

    def _clip(self, text: str) -> Tuple[str, bool]:
        if len(text) > self.max_output_size:
            return text[:self.max_output_size] + self.TRUNCATION_MARKER, True
        return text, False

    def run(self, argv: Sequence[str], cwd: str, timeout_ms: int) -> Dict[str, Any]:
        """
        Run argv in cwd. Returns {command, exit_code, stdout, stderr, truncated}.

        Raises:
            ToolTimeoutError: If the process outlives timeout_ms (it is killed)
            ExecutionError: If it cannot start or exits non-zero
        """
        command = " ".join(argv)
        self._logger.info(f"Running: {command} (cwd={cwd})")

        try:
            completed = subprocess.run(
                list(argv),
                cwd=cwd,
                shell=False,
                stdin=subprocess.DEVNULL,
                capture_output=True,
                timeout=timeout_ms / 1000,
            )
        except subprocess.TimeoutExpired as e:
            raise ToolTimeoutError(timeout_ms, argv[0]) from e
        except OSError as e:
            raise ExecutionError(f"Command failed to start: {e}") from e

        stdout, out_truncated = self._clip(
            completed.stdout.decode(self.encoding, errors="replace")
        )
        stderr, err_truncated = self._clip(
            completed.stderr.decode(self.encoding, errors="replace")
        )

        if completed.returncode != 0:
            detail = stderr.strip().splitlines()[-1] if stderr.strip() else "no output"
            raise ExecutionError(
                f"Command exited with code {completed.returncode}: {detail}",
                {"exit_code": completed.returncode, "stderr": stderr},
            )

        return {
            "command": command,
            "exit_code": completed.returncode,
            "stdout": stdout,
            "stderr": stderr,
            "truncated": out_truncated or err_truncated,
        }
