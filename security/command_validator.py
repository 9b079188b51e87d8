"""
Command Validator
-----------------
Whitelist gate for the shell tool.

Commands are never handed to a shell: the command line is split with shlex
and executed as an argv list. Shell operators are still rejected so that a
command that only makes sense under a shell fails loudly instead of running
with a literal ";" or "|" argument.

Rules:
- Block list checked before the whitelist
- Executable given by bare name only ("ls", not "/bin/ls" or "./ls")
- No shell operators, substitutions or redirections anywhere in the line
- Every operand is a candidate path; SafeExecutor confines each one
"""

from typing import Iterable, List, Optional
import logging
import re
import shlex

from core.models import CommandValidationResult


# Read-only commands that cannot spawn other programs
DEFAULT_WHITELIST = (
    "ls", "cat", "grep", "pwd", "echo", "head", "tail", "wc",
    "uniq", "cut", "tr", "date", "whoami", "stat", "file", "diff",
)

SHELL_OPERATORS = re.compile(r"[;&|`$<>(){}\n\r]")


class CommandValidator:
    """
    Decides whether a command line may run.

    Only the whitelist and block list are mutable; callers add to them
    at startup, before concurrent use.
    """

    def __init__(
        self,
        whitelist: Optional[Iterable[str]] = None,
        block_list: Optional[Iterable[str]] = None,
        case_sensitive: bool = False,
    ):
        self._case_sensitive = case_sensitive
        if whitelist is None:
            whitelist = DEFAULT_WHITELIST
        self._whitelist = {self._key(c) for c in whitelist}
        self._block_list = {self._key(c) for c in (block_list or ())}
        self._logger = logging.getLogger("sandbox.security.commands")

    def _key(self, command: str) -> str:
        return command if self._case_sensitive else command.lower()

    @property
    def whitelist(self) -> List[str]:
        return sorted(self._whitelist)

    @property
    def block_list(self) -> List[str]:
        return sorted(self._block_list)

    def add_to_whitelist(self, command: str) -> None:
        self._whitelist.add(self._key(command))

    def remove_from_whitelist(self, command: str) -> None:
        self._whitelist.discard(self._key(command))

    def add_to_block_list(self, command: str) -> None:
        self._block_list.add(self._key(command))

    def validate(self, command: str) -> CommandValidationResult:
        """Validate a command line. Never raises."""
        result = self._validate(command)
        if not result.valid:
            self._logger.warning(f"Rejected command {command!r}: {result.error}")
        return result

    def _validate(self, command: str) -> CommandValidationResult:
        if not isinstance(command, str) or not command.strip():
            return CommandValidationResult.reject("Command must be a non-empty string")

        if "\x00" in command:
            return CommandValidationResult.reject("Command contains a null byte")

        if SHELL_OPERATORS.search(command):
            return CommandValidationResult.reject(
                "Command contains shell operators, which are not permitted"
            )

        try:
            argv = shlex.split(command)
        except ValueError as e:
            return CommandValidationResult.reject(f"Malformed command: {e}")
        if not argv:
            return CommandValidationResult.reject("Command must be a non-empty string")

        executable = argv[0]
        if "/" in executable or "\\" in executable:
            return CommandValidationResult.reject(
                f'Command "{executable}" must be given by name, not by path'
            )

        key = self._key(executable)
        if key in self._block_list:
            return CommandValidationResult.reject(f'Command "{executable}" is blocked')
        if key not in self._whitelist:
            allowed = ", ".join(self.whitelist[:10])
            more = len(self._whitelist) - 10
            if more > 0:
                allowed += f" +{more} more"
            return CommandValidationResult.reject(
                f'Command "{executable}" is not whitelisted. Allowed commands: {allowed}'
            )

        for arg in argv[1:]:
            if arg.startswith("-") and "=" not in arg and "/" in arg:
                return CommandValidationResult.reject(
                    f'Option "{arg}" embeds a path; use --option=PATH or a separate argument'
                )

        return CommandValidationResult.accept(argv)

    @staticmethod
    def path_arguments(argv: Iterable[str]) -> List[str]:
        """
        Operands that must pass path confinement before the command runs.

        Every non-option argument counts, since any of them may name a file
        or a symlink. For "--opt=value" the value is checked.
        """
        paths = []
        for arg in list(argv)[1:]:
            if arg.startswith("-"):
                if "=" not in arg:
                    continue
                arg = arg.split("=", 1)[1]
            if arg:
                paths.append(arg)
        return paths

    def __repr__(self) -> str:
        return f"CommandValidator(whitelist={len(self._whitelist)}, blocked={len(self._block_list)})"
