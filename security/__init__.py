# Security module - Path confinement and the shell command whitelist
# Default deny: a path is usable only if it lies inside an allowed root,
# a command only if it is whitelisted

from .path_validator import PathValidator, SUSPICIOUS_PATTERNS
from .command_validator import CommandValidator, DEFAULT_WHITELIST

__all__ = ["PathValidator", "SUSPICIOUS_PATTERNS", "CommandValidator", "DEFAULT_WHITELIST"]
