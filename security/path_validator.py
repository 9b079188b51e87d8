"""
Path Validator
--------------
Confines candidate paths to a fixed set of allowed roots.

Validation is lexical: it never touches the filesystem, so a symlink swapped
in between validation and use cannot be mistaken for a validated path.
Symlink escapes are checked separately, right before I/O, by
check_real_path().

Rules:
- Null bytes rejected before any decoding
- One level of percent-decoding, then re-checked
- Any ".." segment is a traversal marker, even if it resolves inside a root
- Containment compared on whole path segments ("/tmp2" is not in "/tmp")
"""

from typing import Iterable, List, Optional, Tuple
from urllib.parse import unquote
import logging
import os
import posixpath
import re

from core.models import PathRejection, PathValidationResult


# Patterns rejected even when a naive resolver would call them safe
SUSPICIOUS_PATTERNS: List[Tuple[re.Pattern, str]] = [
    (re.compile(r"%(2e|2f|5c|00)", re.IGNORECASE), "encoded path marker survived decoding"),
    (re.compile(r"(^|/)\.{3,}(/|$)"), "repeated dots segment"),
    (re.compile(r"\.\.\\|\\\.\."), "backslash traversal sequence"),
    (re.compile(r"^~"), "home directory expansion"),
]


def _normalize(absolute: str) -> Tuple[str, bool, bool]:
    """
    Lexically normalize an absolute POSIX path.

    Returns (canonical, saw_parent, escaped_root) where escaped_root means a
    ".." tried to climb above "/".
    """
    parts: List[str] = []
    saw_parent = False
    escaped = False

    for segment in absolute.split("/"):
        if segment in ("", "."):
            continue
        if segment == "..":
            saw_parent = True
            if parts:
                parts.pop()
            else:
                escaped = True
            continue
        parts.append(segment)

    return "/" + "/".join(parts), saw_parent, escaped


def _is_within(path: str, root: str) -> bool:
    if root == "/":
        return path.startswith("/")
    return path == root or path.startswith(root + "/")


class PathValidator:
    """
    Decides whether a path may be touched, under a fixed set of allowed roots.

    Stateless after construction; safe to share across concurrent executions.
    """

    def __init__(
        self,
        allowed_roots: Iterable[str],
        working_directory: Optional[str] = None,
        allow_symlinks: bool = False,
    ):
        self._logger = logging.getLogger("sandbox.security.paths")

        cwd = working_directory or os.getcwd()
        self._working_directory, saw_parent, _ = _normalize(
            posixpath.join(os.getcwd(), cwd)
        )
        if saw_parent:
            raise ValueError(f"Working directory must not contain '..': {cwd}")

        roots: List[str] = []
        for root in allowed_roots:
            canonical, saw_parent, _ = _normalize(
                posixpath.join(self._working_directory, root)
            )
            if saw_parent:
                raise ValueError(f"Allowed root must not contain '..': {root}")
            if canonical not in roots:
                roots.append(canonical)
        if not roots:
            raise ValueError("At least one allowed root is required")

        self._allowed_roots: Tuple[str, ...] = tuple(roots)
        self._allow_symlinks = allow_symlinks

    @property
    def allowed_roots(self) -> Tuple[str, ...]:
        return self._allowed_roots

    @property
    def working_directory(self) -> str:
        return self._working_directory

    def is_within_roots(self, canonical_path: str) -> bool:
        """Segment-wise containment check for an already canonical path."""
        return any(_is_within(canonical_path, root) for root in self._allowed_roots)

    def validate(self, path: str) -> PathValidationResult:
        """Validate a candidate path. Never raises."""
        result = self._validate(path)
        if not result.valid:
            self._logger.warning(
                f"Rejected path {path!r}: {result.error}",
                extra={"reason": result.reason.name if result.reason else None},
            )
        return result

    def _validate(self, path: str) -> PathValidationResult:
        if not isinstance(path, str) or not path:
            return PathValidationResult.reject(
                PathRejection.INVALID, "Path must be a non-empty string"
            )

        if "\x00" in path:
            return PathValidationResult.reject(
                PathRejection.NULL_BYTE, "Path contains a null byte"
            )

        decoded = unquote(path)
        if "\x00" in decoded:
            return PathValidationResult.reject(
                PathRejection.NULL_BYTE, "Path contains an encoded null byte"
            )

        for pattern, description in SUSPICIOUS_PATTERNS:
            if pattern.search(decoded):
                return PathValidationResult.reject(
                    PathRejection.SUSPICIOUS,
                    f"Suspicious path pattern ({description}): {path}",
                )

        absolute = decoded if decoded.startswith("/") else posixpath.join(
            self._working_directory, decoded
        )
        canonical, saw_parent, escaped = _normalize(absolute)
        inside = self.is_within_roots(canonical)

        if saw_parent:
            if escaped or not inside:
                return PathValidationResult.reject(
                    PathRejection.TRAVERSAL,
                    f"Path traversal detected: {path} escapes allowed directories",
                )
            return PathValidationResult.reject(
                PathRejection.TRAVERSAL,
                f"Path traversal markers are not permitted: {path}",
            )

        if not inside:
            return PathValidationResult.reject(
                PathRejection.OUTSIDE_ROOTS,
                f"Path is outside permitted directories: {canonical} "
                f"(allowed: {', '.join(self._allowed_roots)})",
            )

        return PathValidationResult.accept(canonical)

    def check_real_path(self, canonical_path: str) -> PathValidationResult:
        """
        Resolve symlinks and confirm the real target is still inside a root.

        Used immediately before I/O. A no-op when symlinks are allowed.
        """
        if self._allow_symlinks:
            return PathValidationResult.accept(canonical_path)

        real = os.path.realpath(canonical_path)
        real_roots = [os.path.realpath(root) for root in self._allowed_roots]
        if any(_is_within(real, root) for root in real_roots):
            return PathValidationResult.accept(canonical_path)

        self._logger.warning(f"Symlink escape: {canonical_path} -> {real}")
        return PathValidationResult.reject(
            PathRejection.OUTSIDE_ROOTS,
            f"Path not allowed: {canonical_path} resolves outside permitted directories",
        )

    def can_read(self, path: str) -> bool:
        """True if path is valid and readable. Missing file -> False."""
        result = self.validate(path)
        if not result.valid:
            return False
        return os.path.exists(result.canonical_path) and os.access(result.canonical_path, os.R_OK)

    def can_write(self, path: str) -> bool:
        """
        True if path is valid and writable.

        A missing target is writable when its parent directory exists and is
        writable (create-on-write).
        """
        result = self.validate(path)
        if not result.valid:
            return False

        target = result.canonical_path
        if os.path.exists(target):
            return os.access(target, os.W_OK)

        parent = posixpath.dirname(target)
        return os.path.isdir(parent) and os.access(parent, os.W_OK)

    def can_execute(self, path: str) -> bool:
        """True if path is a valid, executable regular file."""
        result = self.validate(path)
        if not result.valid:
            return False
        return os.path.isfile(result.canonical_path) and os.access(result.canonical_path, os.X_OK)

    def is_directory(self, path: str) -> bool:
        result = self.validate(path)
        return result.valid and os.path.isdir(result.canonical_path)

    def __repr__(self) -> str:
        return f"PathValidator(roots={list(self._allowed_roots)})"
