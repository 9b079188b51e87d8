"""
Path Validator Tests
--------------------
Tests for path confinement.

Tests cover:
- Traversal (escaping and non-escaping)
- Null bytes, raw and percent-encoded
- Suspicious patterns
- Segment-wise root containment
- Relative paths against the working directory
- Permission checks and symlink escapes
"""

import logging
import os
import pytest
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).parent.parent))

from core.models import PathRejection
from security.path_validator import PathValidator


@pytest.fixture
def validator():
    return PathValidator(["/tmp", "/home/user"], working_directory="/tmp")


class TestConstruction:
    """Tests for allowed-root setup."""

    def test_requires_a_root(self):
        """An empty root list is a configuration error."""
        with pytest.raises(ValueError):
            PathValidator([])

    def test_roots_are_normalized(self):
        """Trailing slashes and dot segments are removed from roots."""
        validator = PathValidator(["/tmp/", "/home/./user", "/tmp"])

        assert validator.allowed_roots == ("/tmp", "/home/user")

    def test_relative_root_uses_working_directory(self):
        """Relative roots resolve against the working directory."""
        validator = PathValidator(["data"], working_directory="/srv/app")

        assert validator.allowed_roots == ("/srv/app/data",)
        assert validator.working_directory == "/srv/app"

    def test_root_with_parent_segment_rejected(self):
        """A root like /srv/../etc is refused rather than collapsed to /etc."""
        with pytest.raises(ValueError, match=r"\.\."):
            PathValidator(["/srv/../etc"])

    def test_relative_root_climbing_out_rejected(self):
        """A relative root using '..' is refused."""
        with pytest.raises(ValueError):
            PathValidator(["../shared"], working_directory="/srv/app")

    def test_working_directory_with_parent_segment_rejected(self):
        """The working directory may not contain '..' either."""
        with pytest.raises(ValueError, match="Working directory"):
            PathValidator(["/tmp"], working_directory="/srv/app/../etc")


class TestTraversal:
    """Tests for '..' handling."""

    def test_escaping_traversal_rejected(self, validator):
        """A '..' chain climbing out of every root is traversal."""
        result = validator.validate("/tmp/../../etc/passwd")

        assert not result.valid
        assert "traversal" in result.error.lower()
        assert result.reason == PathRejection.TRAVERSAL

    def test_traversal_into_another_root_rejected(self, validator):
        """'..' is rejected even when the target is inside a root."""
        result = validator.validate("/tmp/../home/user/notes.txt")

        assert not result.valid
        assert result.reason == PathRejection.TRAVERSAL

    def test_resolvable_traversal_still_rejected(self, validator):
        """A '..' that stays inside its root is still a traversal marker."""
        result = validator.validate("/tmp//double//slash/../file.txt")

        assert not result.valid
        assert "traversal" in result.error.lower()

    def test_encoded_traversal_rejected(self, validator):
        """%2e%2e decodes to '..' before the traversal check."""
        result = validator.validate("/tmp/%2e%2e/%2e%2e/etc/passwd")

        assert not result.valid
        assert result.reason == PathRejection.TRAVERSAL

    def test_dots_inside_names_allowed(self, validator):
        """'..' only counts as a whole segment."""
        result = validator.validate("/tmp/archive..tar.gz")

        assert result.valid
        assert result.canonical_path == "/tmp/archive..tar.gz"


class TestNullBytes:
    """Tests for null byte rejection."""

    def test_raw_null_byte(self, validator):
        result = validator.validate("/tmp/file\x00.txt")

        assert not result.valid
        assert result.reason == PathRejection.NULL_BYTE

    def test_encoded_null_byte(self, validator):
        """%00 is caught after decoding."""
        result = validator.validate("/tmp/file%00.txt")

        assert not result.valid
        assert result.reason == PathRejection.NULL_BYTE


class TestSuspiciousPatterns:
    """Tests for patterns rejected outright."""

    @pytest.mark.parametrize("path", [
        "/tmp/....//etc/passwd",
        "/tmp/.../secret",
        "/tmp/%252e%252e/etc",
        "/tmp/..\\windows",
        "~/secret",
    ])
    def test_rejected(self, validator, path):
        """Suspicious inputs never validate."""
        result = validator.validate(path)

        assert not result.valid
        assert result.reason == PathRejection.SUSPICIOUS

    def test_invalid_input(self, validator):
        """Empty and non-string inputs are invalid, not errors."""
        assert validator.validate("").reason == PathRejection.INVALID
        assert validator.validate(None).reason == PathRejection.INVALID


class TestContainment:
    """Tests for allowed-root containment."""

    def test_absolute_path_inside_root(self, validator):
        result = validator.validate("/tmp/absolute/path.txt")

        assert result.valid
        assert result.error is None
        assert result.canonical_path == "/tmp/absolute/path.txt"

    def test_root_itself_allowed(self, validator):
        assert validator.validate("/home/user").valid

    def test_sibling_prefix_not_contained(self, validator):
        """'/tmp2' shares a prefix with '/tmp' but is not inside it."""
        result = validator.validate("/tmp2/file.txt")

        assert not result.valid
        assert result.reason == PathRejection.OUTSIDE_ROOTS
        assert "outside" in result.error

    def test_outside_roots(self, validator):
        result = validator.validate("/etc/passwd")

        assert not result.valid
        assert result.reason == PathRejection.OUTSIDE_ROOTS

    def test_dot_segments_collapsed(self, validator):
        """'.' and empty segments collapse into the canonical path."""
        result = validator.validate("/tmp/./a//./b.txt")

        assert result.valid
        assert result.canonical_path == "/tmp/a/b.txt"

    def test_relative_path_joined_to_working_directory(self):
        validator = PathValidator(["/tmp"], working_directory="/tmp/project")

        result = validator.validate("src/main.py")

        assert result.valid
        assert result.canonical_path == "/tmp/project/src/main.py"

    def test_relative_path_outside_roots(self):
        validator = PathValidator(["/tmp/project/src"], working_directory="/tmp/project")

        assert not validator.validate("README.md").valid

    def test_validation_is_lexical(self, validator):
        """Nonexistent paths validate; nothing is read from disk."""
        assert validator.validate("/tmp/does/not/exist/anywhere.txt").valid

    def test_rejection_logged(self, validator, caplog):
        """Every rejection is logged at WARNING."""
        with caplog.at_level(logging.WARNING, logger="sandbox.security.paths"):
            validator.validate("/etc/shadow")

        assert any("Rejected path" in r.getMessage() for r in caplog.records)


class TestPermissionChecks:
    """Tests for can_read / can_write / can_execute / is_directory."""

    @pytest.fixture
    def local(self, tmp_path):
        (tmp_path / "data.txt").write_text("data")
        (tmp_path / "sub").mkdir()
        return PathValidator([str(tmp_path)])

    def test_can_read_existing(self, local, tmp_path):
        assert local.can_read(str(tmp_path / "data.txt"))

    def test_can_read_missing(self, local, tmp_path):
        """A missing file is not readable."""
        assert not local.can_read(str(tmp_path / "missing.txt"))

    def test_can_read_outside(self, local):
        assert not local.can_read("/etc/hostname")

    def test_can_write_new_file(self, local, tmp_path):
        """A missing file in an existing directory is writable."""
        assert local.can_write(str(tmp_path / "new.txt"))

    def test_can_write_missing_parent(self, local, tmp_path):
        assert not local.can_write(str(tmp_path / "nope" / "new.txt"))

    def test_can_execute(self, local, tmp_path):
        script = tmp_path / "run.sh"
        script.write_text("#!/bin/sh\n")
        script.chmod(0o755)

        assert local.can_execute(str(script))
        assert not local.can_execute(str(tmp_path / "sub"))

    def test_is_directory(self, local, tmp_path):
        assert local.is_directory(str(tmp_path / "sub"))
        assert not local.is_directory(str(tmp_path / "data.txt"))


class TestSymlinks:
    """Tests for symlink escapes, checked right before I/O."""

    @pytest.fixture
    def layout(self, tmp_path):
        root = tmp_path / "root"
        outside = tmp_path / "outside"
        root.mkdir()
        outside.mkdir()
        (outside / "secret.txt").write_text("secret")
        os.symlink(str(outside), str(root / "link"))
        return root

    def test_symlink_escape_detected(self, layout):
        """The lexical check passes but the real path is outside."""
        validator = PathValidator([str(layout)])
        target = str(layout / "link" / "secret.txt")

        lexical = validator.validate(target)
        assert lexical.valid

        real = validator.check_real_path(lexical.canonical_path)
        assert not real.valid
        assert "not allowed" in real.error

    def test_symlinks_allowed_when_configured(self, layout):
        validator = PathValidator([str(layout)], allow_symlinks=True)
        target = str(layout / "link" / "secret.txt")

        assert validator.check_real_path(validator.validate(target).canonical_path).valid

    def test_regular_file_passes(self, layout):
        (layout / "plain.txt").write_text("plain")
        validator = PathValidator([str(layout)])

        assert validator.check_real_path(str(layout / "plain.txt")).valid
