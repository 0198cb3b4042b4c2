"""Unit tests for path helpers."""

from __future__ import annotations

import pytest

from zkwatch.paths import join_path, normalize_path, parent_path


class TestNormalizePath:
    """Tests for normalize_path."""

    @pytest.mark.parametrize(
        ("base_path", "path", "expected"),
        [
            (None, "/a", "/a"),
            (None, "a/b/", "/a/b"),
            (None, "", "/"),
            (None, "/", "/"),
            ("/app", "/config", "/app/config"),
            ("app/", "config", "/app/config"),
            ("/app", "/", "/app"),
            ("/app", "", "/app"),
            ("/", "/x", "/x"),
            ("", "x", "/x"),
            ("/a/b", "c/d", "/a/b/c/d"),
        ],
    )
    def test_normalize(self, base_path: str | None, path: str, expected: str) -> None:
        """Test the base path is prepended with exactly one separator."""
        assert normalize_path(base_path, path) == expected


class TestParentPath:
    """Tests for parent_path."""

    def test_nested(self) -> None:
        """Test the last segment is removed."""
        assert parent_path("/a/b/c") == "/a/b"

    def test_top_level(self) -> None:
        """Test a top-level node has an empty parent."""
        assert parent_path("/a") == ""
        assert parent_path("a") == ""

    def test_trailing_slash(self) -> None:
        """Test a trailing slash is ignored."""
        assert parent_path("/a/b/") == "/a"

    def test_relative(self) -> None:
        """Test relative paths keep their form."""
        assert parent_path("a/b") == "a"


class TestJoinPath:
    """Tests for join_path."""

    def test_join(self) -> None:
        """Test a child name is appended."""
        assert join_path("/a", "b") == "/a/b"

    def test_join_root(self) -> None:
        """Test joining onto the root does not double the separator."""
        assert join_path("/", "b") == "/b"
