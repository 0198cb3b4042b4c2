"""Path helpers."""

from __future__ import annotations


def normalize_path(base_path: str | None, path: str) -> str:
    """Resolve a caller path against the configured base path.

    The result has exactly one leading slash and no trailing slash, and is
    ``/`` when nothing is left.

    Examples:
        >>> normalize_path(None, "services/")
        '/services'
        >>> normalize_path("/app/", "/config")
        '/app/config'
        >>> normalize_path("app", "/")
        '/app'
    """
    base = (base_path or "").strip("/")
    relative = path.strip("/")
    joined = "/".join(part for part in (base, relative) if part)
    return "/" + joined


def parent_path(path: str) -> str:
    """Parent of an absolute or relative path, ``""`` for top-level nodes."""
    trimmed = path.rstrip("/")
    return trimmed[: trimmed.rfind("/")] if "/" in trimmed else ""


def join_path(path: str, child: str) -> str:
    """Append a child name to a path."""
    return f"{path.rstrip('/')}/{child}"
