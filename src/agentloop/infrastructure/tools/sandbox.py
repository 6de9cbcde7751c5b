"""
Workspace sandbox path checks.

Every path-accepting tool resolves its path parameter through
``resolve_in_workspace`` before touching the filesystem or spawning a
process. The check is applied per tool rather than centrally because tools
differ in which parameter is path-like.
"""

import os
import re
from pathlib import Path, PureWindowsPath

_SEGMENT_SPLIT = re.compile(r"[\\/]")


class SandboxViolation(ValueError):
    """Raised when a path would escape the working directory."""


def check_relative_path(raw: str, parameter: str = "path") -> str | None:
    """
    Static check of a path parameter, without touching the filesystem.

    Returns:
        An error message, or None when the string is acceptable.
    """
    if not isinstance(raw, str) or not raw.strip():
        return f"{parameter} must be a non-empty string"
    if raw.startswith(("/", "\\")) or os.path.isabs(raw) or PureWindowsPath(raw).drive:
        return f"{parameter} must be relative to the working directory, got absolute path: {raw}"
    if ".." in _SEGMENT_SPLIT.split(raw):
        return f"{parameter} must not contain parent directory segments (..): {raw}"
    return None


def is_within(path: Path, root: Path) -> bool:
    """Whether ``path`` equals ``root`` or lies below it (both already resolved)."""
    root_str = os.path.normcase(str(root))
    path_str = os.path.normcase(str(path))
    return path_str == root_str or path_str.startswith(root_str.rstrip(os.sep) + os.sep)


def resolve_in_workspace(raw: str, working_directory: Path, parameter: str = "path") -> Path:
    """
    Resolve a relative path against the sandbox root.

    Args:
        raw: Path as supplied by the model
        working_directory: Sandbox root
        parameter: Parameter name used in error messages

    Returns:
        The resolved absolute path inside the working directory.

    Raises:
        SandboxViolation: For absolute paths, ``..`` segments, or resolved
            locations (after following symlinks) outside the root.
    """
    error = check_relative_path(raw, parameter)
    if error:
        raise SandboxViolation(error)

    root = Path(working_directory).resolve()
    resolved = (root / raw).resolve()
    if not is_within(resolved, root):
        raise SandboxViolation(f"Path resolves outside the working directory: {raw}")
    return resolved


def stays_in_workspace(path: Path, working_directory: Path) -> bool:
    """
    Whether ``path`` still lies inside the sandbox once symlinks are followed.

    Directory walks see entries by name; a symlink found that way may point
    anywhere, so walkers check every entry before reading or stat'ing it.
    """
    try:
        resolved = path.resolve()
    except (OSError, RuntimeError):
        return False
    return is_within(resolved, Path(working_directory).resolve())


def relative_to_workspace(path: Path, working_directory: Path) -> str:
    """Workspace relative POSIX-style path used in tool results."""
    try:
        relative = path.relative_to(Path(working_directory).resolve())
    except ValueError:
        return path.as_posix()
    return relative.as_posix() or "."
