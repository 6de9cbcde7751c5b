"""
Search Tools - list directories, search by content and search by name.

Directory walks run in a worker thread via ``asyncio.to_thread`` so a large
tree delays only its own tool call, never the event loop. All reported
paths are relative to the workspace root so they can be passed straight to
the file tools.
"""

import asyncio
import os
import re
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from agentloop.core.domain.context import ExecutionContext
from agentloop.core.domain.tools import ToolParameter, ToolResult, ToolSchema, ValidationResult
from agentloop.infrastructure.tools.base import BaseTool
from agentloop.infrastructure.tools.native.file_tools import BINARY_SNIFF_BYTES, is_binary_content
from agentloop.infrastructure.tools.native.patterns import glob_to_regex, matches_glob
from agentloop.infrastructure.tools.sandbox import (
    SandboxViolation,
    check_relative_path,
    relative_to_workspace,
    stays_in_workspace,
)

SKIP_DIRECTORIES = frozenset({
    "node_modules", ".git", ".vscode", "dist", "build", "coverage",
    ".nyc_output", ".next", ".cache", "__pycache__", ".venv",
})
SKIP_FILE_NAMES = frozenset({".DS_Store", "Thumbs.db"})
SKIP_FILE_SUFFIXES = (".log", ".tmp", ".temp")

TEXT_EXTENSIONS = frozenset({
    ".js", ".ts", ".jsx", ".tsx", ".json", ".html", ".htm", ".css", ".scss", ".sass",
    ".py", ".java", ".cpp", ".c", ".h", ".hpp", ".cs", ".php", ".rb", ".go",
    ".rs", ".swift", ".kt", ".scala", ".clj", ".hs", ".elm", ".ml", ".f",
    ".txt", ".md", ".rst", ".asciidoc", ".xml", ".yaml", ".yml", ".toml",
    ".ini", ".cfg", ".conf", ".properties", ".env", ".gitignore", ".gitattributes",
    ".dockerfile", ".makefile", ".sh", ".bat", ".ps1", ".sql", ".graphql",
    ".vue", ".svelte", ".astro", ".prisma", ".proto",
})

RECENT_WINDOW_SECONDS = 24 * 60 * 60


def _iso_mtime(mtime: float) -> str:
    return datetime.fromtimestamp(mtime, tz=timezone.utc).isoformat()


def _format_size(size: int) -> str:
    for unit in ("B", "KB", "MB", "GB"):
        if size < 1024 or unit == "GB":
            return f"{size:.0f} {unit}" if unit == "B" else f"{size:.1f} {unit}"
        size /= 1024
    return f"{size} B"


def _format_age(mtime: float) -> str:
    seconds = max(0, time.time() - mtime)
    if seconds < 60:
        return "just now"
    if seconds < 3600:
        return f"{int(seconds // 60)}m ago"
    if seconds < 86400:
        return f"{int(seconds // 3600)}h ago"
    return f"{int(seconds // 86400)}d ago"


def _resolve_directory(tool: BaseTool, raw: str, context: ExecutionContext) -> Path:
    """Resolve an optional directory parameter; '.' means the workspace root."""
    if raw in ("", "."):
        return context.working_directory
    return tool.resolve_path(raw, context)


def _validate_optional_path(params: dict[str, Any], errors: list[str]) -> None:
    raw = params.get("path")
    if raw not in (None, "", "."):
        path_error = check_relative_path(raw, "path")
        if path_error:
            errors.append(path_error)


# ---------------------------------------------------------------------------
# ls
# ---------------------------------------------------------------------------


@dataclass
class DirectoryEntry:
    name: str
    is_directory: bool
    size: int
    modified: float

    @property
    def extension(self) -> str | None:
        if self.is_directory:
            return None
        suffix = Path(self.name).suffix
        return suffix[1:] if suffix else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "type": "directory" if self.is_directory else "file",
            "size": self.size,
            "modified_time": _iso_mtime(self.modified),
            "extension": self.extension,
        }


class LsTool(BaseTool):
    """List directory contents."""

    schema = ToolSchema(
        name="ls",
        description=(
            "List the contents of a directory in the workspace. Directories are listed "
            "first, then files, each group alphabetically."
        ),
        parameters=(
            ToolParameter("path", "string", "Directory relative to the workspace root (default '.')"),
            ToolParameter("show_hidden", "boolean", "Include entries starting with '.'", default=False),
            ToolParameter("ignore", "array", "Glob patterns of entries to skip", items=ToolParameter("pattern", "string")),
            ToolParameter("detailed", "boolean", "Include a formatted listing with sizes and ages", default=False),
        ),
    )

    def validate(self, params: dict[str, Any]) -> ValidationResult:
        validation = super().validate(params)
        if not validation.is_valid:
            return validation
        errors: list[str] = []
        _validate_optional_path(params, errors)
        for pattern in params.get("ignore") or []:
            if not isinstance(pattern, str):
                errors.append("ignore patterns must be strings")
                break
        return ValidationResult.from_errors(errors)

    async def execute(self, params: dict[str, Any], context: ExecutionContext) -> ToolResult:
        validation = self.validate(params)
        if not validation.is_valid:
            return self.validation_failure(validation)

        started = time.perf_counter()
        try:
            directory = _resolve_directory(self, params.get("path") or ".", context)
        except SandboxViolation as e:
            return ToolResult.fail(str(e))

        relative = relative_to_workspace(directory, context.working_directory)
        if not directory.exists():
            return ToolResult.fail(f"Directory not found: {relative}")
        if not directory.is_dir():
            return ToolResult.fail(f"Path is not a directory: {relative}")

        show_hidden = params.get("show_hidden", False)
        ignore = params.get("ignore") or []
        try:
            entries, hidden_count, ignored_count = await asyncio.to_thread(
                self._scan, directory, context.working_directory, show_hidden, ignore
            )
        except PermissionError as e:
            return ToolResult.fail(f"Permission denied: {relative} ({e})")

        directories = sum(1 for e in entries if e.is_directory)
        files = len(entries) - directories
        result: dict[str, Any] = {
            "path": relative,
            "entries": [e.to_dict() for e in entries],
            "total_count": len(entries),
            "directories": directories,
            "files": files,
            "hidden_count": hidden_count,
            "ignored_count": ignored_count,
            "summary": f"{directories} directories, {files} files",
        }
        if params.get("detailed"):
            result["detailed_listing"] = self._format_listing(entries)

        self.log(context, "ls_complete", path=relative, total=len(entries))
        tool_result = ToolResult.ok(result, output_size=len(entries))
        tool_result.metadata.duration_ms = self.elapsed_ms(started)
        return tool_result

    def _scan(
        self, directory: Path, workspace: Path, show_hidden: bool, ignore: list[str]
    ) -> tuple[list[DirectoryEntry], int, int]:
        entries: list[DirectoryEntry] = []
        hidden_count = ignored_count = 0
        with os.scandir(directory) as iterator:
            for item in iterator:
                if item.name.startswith(".") and not show_hidden:
                    hidden_count += 1
                    continue
                if any(matches_glob(item.name, pattern) for pattern in ignore):
                    ignored_count += 1
                    continue
                if not stays_in_workspace(Path(item.path), workspace):
                    continue
                try:
                    stat = item.stat()
                except OSError:
                    continue
                is_directory = item.is_dir()
                entries.append(
                    DirectoryEntry(
                        name=item.name,
                        is_directory=is_directory,
                        size=0 if is_directory else stat.st_size,
                        modified=stat.st_mtime,
                    )
                )
        entries.sort(key=lambda e: (not e.is_directory, e.name.lower()))
        return entries, hidden_count, ignored_count

    def _format_listing(self, entries: list[DirectoryEntry]) -> str:
        lines = []
        for entry in entries:
            if entry.is_directory:
                lines.append(f"[DIR]  {entry.name}/".ljust(40) + _format_age(entry.modified))
            else:
                lines.append(
                    f"[FILE] {entry.name}".ljust(40)
                    + _format_size(entry.size).rjust(10)
                    + "  "
                    + _format_age(entry.modified)
                )
        return "\n".join(lines)


# ---------------------------------------------------------------------------
# grep
# ---------------------------------------------------------------------------


def _is_text_candidate(name: str) -> bool:
    suffix = Path(name).suffix.lower()
    return not suffix or suffix in TEXT_EXTENSIONS


def _skip_file(name: str) -> bool:
    return name in SKIP_FILE_NAMES or name.endswith(SKIP_FILE_SUFFIXES)


class GrepTool(BaseTool):
    """Search file contents with a regular expression."""

    schema = ToolSchema(
        name="grep",
        description=(
            "Search for a regular expression in text files under a directory. Skips "
            "VCS and build directories and binary files. Returns file path, line "
            "number, line text and match span for each match."
        ),
        parameters=(
            ToolParameter("pattern", "string", "Regular expression to search for", required=True),
            ToolParameter("path", "string", "Directory relative to the workspace root (default '.')"),
            ToolParameter("include", "string", "Glob filter for file names, e.g. '*.{ts,tsx}'"),
            ToolParameter("case_sensitive", "boolean", "Case sensitive matching (default false)", default=False),
            ToolParameter("max_files", "integer", "Maximum number of files to search (default 1000)", default=1000),
            ToolParameter("max_matches", "integer", "Maximum number of matches to return (default 100)", default=100),
        ),
    )

    def validate(self, params: dict[str, Any]) -> ValidationResult:
        validation = super().validate(params)
        if not validation.is_valid:
            return validation
        errors: list[str] = []
        try:
            re.compile(params["pattern"])
        except re.error as e:
            errors.append(f"Invalid regular expression: {e}")
        _validate_optional_path(params, errors)
        for cap in ("max_files", "max_matches"):
            if params.get(cap) is not None and params[cap] < 1:
                errors.append(f"{cap} must be >= 1")
        return ValidationResult.from_errors(errors)

    async def execute(self, params: dict[str, Any], context: ExecutionContext) -> ToolResult:
        validation = self.validate(params)
        if not validation.is_valid:
            return self.validation_failure(validation)

        started = time.perf_counter()
        try:
            root = _resolve_directory(self, params.get("path") or ".", context)
        except SandboxViolation as e:
            return ToolResult.fail(str(e))

        relative_root = relative_to_workspace(root, context.working_directory)
        if not root.is_dir():
            return ToolResult.fail(f"Directory not found: {relative_root}")

        flags = 0 if params.get("case_sensitive", False) else re.IGNORECASE
        regex = re.compile(params["pattern"], flags)
        result = await asyncio.to_thread(
            self._search,
            root,
            context.working_directory,
            regex,
            params.get("include"),
            params.get("max_files") or 1000,
            params.get("max_matches") or 100,
        )

        self.log(
            context,
            "grep_complete",
            pattern=params["pattern"],
            files_searched=result["files_searched"],
            total_matches=result["total_matches"],
        )
        tool_result = ToolResult.ok(result, output_size=result["total_matches"])
        tool_result.metadata.duration_ms = self.elapsed_ms(started)
        return tool_result

    def _iter_files(self, root: Path, workspace: Path, include: str | None, max_files: int):
        """Yield candidate files; stops once max_files have been yielded."""
        yielded = 0
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames[:] = sorted(d for d in dirnames if d not in SKIP_DIRECTORIES)
            for name in sorted(filenames):
                if _skip_file(name) or not _is_text_candidate(name):
                    continue
                path = Path(dirpath) / name
                relative = path.relative_to(root).as_posix()
                if include and not matches_glob(relative, include):
                    continue
                if not stays_in_workspace(path, workspace):
                    continue
                if yielded >= max_files:
                    return
                yielded += 1
                yield path

    def _search(
        self,
        root: Path,
        workspace: Path,
        regex: re.Pattern[str],
        include: str | None,
        max_files: int,
        max_matches: int,
    ) -> dict[str, Any]:
        matches: list[dict[str, Any]] = []
        matches_by_file: dict[str, int] = {}
        files_searched = 0
        truncated = False

        candidates = self._iter_files(root, workspace, include, max_files + 1)
        for path in candidates:
            if files_searched >= max_files:
                truncated = True
                break
            try:
                with open(path, "rb") as f:
                    if is_binary_content(f.read(BINARY_SNIFF_BYTES)):
                        continue
                text = path.read_text(encoding="utf-8", errors="replace")
            except OSError:
                continue
            files_searched += 1

            relative = relative_to_workspace(path, workspace)
            for line_number, line in enumerate(text.splitlines(), start=1):
                match = regex.search(line)
                if not match:
                    continue
                if len(matches) >= max_matches:
                    truncated = True
                    break
                matches.append({
                    "file_path": relative,
                    "line_number": line_number,
                    "line": line,
                    "match_start": match.start(),
                    "match_end": match.end(),
                })
                matches_by_file[relative] = matches_by_file.get(relative, 0) + 1
            if truncated:
                break

        return {
            "pattern": regex.pattern,
            "matches": matches,
            "matches_by_file": matches_by_file,
            "files_searched": files_searched,
            "files_with_matches": len(matches_by_file),
            "total_matches": len(matches),
            "truncated": truncated,
        }


# ---------------------------------------------------------------------------
# glob
# ---------------------------------------------------------------------------


class GlobTool(BaseTool):
    """Find files and directories by name pattern."""

    schema = ToolSchema(
        name="glob",
        description=(
            "Find files matching a glob pattern such as '**/*.py' or 'src/*.{ts,tsx}'. "
            "'*' and '?' match within one path segment, '**' matches across segments."
        ),
        parameters=(
            ToolParameter("pattern", "string", "Glob pattern relative to the search root", required=True),
            ToolParameter("path", "string", "Directory relative to the workspace root (default '.')"),
            ToolParameter("case_sensitive", "boolean", "Case sensitive matching (default false)", default=False),
            ToolParameter("include_dirs", "boolean", "Also return matching directories", default=False),
            ToolParameter("show_hidden", "boolean", "Include hidden files and directories", default=False),
            ToolParameter("max_results", "integer", "Maximum number of results (default 500)", default=500),
            ToolParameter("sort_by_time", "boolean", "List files modified in the last 24h first", default=False),
        ),
    )

    def validate(self, params: dict[str, Any]) -> ValidationResult:
        validation = super().validate(params)
        if not validation.is_valid:
            return validation
        errors: list[str] = []
        if not params["pattern"].strip():
            errors.append("pattern must not be empty")
        _validate_optional_path(params, errors)
        if params.get("max_results") is not None and params["max_results"] < 1:
            errors.append("max_results must be >= 1")
        return ValidationResult.from_errors(errors)

    async def execute(self, params: dict[str, Any], context: ExecutionContext) -> ToolResult:
        validation = self.validate(params)
        if not validation.is_valid:
            return self.validation_failure(validation)

        started = time.perf_counter()
        try:
            root = _resolve_directory(self, params.get("path") or ".", context)
        except SandboxViolation as e:
            return ToolResult.fail(str(e))

        relative_root = relative_to_workspace(root, context.working_directory)
        if not root.is_dir():
            return ToolResult.fail(f"Directory not found: {relative_root}")

        regex = glob_to_regex(params["pattern"], params.get("case_sensitive", False))
        found = await asyncio.to_thread(
            self._walk,
            root,
            context.working_directory,
            regex,
            params.get("include_dirs", False),
            params.get("show_hidden", False),
        )
        self._sort(found, params.get("sort_by_time", False))

        max_results = params.get("max_results") or 500
        truncated = len(found) > max_results
        found = found[:max_results]

        matches = [
            {
                "path": relative_to_workspace(path, context.working_directory),
                "type": "directory" if is_dir else "file",
                "size": size,
                "modified_time": _iso_mtime(mtime),
            }
            for path, is_dir, size, mtime in found
        ]
        directory_count = sum(1 for m in matches if m["type"] == "directory")

        self.log(context, "glob_complete", pattern=params["pattern"], total=len(matches))
        result = ToolResult.ok(
            {
                "pattern": params["pattern"],
                "matches": matches,
                "total_matches": len(matches),
                "file_count": len(matches) - directory_count,
                "directory_count": directory_count,
                "truncated": truncated,
            },
            output_size=len(matches),
        )
        result.metadata.duration_ms = self.elapsed_ms(started)
        return result

    def _walk(
        self,
        root: Path,
        workspace: Path,
        regex: re.Pattern[str],
        include_dirs: bool,
        show_hidden: bool,
    ) -> list[tuple[Path, bool, int, float]]:
        found: list[tuple[Path, bool, int, float]] = []
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames[:] = [
                d for d in dirnames
                if d not in SKIP_DIRECTORIES and (show_hidden or not d.startswith("."))
            ]
            current = Path(dirpath)
            candidates = [(name, False) for name in filenames]
            if include_dirs:
                candidates += [(name, True) for name in dirnames]
            for name, is_dir in candidates:
                if not show_hidden and name.startswith("."):
                    continue
                path = current / name
                if not regex.match(path.relative_to(root).as_posix()):
                    continue
                if not stays_in_workspace(path, workspace):
                    continue
                try:
                    stat = path.stat()
                except OSError:
                    continue
                found.append((path, is_dir, 0 if is_dir else stat.st_size, stat.st_mtime))
        return found

    def _sort(self, found: list[tuple[Path, bool, int, float]], sort_by_time: bool) -> None:
        if not sort_by_time:
            found.sort(key=lambda item: (not item[1], item[0].as_posix().lower()))
            return

        cutoff = time.time() - RECENT_WINDOW_SECONDS

        def key(item: tuple[Path, bool, int, float]):
            recent = item[3] >= cutoff
            # recent first (newest first), then the rest alphabetically
            return (0, -item[3], "") if recent else (1, 0.0, item[0].as_posix().lower())

        found.sort(key=key)
