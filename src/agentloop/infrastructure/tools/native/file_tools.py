"""
File Tools - read and write files inside the workspace.

Both tools resolve their path through the sandbox check before any
filesystem access. Reads support 1-based partial line ranges with explicit
truncation markers; non-text files are described instead of returned raw.
"""

import mimetypes
import time
from pathlib import Path
from typing import Any

import aiofiles

from agentloop.core.domain.context import ExecutionContext
from agentloop.core.domain.tools import ToolParameter, ToolResult, ToolSchema, ValidationResult
from agentloop.infrastructure.tools.base import BaseTool
from agentloop.infrastructure.tools.sandbox import (
    SandboxViolation,
    check_relative_path,
    relative_to_workspace,
)

DEFAULT_MAX_LINES = 1000
MAX_LINE_LENGTH = 2000
MAX_FILE_SIZE_BYTES = 10 * 1024 * 1024
BINARY_SNIFF_BYTES = 4096
NON_PRINTABLE_RATIO = 0.3

BINARY_EXTENSIONS = frozenset({
    ".exe", ".dll", ".so", ".dylib", ".zip", ".tar", ".gz", ".7z",
    ".bin", ".dat", ".class", ".jar", ".war", ".pyc", ".pyo",
    ".doc", ".docx", ".xls", ".xlsx", ".ppt", ".pptx",
    ".odt", ".ods", ".odp", ".wasm", ".obj", ".o", ".a", ".lib",
})


def is_binary_content(sample: bytes) -> bool:
    """NUL byte, or more than 30% non-printable bytes in the sample."""
    if not sample:
        return False
    if b"\x00" in sample:
        return True
    non_printable = sum(1 for byte in sample if byte < 9 or 13 < byte < 32)
    return non_printable / len(sample) > NON_PRINTABLE_RATIO


def detect_file_type(path: Path, sample: bytes) -> tuple[str, str | None]:
    """Classify a file as text, image, pdf or binary; also returns the mime type."""
    mime_type, _ = mimetypes.guess_type(path.name)
    if mime_type and mime_type.startswith("image/") and mime_type != "image/svg+xml":
        return "image", mime_type
    if mime_type == "application/pdf":
        return "pdf", mime_type
    if path.suffix.lower() in BINARY_EXTENSIONS or is_binary_content(sample):
        return "binary", mime_type
    return "text", mime_type or "text/plain"


def _format_size(size: int) -> str:
    return f"{size / 1024:.1f} KB"


class ReadTool(BaseTool):
    """Read file contents with optional line range."""

    schema = ToolSchema(
        name="read",
        description=(
            "Read the contents of a file in the workspace. Supports reading a line range "
            "of text files (1-based startLine, lineCount). Images, PDFs and binary files "
            "return a description instead of raw bytes."
        ),
        parameters=(
            ToolParameter("filePath", "string", "Path of the file relative to the workspace root", required=True),
            ToolParameter("startLine", "integer", "1-based line to start reading from"),
            ToolParameter("lineCount", "integer", f"Number of lines to read (default up to {DEFAULT_MAX_LINES})"),
            ToolParameter("encoding", "string", "Text encoding (default utf-8)"),
        ),
    )

    def validate(self, params: dict[str, Any]) -> ValidationResult:
        validation = super().validate(params)
        if not validation.is_valid:
            return validation

        errors: list[str] = []
        path_error = check_relative_path(params["filePath"], "filePath")
        if path_error:
            errors.append(path_error)
        start_line = params.get("startLine")
        if start_line is not None and start_line < 1:
            errors.append("startLine must be >= 1")
        line_count = params.get("lineCount")
        if line_count is not None and line_count < 1:
            errors.append("lineCount must be >= 1")
        return ValidationResult.from_errors(errors)

    async def execute(self, params: dict[str, Any], context: ExecutionContext) -> ToolResult:
        validation = self.validate(params)
        if not validation.is_valid:
            return self.validation_failure(validation)

        started = time.perf_counter()
        try:
            path = self.resolve_path(params["filePath"], context, "filePath")
        except SandboxViolation as e:
            return ToolResult.fail(str(e))

        relative = relative_to_workspace(path, context.working_directory)
        if not path.exists():
            return ToolResult.fail(f"File not found: {relative}")
        if path.is_dir():
            return ToolResult.fail(f"Path is a directory, not a file: {relative}")

        size = path.stat().st_size
        if size > MAX_FILE_SIZE_BYTES:
            return ToolResult.fail(
                f"File too large ({size / (1024 * 1024):.1f}MB). "
                f"Maximum size: {MAX_FILE_SIZE_BYTES // (1024 * 1024)}MB"
            )

        async with aiofiles.open(path, "rb") as f:
            sample = await f.read(BINARY_SNIFF_BYTES)
        file_type, mime_type = detect_file_type(path, sample)
        self.log(context, "read_file", path=relative, file_type=file_type, size=size)

        if file_type != "text":
            label = {"image": "IMAGE FILE", "pdf": "PDF FILE"}.get(file_type, "BINARY FILE")
            content = f"[{label}: {path.name}]\nFile size: {_format_size(size)}"
            if mime_type:
                content += f"\nMIME type: {mime_type}"
            result = ToolResult.ok(
                {
                    "content": content,
                    "file_path": relative,
                    "file_type": file_type,
                    "mime_type": mime_type,
                    "size": size,
                    "is_truncated": False,
                },
                output_size=len(content),
            )
            result.metadata.duration_ms = self.elapsed_ms(started)
            return result

        encoding = params.get("encoding") or "utf-8"
        try:
            async with aiofiles.open(path, "r", encoding=encoding, newline="") as f:
                text = await f.read()
        except (UnicodeDecodeError, LookupError) as e:
            return ToolResult.fail(f"Unable to decode {relative} as {encoding}: {e}")

        result = self._render_text(text, params, relative, mime_type, size)
        result.metadata.duration_ms = self.elapsed_ms(started)
        return result

    def _render_text(
        self,
        text: str,
        params: dict[str, Any],
        relative: str,
        mime_type: str | None,
        size: int,
    ) -> ToolResult:
        lines = text.split("\n")
        total = len(lines)
        start_line = params.get("startLine") or 1
        if start_line > total:
            return ToolResult.fail(f"startLine {start_line} exceeds total lines ({total}) in {relative}")

        start_index = start_line - 1
        line_count = params.get("lineCount") or min(DEFAULT_MAX_LINES, total - start_index)
        end_index = min(start_index + line_count, total)
        selected = lines[start_index:end_index]

        long_lines = False
        for i, line in enumerate(selected):
            if len(line) > MAX_LINE_LENGTH:
                selected[i] = line[:MAX_LINE_LENGTH] + "... [line truncated]"
                long_lines = True

        content = "\n".join(selected)
        range_truncated = start_index > 0 or end_index < total
        if range_truncated:
            content = (
                f"[Content truncated: showing lines {start_index + 1}-{end_index} "
                f"of {total} total lines]\n\n" + content
            )
        if long_lines:
            content = f"[Some lines truncated due to length (max {MAX_LINE_LENGTH} chars)]\n\n" + content

        return ToolResult.ok(
            {
                "content": content,
                "file_path": relative,
                "file_type": "text",
                "mime_type": mime_type,
                "line_count": total,
                "lines_shown": [start_index + 1, end_index],
                "is_truncated": range_truncated or long_lines,
                "size": size,
            },
            output_size=len(content),
        )


class WriteTool(BaseTool):
    """Write content to a file, creating parent directories as needed."""

    schema = ToolSchema(
        name="write",
        description=(
            "Write content to a file in the workspace. Creates the file (and parent "
            "directories by default) or overwrites it if it already exists."
        ),
        parameters=(
            ToolParameter("file_path", "string", "Path of the file relative to the workspace root", required=True),
            ToolParameter("content", "string", "Content to write", required=True),
            ToolParameter("create_dirs", "boolean", "Create missing parent directories (default true)", default=True),
        ),
    )

    def validate(self, params: dict[str, Any]) -> ValidationResult:
        validation = super().validate(params)
        if not validation.is_valid:
            return validation
        path_error = check_relative_path(params["file_path"], "file_path")
        return ValidationResult.from_errors([path_error] if path_error else [])

    async def execute(self, params: dict[str, Any], context: ExecutionContext) -> ToolResult:
        validation = self.validate(params)
        if not validation.is_valid:
            return self.validation_failure(validation)

        started = time.perf_counter()
        try:
            path = self.resolve_path(params["file_path"], context, "file_path")
        except SandboxViolation as e:
            return ToolResult.fail(str(e))

        relative = relative_to_workspace(path, context.working_directory)
        if path.is_dir():
            return ToolResult.fail(f"Target path is a directory, not a file: {relative}")

        create_dirs = params.get("create_dirs", True)
        if not path.parent.exists():
            if not create_dirs:
                return ToolResult.fail(f"Parent directory does not exist: {relative_to_workspace(path.parent, context.working_directory)}")
            path.parent.mkdir(parents=True, exist_ok=True)

        content: str = params["content"]
        is_new_file = not path.exists()
        async with aiofiles.open(path, "w", encoding="utf-8", newline="") as f:
            await f.write(content)

        bytes_written = len(content.encode("utf-8"))
        self.log(context, "write_file", path=relative, bytes=bytes_written, is_new_file=is_new_file)
        result = ToolResult.ok(
            {
                "file_path": relative,
                "absolute_path": str(path),
                "is_new_file": is_new_file,
                "lines_written": len(content.split("\n")) if content else 0,
                "bytes_written": bytes_written,
            },
            files_affected=[relative],
            output_size=bytes_written,
        )
        result.metadata.duration_ms = self.elapsed_ms(started)
        return result
