"""
Edit Tools - exact substring replacement in workspace files.

``edit`` performs one replacement; ``multiedit`` applies an ordered list of
replacements, each against the output of the previous one. Line endings are
normalized to LF before matching so CRLF files can be edited with strings
written by the model.
"""

import time
from dataclasses import asdict, dataclass
from typing import Any

import aiofiles

from agentloop.core.domain.context import ExecutionContext
from agentloop.core.domain.tools import ToolParameter, ToolResult, ToolSchema, ValidationResult
from agentloop.infrastructure.tools.base import BaseTool, matches_type
from agentloop.infrastructure.tools.sandbox import (
    SandboxViolation,
    check_relative_path,
    relative_to_workspace,
)


class EditError(Exception):
    """A single replacement could not be applied."""


def normalize_line_endings(text: str) -> str:
    return text.replace("\r\n", "\n")


def apply_replacement(
    content: str,
    old_string: str,
    new_string: str,
    expected_replacements: int | None = None,
) -> tuple[str, int]:
    """
    Replace every occurrence of ``old_string`` in ``content``.

    Raises:
        EditError: When the text is absent, or when ``expected_replacements``
            was given and does not match the number of occurrences.
    """
    old_string = normalize_line_endings(old_string)
    occurrences = content.count(old_string)
    if occurrences == 0:
        raise EditError(
            "Text not found in file. 0 occurrences of old_string found. "
            "Ensure the text matches exactly, including whitespace and indentation."
        )
    if expected_replacements is not None and occurrences != expected_replacements:
        raise EditError(
            f"Expected {expected_replacements} replacement(s) but found "
            f"{occurrences} occurrence(s)."
        )
    return content.replace(old_string, normalize_line_endings(new_string)), occurrences


class EditTool(BaseTool):
    """Replace text in a file."""

    schema = ToolSchema(
        name="edit",
        description=(
            "Replace exact text in a file. All occurrences of old_string are replaced; "
            "set expected_replacements to require an exact count. An empty old_string "
            "creates a new file with new_string as its content."
        ),
        parameters=(
            ToolParameter("file_path", "string", "Path of the file relative to the workspace root", required=True),
            ToolParameter("old_string", "string", "Exact text to replace (empty to create a new file)", required=True),
            ToolParameter("new_string", "string", "Replacement text", required=True),
            ToolParameter("expected_replacements", "integer", "Required number of occurrences"),
        ),
    )

    def validate(self, params: dict[str, Any]) -> ValidationResult:
        validation = super().validate(params)
        if not validation.is_valid:
            return validation

        errors: list[str] = []
        path_error = check_relative_path(params["file_path"], "file_path")
        if path_error:
            errors.append(path_error)
        expected = params.get("expected_replacements")
        if expected is not None and expected < 1:
            errors.append("expected_replacements must be >= 1")
        if params["old_string"] and params["old_string"] == params["new_string"]:
            errors.append("old_string and new_string are identical")
        return ValidationResult.from_errors(errors)

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
        old_string: str = params["old_string"]
        new_string: str = params["new_string"]

        if path.is_dir():
            return ToolResult.fail(f"Path is a directory, not a file: {relative}")

        if not old_string:
            if path.exists():
                return ToolResult.fail(f"File already exists, cannot create: {relative}")
            path.parent.mkdir(parents=True, exist_ok=True)
            content = normalize_line_endings(new_string)
            async with aiofiles.open(path, "w", encoding="utf-8", newline="") as f:
                await f.write(content)
            self.log(context, "edit_created_file", path=relative)
            return self._result(relative, content, 0, True, started)

        if not path.exists():
            return ToolResult.fail(f"File not found: {relative}")

        async with aiofiles.open(path, "r", encoding="utf-8", newline="") as f:
            original = normalize_line_endings(await f.read())

        try:
            updated, replacements = apply_replacement(
                original, old_string, new_string, params.get("expected_replacements")
            )
        except EditError as e:
            return ToolResult.fail(str(e))

        async with aiofiles.open(path, "w", encoding="utf-8", newline="") as f:
            await f.write(updated)

        self.log(context, "edit_applied", path=relative, replacements=replacements)
        return self._result(relative, updated, replacements, False, started)

    def _result(
        self, relative: str, content: str, replacements: int, is_new_file: bool, started: float
    ) -> ToolResult:
        result = ToolResult.ok(
            {
                "file_path": relative,
                "replacements_made": replacements,
                "is_new_file": is_new_file,
                "lines_total": len(content.split("\n")),
                "bytes_total": len(content.encode("utf-8")),
            },
            files_affected=[relative],
        )
        result.metadata.duration_ms = self.elapsed_ms(started)
        return result


@dataclass
class EditOutcome:
    index: int
    success: bool
    replacements: int = 0
    error: str | None = None


_EDIT_ITEM = ToolParameter(
    "edit",
    "object",
    "A single replacement",
    properties=(
        ToolParameter("old_string", "string", "Exact text to replace", required=True),
        ToolParameter("new_string", "string", "Replacement text", required=True),
        ToolParameter("expected_replacements", "integer", "Required number of occurrences"),
    ),
)


class MultiEditTool(BaseTool):
    """Apply several replacements to one file in sequence."""

    schema = ToolSchema(
        name="multiedit",
        description=(
            "Apply multiple text replacements to a single file in order; each edit "
            "operates on the result of the previous one. With fail_fast (default) the "
            "first failing edit aborts and nothing is written; otherwise successful "
            "edits are kept and failures are reported per edit."
        ),
        parameters=(
            ToolParameter("file_path", "string", "Path of the file relative to the workspace root", required=True),
            ToolParameter("edits", "array", "Ordered list of edits", required=True, items=_EDIT_ITEM),
            ToolParameter("fail_fast", "boolean", "Abort on the first failing edit (default true)", default=True),
        ),
    )

    def validate(self, params: dict[str, Any]) -> ValidationResult:
        validation = super().validate(params)
        if not validation.is_valid:
            return validation

        errors: list[str] = []
        path_error = check_relative_path(params["file_path"], "file_path")
        if path_error:
            errors.append(path_error)

        edits = params["edits"]
        if not edits:
            errors.append("edits must contain at least one edit")
        for i, edit in enumerate(edits):
            if not isinstance(edit, dict):
                errors.append(f"Edit {i + 1}: must be an object")
                continue
            for key in ("old_string", "new_string"):
                if not matches_type(edit.get(key), "string"):
                    errors.append(f"Edit {i + 1}: {key} must be a string")
            if edit.get("old_string") == "":
                errors.append(f"Edit {i + 1}: old_string must not be empty")
            expected = edit.get("expected_replacements")
            if expected is not None and (not matches_type(expected, "integer") or expected < 1):
                errors.append(f"Edit {i + 1}: expected_replacements must be a positive integer")
        return ValidationResult.from_errors(errors)

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
        if not path.is_file():
            return ToolResult.fail(f"File not found: {relative}")

        fail_fast = params.get("fail_fast", True)
        edits: list[dict[str, Any]] = params["edits"]

        async with aiofiles.open(path, "r", encoding="utf-8", newline="") as f:
            original = normalize_line_endings(await f.read())

        content = original
        outcomes: list[EditOutcome] = []
        for i, edit in enumerate(edits):
            try:
                content, replacements = apply_replacement(
                    content,
                    edit["old_string"],
                    edit["new_string"],
                    edit.get("expected_replacements"),
                )
                outcomes.append(EditOutcome(index=i, success=True, replacements=replacements))
            except EditError as e:
                outcomes.append(EditOutcome(index=i, success=False, error=str(e)))
                if fail_fast:
                    break

        successful = [o for o in outcomes if o.success]
        failed = [o for o in outcomes if not o.success]
        summary = {
            "file_path": relative,
            "edits_total": len(edits),
            "edits_successful": len(successful),
            "edits_failed": len(failed),
            "total_replacements": sum(o.replacements for o in successful),
            "content_changed": False,
            "edit_results": [asdict(o) for o in outcomes],
        }

        if failed and fail_fast:
            first = failed[0]
            self.log(context, "multiedit_aborted", path=relative, failed_edit=first.index)
            return ToolResult.fail(
                f"Edit {first.index + 1} failed: {first.error} No changes were written.",
                result=summary,
            )

        if not successful:
            return ToolResult.fail("All edits failed. No changes were written.", result=summary)

        summary["content_changed"] = content != original
        if summary["content_changed"]:
            async with aiofiles.open(path, "w", encoding="utf-8", newline="") as f:
                await f.write(content)

        self.log(
            context,
            "multiedit_applied",
            path=relative,
            successful=len(successful),
            failed=len(failed),
        )
        result = ToolResult.ok(summary, files_affected=[relative])
        result.metadata.duration_ms = self.elapsed_ms(started)
        return result
