"""
Shell Tool - run commands through the platform shell inside the workspace.

The working subdirectory goes through the same sandbox check as file paths.
Commands matching the deny-list are rejected during validation, before any
process is spawned. The deny-list is best-effort pattern matching; the
workspace path check is the actual security boundary.
"""

import asyncio
import os
import re
import signal
import sys
import time
from typing import Any

from agentloop.core.domain.context import ExecutionContext
from agentloop.core.domain.tools import ToolParameter, ToolResult, ToolSchema, ValidationResult
from agentloop.infrastructure.tools.base import BaseTool
from agentloop.infrastructure.tools.sandbox import (
    SandboxViolation,
    check_relative_path,
    relative_to_workspace,
)

DEFAULT_TIMEOUT_MS = 30_000
MAX_TIMEOUT_MS = 600_000
KILL_GRACE_SECONDS = 1.0
IS_WINDOWS = sys.platform == "win32"

UNSAFE_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = tuple(
    (re.compile(pattern, re.IGNORECASE), reason)
    for pattern, reason in (
        (r"\brm\s+(-[rf]*\s+)?/\s*$", "deleting the filesystem root"),
        (r"\brm\s+-[rf]*\s+/(\*|\s|$)", "deleting the filesystem root"),
        (r"\b(format|fdisk|mkfs)\b", "disk formatting"),
        (r"\b(curl|wget)\s+.*\|\s*(bash|sh|zsh|python|ruby|perl)\b", "piping a remote script into an interpreter"),
        (r"\b(kill|killall|pkill)\s+(-9\s+)?1\b", "killing PID 1"),
        (r"\b(shutdown|reboot|halt|init\s+0)\b", "shutting down the system"),
        (r"\b(sudo\s+su|sudo\s+.*passwd|chmod\s+777)\b", "privilege escalation"),
        (r"\.\.(/|\\)", "path traversal"),
        (r">\s*/(dev|proc|sys)/", "writing to device or kernel paths"),
    )
)


def find_unsafe_pattern(command: str) -> str | None:
    """Return the reason a command is denied, or None."""
    for pattern, reason in UNSAFE_PATTERNS:
        if pattern.search(command):
            return reason
    return None


def command_root(command: str) -> str:
    """First word of the command, without any path prefix."""
    stripped = command.strip()
    if not stripped:
        return ""
    return re.split(r"[\\/]", stripped.split()[0])[-1]


class BashTool(BaseTool):
    """Execute shell commands with a timeout and a command deny-list."""

    schema = ToolSchema(
        name="bash",
        description=(
            "Execute a shell command in the workspace (or a subdirectory of it). "
            "Output is captured; the command is terminated when the timeout expires."
        ),
        parameters=(
            ToolParameter("command", "string", "Shell command to run", required=True),
            ToolParameter("description", "string", "Short description of what the command does"),
            ToolParameter("directory", "string", "Working subdirectory relative to the workspace root"),
            ToolParameter("timeout", "integer", f"Timeout in milliseconds (default {DEFAULT_TIMEOUT_MS}, max {MAX_TIMEOUT_MS})", default=DEFAULT_TIMEOUT_MS),
            ToolParameter("capture_output", "boolean", "Capture stdout and stderr (default true)", default=True),
            ToolParameter("env", "object", "Additional environment variables"),
        ),
    )

    def __init__(self, default_timeout_ms: int = DEFAULT_TIMEOUT_MS):
        self.default_timeout_ms = default_timeout_ms

    def validate(self, params: dict[str, Any]) -> ValidationResult:
        validation = super().validate(params)
        if not validation.is_valid:
            return validation

        errors: list[str] = []
        command: str = params["command"]
        if not command.strip():
            errors.append("command must not be empty")
        reason = find_unsafe_pattern(command)
        if reason:
            errors.append(f"Command rejected for safety reasons ({reason}): {command}")

        directory = params.get("directory")
        if directory not in (None, "", "."):
            path_error = check_relative_path(directory, "directory")
            if path_error:
                errors.append(path_error)

        timeout = params.get("timeout")
        if timeout is not None and not 1 <= timeout <= MAX_TIMEOUT_MS:
            errors.append(f"timeout must be between 1 and {MAX_TIMEOUT_MS} ms")

        env = params.get("env") or {}
        if any(not isinstance(k, str) or not isinstance(v, str) for k, v in env.items()):
            errors.append("env keys and values must be strings")
        return ValidationResult.from_errors(errors)

    async def execute(self, params: dict[str, Any], context: ExecutionContext) -> ToolResult:
        validation = self.validate(params)
        if not validation.is_valid:
            return self.validation_failure(validation)

        directory_param = params.get("directory") or "."
        try:
            cwd = (
                context.working_directory
                if directory_param == "."
                else self.resolve_path(directory_param, context, "directory")
            )
        except SandboxViolation as e:
            return ToolResult.fail(str(e))
        if not cwd.is_dir():
            return ToolResult.fail(f"Directory not found: {directory_param}")

        command: str = params["command"]
        timeout_ms = params.get("timeout") or self.default_timeout_ms
        capture = params.get("capture_output", True)
        env = {**os.environ, **(params.get("env") or {})}
        relative_cwd = relative_to_workspace(cwd, context.working_directory)
        logger = context.logger.bind(tool=self.name, command_root=command_root(command))

        started = time.perf_counter()
        output = asyncio.subprocess.PIPE if capture else asyncio.subprocess.DEVNULL
        process = await asyncio.create_subprocess_shell(
            command,
            stdout=output,
            stderr=output,
            cwd=str(cwd),
            env=env,
            start_new_session=not IS_WINDOWS,
        )
        logger.info("bash_started", pid=process.pid, directory=relative_cwd)

        communicate = asyncio.ensure_future(process.communicate())
        done, _ = await asyncio.wait({communicate}, timeout=timeout_ms / 1000)
        timed_out = not done
        if timed_out:
            logger.warning("bash_timeout", pid=process.pid, timeout_ms=timeout_ms)
            await self._terminate(process)

        try:
            stdout, stderr = await asyncio.wait_for(communicate, timeout=KILL_GRACE_SECONDS * 2)
        except TimeoutError:
            # a detached grandchild can keep the pipes open after the group was killed
            communicate.cancel()
            stdout, stderr = b"", b""

        duration_ms = self.elapsed_ms(started)
        exit_code = process.returncode
        signal_name = None
        if exit_code is not None and exit_code < 0:
            try:
                signal_name = signal.Signals(-exit_code).name
            except ValueError:
                signal_name = str(-exit_code)

        stdout_text = (stdout or b"").decode("utf-8", errors="replace")
        stderr_text = (stderr or b"").decode("utf-8", errors="replace")
        success = not timed_out and exit_code == 0

        if timed_out:
            summary = f"Command timed out after {timeout_ms}ms"
        elif success:
            summary = f"Command completed successfully in {duration_ms:.0f}ms"
        else:
            summary = f"Command failed with exit code {exit_code}"

        result = {
            "command": command,
            "directory": relative_cwd,
            "stdout": stdout_text,
            "stderr": stderr_text,
            "exit_code": exit_code,
            "signal": signal_name,
            "duration_ms": round(duration_ms, 2),
            "timed_out": timed_out,
            "process_id": process.pid,
            "summary": summary,
            "command_root": command_root(command),
        }
        logger.info("bash_finished", exit_code=exit_code, timed_out=timed_out, duration_ms=round(duration_ms, 2))

        output_size = len(stdout) + len(stderr) if capture else 0
        if success:
            tool_result = ToolResult.ok(result, output_size=output_size)
        else:
            error = summary
            if stderr_text.strip() and not timed_out:
                error = f"{summary}: {stderr_text.strip()[:500]}"
            tool_result = ToolResult.fail(error, result=result)
            tool_result.metadata.output_size = output_size
        tool_result.metadata.duration_ms = duration_ms
        return tool_result

    async def _terminate(self, process: asyncio.subprocess.Process) -> None:
        """SIGTERM the process group, then SIGKILL after a grace period."""
        self._signal(process, signal.SIGTERM)
        try:
            await asyncio.wait_for(process.wait(), timeout=KILL_GRACE_SECONDS)
        except TimeoutError:
            self._signal(process, signal.SIGKILL if not IS_WINDOWS else signal.SIGTERM)
            await process.wait()

    @staticmethod
    def _signal(process: asyncio.subprocess.Process, sig: int) -> None:
        try:
            if IS_WINDOWS:
                process.kill()
            else:
                os.killpg(process.pid, sig)
        except ProcessLookupError:
            pass
