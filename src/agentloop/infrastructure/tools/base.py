"""
Base class for sandboxed workspace tools.

Subclasses declare a ToolSchema and implement ``execute``. The base class
provides schema-driven default validation, the availability gate and the
workspace path resolution every tool has to run before side effects.
"""

import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from agentloop.core.domain.context import ExecutionContext
from agentloop.core.domain.tools import ToolParameter, ToolResult, ToolSchema, ValidationResult
from agentloop.infrastructure.tools.sandbox import resolve_in_workspace

_PYTHON_TYPES: dict[str, tuple[type, ...]] = {
    "string": (str,),
    "number": (int, float),
    "integer": (int,),
    "boolean": (bool,),
    "array": (list, tuple),
    "object": (dict,),
}

_JSON_TYPE_NAMES: dict[type, str] = {
    str: "string",
    int: "integer",
    float: "number",
    bool: "boolean",
    list: "array",
    tuple: "array",
    dict: "object",
    type(None): "null",
}


def matches_type(value: Any, expected: str) -> bool:
    """Primitive JSON type conformance; booleans are not numbers."""
    if isinstance(value, bool) and expected in ("number", "integer"):
        return False
    return isinstance(value, _PYTHON_TYPES.get(expected, (object,)))


def json_type_name(value: Any) -> str:
    return _JSON_TYPE_NAMES.get(type(value), type(value).__name__)


class BaseTool(ABC):
    """Base class for all workspace tools."""

    schema: ToolSchema

    @property
    def name(self) -> str:
        return self.schema.name

    @property
    def description(self) -> str:
        return self.schema.description

    @property
    def parameters_schema(self) -> dict[str, Any]:
        return self.schema.to_json_schema()

    def validate(self, params: dict[str, Any]) -> ValidationResult:
        """
        Default validation: required presence, primitive types and enums.

        Subclasses extend this with tool specific checks and call
        ``super().validate`` first.
        """
        if not isinstance(params, dict):
            return ValidationResult.from_errors(["Parameters must be an object"])

        errors: list[str] = []
        for parameter in self.schema.parameters:
            if parameter.name not in params or params[parameter.name] is None:
                if parameter.required:
                    errors.append(f"Missing required parameter: {parameter.name}")
                continue
            errors.extend(self._check_value(parameter, params[parameter.name]))
        return ValidationResult.from_errors(errors)

    def _check_value(self, parameter: ToolParameter, value: Any) -> list[str]:
        if not matches_type(value, parameter.type):
            return [
                f"Invalid type for parameter {parameter.name}: "
                f"expected {parameter.type}, got {json_type_name(value)}"
            ]
        if parameter.enum is not None and value not in parameter.enum:
            allowed = ", ".join(str(v) for v in parameter.enum)
            return [f"Invalid value for parameter {parameter.name}: must be one of {allowed}"]
        return []

    def can_execute(self, context: ExecutionContext) -> bool:
        return bool(context.working_directory)

    @abstractmethod
    async def execute(self, params: dict[str, Any], context: ExecutionContext) -> ToolResult:
        """Run the tool. Expected failures are returned, never raised."""

    def resolve_path(self, raw: str, context: ExecutionContext, parameter: str = "path") -> Path:
        """Resolve a path parameter inside the sandbox (raises SandboxViolation)."""
        return resolve_in_workspace(raw, context.working_directory, parameter)

    def validation_failure(self, validation: ValidationResult) -> ToolResult:
        return ToolResult.invalid(validation.errors)

    @staticmethod
    def elapsed_ms(started: float) -> float:
        return (time.perf_counter() - started) * 1000

    def log(self, context: ExecutionContext, event: str, **kwargs: Any) -> None:
        context.logger.debug(event, tool=self.name, **kwargs)
