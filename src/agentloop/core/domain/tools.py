"""
Tool domain models.

Defines the static tool schema (what the model sees in its function-calling
list), the validation outcome and the per-call ToolResult. ToolResult is
created fresh for every invocation and only lives until it has been folded
into the conversation as a tool message.
"""

from dataclasses import dataclass, field
from typing import Any, Literal

ParameterType = Literal["string", "number", "integer", "boolean", "array", "object"]


@dataclass(frozen=True)
class ToolParameter:
    """
    One named, typed parameter of a tool.

    Objects nest via ``properties`` and arrays describe their elements via
    ``items``, so schemas can be arbitrarily deep.
    """

    name: str
    type: ParameterType
    description: str = ""
    required: bool = False
    enum: tuple[Any, ...] | None = None
    default: Any = None
    properties: tuple["ToolParameter", ...] | None = None
    items: "ToolParameter | None" = None

    def to_json_schema(self) -> dict[str, Any]:
        schema: dict[str, Any] = {"type": self.type}
        if self.description:
            schema["description"] = self.description
        if self.enum is not None:
            schema["enum"] = list(self.enum)
        if self.default is not None:
            schema["default"] = self.default
        if self.properties is not None:
            schema["properties"] = {p.name: p.to_json_schema() for p in self.properties}
            required = [p.name for p in self.properties if p.required]
            if required:
                schema["required"] = required
        if self.items is not None:
            schema["items"] = self.items.to_json_schema()
        return schema


@dataclass(frozen=True)
class ToolSchema:
    """
    Static metadata for one tool type.

    Attributes:
        name: Unique registry key, also the function name the model calls
        description: Human/model facing description
        parameters: Top-level parameters of the call
    """

    name: str
    description: str
    parameters: tuple[ToolParameter, ...] = ()

    @property
    def required(self) -> list[str]:
        return [p.name for p in self.parameters if p.required]

    def get_parameter(self, name: str) -> ToolParameter | None:
        for parameter in self.parameters:
            if parameter.name == name:
                return parameter
        return None

    def to_json_schema(self) -> dict[str, Any]:
        """Return the JSON Schema object used as ``parameters`` in function calling."""
        return {
            "type": "object",
            "properties": {p.name: p.to_json_schema() for p in self.parameters},
            "required": self.required,
        }


@dataclass
class ValidationResult:
    is_valid: bool
    errors: list[str] = field(default_factory=list)

    @classmethod
    def from_errors(cls, errors: list[str]) -> "ValidationResult":
        return cls(is_valid=not errors, errors=list(errors))


@dataclass
class ToolMetadata:
    """Execution metadata attached to every ToolResult."""

    duration_ms: float = 0.0
    files_affected: list[str] = field(default_factory=list)
    output_size: int = 0


@dataclass
class ToolResult:
    """
    Outcome of a single tool invocation.

    Attributes:
        success: Whether the tool achieved what was asked
        result: Tool specific payload (dict for all built-in tools)
        error: Human readable failure reason, set when success is False
        metadata: Duration, affected files and output size
    """

    success: bool
    result: dict[str, Any] | None = None
    error: str | None = None
    metadata: ToolMetadata = field(default_factory=ToolMetadata)

    @classmethod
    def ok(
        cls,
        result: dict[str, Any] | None = None,
        files_affected: list[str] | None = None,
        output_size: int = 0,
    ) -> "ToolResult":
        return cls(
            success=True,
            result=result or {},
            metadata=ToolMetadata(
                files_affected=list(files_affected or []),
                output_size=output_size,
            ),
        )

    @classmethod
    def fail(
        cls,
        error: str,
        result: dict[str, Any] | None = None,
        files_affected: list[str] | None = None,
    ) -> "ToolResult":
        return cls(
            success=False,
            result=result,
            error=error,
            metadata=ToolMetadata(files_affected=list(files_affected or [])),
        )

    @classmethod
    def invalid(cls, errors: list[str]) -> "ToolResult":
        """Failure for parameters rejected before the tool ran."""
        return cls.fail("Validation failed: " + "; ".join(errors), result={"validation_errors": list(errors)})

    def to_payload(self) -> dict[str, Any]:
        """Flatten into the dict that is serialized into the tool message."""
        payload: dict[str, Any] = {"success": self.success}
        if self.result:
            payload.update(self.result)
        if self.error:
            payload["error"] = self.error
        payload["metadata"] = {
            "duration_ms": round(self.metadata.duration_ms, 2),
            "files_affected": self.metadata.files_affected,
            "output_size": self.metadata.output_size,
        }
        return payload
