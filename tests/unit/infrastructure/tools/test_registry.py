"""
Unit Tests for ToolRegistry and the tool base class

Uses small in-test tools so the dispatch rules (unknown tool, availability
gate, validation, exception capture) are checked independently of the
built-in tools.
"""

import pytest

from agentloop.core.domain.tools import ToolParameter, ToolResult, ToolSchema
from agentloop.core.interfaces.tools import ToolProtocol
from agentloop.infrastructure.tools.base import BaseTool, matches_type
from agentloop.infrastructure.tools.native import TOOL_CLASSES
from agentloop.infrastructure.tools.registry import ToolRegistry


class EchoTool(BaseTool):
    schema = ToolSchema(
        name="echo",
        description="Echo the message back",
        parameters=(
            ToolParameter("message", "string", "Text to echo", required=True),
            ToolParameter("times", "integer", "Repetitions"),
            ToolParameter("mode", "string", "Output mode", enum=("plain", "upper")),
        ),
    )

    def __init__(self):
        self.calls = []

    async def execute(self, params, context):
        self.calls.append(params)
        text = params["message"] * (params.get("times") or 1)
        if params.get("mode") == "upper":
            text = text.upper()
        return ToolResult.ok({"output": text})


class ExplodingTool(BaseTool):
    schema = ToolSchema(name="explode", description="Always raises")

    async def execute(self, params, context):
        raise RuntimeError("boom")


class UnavailableTool(BaseTool):
    schema = ToolSchema(name="offline", description="Never available")

    def can_execute(self, context):
        return False

    async def execute(self, params, context):  # pragma: no cover - never reached
        raise AssertionError("must not run")


@pytest.fixture
def echo_tool():
    return EchoTool()


@pytest.fixture
def registry(echo_tool):
    return ToolRegistry([echo_tool, ExplodingTool(), UnavailableTool()])


class TestRegistryLookup:
    """Tests for registration and lookup."""

    def test_register_and_get(self, registry, echo_tool):
        assert registry.get("echo") is echo_tool
        assert registry.has("echo")
        assert "echo" in registry
        assert len(registry) == 3
        assert registry.names() == ["echo", "explode", "offline"]

    def test_get_unknown_returns_none(self, registry):
        assert registry.get("missing") is None
        assert not registry.has("missing")

    def test_later_registration_wins(self, registry):
        replacement = EchoTool()
        registry.register(replacement)
        assert registry.get("echo") is replacement
        assert len(registry) == 3

    def test_unregister(self, registry):
        assert registry.unregister("explode") is True
        assert registry.unregister("explode") is False
        assert "explode" not in registry

    def test_get_tools_by_pattern(self, registry):
        names = [tool.name for tool in registry.get_tools_by_pattern(r"^e")]
        assert names == ["echo", "explode"]

    def test_list_schemas_function_format(self, registry):
        schemas = registry.list_schemas()
        echo = schemas[0]
        assert echo["type"] == "function"
        assert echo["function"]["name"] == "echo"
        assert echo["function"]["description"] == "Echo the message back"
        parameters = echo["function"]["parameters"]
        assert parameters["type"] == "object"
        assert parameters["required"] == ["message"]
        assert parameters["properties"]["mode"]["enum"] == ["plain", "upper"]

    def test_builtin_tools_satisfy_protocol(self):
        for name, tool_class in TOOL_CLASSES.items():
            tool = tool_class()
            assert isinstance(tool, ToolProtocol)
            assert tool.name == name


class TestRegistryInvoke:
    """Tests for ToolRegistry.invoke dispatch rules."""

    @pytest.mark.asyncio
    async def test_invoke_success(self, registry, context, echo_tool):
        result = await registry.invoke("echo", {"message": "hi", "times": 2}, context)

        assert result.success is True
        assert result.result == {"output": "hihi"}
        assert result.metadata.duration_ms > 0
        assert echo_tool.calls == [{"message": "hi", "times": 2}]

    @pytest.mark.asyncio
    async def test_unknown_tool(self, registry, context):
        result = await registry.invoke("missing", {}, context)
        assert result.success is False
        assert result.error == "Tool not found: missing"

    @pytest.mark.asyncio
    async def test_unavailable_tool(self, registry, context):
        result = await registry.invoke("offline", {}, context)
        assert result.success is False
        assert "not available" in result.error

    @pytest.mark.asyncio
    async def test_missing_required_parameter_skips_execution(self, registry, context, echo_tool):
        result = await registry.invoke("echo", {}, context)

        assert result.success is False
        assert result.error.startswith("Validation failed")
        assert "Missing required parameter: message" in result.result["validation_errors"]
        assert echo_tool.calls == []

    @pytest.mark.asyncio
    async def test_wrong_type_and_enum(self, registry, context, echo_tool):
        result = await registry.invoke("echo", {"message": "x", "times": "2", "mode": "loud"}, context)

        errors = result.result["validation_errors"]
        assert any("times" in e and "expected integer" in e for e in errors)
        assert any("mode" in e and "one of plain, upper" in e for e in errors)
        assert echo_tool.calls == []

    @pytest.mark.asyncio
    async def test_validation_failure_matches_tool_level_result(self, registry, context, echo_tool):
        params = {"times": "2"}

        from_registry = await registry.invoke("echo", params, context)
        from_tool = echo_tool.validation_failure(echo_tool.validate(params))

        assert from_registry.to_payload() == from_tool.to_payload()
        assert from_registry.result == {"validation_errors": from_tool.result["validation_errors"]}

    @pytest.mark.asyncio
    async def test_exception_becomes_failed_result(self, registry, context):
        result = await registry.invoke("explode", {}, context)

        assert result.success is False
        assert result.error == "Tool execution failed: RuntimeError: boom"


class TestTypeMatching:
    def test_bool_is_not_a_number(self):
        assert not matches_type(True, "integer")
        assert not matches_type(False, "number")
        assert matches_type(True, "boolean")

    def test_int_is_a_number(self):
        assert matches_type(3, "number")
        assert matches_type(3.5, "number")
        assert not matches_type(3.5, "integer")
