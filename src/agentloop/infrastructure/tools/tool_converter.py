"""
Tool Converter - function calling format conversion.

Converts registered tools into the function-calling schema array sent to
the model, and tool calls/results into the chat messages appended to the
conversation between rounds.
"""

import json
from collections.abc import Iterable
from typing import Any

from agentloop.core.domain.messages import ToolCallMessage
from agentloop.core.interfaces.tools import ToolProtocol

TRUNCATION_MARKER = "\n\n[... TRUNCATED - {overflow} more chars ...]"

# Fields that commonly carry large outputs
LARGE_FIELDS = ("content", "stdout", "stderr", "matches", "entries", "detailed_listing", "output")


def tools_to_openai_format(tools: Iterable[ToolProtocol]) -> list[dict[str, Any]]:
    """
    Convert tools to the OpenAI function calling format.

    litellm translates this format for every other provider, so it is the
    only schema shape the loop ever produces.

    Args:
        tools: Registered tool instances

    Returns:
        List of tool definitions:
        [
            {
                "type": "function",
                "function": {
                    "name": "read",
                    "description": "...",
                    "parameters": { JSON Schema }
                }
            },
            ...
        ]
    """
    return [
        {
            "type": "function",
            "function": {
                "name": tool.name,
                "description": tool.description,
                "parameters": tool.parameters_schema,
            },
        }
        for tool in tools
    ]


def tool_result_to_message(
    tool_call_id: str,
    tool_name: str,
    payload: dict[str, Any],
    max_output_chars: int = 20000,
) -> dict[str, Any]:
    """
    Convert a tool result payload to a ``tool`` chat message.

    Large fields are truncated so a single tool call cannot overflow the
    model's context window. The default limit is 20,000 chars per field.

    Args:
        tool_call_id: The id of the tool call this result answers
        tool_name: Name of the executed tool
        payload: ToolResult.to_payload() output
        max_output_chars: Max characters per large field

    Returns:
        {"role": "tool", "tool_call_id": ..., "name": ..., "content": "<json>"}
    """
    truncated = _truncate_tool_result(payload, max_output_chars)
    return {
        "role": "tool",
        "tool_call_id": tool_call_id,
        "name": tool_name,
        "content": json.dumps(truncated, ensure_ascii=False, default=str),
    }


def _truncate_tool_result(payload: dict[str, Any], max_chars: int) -> dict[str, Any]:
    truncated = payload.copy()

    for field_name in LARGE_FIELDS:
        if field_name not in truncated:
            continue
        value = truncated[field_name]
        if isinstance(value, (list, dict)):
            value = json.dumps(value, ensure_ascii=False, default=str)
            if len(value) <= max_chars:
                continue
        if isinstance(value, str) and len(value) > max_chars:
            overflow = len(value) - max_chars
            truncated[field_name] = value[:max_chars] + TRUNCATION_MARKER.format(overflow=overflow)

    return truncated


def assistant_tool_calls_to_message(
    content: str | None,
    tool_calls: list[ToolCallMessage],
) -> dict[str, Any]:
    """
    Create the assistant message recording this round's text and tool calls.

    The assistant message must precede the tool messages that answer it.
    """
    message: dict[str, Any] = {"role": "assistant", "content": content or None}
    if tool_calls:
        message["tool_calls"] = [
            {
                "id": call.tool_call_id,
                "type": "function",
                "function": {"name": call.tool_name, "arguments": _arguments_text(call)},
            }
            for call in tool_calls
        ]
    return message


def _arguments_text(call: ToolCallMessage) -> str:
    # unparseable argument text is replaced so the history stays valid JSON
    if call.raw_arguments and not call.argument_error:
        return call.raw_arguments
    return json.dumps(call.arguments)
