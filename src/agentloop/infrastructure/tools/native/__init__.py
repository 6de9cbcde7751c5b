"""Built-in sandboxed workspace tools."""

from agentloop.infrastructure.tools.native.edit_tools import EditTool, MultiEditTool
from agentloop.infrastructure.tools.native.file_tools import ReadTool, WriteTool
from agentloop.infrastructure.tools.native.search_tools import GlobTool, GrepTool, LsTool
from agentloop.infrastructure.tools.native.shell_tool import BashTool

# Tool name -> class, in the order tools are presented to the model
TOOL_CLASSES = {
    "read": ReadTool,
    "write": WriteTool,
    "edit": EditTool,
    "multiedit": MultiEditTool,
    "ls": LsTool,
    "grep": GrepTool,
    "glob": GlobTool,
    "bash": BashTool,
}

__all__ = [
    "TOOL_CLASSES",
    "BashTool",
    "EditTool",
    "GlobTool",
    "GrepTool",
    "LsTool",
    "MultiEditTool",
    "ReadTool",
    "WriteTool",
]
