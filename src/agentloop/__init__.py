"""agentloop - agentic tool-calling execution loop over a sandboxed workspace."""

__version__ = "0.1.0"
