"""
Application Layer - Agent Factory

Dependency injection for the loop. The factory reads AgentSettings and
wires the pieces together:

- a ToolRegistry holding the configured subset of the built-in tools
- a ProviderAdapter built through the ProviderRegistry
- an AgentLoop over both, and an AgentExecutor over the loop

Tool subsets are configuration; there is only one loop implementation.
"""

import structlog

from agentloop.application.executor import AgentExecutor
from agentloop.application.sessions import SessionStore
from agentloop.config.settings import AgentSettings
from agentloop.core.domain.agent_loop import AgentLoop
from agentloop.core.interfaces.llm import ProviderProtocol
from agentloop.core.interfaces.tools import ToolProtocol
from agentloop.infrastructure.llm.providers import (
    ProviderConfig,
    ProviderRegistry,
    create_default_registry,
)
from agentloop.infrastructure.tools.native import TOOL_CLASSES, BashTool
from agentloop.infrastructure.tools.registry import ToolRegistry

DEFAULT_SYSTEM_PROMPT = """You are a coding assistant working inside a sandboxed workspace.
Use the available tools to inspect and change files and to run commands.
All paths are relative to the workspace root. Read a file before editing it,
and keep edits minimal. When the task is done, answer without calling tools."""


class AgentFactory:
    """Builds registries, providers, loops and executors from AgentSettings."""

    def __init__(
        self,
        settings: AgentSettings | None = None,
        provider_registry: ProviderRegistry | None = None,
    ):
        """
        Initialize AgentFactory.

        Args:
            settings: Configuration; read from the environment when omitted
            provider_registry: Provider lookup; the built-in litellm providers otherwise
        """
        self.settings = settings or AgentSettings()
        self.provider_registry = provider_registry or create_default_registry()
        self.logger = structlog.get_logger().bind(component="agent_factory")

    def create_tool(self, name: str) -> ToolProtocol:
        tool_class = TOOL_CLASSES[name]
        if tool_class is BashTool:
            return BashTool(default_timeout_ms=self.settings.bash_timeout_ms)
        return tool_class()

    def create_registry(self, tool_names: list[str] | None = None) -> ToolRegistry:
        """Registry with the named built-in tools (the configured subset by default)."""
        names = tool_names if tool_names is not None else self.settings.tools
        registry = ToolRegistry([self.create_tool(name) for name in names])
        self.logger.debug("tool_registry_created", tools=registry.names())
        return registry

    def provider_config(self) -> ProviderConfig:
        s = self.settings
        return ProviderConfig(
            provider=s.provider,
            model=s.resolved_model(),
            api_key=s.resolve_api_key(),
            base_url=s.base_url,
            temperature=s.temperature,
            max_tokens=s.max_tokens,
        )

    def create_provider(self) -> ProviderProtocol:
        """
        Build the configured provider adapter.

        Raises:
            UnknownProviderError: If the provider name is not registered
            ProviderConfigurationError: If the credential or model is missing
        """
        return self.provider_registry.create(self.provider_config())

    def create_loop(
        self,
        provider: ProviderProtocol | None = None,
        registry: ToolRegistry | None = None,
    ) -> AgentLoop:
        loop = AgentLoop(
            provider=provider if provider is not None else self.create_provider(),
            registry=registry if registry is not None else self.create_registry(),
            system_prompt=self.settings.system_prompt or DEFAULT_SYSTEM_PROMPT,
            max_output_chars=self.settings.max_output_chars,
        )
        self.logger.info(
            "agent_loop_created",
            provider=self.settings.provider,
            model=self.settings.resolved_model(),
            tools=loop.registry.names(),
        )
        return loop

    def create_executor(self, session_store: SessionStore | None = None) -> AgentExecutor:
        """Executor whose loop is built on first use."""
        return AgentExecutor(
            loop_factory=self.create_loop,
            session_store=session_store,
            default_max_rounds=self.settings.max_rounds,
            session_max_age_seconds=self.settings.session_max_age_seconds,
        )
