"""Unit Tests for AgentFactory wiring."""

import pytest

from agentloop.application.executor import AgentExecutor
from agentloop.application.factory import DEFAULT_SYSTEM_PROMPT, AgentFactory
from agentloop.config.settings import AgentSettings
from agentloop.core.domain.errors import ProviderConfigurationError, UnknownProviderError
from agentloop.infrastructure.llm.providers import ProviderAdapter
from agentloop.infrastructure.tools.native import BashTool, ReadTool


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in ("OPENAI_API_KEY", "ANTHROPIC_API_KEY", "GEMINI_API_KEY", "OPENROUTER_API_KEY"):
        monkeypatch.delenv(var, raising=False)
    for var in ("AGENTLOOP_API_KEY", "AGENTLOOP_PROVIDER", "AGENTLOOP_MODEL", "AGENTLOOP_TOOLS"):
        monkeypatch.delenv(var, raising=False)


class TestRegistryWiring:
    def test_all_tools_by_default(self):
        registry = AgentFactory(AgentSettings()).create_registry()
        assert registry.names() == ["read", "write", "edit", "multiedit", "ls", "grep", "glob", "bash"]

    def test_configured_subset(self):
        registry = AgentFactory(AgentSettings(tools=["read", "ls"])).create_registry()
        assert registry.names() == ["read", "ls"]
        assert isinstance(registry.get("read"), ReadTool)

    def test_explicit_names_override_settings(self):
        registry = AgentFactory(AgentSettings(tools=["read"])).create_registry(["glob"])
        assert registry.names() == ["glob"]

    def test_bash_timeout_from_settings(self):
        tool = AgentFactory(AgentSettings(bash_timeout_ms=1234)).create_tool("bash")
        assert isinstance(tool, BashTool)
        assert tool.default_timeout_ms == 1234


class TestProviderWiring:
    """Tests for provider construction through the factory."""

    def test_provider_config(self):
        settings = AgentSettings(provider="anthropic", api_key="sk-ant", temperature=0.3)
        config = AgentFactory(settings).provider_config()

        assert config.provider == "anthropic"
        assert config.model == "claude-sonnet-4-20250514"
        assert config.api_key == "sk-ant"
        assert config.temperature == 0.3

    def test_creates_adapter(self):
        provider = AgentFactory(AgentSettings(api_key="sk-test", model="gpt-4o")).create_provider()

        assert isinstance(provider, ProviderAdapter)
        assert provider.name == "openai"
        assert provider.model == "gpt-4o"

    def test_missing_key(self):
        with pytest.raises(ProviderConfigurationError, match="API key is required for openai provider"):
            AgentFactory(AgentSettings()).create_provider()

    def test_unknown_provider(self):
        with pytest.raises(UnknownProviderError):
            AgentFactory(AgentSettings(provider="acme", model="m", api_key="k")).create_provider()


class TestLoopWiring:
    def test_loop_uses_default_system_prompt(self):
        loop = AgentFactory(AgentSettings(api_key="sk-test", max_output_chars=500)).create_loop()

        assert loop.system_prompt == DEFAULT_SYSTEM_PROMPT
        assert loop.max_output_chars == 500
        assert len(loop.registry) == 8

    def test_custom_system_prompt(self):
        loop = AgentFactory(AgentSettings(api_key="sk-test", system_prompt="Be terse.")).create_loop()
        assert loop.system_prompt == "Be terse."

    def test_executor_is_lazy(self):
        executor = AgentFactory(AgentSettings(max_rounds=4)).create_executor()

        assert isinstance(executor, AgentExecutor)
        assert executor.default_max_rounds == 4
        # no credential: building the loop fails only when it is needed
        assert executor.is_ready() is False

    def test_executor_gets_session_max_age(self):
        executor = AgentFactory(AgentSettings(session_max_age_seconds=60)).create_executor()
        assert executor.session_max_age_seconds == 60
