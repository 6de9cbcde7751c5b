"""
Unit Tests for the provider adapter and registry

litellm is patched; no test performs a network call.
"""

import os
from unittest.mock import AsyncMock, patch

import pytest
from structlog.testing import capture_logs

from agentloop.core.domain.errors import (
    ProviderConfigurationError,
    ProviderError,
    UnknownProviderError,
)
from agentloop.core.domain.messages import UsageStats
from agentloop.infrastructure.llm.normalizer import ChatCompletionNormalizer, EventStreamNormalizer
from agentloop.infrastructure.llm.providers import (
    FALLBACK_COST_PER_TOKEN,
    ProviderAdapter,
    ProviderConfig,
    ProviderRegistry,
    create_default_registry,
    litellm_factory,
)

SECRET = "sk-test-secret-123"


async def _chunks(*items):
    for item in items:
        yield item


def _config(**overrides):
    values = {"provider": "openai", "model": "gpt-4.1", "api_key": SECRET}
    values.update(overrides)
    return ProviderConfig(**values)


class TestProviderRegistry:
    """Tests for provider lookup and configuration checks."""

    def test_default_providers(self):
        registry = create_default_registry()
        assert registry.names() == ["openai", "anthropic", "google", "openrouter"]

    def test_unknown_provider(self):
        with pytest.raises(UnknownProviderError, match="Unknown provider: nope"):
            create_default_registry().create(_config(provider="nope"))

    def test_unknown_provider_is_key_error(self):
        with pytest.raises(KeyError):
            create_default_registry().create(_config(provider="nope"))

    @pytest.mark.parametrize("provider", ["openai", "anthropic", "google", "openrouter"])
    def test_missing_key_fails_without_network(self, provider):
        with patch("agentloop.infrastructure.llm.providers.litellm.acompletion") as acompletion:
            with pytest.raises(ProviderConfigurationError, match=f"API key is required for {provider} provider"):
                create_default_registry().create(_config(provider=provider, api_key=None))
        acompletion.assert_not_called()

    def test_missing_model(self):
        with pytest.raises(ProviderConfigurationError, match="Model is required"):
            create_default_registry().create(_config(model=None))

    def test_register_rejects_unknown_normalizer(self):
        with pytest.raises(ValueError, match="Unknown normalizer"):
            ProviderRegistry().register("custom", litellm_factory("openai"), normalizer="xml")

    def test_custom_provider_with_event_normalizer(self):
        registry = ProviderRegistry()
        registry.register("replay", lambda config: (lambda s, m, t: _chunks()), normalizer="events")

        adapter = registry.create(ProviderConfig(provider="replay", model="m", api_key="k"))

        assert isinstance(adapter.create_normalizer("s"), EventStreamNormalizer)

    def test_credential_never_logged_or_repr(self):
        with capture_logs() as logs:
            adapter = create_default_registry().create(_config())

        assert SECRET not in repr(adapter)
        assert SECRET not in repr(_config())
        assert any(entry["event"] == "provider_created" for entry in logs)
        assert all(SECRET not in str(entry) for entry in logs)

    def test_environment_not_mutated(self):
        before = dict(os.environ)
        create_default_registry().create(_config())
        assert dict(os.environ) == before


class TestLitellmSubmit:
    """Tests for the litellm backed submit function."""

    @pytest.mark.asyncio
    async def test_passes_explicit_credential_and_tools(self):
        submit = litellm_factory("anthropic")(_config(provider="anthropic", model="claude-sonnet-4-20250514", temperature=0.2))
        tools = [{"type": "function", "function": {"name": "read", "description": "", "parameters": {}}}]

        with patch(
            "agentloop.infrastructure.llm.providers.litellm.acompletion",
            new=AsyncMock(return_value=_chunks("c1", "c2")),
        ) as acompletion:
            received = [c async for c in submit("be brief", [{"role": "user", "content": "hi"}], tools)]

        assert received == ["c1", "c2"]
        kwargs = acompletion.call_args.kwargs
        assert kwargs["model"] == "anthropic/claude-sonnet-4-20250514"
        assert kwargs["api_key"] == SECRET
        assert kwargs["stream"] is True
        assert kwargs["messages"][0] == {"role": "system", "content": "be brief"}
        assert kwargs["messages"][1] == {"role": "user", "content": "hi"}
        assert kwargs["tools"] == tools
        assert kwargs["tool_choice"] == "auto"
        assert kwargs["temperature"] == 0.2

    @pytest.mark.asyncio
    async def test_no_tools_omits_tool_choice(self):
        submit = litellm_factory("openai")(_config())
        with patch(
            "agentloop.infrastructure.llm.providers.litellm.acompletion",
            new=AsyncMock(return_value=_chunks()),
        ) as acompletion:
            [c async for c in submit(None, [{"role": "user", "content": "hi"}], [])]

        kwargs = acompletion.call_args.kwargs
        assert "tools" not in kwargs
        assert "tool_choice" not in kwargs
        assert kwargs["messages"] == [{"role": "user", "content": "hi"}]

    @pytest.mark.asyncio
    async def test_errors_are_wrapped_and_redacted(self):
        submit = litellm_factory("openai")(_config())
        with patch(
            "agentloop.infrastructure.llm.providers.litellm.acompletion",
            new=AsyncMock(side_effect=RuntimeError(f"Incorrect API key provided: {SECRET}")),
        ):
            with pytest.raises(ProviderError) as exc_info:
                [c async for c in submit(None, [], [])]

        assert SECRET not in str(exc_info.value)
        assert "***" in str(exc_info.value)


class TestProviderAdapter:
    """Tests for ProviderAdapter."""

    def test_default_normalizer(self):
        adapter = ProviderAdapter("openai", "gpt-4.1", submit=lambda s, m, t: _chunks())
        assert isinstance(adapter.create_normalizer("s"), ChatCompletionNormalizer)

    def test_estimate_cost_uses_litellm_pricing(self):
        adapter = ProviderAdapter("openai", "gpt-4.1", submit=None, pricing_model="openai/gpt-4.1")
        with patch(
            "agentloop.infrastructure.llm.providers.litellm.cost_per_token",
            return_value=(0.25, 0.5),
        ) as cost_per_token:
            cost = adapter.estimate_cost(UsageStats(prompt_tokens=10, completion_tokens=5, total_tokens=15))

        assert cost == pytest.approx(0.75)
        assert cost_per_token.call_args.kwargs["model"] == "openai/gpt-4.1"

    def test_estimate_cost_falls_back_to_flat_rate(self):
        adapter = ProviderAdapter("openai", "custom-model", submit=None, pricing_model="openai/custom-model")
        with patch(
            "agentloop.infrastructure.llm.providers.litellm.cost_per_token",
            side_effect=Exception("model not mapped"),
        ):
            cost = adapter.estimate_cost(UsageStats(prompt_tokens=60, completion_tokens=40, total_tokens=100))

        assert cost == pytest.approx(100 * FALLBACK_COST_PER_TOKEN)

    def test_zero_usage_costs_nothing(self):
        adapter = ProviderAdapter("openai", "gpt-4.1", submit=None)
        assert adapter.estimate_cost(UsageStats()) == 0.0
