"""
Provider Adapter - name to factory lookup for streaming model backends.

Each registered factory receives an explicit ProviderConfig (credential
included) and returns a submit function:

    submit(system_prompt, messages, tool_schemas) -> async iterator of chunks

Nothing is written to the process environment; the credential is passed
straight to ``litellm.acompletion(api_key=...)``. Adding a provider means
registering one factory plus the name of the normalizer for its chunks.
"""

from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field
from typing import Any

import litellm
import structlog

from agentloop.core.domain.errors import (
    ProviderConfigurationError,
    ProviderError,
    UnknownProviderError,
)
from agentloop.core.domain.messages import UsageStats
from agentloop.infrastructure.llm.normalizer import NORMALIZERS, StreamNormalizer, create_normalizer

SubmitFn = Callable[[str | None, list[dict[str, Any]], list[dict[str, Any]]], AsyncIterator[Any]]

# Flat rate used when litellm has no pricing for the model
FALLBACK_COST_PER_TOKEN = 0.00001


@dataclass(frozen=True)
class ProviderConfig:
    """
    Explicit provider selection and credentials.

    Attributes:
        provider: Registered provider name (openai, anthropic, google, openrouter)
        model: Model id as understood by the provider
        api_key: Credential, never included in repr or logs
        base_url: Optional API base override
        temperature: Sampling temperature
        max_tokens: Completion token limit
        extra_params: Additional keyword arguments for the backend call
    """

    provider: str
    model: str | None
    api_key: str | None = field(default=None, repr=False)
    base_url: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None
    extra_params: dict[str, Any] = field(default_factory=dict)


ProviderFactory = Callable[[ProviderConfig], SubmitFn]


@dataclass(frozen=True)
class ProviderSpec:
    name: str
    factory: ProviderFactory
    normalizer: str = "chat_completions"
    pricing_prefix: str | None = None


class ProviderAdapter:
    """A configured backend: streaming submit, normalizer selection and pricing."""

    def __init__(
        self,
        name: str,
        model: str,
        submit: SubmitFn,
        normalizer: str = "chat_completions",
        pricing_model: str | None = None,
        logger: Any = None,
    ):
        self.name = name
        self.model = model
        self._submit = submit
        self.normalizer = normalizer
        self.pricing_model = pricing_model
        self.logger = logger or structlog.get_logger().bind(component="provider", provider=name)

    def stream(
        self,
        system_prompt: str | None,
        messages: list[dict[str, Any]],
        tool_schemas: list[dict[str, Any]],
    ) -> AsyncIterator[Any]:
        return self._submit(system_prompt, messages, tool_schemas)

    def create_normalizer(self, session_id: str, logger: Any = None) -> StreamNormalizer:
        return create_normalizer(self.normalizer, session_id, logger or self.logger)

    def estimate_cost(self, usage: UsageStats) -> float:
        """Estimated USD cost of the given usage."""
        if not usage.total_tokens:
            return 0.0
        if self.pricing_model:
            try:
                prompt_cost, completion_cost = litellm.cost_per_token(
                    model=self.pricing_model,
                    prompt_tokens=usage.prompt_tokens,
                    completion_tokens=usage.completion_tokens,
                )
                return float(prompt_cost + completion_cost)
            except Exception as e:
                # litellm raises for models missing from its price map
                self.logger.debug("cost_lookup_failed", model=self.pricing_model, error=str(e))
        return usage.total_tokens * FALLBACK_COST_PER_TOKEN

    def __repr__(self) -> str:
        return f"ProviderAdapter(name={self.name!r}, model={self.model!r})"


def _litellm_model(prefix: str, model: str) -> str:
    return model if model.startswith(f"{prefix}/") else f"{prefix}/{model}"


def _redact(text: str, secret: str | None) -> str:
    return text.replace(secret, "***") if secret else text


def litellm_factory(prefix: str) -> ProviderFactory:
    """
    Build a factory that streams through ``litellm.acompletion``.

    Args:
        prefix: litellm provider prefix (openai, anthropic, gemini, openrouter)
    """

    def factory(config: ProviderConfig) -> SubmitFn:
        model = _litellm_model(prefix, config.model or "")

        async def submit(
            system_prompt: str | None,
            messages: list[dict[str, Any]],
            tool_schemas: list[dict[str, Any]],
        ) -> AsyncIterator[Any]:
            payload = list(messages)
            if system_prompt:
                payload.insert(0, {"role": "system", "content": system_prompt})

            kwargs: dict[str, Any] = {
                "model": model,
                "messages": payload,
                "stream": True,
                "stream_options": {"include_usage": True},
                "api_key": config.api_key,
            }
            if config.base_url:
                kwargs["api_base"] = config.base_url
            if config.temperature is not None:
                kwargs["temperature"] = config.temperature
            if config.max_tokens is not None:
                kwargs["max_tokens"] = config.max_tokens
            if tool_schemas:
                kwargs["tools"] = tool_schemas
                kwargs["tool_choice"] = "auto"
            kwargs.update(config.extra_params)

            try:
                response = await litellm.acompletion(**kwargs)
                async for chunk in response:
                    yield chunk
            except Exception as e:
                raise ProviderError(
                    f"{config.provider} request failed: {_redact(str(e), config.api_key)}"
                ) from e

        return submit

    return factory


class ProviderRegistry:
    """Lookup table from provider name to factory."""

    def __init__(self, logger: Any = None):
        self._providers: dict[str, ProviderSpec] = {}
        self.logger = logger or structlog.get_logger().bind(component="provider_registry")

    def register(
        self,
        name: str,
        factory: ProviderFactory,
        normalizer: str = "chat_completions",
        pricing_prefix: str | None = None,
    ) -> None:
        if normalizer not in NORMALIZERS:
            raise ValueError(f"Unknown normalizer '{normalizer}' for provider '{name}'")
        if name in self._providers:
            self.logger.warning("provider_registration_overwritten", provider=name)
        self._providers[name] = ProviderSpec(name, factory, normalizer, pricing_prefix)

    def names(self) -> list[str]:
        return list(self._providers)

    def has(self, name: str) -> bool:
        return name in self._providers

    def create(self, config: ProviderConfig) -> ProviderAdapter:
        """
        Validate the configuration and build an adapter.

        Fails before any network call when the provider is unknown or the
        credential or model is missing.

        Raises:
            UnknownProviderError: No factory registered under that name
            ProviderConfigurationError: Missing API key or model
        """
        spec = self._providers.get(config.provider)
        if spec is None:
            available = ", ".join(sorted(self._providers)) or "none"
            raise UnknownProviderError(
                f"Unknown provider: {config.provider}. Available providers: {available}"
            )
        if not config.api_key:
            raise ProviderConfigurationError(f"API key is required for {config.provider} provider")
        if not config.model:
            raise ProviderConfigurationError(f"Model is required for {config.provider} provider")

        submit = spec.factory(config)
        pricing_model = (
            _litellm_model(spec.pricing_prefix, config.model) if spec.pricing_prefix else None
        )
        self.logger.info(
            "provider_created",
            provider=config.provider,
            model=config.model,
            normalizer=spec.normalizer,
            credential_configured=True,
        )
        return ProviderAdapter(
            name=config.provider,
            model=config.model,
            submit=submit,
            normalizer=spec.normalizer,
            pricing_model=pricing_model,
        )


# provider name -> litellm prefix
LITELLM_PROVIDERS = {
    "openai": "openai",
    "anthropic": "anthropic",
    "google": "gemini",
    "openrouter": "openrouter",
}


def create_default_registry() -> ProviderRegistry:
    """Registry with the built-in litellm backed providers."""
    registry = ProviderRegistry()
    for name, prefix in LITELLM_PROVIDERS.items():
        registry.register(name, litellm_factory(prefix), pricing_prefix=prefix)
    return registry
