"""
Model catalog per provider.

Used to fill in a default model when none is configured and to list the
known models in the CLI. Unknown model ids are still accepted by the
provider factories; the catalog is advisory.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class ProviderModels:
    models: tuple[str, ...]
    default_model: str
    description: str


AVAILABLE_MODELS: dict[str, ProviderModels] = {
    "openai": ProviderModels(
        models=(
            "gpt-4.1",
            "gpt-4.1-mini",
            "gpt-4.1-nano",
            "gpt-4o",
            "gpt-4o-mini",
            "gpt-4-turbo",
            "gpt-3.5-turbo",
        ),
        default_model="gpt-4.1",
        description="OpenAI GPT models",
    ),
    "anthropic": ProviderModels(
        models=(
            "claude-sonnet-4-20250514",
            "claude-opus-4-20250514",
            "claude-3-7-sonnet-20250219",
            "claude-3-5-sonnet-20241022",
            "claude-3-5-haiku-20241022",
        ),
        default_model="claude-sonnet-4-20250514",
        description="Anthropic Claude models",
    ),
    "google": ProviderModels(
        models=(
            "gemini-2.5-pro",
            "gemini-2.5-flash",
            "gemini-2.0-flash",
            "gemini-1.5-pro",
            "gemini-1.5-flash",
        ),
        default_model="gemini-2.0-flash",
        description="Google Gemini models",
    ),
    "openrouter": ProviderModels(
        models=(
            "anthropic/claude-3.5-sonnet",
            "openai/gpt-4o",
            "openai/gpt-4o-mini",
            "google/gemini-pro-1.5",
            "meta-llama/llama-3.1-405b-instruct",
            "qwen/qwen-2.5-72b-instruct",
        ),
        default_model="anthropic/claude-3.5-sonnet",
        description="Models from many vendors through OpenRouter",
    ),
}


def get_all_providers() -> list[str]:
    return list(AVAILABLE_MODELS)


def get_default_model(provider: str) -> str | None:
    entry = AVAILABLE_MODELS.get(provider)
    return entry.default_model if entry else None


def get_available_models(provider: str) -> list[str]:
    entry = AVAILABLE_MODELS.get(provider)
    return list(entry.models) if entry else []


def is_valid_model(provider: str, model: str) -> bool:
    return model in get_available_models(provider)
