"""
LLM factory for creating provider instances.

Providers are resolved through a plain mapping handed to ``create_llm``;
callers that need another backend pass their own mapping instead of
registering it globally.
"""

from typing import Callable, Mapping

from ..config import ProviderConfig, Settings
from ..errors import ConfigError
from .anthropic import AnthropicLLM
from .base import BaseLLM
from .openai import OpenAILLM

ProviderFactory = Callable[[ProviderConfig], BaseLLM]


def _openai_compatible(config: ProviderConfig) -> BaseLLM:
    return OpenAILLM(
        api_key=config.api_key,
        model=config.model,
        base_url=config.base_url,
        max_tokens=config.max_tokens,
        temperature=config.temperature,
        provider=config.type,
    )


def _anthropic(config: ProviderConfig) -> BaseLLM:
    return AnthropicLLM(
        api_key=config.api_key,
        model=config.model,
        base_url=config.base_url,
        max_tokens=config.max_tokens,
        temperature=config.temperature,
    )


DEFAULT_FACTORIES: dict[str, ProviderFactory] = {
    "openai": _openai_compatible,
    "zhipu": _openai_compatible,  # Z.AI speaks the OpenAI wire format
    "anthropic": _anthropic,
}


def create_llm(
    config: ProviderConfig | None = None,
    settings: Settings | None = None,
    factories: Mapping[str, ProviderFactory] | None = None,
) -> BaseLLM:
    """Create an LLM instance based on configuration.

    Provider routing:
    - openai -> OpenAILLM
    - zhipu -> OpenAILLM against the Z.AI endpoint
    - anthropic -> AnthropicLLM (native Anthropic SDK)
    """
    if config is None:
        if settings is None:
            from ..config import get_settings
            settings = get_settings()
        config = settings.provider

    factories = DEFAULT_FACTORIES if factories is None else factories

    factory = factories.get(config.type)
    if factory is None:
        raise ConfigError(f"Unknown LLM provider: {config.type}")

    if not config.api_key:
        raise ConfigError(
            "API key is required: set IGENT_PROVIDER__API_KEY or run `igent config init`"
        )

    return factory(config)
