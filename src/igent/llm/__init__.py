"""
LLM module for multi-provider AI model support.

Providers:
- OpenAI GPT (native SDK)
- Zhipu GLM (OpenAI-compatible endpoint)
- Anthropic Claude (native SDK)
"""

from .base import (
    BaseLLM,
    LLMMessage,
    LLMResponse,
    ToolCall,
    ToolDefinition,
    estimate_tokens,
)
from .anthropic import AnthropicLLM
from .openai import OpenAILLM
from .factory import DEFAULT_FACTORIES, create_llm

__all__ = [
    "BaseLLM",
    "LLMMessage",
    "LLMResponse",
    "ToolCall",
    "ToolDefinition",
    "estimate_tokens",
    "AnthropicLLM",
    "OpenAILLM",
    "DEFAULT_FACTORIES",
    "create_llm",
]
