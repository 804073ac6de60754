"""Convenience exports for the language-model client implementations."""

from .anthropic import AnthropicMessagesClient
from .llm_client import (
    LLMClient,
    LLMClientError,
    LLMRequest,
    LLMResponseFormatError,
    LLMRetryError,
    LLMTransportError,
)
from .openai import OpenAIResponsesClient

__all__ = [
    "AnthropicMessagesClient",
    "LLMClient",
    "LLMClientError",
    "LLMRequest",
    "LLMResponseFormatError",
    "LLMRetryError",
    "LLMTransportError",
    "OpenAIResponsesClient",
]
