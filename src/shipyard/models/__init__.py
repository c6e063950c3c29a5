"""Convenience exports for model client implementations."""

from .anthropic import AnthropicClient
from .llm_client import (
    LLMClient,
    LLMClientError,
    LLMRequest,
    LLMResponseFormatError,
    LLMTransportError,
)

__all__ = [
    "AnthropicClient",
    "LLMClient",
    "LLMClientError",
    "LLMRequest",
    "LLMResponseFormatError",
    "LLMTransportError",
]
