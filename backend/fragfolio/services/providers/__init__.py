"""LLM provider implementations behind the AIProvider interface."""

from fragfolio.services.providers.anthropic_provider import AnthropicProvider
from fragfolio.services.providers.base import AIProvider, CircuitBreaker
from fragfolio.services.providers.gemini_provider import GeminiProvider
from fragfolio.services.providers.openai_provider import OpenAIProvider

__all__ = ["AIProvider", "AnthropicProvider", "CircuitBreaker", "GeminiProvider", "OpenAIProvider"]
