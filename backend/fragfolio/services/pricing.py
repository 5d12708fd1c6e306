"""
Fragfolio Backend — Provider Token Pricing
============================================

USD per 1M tokens as (input, output). Unknown models are billed at the
provider's default model so cost tracking never records zero for a paid call.
"""

from typing import Dict, Mapping, Tuple

PRICING: Dict[str, Dict[str, Tuple[float, float]]] = {
    "openai": {
        "gpt-4o-mini": (0.15, 0.60),
        "gpt-4o": (2.50, 10.00),
        "gpt-4-turbo": (10.00, 30.00),
        "gpt-4": (30.00, 60.00),
        "gpt-3.5-turbo": (0.50, 1.50),
        "o1-mini": (3.00, 12.00),
    },
    "anthropic": {
        "claude-3-5-sonnet-20241022": (3.00, 15.00),
        "claude-3-5-haiku-20241022": (0.80, 4.00),
        "claude-3-haiku-20240307": (0.25, 1.25),
        "claude-3-opus": (15.00, 75.00),
    },
    "gemini": {
        "gemini-2.5-flash": (0.075, 0.30),
        "gemini-2.0-flash": (0.10, 0.40),
        "gemini-2.5-pro": (1.25, 5.00),
        "gemini-1.5-flash": (0.075, 0.30),
    },
}

DEFAULT_MODELS: Dict[str, str] = {
    "openai": "gpt-4o-mini",
    "anthropic": "claude-3-5-sonnet-20241022",
    "gemini": "gemini-2.5-flash",
}


def model_pricing(provider: str, model: str) -> Tuple[float, float]:
    table = PRICING.get(provider)
    if not table:
        return (0.0, 0.0)
    return table.get(model) or table[DEFAULT_MODELS[provider]]


def calculate_cost(provider: str, model: str, usage: Mapping[str, int]) -> float:
    """Cost of one call from its input_tokens / output_tokens counts."""
    input_price, output_price = model_pricing(provider, model)
    input_tokens = usage.get("input_tokens", 0) or 0
    output_tokens = usage.get("output_tokens", 0) or 0
    return (input_tokens * input_price + output_tokens * output_price) / 1_000_000
