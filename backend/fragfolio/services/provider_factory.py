"""
Fragfolio Backend — AI Provider Factory
=========================================

What:  Resolves a provider name to a live AIProvider instance.
Who:   Completion, normalization and note services; the health routes.

Instances are cached per name, so a provider's circuit breaker and HTTP
connection pool are shared by every request in the process.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Type

from fragfolio.config import settings
from fragfolio.exceptions import FragfolioError, ProviderConfigurationError, ValidationError
from fragfolio.services.providers import AIProvider, AnthropicProvider, GeminiProvider, OpenAIProvider

logger = logging.getLogger(__name__)

PROVIDER_CLASSES: Dict[str, Type[AIProvider]] = {
    "openai": OpenAIProvider,
    "anthropic": AnthropicProvider,
    "gemini": GeminiProvider,
}

DISPLAY_NAMES = {
    "openai": "OpenAI GPT",
    "anthropic": "Anthropic Claude",
    "gemini": "Google Gemini",
}


class ProviderFactory:
    def __init__(self):
        self._instances: Dict[str, AIProvider] = {}

    def create(self, name: Optional[str] = None) -> AIProvider:
        """
        Args:
            name: openai | anthropic | gemini, any case. None picks the default.

        Raises:
            ValidationError: unknown provider name
            ProviderConfigurationError: name is None and nothing is configured
        """
        key = (name or self.default_provider()).strip().lower()
        if key not in PROVIDER_CLASSES:
            raise ValidationError(f"Unsupported AI provider: {name}", field="provider")

        if key not in self._instances:
            self._instances[key] = PROVIDER_CLASSES[key]()
            logger.info("Created AI provider instance: %s", key)
        return self._instances[key]

    def available_providers(self) -> List[str]:
        return settings.configured_providers()

    def is_provider_available(self, name: Optional[str]) -> bool:
        return bool(name) and name.strip().lower() in self.available_providers()

    def default_provider(self) -> str:
        available = self.available_providers()
        if settings.ai_default_provider in available:
            return settings.ai_default_provider
        if available:
            return available[0]
        raise ProviderConfigurationError()

    def instances(self) -> Dict[str, AIProvider]:
        """Providers created so far (the health endpoint reports their breakers)."""
        return dict(self._instances)

    def reset(self) -> None:
        self._instances.clear()

    async def health_report(self, name: Optional[str] = None) -> Dict[str, Any]:
        """
        Check one provider, or every configured one.

        overall_status is healthy when all checks pass, degraded when some
        do, critical when none do (or nothing is configured).
        """
        names = [name] if name else self.available_providers()
        results: Dict[str, Dict[str, Any]] = {}
        for provider_name in names:
            checked_at = datetime.now(timezone.utc).isoformat()
            try:
                provider = self.create(provider_name)
                start = time.perf_counter()
                healthy = await provider.health_check()
                results[provider.name] = {
                    "status": "healthy" if healthy else "error",
                    "response_time_ms": round((time.perf_counter() - start) * 1000, 2),
                    "circuit_breaker": provider.circuit_breaker.snapshot(),
                    "last_checked": checked_at,
                }
            except FragfolioError as e:
                results[provider_name] = {"status": "error", "error": e.message, "last_checked": checked_at}

        healthy_count = sum(1 for result in results.values() if result["status"] == "healthy")
        if healthy_count == 0:
            overall = "critical"
        elif healthy_count < len(results):
            overall = "degraded"
        else:
            overall = "healthy"
        return {"providers": results, "overall_status": overall}

    def describe(self) -> Dict[str, Any]:
        providers = self.available_providers()
        return {
            "providers": providers,
            "default": self.default_provider() if providers else None,
            "total": len(providers),
        }

    def catalog(self) -> Dict[str, Any]:
        """Every supported provider, configured or not, with its model."""
        available = self.available_providers()
        providers = [
            {
                "name": name,
                "display_name": DISPLAY_NAMES[name],
                "available": name in available,
                "models": [getattr(settings, f"{name}_model")],
            }
            for name in PROVIDER_CLASSES
        ]
        return {
            "providers": providers,
            "default": self.default_provider() if available else None,
            "total": len(providers),
        }

    async def aclose(self) -> None:
        for provider in self._instances.values():
            await provider.aclose()
        self._instances.clear()


provider_factory = ProviderFactory()
