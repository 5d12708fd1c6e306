"""
Fragfolio Backend — Google Gemini Provider
============================================

What:  AIProvider backed by the google-generativeai SDK.
How:   Function declarations are passed as tools and forced with
       function_calling_config mode=ANY. The SDK raises generic exceptions for
       API errors, so every exception is retried.

Schema notes:
    Gemini accepts a subset of OpenAPI: upper-case type names and no
    minimum/maximum keywords. Schemas are sanitized before they are sent.
"""

import asyncio
import logging
from typing import Any, Dict, Tuple

import google.generativeai as genai
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from fragfolio.config import settings
from fragfolio.services.providers.base import AIProvider, Usage, strip_unsupported, tool_arguments_from_text

logger = logging.getLogger(__name__)

GEMINI_SCHEMA_KEYS = ["type", "description", "enum", "items", "properties", "required", "nullable"]


def _gemini_schema(schema: Dict[str, Any]) -> Dict[str, Any]:
    cleaned = strip_unsupported(schema, GEMINI_SCHEMA_KEYS)

    def upper_types(node: Dict[str, Any]) -> Dict[str, Any]:
        if isinstance(node.get("type"), str):
            node["type"] = node["type"].upper()
        for sub in (node.get("properties") or {}).values():
            upper_types(sub)
        if isinstance(node.get("items"), dict):
            upper_types(node["items"])
        return node

    return upper_types(cleaned)


def _to_plain(value: Any) -> Any:
    """Convert proto MapComposite / RepeatedComposite into dicts and lists."""
    if hasattr(value, "items") and callable(value.items):
        return {key: _to_plain(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)) or (
        hasattr(value, "__iter__") and not isinstance(value, (str, bytes, dict))
    ):
        return [_to_plain(item) for item in value]
    return value


class GeminiProvider(AIProvider):
    name = "gemini"

    def __init__(self, api_key: str = "", model: str = ""):
        super().__init__(
            api_key=api_key or settings.gemini_api_key,
            model=model or settings.gemini_model,
        )
        # The SDK keeps credentials in module-level state
        if self.api_key and not self.api_key.startswith("your_"):
            genai.configure(api_key=self.api_key)

        logger.info(
            "GeminiProvider initialized with model=%s, circuit_breaker(threshold=%d, recovery=%ds)",
            self.model,
            settings.cb_failure_threshold,
            settings.cb_recovery_timeout,
        )

    @staticmethod
    def _usage(response: Any) -> Usage:
        metadata = getattr(response, "usage_metadata", None)
        return {
            "input_tokens": getattr(metadata, "prompt_token_count", 0) or 0,
            "output_tokens": getattr(metadata, "candidates_token_count", 0) or 0,
        }

    @retry(
        retry=retry_if_exception_type(Exception),
        stop=stop_after_attempt(settings.retry_max_attempts),
        wait=wait_exponential_jitter(
            initial=settings.retry_min_wait,
            max=settings.retry_max_wait,
            jitter=1,
        ),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def _generate(self, prompt: str, **kwargs) -> Any:
        model = genai.GenerativeModel(self.model, tools=kwargs.pop("tools", None))
        return await model.generate_content_async(
            prompt,
            request_options={"timeout": settings.ai_request_timeout},
            **kwargs,
        )

    async def _call_tool(self, prompt: str, schema: Dict[str, Any]) -> Tuple[Dict[str, Any], Usage]:
        declaration = {
            "name": schema["name"],
            "description": schema["description"],
            "parameters": _gemini_schema(schema["parameters"]),
        }
        response = await self._generate(
            prompt,
            tools=[{"function_declarations": [declaration]}],
            tool_config={
                "function_calling_config": {
                    "mode": "ANY",
                    "allowed_function_names": [schema["name"]],
                },
            },
            generation_config={"temperature": 0.1},
        )

        text_parts = []
        for candidate in getattr(response, "candidates", None) or []:
            for part in getattr(candidate.content, "parts", None) or []:
                function_call = getattr(part, "function_call", None)
                if function_call and function_call.name == schema["name"]:
                    return _to_plain(function_call.args), self._usage(response)
                if getattr(part, "text", None):
                    text_parts.append(part.text)
            break

        return tool_arguments_from_text("".join(text_parts)), self._usage(response)

    async def _call_text(self, prompt: str, max_tokens: int, temperature: float) -> Tuple[str, Usage]:
        response = await self._generate(
            prompt,
            generation_config={"max_output_tokens": max_tokens, "temperature": temperature},
        )
        return (response.text or "").strip(), self._usage(response)

    async def health_check(self) -> bool:
        """Lists models; costs no tokens."""
        try:
            models = await asyncio.to_thread(lambda: list(genai.list_models()))
        except Exception as e:
            logger.warning("gemini health check failed: %s", str(e))
            return False
        return len(models) > 0
