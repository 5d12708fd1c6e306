"""
Fragfolio Backend — OpenAI Provider
=====================================

Chat Completions API. Structured answers use function calling with
tool_choice="required"; tool arguments arrive as a JSON string.
"""

import json
import logging
from typing import Any, Dict, Tuple

from fragfolio.config import settings
from fragfolio.services.providers.base import Usage, tool_arguments_from_text
from fragfolio.services.providers.http import HTTPProvider

logger = logging.getLogger(__name__)


class OpenAIProvider(HTTPProvider):
    name = "openai"
    base_url = "https://api.openai.com/v1"

    def __init__(self, api_key: str = "", model: str = "", **kwargs):
        super().__init__(
            api_key=api_key or settings.openai_api_key,
            model=model or settings.openai_model,
            base_url=kwargs.pop("base_url", None) or settings.openai_base_url,
            **kwargs,
        )

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    @staticmethod
    def _usage(data: Dict[str, Any]) -> Usage:
        usage = data.get("usage") or {}
        return {
            "input_tokens": usage.get("prompt_tokens", 0),
            "output_tokens": usage.get("completion_tokens", 0),
        }

    async def _call_tool(self, prompt: str, schema: Dict[str, Any]) -> Tuple[Dict[str, Any], Usage]:
        data = await self._post_json(
            "/chat/completions",
            {
                "model": self.model,
                "messages": [{"role": "user", "content": prompt}],
                "tools": [{"type": "function", "function": schema}],
                "tool_choice": "required",
                "temperature": 0.1,
            },
        )
        message = (data.get("choices") or [{}])[0].get("message") or {}

        for tool_call in message.get("tool_calls") or []:
            function = tool_call.get("function") or {}
            if function.get("name") != schema["name"]:
                continue
            try:
                return json.loads(function.get("arguments") or "{}"), self._usage(data)
            except json.JSONDecodeError:
                logger.warning("openai returned malformed arguments for %s", schema["name"])

        return tool_arguments_from_text(message.get("content") or ""), self._usage(data)

    async def _call_text(self, prompt: str, max_tokens: int, temperature: float) -> Tuple[str, Usage]:
        data = await self._post_json(
            "/chat/completions",
            {
                "model": self.model,
                "messages": [{"role": "user", "content": prompt}],
                "max_tokens": max_tokens,
                "temperature": temperature,
            },
        )
        message = (data.get("choices") or [{}])[0].get("message") or {}
        return message.get("content") or "", self._usage(data)

    async def health_check(self) -> bool:
        return await self._ping("/models")
