"""
Fragfolio Backend — Anthropic Provider
========================================

Messages API. Structured answers are forced with
tool_choice={"type": "tool", "name": ...}; the arguments come back already
decoded in the `input` of a tool_use content block.
"""

from typing import Any, Dict, Tuple

from fragfolio.config import settings
from fragfolio.services.providers.base import Usage, tool_arguments_from_text
from fragfolio.services.providers.http import HTTPProvider

TOOL_MAX_TOKENS = 1000


class AnthropicProvider(HTTPProvider):
    name = "anthropic"
    base_url = "https://api.anthropic.com/v1"

    def __init__(self, api_key: str = "", model: str = "", **kwargs):
        super().__init__(
            api_key=api_key or settings.anthropic_api_key,
            model=model or settings.anthropic_model,
            base_url=kwargs.pop("base_url", None) or settings.anthropic_base_url,
            **kwargs,
        )

    def _headers(self) -> Dict[str, str]:
        return {
            "x-api-key": self.api_key,
            "anthropic-version": settings.anthropic_version,
            "Content-Type": "application/json",
        }

    @staticmethod
    def _usage(data: Dict[str, Any]) -> Usage:
        usage = data.get("usage") or {}
        return {
            "input_tokens": usage.get("input_tokens", 0),
            "output_tokens": usage.get("output_tokens", 0),
        }

    @staticmethod
    def _text(data: Dict[str, Any]) -> str:
        return "".join(
            block.get("text", "") for block in data.get("content") or [] if block.get("type") == "text"
        )

    async def _call_tool(self, prompt: str, schema: Dict[str, Any]) -> Tuple[Dict[str, Any], Usage]:
        data = await self._post_json(
            "/messages",
            {
                "model": self.model,
                "max_tokens": TOOL_MAX_TOKENS,
                "messages": [{"role": "user", "content": prompt}],
                "tools": [{
                    "name": schema["name"],
                    "description": schema["description"],
                    "input_schema": schema["parameters"],
                }],
                "tool_choice": {"type": "tool", "name": schema["name"]},
            },
        )
        for block in data.get("content") or []:
            if block.get("type") == "tool_use" and block.get("name") == schema["name"]:
                return block.get("input") or {}, self._usage(data)

        return tool_arguments_from_text(self._text(data)), self._usage(data)

    async def _call_text(self, prompt: str, max_tokens: int, temperature: float) -> Tuple[str, Usage]:
        data = await self._post_json(
            "/messages",
            {
                "model": self.model,
                "max_tokens": max_tokens,
                "temperature": temperature,
                "messages": [{"role": "user", "content": prompt}],
            },
        )
        return self._text(data), self._usage(data)

    async def health_check(self) -> bool:
        return await self._ping("/models")
