"""
Fragfolio Backend — AI Provider Unit Tests (Mocked Transports)
================================================================

What:  Tests for the circuit breaker and the three vendor adapters.
Why:   Tests should not make real API calls (costs money, requires network).
How:   OpenAI/Anthropic run against httpx.MockTransport; Gemini patches the
       google.generativeai module.

What we test:
    ✅ Circuit breaker state machine (closed → open → half_open → closed)
    ✅ Tool-call arguments parsed per vendor wire format
    ✅ Text fallback when the model skipped the tool call
    ✅ Retryable HTTP status → retried, then LLMServiceError
    ✅ Health checks never spend tokens
    ❌ Real API calls
"""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from tenacity import stop_after_attempt, wait_none

from fragfolio.exceptions import CircuitBreakerOpenError, LLMServiceError
from fragfolio.services.providers import AnthropicProvider, OpenAIProvider
from fragfolio.services.providers.base import CircuitBreaker
from fragfolio.services.providers.http import HTTPProvider

SUGGESTIONS = [
    {"text": "シャネル", "text_en": "CHANEL", "confidence": 0.95, "type": "brand"},
    {"text": "ディオール", "text_en": "Dior", "confidence": 0.9, "type": "brand"},
]


def openai_provider(handler) -> OpenAIProvider:
    return OpenAIProvider(
        api_key="sk-test",
        model="gpt-4o-mini",
        base_url="https://api.test/v1",
        transport=httpx.MockTransport(handler),
    )


def anthropic_provider(handler) -> AnthropicProvider:
    return AnthropicProvider(
        api_key="ak-test",
        model="claude-3-haiku-20240307",
        base_url="https://anthropic.test/v1",
        transport=httpx.MockTransport(handler),
    )


class TestCircuitBreaker:
    """Tests for the CircuitBreaker resilience pattern."""

    def test_initial_state_is_closed(self):
        cb = CircuitBreaker(failure_threshold=5, recovery_timeout=60)
        assert cb.state == "closed"
        assert cb.can_execute()

    def test_opens_at_threshold(self):
        """Circuit breaker should OPEN when failures reach threshold."""
        cb = CircuitBreaker(failure_threshold=3, recovery_timeout=60)
        for _ in range(2):
            cb.record_failure()
        assert cb.state == "closed"
        cb.record_failure()
        assert cb.state == "open"

    def test_open_circuit_rejects_calls_with_remaining_time(self):
        cb = CircuitBreaker(failure_threshold=1, recovery_timeout=60)
        with patch("fragfolio.services.providers.base.time.time", return_value=1000.0):
            cb.record_failure()
        with patch("fragfolio.services.providers.base.time.time", return_value=1030.0):
            with pytest.raises(CircuitBreakerOpenError) as exc_info:
                cb.can_execute()
        assert exc_info.value.recovery_time == 30

    def test_half_open_after_timeout_then_closes_on_success(self):
        cb = CircuitBreaker(failure_threshold=1, recovery_timeout=60)
        with patch("fragfolio.services.providers.base.time.time", return_value=1000.0):
            cb.record_failure()
        with patch("fragfolio.services.providers.base.time.time", return_value=1061.0):
            assert cb.can_execute()
        assert cb.state == "half_open"

        cb.record_success()
        assert cb.snapshot() == {"state": "closed", "failure_count": 0}

    def test_half_open_failure_reopens(self):
        cb = CircuitBreaker(failure_threshold=5, recovery_timeout=60)
        cb.state = CircuitBreaker.HALF_OPEN
        cb.record_failure()
        assert cb.state == "open"


class TestOpenAIProvider:

    @pytest.mark.asyncio
    async def test_complete_parses_tool_call_arguments(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={
                "choices": [{"message": {"tool_calls": [{
                    "function": {
                        "name": "suggest_fragrances",
                        "arguments": json.dumps({"suggestions": SUGGESTIONS}),
                    },
                }]}}],
                "usage": {"prompt_tokens": 1000, "completion_tokens": 500},
            })

        provider = openai_provider(handler)
        result = await provider.complete("chan", {"type": "brand", "limit": 5})

        assert seen["path"] == "/v1/chat/completions"
        assert seen["auth"] == "Bearer sk-test"
        assert seen["body"]["tool_choice"] == "required"
        assert result["suggestions"] == SUGGESTIONS
        assert result["provider"] == "openai"
        assert result["ai_model"] == "gpt-4o-mini"
        assert result["tokens_used"] == 1500
        assert result["cost_estimate"] == pytest.approx(0.00045)
        await provider.aclose()

    @pytest.mark.asyncio
    async def test_text_reply_is_salvaged(self):
        """A model that answers in prose instead of calling the tool still yields suggestions."""
        content = "```json\n" + json.dumps({"suggestions": SUGGESTIONS[:1]}) + "\n```"

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"choices": [{"message": {"content": content}}]})

        result = await openai_provider(handler).complete("chan")
        assert result["suggestions"] == SUGGESTIONS[:1]
        assert result["tokens_used"] == 0

    @pytest.mark.asyncio
    async def test_empty_reply_is_llm_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"choices": [{"message": {"content": ""}}]})

        with pytest.raises(LLMServiceError):
            await openai_provider(handler).complete("chan")

    @pytest.mark.asyncio
    async def test_server_error_becomes_llm_error_and_counts_failure(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503, text="overloaded")

        provider = openai_provider(handler)
        with pytest.raises(LLMServiceError) as exc_info:
            await provider.complete("chan")

        assert exc_info.value.context["error_type"] == "RetryableProviderError"
        assert provider.circuit_breaker.failure_count == 1

    @pytest.mark.asyncio
    async def test_retryable_status_is_retried(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            if len(calls) < 3:
                return httpx.Response(429, text="slow down")
            return httpx.Response(200, json={"ok": True})

        provider = openai_provider(handler)
        post = HTTPProvider._post_json.retry_with(stop=stop_after_attempt(3), wait=wait_none())
        assert await post(provider, "/chat/completions", {}) == {"ok": True}
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_suggest_notes_reads_json_from_text(self):
        notes = {"top": [{"name": "bergamot", "intensity": "strong", "confidence": 0.8}], "middle": [], "base": []}

        def handler(request: httpx.Request) -> httpx.Response:
            body = json.loads(request.content)
            assert "tools" not in body
            return httpx.Response(200, json={
                "choices": [{"message": {"content": json.dumps({"notes": notes, "confidence_score": 0.7})}}],
                "usage": {"prompt_tokens": 10, "completion_tokens": 10},
            })

        result = await openai_provider(handler).suggest_notes("Chanel", "No.5")
        assert result["notes"] == notes
        assert result["confidence_score"] == 0.7

    @pytest.mark.asyncio
    async def test_health_check_lists_models(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.method == "GET"
            assert request.url.path == "/v1/models"
            return httpx.Response(200, json={"data": []})

        assert await openai_provider(handler).health_check() is True

    @pytest.mark.asyncio
    async def test_health_check_reports_bad_key(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, json={"error": "invalid key"})

        assert await openai_provider(handler).health_check() is False


class TestAnthropicProvider:

    @pytest.mark.asyncio
    async def test_normalize_reads_tool_use_block(self):
        normalized = {
            "normalized_brand": "CHANEL",
            "normalized_fragrance_name": "No.5",
            "final_confidence_score": 0.92,
        }
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["headers"] = request.headers
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={
                "content": [
                    {"type": "text", "text": "Normalizing."},
                    {"type": "tool_use", "name": "normalize_fragrance", "input": normalized},
                ],
                "usage": {"input_tokens": 200, "output_tokens": 100},
            })

        result = await anthropic_provider(handler).normalize("シャネル", "No5")

        assert seen["headers"]["x-api-key"] == "ak-test"
        assert "anthropic-version" in seen["headers"]
        assert seen["body"]["tool_choice"] == {"type": "tool", "name": "normalize_fragrance"}
        assert "input_schema" in seen["body"]["tools"][0]
        assert result["normalized_data"] == normalized
        assert result["provider"] == "anthropic"
        assert result["tokens_used"] == 300

    @pytest.mark.asyncio
    async def test_bad_request_is_not_retried(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(400, json={"error": "bad request"})

        provider = anthropic_provider(handler)
        post = HTTPProvider._post_json.retry_with(stop=stop_after_attempt(3), wait=wait_none())
        with pytest.raises(Exception) as exc_info:
            await post(provider, "/messages", {})
        assert type(exc_info.value).__name__ == "ProviderHTTPError"
        assert len(calls) == 1


class TestGeminiProvider:

    @pytest.mark.asyncio
    @patch("fragfolio.services.providers.gemini_provider.genai")
    async def test_complete_reads_function_call(self, mock_genai):
        from fragfolio.services.providers import GeminiProvider

        part = MagicMock()
        part.function_call.name = "suggest_fragrances"
        part.function_call.args = {"suggestions": SUGGESTIONS}
        candidate = MagicMock()
        candidate.content.parts = [part]
        response = MagicMock()
        response.candidates = [candidate]
        response.usage_metadata.prompt_token_count = 40
        response.usage_metadata.candidates_token_count = 20

        model = MagicMock()
        model.generate_content_async = AsyncMock(return_value=response)
        mock_genai.GenerativeModel.return_value = model

        provider = GeminiProvider(api_key="g-test", model="gemini-2.5-flash")
        result = await provider.complete("dio")

        mock_genai.configure.assert_called_once_with(api_key="g-test")
        _, kwargs = model.generate_content_async.call_args
        assert kwargs["tool_config"]["function_calling_config"]["mode"] == "ANY"
        assert result["suggestions"] == SUGGESTIONS
        assert result["provider"] == "gemini"
        assert result["tokens_used"] == 60

    @pytest.mark.asyncio
    @patch("fragfolio.services.providers.gemini_provider.genai")
    async def test_sdk_failure_opens_breaker(self, mock_genai):
        from fragfolio.services.providers import GeminiProvider

        model = MagicMock()
        model.generate_content_async = AsyncMock(side_effect=RuntimeError("quota"))
        mock_genai.GenerativeModel.return_value = model

        provider = GeminiProvider(api_key="g-test")
        provider.circuit_breaker.failure_threshold = 2

        for _ in range(2):
            with pytest.raises(LLMServiceError):
                await provider.complete("dio")
        with pytest.raises(CircuitBreakerOpenError):
            await provider.complete("dio")
