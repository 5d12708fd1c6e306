"""
Fragfolio Backend — AI Provider Interface
===========================================

What:  Abstract base class for LLM providers, plus the circuit breaker that
       guards each of them.
Why:   Completion, normalization and note services talk to "a provider";
       which vendor answers is configuration (Strategy pattern).
How:   AIProvider implements every smart-input operation once, on top of two
       vendor hooks:
           _call_tool(prompt, schema) → (arguments dict, usage)
           _call_text(prompt, max_tokens, temperature) → (text, usage)
       Vendors only translate requests and responses for their wire format.

Resilience Strategy:
    1. Circuit breaker per provider instance: after N consecutive failures,
       calls fail instantly until the recovery timeout elapses
    2. Tenacity retries inside the vendor transport (HTTPProvider, Gemini)
    3. Every vendor failure surfaces as LLMServiceError so callers handle a
       single exception type when choosing their fallback
"""

import logging
import time
import uuid
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from fragfolio.config import settings
from fragfolio.exceptions import CircuitBreakerOpenError, LLMServiceError
from fragfolio.services import pricing
from fragfolio.services.prompt_builder import (
    build_attributes_prompt,
    build_completion_prompt,
    build_normalization_prompt,
    build_notes_prompt,
    build_smart_input_prompt,
    completion_tool_schema,
    normalization_tool_schema,
)
from fragfolio.services.providers.json_extract import extract_json, parse_model_json

logger = logging.getLogger(__name__)

Usage = Dict[str, int]


# ══════════════════════════════════════════════════════════════════════════
# Circuit Breaker
# ══════════════════════════════════════════════════════════════════════════

class CircuitBreaker:
    """
    State Machine:
        CLOSED (normal operation)
            → On failure: increment failure_count
            → When failure_count >= threshold: transition to OPEN
        OPEN (rejecting all requests)
            → All calls raise CircuitBreakerOpenError immediately
            → After recovery_timeout seconds: transition to HALF_OPEN
        HALF_OPEN (testing recovery)
            → On success: CLOSED; on failure: back to OPEN

    Not thread-safe; uvicorn async workers share a single process.
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(self, failure_threshold: int = 5, recovery_timeout: int = 60):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time: Optional[float] = None

    def can_execute(self) -> bool:
        """
        Raises:
            CircuitBreakerOpenError if OPEN and the recovery timeout hasn't elapsed.
        """
        if self.state == self.CLOSED:
            return True

        if self.state == self.OPEN:
            elapsed = time.time() - (self.last_failure_time or 0)
            if elapsed >= self.recovery_timeout:
                logger.info("Circuit breaker transitioning to HALF_OPEN after %.1fs", elapsed)
                self.state = self.HALF_OPEN
                return True
            remaining = int(self.recovery_timeout - elapsed)
            raise CircuitBreakerOpenError(recovery_time=max(remaining, 1))

        return True

    def record_success(self) -> None:
        if self.state == self.HALF_OPEN:
            logger.info("Circuit breaker transitioning to CLOSED (provider recovered)")
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time = None

    def record_failure(self) -> None:
        self.failure_count += 1
        self.last_failure_time = time.time()

        if self.state == self.HALF_OPEN:
            logger.warning("Circuit breaker returning to OPEN (test request failed)")
            self.state = self.OPEN
        elif self.failure_count >= self.failure_threshold:
            logger.warning(
                "Circuit breaker OPENING after %d consecutive failures",
                self.failure_count,
            )
            self.state = self.OPEN

    def snapshot(self) -> Dict[str, Any]:
        return {"state": self.state, "failure_count": self.failure_count}


# ══════════════════════════════════════════════════════════════════════════
# Provider Interface
# ══════════════════════════════════════════════════════════════════════════

class AIProvider(ABC):
    """
    Contract:
        - Public operations return plain dicts carrying response_time_ms,
          provider, ai_provider, ai_model and cost_estimate
        - All vendor errors are wrapped in LLMServiceError
        - CircuitBreakerOpenError passes through untouched
    """

    name: str = ""

    def __init__(self, api_key: str, model: str):
        self.api_key = api_key
        self.model = model
        self.circuit_breaker = CircuitBreaker(
            failure_threshold=settings.cb_failure_threshold,
            recovery_timeout=settings.cb_recovery_timeout,
        )

    @property
    def provider_name(self) -> str:
        return self.name

    # ── Vendor hooks ──────────────────────────────────────────────────────

    @abstractmethod
    async def _call_tool(self, prompt: str, schema: Dict[str, Any]) -> Tuple[Dict[str, Any], Usage]:
        """Force one function call matching schema and return its arguments."""
        ...

    @abstractmethod
    async def _call_text(self, prompt: str, max_tokens: int, temperature: float) -> Tuple[str, Usage]:
        """Plain completion; returns the model's text."""
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        """Lightweight reachability check that does NOT consume tokens."""
        ...

    async def aclose(self) -> None:
        """Release vendor clients. Default: nothing to release."""
        return None

    # ── Shared plumbing ───────────────────────────────────────────────────

    def calculate_cost(self, usage: Usage) -> float:
        return pricing.calculate_cost(self.name, self.model, usage)

    async def _guarded(self, operation: str, call: Callable[[], Awaitable[Any]]) -> Tuple[Any, float]:
        """
        Run one vendor call behind the circuit breaker.

        Returns:
            (call result, elapsed milliseconds)
        """
        call_id = uuid.uuid4().hex[:8]
        self.circuit_breaker.can_execute()

        start = time.perf_counter()
        try:
            result = await call()
        except CircuitBreakerOpenError:
            raise
        except Exception as e:
            self.circuit_breaker.record_failure()
            elapsed_ms = (time.perf_counter() - start) * 1000
            logger.error(
                "[%s] %s %s failed after %.0fms: %s",
                call_id, self.name, operation, elapsed_ms, str(e),
            )
            if isinstance(e, LLMServiceError):
                raise
            raise LLMServiceError(
                message=f"{self.name} request failed",
                retry_after=self.circuit_breaker.recovery_timeout
                if self.circuit_breaker.state == CircuitBreaker.OPEN else None,
                context={"call_id": call_id, "operation": operation, "error_type": type(e).__name__},
            ) from e

        self.circuit_breaker.record_success()
        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.info("[%s] %s %s completed in %.0fms", call_id, self.name, operation, elapsed_ms)
        return result, elapsed_ms

    def _envelope(self, payload: Dict[str, Any], elapsed_ms: float, usage: Usage) -> Dict[str, Any]:
        payload.update(
            response_time_ms=round(elapsed_ms, 2),
            provider=self.name,
            ai_provider=self.name,
            ai_model=self.model,
            cost_estimate=self.calculate_cost(usage),
            tokens_used=(usage.get("input_tokens", 0) or 0) + (usage.get("output_tokens", 0) or 0),
        )
        return payload

    # ── Operations ────────────────────────────────────────────────────────

    async def complete(self, query: str, options: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        options = options or {}
        limit = options.get("limit", 10)
        prompt = build_completion_prompt(
            query,
            options.get("type", "brand"),
            limit,
            options.get("language", "ja"),
            options.get("few_shot_examples") or [],
        )
        (arguments, usage), elapsed = await self._guarded(
            "completion", lambda: self._call_tool(prompt, completion_tool_schema(limit))
        )
        return self._envelope({"suggestions": arguments.get("suggestions") or []}, elapsed, usage)

    async def normalize(self, brand_name: str, fragrance_name: str,
                        options: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        options = options or {}
        prompt = build_normalization_prompt(brand_name, fragrance_name, options.get("language", "ja"))
        (arguments, usage), elapsed = await self._guarded(
            "normalization", lambda: self._call_tool(prompt, normalization_tool_schema())
        )
        return self._envelope({"normalized_data": arguments}, elapsed, usage)

    async def normalize_from_input(self, text: str, options: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        options = options or {}
        prompt = build_smart_input_prompt(text, options.get("language", "mixed"))
        (arguments, usage), elapsed = await self._guarded(
            "smart_normalization", lambda: self._call_tool(prompt, normalization_tool_schema())
        )
        return self._envelope({"normalized_data": arguments}, elapsed, usage)

    async def suggest_notes(self, brand_name: str, fragrance_name: str,
                            options: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        options = options or {}
        prompt = build_notes_prompt(brand_name, fragrance_name, options.get("language", "ja"))
        (text, usage), elapsed = await self._guarded(
            "note_suggestion", lambda: self._call_text(prompt, max_tokens=800, temperature=0.2)
        )
        data = _as_object(text)
        return self._envelope(
            {"notes": data.get("notes") or {}, "confidence_score": data.get("confidence_score", 0.0)},
            elapsed,
            usage,
        )

    async def suggest_attributes(self, brand_name: str, fragrance_name: str,
                                 notes: Optional[Dict[str, Any]] = None,
                                 options: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        options = options or {}
        prompt = build_attributes_prompt(brand_name, fragrance_name, options.get("language", "ja"), notes)
        (text, usage), elapsed = await self._guarded(
            "attribute_suggestion", lambda: self._call_text(prompt, max_tokens=600, temperature=0.2)
        )
        data = _as_object(text)
        return self._envelope(
            {"attributes": data.get("attributes") or {}, "confidence_score": data.get("confidence_score", 0.0)},
            elapsed,
            usage,
        )


def _as_object(text: str) -> Dict[str, Any]:
    try:
        data = extract_json(text)
    except ValueError:
        return parse_model_json(text)
    return data if isinstance(data, dict) else {}


def tool_arguments_from_text(text: str) -> Dict[str, Any]:
    """Arguments recovered from a reply that answered in text instead of a tool call."""
    if not text:
        raise LLMServiceError(message="No valid function call found in response")
    return parse_model_json(text)


def strip_unsupported(schema: Dict[str, Any], allowed: List[str]) -> Dict[str, Any]:
    """Recursively drop JSON Schema keywords a vendor does not accept."""
    cleaned: Dict[str, Any] = {}
    for key, value in schema.items():
        if key not in allowed:
            continue
        if key == "properties":
            cleaned[key] = {name: strip_unsupported(sub, allowed) for name, sub in value.items()}
        elif key == "items":
            cleaned[key] = strip_unsupported(value, allowed)
        else:
            cleaned[key] = value
    return cleaned
