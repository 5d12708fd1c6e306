"""
Fragfolio Backend — Completion Service
========================================

What:  Real-time brand / fragrance name completion for the smart-input box.
Who:   POST /api/ai/complete and /api/ai/batch-complete.
When:  On (debounced) keystrokes once the query has 2+ characters.

Flow:
    query → cache (ai:completion:md5(query:type:provider:language), 5 min)
          → provider.complete() → similarity-adjusted confidence → response
          ↘ provider failure: static candidate list, confidence 0.5

Design Decision:
    Fallback results are not cached. A provider outage must not pin stale
    low-confidence suggestions in the cache after the provider recovers.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from fragfolio.cache import ai_cache, make_key
from fragfolio.config import settings
from fragfolio.exceptions import ValidationError
from fragfolio.services.cost_tracking_service import cost_tracking_service
from fragfolio.services.feedback_service import feedback_service
from fragfolio.services.provider_factory import provider_factory
from fragfolio.services.similarity import levenshtein_similarity, match_score

logger = logging.getLogger(__name__)

MIN_QUERY_LENGTH = 2
MAX_LIMIT = 20
MAX_FALLBACK_SUGGESTIONS = 5

FALLBACK_BRANDS = ["CHANEL", "Dior", "Tom Ford", "Creed", "Jo Malone"]
FALLBACK_FRAGRANCES = ["No.5", "Sauvage", "Black Orchid", "Aventus", "Lime Basil & Mandarin"]


class CompletionService:

    async def complete(self, db: Optional[AsyncSession], query: str,
                       options: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Complete one query. Never raises for provider problems.

        Options:
            type (brand|fragrance), limit (≤ 20), language, provider,
            user_id, few_shot_examples
        """
        options = options or {}
        if len(query.strip()) < MIN_QUERY_LENGTH:
            return {
                "suggestions": [],
                "message": "Query must be at least 2 characters long",
                "response_time_ms": 0,
                "provider": None,
                "cost_estimate": 0.0,
            }

        provider = options.get("provider")
        query_type = options.get("type") or "brand"
        limit = min(options.get("limit") or 10, MAX_LIMIT)
        language = options.get("language") or "ja"
        user_id = options.get("user_id")

        try:
            cache_key = make_key(
                "ai:completion:", query, query_type, provider or provider_factory.default_provider(), language
            )

            async def load() -> Dict[str, Any]:
                reply = await provider_factory.create(provider).complete(query, {
                    "type": query_type,
                    "limit": limit,
                    "language": language,
                    "few_shot_examples": options.get("few_shot_examples") or [],
                })
                reply["suggestions"] = self._process_suggestions(reply.get("suggestions") or [], query)
                return reply

            result, hit = await ai_cache.remember(cache_key, settings.ai_cache_ttl_completion, load)
        except Exception as e:
            logger.error(
                "Completion failed for query='%s' type=%s provider=%s: %s",
                query, query_type, provider, str(e),
            )
            return self._fallback(query, query_type)

        if user_id and db is not None and not hit:
            await cost_tracking_service.track_usage(
                db,
                user_id,
                result.get("provider"),
                "completion",
                cost=result.get("cost_estimate", 0.0),
                response_time_ms=result.get("response_time_ms", 0),
                tokens_used=result.get("tokens_used", 0),
            )

        result["cached"] = hit
        return result

    async def batch_complete(self, db: Optional[AsyncSession], queries: List[str],
                             options: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        results = [await self.complete(db, query, options) for query in queries]
        return {
            "results": results,
            "total_queries": len(queries),
            "total_cost_estimate": sum(r.get("cost_estimate") or 0.0 for r in results),
        }

    @staticmethod
    def _process_suggestions(suggestions: List[Any], query: str) -> List[Dict[str, Any]]:
        """Score each suggestion against the query; entries that are not objects are dropped."""
        if not isinstance(suggestions, list):
            raise TypeError(f"suggestions must be a list, got {type(suggestions).__name__}")
        processed = []
        for suggestion in suggestions:
            if not isinstance(suggestion, dict):
                logger.warning("Dropping malformed suggestion: %r", suggestion)
                continue
            similarity = levenshtein_similarity(query, str(suggestion.get("text") or ""))
            try:
                confidence = float(suggestion.get("confidence") or 0.0)
            except (TypeError, ValueError):
                confidence = 0.0
            processed.append({
                **suggestion,
                "confidence": confidence,
                "similarity_score": round(similarity, 3),
                "adjusted_confidence": round(confidence * (0.7 + 0.3 * similarity), 3),
            })
        return processed

    @staticmethod
    def _fallback(query: str, query_type: str) -> Dict[str, Any]:
        candidates = FALLBACK_BRANDS if query_type == "brand" else FALLBACK_FRAGRANCES
        needle = query.strip().lower()
        matches = [c for c in candidates if needle in c.lower()]
        matches.sort(key=lambda c: match_score(query.strip(), c), reverse=True)

        return {
            "suggestions": [
                {
                    "text": candidate,
                    "confidence": 0.5,
                    "type": query_type,
                    "metadata": {"source": "fallback"},
                }
                for candidate in matches[:MAX_FALLBACK_SUGGESTIONS]
            ],
            "response_time_ms": 0,
            "provider": "fallback",
            "cost_estimate": 0.0,
            "cached": False,
            "error": "AI provider unavailable, using fallback suggestions",
        }

    # ── Use case (called by the routes) ───────────────────────────────────

    async def _prepare(self, db: AsyncSession, options: Dict[str, Any]) -> None:
        if options.get("user_id"):
            await cost_tracking_service.ensure_within_limits(db, options["user_id"])
        provider = options.get("provider")
        if provider and not provider_factory.is_provider_available(provider):
            raise ValidationError(f"Provider {provider} is not available", field="provider")

    async def complete_fragrance(self, db: AsyncSession, query: str,
                                 options: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Route-level completion: limits, provider check, few-shot examples,
        ordering by adjusted confidence and response metadata.

        Raises:
            ValidationError: empty query or unavailable provider
            UsageLimitExceededError: the user's AI budget is exhausted
        """
        options = dict(options or {})
        query = query.strip()
        if not query:
            raise ValidationError("Query cannot be empty", field="query")
        await self._prepare(db, options)

        if "few_shot_examples" not in options:
            options["few_shot_examples"] = (
                await feedback_service.get_few_shot_examples(db, query, "completion")
                or feedback_service.general_few_shot_examples()
            )

        result = await self.complete(db, query, options)
        result["suggestions"].sort(
            key=lambda s: s.get("adjusted_confidence", s.get("confidence", 0)) or 0,
            reverse=True,
        )
        result["metadata"] = {
            "query": query,
            "type": options.get("type") or "unknown",
            "language": options.get("language") or "ja",
            "provider": result.get("provider") or "unknown",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

        logger.info(
            "Fragrance completion: query='%s' provider=%s suggestions=%d cost=%.6f cached=%s user=%s",
            query,
            result.get("provider"),
            len(result["suggestions"]),
            result.get("cost_estimate") or 0.0,
            result.get("cached", False),
            options.get("user_id"),
        )
        return result

    async def complete_fragrance_batch(self, db: AsyncSession, queries: List[str],
                                       options: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        options = dict(options or {})
        await self._prepare(db, options)
        result = await self.batch_complete(db, queries, options)
        logger.info(
            "Batch completion: %d queries, total_cost=%.6f, user=%s",
            len(queries), result["total_cost_estimate"], options.get("user_id"),
        )
        return result


completion_service = CompletionService()
