"""
Fragfolio Backend — Normalization Service
===========================================

What:  Maps user-typed brand / fragrance names to canonical forms and to the
       brand / fragrance master data.
Who:   POST /api/ai/normalize, /batch-normalize and /smart-normalize.

Pipeline (normalize and normalize_from_input):
    1. Cache lookup (30 min), else provider call
       ↘ provider failure: rule-table fallback (not cached)
    2. Master-data match: exact name, else best partial match above a
       similarity threshold (brand 0.6, fragrance 0.7, within the brand)
    3. Rule tables (brand aliases, ™/®, No.5, concentration codes)
    4. HTML entity decoding of every string field
    5. Default final_confidence_score of 0.75 when the model gave none
"""

import html
import logging
import re
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from fragfolio.cache import ai_cache, make_key
from fragfolio.config import settings
from fragfolio.exceptions import DatabaseError, RateLimitExceededError, ValidationError
from fragfolio.middleware.rate_limit import SlidingWindowLimiter
from fragfolio.models.brand import Brand
from fragfolio.models.fragrance import Fragrance
from fragfolio.services.cost_tracking_service import cost_tracking_service
from fragfolio.services.normalization_rules import (
    apply_rules,
    normalize_brand,
    normalize_fragrance_name,
    sanitize_input,
)
from fragfolio.services.provider_factory import provider_factory
from fragfolio.services.similarity import levenshtein_similarity

logger = logging.getLogger(__name__)

BRAND_MATCH_THRESHOLD = 0.6
FRAGRANCE_MATCH_THRESHOLD = 0.7
DEFAULT_CONFIDENCE = 0.75
MAX_BATCH_SIZE = 10

FALLBACK_REASON = "AI provider unavailable"

# Tried in order by the smart-input fallback: whitespace, nakaguro, slash
_SPLIT_PATTERNS = [
    re.compile(r"(.+?)\s+(.+)"),
    re.compile(r"(.+?)・(.+)"),
    re.compile(r"(.+?)/(.+)"),
]

PROVIDER_RELIABILITY = {
    "openai": 0.9,
    "anthropic": 0.85,
    "gemini": 0.85,
    "fallback": 0.3,
}

SMART_BRAND_KEYS = ("normalized_brand_ja", "normalized_brand_en")
SMART_FRAGRANCE_KEYS = ("normalized_fragrance_ja", "normalized_fragrance_en")

# Per-user hourly caps
normalization_limiter = SlidingWindowLimiter(limit=settings.ai_normalization_per_hour, window=3600)
batch_normalization_limiter = SlidingWindowLimiter(limit=settings.ai_batch_normalization_per_hour, window=3600)


def _contains_pattern(name: str) -> str:
    """ilike pattern matching name anywhere, with its own % and _ taken literally."""
    escaped = name.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _best_match(name: str, rows: List[Any]) -> Tuple[Optional[Any], float]:
    best, best_score = None, 0.0
    for row in rows:
        score = max(levenshtein_similarity(name, row.name_ja), levenshtein_similarity(name, row.name_en))
        if score > best_score:
            best, best_score = row, score
    return best, best_score


class NormalizationService:

    # ── Master data ───────────────────────────────────────────────────────

    async def find_matching_brand(self, db: AsyncSession, name: str) -> Optional[Brand]:
        exact = await db.execute(
            select(Brand)
            .where(or_(Brand.name_ja == name, Brand.name_en == name), Brand.is_active.is_(True))
            .limit(1)
        )
        brand = exact.scalars().first()
        if brand is not None:
            return brand

        pattern = _contains_pattern(name)
        partial = await db.execute(
            select(Brand).where(
                or_(
                    Brand.name_ja.ilike(pattern, escape="\\"),
                    Brand.name_en.ilike(pattern, escape="\\"),
                ),
                Brand.is_active.is_(True),
            )
        )
        best, score = _best_match(name, list(partial.scalars().all()))
        return best if score > BRAND_MATCH_THRESHOLD else None

    async def find_matching_fragrance(self, db: AsyncSession, brand_id: int, name: str) -> Optional[Fragrance]:
        name_filter = or_(Fragrance.name_ja == name, Fragrance.name_en == name)
        exact = await db.execute(
            select(Fragrance)
            .where(Fragrance.brand_id == brand_id, name_filter, Fragrance.is_active.is_(True))
            .limit(1)
        )
        fragrance = exact.scalars().first()
        if fragrance is not None:
            return fragrance

        pattern = _contains_pattern(name)
        partial = await db.execute(
            select(Fragrance).where(
                Fragrance.brand_id == brand_id,
                or_(
                    Fragrance.name_ja.ilike(pattern, escape="\\"),
                    Fragrance.name_en.ilike(pattern, escape="\\"),
                ),
                Fragrance.is_active.is_(True),
            )
        )
        best, score = _best_match(name, list(partial.scalars().all()))
        return best if score > FRAGRANCE_MATCH_THRESHOLD else None

    async def _match_master_data(self, db: Optional[AsyncSession], data: Dict[str, Any],
                                 brand_name: Optional[str], fragrance_name: Optional[str]) -> None:
        if db is None or not brand_name:
            return
        try:
            brand = await self.find_matching_brand(db, brand_name)
            if brand is None:
                return
            data["matched_brand"] = brand.to_match_dict()
            data["brand_match_confidence"] = _best_match(brand_name, [brand])[1]

            if not fragrance_name:
                return
            fragrance = await self.find_matching_fragrance(db, brand.id, fragrance_name)
            if fragrance is not None:
                data["matched_fragrance"] = fragrance.to_match_dict()
                data["fragrance_match_confidence"] = _best_match(fragrance_name, [fragrance])[1]
        except Exception as e:
            logger.error("Master data match failed for brand='%s': %s", brand_name, str(e))
            raise DatabaseError(context={"operation": "master_data_match"}) from e

    # ── Post-processing ───────────────────────────────────────────────────

    @staticmethod
    def _finish(data: Dict[str, Any]) -> None:
        for key, value in data.items():
            if isinstance(value, str):
                data[key] = html.unescape(value)
        if not data.get("final_confidence_score"):
            data["final_confidence_score"] = DEFAULT_CONFIDENCE

    async def _load(self, prefix: str, parts: Tuple, language: str, provider: Optional[str],
                    call) -> Tuple[Optional[Dict[str, Any]], bool]:
        """Cached provider call; (None, False) when the provider failed."""
        try:
            key = make_key(prefix, *parts, provider or provider_factory.default_provider(), language)
            return await ai_cache.remember(
                key,
                settings.ai_cache_ttl_normalization,
                lambda: call(provider_factory.create(provider)),
            )
        except Exception as e:
            logger.warning("AI normalization failed, using fallback: %s", str(e))
            return None, False

    async def _track(self, db: Optional[AsyncSession], user_id: Optional[int], result: Dict[str, Any],
                     operation: str, hit: bool) -> None:
        if user_id and db is not None and not hit and result.get("provider") != "fallback":
            await cost_tracking_service.track_usage(
                db,
                user_id,
                result.get("provider"),
                operation,
                cost=result.get("cost_estimate", 0.0),
                response_time_ms=result.get("response_time_ms", 0),
                tokens_used=result.get("tokens_used", 0),
            )

    # ── Operations ────────────────────────────────────────────────────────

    async def normalize(self, db: Optional[AsyncSession], brand_name: str, fragrance_name: str,
                        options: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Raises:
            ValidationError: either name is blank
            DatabaseError: master data could not be read
        """
        options = options or {}
        if not (brand_name or "").strip() or not (fragrance_name or "").strip():
            raise ValidationError("Brand name and fragrance name are required")

        provider = options.get("provider")
        language = options.get("language") or "ja"

        result, hit = await self._load(
            "ai:normalization:", (brand_name, fragrance_name), language,
            provider,
            lambda p: p.normalize(brand_name, fragrance_name, {"language": language}),
        )
        if result is None:
            result = self._fallback(brand_name, fragrance_name)

        data = result.setdefault("normalized_data", {})
        await self._match_master_data(
            db, data, data.get("normalized_brand"), data.get("normalized_fragrance_name")
        )
        apply_rules(data)
        self._finish(data)
        await self._track(db, options.get("user_id"), result, "normalization", hit)

        result["cached"] = hit
        result["metadata"] = {
            "original_brand": brand_name,
            "original_fragrance": fragrance_name,
            "language": language,
            "provider": result.get("provider") or "unknown",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "cached": hit,
        }
        return result

    async def normalize_from_input(self, db: Optional[AsyncSession], text: str,
                                   options: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Split one free-text string into brand and fragrance, then normalize both."""
        options = options or {}
        if not (text or "").strip():
            raise ValidationError("Input text is required", field="input")

        provider = options.get("provider")
        language = options.get("language") or "mixed"

        result, hit = await self._load(
            "ai:smart_normalization:", (text,), language,
            provider,
            lambda p: p.normalize_from_input(text, {"language": language}),
        )
        if result is None:
            result = self._smart_fallback(text)

        data = result.setdefault("normalized_data", {})
        await self._match_master_data(
            db,
            data,
            data.get("normalized_brand_ja") or data.get("normalized_brand_en"),
            data.get("normalized_fragrance_ja") or data.get("normalized_fragrance_en"),
        )
        apply_rules(data, brand_keys=SMART_BRAND_KEYS, fragrance_keys=SMART_FRAGRANCE_KEYS)
        self._finish(data)
        await self._track(db, options.get("user_id"), result, "smart_normalization", hit)

        result["cached"] = hit
        result["metadata"] = {
            "original_input": text,
            "language": language,
            "provider": result.get("provider") or "unknown",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "cached": hit,
        }
        return result

    async def batch_normalize(self, db: Optional[AsyncSession], items: List[Dict[str, Any]],
                              options: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        results: List[Dict[str, Any]] = []
        total_cost = 0.0
        for item in items:
            brand_name, fragrance_name = item.get("brand_name"), item.get("fragrance_name")
            try:
                result = await self.normalize(db, brand_name or "", fragrance_name or "", options)
            except ValidationError as e:
                results.append({
                    "error": e.message,
                    "original_brand": brand_name,
                    "original_fragrance": fragrance_name,
                })
                continue
            results.append(result)
            total_cost += result.get("cost_estimate") or 0.0

        return {
            "results": results,
            "total_processed": len(items),
            "successful_count": sum(1 for r in results if "error" not in r),
            "total_cost_estimate": total_cost,
        }

    # ── Fallbacks ─────────────────────────────────────────────────────────

    @staticmethod
    def _fallback(brand_name: str, fragrance_name: str) -> Dict[str, Any]:
        return {
            "normalized_data": {
                "normalized_brand": normalize_brand(brand_name),
                "normalized_fragrance_name": normalize_fragrance_name(fragrance_name),
                "confidence_score": 0.6,
                "final_confidence_score": 0.6,
                "fallback_reason": FALLBACK_REASON,
            },
            "response_time_ms": 10,
            "provider": "fallback",
            "cost_estimate": 0.0,
        }

    @staticmethod
    def _smart_fallback(text: str) -> Dict[str, Any]:
        text = text.strip()
        brand_name, fragrance_name = "", ""
        for pattern in _SPLIT_PATTERNS:
            match = pattern.match(text)
            if match:
                brand_name, fragrance_name = match.group(1).strip(), match.group(2).strip()
                break
        if not brand_name and not fragrance_name:
            fragrance_name = text

        return {
            "normalized_data": {
                "normalized_brand_ja": brand_name,
                "normalized_brand_en": "",
                "normalized_fragrance_ja": fragrance_name,
                "normalized_fragrance_en": "",
                "confidence_score": 0.3,
                "final_confidence_score": 0.3,
                "fallback_reason": FALLBACK_REASON,
            },
            "response_time_ms": 10,
            "provider": "fallback",
            "cost_estimate": 0.0,
        }

    # ── Quality ───────────────────────────────────────────────────────────

    @staticmethod
    def evaluate_quality(result: Dict[str, Any]) -> Dict[str, Any]:
        """
        Weighted quality score:
            confidence 0.4, master match 0.3, response time 0.1, provider 0.2
        """
        data = result.get("normalized_data")
        if data is None:
            return {"overall_score": 0.0, "factors": {}}

        def factor(score: float, weight: float) -> Dict[str, float]:
            return {"score": score, "weight": weight, "weighted_score": score * weight}

        factors = {}
        if data.get("final_confidence_score") is not None:
            factors["confidence"] = factor(float(data["final_confidence_score"]), 0.4)

        match_score = 0.5 * ("matched_brand" in data) + 0.5 * ("matched_fragrance" in data)
        factors["master_match"] = factor(match_score, 0.3)

        response_time = result.get("response_time_ms", 5000) or 0
        factors["response_time"] = factor(max(0.0, 1 - response_time / 10000), 0.1)

        factors["provider_reliability"] = factor(
            PROVIDER_RELIABILITY.get(result.get("provider") or "unknown", 0.5), 0.2
        )

        return {
            "overall_score": round(sum(f["weighted_score"] for f in factors.values()), 3),
            "factors": factors,
        }

    # ── Use case (called by the routes) ───────────────────────────────────

    @staticmethod
    def _check_user_limit(limiter: SlidingWindowLimiter, user_id: Optional[int], operation: str) -> None:
        if not user_id:
            return
        retry_after = limiter.hit(f"{operation}:{user_id}")
        if retry_after is not None:
            logger.warning("User %s exceeded the hourly %s limit", user_id, operation)
            raise RateLimitExceededError(retry_after=retry_after, context={"operation": operation})

    @staticmethod
    def _feedback_block(result: Dict[str, Any], user_id: Optional[int]) -> None:
        if not user_id:
            return
        result["feedback"] = {
            "can_provide_feedback": True,
            "feedback_url": "/api/ai/feedback/modification",
            "rating_options": ["excellent", "good", "acceptable", "poor"],
        }

    async def normalize_fragrance(self, db: AsyncSession, brand_name: str, fragrance_name: str,
                                  options: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        options = options or {}
        user_id = options.get("user_id")
        self._check_user_limit(normalization_limiter, user_id, "normalization")

        start = time.perf_counter()
        result = await self.normalize(db, sanitize_input(brand_name), sanitize_input(fragrance_name), options)
        result["execution_time_ms"] = round((time.perf_counter() - start) * 1000)
        result["quality"] = self.evaluate_quality(result)
        self._feedback_block(result, user_id)

        logger.info(
            "Normalization completed: user=%s provider=%s confidence=%s time=%dms",
            user_id,
            result.get("provider"),
            result["normalized_data"].get("final_confidence_score"),
            result["execution_time_ms"],
        )
        return result

    async def normalize_fragrance_batch(self, db: AsyncSession, items: List[Dict[str, Any]],
                                        options: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        options = options or {}
        if len(items) > MAX_BATCH_SIZE:
            raise ValidationError(f"Batch size cannot exceed {MAX_BATCH_SIZE} items", field="fragrances")
        user_id = options.get("user_id")
        self._check_user_limit(batch_normalization_limiter, user_id, "batch_normalization")

        sanitized = [
            {
                "brand_name": sanitize_input(item.get("brand_name") or ""),
                "fragrance_name": sanitize_input(item.get("fragrance_name") or ""),
            }
            for item in items
        ]

        start = time.perf_counter()
        result = await self.batch_normalize(db, sanitized, options)
        result["execution_time_ms"] = round((time.perf_counter() - start) * 1000)
        result["success_rate"] = (
            round(result["successful_count"] / result["total_processed"] * 100, 2)
            if result["successful_count"] else 0
        )

        logger.info(
            "Batch normalization completed: user=%s items=%d success_rate=%s cost=%.6f",
            user_id, len(items), result["success_rate"], result["total_cost_estimate"],
        )
        return result

    async def smart_normalize(self, db: AsyncSession, text: str,
                              options: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        options = options or {}
        user_id = options.get("user_id")
        self._check_user_limit(normalization_limiter, user_id, "normalization")

        start = time.perf_counter()
        result = await self.normalize_from_input(db, sanitize_input(text), options)
        result["execution_time_ms"] = round((time.perf_counter() - start) * 1000)
        self._feedback_block(result, user_id)

        logger.info(
            "Smart input normalization completed: user=%s provider=%s time=%dms",
            user_id, result.get("provider"), result["execution_time_ms"],
        )
        return result


normalization_service = NormalizationService()
