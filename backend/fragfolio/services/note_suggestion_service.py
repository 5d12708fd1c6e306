"""
Fragfolio Backend — Note Suggestion Service
=============================================

What:  Estimates a fragrance's note pyramid (top / middle / base) and its
       wearing attributes (seasons, occasions, intensity, longevity, sillage).
Who:   /api/ai/suggest-notes, /batch-suggest-notes, /similar-fragrances,
       /note-categories and /note-suggestion/feedback.

Flow:
    cache (1 h) → provider.suggest_notes() + provider.suggest_attributes()
                → note / attribute normalization → response
    ↘ provider failure: brand-typical note set (chanel, dior, generic)

Attributes are always requested alongside the notes so the cached entry is
complete; include_attributes=False only hides them from the response.
"""

import hashlib
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fragfolio.cache import ai_cache, make_key
from fragfolio.config import settings
from fragfolio.exceptions import CircuitBreakerOpenError, DatabaseError, LLMServiceError, ValidationError
from fragfolio.models.brand import Brand
from fragfolio.models.fragrance import Fragrance
from fragfolio.models.note_suggestion_feedback import NoteSuggestionFeedback
from fragfolio.services.cost_tracking_service import cost_tracking_service
from fragfolio.services.normalization_rules import (
    NOTE_CATEGORIES,
    categorize_note,
    normalize_intensity,
    normalize_note_name,
    sanitize_input,
)
from fragfolio.services.provider_factory import provider_factory
from fragfolio.services.similarity import jaccard

logger = logging.getLogger(__name__)

MIN_NAME_LENGTH = 2
MAX_NOTES_PER_TIER = 8
MAX_BATCH_SIZE = 20
SIMILARITY_THRESHOLD = 0.3
TIERS = ("top", "middle", "base")

SEASONS = ["spring", "summer", "autumn", "winter"]
OCCASIONS = ["casual", "business", "formal", "date", "party", "daily"]
TIME_OF_DAY = ["morning", "afternoon", "evening", "night"]

INTENSITY_RATINGS = {
    "light": "light",
    "moderate": "moderate",
    "strong": "strong",
    "very strong": "very_strong",
    "very_strong": "very_strong",
    "beast mode": "very_strong",
}
SILLAGE_LEVELS = {"intimate": "intimate", "moderate": "moderate", "heavy": "heavy", "nuclear": "heavy"}

DEFAULT_ATTRIBUTES: Dict[str, Any] = {
    "seasons": ["spring", "summer"],
    "occasions": ["casual", "daily"],
    "time_of_day": ["morning", "afternoon"],
    "intensity_rating": "moderate",
    "longevity_hours": 6,
    "sillage": "moderate",
}


def _note(name: str, intensity: str, confidence: float, category: str) -> Dict[str, Any]:
    return {
        "name": name,
        "intensity": intensity,
        "confidence": confidence,
        "category": category,
        "original_name": name,
    }


FALLBACK_NOTES: Dict[str, Dict[str, List[Dict[str, Any]]]] = {
    "chanel": {
        "top": [_note("bergamot", "moderate", 0.8, "citrus")],
        "middle": [_note("rose", "strong", 0.9, "floral")],
        "base": [_note("sandalwood", "moderate", 0.7, "woody")],
    },
    "dior": {
        "top": [_note("lemon", "moderate", 0.7, "citrus")],
        "middle": [_note("jasmine", "strong", 0.8, "floral")],
        "base": [_note("musk", "moderate", 0.6, "oriental")],
    },
    "default": {
        "top": [_note("bergamot", "moderate", 0.6, "citrus")],
        "middle": [_note("rose", "moderate", 0.6, "floral")],
        "base": [_note("cedar", "moderate", 0.6, "woody")],
    },
}


def flatten_notes(notes: Optional[Dict[str, Any]]) -> List[str]:
    """Lower-cased note names across all tiers; accepts strings or {name: ...}."""
    flat = []
    for tier in TIERS:
        for note in (notes or {}).get(tier) or []:
            if isinstance(note, str):
                flat.append(note.strip().lower())
            elif isinstance(note, dict) and note.get("name"):
                flat.append(str(note["name"]).strip().lower())
    return flat


class NoteSuggestionService:

    # ── Post-processing ───────────────────────────────────────────────────

    @staticmethod
    def process_tier(notes: List[Any]) -> List[Dict[str, Any]]:
        processed = []
        for note in notes or []:
            if isinstance(note, str):
                processed.append({
                    "name": normalize_note_name(note),
                    "intensity": "moderate",
                    "confidence": 0.7,
                    "category": categorize_note(normalize_note_name(note)),
                    "original_name": note,
                })
            elif isinstance(note, dict):
                name = normalize_note_name(str(note.get("name") or ""))
                try:
                    confidence = float(note.get("confidence", 0.7))
                except (TypeError, ValueError):
                    confidence = 0.7
                processed.append({
                    "name": name,
                    "intensity": normalize_intensity(note.get("intensity")),
                    "confidence": max(0.0, min(1.0, confidence)),
                    "category": categorize_note(name),
                    "original_name": note.get("name") or "",
                })
        processed.sort(key=lambda n: n["confidence"], reverse=True)
        return processed[:MAX_NOTES_PER_TIER]

    @staticmethod
    def process_attributes(attributes: Dict[str, Any]) -> Dict[str, Any]:
        def allowed(values: Any, valid: List[str]) -> List[str]:
            return [v for v in values or [] if v in valid]

        try:
            longevity = int(attributes.get("longevity_hours", 6))
        except (TypeError, ValueError):
            longevity = 6

        return {
            "seasons": allowed(attributes.get("seasons"), SEASONS),
            "occasions": allowed(attributes.get("occasions"), OCCASIONS),
            "time_of_day": allowed(attributes.get("time_of_day"), TIME_OF_DAY),
            "intensity_rating": INTENSITY_RATINGS.get(
                str(attributes.get("intensity_rating") or "moderate").strip().lower(), "moderate"
            ),
            "longevity_hours": max(1, min(24, longevity)),
            "sillage": SILLAGE_LEVELS.get(str(attributes.get("sillage") or "moderate").strip().lower(), "moderate"),
        }

    @staticmethod
    def overall_confidence(notes: Dict[str, List[Dict[str, Any]]]) -> float:
        confidences = [note["confidence"] for tier in TIERS for note in notes.get(tier) or []]
        if not confidences:
            return 0.0
        return round(sum(confidences) / len(confidences), 2)

    # ── Provider calls ────────────────────────────────────────────────────

    async def _fetch(self, provider_name: str, brand_name: str, fragrance_name: str,
                     language: str) -> Dict[str, Any]:
        provider = provider_factory.create(provider_name)
        notes_result = await provider.suggest_notes(brand_name, fragrance_name, {"language": language})

        try:
            attributes_result = await provider.suggest_attributes(
                brand_name, fragrance_name, notes_result.get("notes"), {"language": language}
            )
        except (LLMServiceError, CircuitBreakerOpenError) as e:
            logger.warning("Attribute suggestion failed, using defaults: %s", e.message)
            attributes_result = {"attributes": dict(DEFAULT_ATTRIBUTES), "cost_estimate": 0.0,
                                 "tokens_used": 0, "response_time_ms": 0}

        notes = {tier: self.process_tier((notes_result.get("notes") or {}).get(tier)) for tier in TIERS}
        return {
            "notes": notes,
            "attributes": self.process_attributes(attributes_result.get("attributes") or {}),
            "confidence_score": self.overall_confidence(notes),
            "provider": notes_result.get("provider") or provider.name,
            "ai_model": notes_result.get("ai_model"),
            "response_time_ms": (notes_result.get("response_time_ms") or 0)
            + (attributes_result.get("response_time_ms") or 0),
            "cost_estimate": (notes_result.get("cost_estimate") or 0.0)
            + (attributes_result.get("cost_estimate") or 0.0),
            "tokens_used": (notes_result.get("tokens_used") or 0) + (attributes_result.get("tokens_used") or 0),
            "metadata": {
                "brand_name": brand_name,
                "fragrance_name": fragrance_name,
                "language": language,
                "processed_at": datetime.now(timezone.utc).isoformat(),
            },
        }

    @staticmethod
    def _fallback(brand_name: str, fragrance_name: str, language: str) -> Dict[str, Any]:
        notes = FALLBACK_NOTES.get(brand_name.strip().lower(), FALLBACK_NOTES["default"])
        return {
            "notes": json.loads(json.dumps(notes)),
            "attributes": dict(DEFAULT_ATTRIBUTES),
            "confidence_score": 0.5,
            "provider": "fallback",
            "response_time_ms": 10,
            "cost_estimate": 0.0,
            "metadata": {
                "brand_name": brand_name,
                "fragrance_name": fragrance_name,
                "language": language,
                "fallback_reason": "AI provider unavailable",
                "processed_at": datetime.now(timezone.utc).isoformat(),
            },
        }

    # ── Operations ────────────────────────────────────────────────────────

    async def suggest_notes(self, db: Optional[AsyncSession], brand_name: str, fragrance_name: str,
                            options: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Raises:
            ValidationError: brand or fragrance shorter than 2 characters
        """
        options = options or {}
        if len((brand_name or "").strip()) < MIN_NAME_LENGTH or len((fragrance_name or "").strip()) < MIN_NAME_LENGTH:
            raise ValidationError("Brand name and fragrance name must be at least 2 characters long")

        language = options.get("language") or "ja"
        user_id = options.get("user_id")

        try:
            provider_name = options.get("provider") or provider_factory.default_provider()
            key = make_key(
                "ai:note-suggestion:", "note-suggestion", brand_name, fragrance_name, provider_name, language
            )
            result, hit = await ai_cache.remember(
                key,
                settings.ai_cache_ttl_notes,
                lambda: self._fetch(provider_name, brand_name, fragrance_name, language),
            )
        except Exception as e:
            logger.warning(
                "Note suggestion failed for %s / %s, using fallback: %s", brand_name, fragrance_name, str(e)
            )
            return {**self._fallback(brand_name, fragrance_name, language), "cached": False}

        if user_id and db is not None and not hit:
            await cost_tracking_service.track_usage(
                db,
                user_id,
                result.get("provider"),
                "note_suggestion",
                cost=result.get("cost_estimate", 0.0),
                response_time_ms=result.get("response_time_ms", 0),
                tokens_used=result.get("tokens_used", 0),
            )
        result["cached"] = hit
        return result

    async def batch_suggest_notes(self, db: Optional[AsyncSession], items: List[Dict[str, Any]],
                                  options: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        results: List[Dict[str, Any]] = []
        total_cost = 0.0
        success = 0
        for index, item in enumerate(items):
            brand_name, fragrance_name = item.get("brand_name"), item.get("fragrance_name")
            if not brand_name or not fragrance_name:
                results.append({"error": "Missing required fields: brand_name and fragrance_name", "index": index})
                continue
            try:
                result = await self.suggest_notes(db, brand_name, fragrance_name, options)
            except ValidationError as e:
                results.append({"error": e.message, "index": index})
                continue
            results.append({**result, "index": index})
            total_cost += result.get("cost_estimate") or 0.0
            success += 1

        return {
            "results": results,
            "summary": {
                "total_processed": len(items),
                "successful_count": success,
                "failed_count": len(items) - success,
                "total_cost_estimate": total_cost,
            },
        }

    async def find_similar_fragrances(self, db: AsyncSession, notes: Dict[str, Any], limit: int = 10,
                                      include_discontinued: bool = False) -> Dict[str, Any]:
        """Rank catalogue fragrances by Jaccard similarity of their note names."""
        query = (
            select(Fragrance, Brand)
            .join(Brand, Fragrance.brand_id == Brand.id)
            .where(Fragrance.notes.is_not(None), Fragrance.is_active.is_(True))
        )
        if not include_discontinued:
            query = query.where(Fragrance.is_discontinued.is_(False))

        try:
            rows = (await db.execute(query.limit(limit * 3))).all()
        except Exception as e:
            logger.error("Similar fragrance search failed: %s", str(e))
            raise DatabaseError(context={"operation": "similar_fragrances"}) from e

        search = flatten_notes(notes)
        matches = []
        for fragrance, brand in rows:
            score = jaccard(search, flatten_notes(fragrance.notes))
            if score > SIMILARITY_THRESHOLD:
                matches.append({
                    "id": fragrance.id,
                    "name_ja": fragrance.name_ja,
                    "name_en": fragrance.name_en,
                    "brand_name": brand.name_en,
                    "similarity_score": round(score, 3),
                    "notes": fragrance.notes,
                    "discontinued": fragrance.is_discontinued,
                })
        matches.sort(key=lambda m: m["similarity_score"], reverse=True)

        return {
            "similar_fragrances": matches[:limit],
            "total_found": len(matches),
            "search_notes": notes,
        }

    async def submit_feedback(self, db: AsyncSession, user_id: int, feedback: Dict[str, Any]) -> Dict[str, Any]:
        """Persist a rating of a suggestion; unlike AI feedback this write must succeed."""
        row = NoteSuggestionFeedback(
            user_id=user_id,
            suggestion_id=feedback["suggestion_id"],
            rating=feedback["rating"],
            feedback_type=feedback["feedback_type"],
            comments=feedback.get("comments"),
            corrected_notes=feedback.get("corrected_notes"),
            corrected_attributes=feedback.get("corrected_attributes"),
        )
        try:
            db.add(row)
            await db.flush()
        except Exception as e:
            logger.error("Note suggestion feedback failed for user %s: %s", user_id, str(e))
            raise DatabaseError(context={"operation": "note_feedback"}) from e

        return {
            "feedback_id": row.id,
            "status": "processed",
            "message": "Thank you for your feedback",
        }

    @staticmethod
    def note_categories() -> Dict[str, Any]:
        return {
            "categories": {name: list(notes) for name, notes in NOTE_CATEGORIES.items()},
            "total_notes": sum(len(notes) for notes in NOTE_CATEGORIES.values()),
        }

    # ── Use case (called by the routes) ───────────────────────────────────

    @staticmethod
    def _post_process(result: Dict[str, Any], options: Dict[str, Any]) -> Dict[str, Any]:
        if not options.get("include_attributes", True):
            result.pop("attributes", None)
        note_limit = options.get("note_limit")
        if note_limit:
            for tier in TIERS:
                if tier in result.get("notes", {}):
                    result["notes"][tier] = result["notes"][tier][:note_limit]
        return result

    @staticmethod
    def suggestion_id(result: Dict[str, Any]) -> str:
        payload = json.dumps(result.get("notes") or {}, ensure_ascii=False, sort_keys=True)
        payload += (result.get("metadata") or {}).get("processed_at", "")
        return "note_" + hashlib.md5(payload.encode("utf-8")).hexdigest()[:16]

    async def suggest(self, db: AsyncSession, brand_name: str, fragrance_name: str,
                      options: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        options = options or {}
        user_id = options.get("user_id")
        if user_id:
            await cost_tracking_service.ensure_within_limits(db, user_id)

        result = await self.suggest_notes(db, sanitize_input(brand_name), sanitize_input(fragrance_name), options)
        result = self._post_process(result, options)
        if user_id:
            result["feedback_info"] = {
                "can_provide_feedback": True,
                "feedback_url": "/api/ai/note-suggestion/feedback",
                "suggestion_id": self.suggestion_id(result),
            }
        return result

    async def suggest_batch(self, db: AsyncSession, items: List[Dict[str, Any]],
                            options: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        options = options or {}
        if len(items) > MAX_BATCH_SIZE:
            raise ValidationError(f"Batch size cannot exceed {MAX_BATCH_SIZE} items", field="fragrances")
        if options.get("user_id"):
            await cost_tracking_service.ensure_within_limits(db, options["user_id"])

        result = await self.batch_suggest_notes(db, items, options)
        result["results"] = [
            self._post_process(item, options) if "notes" in item else item for item in result["results"]
        ]
        return result


note_suggestion_service = NoteSuggestionService()
