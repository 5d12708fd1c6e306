"""
Fragfolio Backend — Note Suggestion Routes
============================================

What:  Note pyramid and wearing-attribute estimates, similar-fragrance
       search by notes, and ratings of past suggestions.
Who:   The "add fragrance" form (auto-fill notes) and the fragrance
       detail page (similar fragrances).
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from fragfolio.database import get_db_session
from fragfolio.dependencies import get_user_id, require_user
from fragfolio.schemas.common import ErrorResponse, SuccessResponse, ok
from fragfolio.schemas.notes import (
    BatchSuggestNotesRequest,
    NoteFeedbackRequest,
    SimilarFragrancesRequest,
    SuggestNotesRequest,
)
from fragfolio.services.note_suggestion_service import note_suggestion_service
from fragfolio.services.provider_factory import provider_factory

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/ai", tags=["Note Suggestion"])


@router.post(
    "/suggest-notes",
    response_model=SuccessResponse,
    responses={429: {"description": "AI usage limit exceeded", "model": ErrorResponse}},
    summary="Suggest top / middle / base notes and attributes",
)
async def suggest_notes(
    body: SuggestNotesRequest,
    user_id: Optional[int] = Depends(get_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> SuccessResponse:
    result = await note_suggestion_service.suggest(db, body.brand_name, body.fragrance_name, {
        "provider": body.provider,
        "language": body.language or "ja",
        "include_attributes": body.include_attributes,
        "note_limit": body.note_limit,
        "user_id": user_id,
    })
    return ok(result)


@router.post("/batch-suggest-notes", response_model=SuccessResponse, summary="Suggest notes for up to 20 fragrances")
async def batch_suggest_notes(
    body: BatchSuggestNotesRequest,
    user_id: Optional[int] = Depends(get_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> SuccessResponse:
    result = await note_suggestion_service.suggest_batch(
        db,
        [item.model_dump() for item in body.fragrances],
        {
            "provider": body.provider,
            "language": body.language or "ja",
            "include_attributes": body.include_attributes,
            "note_limit": body.note_limit,
            "user_id": user_id,
        },
    )
    return ok(result)


@router.get("/note-suggestion/providers", response_model=SuccessResponse, summary="Supported providers")
async def note_providers() -> SuccessResponse:
    return ok(provider_factory.catalog())


@router.get("/note-suggestion/health", response_model=SuccessResponse, summary="Check every configured provider")
async def note_health() -> SuccessResponse:
    report = await provider_factory.health_report()
    report["timestamp"] = datetime.now(timezone.utc).isoformat()
    return ok(report)


@router.get("/note-categories", response_model=SuccessResponse, summary="Known notes grouped by category")
async def note_categories() -> SuccessResponse:
    return ok(note_suggestion_service.note_categories())


@router.post("/similar-fragrances", response_model=SuccessResponse, summary="Fragrances sharing the given notes")
async def similar_fragrances(
    body: SimilarFragrancesRequest,
    db: AsyncSession = Depends(get_db_session),
) -> SuccessResponse:
    result = await note_suggestion_service.find_similar_fragrances(
        db, body.notes.model_dump(), body.limit, body.include_discontinued
    )
    return ok(result)


@router.post(
    "/note-suggestion/feedback",
    response_model=SuccessResponse,
    status_code=status.HTTP_201_CREATED,
    responses={401: {"description": "X-User-ID header missing", "model": ErrorResponse}},
    summary="Rate a note suggestion",
)
async def note_feedback(
    body: NoteFeedbackRequest,
    user_id: int = Depends(require_user),
    db: AsyncSession = Depends(get_db_session),
) -> SuccessResponse:
    result = await note_suggestion_service.submit_feedback(db, user_id, body.model_dump(exclude_none=True))
    logger.info("Note suggestion feedback: user=%s suggestion=%s rating=%d", user_id, body.suggestion_id, body.rating)
    return ok(result)
