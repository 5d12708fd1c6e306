"""
Fragfolio Backend — Completion Routes
=======================================

What:  Brand / fragrance name completion for the smart-input box.
Who:   The frontend's debounced autocomplete hook.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from fragfolio.database import get_db_session
from fragfolio.dependencies import get_user_id
from fragfolio.schemas.common import ErrorResponse, SuccessResponse, ok
from fragfolio.schemas.completion import BatchCompletionRequest, CompletionRequest
from fragfolio.services.completion_service import completion_service
from fragfolio.services.provider_factory import provider_factory

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/ai", tags=["Completion"])


@router.post(
    "/complete",
    response_model=SuccessResponse,
    responses={
        422: {"description": "Invalid query or unavailable provider", "model": ErrorResponse},
        429: {"description": "AI usage limit exceeded", "model": ErrorResponse},
    },
    summary="Complete a partial brand or fragrance name",
)
async def complete(
    body: CompletionRequest,
    user_id: Optional[int] = Depends(get_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> SuccessResponse:
    """
    Provider failures do not fail this endpoint: the body then carries
    provider="fallback" and a short static candidate list.
    """
    result = await completion_service.complete_fragrance(db, body.query, {
        "type": body.type,
        "limit": body.limit or 10,
        "language": body.language or "ja",
        "provider": body.provider,
        "user_id": user_id,
    })
    return ok(result)


@router.post("/batch-complete", response_model=SuccessResponse, summary="Complete up to 10 queries")
async def batch_complete(
    body: BatchCompletionRequest,
    user_id: Optional[int] = Depends(get_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> SuccessResponse:
    result = await completion_service.complete_fragrance_batch(db, body.queries, {
        "type": body.type,
        "language": body.language or "ja",
        "provider": body.provider,
        "user_id": user_id,
    })
    return ok(result)


@router.get("/providers", response_model=SuccessResponse, summary="Configured AI providers")
async def providers() -> SuccessResponse:
    return ok(provider_factory.describe())


@router.get("/health", response_model=SuccessResponse, summary="Check AI providers")
async def providers_health(
    provider: Optional[str] = Query(default=None, description="Check only this provider"),
) -> SuccessResponse:
    return ok(await provider_factory.health_report(provider))
