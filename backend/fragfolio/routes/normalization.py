"""
Fragfolio Backend — Normalization Routes
==========================================

What:  Canonicalizes user-entered brand / fragrance names before they are
       saved to a collection, matched against the brand and fragrance
       master tables.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from fragfolio.database import get_db_session
from fragfolio.dependencies import get_user_id
from fragfolio.schemas.common import ErrorResponse, SuccessResponse, ok
from fragfolio.schemas.normalization import BatchNormalizeRequest, NormalizeRequest, SmartNormalizeRequest
from fragfolio.services.normalization_service import normalization_service
from fragfolio.services.provider_factory import provider_factory

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/ai", tags=["Normalization"])


@router.post(
    "/normalize",
    response_model=SuccessResponse,
    responses={429: {"description": "Hourly normalization limit reached", "model": ErrorResponse}},
    summary="Normalize a brand and fragrance name",
)
async def normalize(
    body: NormalizeRequest,
    user_id: Optional[int] = Depends(get_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> SuccessResponse:
    result = await normalization_service.normalize_fragrance(db, body.brand_name, body.fragrance_name, {
        "provider": body.provider,
        "language": body.language or "ja",
        "user_id": user_id,
    })
    return ok(result)


@router.post("/batch-normalize", response_model=SuccessResponse, summary="Normalize up to 10 fragrances")
async def batch_normalize(
    body: BatchNormalizeRequest,
    user_id: Optional[int] = Depends(get_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> SuccessResponse:
    result = await normalization_service.normalize_fragrance_batch(
        db,
        [item.model_dump() for item in body.fragrances],
        {"provider": body.provider, "language": body.language or "ja", "user_id": user_id},
    )
    return ok(result)


@router.post("/smart-normalize", response_model=SuccessResponse, summary="Split and normalize free-form input")
async def smart_normalize(
    body: SmartNormalizeRequest,
    user_id: Optional[int] = Depends(get_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> SuccessResponse:
    result = await normalization_service.smart_normalize(db, body.input, {
        "provider": body.provider,
        "language": body.language or "mixed",
        "user_id": user_id,
    })
    return ok(result)


@router.get("/normalization/providers", response_model=SuccessResponse, summary="Supported providers")
async def normalization_providers() -> SuccessResponse:
    return ok(provider_factory.catalog())


@router.get("/normalization/health", response_model=SuccessResponse, summary="Check every configured provider")
async def normalization_health() -> SuccessResponse:
    report = await provider_factory.health_report()
    report["timestamp"] = datetime.now(timezone.utc).isoformat()
    return ok(report)
