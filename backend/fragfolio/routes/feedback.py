"""
Fragfolio Backend — Suggestion Feedback Routes
================================================

What:  Records what the user did with an AI suggestion (picked, rejected,
       edited). Selected rows become few-shot examples for later prompts.

Recording is best-effort: a failed write is logged by FeedbackService and
the endpoint still answers 200 with recorded=false.
"""

import logging
import uuid
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from fragfolio.database import get_db_session
from fragfolio.dependencies import get_user_id
from fragfolio.schemas.common import SuccessResponse, ok
from fragfolio.schemas.feedback import (
    FeedbackBase,
    ModificationFeedbackRequest,
    RejectionFeedbackRequest,
    SelectionFeedbackRequest,
)
from fragfolio.services.feedback_service import feedback_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/ai/feedback", tags=["Feedback"])


def _payload(body: FeedbackBase, request: Request, user_id: Optional[int]) -> Dict[str, Any]:
    data = body.model_dump()
    data["user_id"] = user_id
    data["user_agent"] = request.headers.get("user-agent")
    data["ip_address"] = request.client.host if request.client else None
    return data


@router.post("/selection", response_model=SuccessResponse, summary="The user picked a suggestion")
async def record_selection(
    body: SelectionFeedbackRequest,
    request: Request,
    user_id: Optional[int] = Depends(get_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> SuccessResponse:
    feedback_id = await feedback_service.record_selection(db, _payload(body, request, user_id))
    return ok({"feedback_id": feedback_id, "recorded": feedback_id is not None},
              "Feedback recorded successfully")


@router.post("/rejection", response_model=SuccessResponse, summary="The user dismissed every suggestion")
async def record_rejection(
    body: RejectionFeedbackRequest,
    request: Request,
    user_id: Optional[int] = Depends(get_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> SuccessResponse:
    feedback_id = await feedback_service.record_rejection(db, _payload(body, request, user_id))
    return ok({"feedback_id": feedback_id, "recorded": feedback_id is not None},
              "Rejection feedback recorded successfully")


@router.post("/modification", response_model=SuccessResponse, summary="The user edited a suggestion")
async def record_modification(
    body: ModificationFeedbackRequest,
    request: Request,
    user_id: Optional[int] = Depends(get_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> SuccessResponse:
    feedback_id = await feedback_service.record_modification(db, _payload(body, request, user_id))
    return ok({"feedback_id": feedback_id, "recorded": feedback_id is not None},
              "Modification feedback recorded successfully")


@router.post("/session", response_model=SuccessResponse, summary="New feedback session id")
async def new_session() -> SuccessResponse:
    """Groups the feedback of one input session; the client sends it back as session_id."""
    return ok({"session_id": str(uuid.uuid4())})
