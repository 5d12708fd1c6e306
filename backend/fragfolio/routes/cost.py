"""
Fragfolio Backend — AI Cost Routes
====================================

What:  Per-user AI spend, limits and usage analysis; global statistics for
       administrators.
Who:   The account settings "AI usage" panel and the admin dashboard.

Every endpoint needs X-User-ID. A user only ever sees their own rows;
/global-stats and /top-users additionally require an ADMIN_USER_IDS entry.
"""

import logging
from datetime import date, datetime, timezone
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from fragfolio.database import get_db_session
from fragfolio.dependencies import require_admin, require_user
from fragfolio.exceptions import ValidationError
from fragfolio.schemas.common import MONTH_PATTERN, ErrorResponse, SuccessResponse, ok
from fragfolio.schemas.cost import CostReportRequest
from fragfolio.services.cost_tracking_service import cost_tracking_service

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/ai/cost",
    tags=["Cost"],
    responses={401: {"description": "X-User-ID header missing", "model": ErrorResponse}},
)


def _current_month() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m")


@router.get("/usage", response_model=SuccessResponse, summary="Monthly usage with limits and prediction")
async def usage(
    month: Optional[str] = Query(default=None, pattern=MONTH_PATTERN, description="YYYY-MM"),
    include_patterns: bool = Query(default=False),
    user_id: int = Depends(require_user),
    db: AsyncSession = Depends(get_db_session),
) -> SuccessResponse:
    result = {
        "user_id": user_id,
        "month": month or _current_month(),
        "usage": await cost_tracking_service.get_monthly_usage(db, user_id, month),
        "limits": await cost_tracking_service.check_all_limits(db, user_id),
        "cost_prediction": await cost_tracking_service.predict_monthly_cost(db, user_id),
        "efficiency": await cost_tracking_service.analyze_cost_efficiency(db, user_id, month),
    }
    if include_patterns:
        result["patterns"] = await cost_tracking_service.analyze_usage_patterns(db, user_id)
    return ok(result)


@router.get("/limits", response_model=SuccessResponse, summary="Daily, monthly and hourly limit status")
async def limits(
    user_id: int = Depends(require_user),
    db: AsyncSession = Depends(get_db_session),
) -> SuccessResponse:
    result = await cost_tracking_service.check_all_limits(db, user_id)
    result["checked_at"] = datetime.now(timezone.utc).isoformat()
    return ok(result)


@router.get("/patterns", response_model=SuccessResponse, summary="Hourly and weekday usage patterns")
async def patterns(
    user_id: int = Depends(require_user),
    db: AsyncSession = Depends(get_db_session),
) -> SuccessResponse:
    return ok(await cost_tracking_service.analyze_usage_patterns(db, user_id))


@router.get("/efficiency", response_model=SuccessResponse, summary="Cost efficiency score and advice")
async def efficiency(
    month: Optional[str] = Query(default=None, pattern=MONTH_PATTERN),
    user_id: int = Depends(require_user),
    db: AsyncSession = Depends(get_db_session),
) -> SuccessResponse:
    return ok(await cost_tracking_service.analyze_cost_efficiency(db, user_id, month))


@router.get("/prediction", response_model=SuccessResponse, summary="Projected spend for this month")
async def prediction(
    user_id: int = Depends(require_user),
    db: AsyncSession = Depends(get_db_session),
) -> SuccessResponse:
    return ok(await cost_tracking_service.predict_monthly_cost(db, user_id))


@router.get("/history", response_model=SuccessResponse, summary="Usage grouped by day, week or month")
async def history(
    months: int = Query(default=3, ge=1, le=12),
    group_by: Literal["day", "week", "month"] = Query(default="day"),
    user_id: int = Depends(require_user),
    db: AsyncSession = Depends(get_db_session),
) -> SuccessResponse:
    rows = await cost_tracking_service.get_usage_history(db, user_id, months, group_by)
    return ok({
        "period": {"months": months, "group_by": group_by},
        "history": rows,
    })


@router.get(
    "/global-stats",
    response_model=SuccessResponse,
    responses={403: {"description": "Not an administrator", "model": ErrorResponse}},
    summary="Usage across all users (admin)",
)
async def global_stats(
    start_date: Optional[date] = Query(default=None, description="YYYY-MM-DD"),
    end_date: Optional[date] = Query(default=None, description="YYYY-MM-DD"),
    admin_id: int = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
) -> SuccessResponse:
    if start_date and end_date and start_date > end_date:
        raise ValidationError("start_date must not be after end_date", field="start_date")
    logger.info("Global AI cost stats requested by admin %s", admin_id)
    return ok(await cost_tracking_service.get_global_stats(db, start_date, end_date))


@router.get(
    "/top-users",
    response_model=SuccessResponse,
    responses={403: {"description": "Not an administrator", "model": ErrorResponse}},
    summary="Highest-spending users (admin)",
)
async def top_users(
    limit: int = Query(default=10, ge=1, le=100),
    month: Optional[str] = Query(default=None, pattern=MONTH_PATTERN),
    admin_id: int = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
) -> SuccessResponse:
    users = await cost_tracking_service.get_top_users(db, limit, month)
    return ok({
        "top_users": users,
        "period": month or "all_time",
        "limit": limit,
    })


@router.post(
    "/report",
    responses={200: {"content": {"text/csv": {}}, "description": "JSON envelope, or CSV when format=csv"}},
    summary="Usage report for the last 1, 3 or 12 months",
)
async def report(
    request: CostReportRequest,
    user_id: int = Depends(require_user),
    db: AsyncSession = Depends(get_db_session),
):
    result = await cost_tracking_service.generate_report(
        db,
        user_id,
        request.report_type,
        include_patterns=request.include_patterns,
        include_efficiency=request.include_efficiency,
    )
    now = datetime.now(timezone.utc)

    if request.format == "csv":
        filename = f"ai_usage_report_{request.report_type}_{now.strftime('%Y_%m_%d')}.csv"
        return Response(
            content=cost_tracking_service.report_csv(result),
            media_type="text/csv",
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )

    return ok({
        "report_type": request.report_type,
        "generated_at": now.isoformat(),
        "report": result,
    })
