"""
Fragfolio Backend — AI Cost Tracking Service
==============================================

What:  Records per-user provider spend and answers usage, limit, pattern,
       efficiency and prediction questions about it.
Who:   Smart-input services write (track_usage) and check ensure_within_limits();
       the /api/ai/cost/* routes read.

Aggregation strategy:
    Totals, per-provider / per-operation / per-user groups and per-day
    buckets are computed in SQL (SUM, COUNT, AVG, GROUP BY). Only the
    hour-of-day and weekday patterns read individual timestamps, because
    extracting those differs between PostgreSQL and SQLite. Days are UTC.

Alert de-duplication:
    check_all_limits() logs each (user, limit, level) warning at most once
    per hour, remembered in the shared ai_cache.
"""

import calendar
import csv
import io
import logging
from collections import defaultdict
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from fragfolio.cache import ai_cache
from fragfolio.config import settings
from fragfolio.exceptions import UsageLimitExceededError, ValidationError
from fragfolio.models.ai_cost_tracking import AICostTracking

logger = logging.getLogger(__name__)

WARNING_THRESHOLD = 0.8
CRITICAL_THRESHOLD = 0.95
ALERT_TTL_SECONDS = 3600

DEFAULT_PEAK_HOUR = 12
DEFAULT_PEAK_DAY = 2  # Monday, with Sunday = 1
WEEKEND_DAYS = {1, 7}

PERIOD_FORMATS = {"day": "%Y-%m-%d", "week": "%G-%V", "month": "%Y-%m"}
REPORT_MONTHS = {"monthly": 1, "quarterly": 3, "yearly": 12}


def _utc(dt: datetime) -> datetime:
    """SQLite hands back naive datetimes; rows are always written in UTC."""
    return dt.replace(tzinfo=timezone.utc) if dt.tzinfo is None else dt.astimezone(timezone.utc)


def _month_bounds(month: Optional[str]) -> tuple:
    """
    (start, end) datetimes of a YYYY-MM month; the current month when None.

    Raises:
        ValidationError: month is not a real YYYY-MM month
    """
    if month:
        try:
            year, mon = (int(part) for part in month.split("-"))
            start = datetime(year, mon, 1, tzinfo=timezone.utc)
        except ValueError:
            raise ValidationError(f"Invalid month: {month}", field="month")
    else:
        now = datetime.now(timezone.utc)
        start = datetime(now.year, now.month, 1, tzinfo=timezone.utc)
    end = datetime(start.year + (start.month == 12), start.month % 12 + 1, 1, tzinfo=timezone.utc)
    return start, end


def _day_of_week(dt: datetime) -> int:
    """Sunday = 1 ... Saturday = 7."""
    return dt.isoweekday() % 7 + 1


def _as_date(value: Any) -> date:
    # SQLite's date() yields 'YYYY-MM-DD' strings, PostgreSQL yields dates
    return value if isinstance(value, date) else date.fromisoformat(str(value))


def _aggregates() -> tuple:
    return (
        func.count(AICostTracking.id),
        func.coalesce(func.sum(AICostTracking.estimated_cost), 0),
        func.coalesce(func.sum(AICostTracking.tokens_used), 0),
        func.coalesce(func.avg(AICostTracking.api_response_time_ms), 0),
    )


def _bucket(row: Sequence[Any]) -> Dict[str, Any]:
    """One _aggregates() result row as a plain dict."""
    requests, cost, tokens, avg_response_time = row
    return {
        "requests": int(requests or 0),
        "cost": round(float(cost or 0), 6),
        "tokens": int(tokens or 0),
        "avg_response_time": float(avg_response_time or 0),
    }


def _limit_entry(current: float, limit: float) -> Dict[str, Any]:
    percentage = (current / limit) * 100 if limit > 0 else 100.0
    return {
        "current": current,
        "limit": limit,
        "percentage": round(percentage, 2),
        "exceeded": current >= limit,
    }


class CostTrackingService:
    """Stateless; the session is passed per call."""

    # ── Writing ───────────────────────────────────────────────────────────

    async def track_usage(
        self,
        db: AsyncSession,
        user_id: int,
        provider: str,
        operation_type: str,
        cost: float = 0.0,
        response_time_ms: float = 0,
        tokens_used: int = 0,
    ) -> None:
        """Insert one cost row. Never raises; failures are logged."""
        try:
            async with db.begin_nested():
                db.add(AICostTracking(
                    user_id=user_id,
                    provider=provider or "unknown",
                    operation_type=operation_type or "unknown",
                    tokens_used=int(tokens_used or 0),
                    estimated_cost=float(cost or 0.0),
                    api_response_time_ms=int(response_time_ms or 0),
                ))
        except Exception as e:
            logger.error(
                "Failed to track AI usage for user %s (%s/%s): %s",
                user_id, provider, operation_type, str(e),
            )


    # ── Reading helpers ───────────────────────────────────────────────────

    @staticmethod
    def _where(query: Select, user_id: Optional[int], since: Optional[datetime] = None,
               until: Optional[datetime] = None) -> Select:
        if user_id is not None:
            query = query.where(AICostTracking.user_id == user_id)
        if since is not None:
            query = query.where(AICostTracking.created_at >= since)
        if until is not None:
            query = query.where(AICostTracking.created_at < until)
        return query

    async def _totals(self, db: AsyncSession, user_id: Optional[int], since: Optional[datetime] = None,
                      until: Optional[datetime] = None) -> Dict[str, Any]:
        query = self._where(select(*_aggregates()), user_id, since, until)
        return _bucket((await db.execute(query)).one())

    async def _grouped(self, db: AsyncSession, column: Any, user_id: Optional[int],
                       since: Optional[datetime] = None,
                       until: Optional[datetime] = None) -> Dict[Any, Dict[str, Any]]:
        query = self._where(select(column, *_aggregates()).group_by(column), user_id, since, until)
        return {row[0]: _bucket(row[1:]) for row in (await db.execute(query)).all()}

    async def _daily(self, db: AsyncSession, user_id: Optional[int], since: Optional[datetime] = None,
                     until: Optional[datetime] = None) -> Dict[date, Dict[str, Any]]:
        """Per-UTC-day aggregates, ordered by day."""
        buckets = await self._grouped(db, func.date(AICostTracking.created_at), user_id, since, until)
        return dict(sorted((_as_date(day), bucket) for day, bucket in buckets.items()))

    # ── Usage & limits ────────────────────────────────────────────────────

    async def get_monthly_usage(self, db: AsyncSession, user_id: int, month: Optional[str] = None) -> Dict[str, Any]:
        start, end = _month_bounds(month)
        totals = await self._totals(db, user_id, start, end)
        by_provider = await self._grouped(db, AICostTracking.provider, user_id, start, end)
        by_operation = await self._grouped(db, AICostTracking.operation_type, user_id, start, end)
        return {
            "month": start.strftime("%Y-%m"),
            "total_cost": totals["cost"],
            "total_requests": totals["requests"],
            "total_tokens": totals["tokens"],
            "avg_response_time": totals["avg_response_time"],
            "by_provider": by_provider,
            "by_operation": by_operation,
        }

    async def get_monthly_cost(self, db: AsyncSession, user_id: int) -> float:
        start, end = _month_bounds(None)
        return (await self._totals(db, user_id, start, end))["cost"]

    async def get_daily_cost(self, db: AsyncSession, user_id: int) -> float:
        today = datetime.combine(datetime.now(timezone.utc).date(), time.min, tzinfo=timezone.utc)
        return (await self._totals(db, user_id, since=today))["cost"]

    async def get_hourly_request_count(self, db: AsyncSession, user_id: int) -> int:
        since = datetime.now(timezone.utc) - timedelta(hours=1)
        return (await self._totals(db, user_id, since=since))["requests"]

    async def check_daily_limit(self, db: AsyncSession, user_id: int, max_daily_cost: Optional[float] = None) -> bool:
        limit = settings.ai_daily_limit if max_daily_cost is None else max_daily_cost
        return await self.get_daily_cost(db, user_id) < limit

    async def check_monthly_limit(self, db: AsyncSession, user_id: int,
                                  max_monthly_cost: Optional[float] = None) -> bool:
        limit = settings.ai_monthly_limit if max_monthly_cost is None else max_monthly_cost
        return await self.get_monthly_cost(db, user_id) < limit

    async def check_rate_limit(self, db: AsyncSession, user_id: int, max_requests_per_hour: Optional[int] = None) -> bool:
        limit = settings.ai_rate_limit_per_hour if max_requests_per_hour is None else max_requests_per_hour
        return await self.get_hourly_request_count(db, user_id) < limit

    async def check_all_limits(self, db: AsyncSession, user_id: int,
                               options: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Evaluate daily cost, monthly cost and hourly request count together.

        Runs before every smart-input call, so each figure is a single
        aggregate query.

        Returns:
            {can_proceed, limits: {daily, monthly, hourly_requests}, warnings}
            where each limit holds current, limit, percentage and exceeded.
        """
        options = options or {}
        limits = {
            "daily": _limit_entry(
                await self.get_daily_cost(db, user_id),
                options.get("daily_limit", settings.ai_daily_limit),
            ),
            "monthly": _limit_entry(
                await self.get_monthly_cost(db, user_id),
                options.get("monthly_limit", settings.ai_monthly_limit),
            ),
            "hourly_requests": _limit_entry(
                await self.get_hourly_request_count(db, user_id),
                options.get("hourly_requests_limit", settings.ai_rate_limit_per_hour),
            ),
        }

        warnings = []
        for limit_type, entry in limits.items():
            if entry["percentage"] >= CRITICAL_THRESHOLD * 100:
                level = "critical"
            elif entry["percentage"] >= WARNING_THRESHOLD * 100:
                level = "warning"
            else:
                continue
            warnings.append({
                "type": limit_type,
                "level": level,
                "message": f"{level.capitalize()}: {limit_type} usage at {entry['percentage']:.1f}%",
            })

        results = {
            "can_proceed": not any(entry["exceeded"] for entry in limits.values()),
            "limits": limits,
            "warnings": warnings,
        }
        self._process_alerts(user_id, results)
        return results

    async def ensure_within_limits(self, db: AsyncSession, user_id: int) -> None:
        """
        Raises:
            UsageLimitExceededError: naming the first exhausted limit
                (daily, then monthly, then hourly requests)
        """
        results = await self.check_all_limits(db, user_id)
        if results["can_proceed"]:
            return
        limits = results["limits"]
        if limits["daily"]["exceeded"]:
            message = "Daily AI usage limit exceeded"
        elif limits["monthly"]["exceeded"]:
            message = "Monthly AI usage limit exceeded"
        else:
            message = "Rate limit exceeded. Please wait before making another request"
        raise UsageLimitExceededError(message=message, context={"limits": limits})

    def _process_alerts(self, user_id: int, results: Dict[str, Any]) -> None:
        for warning in results["warnings"]:
            alert_key = f"cost_alert:{user_id}:{warning['type']}:{warning['level']}"
            if ai_cache.has(alert_key):
                continue
            ai_cache.set(alert_key, True, ALERT_TTL_SECONDS)
            logger.warning(
                "AI cost alert for user %s: %s (%s)",
                user_id, warning["message"], results["limits"][warning["type"]],
            )

    # ── Analysis ──────────────────────────────────────────────────────────

    async def analyze_usage_patterns(self, db: AsyncSession, user_id: int) -> Dict[str, Any]:
        now = datetime.now(timezone.utc)
        query = self._where(
            select(AICostTracking.created_at, AICostTracking.estimated_cost),
            user_id,
            since=now - timedelta(weeks=4),
        )
        timeline = [(_utc(created_at), float(cost or 0)) for created_at, cost in (await db.execute(query)).all()]
        week_ago = now - timedelta(days=7)

        def pattern(points: Iterable[Tuple[datetime, float]], bucket) -> Dict[int, Dict[str, Any]]:
            grouped: Dict[int, List[float]] = defaultdict(list)
            for created_at, cost in points:
                grouped[bucket(created_at)].append(cost)
            return {
                key: {"requests": len(costs), "avg_cost": sum(costs) / len(costs)}
                for key, costs in sorted(grouped.items())
            }

        hourly = pattern((p for p in timeline if p[0] >= week_ago), lambda dt: dt.hour)
        weekly = pattern(timeline, _day_of_week)

        peak_hour = max(hourly, key=lambda h: hourly[h]["requests"]) if hourly else DEFAULT_PEAK_HOUR
        peak_day = max(weekly, key=lambda d: weekly[d]["requests"]) if weekly else DEFAULT_PEAK_DAY

        return {
            "hourly_pattern": hourly,
            "weekly_pattern": weekly,
            "peak_hour": peak_hour,
            "peak_day": peak_day,
            "usage_insights": self._usage_insights(hourly, weekly),
        }

    @staticmethod
    def _usage_insights(hourly: Dict[int, Dict[str, Any]], weekly: Dict[int, Dict[str, Any]]) -> List[str]:
        insights = []
        total = sum(entry["requests"] for entry in hourly.values())
        night = sum(entry["requests"] for hour, entry in hourly.items() if hour >= 22 or hour <= 6)
        if total and night > total * 0.3:
            insights.append(
                "High nighttime usage detected - consider scheduling batch operations during off-peak hours"
            )
        weekend = sum(entry["requests"] for day, entry in weekly.items() if day in WEEKEND_DAYS)
        if total and weekend > total * 0.4:
            insights.append("Significant weekend usage - you're an active user!")
        return insights

    async def analyze_cost_efficiency(self, db: AsyncSession, user_id: int,
                                      month: Optional[str] = None) -> Dict[str, Any]:
        usage = await self.get_monthly_usage(db, user_id, month)
        if usage["total_requests"] == 0:
            return {
                "efficiency_score": 0,
                "insights": ["No usage data available for analysis"],
                "recommendations": ["Start using AI features to get efficiency insights"],
            }

        cost_per_request = usage["total_cost"] / usage["total_requests"]
        avg_response_time = usage["avg_response_time"]
        insights: List[str] = []
        recommendations: List[str] = []

        if cost_per_request > 0.05:
            insights.append(f"High cost per request: ${cost_per_request:.4f}")
            recommendations.append("Consider optimizing prompts to reduce token usage")
        elif cost_per_request < 0.01:
            insights.append(f"Excellent cost efficiency: ${cost_per_request:.4f} per request")

        if avg_response_time > 2000:
            insights.append(f"Slow average response time: {avg_response_time:.0f}ms")
            recommendations.append("Consider using faster models for simple tasks")

        most_efficient = None
        lowest = float("inf")
        for provider, data in usage["by_provider"].items():
            if data["requests"] > 0 and data["cost"] / data["requests"] < lowest:
                lowest = data["cost"] / data["requests"]
                most_efficient = provider
        if most_efficient:
            recommendations.append(f"Most cost-efficient provider: {most_efficient}")

        score = max(0.0, min(100.0, 100 - cost_per_request * 1000 - avg_response_time / 50))
        return {
            "efficiency_score": round(score, 1),
            "cost_per_request": cost_per_request,
            "avg_response_time": avg_response_time,
            "insights": insights,
            "recommendations": recommendations,
            "most_efficient_provider": most_efficient,
        }

    async def predict_monthly_cost(self, db: AsyncSession, user_id: int) -> Dict[str, Any]:
        """Current month's cost plus the 30-day average daily cost for each remaining day."""
        now = datetime.now(timezone.utc)
        daily = await self._daily(db, user_id, since=now - timedelta(days=30))
        daily_average = sum(b["cost"] for b in daily.values()) / len(daily) if daily else 0.0

        days_remaining = calendar.monthrange(now.year, now.month)[1] - now.day
        current = await self.get_monthly_cost(db, user_id)
        predicted = current + daily_average * days_remaining

        return {
            "current_cost": current,
            "daily_average": daily_average,
            "predicted_total": predicted,
            "days_remaining": days_remaining,
            "projected_overage": max(0.0, predicted - settings.ai_monthly_limit),
        }

    async def get_usage_history(self, db: AsyncSession, user_id: int,
                                months: int = 3, group_by: str = "day") -> List[Dict[str, Any]]:
        """
        Requests, cost and mean latency per day, ISO week or month.

        Days are aggregated in SQL; weeks and months are rolled up from them.
        """
        now = datetime.now(timezone.utc)
        year, month = now.year, now.month - months
        while month < 1:
            month += 12
            year -= 1
        start = datetime(year, month, 1, tzinfo=timezone.utc)
        fmt = PERIOD_FORMATS.get(group_by, PERIOD_FORMATS["day"])

        periods: Dict[str, Dict[str, float]] = defaultdict(lambda: {"requests": 0, "cost": 0.0, "latency": 0.0})
        for day, bucket in (await self._daily(db, user_id, since=start)).items():
            period = periods[day.strftime(fmt)]
            period["requests"] += bucket["requests"]
            period["cost"] += bucket["cost"]
            period["latency"] += bucket["avg_response_time"] * bucket["requests"]

        return [
            {
                "period": key,
                "requests": int(period["requests"]),
                "cost": round(period["cost"], 6),
                "avg_response_time": period["latency"] / period["requests"],
            }
            for key, period in sorted(periods.items())
        ]

    # ── Reports ───────────────────────────────────────────────────────────

    async def generate_report(self, db: AsyncSession, user_id: int, report_type: str = "monthly",
                              include_patterns: bool = False,
                              include_efficiency: bool = False) -> Dict[str, Any]:
        """
        Usage report covering 1, 3 or 12 months of daily history.

        Raises:
            ValidationError: unknown report_type
        """
        if report_type not in REPORT_MONTHS:
            raise ValidationError(f"Unsupported report type: {report_type}", field="report_type")

        report = {
            "summary": await self.get_monthly_usage(db, user_id),
            "history": await self.get_usage_history(db, user_id, REPORT_MONTHS[report_type], "day"),
            "prediction": await self.predict_monthly_cost(db, user_id),
        }
        if include_patterns:
            report["patterns"] = await self.analyze_usage_patterns(db, user_id)
        if include_efficiency:
            report["efficiency"] = await self.analyze_cost_efficiency(db, user_id)
        return report

    @staticmethod
    def report_csv(report: Dict[str, Any]) -> str:
        """The report's daily history as CSV."""
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(["Date", "Requests", "Cost", "Avg Response Time"])
        for row in report["history"]:
            writer.writerow([row["period"], row["requests"], row["cost"], row["avg_response_time"]])
        return buffer.getvalue()

    # ── Admin ─────────────────────────────────────────────────────────────

    async def get_global_stats(self, db: AsyncSession, start_date: Optional[date] = None,
                               end_date: Optional[date] = None) -> Dict[str, Any]:
        today = datetime.now(timezone.utc).date()
        start_date = start_date or today.replace(day=1)
        end_date = end_date or today
        since = datetime.combine(start_date, time.min, tzinfo=timezone.utc)
        until = datetime.combine(end_date + timedelta(days=1), time.min, tzinfo=timezone.utc)

        totals = await self._totals(db, None, since, until)
        active_users = (await db.execute(
            self._where(select(func.count(func.distinct(AICostTracking.user_id))), None, since, until)
        )).scalar_one()
        by_provider = await self._grouped(db, AICostTracking.provider, None, since, until)
        daily = await self._daily(db, None, since, until)

        total = totals["requests"]
        return {
            "summary": {
                "total_requests": total,
                "active_users": int(active_users or 0),
                "total_cost": totals["cost"],
                "avg_cost_per_request": totals["cost"] / total if total else 0.0,
                "avg_response_time": totals["avg_response_time"],
            },
            "by_provider": by_provider,
            "daily_breakdown": [
                {"date": day.isoformat(), "requests": bucket["requests"], "cost": bucket["cost"]}
                for day, bucket in daily.items()
            ],
            "period": {"start_date": start_date.isoformat(), "end_date": end_date.isoformat()},
        }

    async def get_top_users(self, db: AsyncSession, limit: int = 10,
                            month: Optional[str] = None) -> List[Dict[str, Any]]:
        since = until = None
        if month:
            since, until = _month_bounds(month)

        total_cost = func.coalesce(func.sum(AICostTracking.estimated_cost), 0)
        query = (
            self._where(select(AICostTracking.user_id, *_aggregates()), None, since, until)
            .group_by(AICostTracking.user_id)
            .order_by(total_cost.desc(), AICostTracking.user_id)
            .limit(limit)
        )
        ranked = []
        for row in (await db.execute(query)).all():
            bucket = _bucket(row[1:])
            ranked.append({
                "user_id": row[0],
                "total_requests": bucket["requests"],
                "total_cost": bucket["cost"],
                "avg_response_time": bucket["avg_response_time"],
            })
        return ranked


cost_tracking_service = CostTrackingService()
