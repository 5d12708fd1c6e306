"""
Fragfolio Backend — AI Feedback Service
=========================================

What:  Records how users react to AI suggestions and replays the best
       selections as few-shot examples.
Who:   /api/ai/feedback/* routes write; CompletionService reads.

Design Decision:
    Feedback is telemetry. Writes run inside a SAVEPOINT and any failure is
    logged and dropped, so a broken feedback insert never fails (or rolls
    back) the request that carried it.
"""

import logging
import uuid
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fragfolio.models.ai_feedback import AIFeedback

logger = logging.getLogger(__name__)

MIN_FEW_SHOT_RELEVANCE = 0.8

GENERAL_FEW_SHOT_EXAMPLES: List[Dict[str, Any]] = [
    {"query": "シャネル", "selected_text": "CHANEL ブルー ドゥ シャネル", "relevance_score": 0.95},
    {"query": "バニラ", "selected_text": "TOM FORD タバコ バニラ", "relevance_score": 0.90},
]


class FeedbackService:
    """Stateless; the session is passed per call."""

    async def _record(self, db: AsyncSession, data: Dict[str, Any], action: str, **fields) -> Optional[int]:
        try:
            async with db.begin_nested():
                row = AIFeedback(
                    user_id=data.get("user_id"),
                    session_id=data.get("session_id") or str(uuid.uuid4()),
                    operation_type=data["operation_type"],
                    query_type=data.get("query_type"),
                    query=data["query"],
                    request_params=data.get("request_params") or {},
                    ai_provider=data["ai_provider"],
                    ai_model=data.get("ai_model"),
                    ai_suggestions=data.get("ai_suggestions") or [],
                    user_action=action,
                    final_input=data.get("final_input"),
                    user_agent=data.get("user_agent"),
                    ip_address=data.get("ip_address"),
                    context_data=data.get("context_data") or {},
                    **fields,
                )
                db.add(row)
            return row.id
        except Exception as e:
            logger.warning("AI feedback recording failed (%s): %s", action, str(e))
            return None

    async def record_selection(self, db: AsyncSession, data: Dict[str, Any]) -> Optional[int]:
        return await self._record(
            db, data, AIFeedback.ACTION_SELECTED,
            selected_suggestion=data.get("selected_suggestion"),
            relevance_score=data.get("relevance_score"),
            was_helpful=True,
        )

    async def record_rejection(self, db: AsyncSession, data: Dict[str, Any]) -> Optional[int]:
        return await self._record(
            db, data, AIFeedback.ACTION_REJECTED,
            was_helpful=False,
            user_notes=data.get("user_notes"),
        )

    async def record_modification(self, db: AsyncSession, data: Dict[str, Any]) -> Optional[int]:
        """The suggestion the user started from is stored as selected_suggestion."""
        return await self._record(
            db, data, AIFeedback.ACTION_MODIFIED,
            selected_suggestion=data.get("original_suggestion"),
            relevance_score=data.get("relevance_score"),
            was_helpful=bool(data.get("was_helpful")),
            user_notes=data.get("user_notes"),
        )

    async def get_few_shot_examples(
        self,
        db: AsyncSession,
        query: str,
        operation_type: str = "completion",
        limit: int = 3,
    ) -> List[Dict[str, Any]]:
        """
        Highest-relevance helpful selections for the operation.

        The query itself is not used as a filter: few-shot examples are meant
        to show the model good answers in general, not answers to this query.
        Returns [] on any error.
        """
        try:
            result = await db.execute(
                select(AIFeedback)
                .where(
                    AIFeedback.operation_type == operation_type,
                    AIFeedback.user_action == AIFeedback.ACTION_SELECTED,
                    AIFeedback.was_helpful.is_(True),
                    AIFeedback.relevance_score >= MIN_FEW_SHOT_RELEVANCE,
                )
                .order_by(AIFeedback.relevance_score.desc(), AIFeedback.created_at.desc())
                .limit(limit)
            )
            rows = result.scalars().all()
        except Exception as e:
            logger.warning("Failed to load few-shot examples for '%s': %s", query, str(e))
            return []

        return [
            {
                "query": row.query,
                "selected_text": (row.selected_suggestion or {}).get("text", "")
                if isinstance(row.selected_suggestion, dict) else "",
                "relevance_score": row.relevance_score if row.relevance_score is not None else 0.5,
            }
            for row in rows
        ]

    def general_few_shot_examples(self) -> List[Dict[str, Any]]:
        return [dict(example) for example in GENERAL_FEW_SHOT_EXAMPLES]


feedback_service = FeedbackService()
