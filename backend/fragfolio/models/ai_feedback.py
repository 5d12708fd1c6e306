"""
Fragfolio Backend — AI Feedback Model
=======================================

What:  Records what the user did with AI suggestions (selected, rejected,
       modified).
Why:   Highly-rated selections are replayed as few-shot examples in later
       completion prompts.
"""

from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import JSON, Boolean, DateTime, Float, Index, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from fragfolio.database import Base


class AIFeedback(Base):
    __tablename__ = "ai_feedback"

    # Valid values of user_action
    ACTION_SELECTED = "selected"
    ACTION_REJECTED = "rejected"
    ACTION_MODIFIED = "modified"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    session_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # completion | normalization
    operation_type: Mapped[str] = mapped_column(String(50), nullable=False)
    # brand | fragrance | ...
    query_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    query: Mapped[str] = mapped_column(String(255), nullable=False)
    request_params: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)

    ai_provider: Mapped[str] = mapped_column(String(50), nullable=False)
    ai_model: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    ai_suggestions: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)

    user_action: Mapped[str] = mapped_column(String(20), nullable=False)
    selected_suggestion: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)
    final_input: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    relevance_score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    was_helpful: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=text("false")
    )
    user_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    user_agent: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    ip_address: Mapped[Optional[str]] = mapped_column(String(45), nullable=True)
    context_data: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        Index("idx_ai_feedback_operation_action", "operation_type", "user_action"),
        Index("idx_ai_feedback_user_id", "user_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<AIFeedback(id={self.id}, operation='{self.operation_type}', "
            f"action='{self.user_action}')>"
        )
