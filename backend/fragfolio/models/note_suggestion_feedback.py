"""
Fragfolio Backend — Note Suggestion Feedback Model
====================================================

What:  User ratings of a note-pyramid suggestion, optionally with corrected
       notes/attributes. suggestion_id matches feedback_info.suggestion_id
       returned by the suggest-notes endpoint.
"""

from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import JSON, DateTime, Index, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from fragfolio.database import Base


class NoteSuggestionFeedback(Base):
    __tablename__ = "ai_note_suggestion_feedback"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    suggestion_id: Mapped[str] = mapped_column(String(64), nullable=False)

    # 1-5
    rating: Mapped[int] = mapped_column(Integer, nullable=False)
    # accuracy | completeness | relevance
    feedback_type: Mapped[str] = mapped_column(String(20), nullable=False)
    comments: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    corrected_notes: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)
    corrected_attributes: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        Index("idx_note_feedback_suggestion_id", "suggestion_id"),
    )
