"""
Fragfolio Backend — AI Cost Tracking Model
============================================

What:  One row per billable provider call, attributed to a user.
Who:   Written by CostTrackingService.track_usage(); aggregated for the
       usage, limit, pattern and prediction endpoints.

Index on (user_id, created_at):
    Every read is "this user's rows within a time range" (today, this month,
    the last hour), so the composite index covers all of them.
"""

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import DateTime, Index, Integer, Numeric, String, text
from sqlalchemy.orm import Mapped, mapped_column

from fragfolio.database import Base


class AICostTracking(Base):
    __tablename__ = "ai_cost_tracking"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)

    # openai | anthropic | gemini
    provider: Mapped[str] = mapped_column(String(50), nullable=False)
    # completion | normalization | note_suggestion | ...
    operation_type: Mapped[str] = mapped_column(String(50), nullable=False)

    tokens_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    estimated_cost: Mapped[Decimal] = mapped_column(
        Numeric(10, 6), nullable=False, default=0, server_default=text("0"),
        comment="Estimated USD cost of the call",
    )
    api_response_time_ms: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        Index("idx_ai_cost_tracking_user_created", "user_id", "created_at"),
        Index("idx_ai_cost_tracking_provider", "provider"),
    )

    def __repr__(self) -> str:
        return (
            f"<AICostTracking(user_id={self.user_id}, provider='{self.provider}', "
            f"operation='{self.operation_type}', cost={self.estimated_cost})>"
        )
