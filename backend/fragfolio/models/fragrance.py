"""
Fragfolio Backend — Fragrance Master Data
===========================================

What:  ORM model for the `fragrances` table.
Who:   NormalizationService (name matching within a brand) and
       NoteSuggestionService (similar-fragrance search over `notes`).

`notes` holds the pyramid as {"top": [...], "middle": [...], "base": [...]};
each entry is either a note name or a dict with a "name" key.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fragfolio.database import Base


class Fragrance(Base):
    __tablename__ = "fragrances"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    brand_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("brands.id", ondelete="CASCADE"), nullable=False
    )

    name_ja: Mapped[str] = mapped_column(String(255), nullable=False)
    name_en: Mapped[str] = mapped_column(String(255), nullable=False)
    description_ja: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    description_en: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    concentration_type_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    release_year: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    image: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    notes: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    is_discontinued: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=text("false")
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=text("true")
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
    )

    brand: Mapped["Brand"] = relationship(back_populates="fragrances")  # noqa: F821

    __table_args__ = (
        Index("idx_fragrances_brand_id", "brand_id"),
        Index("idx_fragrances_name_en", "name_en"),
    )

    def to_match_dict(self) -> dict:
        return {"id": self.id, "name_ja": self.name_ja, "name_en": self.name_en}

    def __repr__(self) -> str:
        return f"<Fragrance(id={self.id}, brand_id={self.brand_id}, name_en='{self.name_en}')>"
