"""
Fragfolio Backend — Brand Master Data
=======================================

What:  ORM model for the `brands` table.
Who:   Read by NormalizationService when matching AI output to known brands.

Both names are kept because users type either: "シャネル" and "CHANEL" must
resolve to the same row. Only active rows take part in matching.
"""

from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import Boolean, DateTime, Index, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fragfolio.database import Base


class Brand(Base):
    __tablename__ = "brands"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    name_ja: Mapped[str] = mapped_column(String(255), nullable=False, comment="Brand name in Japanese")
    name_en: Mapped[str] = mapped_column(String(255), nullable=False, comment="Brand name in English")
    description_ja: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    description_en: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    country: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    founded_year: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    website: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    logo: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

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

    fragrances: Mapped[List["Fragrance"]] = relationship(back_populates="brand")  # noqa: F821

    __table_args__ = (
        Index("idx_brands_name_ja", "name_ja"),
        Index("idx_brands_name_en", "name_en"),
    )

    def to_match_dict(self) -> dict:
        """Subset exposed in normalization results as matched_brand."""
        return {"id": self.id, "name_ja": self.name_ja, "name_en": self.name_en}

    def __repr__(self) -> str:
        return f"<Brand(id={self.id}, name_en='{self.name_en}')>"
