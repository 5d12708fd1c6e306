"""Request bodies for the normalization endpoints."""

from typing import Annotated, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from fragfolio.schemas.common import Language, ProviderName

BrandName = Annotated[str, Field(min_length=2, max_length=100)]
FragranceName = Annotated[str, Field(min_length=2, max_length=200)]


class NormalizeRequest(BaseModel):
    brand_name: BrandName
    fragrance_name: FragranceName
    provider: Optional[ProviderName] = None
    language: Optional[Language] = None

    @field_validator("brand_name", "fragrance_name")
    @classmethod
    def strip_whitespace(cls, v: str) -> str:
        """Whitespace-only names would otherwise pass the length check."""
        if not v.strip():
            raise ValueError("must not be blank")
        return v.strip()


class BatchNormalizeItem(BaseModel):
    brand_name: BrandName
    fragrance_name: FragranceName


class BatchNormalizeRequest(BaseModel):
    fragrances: List[BatchNormalizeItem] = Field(min_length=1, max_length=10)
    provider: Optional[ProviderName] = None
    language: Optional[Language] = None


class SmartNormalizeRequest(BaseModel):
    """Free-form text such as "シャネル No.5" or "Dior / Sauvage"."""
    input: str = Field(min_length=2, max_length=300)
    provider: Optional[ProviderName] = None
    language: Optional[Literal["ja", "en", "mixed"]] = None
