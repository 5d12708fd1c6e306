"""Request bodies for note suggestion, similar-fragrance search and note feedback."""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from fragfolio.schemas.common import Language, ProviderName


class SuggestNotesRequest(BaseModel):
    brand_name: str = Field(min_length=2, max_length=100)
    fragrance_name: str = Field(min_length=2, max_length=100)
    provider: Optional[ProviderName] = None
    language: Optional[Language] = None
    include_attributes: bool = True
    note_limit: Optional[int] = Field(default=None, ge=1, le=10)


class SuggestNotesItem(BaseModel):
    brand_name: str = Field(min_length=2, max_length=100)
    fragrance_name: str = Field(min_length=2, max_length=100)


class BatchSuggestNotesRequest(BaseModel):
    fragrances: List[SuggestNotesItem] = Field(min_length=1, max_length=20)
    provider: Optional[ProviderName] = None
    language: Optional[Language] = None
    include_attributes: bool = True
    note_limit: Optional[int] = Field(default=None, ge=1, le=10)


class NotePyramid(BaseModel):
    """Note names per tier; entries may be plain strings or {name, ...} objects."""
    top: List[Any] = Field(default_factory=list)
    middle: List[Any] = Field(default_factory=list)
    base: List[Any] = Field(default_factory=list)


class SimilarFragrancesRequest(BaseModel):
    notes: NotePyramid
    limit: int = Field(default=10, ge=1, le=20)
    include_discontinued: bool = False

    @field_validator("notes")
    @classmethod
    def require_some_notes(cls, v: NotePyramid) -> NotePyramid:
        if not (v.top or v.middle or v.base):
            raise ValueError("at least one note is required")
        return v


class CorrectedNotes(BaseModel):
    top: List[Any] = Field(default_factory=list, max_length=10)
    middle: List[Any] = Field(default_factory=list, max_length=10)
    base: List[Any] = Field(default_factory=list, max_length=10)


class NoteFeedbackRequest(BaseModel):
    suggestion_id: str = Field(min_length=1, max_length=64)
    rating: int = Field(ge=1, le=5)
    feedback_type: Literal["accuracy", "completeness", "relevance"]
    comments: Optional[str] = Field(default=None, max_length=1000)
    corrected_notes: Optional[CorrectedNotes] = None
    corrected_attributes: Optional[Dict[str, Any]] = None
