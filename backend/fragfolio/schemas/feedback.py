"""
Request bodies for the suggestion feedback endpoints.

The three actions share the request identity fields (query, operation,
provider, what the AI offered) and differ in what the user did with it.
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


class FeedbackBase(BaseModel):
    query: str = Field(max_length=255)
    operation_type: Literal["completion", "normalization"]
    query_type: Optional[str] = Field(default=None, max_length=50)
    ai_provider: str = Field(max_length=50)
    ai_model: str = Field(max_length=50)
    ai_suggestions: List[Any]
    session_id: Optional[str] = Field(default=None, max_length=255)
    final_input: Optional[str] = Field(default=None, max_length=255)
    context_data: Optional[Dict[str, Any]] = None


class SelectionFeedbackRequest(FeedbackBase):
    selected_suggestion: Dict[str, Any]
    relevance_score: Optional[float] = Field(default=None, ge=0, le=1)


class RejectionFeedbackRequest(FeedbackBase):
    user_notes: Optional[str] = Field(default=None, max_length=1000)


class ModificationFeedbackRequest(FeedbackBase):
    final_input: str = Field(max_length=255)
    original_suggestion: Optional[Dict[str, Any]] = None
    relevance_score: Optional[float] = Field(default=None, ge=0, le=1)
    was_helpful: Optional[bool] = None
    user_notes: Optional[str] = Field(default=None, max_length=1000)
