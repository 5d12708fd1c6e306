"""Request bodies for /complete and /batch-complete."""

from typing import Annotated, List, Literal, Optional

from pydantic import BaseModel, Field

from fragfolio.schemas.common import Language, ProviderName

CompletionQuery = Annotated[str, Field(min_length=2, max_length=100)]


class CompletionRequest(BaseModel):
    query: CompletionQuery = Field(description="Partial brand or fragrance name")
    type: Literal["brand", "fragrance"]
    limit: Optional[int] = Field(default=None, ge=1, le=20)
    language: Optional[Language] = None
    provider: Optional[ProviderName] = None


class BatchCompletionRequest(BaseModel):
    queries: List[CompletionQuery] = Field(min_length=1, max_length=10)
    type: Literal["brand", "fragrance"]
    language: Optional[Language] = None
    provider: Optional[ProviderName] = None
