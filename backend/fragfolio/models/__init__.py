"""
Fragfolio Backend — ORM Models
================================

Importing this package registers every table on Base.metadata, which is what
Alembic autogenerate and the test-suite schema setup read.
"""

from fragfolio.models.brand import Brand
from fragfolio.models.fragrance import Fragrance
from fragfolio.models.ai_cost_tracking import AICostTracking
from fragfolio.models.ai_feedback import AIFeedback
from fragfolio.models.note_suggestion_feedback import NoteSuggestionFeedback

__all__ = [
    "Brand",
    "Fragrance",
    "AICostTracking",
    "AIFeedback",
    "NoteSuggestionFeedback",
]
