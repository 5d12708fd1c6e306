"""
Fragfolio Backend — AI Feedback Service Tests
===============================================

What we test:
    ✅ Selection / rejection / modification rows
    ✅ Write failures are dropped, not raised
    ✅ Few-shot examples: helpful selections above 0.8 relevance only
"""

import pytest

from fragfolio.models import AIFeedback
from fragfolio.services.feedback_service import feedback_service

SUGGESTIONS = [{"text": "CHANEL", "confidence": 0.9}, {"text": "Chloé", "confidence": 0.6}]


def feedback(**overrides):
    data = {
        "user_id": 1,
        "session_id": "session-1",
        "operation_type": "completion",
        "query_type": "brand",
        "query": "シャネ",
        "ai_provider": "openai",
        "ai_model": "gpt-4o-mini",
        "ai_suggestions": SUGGESTIONS,
    }
    data.update(overrides)
    return data


class TestRecording:

    @pytest.mark.asyncio
    async def test_selection(self, db_session):
        feedback_id = await feedback_service.record_selection(
            db_session, feedback(selected_suggestion=SUGGESTIONS[0], relevance_score=0.95)
        )

        row = await db_session.get(AIFeedback, feedback_id)
        assert row.user_action == "selected"
        assert row.was_helpful is True
        assert row.selected_suggestion == SUGGESTIONS[0]
        assert row.ai_suggestions == SUGGESTIONS

    @pytest.mark.asyncio
    async def test_rejection(self, db_session):
        feedback_id = await feedback_service.record_rejection(
            db_session, feedback(user_notes="none of these")
        )

        row = await db_session.get(AIFeedback, feedback_id)
        assert (row.user_action, row.was_helpful, row.user_notes) == ("rejected", False, "none of these")

    @pytest.mark.asyncio
    async def test_modification_keeps_starting_suggestion(self, db_session):
        feedback_id = await feedback_service.record_modification(db_session, feedback(
            original_suggestion=SUGGESTIONS[1],
            final_input="Chloé Nomade",
            was_helpful=True,
        ))

        row = await db_session.get(AIFeedback, feedback_id)
        assert row.user_action == "modified"
        assert row.selected_suggestion == SUGGESTIONS[1]
        assert row.final_input == "Chloé Nomade"

    @pytest.mark.asyncio
    async def test_missing_session_gets_generated(self, db_session):
        feedback_id = await feedback_service.record_selection(db_session, feedback(session_id=None))

        row = await db_session.get(AIFeedback, feedback_id)
        assert len(row.session_id) == 36

    @pytest.mark.asyncio
    async def test_failure_returns_none(self, mock_db_session):
        mock_db_session.add.side_effect = RuntimeError("disk full")

        assert await feedback_service.record_selection(mock_db_session, feedback()) is None

    @pytest.mark.asyncio
    async def test_incomplete_payload_returns_none(self, db_session):
        data = feedback()
        del data["query"]

        assert await feedback_service.record_rejection(db_session, data) is None


class TestFewShotExamples:

    @pytest.mark.asyncio
    async def test_best_helpful_selections(self, db_session):
        await feedback_service.record_selection(db_session, feedback(
            query="ディオ", selected_suggestion={"text": "Dior"}, relevance_score=0.85,
        ))
        await feedback_service.record_selection(db_session, feedback(
            query="シャネ", selected_suggestion={"text": "CHANEL"}, relevance_score=0.97,
        ))
        await feedback_service.record_selection(db_session, feedback(
            query="グッ", selected_suggestion={"text": "Gucci"}, relevance_score=0.5,
        ))
        await feedback_service.record_selection(db_session, feedback(
            operation_type="normalization", selected_suggestion={"text": "Creed"}, relevance_score=0.99,
        ))
        await feedback_service.record_rejection(db_session, feedback(relevance_score=0.99))

        examples = await feedback_service.get_few_shot_examples(db_session, "anything", "completion")

        assert examples == [
            {"query": "シャネ", "selected_text": "CHANEL", "relevance_score": 0.97},
            {"query": "ディオ", "selected_text": "Dior", "relevance_score": 0.85},
        ]

    @pytest.mark.asyncio
    async def test_read_failure_returns_empty(self, mock_db_session):
        mock_db_session.execute.side_effect = RuntimeError("gone")

        assert await feedback_service.get_few_shot_examples(mock_db_session, "q") == []

    def test_general_examples_are_copies(self):
        examples = feedback_service.general_few_shot_examples()
        examples[0]["query"] = "changed"

        assert feedback_service.general_few_shot_examples()[0]["query"] == "シャネル"
