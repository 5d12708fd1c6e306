"""
Fragfolio Backend — Normalization Service Tests
=================================================

What we test:
    ✅ Master-data matching (exact and partial) against a real schema
    ✅ Rule tables and HTML entity decoding on provider output
    ✅ Rule-table fallback when the provider fails
    ✅ Smart-input fallback splitting (space, nakaguro, slash)
    ✅ Quality score weights
    ✅ Per-user hourly caps and batch size limit
"""

from unittest.mock import patch

import pytest
import pytest_asyncio
from sqlalchemy import func, select

from conftest import provider_result
from fragfolio.exceptions import LLMServiceError, RateLimitExceededError, ValidationError
from fragfolio.models import AICostTracking, Brand, Fragrance
from fragfolio.services.normalization_service import normalization_limiter, normalization_service


@pytest_asyncio.fixture
async def chanel(db_session):
    brand = Brand(name_ja="シャネル", name_en="CHANEL")
    db_session.add(brand)
    await db_session.flush()
    db_session.add(Fragrance(brand_id=brand.id, name_ja="N°5", name_en="No.5"))
    db_session.add(Fragrance(brand_id=brand.id, name_ja="ココ マドモアゼル", name_en="Coco Mademoiselle"))
    await db_session.flush()
    return brand


class TestNormalize:

    @pytest.mark.asyncio
    async def test_matches_master_data(self, fake_provider, db_session, chanel):
        fake_provider.normalize.return_value = provider_result(normalized_data={
            "normalized_brand": "CHANEL",
            "normalized_fragrance_name": "No.5",
            "final_confidence_score": 0.9,
        })

        result = await normalization_service.normalize(db_session, "シャネル", "No5")

        data = result["normalized_data"]
        assert data["matched_brand"] == {"id": chanel.id, "name_ja": "シャネル", "name_en": "CHANEL"}
        assert data["brand_match_confidence"] == 1.0
        assert data["matched_fragrance"]["name_en"] == "No.5"
        assert result["cached"] is False
        assert result["metadata"]["original_brand"] == "シャネル"

    @pytest.mark.asyncio
    async def test_partial_fragrance_match_within_brand(self, fake_provider, db_session, chanel):
        fake_provider.normalize.return_value = provider_result(normalized_data={
            "normalized_brand": "CHANEL",
            "normalized_fragrance_name": "Coco Mademoisell",
            "final_confidence_score": 0.8,
        })

        result = await normalization_service.normalize(db_session, "chanel", "coco mademoisell")

        assert result["normalized_data"]["matched_fragrance"]["name_en"] == "Coco Mademoiselle"
        assert result["normalized_data"]["fragrance_match_confidence"] > 0.9

    @pytest.mark.asyncio
    async def test_like_wildcards_in_names_are_literal(self, db_session, chanel):
        db_session.add(Brand(name_ja="ピュア", name_en="Pure_Scent"))
        await db_session.flush()

        assert await normalization_service.find_matching_brand(db_session, "CHAN_L") is None
        assert await normalization_service.find_matching_brand(db_session, "CH%") is None
        match = await normalization_service.find_matching_brand(db_session, "Pure_Scen")
        assert match is not None and match.name_en == "Pure_Scent"

    @pytest.mark.asyncio
    async def test_unknown_brand_has_no_match(self, fake_provider, db_session, chanel):
        fake_provider.normalize.return_value = provider_result(normalized_data={
            "normalized_brand": "Amouage",
            "normalized_fragrance_name": "Interlude",
        })

        result = await normalization_service.normalize(db_session, "amouage", "interlude")

        assert "matched_brand" not in result["normalized_data"]

    @pytest.mark.asyncio
    async def test_entities_decoded_and_confidence_defaulted(self, fake_provider):
        fake_provider.normalize.return_value = provider_result(normalized_data={
            "normalized_brand": "Tom Ford",
            "normalized_fragrance_name": "Tobacco &amp; Vanille",
        })

        result = await normalization_service.normalize(None, "tom ford", "tobacco vanille")

        data = result["normalized_data"]
        assert data["normalized_fragrance_name"] == "Tobacco & Vanille"
        assert data["final_confidence_score"] == 0.75

    @pytest.mark.asyncio
    async def test_provider_failure_uses_rule_tables(self, fake_provider):
        fake_provider.normalize.side_effect = LLMServiceError()

        result = await normalization_service.normalize(None, "シャネル", "No 5")

        data = result["normalized_data"]
        assert result["provider"] == "fallback"
        assert data["normalized_brand"] == "CHANEL"
        assert data["normalized_fragrance_name"] == "No.5"
        assert data["final_confidence_score"] == 0.6
        assert data["fallback_reason"] == "AI provider unavailable"

    @pytest.mark.asyncio
    async def test_blank_name_rejected(self, fake_provider):
        with pytest.raises(ValidationError):
            await normalization_service.normalize(None, "  ", "No.5")

    @pytest.mark.asyncio
    async def test_usage_tracked_for_provider_results_only(self, fake_provider, db_session):
        fake_provider.normalize.return_value = provider_result(normalized_data={"normalized_brand": "Dior"})
        await normalization_service.normalize(db_session, "dior", "sauvage", {"user_id": 4})

        fake_provider.normalize.side_effect = LLMServiceError()
        await normalization_service.normalize(db_session, "creed", "aventus", {"user_id": 4})

        rows = (await db_session.execute(select(AICostTracking))).scalars().all()
        assert [(r.operation_type, r.provider) for r in rows] == [("normalization", "openai")]


class TestNormalizeFromInput:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("text, brand, fragrance", [
        ("Dior Sauvage", "Dior", "Sauvage"),
        ("シャネル・No5", "CHANEL", "No.5"),
        ("Creed/Aventus", "Creed", "Aventus"),
        ("オードパルファム", "", "オードパルファム"),
    ])
    async def test_fallback_split(self, fake_provider, text, brand, fragrance):
        fake_provider.normalize_from_input.side_effect = LLMServiceError()

        result = await normalization_service.normalize_from_input(None, text)

        data = result["normalized_data"]
        assert data["normalized_brand_ja"] == brand
        assert data["normalized_fragrance_ja"] == fragrance
        assert data["final_confidence_score"] == 0.3

    @pytest.mark.asyncio
    async def test_smart_result_matches_master_data(self, fake_provider, db_session, chanel):
        fake_provider.normalize_from_input.return_value = provider_result(normalized_data={
            "normalized_brand_ja": "シャネル",
            "normalized_brand_en": "CHANEL",
            "normalized_fragrance_ja": "N°5",
            "normalized_fragrance_en": "No.5",
            "final_confidence_score": 0.88,
        })

        result = await normalization_service.normalize_from_input(db_session, "シャネルの5番")

        assert result["normalized_data"]["matched_brand"]["id"] == chanel.id
        assert result["metadata"]["language"] == "mixed"


class TestEvaluateQuality:

    def test_weighted_score(self):
        result = {
            "provider": "openai",
            "response_time_ms": 1000,
            "normalized_data": {"final_confidence_score": 0.8, "matched_brand": {"id": 1}},
        }
        quality = normalization_service.evaluate_quality(result)

        # 0.8*0.4 + 0.5*0.3 + 0.9*0.1 + 0.9*0.2
        assert quality["overall_score"] == pytest.approx(0.74)
        assert set(quality["factors"]) == {"confidence", "master_match", "response_time", "provider_reliability"}

    def test_missing_data_scores_zero(self):
        assert normalization_service.evaluate_quality({}) == {"overall_score": 0.0, "factors": {}}


class TestBatchNormalize:

    @pytest.mark.asyncio
    async def test_invalid_items_reported_inline(self, fake_provider):
        fake_provider.normalize.return_value = provider_result(
            normalized_data={"normalized_brand": "Dior"}, cost_estimate=0.001
        )

        result = await normalization_service.batch_normalize(None, [
            {"brand_name": "", "fragrance_name": "Sauvage"},
            {"brand_name": "Dior", "fragrance_name": "Sauvage"},
        ])

        assert result["total_processed"] == 2
        assert result["successful_count"] == 1
        assert result["results"][0]["original_fragrance"] == "Sauvage"
        assert result["total_cost_estimate"] == pytest.approx(0.001)

    @pytest.mark.asyncio
    async def test_batch_size_limit(self, fake_provider, db_session):
        items = [{"brand_name": "Dior", "fragrance_name": f"Item {i}"} for i in range(11)]
        with pytest.raises(ValidationError):
            await normalization_service.normalize_fragrance_batch(db_session, items)

    @pytest.mark.asyncio
    async def test_success_rate(self, fake_provider, db_session):
        fake_provider.normalize.return_value = provider_result(normalized_data={"normalized_brand": "Dior"})

        result = await normalization_service.normalize_fragrance_batch(db_session, [
            {"brand_name": "Dior", "fragrance_name": "Sauvage"},
            {"brand_name": "<b></b>", "fragrance_name": "Fahrenheit"},
        ])

        assert result["success_rate"] == 50.0


class TestNormalizeFragrance:

    @pytest.mark.asyncio
    async def test_quality_and_feedback_block(self, fake_provider, db_session):
        fake_provider.normalize.return_value = provider_result(normalized_data={"normalized_brand": "Dior"})

        result = await normalization_service.normalize_fragrance(
            db_session, "<i>Dior</i>", "Sauvage", {"user_id": 9}
        )

        assert result["metadata"]["original_brand"] == "Dior"
        assert "overall_score" in result["quality"]
        assert result["feedback"]["feedback_url"] == "/api/ai/feedback/modification"

    @pytest.mark.asyncio
    async def test_hourly_cap_per_user(self, fake_provider, db_session):
        fake_provider.normalize.return_value = provider_result(normalized_data={"normalized_brand": "Dior"})

        with patch.object(normalization_limiter, "limit", 1):
            await normalization_service.normalize_fragrance(db_session, "Dior", "Sauvage", {"user_id": 9})
            with pytest.raises(RateLimitExceededError):
                await normalization_service.normalize_fragrance(db_session, "Dior", "Sauvage", {"user_id": 9})
            # Other users have their own window
            await normalization_service.normalize_fragrance(db_session, "Dior", "Sauvage", {"user_id": 10})

        count = (await db_session.execute(select(func.count()).select_from(AICostTracking))).scalar_one()
        assert count == 1
