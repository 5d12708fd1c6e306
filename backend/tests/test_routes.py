"""
Fragfolio Backend — API Route Tests
=====================================

What:  End-to-end requests through middleware, dependencies and handlers.
How:   HTTPX AsyncClient on the ASGI app; providers are the fake_provider
       fixture, the database is the in-memory schema.

What we test:
    ✅ Success envelope and X-Request-ID header
    ✅ 401 / 403 from the X-User-ID dependencies
    ✅ 422 from pydantic and from service validation
    ✅ 429 usage limits
    ✅ Provider catalogue, health and feedback endpoints
"""

from unittest.mock import patch

import pytest

from conftest import provider_result
from fragfolio.config import settings


class TestHealth:

    @pytest.mark.asyncio
    async def test_health_reports_database_and_version(self, test_client):
        response = await test_client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["database"] == "connected"
        assert body["version"] == "1.0.0"
        assert "X-Request-ID" in response.headers

    @pytest.mark.asyncio
    async def test_request_id_is_echoed(self, test_client):
        response = await test_client.get("/health", headers={"X-Request-ID": "abc-123"})
        assert response.headers["X-Request-ID"] == "abc-123"


class TestCompletionRoutes:

    @pytest.mark.asyncio
    async def test_complete_envelope(self, test_client, fake_provider):
        fake_provider.complete.return_value = provider_result(
            suggestions=[{"text": "Dior", "confidence": 0.9, "type": "brand"}]
        )

        response = await test_client.post("/api/ai/complete", json={"query": "dio", "type": "brand"})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["data"]["suggestions"][0]["text"] == "Dior"
        assert body["data"]["metadata"]["query"] == "dio"

    @pytest.mark.asyncio
    async def test_string_confidence_from_model_is_200(self, test_client, fake_provider):
        fake_provider.complete.return_value = provider_result(
            suggestions=[{"text": "Sauvage", "confidence": "0.9", "type": "fragrance"}]
        )

        response = await test_client.post("/api/ai/complete", json={"query": "sauv", "type": "fragrance"})

        assert response.status_code == 200
        assert response.json()["data"]["suggestions"][0]["confidence"] == 0.9

    @pytest.mark.asyncio
    async def test_short_query_is_422(self, test_client, fake_provider):
        response = await test_client.post("/api/ai/complete", json={"query": "d", "type": "brand"})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_unconfigured_provider_is_422(self, test_client, fake_provider):
        response = await test_client.post(
            "/api/ai/complete", json={"query": "dior", "type": "brand", "provider": "gemini"}
        )

        assert response.status_code == 422
        body = response.json()
        assert body["error"] == "validation_error"
        assert body["request_id"]

    @pytest.mark.asyncio
    async def test_usage_limit_is_429(self, test_client, fake_provider):
        with patch.object(settings, "ai_daily_limit", 0.0):
            response = await test_client.post(
                "/api/ai/complete",
                json={"query": "dior", "type": "brand"},
                headers={"X-User-ID": "42"},
            )

        assert response.status_code == 429
        assert response.json()["error"] == "usage_limit_exceeded"

    @pytest.mark.asyncio
    async def test_batch_complete_rejects_eleven_queries(self, test_client, fake_provider):
        response = await test_client.post(
            "/api/ai/batch-complete", json={"queries": [f"q{i}x" for i in range(11)], "type": "brand"}
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_providers(self, test_client):
        response = await test_client.get("/api/ai/providers")

        data = response.json()["data"]
        assert data == {"providers": ["openai", "anthropic"], "default": "openai", "total": 2}

    @pytest.mark.asyncio
    async def test_provider_health(self, test_client, fake_provider):
        fake_provider.circuit_breaker.snapshot.return_value = {"state": "closed", "failure_count": 0}

        response = await test_client.get("/api/ai/health", params={"provider": "openai"})

        data = response.json()["data"]
        assert data["overall_status"] == "healthy"
        assert data["providers"]["openai"]["status"] == "healthy"


class TestNormalizationRoutes:

    @pytest.mark.asyncio
    async def test_normalize(self, test_client, fake_provider):
        fake_provider.normalize.return_value = provider_result(normalized_data={
            "normalized_brand": "ディオール",
            "normalized_fragrance_name": "Sauvage",
            "final_confidence_score": 0.9,
        })

        response = await test_client.post(
            "/api/ai/normalize", json={"brand_name": "dior", "fragrance_name": "sauvage"}
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["normalized_data"]["normalized_brand"] == "Dior"
        assert "quality" in data

    @pytest.mark.asyncio
    async def test_catalog_lists_every_provider(self, test_client):
        response = await test_client.get("/api/ai/normalization/providers")

        providers = {p["name"]: p for p in response.json()["data"]["providers"]}
        assert set(providers) == {"openai", "anthropic", "gemini"}
        assert providers["gemini"]["available"] is False
        assert providers["openai"]["display_name"] == "OpenAI GPT"


class TestNoteSuggestionRoutes:

    @pytest.mark.asyncio
    async def test_note_categories(self, test_client):
        response = await test_client.get("/api/ai/note-categories")
        assert response.json()["data"]["total_notes"] == 54

    @pytest.mark.asyncio
    async def test_similar_fragrances_needs_notes(self, test_client):
        response = await test_client.post("/api/ai/similar-fragrances", json={"notes": {}})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_feedback_requires_user(self, test_client):
        payload = {"suggestion_id": "note_0123456789abcdef", "rating": 5, "feedback_type": "accuracy"}

        anonymous = await test_client.post("/api/ai/note-suggestion/feedback", json=payload)
        signed_in = await test_client.post(
            "/api/ai/note-suggestion/feedback", json=payload, headers={"X-User-ID": "3"}
        )

        assert anonymous.status_code == 401
        assert anonymous.json()["error"] == "unauthenticated"
        assert signed_in.status_code == 201
        assert signed_in.json()["data"]["status"] == "processed"


class TestCostRoutes:

    @pytest.mark.asyncio
    async def test_usage_requires_user(self, test_client):
        response = await test_client.get("/api/ai/cost/usage")
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_malformed_user_header_is_anonymous(self, test_client):
        response = await test_client.get("/api/ai/cost/usage", headers={"X-User-ID": "abc"})
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_usage_for_user(self, test_client):
        response = await test_client.get(
            "/api/ai/cost/usage", params={"include_patterns": "true"}, headers={"X-User-ID": "7"}
        )

        data = response.json()["data"]
        assert data["user_id"] == 7
        assert data["usage"]["total_requests"] == 0
        assert "patterns" in data
        assert data["limits"]["can_proceed"] is True

    @pytest.mark.asyncio
    async def test_bad_month_is_422(self, test_client):
        response = await test_client.get(
            "/api/ai/cost/usage", params={"month": "2024-13"}, headers={"X-User-ID": "7"}
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    @pytest.mark.parametrize("path", ["/api/ai/cost/efficiency", "/api/ai/cost/top-users"])
    async def test_month_zero_is_422(self, test_client, path):
        response = await test_client.get(path, params={"month": "2024-00"}, headers={"X-User-ID": "1"})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_report_json(self, test_client):
        response = await test_client.post(
            "/api/ai/cost/report",
            json={"report_type": "quarterly", "include_efficiency": True},
            headers={"X-User-ID": "7"},
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["report_type"] == "quarterly"
        assert data["generated_at"]
        assert set(data["report"]) == {"summary", "history", "prediction", "efficiency"}

    @pytest.mark.asyncio
    async def test_report_csv(self, test_client):
        response = await test_client.post(
            "/api/ai/cost/report",
            json={"report_type": "monthly", "format": "csv"},
            headers={"X-User-ID": "7"},
        )

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert "ai_usage_report_monthly_" in response.headers["content-disposition"]
        assert response.text == "Date,Requests,Cost,Avg Response Time\n"

    @pytest.mark.asyncio
    async def test_report_rejects_unknown_type(self, test_client):
        anonymous = await test_client.post("/api/ai/cost/report", json={"report_type": "monthly"})
        invalid = await test_client.post(
            "/api/ai/cost/report", json={"report_type": "weekly"}, headers={"X-User-ID": "7"}
        )

        assert anonymous.status_code == 401
        assert invalid.status_code == 422

    @pytest.mark.asyncio
    async def test_admin_only_routes(self, test_client):
        forbidden = await test_client.get("/api/ai/cost/global-stats", headers={"X-User-ID": "2"})
        allowed = await test_client.get("/api/ai/cost/top-users", headers={"X-User-ID": "1"})

        assert forbidden.status_code == 403
        assert forbidden.json()["error"] == "forbidden"
        assert allowed.status_code == 200
        assert allowed.json()["data"] == {"top_users": [], "period": "all_time", "limit": 10}

    @pytest.mark.asyncio
    async def test_global_stats_date_order(self, test_client):
        response = await test_client.get(
            "/api/ai/cost/global-stats",
            params={"start_date": "2024-06-02", "end_date": "2024-06-01"},
            headers={"X-User-ID": "1"},
        )
        assert response.status_code == 422


class TestFeedbackRoutes:

    @pytest.mark.asyncio
    async def test_selection_recorded(self, test_client):
        response = await test_client.post(
            "/api/ai/feedback/selection",
            json={
                "query": "シャネ",
                "operation_type": "completion",
                "ai_provider": "openai",
                "ai_model": "gpt-4o-mini",
                "ai_suggestions": [{"text": "CHANEL"}],
                "selected_suggestion": {"text": "CHANEL"},
                "relevance_score": 0.9,
            },
            headers={"X-User-ID": "5", "User-Agent": "pytest"},
        )

        assert response.status_code == 200
        assert response.json()["data"]["recorded"] is True

    @pytest.mark.asyncio
    async def test_session_ids_are_unique(self, test_client):
        first = (await test_client.post("/api/ai/feedback/session")).json()["data"]["session_id"]
        second = (await test_client.post("/api/ai/feedback/session")).json()["data"]["session_id"]
        assert first != second
