"""
Tests for the trend service and the /api/trends endpoints

Tests cover:
- search / sort / pagination rules of the trends screen
- the generation guard (one round per user at a time)
- the weekly quota bootstrap
- generation rounds with per-trend failure isolation
- the auto-prototype hook
- list, generate, analyze and heart endpoints

Usage:
    cd backend && pytest tests/test_trend_service.py -v
"""

import json
import os
import sys

import httpx
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from app.deps import get_research_service
from app.exceptions import ConfigurationError, GenerationInProgressError, TrendNotFoundError
from app.main import app
from app.models.trend import Trend
from app.research_service import ResearchService
from app.trend_service import (
    GenerationGuard,
    GenerationState,
    TrendService,
    filter_sort_paginate,
    generation_guard,
)
from conftest import (
    FakeGemini,
    FakeSearch,
    make_mock_detailed_research,
    make_mock_trend,
    seeds_json,
)

USER_ID = "test-user-id"


def detailed_json(title: str = "QR Ph Expansion") -> str:
    return json.dumps(make_mock_detailed_research(title))


@pytest.fixture
def fake_gemini():
    return FakeGemini()


@pytest.fixture
def research(fake_gemini):
    return ResearchService(gemini=fake_gemini, search=FakeSearch())


@pytest.fixture
def service(fake_db, research):
    return TrendService(fake_db, research, guard=GenerationGuard())


# ============================================================================
# LISTING RULES
# ============================================================================

class TestFilterSortPaginate:

    @pytest.fixture
    def trends(self):
        rows = [
            make_mock_trend(title="Green Loans", category="Sustainability", impact="Low", days_ago=3),
            make_mock_trend(title="Open Banking", category="APIs", impact="High", days_ago=1, is_heart=True),
            make_mock_trend(
                title="QR Ph", category="Payments", impact="Medium", days_ago=2,
                detailed_research=make_mock_detailed_research(),
            ),
            make_mock_trend(title="Agri Credit", category="Lending", impact="High", days_ago=4),
        ]
        return [Trend.from_row(row) for row in rows]

    def test_newest_first_with_three_per_page(self, trends):
        result = filter_sort_paginate(trends, sort="newest")
        assert [t.title for t in result["trends"]] == ["Open Banking", "QR Ph", "Green Loans"]
        assert result["total_pages"] == 2
        assert result["total"] == 4
        assert result["completed_count"] == 1

    def test_second_page(self, trends):
        result = filter_sort_paginate(trends, sort="newest", page=2)
        assert [t.title for t in result["trends"]] == ["Agri Credit"]

    def test_impact_sorts(self, trends):
        high = filter_sort_paginate(trends, sort="impact-high", per_page=10)["trends"]
        low = filter_sort_paginate(trends, sort="impact-low", per_page=10)["trends"]
        assert [t.impact for t in high] == ["High", "High", "Medium", "Low"]
        assert low[0].impact == "Low"

    def test_category_sort(self, trends):
        result = filter_sort_paginate(trends, sort="category", per_page=10)
        assert [t.category for t in result["trends"]] == ["APIs", "Lending", "Payments", "Sustainability"]

    def test_completed_first(self, trends):
        result = filter_sort_paginate(trends, sort="completed")
        assert result["trends"][0].title == "QR Ph"

    def test_saved_filters_to_hearted(self, trends):
        result = filter_sort_paginate(trends, sort="saved")
        assert [t.title for t in result["trends"]] == ["Open Banking"]
        assert result["total_pages"] == 1

    def test_search_matches_title_category_or_summary(self, trends):
        assert filter_sort_paginate(trends, query="payments")["total"] == 1
        assert filter_sort_paginate(trends, query="  GREEN ")["total"] == 1
        assert filter_sort_paginate(trends, query="wallet usage")["total"] == 4

    def test_empty_result(self):
        result = filter_sort_paginate([], sort="newest")
        assert result["trends"] == []
        assert result["total_pages"] == 0

    def test_bad_research_blob_is_tolerated(self):
        trend = Trend.from_row(make_mock_trend(detailed_research={"keyInsights": "oops"}))
        assert trend.detailed_research is None
        assert not trend.is_completed


# ============================================================================
# GENERATION GUARD
# ============================================================================

class TestGenerationGuard:

    @pytest.mark.asyncio
    async def test_second_round_for_same_user_is_refused(self):
        guard = GenerationGuard()
        async with guard.round("u1"):
            assert guard.state("u1") is GenerationState.GENERATING
            with pytest.raises(GenerationInProgressError):
                async with guard.round("u1"):
                    pass
        assert guard.state("u1") is GenerationState.IDLE

    @pytest.mark.asyncio
    async def test_users_are_independent(self):
        guard = GenerationGuard()
        async with guard.round("u1"):
            async with guard.round("u2"):
                assert guard.is_generating("u1") and guard.is_generating("u2")

    @pytest.mark.asyncio
    async def test_state_resets_after_failure(self):
        guard = GenerationGuard()
        with pytest.raises(RuntimeError):
            async with guard.round("u1"):
                raise RuntimeError("boom")
        assert not guard.is_generating("u1")


# ============================================================================
# SERVICE
# ============================================================================

class TestBootstrap:

    @pytest.mark.asyncio
    async def test_empty_store_generates_one_automatic_trend(self, service, fake_db, fake_gemini):
        fake_gemini.responses = [seeds_json("Embedded Insurance"), detailed_json("Embedded Insurance")]

        result = await service.bootstrap(USER_ID)

        assert result["generated"] is True
        assert result["trends_needed"] == 1
        assert result["current_week_count"] == 0
        rows = fake_db.tables["trends"]
        assert len(rows) == 1
        assert rows[0]["generation_type"] == "automatic"
        assert rows[0]["user_id"] == USER_ID
        assert rows[0]["detailed_research"]["keyInsights"]["summary"]

    @pytest.mark.asyncio
    async def test_quota_met_skips_generation(self, service, fake_db, fake_gemini):
        fake_db.tables["trends"] = [make_mock_trend(generation_type="automatic", days_ago=2)]

        result = await service.bootstrap(USER_ID)

        assert result["generated"] is False
        assert result["current_week_count"] == 1
        assert fake_gemini.calls == []

    @pytest.mark.asyncio
    async def test_old_or_manual_trends_do_not_count(self, service, fake_db, fake_gemini):
        fake_db.tables["trends"] = [
            make_mock_trend(title="Digital Wallets", generation_type="automatic", days_ago=10),
            make_mock_trend(title="Green Loans", generation_type="manual", days_ago=1),
        ]
        fake_gemini.responses = [
            seeds_json("Digital Wallets", "Open Banking APIs"),
            detailed_json("Open Banking APIs"),
        ]

        result = await service.bootstrap(USER_ID)

        assert result["generated"] is True
        assert [t.title for t in result["trends"]] == ["Open Banking APIs"]
        assert "Digital Wallets" in fake_gemini.calls[0]["prompt"]

    @pytest.mark.asyncio
    async def test_round_in_progress_is_reported(self, fake_db, research):
        guard = GenerationGuard()
        service = TrendService(fake_db, research, guard=guard)
        async with guard.round(USER_ID):
            result = await service.bootstrap(USER_ID)
        assert result["generated"] is False
        assert result["message"] == "Generation already in progress"


class TestGenerateRound:

    @pytest.mark.asyncio
    async def test_failed_research_drops_only_that_trend(self, service, fake_db, fake_gemini):
        fake_gemini.responses = [
            seeds_json("Embedded Insurance", "Agri Credit Scoring"),
            detailed_json("Embedded Insurance"),
            "no json at all",
        ]

        created = await service.generate_round(USER_ID, 2, "manual", search_topic="insurance")

        assert [t.title for t in created] == ["Embedded Insurance"]
        assert fake_db.tables["trends"][0]["generation_type"] == "manual"

    @pytest.mark.asyncio
    async def test_request_titles_are_avoided(self, service, fake_gemini):
        fake_gemini.responses = [seeds_json("Crypto Custody", "Payroll Loans"), detailed_json()]

        created = await service.generate_round(
            USER_ID, 1, "automatic", extra_titles=["Crypto Custody"]
        )

        assert [t.title for t in created] == ["Payroll Loans"]

    @pytest.mark.asyncio
    async def test_requires_research_credentials(self, fake_db):
        service = TrendService(fake_db, None, guard=GenerationGuard())
        with pytest.raises(ConfigurationError):
            await service.generate_round(USER_ID, 1, "automatic")


class TestAnalyzeAndHeart:

    @pytest.mark.asyncio
    async def test_analyze_updates_research_in_place(self, service, fake_db, fake_gemini):
        fake_db.tables["trends"] = [make_mock_trend(trend_id="t1", title="QR Ph Expansion")]
        fake_gemini.responses = [detailed_json()]

        trend = await service.analyze_trend(USER_ID, "t1")

        assert trend.is_completed
        assert trend.prototype_prompt
        assert len(trend.sources) <= 6
        assert fake_db.tables["trends"][0]["detailed_research"] is not None

    @pytest.mark.asyncio
    async def test_analyze_unknown_trend(self, service):
        with pytest.raises(TrendNotFoundError):
            await service.analyze_trend(USER_ID, "missing")

    @pytest.mark.asyncio
    async def test_heart_only_touches_own_trend(self, service, fake_db):
        fake_db.tables["trends"] = [make_mock_trend(trend_id="t1", user_id="someone-else")]
        with pytest.raises(TrendNotFoundError):
            await service.set_heart(USER_ID, "t1", True)
        assert fake_db.tables["trends"][0]["is_heart"] is False


# ============================================================================
# AUTO-PROTOTYPE HOOK
# ============================================================================

class TestAutoPrototype:

    @pytest.fixture
    def posted(self):
        return []

    @pytest.fixture
    def proto_service(self, fake_db, research, posted):
        def handler(request: httpx.Request) -> httpx.Response:
            posted.append(json.loads(request.content))
            return httpx.Response(202, json={"status": "started"})

        fake_db.tables["profiles"] = [{"id": USER_ID, "auto_generate_prototypes": True}]
        return TrendService(
            fake_db,
            research,
            guard=GenerationGuard(),
            prototype_url="https://prototypes.example/api/generate",
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )

    @pytest.mark.asyncio
    async def test_automatic_trend_triggers_prototype(self, proto_service, fake_gemini, posted):
        fake_gemini.responses = [seeds_json("Embedded Insurance"), detailed_json("Embedded Insurance")]

        created = await proto_service.generate_round(USER_ID, 1, "automatic")

        assert len(posted) == 1
        assert posted[0]["category"] == "Auto-Generated"
        assert posted[0]["priority"] == "High"
        assert posted[0]["trendId"] == created[0].id
        assert posted[0]["title"] == "Embedded Insurance Prototype (Auto-Generated)"

    @pytest.mark.asyncio
    async def test_manual_trend_does_not_trigger(self, proto_service, fake_gemini, posted):
        fake_gemini.responses = [seeds_json("Embedded Insurance"), detailed_json()]
        await proto_service.generate_round(USER_ID, 1, "manual", search_topic="insurance")
        assert posted == []

    @pytest.mark.asyncio
    async def test_opted_out_user(self, proto_service, fake_db, fake_gemini, posted):
        fake_db.tables["profiles"][0]["auto_generate_prototypes"] = False
        fake_gemini.responses = [seeds_json("Embedded Insurance"), detailed_json()]
        await proto_service.generate_round(USER_ID, 1, "automatic")
        assert posted == []


# ============================================================================
# ENDPOINTS
# ============================================================================

@pytest.fixture
def client(app_client, research):
    app.dependency_overrides[get_research_service] = lambda: research
    return app_client


class TestTrendEndpoints:

    def test_list_trends(self, client, fake_db):
        fake_db.tables["trends"] = [
            make_mock_trend(title=f"Trend {i}", days_ago=i, is_heart=(i == 0)) for i in range(4)
        ] + [make_mock_trend(title="Not mine", user_id="someone-else")]

        response = client.get("/api/trends", params={"sort": "newest", "page": 1})

        assert response.status_code == 200
        data = response.json()
        assert [t["title"] for t in data["trends"]] == ["Trend 0", "Trend 1", "Trend 2"]
        assert data["total"] == 4
        assert data["total_pages"] == 2

        saved = client.get("/api/trends", params={"sort": "saved"}).json()
        assert [t["title"] for t in saved["trends"]] == ["Trend 0"]

    def test_invalid_sort_rejected(self, client):
        assert client.get("/api/trends", params={"sort": "random"}).status_code == 422

    def test_generate_round(self, client, fake_db, fake_gemini):
        fake_gemini.responses = [seeds_json("Embedded Insurance"), detailed_json("Embedded Insurance")]

        response = client.post("/api/trends/generate", json={"count": 1, "searchTopic": "insurance"})

        assert response.status_code == 200
        data = response.json()
        assert data["generated"] is True
        assert data["trends"][0]["generation_type"] == "manual"

    def test_generate_while_running_is_conflict(self, client):
        generation_guard._states[USER_ID] = GenerationState.GENERATING
        try:
            response = client.post("/api/trends/generate", json={"count": 1})
        finally:
            generation_guard._states.pop(USER_ID, None)
        assert response.status_code == 409
        assert response.json() == {"error": "Generation already in progress"}

    def test_generate_without_credentials(self, client):
        app.dependency_overrides[get_research_service] = lambda: None
        response = client.post("/api/trends/generate", json={"count": 1})
        assert response.status_code == 400
        assert "GEMINI_API_KEY" in response.json()["error"]

    def test_generate_count_out_of_range(self, client):
        assert client.post("/api/trends/generate", json={"count": 6}).status_code == 422

    def test_bootstrap_endpoint(self, client, fake_db):
        fake_db.tables["trends"] = [make_mock_trend(generation_type="automatic", days_ago=1)]
        response = client.post("/api/trends/bootstrap")
        assert response.status_code == 200
        assert response.json()["generated"] is False
        assert response.json()["current_week_count"] == 1

    def test_analyze_endpoint(self, client, fake_db, fake_gemini):
        fake_db.tables["trends"] = [make_mock_trend(trend_id="t1")]
        fake_gemini.responses = [detailed_json()]
        response = client.post("/api/trends/t1/analyze")
        assert response.status_code == 200
        assert response.json()["trend"]["detailed_research"]["keyInsights"]

    def test_analyze_missing_trend(self, client):
        response = client.post("/api/trends/missing/analyze")
        assert response.status_code == 404
        assert response.json() == {"error": "Trend not found"}

    def test_heart_toggle(self, client, fake_db):
        fake_db.tables["trends"] = [make_mock_trend(trend_id="t1")]
        response = client.patch("/api/trends/t1/heart", json={"is_heart": True})
        assert response.status_code == 200
        assert response.json()["trend"]["is_heart"] is True
        assert fake_db.tables["trends"][0]["is_heart"] is True


    def test_storage_routes_skip_research_setup(self, client, fake_db):
        resolved = []

        def research_factory():
            resolved.append(True)
            return None

        app.dependency_overrides[get_research_service] = research_factory
        fake_db.tables["trends"] = [make_mock_trend(trend_id="t1")]

        assert client.get("/api/trends").status_code == 200
        assert client.patch("/api/trends/t1/heart", json={"is_heart": True}).status_code == 200
        assert resolved == []

    def test_storage_failure_hides_details(self, client, fake_db):
        fake_db.fail_tables.add("trends")
        response = client.get("/api/trends")
        assert response.status_code == 500
        assert response.json() == {
            "error": "Database operation failed. Please try again or contact support."
        }


class TestHealth:

    def test_root(self, client):
        assert client.get("/").json()["status"] == "ok"

    def test_health_reports_degraded_without_keys(self, client, monkeypatch):
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        monkeypatch.delenv("TAVILY_API_KEY", raising=False)
        data = client.get("/api/health").json()
        assert data["mode"] == "degraded"
        assert "research" in data["degraded"]
        assert "chat" in data["degraded"]
