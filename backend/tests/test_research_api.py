"""
Integration Tests for the Research API Endpoint

Tests POST /api/research with Tavily and Gemini replaced by scripted fakes:
- seed proposal (bootstrap mode) with dedup against existing titles
- detailed research for a single trend
- credential, body and pipeline error handling

Usage:
    cd backend && pytest tests/test_research_api.py -v
"""

import json
import os
import sys

import pytest
from pydantic import ValidationError

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from app.deduplication import is_similar_title
from app.deps import get_research_service
from app.exceptions import GeminiAPIError
from app.main import app
from app.models.research import DetailedResearch, ProposedTrends
from app.research_service import ResearchService
from conftest import (
    FakeGemini,
    FakeSearch,
    make_mock_detailed_research,
    make_mock_seed,
    seeds_json,
)


@pytest.fixture
def fake_gemini():
    return FakeGemini()


@pytest.fixture
def fake_search():
    return FakeSearch()


@pytest.fixture
def client(app_client, fake_gemini, fake_search):
    service = ResearchService(gemini=fake_gemini, search=fake_search)
    app.dependency_overrides[get_research_service] = lambda: service
    return app_client


# ============================================================================
# SEED PROPOSAL
# ============================================================================

class TestSeedProposal:

    def test_seeds_exclude_existing_titles(self, client, fake_gemini):
        fake_gemini.responses = [
            seeds_json("Digital Wallets", "Embedded Finance for SMEs", "Green Loans for MSMEs")
        ]

        response = client.post(
            "/api/research",
            json={"bootstrap": True, "mode": "seeds", "existingTrends": ["Digital Wallets"], "count": 2},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["generationType"] == "automatic"
        assert len(data["seeds"]) == 2
        for seed in data["seeds"]:
            assert not is_similar_title(seed["title"], ["Digital Wallets"])
            assert set(seed) == {"title", "category", "impact", "summary", "interpretation"}

    def test_search_topic_marks_round_manual(self, client, fake_gemini, fake_search):
        fake_gemini.responses = [seeds_json("Agri Lending Platforms")]

        response = client.post(
            "/api/research",
            json={"bootstrap": True, "mode": "seeds", "count": 1, "searchTopic": "agriculture"},
        )

        assert response.status_code == 200
        assert response.json()["generationType"] == "manual"
        assert len(fake_search.queries) == 3
        assert all("agriculture" in q for q in fake_search.queries)
        assert "agriculture" in fake_gemini.calls[0]["prompt"]

    def test_broad_queries_without_topic(self, client, fake_gemini, fake_search):
        fake_gemini.responses = [seeds_json("Open Banking APIs")]
        client.post("/api/research", json={"bootstrap": True, "mode": "seeds"})
        assert len(fake_search.queries) == 2
        assert fake_gemini.calls[0]["temperature"] == 0.4

    def test_fallback_prompt_used_once_when_first_answer_unusable(self, client, fake_gemini):
        fake_gemini.responses = ["I cannot answer in JSON today.", seeds_json("Open Banking APIs")]

        response = client.post("/api/research", json={"bootstrap": True, "mode": "seeds", "count": 1})

        assert response.status_code == 200
        assert response.json()["seeds"][0]["title"] == "Open Banking APIs"
        assert [call["temperature"] for call in fake_gemini.calls] == [0.4, 0.6]

    def test_both_prompts_failing_returns_500(self, client, fake_gemini):
        fake_gemini.responses = ["nope", '{"trends": []}']

        response = client.post("/api/research", json={"bootstrap": True, "mode": "seeds", "count": 1})

        assert response.status_code == 500
        body = response.json()
        assert body["error"].startswith("AI failed to generate trends")
        assert "even with fallback" in body["technical_error"]

    def test_first_answer_with_bad_impact_triggers_fallback(self, client, fake_gemini):
        bad_first = json.dumps({"trends": [make_mock_seed("Open Banking APIs", impact="Huge")]})
        fake_gemini.responses = [bad_first, seeds_json("Embedded Finance for SMEs")]

        response = client.post("/api/research", json={"bootstrap": True, "mode": "seeds", "count": 1})

        assert response.status_code == 200
        assert response.json()["seeds"][0]["title"] == "Embedded Finance for SMEs"
        assert len(fake_gemini.calls) == 2

    def test_fallback_with_too_many_trends_is_a_seed_failure(self, client, fake_gemini):
        six = seeds_json(*[f"Trend Number {i}" for i in range(6)])
        fake_gemini.responses = ["not json", six]

        response = client.post("/api/research", json={"bootstrap": True, "mode": "seeds", "count": 1})

        assert response.status_code == 500
        body = response.json()
        assert body["error"].startswith("AI failed to generate trends")
        assert "failed validation" in body["technical_error"]

    def test_existing_trends_must_be_a_list(self, client, fake_gemini):
        response = client.post(
            "/api/research",
            json={"bootstrap": True, "mode": "seeds", "existingTrends": "Digital Wallets"},
        )
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid seed request."
        assert fake_gemini.calls == []

    def test_count_out_of_range_rejected(self, client):
        response = client.post("/api/research", json={"bootstrap": True, "mode": "seeds", "count": 9})
        assert response.status_code == 400


# ============================================================================
# DETAILED RESEARCH
# ============================================================================

class TestDetailedResearch:

    def test_detailed_research_end_to_end(self, client, fake_gemini, fake_search):
        payload = make_mock_detailed_research("QR Ph Expansion")
        fake_gemini.responses = ["Here you go:\n```json\n" + json.dumps(payload) + "\n```"]

        response = client.post(
            "/api/research", json={"title": "QR Ph Expansion", "category": "Digital Payments"}
        )

        assert response.status_code == 200
        data = response.json()
        research = data["detailed_research"]
        for key in DetailedResearch.model_fields:
            assert key in research
        assert research["competitiveAnalysis"]["competitors"] == ["GCash", "Maya", "UnionBank"]
        assert len(data["sources"]) <= 6
        assert len(data["sources"]) == len(set(data["sources"]))
        assert "QR Ph Expansion" in data["prototype_prompt"]
        assert len(fake_search.queries) == 3
        assert fake_gemini.calls[0]["json_mode"] is True
        assert fake_gemini.calls[0]["temperature"] == 0.3

    def test_prompt_embeds_search_sources(self, client, fake_gemini, fake_search):
        fake_gemini.responses = [json.dumps(make_mock_detailed_research())]
        client.post("/api/research", json={"title": "QR Ph Expansion", "category": "Digital Payments"})
        assert "https://news.example.com/q1/0" in fake_gemini.calls[0]["prompt"]

    def test_invalid_shape_returns_validation_error(self, client, fake_gemini):
        fake_gemini.responses = ['{"keyInsights": {"summary": "only this"}}']

        response = client.post("/api/research", json={"title": "QR Ph", "category": "Payments"})

        assert response.status_code == 500
        body = response.json()
        assert body["error"] == "AI response validation failed. Please try again."
        assert "technical_error" in body

    def test_no_json_returns_500(self, client, fake_gemini):
        fake_gemini.responses = ["Sorry, I can't help with that."]
        response = client.post("/api/research", json={"title": "QR Ph", "category": "Payments"})
        assert response.status_code == 500
        assert response.json()["error"] == "Model did not return valid JSON."

    def test_search_failure_returns_500(self, client, fake_search):
        fake_search.fail_on = "QR Ph"
        response = client.post("/api/research", json={"title": "QR Ph", "category": "Payments"})
        assert response.status_code == 500
        assert "Tavily error" in response.json()["error"]

    def test_gemini_failure_returns_500(self, client, fake_gemini):
        fake_gemini.responses = [GeminiAPIError(500, "internal")]
        response = client.post("/api/research", json={"title": "QR Ph", "category": "Payments"})
        assert response.status_code == 500
        assert "Gemini error (500)" in response.json()["error"]


# ============================================================================
# REQUEST VALIDATION
# ============================================================================

class TestRequestValidation:

    @pytest.mark.parametrize(
        "body",
        [{}, {"title": "QR Ph"}, {"category": "Payments"}, {"title": "  ", "category": "Payments"}],
    )
    def test_missing_fields(self, client, body):
        response = client.post("/api/research", json=body)
        assert response.status_code == 400
        assert response.json() == {"error": "Missing 'title' or 'category'."}

    def test_invalid_json_treated_as_empty(self, client):
        response = client.post(
            "/api/research", content="not json", headers={"Content-Type": "application/json"}
        )
        assert response.status_code == 400
        assert response.json()["error"] == "Missing 'title' or 'category'."

    def test_seed_mode_requires_bootstrap_flag(self, client):
        response = client.post("/api/research", json={"mode": "seeds", "count": 1})
        assert response.status_code == 400

    def test_missing_credentials(self, app_client):
        app.dependency_overrides[get_research_service] = lambda: None
        response = app_client.post(
            "/api/research", json={"title": "QR Ph", "category": "Payments"}
        )
        assert response.status_code == 400
        assert "TAVILY_API_KEY and GEMINI_API_KEY" in response.json()["error"]

    def test_credential_factory_requires_both_keys(self, monkeypatch):
        monkeypatch.setenv("GEMINI_API_KEY", "g")
        monkeypatch.delenv("TAVILY_API_KEY", raising=False)
        assert get_research_service() is None


# ============================================================================
# SEED SCHEMA
# ============================================================================

class TestProposedTrendsSchema:

    def test_accepts_one_to_five_trends(self):
        for size in (1, 5):
            payload = {"trends": [make_mock_seed(f"Trend {i}") for i in range(size)]}
            assert len(ProposedTrends.model_validate(payload).trends) == size

    @pytest.mark.parametrize("size", [0, 6])
    def test_rejects_empty_or_oversized_batches(self, size):
        payload = {"trends": [make_mock_seed(f"Trend {i}") for i in range(size)]}
        with pytest.raises(ValidationError):
            ProposedTrends.model_validate(payload)

    def test_rejects_unknown_impact(self):
        with pytest.raises(ValidationError):
            ProposedTrends.model_validate({"trends": [make_mock_seed(impact="Huge")]})
