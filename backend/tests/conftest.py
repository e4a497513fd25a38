"""
Shared fixtures and fakes for the Thryve backend tests.

- FakeSupabase: in-memory, chainable stand-in for the supabase-py client
- FakeGemini / FakeSearch: scripted LLM and search providers
- make_mock_* factories for trends, research payloads and search results
"""

import copy
import json
import os
import sys
import uuid
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import pytest
from postgrest.exceptions import APIError

# Add backend to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from app.search_provider import SearchResult


# ============================================================================
# TEST DATA FACTORIES
# ============================================================================

def generate_uuid() -> str:
    """Generate a valid UUID string."""
    return str(uuid.uuid4())


def make_mock_seed(
    title: str = "Embedded Finance for SMEs",
    category: str = "Embedded Finance",
    impact: str = "High",
) -> Dict[str, Any]:
    return {
        "title": title,
        "category": category,
        "impact": impact,
        "summary": f"{title} is gaining traction across Philippine banking.",
        "interpretation": f"BPI can lead {title.lower()} through its partner network.",
    }


def make_mock_detailed_research(title: str = "QR Ph Expansion") -> Dict[str, Any]:
    """Factory for a payload that satisfies ``DetailedResearch``."""
    return {
        "keyInsights": {
            "summary": f"{title} is accelerating merchant adoption.",
            "interpretation": "Interoperable QR lowers acceptance costs for micro merchants.",
        },
        "marketValidation": {
            "targetMarketSize": "PHP 2.1T in annual retail payments",
            "adoptionRate": "38% of MSMEs accept QR Ph",
            "revenueOpportunity": "PHP 1.2B in fee and float income",
        },
        "competitiveAnalysis": {
            "currentState": "GCash and Maya dominate wallet-led QR acceptance",
            "bpiPosition": "Strong merchant acquiring base, weaker wallet share",
            "marketWindow": "12-18 months",
            "competitors": ["GCash", "Maya", "UnionBank"],
        },
        "implementationDetails": {
            "technicalRequirements": "QR Ph certified acquiring stack",
            "developmentTime": "6 months",
            "investmentNeeded": "PHP 150M",
            "riskFactors": ["Merchant churn", "Fraud", "Fee compression", "Regulation"],
        },
        "successMetrics": {
            "targetKPIs": ["Active merchants", "TPV", "Monthly actives", "NPS", "Fraud rate", "Churn"],
            "pilotStrategy": "Pilot with 500 Metro Manila sari-sari stores",
            "roiTimeline": "18 months",
        },
        "supportingEvidence": {
            "caseStudies": ["PromptPay in Thailand", "UPI in India"],
            "localContext": "BSP National Retail Payment System targets",
            "regulatory": "BSP Circular 1105",
        },
        "businessModel": {
            "revenueModel": "MDR plus float",
            "keyCustomers": ["MSMEs", "Sari-sari stores"],
            "valuePropositions": ["Instant settlement", "Low fees"],
            "keyPartnerships": ["PayMongo", "Telcos"],
            "bpiAlignment": "Supports the SME banking track",
            "risks": ["Fee caps", "Wallet competition", "Merchant fraud", "Downtime"],
            "riskMitigation": ["Loyalty bundles", "Fraud scoring"],
        },
        "businessImpact": {
            "customerSatisfactionIncrease": "+12 NPS",
            "revenueGrowthPotential": "8% YoY",
            "marketCoverageExpansion": "+40,000 merchants",
        },
    }


def make_mock_trend(
    trend_id: str = None,
    title: str = "Digital Wallets",
    category: str = "Payments",
    impact: str = "Medium",
    summary: str = "Wallet usage keeps climbing.",
    user_id: str = "test-user-id",
    generation_type: str = "automatic",
    days_ago: float = 0,
    is_heart: bool = False,
    detailed_research: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Factory function to create a mock ``trends`` row."""
    created_at = datetime.now(timezone.utc) - timedelta(days=days_ago)
    return {
        "id": trend_id or generate_uuid(),
        "title": title,
        "summary": summary,
        "interpretation": "Worth watching.",
        "category": category,
        "impact": impact,
        "detailed_research": detailed_research,
        "prototype_prompt": "Build a prototype" if detailed_research else None,
        "sources": [],
        "created_at": created_at.isoformat(),
        "is_heart": is_heart,
        "generation_type": generation_type,
        "user_id": user_id,
    }


def make_mock_search_results(prefix: str, count: int = 3, text_size: int = 300) -> List[SearchResult]:
    return [
        SearchResult(
            url=f"https://news.example.com/{prefix}/{i}",
            title=f"{prefix} article {i}",
            content=f"{prefix} finding {i} " + ("x" * text_size),
        )
        for i in range(count)
    ]


# ============================================================================
# MOCK SUPABASE CLASSES
# ============================================================================

class MockSupabaseResponse:
    """Mock Supabase response object."""
    def __init__(self, data: Any = None):
        self.data = data if data is not None else []


class FakeQuery:
    """Chainable query builder over one in-memory table."""

    def __init__(self, db: "FakeSupabase", table: str):
        self._db = db
        self._table = table
        self._filters = []
        self._order = None
        self._limit = None
        self._op = "select"
        self._payload = None

    # Builders ------------------------------------------------------------

    def select(self, *args, **kwargs):
        return self

    def eq(self, field: str, value: Any):
        self._filters.append(lambda row: row.get(field) == value)
        return self

    def gte(self, field: str, value: Any):
        self._filters.append(lambda row: row.get(field) is not None and row.get(field) >= value)
        return self

    def order(self, field: str, desc: bool = False):
        self._order = (field, desc)
        return self

    def limit(self, count: int):
        self._limit = count
        return self

    def insert(self, payload):
        self._op, self._payload = "insert", payload
        return self

    def update(self, payload: Dict[str, Any]):
        self._op, self._payload = "update", payload
        return self

    def delete(self):
        self._op = "delete"
        return self

    # Execution -----------------------------------------------------------

    def _matches(self, row: Dict[str, Any]) -> bool:
        return all(check(row) for check in self._filters)

    def execute(self):
        if self._table in self._db.fail_tables:
            raise APIError({"message": f"{self._table} unavailable", "code": "500"})

        rows = self._db.tables.setdefault(self._table, [])
        if self._op == "insert":
            payload = self._payload if isinstance(self._payload, list) else [self._payload]
            inserted = []
            for item in payload:
                row = dict(item)
                row.setdefault("id", generate_uuid())
                row.setdefault("created_at", self._db.next_timestamp())
                rows.append(row)
                inserted.append(copy.deepcopy(row))
            return MockSupabaseResponse(inserted)

        if self._op == "update":
            updated = []
            for row in rows:
                if self._matches(row):
                    row.update(self._payload)
                    updated.append(copy.deepcopy(row))
            return MockSupabaseResponse(updated)

        if self._op == "delete":
            removed = [row for row in rows if self._matches(row)]
            self._db.tables[self._table] = [row for row in rows if not self._matches(row)]
            return MockSupabaseResponse(removed)

        result = [copy.deepcopy(row) for row in rows if self._matches(row)]
        if self._order:
            field, desc = self._order
            result.sort(key=lambda row: row.get(field) or "", reverse=desc)
        if self._limit is not None:
            result = result[: self._limit]
        return MockSupabaseResponse(result)


class FakeRpc:
    def __init__(self, db: "FakeSupabase", name: str, params: Dict[str, Any]):
        self._db = db
        self._name = name
        self._params = params

    def execute(self):
        self._db.rpc_calls.append((self._name, self._params))
        return MockSupabaseResponse(self._db.rpc_results.get(self._name))


class FakeAuth:
    def __init__(self, users: Dict[str, Dict[str, Any]]):
        self._users = users

    def get_user(self, token: str):
        user = self._users.get(token)
        if user is None:
            raise RuntimeError("invalid JWT")
        return SimpleNamespace(user=SimpleNamespace(**user))


class FakeSupabase:
    """In-memory stand-in for ``supabase.Client``."""

    def __init__(self, tables: Optional[Dict[str, List[Dict[str, Any]]]] = None):
        self.tables = tables if tables is not None else {}
        self.fail_tables = set()
        self.rpc_results: Dict[str, Any] = {}
        self.rpc_calls = []
        self.auth = FakeAuth({})
        self._clock = datetime.now(timezone.utc)

    def next_timestamp(self) -> str:
        self._clock += timedelta(milliseconds=1)
        return self._clock.isoformat()

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def rpc(self, name: str, params: Dict[str, Any]) -> FakeRpc:
        return FakeRpc(self, name, params)


# ============================================================================
# PROVIDER FAKES
# ============================================================================

class FakeGemini:
    """Scripted Gemini client; each call pops the next response.

    A response that is an exception instance is raised instead of returned.
    """

    def __init__(self, responses: Optional[List[Any]] = None):
        self.responses = list(responses or [])
        self.calls = []

    def _next(self):
        if not self.responses:
            raise AssertionError("FakeGemini ran out of scripted responses")
        response = self.responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        return response

    async def generate_text(self, prompt, temperature=0.2, top_p=0.9, json_mode=False):
        self.calls.append({"prompt": prompt, "temperature": temperature, "json_mode": json_mode})
        return self._next()

    async def generate_content(self, contents, **kwargs):
        self.calls.append({"contents": contents, **kwargs})
        return self._next()


class FakeSearch:
    """Search provider returning canned results per query."""

    def __init__(self, results: Optional[List[SearchResult]] = None, fail_on: Optional[str] = None):
        self.results = results
        self.fail_on = fail_on
        self.queries = []

    async def search(self, query: str, max_results: int) -> List[SearchResult]:
        from app.exceptions import SearchProviderError

        self.queries.append(query)
        if self.fail_on is not None and self.fail_on in query:
            raise SearchProviderError(500, "upstream failure")
        if self.results is not None:
            return list(self.results)
        return make_mock_search_results(f"q{len(self.queries)}")


def seeds_json(*titles: str) -> str:
    return json.dumps({"trends": [make_mock_seed(title) for title in titles]})


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def mock_user():
    """Mock authenticated user."""
    return {"id": "test-user-id", "email": "test@example.com"}


@pytest.fixture
def fake_db():
    return FakeSupabase()


@pytest.fixture
def app_client(fake_db, mock_user):
    """TestClient over the real app with storage and auth overridden."""
    from fastapi.testclient import TestClient

    from app.deps import get_current_user, get_supabase, limiter
    from app.main import app

    limiter.enabled = False
    app.dependency_overrides[get_supabase] = lambda: fake_db
    app.dependency_overrides[get_current_user] = lambda: mock_user
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
        limiter.enabled = True
