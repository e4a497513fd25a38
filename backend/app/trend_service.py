"""
Trend Service: generation rounds, the weekly quota and trend storage.

Owns everything the trends screen needs from the server:

- listing a user's trends with search, sort and pagination
- the opportunistic weekly quota check (``bootstrap``): when fewer than
  ``WEEKLY_TREND_TARGET`` automatic trends exist inside the rolling
  seven-day window, run one automatic generation round
- manual generation rounds with an optional focus topic
- re-analysis of a stored trend and the saved ("heart") toggle
- the auto-prototype hook for automatic trends

Rounds are serialised per user by ``GenerationGuard``, a small state machine
(``IDLE -> GENERATING -> IDLE``). The guard lives in process memory; several
workers behind a load balancer each keep their own.
"""

import asyncio
import logging
import math
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence

import httpx
from postgrest.exceptions import APIError
from pydantic import ValidationError
from supabase import Client

from app.deduplication import (
    current_week_window_start,
    should_refresh_trends,
    trends_needed,
)
from app.exceptions import (
    ConfigurationError,
    GenerationInProgressError,
    PersistenceError,
    ThryveError,
    TrendNotFoundError,
)
from app.models.research import TrendSeed
from app.models.trend import IMPACT_ORDER, TRENDS_PER_PAGE, Trend
from app.prompts import build_auto_prototype_prompt
from app.research_service import DetailedResearchResult, ResearchService

logger = logging.getLogger(__name__)

TRENDS_TABLE = "trends"
PROFILES_TABLE = "profiles"
PROTOTYPE_TIMEOUT_SECONDS = 30.0


# ============================================================================
# Generation guard
# ============================================================================


class GenerationState(str, Enum):
    IDLE = "idle"
    GENERATING = "generating"


class GenerationGuard:
    """At most one generation round per user at a time."""

    def __init__(self):
        self._states: Dict[str, GenerationState] = {}

    def state(self, user_id: str) -> GenerationState:
        return self._states.get(user_id, GenerationState.IDLE)

    def is_generating(self, user_id: str) -> bool:
        return self.state(user_id) is GenerationState.GENERATING

    @asynccontextmanager
    async def round(self, user_id: str):
        # Check and transition happen with no await in between
        if self.is_generating(user_id):
            raise GenerationInProgressError(f"Generation already in progress for user {user_id}")
        self._states[user_id] = GenerationState.GENERATING
        try:
            yield
        finally:
            self._states.pop(user_id, None)


generation_guard = GenerationGuard()


# ============================================================================
# Listing helpers
# ============================================================================

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


def filter_sort_paginate(
    trends: Sequence[Trend],
    sort: str = "newest",
    query: str = "",
    page: int = 1,
    per_page: int = TRENDS_PER_PAGE,
) -> Dict[str, Any]:
    """Apply the trends screen's search, sort and page rules."""
    filtered = list(trends)

    if query and query.strip():
        needle = query.strip().lower()
        filtered = [
            t
            for t in filtered
            if needle in t.title.lower()
            or needle in t.category.lower()
            or needle in t.summary.lower()
        ]

    if sort == "newest":
        filtered.sort(key=lambda t: t.created_at or _OLDEST, reverse=True)
    elif sort == "impact-high":
        filtered.sort(key=lambda t: IMPACT_ORDER[t.impact], reverse=True)
    elif sort == "impact-low":
        filtered.sort(key=lambda t: IMPACT_ORDER[t.impact])
    elif sort == "category":
        filtered.sort(key=lambda t: t.category.casefold())
    elif sort == "completed":
        filtered.sort(key=lambda t: not t.is_completed)
    elif sort == "saved":
        filtered = [t for t in filtered if t.is_heart]

    total_pages = math.ceil(len(filtered) / per_page) if filtered else 0
    page = max(1, page)
    start = (page - 1) * per_page
    return {
        "trends": filtered[start : start + per_page],
        "page": page,
        "total_pages": total_pages,
        "total": len(filtered),
        "completed_count": sum(1 for t in filtered if t.is_completed),
    }


# ============================================================================
# Trend Service
# ============================================================================


class TrendService:
    """Supabase-backed trend storage plus generation rounds."""

    def __init__(
        self,
        db: Client,
        research: Optional[ResearchService],
        guard: GenerationGuard = generation_guard,
        prototype_url: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.db = db
        self.research = research
        self.guard = guard
        self.prototype_url = prototype_url
        self._http_client = http_client

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    async def _execute(self, operation: str, build_query):
        try:
            return await asyncio.to_thread(lambda: build_query().execute())
        except APIError as e:
            logger.error(f"Supabase error during {operation}: {e.message}")
            raise PersistenceError(f"{operation} failed") from e

    async def list_trends(self, user_id: str) -> List[Trend]:
        """All of the user's trends, newest first."""
        response = await self._execute(
            "load trends",
            lambda: self.db.table(TRENDS_TABLE)
            .select("*")
            .eq("user_id", user_id)
            .order("created_at", desc=True),
        )
        return [Trend.from_row(row) for row in response.data or []]

    async def get_current_week_trends(
        self, user_id: str, now: Optional[datetime] = None
    ) -> List[Trend]:
        """Automatic trends created since midnight seven days ago."""
        window_start = current_week_window_start(now)
        response = await self._execute(
            "check current week trends",
            lambda: self.db.table(TRENDS_TABLE)
            .select("*")
            .eq("user_id", user_id)
            .eq("generation_type", "automatic")
            .gte("created_at", window_start.isoformat())
            .order("created_at", desc=True),
        )
        return [Trend.from_row(row) for row in response.data or []]

    async def get_trend(self, user_id: str, trend_id: str) -> Trend:
        response = await self._execute(
            "load trend",
            lambda: self.db.table(TRENDS_TABLE)
            .select("*")
            .eq("id", trend_id)
            .eq("user_id", user_id)
            .limit(1),
        )
        if not response.data:
            raise TrendNotFoundError(trend_id)
        return Trend.from_row(response.data[0])

    async def save_trend(
        self,
        user_id: str,
        seed: TrendSeed,
        result: DetailedResearchResult,
        generation_type: str,
    ) -> Trend:
        row = {
            "title": seed.title,
            "summary": seed.summary,
            "interpretation": seed.interpretation,
            "category": seed.category,
            "impact": seed.impact or "Medium",
            "detailed_research": result.detailed_research.model_dump(),
            "prototype_prompt": result.prototype_prompt,
            "sources": result.sources,
            "is_heart": False,
            "user_id": user_id,
            "generation_type": generation_type,
        }
        response = await self._execute(
            "save trend", lambda: self.db.table(TRENDS_TABLE).insert(row)
        )
        if not response.data:
            raise PersistenceError("save trend returned no row")
        trend = Trend.from_row(response.data[0])
        logger.info(f"Saved {generation_type} trend {trend.id}: {trend.title!r}")
        return trend

    async def set_heart(self, user_id: str, trend_id: str, is_heart: bool) -> Trend:
        response = await self._execute(
            "toggle heart",
            lambda: self.db.table(TRENDS_TABLE)
            .update({"is_heart": is_heart})
            .eq("id", trend_id)
            .eq("user_id", user_id),
        )
        if not response.data:
            raise TrendNotFoundError(trend_id)
        return Trend.from_row(response.data[0])

    # ------------------------------------------------------------------
    # Research
    # ------------------------------------------------------------------

    def _require_research(self) -> ResearchService:
        if self.research is None:
            raise ConfigurationError(
                "Missing required environment variables. Please set TAVILY_API_KEY "
                "and GEMINI_API_KEY in your project settings."
            )
        return self.research

    async def analyze_trend(self, user_id: str, trend_id: str) -> Trend:
        """Re-run deep research for a stored trend and update it in place."""
        research = self._require_research()
        trend = await self.get_trend(user_id, trend_id)
        result = await research.generate_detailed_research(trend.title, trend.category)
        updates = {
            "detailed_research": result.detailed_research.model_dump(),
            "prototype_prompt": result.prototype_prompt,
            "sources": result.sources,
        }
        response = await self._execute(
            "update trend research",
            lambda: self.db.table(TRENDS_TABLE)
            .update(updates)
            .eq("id", trend_id)
            .eq("user_id", user_id),
        )
        if not response.data:
            raise TrendNotFoundError(trend_id)
        return Trend.from_row(response.data[0])

    async def generate_round(
        self,
        user_id: str,
        count: int,
        generation_type: str,
        search_topic: Optional[str] = None,
        extra_titles: Iterable[str] = (),
    ) -> List[Trend]:
        """One generation round: seeds -> dedup -> research -> persist.

        A seed failure fails the round. Research or save failures only drop
        the affected trend.

        Raises:
            GenerationInProgressError: a round is already running for the user
        """
        research = self._require_research()
        async with self.guard.round(user_id):
            existing = await self.list_trends(user_id)
            titles = [t.title for t in existing] + [t for t in extra_titles if t]

            proposal = await research.propose_trend_seeds(titles, count, search_topic)
            created: List[Trend] = []
            for seed in proposal.seeds[:count]:
                try:
                    result = await research.generate_detailed_research(seed.title, seed.category)
                    trend = await self.save_trend(user_id, seed, result, generation_type)
                except (ThryveError, ValidationError) as e:
                    logger.error(f"Dropping trend {seed.title!r}: {type(e).__name__}: {e}")
                    continue
                created.append(trend)
                if generation_type == "automatic":
                    await self.maybe_auto_prototype(user_id, trend)

            logger.info(
                f"Generation round for {user_id} finished: "
                f"{len(created)}/{count} {generation_type} trends created"
            )
            return created

    async def bootstrap(self, user_id: str, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Opportunistic weekly quota check, run when the trends screen loads."""
        current_week = await self.get_current_week_trends(user_id, now)
        result: Dict[str, Any] = {
            "generated": False,
            "trends": [],
            "trends_needed": 0,
            "current_week_count": len(current_week),
            "message": None,
        }
        if not should_refresh_trends(current_week):
            return result

        needed = trends_needed(current_week)
        result["trends_needed"] = needed
        try:
            created = await self.generate_round(user_id, needed, "automatic")
        except GenerationInProgressError:
            logger.info(f"Skipping quota refresh for {user_id}: round already running")
            result["message"] = "Generation already in progress"
            return result

        result["generated"] = bool(created)
        result["trends"] = created
        return result

    # ------------------------------------------------------------------
    # Auto-prototype hook
    # ------------------------------------------------------------------

    async def auto_prototypes_enabled(self, user_id: str) -> bool:
        try:
            response = await self._execute(
                "load profile",
                lambda: self.db.table(PROFILES_TABLE)
                .select("auto_generate_prototypes")
                .eq("id", user_id)
                .limit(1),
            )
        except PersistenceError:
            return False
        rows = response.data or []
        return bool(rows and rows[0].get("auto_generate_prototypes"))

    async def maybe_auto_prototype(self, user_id: str, trend: Trend) -> bool:
        """POST an auto-generated prototype request when the user opted in.

        Returns True when the request was accepted. Failures are logged only.
        """
        if not self.prototype_url or not trend.prototype_prompt:
            return False
        if not await self.auto_prototypes_enabled(user_id):
            logger.debug(f"Auto-prototype disabled for user {user_id}")
            return False

        payload = {
            "prompt": build_auto_prototype_prompt(trend.prototype_prompt),
            "title": f"{trend.title} Prototype (Auto-Generated)",
            "description": f"AI-generated prototype based on automatically discovered trend: {trend.title}",
            "category": "Auto-Generated",
            "priority": "High",
            "trendId": trend.id,
            "userId": user_id,
        }
        headers = {}
        if token := os.getenv("PROTOTYPE_SERVICE_TOKEN"):
            headers["Authorization"] = f"Bearer {token}"

        try:
            if self._http_client is not None:
                response = await self._http_client.post(self.prototype_url, json=payload, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=PROTOTYPE_TIMEOUT_SECONDS) as client:
                    response = await client.post(self.prototype_url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"Auto-prototype request failed for trend {trend.id}: {e}")
            return False

        if response.status_code >= 400:
            logger.error(
                f"Auto-prototype request rejected for trend {trend.id}: "
                f"status={response.status_code} body={response.text[:200]!r}"
            )
            return False
        logger.info(f"Auto-prototype generation started for trend {trend.id}")
        return True
