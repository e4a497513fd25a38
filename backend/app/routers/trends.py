"""Trends router: listing, weekly quota bootstrap, generation rounds,
re-analysis and the saved toggle."""

import logging
import os
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from supabase import Client

from app.deps import _safe_error, get_current_user, get_research_service, get_supabase
from app.exceptions import (
    ConfigurationError,
    GenerationInProgressError,
    PersistenceError,
    SeedGenerationError,
    ThryveError,
    TrendNotFoundError,
)
from app.models.trend import (
    GenerateTrendsRequest,
    GenerationRoundResponse,
    HeartRequest,
    SortOption,
    TrendListResponse,
)
from app.research_service import ResearchService
from app.security import rate_limit_research
from app.trend_service import TrendService, filter_sort_paginate

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/trends", tags=["trends"])


def get_trend_store(db: Client = Depends(get_supabase)) -> TrendService:
    """Storage-only service for routes that never call the research pipeline."""
    return TrendService(db, None)


def get_trend_service(
    db: Client = Depends(get_supabase),
    research: Optional[ResearchService] = Depends(get_research_service),
) -> TrendService:
    return TrendService(db, research, prototype_url=os.getenv("PROTOTYPE_GENERATE_URL") or None)


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------


def _error(status_code: int, message: str, technical_error: Optional[str] = None) -> JSONResponse:
    content = {"error": message}
    if technical_error:
        content["technical_error"] = technical_error
    return JSONResponse(status_code=status_code, content=content)


def _service_error(e: Exception) -> JSONResponse:
    if isinstance(e, ConfigurationError):
        return _error(400, str(e))
    if isinstance(e, TrendNotFoundError):
        return _error(404, "Trend not found")
    if isinstance(e, GenerationInProgressError):
        return _error(409, "Generation already in progress")
    if isinstance(e, SeedGenerationError):
        return _error(
            500,
            "AI failed to generate trends. This can happen due to API rate limits "
            "or prompt complexity. Please try again in a moment.",
            str(e),
        )
    if isinstance(e, ValidationError):
        return _error(500, "AI response validation failed. Please try again.", str(e))
    if isinstance(e, PersistenceError):
        return _error(500, _safe_error("Database operation", e))
    return _error(500, str(e))


# ============================================================================
# Endpoints
# ============================================================================


@router.get("", response_model=TrendListResponse)
async def list_trends(
    sort: SortOption = Query("newest"),
    q: str = Query("", max_length=200),
    page: int = Query(1, ge=1),
    current_user: dict = Depends(get_current_user),
    service: TrendService = Depends(get_trend_store),
):
    """List the caller's trends with search, sort and pagination."""
    try:
        trends = await service.list_trends(current_user["id"])
    except ThryveError as e:
        return _service_error(e)
    return filter_sort_paginate(trends, sort=sort, query=q, page=page)


@router.post("/bootstrap", response_model=GenerationRoundResponse)
@rate_limit_research()
async def bootstrap_trends(
    request: Request,
    current_user: dict = Depends(get_current_user),
    service: TrendService = Depends(get_trend_service),
):
    """Weekly quota check: generate automatic trends when the week is short."""
    try:
        return await service.bootstrap(current_user["id"])
    except (ThryveError, ValidationError) as e:
        logger.error(f"Bootstrap failed for {current_user['id']}: {type(e).__name__}: {e}")
        return _service_error(e)


@router.post("/generate", response_model=GenerationRoundResponse)
@rate_limit_research()
async def generate_trends(
    request: Request,
    body: GenerateTrendsRequest,
    current_user: dict = Depends(get_current_user),
    service: TrendService = Depends(get_trend_service),
):
    """Manual generation round, optionally focused on a search topic."""
    topic = (body.searchTopic or "").strip() or None
    try:
        created = await service.generate_round(
            current_user["id"],
            body.count,
            "manual" if topic else "automatic",
            search_topic=topic,
        )
    except (ThryveError, ValidationError) as e:
        logger.error(f"Generation round failed for {current_user['id']}: {type(e).__name__}: {e}")
        return _service_error(e)
    return GenerationRoundResponse(
        generated=bool(created),
        trends=created,
        trends_needed=body.count,
    )


@router.post("/{trend_id}/analyze")
@rate_limit_research()
async def analyze_trend(
    request: Request,
    trend_id: str,
    current_user: dict = Depends(get_current_user),
    service: TrendService = Depends(get_trend_service),
):
    """Re-run deep research for one stored trend."""
    try:
        trend = await service.analyze_trend(current_user["id"], trend_id)
    except (ThryveError, ValidationError) as e:
        logger.error(f"Analysis failed for trend {trend_id}: {type(e).__name__}: {e}")
        return _service_error(e)
    return {"trend": trend}


@router.patch("/{trend_id}/heart")
async def toggle_heart(
    trend_id: str,
    body: HeartRequest,
    current_user: dict = Depends(get_current_user),
    service: TrendService = Depends(get_trend_store),
):
    """Set or clear the saved flag."""
    try:
        trend = await service.set_heart(current_user["id"], trend_id, body.is_heart)
    except ThryveError as e:
        return _service_error(e)
    return {"trend": trend}
