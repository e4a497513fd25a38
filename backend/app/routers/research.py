"""Research router: trend seed proposal and single-trend deep research."""

import json
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from app.deps import get_research_service
from app.exceptions import SeedGenerationError, ThryveError
from app.models.research import DetailedResearchRequest, SeedRequest
from app.research_service import ResearchService
from app.security import rate_limit_research

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["research"])

MISSING_ENV_MESSAGE = (
    "Missing required environment variables. Please set TAVILY_API_KEY and "
    "GEMINI_API_KEY in your project settings."
)
MISSING_FIELDS_MESSAGE = "Missing 'title' or 'category'."
SEED_FAILURE_MESSAGE = (
    "AI failed to generate trends. This can happen due to API rate limits or "
    "prompt complexity. Please try again in a moment."
)
VALIDATION_FAILURE_MESSAGE = "AI response validation failed. Please try again."


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _error(status_code: int, message: str, technical_error: Optional[str] = None) -> JSONResponse:
    content: Dict[str, Any] = {"error": message}
    if technical_error:
        content["technical_error"] = technical_error
    return JSONResponse(status_code=status_code, content=content)


async def _safe_json(request: Request) -> Dict[str, Any]:
    """Request body as a dict; invalid or non-object JSON reads as ``{}``."""
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        logger.warning(f"Invalid JSON body on {request.url.path}: {e}")
        return {}
    return body if isinstance(body, dict) else {}


def _is_seed_request(body: Dict[str, Any]) -> bool:
    return bool(body.get("bootstrap")) and body.get("mode") == "seeds"


def _pipeline_error(exc: Exception) -> JSONResponse:
    """Map pipeline failures onto 500 bodies."""
    if isinstance(exc, SeedGenerationError):
        return _error(500, SEED_FAILURE_MESSAGE, str(exc))
    if isinstance(exc, ValidationError):
        return _error(500, VALIDATION_FAILURE_MESSAGE, str(exc))
    return _error(500, str(exc))


# ============================================================================
# Endpoint
# ============================================================================


@router.post("/research")
@rate_limit_research()
async def research(
    request: Request,
    service: Optional[ResearchService] = Depends(get_research_service),
):
    """
    Trend research endpoint.

    Body shapes:
    - ``{title, category}``: deep research for one trend ->
      ``{detailed_research, prototype_prompt, sources}``
    - ``{bootstrap: true, mode: "seeds", existingTrends, count, searchTopic?}``:
      seed proposal -> ``{seeds, generationType}``
    """
    body = await _safe_json(request)

    if service is None:
        return _error(400, MISSING_ENV_MESSAGE)

    if _is_seed_request(body):
        try:
            seed_request = SeedRequest.model_validate(body)
        except ValidationError as e:
            return _error(400, "Invalid seed request.", str(e))
        try:
            proposal = await service.propose_trend_seeds(
                seed_request.existingTrends,
                seed_request.count,
                seed_request.topic,
            )
        except (ThryveError, ValidationError) as e:
            logger.error(f"Seed proposal failed: {type(e).__name__}: {e}")
            return _pipeline_error(e)
        return proposal.to_response()

    try:
        detail_request = DetailedResearchRequest.model_validate(body)
    except ValidationError:
        return _error(400, MISSING_FIELDS_MESSAGE)

    try:
        result = await service.generate_detailed_research(
            detail_request.title, detail_request.category
        )
    except (ThryveError, ValidationError) as e:
        logger.error(f"Detailed research failed for {detail_request.title!r}: {type(e).__name__}: {e}")
        return _pipeline_error(e)
    return result.to_response()
