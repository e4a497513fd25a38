"""Health-check router."""

import os
import logging
from datetime import datetime, timezone

from fastapi import APIRouter

from app import deps
from app.gemini_provider import GeminiConfig
from app.search_provider import is_available as search_available

logger = logging.getLogger(__name__)
router = APIRouter(tags=["health"])


@router.get("/")
async def root():
    """Health check"""
    return {"status": "ok", "message": "Thryve API is running"}


@router.get("/api/health")
async def health_check():
    """Detailed health check with credential and degradation status."""
    gemini = GeminiConfig()
    capabilities = []
    degraded = []

    # Gemini powers both research and chat
    if gemini.is_configured:
        capabilities.append("chat")
    else:
        degraded.append("chat")

    if gemini.is_configured and search_available():
        capabilities.append("research")
    else:
        degraded.append("research")

    if deps.supabase is not None:
        capabilities.append("storage")
    else:
        degraded.append("storage")

    if os.getenv("PROTOTYPE_GENERATE_URL"):
        capabilities.append("auto_prototypes")

    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "services": {
            "database": "configured" if deps.supabase is not None else "unconfigured",
            "ai": {"provider": "gemini", "model": gemini.model, "available": gemini.is_configured},
            "search": {"provider": "tavily", "available": search_available()},
        },
        "capabilities": capabilities,
        "degraded": degraded if degraded else None,
        "mode": "full" if not degraded else "degraded",
    }
