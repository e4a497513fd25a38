"""Shared dependencies for all Thryve API routers.

Centralises the Supabase client singleton, the authentication dependency,
the HTTPBearer scheme, the rate-limiter reference and the factories for the
Gemini/Tavily-backed services, so every router module can
``from app.deps import …`` without pulling in ``main``.
"""

import asyncio
import logging
import os
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from supabase import Client, create_client

from app.gemini_provider import GeminiClient, GeminiConfig
from app.research_service import ResearchService
from app.search_provider import TavilySearchProvider
from app.security import get_rate_limiter, log_security_event

load_dotenv()

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Supabase client (singleton)
# ---------------------------------------------------------------------------
_supabase_url = os.getenv("SUPABASE_URL") or os.getenv("NEXT_PUBLIC_SUPABASE_URL")
_supabase_key = (
    os.getenv("SUPABASE_SERVICE_KEY")
    or os.getenv("SUPABASE_ANON_KEY")
    or os.getenv("NEXT_PUBLIC_SUPABASE_ANON_KEY")
)

# Missing env vars leave the client unset; storage-backed routes answer 503
supabase: Optional[Client] = None
if _supabase_url and _supabase_key:
    supabase = create_client(_supabase_url, _supabase_key)

# ---------------------------------------------------------------------------
# Rate limiter
# ---------------------------------------------------------------------------
limiter = get_rate_limiter()

# ---------------------------------------------------------------------------
# HTTPBearer security scheme (missing headers are handled in get_current_user)
# ---------------------------------------------------------------------------
security = HTTPBearer(auto_error=False)

UNAUTHORIZED = {"error": "Unauthorized"}


# ---------------------------------------------------------------------------
# Small utility helpers
# ---------------------------------------------------------------------------


def _safe_error(operation: str, e: Exception) -> str:
    """Log the full exception but return a safe message without internal details."""
    logger.error(f"Error during {operation}: {type(e).__name__}: {e}")
    return f"{operation} failed. Please try again or contact support."


def get_supabase() -> Client:
    if supabase is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"error": "Database is not configured"},
        )
    return supabase


# ---------------------------------------------------------------------------
# Service factories
# ---------------------------------------------------------------------------


def research_credentials_configured() -> bool:
    return bool(os.getenv("GEMINI_API_KEY")) and bool(os.getenv("TAVILY_API_KEY"))


def get_gemini_client() -> Optional[GeminiClient]:
    """Gemini client for this request, or None when no key is configured."""
    config = GeminiConfig()
    if not config.is_configured:
        return None
    return GeminiClient.from_config(config)


def get_research_service() -> Optional[ResearchService]:
    """Research service for this request, or None when credentials are missing."""
    if not research_credentials_configured():
        logger.error(
            f"Research credentials missing: "
            f"has_tavily={bool(os.getenv('TAVILY_API_KEY'))} "
            f"has_gemini={bool(os.getenv('GEMINI_API_KEY'))}"
        )
        return None
    return ResearchService(
        gemini=GeminiClient.from_config(GeminiConfig()),
        search=TavilySearchProvider(os.getenv("TAVILY_API_KEY")),
    )


# ---------------------------------------------------------------------------
# Authentication dependency
# ---------------------------------------------------------------------------


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Client = Depends(get_supabase),
) -> Dict[str, Any]:
    """
    Get current authenticated user with security logging.

    Validates the Supabase access token, which handles signature,
    expiration and revocation checks. Every failure answers 401
    ``{"error": "Unauthorized"}`` so callers cannot enumerate users.
    """
    token = credentials.credentials if credentials else ""

    if not token or len(token) < 20:
        log_security_event("auth_invalid_token_format", request)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=UNAUTHORIZED)

    try:
        # supabase-py is synchronous; keep the event loop free
        response = await asyncio.to_thread(db.auth.get_user, token)
    except Exception as e:
        log_security_event(
            "auth_error",
            request,
            {"error_type": type(e).__name__, "error_msg": str(e)[:100]},
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail=UNAUTHORIZED
        ) from e

    user = getattr(response, "user", None)
    if not user:
        log_security_event("auth_invalid_session", request)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=UNAUTHORIZED)

    logger.debug(f"Authenticated user: {user.id}")
    return {"id": str(user.id), "email": getattr(user, "email", None)}
