"""
Thryve API - FastAPI backend for the trend research and innovation assistant
"""

import logging
import os

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.gzip import GZipMiddleware

# Load environment variables from .env file
load_dotenv()

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

from app.gemini_provider import GeminiConfig
from app.routers import chat, health, research, trends
from app.security import setup_security

# Initialize FastAPI app
app = FastAPI(
    title="Thryve API",
    description="Market trend research and innovation assistant",
    version="1.0.0"
)

# =============================================================================
# CORS Configuration
# =============================================================================
# Production uses strict HTTPS origins only; development allows localhost.

ENVIRONMENT = os.getenv("ENVIRONMENT", "development").lower()
PRODUCTION_ORIGIN = "https://thryve.vercel.app"


def resolve_allowed_origins(environment: str, raw: str) -> list[str]:
    origins = [origin.strip() for origin in raw.split(",") if origin.strip()]
    if environment != "production":
        return origins

    accepted = []
    for origin in origins:
        if not origin.startswith("https://"):
            logger.warning(f"[CORS] Rejecting non-HTTPS origin in production: {origin}")
            continue
        if "localhost" in origin or "127.0.0.1" in origin:
            logger.warning(f"[CORS] Rejecting localhost origin in production: {origin}")
            continue
        accepted.append(origin)
    if not accepted:
        logger.warning("[CORS] No valid origins configured, using default production origin")
        accepted = [PRODUCTION_ORIGIN]
    return accepted


if ENVIRONMENT == "production":
    default_origins = PRODUCTION_ORIGIN
else:
    default_origins = "http://localhost:3000,http://localhost:5173"

ALLOWED_ORIGINS = resolve_allowed_origins(
    ENVIRONMENT, os.getenv("ALLOWED_ORIGINS", default_origins)
)
if not ALLOWED_ORIGINS:
    raise ValueError("CORS configuration error: No valid allowed origins configured")

logger.info(f"[CORS] Environment: {ENVIRONMENT}")
logger.info(f"[CORS] Allowed origins: {ALLOWED_ORIGINS}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Requested-With"],
)

# Compresses responses larger than 500 bytes
app.add_middleware(GZipMiddleware, minimum_size=500)

# =============================================================================
# Security Middleware Setup
# =============================================================================
# Rate limiting, security headers, request size limits and error handlers.
# Must run after the CORS middleware is added.
setup_security(app, ALLOWED_ORIGINS)

# =============================================================================
# Routers
# =============================================================================
app.include_router(health.router)
app.include_router(research.router)
app.include_router(chat.router)
app.include_router(trends.router)

GeminiConfig().log_configuration()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
