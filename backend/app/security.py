"""
Security Module for the Thryve API

Hardening shared by every router:
- IP-based rate limiting (slowapi), with tighter limits for the endpoints
  that fan out to Tavily and Gemini
- Security headers and a request ID on every response
- Request body size validation
- Exception handlers that keep CORS headers and hide internals in production

Configuration via environment variables:
- RATE_LIMIT_PER_MINUTE: Default requests per minute per IP (default: 100)
- RESEARCH_RATE_LIMIT: Limit for research/generation endpoints (default: 10/minute)
- CHAT_RATE_LIMIT: Limit for the chat endpoint (default: 30/minute)
- MAX_REQUEST_SIZE_MB: Maximum request body size in MB (default: 10)
- TRUSTED_PROXY_COUNT: Proxies in front of the app (default: 1)
- ENVIRONMENT: 'production' or 'development' (affects error detail exposure)
"""

import ipaddress
import logging
import os
import time
import uuid
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

logger = logging.getLogger(__name__)

# =============================================================================
# Configuration
# =============================================================================

RATE_LIMIT_PER_MINUTE = int(os.getenv("RATE_LIMIT_PER_MINUTE", "100"))
DEFAULT_RATE_LIMIT = f"{RATE_LIMIT_PER_MINUTE}/minute"
RESEARCH_RATE_LIMIT = os.getenv("RESEARCH_RATE_LIMIT", "10/minute")
CHAT_RATE_LIMIT = os.getenv("CHAT_RATE_LIMIT", "30/minute")

MAX_REQUEST_SIZE_MB = int(os.getenv("MAX_REQUEST_SIZE_MB", "10"))
MAX_REQUEST_SIZE_BYTES = MAX_REQUEST_SIZE_MB * 1024 * 1024

TRUSTED_PROXY_COUNT = int(os.getenv("TRUSTED_PROXY_COUNT", "1"))

ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
IS_PRODUCTION = ENVIRONMENT.lower() == "production"


# =============================================================================
# Client IP extraction
# =============================================================================


def _is_valid_ip(value: str) -> bool:
    if not value or len(value) > 45:
        return False
    try:
        ipaddress.ip_address(value)
    except ValueError:
        return False
    return True


def get_client_ip(request: Request) -> str:
    """
    Best-effort client IP for rate limiting and audit logs.

    X-Forwarded-For is read right to left: the last TRUSTED_PROXY_COUNT
    entries were appended by our own proxies, the one before them is the
    client. Anything further left is client-controlled and ignored.
    """
    direct_ip = request.client.host if request.client else None

    forwarded = [
        part.strip()
        for part in request.headers.get("X-Forwarded-For", "").split(",")
        if part.strip()
    ]
    if forwarded:
        candidate = (
            forwarded[-(TRUSTED_PROXY_COUNT + 1)]
            if len(forwarded) > TRUSTED_PROXY_COUNT
            else forwarded[0]
        )
        if _is_valid_ip(candidate):
            return candidate
        logger.warning(f"Invalid IP in X-Forwarded-For header: {candidate[:50]!r}")

    real_ip = request.headers.get("X-Real-IP", "").strip()
    if real_ip:
        if _is_valid_ip(real_ip):
            return real_ip
        logger.warning(f"Invalid X-Real-IP header: {real_ip[:50]!r}")

    return direct_ip if direct_ip and _is_valid_ip(direct_ip) else "unknown"


# =============================================================================
# Rate Limiter
# =============================================================================

limiter = Limiter(
    key_func=get_client_ip,
    default_limits=[DEFAULT_RATE_LIMIT],
    storage_uri="memory://",
    strategy="fixed-window",
)


def get_rate_limiter() -> Limiter:
    """Get the configured rate limiter instance."""
    return limiter


def rate_limit_research():
    """Decorator for endpoints that trigger Tavily + Gemini research."""
    return limiter.limit(RESEARCH_RATE_LIMIT)


def rate_limit_chat():
    """Decorator for the chat endpoint."""
    return limiter.limit(CHAT_RATE_LIMIT)


# =============================================================================
# Middleware
# =============================================================================

_SECURITY_HEADERS = {
    "X-Frame-Options": "DENY",
    "X-Content-Type-Options": "nosniff",
    "X-XSS-Protection": "1; mode=block",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": (
        "accelerometer=(), camera=(), geolocation=(), gyroscope=(), "
        "magnetometer=(), microphone=(), payment=(), usb=()"
    ),
}


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Adds security headers and X-Request-ID, and logs request completion."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id
        started = time.time()

        response = await call_next(request)

        for name, value in _SECURITY_HEADERS.items():
            response.headers[name] = value
        if IS_PRODUCTION:
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains; preload"
            )
        response.headers["X-Request-ID"] = request_id
        if not response.headers.get("Cache-Control"):
            response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate, private"

        logger.info(
            f"Request completed: {request.method} {request.url.path} "
            f"status={response.status_code} duration={time.time() - started:.3f}s "
            f"request_id={request_id} client_ip={get_client_ip(request)}"
        )
        return response


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    """Rejects bodies larger than MAX_REQUEST_SIZE_MB based on Content-Length."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        content_length = request.headers.get("content-length")
        if content_length:
            try:
                size = int(content_length)
            except ValueError:
                return JSONResponse(
                    status_code=400,
                    content={"error": "Invalid Content-Length header", "code": "INVALID_CONTENT_LENGTH"},
                )
            if size > MAX_REQUEST_SIZE_BYTES:
                return JSONResponse(
                    status_code=413,
                    content={
                        "error": f"Request body too large. Maximum size is {MAX_REQUEST_SIZE_MB}MB.",
                        "code": "REQUEST_TOO_LARGE",
                    },
                )
        return await call_next(request)


# =============================================================================
# Exception Handlers
# =============================================================================


def _response_headers(request: Request, allowed_origins: list[str]) -> Dict[str, str]:
    """X-Request-ID plus CORS headers for allowed origins.

    Handlers run outside CORSMiddleware for unhandled errors, so the
    headers are set here explicitly.
    """
    headers = {"X-Request-ID": getattr(request.state, "request_id", str(uuid.uuid4()))}
    origin = request.headers.get("origin", "")
    if origin in allowed_origins:
        headers["Access-Control-Allow-Origin"] = origin
        headers["Access-Control-Allow-Credentials"] = "true"
    return headers


def create_secure_exception_handler(allowed_origins: list[str]) -> Callable:
    """Unhandled exceptions: full details in development, generic in production."""

    async def secure_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        headers = _response_headers(request, allowed_origins)
        logger.error(
            f"Unhandled exception: {type(exc).__name__}: {exc} "
            f"request_id={headers['X-Request-ID']} path={request.url.path} "
            f"method={request.method} client_ip={get_client_ip(request)}",
            exc_info=True,
        )
        if IS_PRODUCTION:
            content = {"error": "Internal server error", "code": "INTERNAL_ERROR"}
        else:
            content = {"error": "Internal server error", "technical_error": str(exc),
                       "error_type": type(exc).__name__}
        content["request_id"] = headers["X-Request-ID"]
        return JSONResponse(status_code=500, content=content, headers=headers)

    return secure_exception_handler


def create_rate_limit_exceeded_handler(allowed_origins: list[str]) -> Callable:
    async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
        headers = _response_headers(request, allowed_origins)
        headers["Retry-After"] = "60"
        logger.warning(
            f"Rate limit exceeded: client_ip={get_client_ip(request)} "
            f"path={request.url.path} request_id={headers['X-Request-ID']}"
        )
        return JSONResponse(
            status_code=429,
            content={
                "error": "Rate limit exceeded. Please slow down your requests.",
                "code": "RATE_LIMIT_EXCEEDED",
                "retry_after_seconds": 60,
                "request_id": headers["X-Request-ID"],
            },
            headers=headers,
        )

    return rate_limit_handler


def create_http_exception_handler(allowed_origins: list[str]) -> Callable:
    """HTTPException -> JSON. A dict ``detail`` is used as the response body."""

    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        headers = _response_headers(request, allowed_origins)
        if exc.status_code in (401, 403):
            logger.warning(
                f"Access denied ({exc.status_code}): client_ip={get_client_ip(request)} "
                f"path={request.url.path} request_id={headers['X-Request-ID']}"
            )

        if isinstance(exc.detail, dict):
            content = dict(exc.detail)
        else:
            content = {"error": exc.detail}
        content["request_id"] = headers["X-Request-ID"]
        return JSONResponse(status_code=exc.status_code, content=content, headers=headers)

    return http_exception_handler


# =============================================================================
# Setup
# =============================================================================


def setup_security(app: FastAPI, allowed_origins: list[str]) -> None:
    """
    Attach rate limiting, security headers, size limits and error handlers.

    Call after CORS middleware has been added.
    """
    app.state.limiter = limiter
    app.add_middleware(SlowAPIMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestSizeLimitMiddleware)

    app.add_exception_handler(RateLimitExceeded, create_rate_limit_exceeded_handler(allowed_origins))
    app.add_exception_handler(Exception, create_secure_exception_handler(allowed_origins))
    app.add_exception_handler(HTTPException, create_http_exception_handler(allowed_origins))

    logger.info(
        f"Security middleware configured: rate_limit={DEFAULT_RATE_LIMIT}, "
        f"research_limit={RESEARCH_RATE_LIMIT}, chat_limit={CHAT_RATE_LIMIT}, "
        f"max_request_size={MAX_REQUEST_SIZE_MB}MB, environment={ENVIRONMENT}"
    )


# =============================================================================
# Audit Logging
# =============================================================================


def log_security_event(event_type: str, request: Request, details: Optional[dict] = None) -> None:
    """Log a security-relevant event (auth failure, rejected input) for audit."""
    log_data = {
        "event_type": event_type,
        "request_id": getattr(request.state, "request_id", "unknown"),
        "client_ip": get_client_ip(request),
        "path": request.url.path,
        "method": request.method,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if details:
        log_data |= details
    logger.warning(f"SECURITY_EVENT: {log_data}")
