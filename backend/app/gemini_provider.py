"""
Gemini Provider for the Thryve research backend.

This module wraps the Gemini ``generateContent`` REST endpoint behind a small
async client and applies a uniform retry policy to every call, whether it
comes from the research pipeline or the chat assistant.

Environment Variables:
- GEMINI_API_KEY: Gemini API key (required for research and chat)
- GEMINI_MODEL: Model id (default: gemini-2.5-pro)
- GEMINI_API_BASE: REST base URL (default: generative language v1beta)
- GEMINI_TIMEOUT_SECONDS: Per-request timeout (default: 45)
- LLM_MAX_ATTEMPTS: Attempts per call including the first (default: 3)
- LLM_INITIAL_BACKOFF_SECONDS: First retry delay (default: 1.0)

Usage:
    from app.gemini_provider import GeminiClient, GeminiConfig

    client = GeminiClient.from_config(GeminiConfig())
    text = await client.generate_text(prompt, temperature=0.3, json_mode=True)
"""

import asyncio
import logging
import os
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

import httpx

from app.exceptions import ConfigurationError, GeminiAPIError, GeminiResponseError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MODEL = "gemini-2.5-pro"
DEFAULT_API_BASE = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_TOP_P = 0.9


# =============================================================================
# Configuration Loading
# =============================================================================


def _get_required_env(name: str) -> str:
    """Get a required environment variable or raise an error."""
    if value := os.getenv(name):
        return value
    raise ConfigurationError(f"Missing required environment variable: {name}.")


def _get_optional_env(name: str, default: str) -> str:
    """Get an optional environment variable with a default value."""
    return os.getenv(name, default)


class GeminiConfig:
    """Gemini configuration container.

    Values are read when the object is created, not at import time, so a
    missing key surfaces as a request-level error instead of a crash.
    """

    def __init__(self):
        self.api_key = os.getenv("GEMINI_API_KEY", "")
        self.model = _get_optional_env("GEMINI_MODEL", DEFAULT_MODEL)
        self.api_base = _get_optional_env("GEMINI_API_BASE", DEFAULT_API_BASE).rstrip("/")
        self.timeout_seconds = float(_get_optional_env("GEMINI_TIMEOUT_SECONDS", "45"))

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def require_api_key(self) -> str:
        if not self.api_key:
            return _get_required_env("GEMINI_API_KEY")
        return self.api_key

    def log_configuration(self):
        """Log the current configuration (without sensitive data)."""
        logger.info("Gemini Configuration:")
        logger.info(f"  Model: {self.model}")
        logger.info(f"  API Base: {self.api_base}")
        logger.info(f"  Timeout: {self.timeout_seconds}s")
        logger.info(f"  API Key: {'set' if self.api_key else 'NOT SET'}")


# =============================================================================
# Retry Policy
# =============================================================================


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff with jitter for transient LLM failures."""

    max_attempts: int = 3
    initial_backoff: float = 1.0
    multiplier: float = 2.0
    max_backoff: float = 20.0
    jitter: float = 0.25  # fraction of the delay added at random

    @classmethod
    def from_env(cls) -> "RetryPolicy":
        return cls(
            max_attempts=max(1, int(os.getenv("LLM_MAX_ATTEMPTS", "3"))),
            initial_backoff=float(os.getenv("LLM_INITIAL_BACKOFF_SECONDS", "1.0")),
        )

    def compute_delay(self, attempt: int) -> float:
        """Delay before retry number *attempt* (0-based)."""
        base = min(self.initial_backoff * (self.multiplier**attempt), self.max_backoff)
        return base + random.uniform(0, base * self.jitter)


def is_retryable(exc: BaseException) -> bool:
    """Timeouts, connection errors, 429 and 5xx are retried; other 4xx are not."""
    if isinstance(exc, (httpx.TimeoutException, httpx.TransportError)):
        return True
    if isinstance(exc, GeminiAPIError):
        status = exc.status_code or 0
        return status == 429 or status >= 500
    return False


async def run_with_retry(
    policy: RetryPolicy,
    func: Callable[..., Awaitable[T]],
    *args: Any,
    **kwargs: Any,
) -> T:
    """Call *func* until it succeeds, a non-retryable error occurs, or the
    policy's attempts are exhausted."""
    name = getattr(func, "__name__", "call")
    last_exception: Optional[BaseException] = None

    for attempt in range(policy.max_attempts):
        try:
            return await func(*args, **kwargs)
        except Exception as e:
            if not is_retryable(e):
                raise
            last_exception = e
            if attempt + 1 >= policy.max_attempts:
                break
            wait_time = policy.compute_delay(attempt)
            logger.warning(
                f"{type(e).__name__} on {name}, retrying in {wait_time:.2f}s "
                f"(attempt {attempt + 1}/{policy.max_attempts})"
            )
            await asyncio.sleep(wait_time)

    logger.error(f"All {policy.max_attempts} attempts exhausted for {name}")
    raise last_exception


# =============================================================================
# Client
# =============================================================================


def user_turn(text: str) -> Dict[str, Any]:
    return {"role": "user", "parts": [{"text": text}]}


def model_turn(text: str) -> Dict[str, Any]:
    return {"role": "model", "parts": [{"text": text}]}


class GeminiClient:
    """Async client for ``models/{model}:generateContent``."""

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        api_base: str = DEFAULT_API_BASE,
        timeout_seconds: float = 45.0,
        retry_policy: Optional[RetryPolicy] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        if not api_key:
            raise ConfigurationError("Missing required environment variable: GEMINI_API_KEY.")
        self.api_key = api_key
        self.model = model
        self.api_base = api_base.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.retry_policy = retry_policy or RetryPolicy()
        self._http_client = http_client

    @classmethod
    def from_config(
        cls,
        config: Optional[GeminiConfig] = None,
        retry_policy: Optional[RetryPolicy] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> "GeminiClient":
        config = config or GeminiConfig()
        return cls(
            api_key=config.require_api_key(),
            model=config.model,
            api_base=config.api_base,
            timeout_seconds=config.timeout_seconds,
            retry_policy=retry_policy or RetryPolicy.from_env(),
            http_client=http_client,
        )

    @property
    def endpoint(self) -> str:
        return f"{self.api_base}/models/{self.model}:generateContent"

    async def _post(self, body: Dict[str, Any]) -> Dict[str, Any]:
        params = {"key": self.api_key}
        if self._http_client is not None:
            response = await self._http_client.post(self.endpoint, params=params, json=body)
        else:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.post(self.endpoint, params=params, json=body)

        if response.status_code >= 400:
            logger.error(
                f"Gemini non-OK response: status={response.status_code} "
                f"body={response.text[:500]!r}"
            )
            raise GeminiAPIError(response.status_code, response.text or response.reason_phrase)
        return response.json()

    async def generate_content(
        self,
        contents: List[Dict[str, Any]],
        temperature: float = 0.2,
        top_p: float = DEFAULT_TOP_P,
        max_output_tokens: Optional[int] = None,
        response_mime_type: Optional[str] = None,
    ) -> str:
        """Send a turn sequence and return the candidate text.

        Raises:
            GeminiAPIError: non-2xx after retries
            GeminiResponseError: 2xx without candidate parts
        """
        generation_config: Dict[str, Any] = {"temperature": temperature, "topP": top_p}
        if max_output_tokens is not None:
            generation_config["maxOutputTokens"] = max_output_tokens
        if response_mime_type:
            generation_config["responseMimeType"] = response_mime_type

        body = {"contents": contents, "generationConfig": generation_config}
        data = await run_with_retry(self.retry_policy, self._post, body)

        candidates = data.get("candidates") or []
        parts = ((candidates[0] or {}).get("content") or {}).get("parts") if candidates else None
        if not isinstance(parts, list) or not parts:
            logger.error(f"Gemini unexpected response shape: {str(data)[:500]}")
            raise GeminiResponseError()
        return "\n".join(part.get("text") or "" for part in parts)

    async def generate_text(
        self,
        prompt: str,
        temperature: float = 0.2,
        top_p: float = DEFAULT_TOP_P,
        json_mode: bool = False,
    ) -> str:
        """Single-turn generation; *json_mode* requests ``application/json``."""
        return await self.generate_content(
            [user_turn(prompt)],
            temperature=temperature,
            top_p=top_p,
            response_mime_type="application/json" if json_mode else None,
        )
